# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# BUILD CONFIGURATION
# -----------------------------------------------------------------------------
# Responsibility: Turn every ambient input (YAML file, .env, process
# environment, CLI flags) into ONE validated BuildConfig. Nothing downstream
# reads os.environ; preflight checks are functions of this struct.
#
# Precedence, lowest first: defaults < crossforge.yaml < .env < environment
# < CLI overrides.
# -----------------------------------------------------------------------------

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from rich.console import Console

from crossforge.domain.errors import ConfigurationError

console = Console()

CONFIG_FILENAME = "crossforge.yaml"
DEFAULT_BUILDER_IMAGE = "crossforge/builder:latest"
DEFAULT_BUILD_SCRIPT = "contrib/crossforge/build.sh"

# Captured, never honoured: it silently overrides the platform of every pull.
BUILD_OPTIONS_VAR = "DOCKER_DEFAULT_PLATFORM"

# Environment variable -> BuildConfig field
ENV_FIELDS = {
    "HOSTS": "hosts",
    "JOBS": "jobs",
    "SOURCE_DATE_EPOCH": "source_date_epoch",
    "FORCE_SOURCE_DATE_EPOCH": "force_source_date_epoch",
    "FORCE_DIRTY_WORKTREE": "force_dirty_worktree",
    "FORCE_VERSION": "force_version",
    "DISTNAME": "dist_name",
    "VERSION_BASE": "version_base",
    "DISTSRC_BASE": "distsrc_base",
    "OUTDIR_BASE": "outdir_base",
    "VAR_BASE": "var_base",
    "PROFILES_BASE": "profiles_base",
    "SOURCES_PATH": "sources_path",
    "BASE_CACHE": "base_cache",
    "SDK_PATH": "sdk_path",
    "SUBSTITUTE_URLS": "substitute_urls",
    "BUILDER_IMAGE": "builder_image",
    "ADDITIONAL_RUN_OPTIONS": "additional_run_options",
    "ADDITIONAL_PULL_OPTIONS": "additional_pull_options",
    "V": "verbose",
    "CROSSFORGE_TIMESTAMP_POLICY": "timestamp_policy",
    "CROSSFORGE_FAIL_ON_TARGET_FAILURE": "fail_on_target_failure",
    "CROSSFORGE_DOCKER_AUTO_WAKE": "docker_auto_wake",
}

# Set when non-empty, whatever the value
FLAG_FIELDS = {
    "force_source_date_epoch",
    "force_dirty_worktree",
    "verbose",
    "fail_on_target_failure",
    "docker_auto_wake",
}

LIST_FIELDS = {"hosts", "substitute_urls"}
MAPPING_FIELDS = {"additional_run_options", "additional_pull_options"}

PATH_FIELDS = (
    "version_base",
    "distsrc_base",
    "outdir_base",
    "var_base",
    "profiles_base",
    "sources_path",
    "base_cache",
    "sdk_path",
)


class BuildConfig(BaseModel):
    """
    Validated orchestrator configuration.

    Relative paths are resolved against the worktree.
    """

    worktree: Path
    hosts: list[str] | None = None
    jobs: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)

    source_date_epoch: int | None = Field(default=None, ge=0)
    force_source_date_epoch: bool = False
    timestamp_policy: Literal["error", "warn"] = "error"

    force_dirty_worktree: bool = False
    force_version: str | None = None
    dist_name: str | None = None

    version_base: Path | None = None
    distsrc_base: Path | None = None
    outdir_base: Path | None = None
    var_base: Path | None = None
    profiles_base: Path | None = None
    sources_path: Path | None = None
    base_cache: Path | None = None
    sdk_path: Path | None = None

    builder_image: str = Field(default=DEFAULT_BUILDER_IMAGE, min_length=1)
    build_script: str = DEFAULT_BUILD_SCRIPT
    substitute_urls: list[str] = Field(default_factory=list)
    additional_run_options: dict[str, Any] = Field(default_factory=dict)
    additional_pull_options: dict[str, Any] = Field(default_factory=dict)
    docker_auto_wake: bool = False

    verbose: bool = False
    fail_on_target_failure: bool = False
    required_tools: list[str] = Field(default_factory=lambda: ["git", "make"])
    ambient_build_options: str = ""

    @field_validator("hosts", "substitute_urls", mode="before")
    @classmethod
    def _split_words(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value

    @model_validator(mode="after")
    def _resolve_paths(self) -> "BuildConfig":
        self.worktree = self.worktree.expanduser().resolve()
        for name in PATH_FIELDS:
            value = getattr(self, name)
            if value is not None:
                value = value.expanduser()
                if not value.is_absolute():
                    value = self.worktree / value
                setattr(self, name, value)
        return self

    @property
    def reference_timestamp_is_forced(self) -> bool:
        return self.source_date_epoch is not None and self.force_source_date_epoch


def _env_to_fields(env: Mapping[str, str | None]) -> dict[str, Any]:
    """Map recognised environment variables onto BuildConfig fields."""
    values: dict[str, Any] = {}
    for var, field_name in ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None:
            continue
        if field_name in FLAG_FIELDS:
            values[field_name] = bool(raw)
            continue
        if raw == "":
            continue
        if field_name in MAPPING_FIELDS:
            try:
                parsed = yaml.safe_load(raw)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"{var} is not valid YAML: {e}")
            if not isinstance(parsed, dict):
                raise ConfigurationError(
                    f"{var} must be a YAML mapping",
                    hint=f"e.g. {var}='{{shm_size: 2g}}'",
                )
            values[field_name] = parsed
        else:
            values[field_name] = raw
    return values


def load_config_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Returns:
        The mapping of BuildConfig field names to values ({} when absent).
    """
    if not path.exists():
        return {}

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    console.print(f"[green][CONFIG] Loaded {path}[/green]")
    return data


def load_config(
    worktree: Path,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> BuildConfig:
    """
    Build the BuildConfig for one run.

    Args:
        worktree: The source checkout to build.
        config_path: Explicit YAML file; defaults to <worktree>/crossforge.yaml.
        environ: Process environment (defaults to os.environ).
        overrides: CLI-level values, highest precedence. None values are ignored.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    worktree = Path(worktree)
    environ = os.environ if environ is None else environ

    if config_path is not None and not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")
    values = load_config_file(config_path or worktree / CONFIG_FILENAME)

    env = {k: v for k, v in dotenv_values(worktree / ".env").items() if v is not None}
    env.update(environ)
    values.update(_env_to_fields(env))
    values["ambient_build_options"] = env.get(BUILD_OPTIONS_VAR, "")

    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    values["worktree"] = worktree

    try:
        return BuildConfig(**values)
    except ValidationError as e:
        problems = {
            ".".join(str(p) for p in err["loc"]) or "config": err["msg"] for err in e.errors()
        }
        raise ConfigurationError(
            "The build configuration is invalid.",
            hint="Fix the listed settings in the environment or crossforge.yaml.",
            context=problems,
        )
