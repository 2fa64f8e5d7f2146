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
# THE GATEKEEPER - PREFLIGHT CHECKER
# -----------------------------------------------------------------------------
# Responsibility: Validates the host before any directory is touched or any
# container is started. Every rule is independent and fail-fast; the first
# violation aborts the whole batch.
#
# Soft rules (service database) only warn.
# -----------------------------------------------------------------------------

import shutil
import socket
from collections.abc import Callable

from rich.console import Console

from crossforge.core.config import BUILD_OPTIONS_VAR, BuildConfig
from crossforge.core.report import ReportFormatter
from crossforge.domain.errors import (
    ConflictingEnvironment,
    DirtyWorktree,
    MissingTool,
)
from crossforge.infra.docker_client import DockerProvider
from crossforge.infra.git_client import GitProvider

console = Console()

# Needed by some sandboxed downloads; missing entries only warn.
REQUIRED_SERVICES = ("http", "https", "ftp")


class PreflightChecker:
    """
    Host precondition gate.

    A pure function of the BuildConfig and the lookups handed in: the tool
    lookup, the git worktree, the Docker provider and the service database.
    """

    def __init__(
        self,
        config: BuildConfig,
        git: GitProvider,
        docker: DockerProvider,
        which: Callable[[str], str | None] = shutil.which,
        service_lookup: Callable[[str], int] = socket.getservbyname,
        report: ReportFormatter | None = None,
    ) -> None:
        self._config = config
        self._git = git
        self._docker = docker
        self._which = which
        self._service_lookup = service_lookup
        self._report = report or ReportFormatter()
        self.warnings: list[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self._report.warning(message)

    def validate(self) -> None:
        """
        Run every preflight rule in order.

        Raises:
            MissingTool, ConflictingEnvironment, DirtyWorktree,
            BackendUnreachable: on the first violated rule.
        """
        console.print("[cyan][PREFLIGHT] Validating host...[/cyan]")

        self.check_tools()
        self.check_environment_hygiene()
        self.check_timestamp_integrity()
        self.check_worktree()
        self.check_daemon()
        self.check_services()

        console.print("[green][PREFLIGHT] Host ready[/green]")

    def check_tools(self) -> None:
        """Every required executable must be on the search path."""
        for tool in self._config.required_tools:
            if self._which(tool) is None:
                console.print(f"[red][PREFLIGHT] Missing tool: {tool}[/red]")
                raise MissingTool(tool)

    def check_environment_hygiene(self) -> None:
        """The ambient build-options variable must be empty."""
        value = self._config.ambient_build_options
        if value:
            raise ConflictingEnvironment(
                BUILD_OPTIONS_VAR,
                value,
                f"Environment variable {BUILD_OPTIONS_VAR} is not empty. It silently "
                "overrides the platform chosen for every image pull and container, which "
                "breaks build determinism.",
                hint=(
                    f"Unset {BUILD_OPTIONS_VAR}, or pass the option explicitly through "
                    "ADDITIONAL_RUN_OPTIONS / ADDITIONAL_PULL_OPTIONS "
                    "(e.g. ADDITIONAL_PULL_OPTIONS='{platform: linux/amd64}')."
                ),
            )

    def check_timestamp_integrity(self) -> None:
        """
        An ambient SOURCE_DATE_EPOCH must be explicitly forced.

        Policy "error" stops the batch; policy "warn" records a warning and the
        reference timestamp is derived from the last commit instead.
        """
        config = self._config
        if config.source_date_epoch is None or config.force_source_date_epoch:
            return

        if config.timestamp_policy == "warn":
            message = (
                f"SOURCE_DATE_EPOCH={config.source_date_epoch} is set but not forced; "
                "ignoring it and using the commit timestamp"
            )
            self._warn(message)
            return

        raise ConflictingEnvironment(
            "SOURCE_DATE_EPOCH",
            str(config.source_date_epoch),
            "Environment variable SOURCE_DATE_EPOCH is set which may break reproducibility.",
            hint=(
                "You may want to:\n"
                "  1. Unset this variable: `unset SOURCE_DATE_EPOCH` before rebuilding\n"
                "  2. Set the 'FORCE_SOURCE_DATE_EPOCH' environment variable if you insist\n"
                "     on using your own epoch"
            ),
        )

    def check_worktree(self) -> None:
        """Build inputs must be exactly the committed state."""
        if self._git.is_clean():
            return
        if self._config.force_dirty_worktree:
            message = "Worktree is dirty; continuing because FORCE_DIRTY_WORKTREE is set"
            self._warn(message)
            return
        raise DirtyWorktree(self._git.worktree)

    def check_daemon(self) -> None:
        """The sandbox backend must answer."""
        console.print("[cyan][PREFLIGHT] Checking that we can connect to the Docker Engine...[/cyan]")
        self._docker.connect()

    def check_services(self) -> None:
        """Service-name resolution for a few protocols. Warns, never fails."""
        missing = []
        for service in REQUIRED_SERVICES:
            try:
                self._service_lookup(service)
            except OSError:
                missing.append(service)

        if missing:
            message = (
                "Your system's C library cannot find service database entries for: "
                f"{', '.join(missing)}. Most likely /etc/services does not exist "
                "(install 'netbase' on Debian/Ubuntu or 'iana-etc' on Arch Linux)."
            )
            self._warn(message)
