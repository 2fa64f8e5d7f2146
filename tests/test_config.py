# =============================================================================
# CROSSFORGE CONFIGURATION TESTS
# =============================================================================
# Precedence of YAML, .env, environment and CLI values, and validation.
# =============================================================================

from pathlib import Path

import pytest

from crossforge.core.config import (
    DEFAULT_BUILDER_IMAGE,
    BuildConfig,
    load_config,
    load_config_file,
)
from crossforge.domain.errors import ConfigurationError


class TestDefaults:
    """Test default values."""

    def test_empty_environment(self, worktree):
        """With no inputs the defaults apply."""
        config = load_config(worktree, environ={})
        assert config.hosts is None
        assert config.jobs >= 1
        assert config.builder_image == DEFAULT_BUILDER_IMAGE
        assert config.timestamp_policy == "error"
        assert config.fail_on_target_failure is False
        assert config.force_dirty_worktree is False
        assert config.required_tools == ["git", "make"]
        assert config.ambient_build_options == ""

    def test_worktree_is_resolved(self, worktree):
        """The worktree is stored as an absolute path."""
        config = load_config(worktree, environ={})
        assert config.worktree == worktree.resolve()


class TestEnvironment:
    """Test environment variable mapping."""

    def test_hosts_are_split(self, worktree):
        """HOSTS is a whitespace-separated list."""
        config = load_config(worktree, environ={"HOSTS": "x86_64-linux-gnu  aarch64-linux-gnu"})
        assert config.hosts == ["x86_64-linux-gnu", "aarch64-linux-gnu"]

    def test_flags_are_set_by_any_value(self, worktree):
        """Flag variables only need to be non-empty."""
        config = load_config(
            worktree,
            environ={"FORCE_DIRTY_WORKTREE": "no", "V": "1", "FORCE_SOURCE_DATE_EPOCH": "x"},
        )
        assert config.force_dirty_worktree is True
        assert config.verbose is True
        assert config.force_source_date_epoch is True

    def test_empty_flag_is_unset(self, worktree):
        """An empty flag variable leaves the flag off."""
        config = load_config(worktree, environ={"FORCE_DIRTY_WORKTREE": ""})
        assert config.force_dirty_worktree is False

    def test_source_date_epoch(self, worktree):
        """SOURCE_DATE_EPOCH is parsed as an integer."""
        config = load_config(
            worktree, environ={"SOURCE_DATE_EPOCH": "1700000000", "FORCE_SOURCE_DATE_EPOCH": "1"}
        )
        assert config.source_date_epoch == 1700000000
        assert config.reference_timestamp_is_forced

    def test_unforced_timestamp(self, worktree):
        """An unforced SOURCE_DATE_EPOCH is not a reference timestamp."""
        config = load_config(worktree, environ={"SOURCE_DATE_EPOCH": "1700000000"})
        assert not config.reference_timestamp_is_forced

    def test_build_options_variable_captured(self, worktree):
        """DOCKER_DEFAULT_PLATFORM is captured for the hygiene check."""
        config = load_config(worktree, environ={"DOCKER_DEFAULT_PLATFORM": "linux/arm64"})
        assert config.ambient_build_options == "linux/arm64"

    def test_run_options_parsed_as_yaml(self, worktree):
        """ADDITIONAL_RUN_OPTIONS is a YAML mapping."""
        config = load_config(worktree, environ={"ADDITIONAL_RUN_OPTIONS": "{shm_size: 2g}"})
        assert config.additional_run_options == {"shm_size": "2g"}

    def test_run_options_must_be_a_mapping(self, worktree):
        """A scalar value for ADDITIONAL_RUN_OPTIONS is rejected."""
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(worktree, environ={"ADDITIONAL_RUN_OPTIONS": "--privileged"})

    def test_relative_paths_resolved_against_worktree(self, worktree):
        """Relative directory settings are anchored at the worktree."""
        config = load_config(worktree, environ={"SOURCES_PATH": "cache/sources"})
        assert config.sources_path == worktree.resolve() / "cache" / "sources"

    def test_invalid_jobs(self, worktree):
        """Validation errors name the offending field."""
        with pytest.raises(ConfigurationError) as excinfo:
            load_config(worktree, environ={"JOBS": "0"})
        assert "jobs" in excinfo.value.context

    def test_invalid_timestamp_policy(self, worktree):
        """Only 'error' and 'warn' are accepted."""
        with pytest.raises(ConfigurationError):
            load_config(worktree, environ={"CROSSFORGE_TIMESTAMP_POLICY": "ignore"})


class TestPrecedence:
    """Test the precedence of configuration sources."""

    def test_yaml_file_loaded(self, worktree):
        """crossforge.yaml in the worktree is read by default."""
        (worktree / "crossforge.yaml").write_text(
            "jobs: 3\nbuilder_image: registry.example/builder@sha256:abc\n"
        )
        config = load_config(worktree, environ={})
        assert config.jobs == 3
        assert config.builder_image == "registry.example/builder@sha256:abc"

    def test_environment_beats_yaml(self, worktree):
        """Environment values override the YAML file."""
        (worktree / "crossforge.yaml").write_text("jobs: 3\n")
        config = load_config(worktree, environ={"JOBS": "5"})
        assert config.jobs == 5

    def test_dotenv_below_environment(self, worktree):
        """The worktree .env is read, but the process environment wins."""
        (worktree / ".env").write_text("JOBS=6\nHOSTS=x86_64-w64-mingw32\n")
        config = load_config(worktree, environ={"JOBS": "7"})
        assert config.jobs == 7
        assert config.hosts == ["x86_64-w64-mingw32"]

    def test_cli_overrides_win(self, worktree):
        """CLI overrides beat everything; None values are ignored."""
        config = load_config(
            worktree,
            environ={"JOBS": "5", "HOSTS": "x86_64-linux-gnu"},
            overrides={"jobs": 9, "hosts": None},
        )
        assert config.jobs == 9
        assert config.hosts == ["x86_64-linux-gnu"]

    def test_explicit_config_path_must_exist(self, worktree):
        """A missing --config file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(worktree, config_path=worktree / "missing.yaml", environ={})


class TestConfigFile:
    """Test load_config_file."""

    def test_missing_file(self, tmp_path):
        """A missing default file yields no values."""
        assert load_config_file(tmp_path / "crossforge.yaml") == {}

    def test_empty_file(self, tmp_path):
        """An empty file yields no values."""
        path = tmp_path / "crossforge.yaml"
        path.write_text("")
        assert load_config_file(path) == {}

    def test_top_level_must_be_mapping(self, tmp_path):
        """A YAML list is rejected."""
        path = tmp_path / "crossforge.yaml"
        path.write_text("- jobs\n- hosts\n")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_invalid_yaml(self, tmp_path):
        """Unparseable YAML is a configuration error."""
        path = tmp_path / "crossforge.yaml"
        path.write_text("jobs: [1, 2\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config_file(path)


class TestBuildConfig:
    """Test BuildConfig directly."""

    def test_absolute_paths_kept(self, tmp_path):
        """Absolute paths are not re-anchored."""
        config = BuildConfig(worktree=tmp_path, sdk_path=Path("/opt/sdks"))
        assert config.sdk_path == Path("/opt/sdks")

    def test_substitute_urls_split(self, tmp_path):
        """SUBSTITUTE_URLS accepts a whitespace-separated string."""
        config = BuildConfig(worktree=tmp_path, substitute_urls="mirror.a mirror.b")
        assert config.substitute_urls == ["mirror.a", "mirror.b"]
