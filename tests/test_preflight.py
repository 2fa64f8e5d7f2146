# =============================================================================
# CROSSFORGE PREFLIGHT TESTS
# =============================================================================
# Host precondition gate: tools, environment hygiene, timestamp integrity,
# worktree cleanliness, sandbox backend and the service database.
# =============================================================================

import io
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from crossforge.core.preflight import PreflightChecker
from crossforge.core.report import ReportFormatter
from crossforge.domain.errors import (
    BackendUnreachable,
    ConflictingEnvironment,
    DirtyWorktree,
    MissingTool,
)


def _checker(config, clean=True, which=None, service_lookup=None, report=None):
    git = MagicMock()
    git.is_clean.return_value = clean
    git.worktree = config.worktree
    docker = MagicMock()
    checker = PreflightChecker(
        config,
        git,
        docker,
        which=which or (lambda tool: f"/usr/bin/{tool}"),
        service_lookup=service_lookup or (lambda name: 80),
        report=report or ReportFormatter(Console(file=io.StringIO())),
    )
    return checker, git, docker


class TestValidate:
    """Test the full gate."""

    def test_healthy_host_passes(self, make_config):
        """A clean host passes and the daemon is pinged."""
        checker, git, docker = _checker(make_config())
        checker.validate()
        docker.connect.assert_called_once()
        assert checker.warnings == []

    def test_backend_unreachable_propagates(self, make_config):
        """An unreachable daemon stops the batch."""
        checker, _, docker = _checker(make_config())
        docker.connect.side_effect = BackendUnreachable("connection refused")
        with pytest.raises(BackendUnreachable):
            checker.validate()


class TestTools:
    """Test required tool lookup."""

    def test_missing_tool(self, make_config):
        """The first missing tool is named."""
        checker, _, docker = _checker(
            make_config(), which=lambda tool: None if tool == "make" else "/bin/x"
        )
        with pytest.raises(MissingTool) as excinfo:
            checker.validate()
        assert excinfo.value.tool == "make"
        assert "$PATH" in excinfo.value.message
        docker.connect.assert_not_called()

    def test_custom_tool_list(self, make_config):
        """The required tool list is configurable."""
        checker, _, _ = _checker(
            make_config(required_tools=["docker"]),
            which=lambda tool: "/bin/docker" if tool == "docker" else None,
        )
        checker.check_tools()


class TestEnvironmentHygiene:
    """Test the ambient build-options check."""

    def test_build_options_set(self, make_config):
        """A non-empty DOCKER_DEFAULT_PLATFORM is a conflict."""
        checker, _, _ = _checker(make_config(ambient_build_options="linux/arm64"))
        with pytest.raises(ConflictingEnvironment) as excinfo:
            checker.validate()
        assert excinfo.value.variable == "DOCKER_DEFAULT_PLATFORM"
        assert excinfo.value.context == {"DOCKER_DEFAULT_PLATFORM": "linux/arm64"}


class TestTimestampIntegrity:
    """Test the SOURCE_DATE_EPOCH rule."""

    def test_unforced_epoch_stops_before_anything_else(self, make_config):
        """An unforced epoch fails before the worktree or daemon is consulted."""
        checker, git, docker = _checker(make_config(source_date_epoch=1700000000))
        with pytest.raises(ConflictingEnvironment) as excinfo:
            checker.validate()
        assert excinfo.value.variable == "SOURCE_DATE_EPOCH"
        assert "FORCE_SOURCE_DATE_EPOCH" in excinfo.value.hint
        git.is_clean.assert_not_called()
        docker.connect.assert_not_called()

    def test_forced_epoch_passes(self, make_config):
        """A forced epoch is accepted."""
        checker, _, _ = _checker(
            make_config(source_date_epoch=1700000000, force_source_date_epoch=True)
        )
        checker.check_timestamp_integrity()

    def test_warn_policy(self, make_config):
        """The warn policy records a warning instead of failing."""
        checker, _, _ = _checker(
            make_config(source_date_epoch=1700000000, timestamp_policy="warn")
        )
        checker.check_timestamp_integrity()
        assert len(checker.warnings) == 1
        assert "1700000000" in checker.warnings[0]


class TestWorktree:
    """Test the worktree cleanliness rule."""

    def test_dirty_worktree(self, make_config):
        """A dirty worktree stops the batch."""
        checker, _, _ = _checker(make_config(), clean=False)
        with pytest.raises(DirtyWorktree) as excinfo:
            checker.validate()
        assert "FORCE_DIRTY_WORKTREE" in excinfo.value.hint

    def test_forced_dirty_worktree_warns(self, make_config):
        """FORCE_DIRTY_WORKTREE downgrades the failure to a warning."""
        checker, _, _ = _checker(make_config(force_dirty_worktree=True), clean=False)
        checker.check_worktree()
        assert "dirty" in checker.warnings[0]


class TestServices:
    """Test the soft service database check."""

    def test_missing_services_only_warn(self, make_config):
        """Missing /etc/services entries never fail the batch."""

        def lookup(name):
            if name == "ftp":
                raise OSError("service/proto not found")
            return 443

        checker, _, _ = _checker(make_config(), service_lookup=lookup)
        checker.validate()
        assert len(checker.warnings) == 1
        assert "ftp" in checker.warnings[0]
        assert "http," not in checker.warnings[0]

    def test_warnings_go_through_the_report(self, make_config):
        """Soft warnings are rendered by the report formatter."""
        buffer = io.StringIO()
        report = ReportFormatter(Console(file=buffer, width=200))
        checker, _, _ = _checker(
            make_config(force_dirty_worktree=True), clean=False, report=report
        )
        checker.validate()
        assert "WARNING: Worktree is dirty" in buffer.getvalue()
