# =============================================================================
# CROSSFORGE ORCHESTRATOR TESTS
# =============================================================================
# End-to-end runs with the sandbox, git and depends mocked out.
# =============================================================================

import io
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from crossforge.core.orchestrator import (
    EXIT_OK,
    EXIT_TARGET_FAILED,
    Orchestrator,
    exit_code_for,
)
from crossforge.core.report import ReportFormatter
from crossforge.core.resources import ResourceEstimator
from crossforge.domain.errors import (
    DirtyWorktree,
    ExistingBuildDirectories,
    InsufficientDiskSpace,
    MissingPlatformSDK,
)
from crossforge.domain.models import (
    PlatformFamily,
    RunReport,
    SessionState,
    Target,
    TargetOutcome,
)
from crossforge.infra.docker_client import SandboxResult


@pytest.fixture
def wiring(make_config, mock_depends, tmp_path):
    """Orchestrator factory with every external system mocked."""

    def _build(free_kib=10**10, **config_overrides):
        config = make_config(**config_overrides)
        git = MagicMock()
        git.head_version.return_value = "abc123def456"
        git.commit_timestamp.return_value = 1700000000
        git.common_dir.return_value = tmp_path / "no-such-git-dir"
        docker = MagicMock()
        docker.ensure_image.return_value = "crossforge/builder@sha256:feed"
        docker.run_session.return_value = SandboxResult(exit_code=0, container_id="c", kept=False)
        preflight = MagicMock()
        orchestrator = Orchestrator(
            config,
            docker=docker,
            git=git,
            depends=mock_depends,
            preflight=preflight,
            estimator=ResourceEstimator(free_space=lambda path: free_kib),
            report=ReportFormatter(Console(file=io.StringIO())),
        )
        return orchestrator, docker, git, preflight

    return _build


class TestRun:
    """Test Orchestrator.run."""

    def test_single_linux_target(self, wiring, mock_depends):
        """A clean single-target run builds once in the pinned image."""
        orchestrator, docker, git, preflight = wiring(hosts=["x86_64-linux-gnu"])

        report = orchestrator.run()

        preflight.validate.assert_called_once()
        assert report.succeeded_targets == ["x86_64-linux-gnu"]
        assert docker.run_session.call_count == 1
        session = docker.run_session.call_args.args[0]
        assert session.environment["HOST"] == "x86_64-linux-gnu"
        assert session.environment["SOURCE_DATE_EPOCH"] == "1700000000"
        assert docker.run_session.call_args.kwargs["image"] == "crossforge/builder@sha256:feed"
        mock_depends.download.assert_called_once()

        layout = orchestrator.layout
        assert layout.version_base.name == "crossforge-build-abc123def456"
        assert layout.precious_file.exists()
        assert (layout.profiles_base / "x86_64-linux-gnu" / "session.json").exists()
        # No git common dir on disk, so no git mount
        assert all(m.read_only is False for m in session.mounts)

    def test_forced_version_and_timestamp(self, wiring):
        """FORCE_VERSION and a forced SOURCE_DATE_EPOCH bypass git."""
        orchestrator, docker, git, _ = wiring(
            hosts=["x86_64-linux-gnu"],
            force_version="25.0",
            source_date_epoch=42,
            force_source_date_epoch=True,
        )
        orchestrator.run()
        git.head_version.assert_not_called()
        git.commit_timestamp.assert_not_called()
        session = docker.run_session.call_args.args[0]
        assert session.environment["SOURCE_DATE_EPOCH"] == "42"
        assert orchestrator.layout.version == "25.0"

    def test_preflight_failure_stops_everything(self, wiring):
        """A preflight error is batch-fatal."""
        orchestrator, docker, git, preflight = wiring(hosts=["x86_64-linux-gnu"])
        preflight.validate.side_effect = DirtyWorktree(orchestrator.config.worktree)
        with pytest.raises(DirtyWorktree):
            orchestrator.run()
        git.head_version.assert_not_called()
        docker.run_session.assert_not_called()

    def test_missing_sdk_stops_before_any_session(self, wiring, mock_depends):
        """A missing macOS SDK fails the batch; no target is built."""
        mock_depends.print_var.return_value = "/nonexistent/sdk/Xcode-15.0"
        orchestrator, docker, _, _ = wiring(hosts=["x86_64-linux-gnu", "x86_64-apple-darwin"])
        with pytest.raises(MissingPlatformSDK):
            orchestrator.run()
        docker.run_session.assert_not_called()
        docker.ensure_image.assert_not_called()
        mock_depends.download.assert_not_called()

    def test_insufficient_disk_space(self, wiring):
        """Too little space fails before any directory is planned."""
        orchestrator, docker, _, _ = wiring(free_kib=1000, hosts=["x86_64-w64-mingw32"])
        with pytest.raises(InsufficientDiskSpace):
            orchestrator.run()
        assert not orchestrator.layout.outdir_base.exists()
        docker.run_session.assert_not_called()

    def test_existing_build_directory(self, wiring):
        """A leftover distsrc fails the batch without creating the output root."""
        orchestrator, docker, _, _ = wiring(hosts=["x86_64-linux-gnu"])
        version_base = orchestrator.config.worktree / "crossforge-build-abc123def456"
        (version_base / "distsrc-abc123def456-x86_64-linux-gnu").mkdir(parents=True)

        with pytest.raises(ExistingBuildDirectories):
            orchestrator.run()

        assert not (version_base / "output").exists()
        docker.ensure_image.assert_not_called()
        docker.run_session.assert_not_called()

    def test_conflict_leaves_no_version_base(self, wiring, tmp_path):
        """A batch refused by the directory scan creates nothing under the worktree."""
        elsewhere = tmp_path / "elsewhere"
        (elsewhere / "distsrc-abc123def456-x86_64-linux-gnu").mkdir(parents=True)
        orchestrator, docker, _, _ = wiring(hosts=["x86_64-linux-gnu"], distsrc_base=elsewhere)

        with pytest.raises(ExistingBuildDirectories):
            orchestrator.run()

        assert not (orchestrator.config.worktree / "crossforge-build-abc123def456").exists()
        docker.run_session.assert_not_called()

    def test_default_preflight_reports_through_formatter(self, make_config, mock_depends):
        """Preflight warnings reach the run's report formatter."""
        buffer = io.StringIO()
        report = ReportFormatter(Console(file=buffer, width=200))
        git = MagicMock()
        git.is_clean.return_value = False
        orchestrator = Orchestrator(
            make_config(force_dirty_worktree=True),
            docker=MagicMock(),
            git=git,
            depends=mock_depends,
            report=report,
        )
        orchestrator.preflight.check_worktree()
        assert "WARNING: Worktree is dirty" in buffer.getvalue()

    def test_failed_target_reported(self, wiring):
        """A failing target is reported and the rest still run."""
        orchestrator, docker, _, _ = wiring(hosts=["x86_64-linux-gnu", "aarch64-linux-gnu"])
        docker.run_session.side_effect = [
            SandboxResult(exit_code=1, container_id="bad", kept=True),
            SandboxResult(exit_code=0, container_id="ok", kept=False),
        ]
        report = orchestrator.run()
        assert report.failed_targets == ["x86_64-linux-gnu"]
        assert report.succeeded_targets == ["aarch64-linux-gnu"]


class TestExitCode:
    """Test exit_code_for."""

    def _report(self):
        target = Target(triple="x86_64-linux-gnu", family=PlatformFamily.LINUX)
        return RunReport(outcomes=[TargetOutcome(target=target, state=SessionState.FAILED)])

    def test_failures_tolerated_by_default(self, make_config):
        """Per-target failures do not change the exit code by default."""
        assert exit_code_for(self._report(), make_config()) == EXIT_OK

    def test_failures_fatal_when_configured(self, make_config):
        """fail_on_target_failure maps failures to a distinct exit code."""
        config = make_config(fail_on_target_failure=True)
        assert exit_code_for(self._report(), config) == EXIT_TARGET_FAILED

    def test_clean_run(self, make_config):
        """No failures, exit 0 either way."""
        config = make_config(fail_on_target_failure=True)
        assert exit_code_for(RunReport(), config) == EXIT_OK
