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
# BUILD SESSION RUNNER
# -----------------------------------------------------------------------------
# Responsibility: Executes one sandboxed build per target, strictly in
# sequence, and records evidence for every session, pass or fail.
#
# Per target:
# - INFO block, then dependency download (network, before the sandbox)
# - exclusive claim of the target's distsrc directory
# - one container: no network, no host environment, fixed mount points
# - outcome recorded; the loop moves on whatever the result
#
# SIGINT is re-armed per target and observed at checkpoints. An interrupt
# stops the container, prints target-specific guidance and ends the loop.
# -----------------------------------------------------------------------------

import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console

from crossforge.core.cancellation import CancellationToken, interrupt_guard
from crossforge.core.config import BuildConfig
from crossforge.core.directories import DirectoryLifecycleManager
from crossforge.core.report import ReportFormatter
from crossforge.domain.errors import (
    BuildInterrupted,
    CrossforgeError,
    SandboxInvocationFailed,
)
from crossforge.domain.models import (
    DISTSRC_MOUNT,
    DIST_ARCHIVE_MOUNT,
    OUTDIR_MOUNT,
    SOURCE_MOUNT,
    BuildSession,
    DirectoryLayout,
    DirectoryPlan,
    Mount,
    RunReport,
    SessionState,
    Target,
    TargetOutcome,
)
from crossforge.infra.depends import DependsClient, DependsError
from crossforge.infra.docker_client import DockerProvider

console = Console()

SESSION_RECORD = "session.json"
BUILD_LOG = "build.log"


@dataclass
class FlightLogEntry:
    """A single entry in the session recorder."""

    timestamp: str
    event: str
    details: str | None = None


class SessionRecorder:
    """
    Evidence for one session, kept in the target's profile directory.

    - session.json: environment, mounts, state history, verdict and the
      image the session ran in
    - build.log: container output
    """

    def __init__(self, folder: Path) -> None:
        self.folder = folder
        self.folder.mkdir(parents=True, exist_ok=True)
        self._log: list[FlightLogEntry] = []

    @property
    def log_path(self) -> Path:
        return self.folder / BUILD_LOG

    def log(self, event: str, details: str | None = None) -> None:
        self._log.append(
            FlightLogEntry(
                timestamp=datetime.now(timezone.utc).isoformat(), event=event, details=details
            )
        )

    def finalize(self, session: BuildSession, image: str) -> Path:
        """Write session.json."""
        record = session.to_record()
        record["image"] = image
        record["events"] = [
            {"timestamp": e.timestamp, "event": e.event, "details": e.details} for e in self._log
        ]
        path = self.folder / SESSION_RECORD
        with open(path, "w") as f:
            json.dump(record, f, indent=2)
        return path


def container_name(version: str, triple: str) -> str:
    """Docker-safe, deterministic container name for a session."""
    return re.sub(r"[^a-zA-Z0-9_.-]", "-", f"crossforge-{version}-{triple}")


class BuildSessionRunner:
    """
    The sequential build loop.

    Never runs two sessions at once: the depends cache and the precious
    directories are shared without locks.
    """

    def __init__(
        self,
        config: BuildConfig,
        layout: DirectoryLayout,
        docker: DockerProvider,
        depends: DependsClient,
        source_date_epoch: int,
        git_common_dir: Path | None = None,
        report: ReportFormatter | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._config = config
        self._layout = layout
        self._docker = docker
        self._depends = depends
        self._image = config.builder_image
        self._source_date_epoch = source_date_epoch
        self._git_common_dir = git_common_dir
        self._report = report or ReportFormatter()
        self._token = token or CancellationToken()
        self.dist_name = config.dist_name or f"{layout.worktree.name}-{layout.version}"
        self.last_report: RunReport | None = None

    def build_environment(self, target: Target) -> dict[str, str]:
        """The complete environment of the container; nothing else leaks in."""
        config = self._config
        env = {
            "HOST": target.triple,
            "DISTNAME": self.dist_name,
            "JOBS": str(config.jobs),
            "SOURCE_DATE_EPOCH": str(self._source_date_epoch),
        }
        if config.verbose:
            env["V"] = "1"
        if config.sources_path:
            env["SOURCES_PATH"] = str(config.sources_path)
        if config.base_cache:
            env["BASE_CACHE"] = str(config.base_cache)
        if config.sdk_path:
            env["SDK_PATH"] = str(config.sdk_path)
        env["DISTSRC"] = str(self._layout.container_distsrc_for(target))
        env["OUTDIR"] = str(self._layout.container_outdir_for(target))
        env["DIST_ARCHIVE_BASE"] = str(DIST_ARCHIVE_MOUNT)
        return env

    def build_mounts(self) -> list[Mount]:
        """Bind mounts shared by every session of the run."""
        layout = self._layout
        config = self._config
        mounts = [
            Mount(source=layout.worktree, target=str(SOURCE_MOUNT)),
            Mount(source=layout.distsrc_base, target=str(DISTSRC_MOUNT)),
            Mount(source=layout.outdir_base, target=str(OUTDIR_MOUNT)),
        ]
        if self._git_common_dir is not None:
            mounts.append(
                Mount(
                    source=self._git_common_dir,
                    target=str(self._git_common_dir),
                    read_only=True,
                )
            )
        for path in (config.sources_path, config.base_cache, config.sdk_path):
            if path is not None:
                mounts.append(Mount(source=path, target=str(path)))
        return mounts

    def prepare_session(self, target: Target) -> BuildSession:
        """A PLANNED session for one target."""
        layout = self._layout
        return BuildSession(
            target=target,
            distsrc=layout.distsrc_for(target),
            outdir=layout.outdir_for(target),
            profile_dir=layout.profile_dir_for(target),
            source_date_epoch=self._source_date_epoch,
            jobs=self._config.jobs,
            environment=self.build_environment(target),
            mounts=self.build_mounts(),
        )

    def run_all(
        self, sessions: list[BuildSession], plan: DirectoryPlan, image: str | None = None
    ) -> RunReport:
        """
        Run every session in order, in the given image (default: the configured
        builder image).

        A failed session is recorded and the loop continues.

        Raises:
            BuildInterrupted: On SIGINT; the report so far is in last_report.
        """
        if image:
            self._image = image
        report = RunReport()
        self.last_report = report

        for session in sessions:
            with interrupt_guard(self._token):
                try:
                    outcome = self.run_one(session, plan)
                except BuildInterrupted:
                    report.interrupted = True
                    report.outcomes.append(self._outcome(session, 0.0))
                    raise
            report.outcomes.append(outcome)

        return report

    def _checkpoint(self, session: BuildSession) -> None:
        if self._token.is_cancelled():
            raise BuildInterrupted(session.target.triple, session.distsrc)

    def run_one(self, session: BuildSession, plan: DirectoryPlan) -> TargetOutcome:
        """
        Run one DIRECTORY_PREPARED session to a terminal state.

        Raises:
            BuildInterrupted: If the token was cancelled at any checkpoint.
        """
        target = session.target
        recorder = SessionRecorder(session.profile_dir)
        start = time.monotonic()

        self._report.session_info(session, self._layout, self._config)
        recorder.log("SESSION_STARTED", target.triple)

        try:
            self._checkpoint(session)
            try:
                self._depends.download(target)
            except DependsError as e:
                raise SandboxInvocationFailed(target.triple, e.message)
            recorder.log("DEPENDS_DOWNLOADED")
            self._checkpoint(session)

            DirectoryLifecycleManager.claim_distsrc(target, plan)
            recorder.log("DISTSRC_CLAIMED", str(session.distsrc))

            session.advance(SessionState.SANDBOX_INVOKED)
            result = self._docker.run_session(
                session,
                image=self._image,
                command=["bash", "-c", f"cd {SOURCE_MOUNT} && bash {self._config.build_script}"],
                name=container_name(self._layout.version, target.triple),
                run_options=self._config.additional_run_options,
                cancelled=self._token.is_cancelled,
                log_path=recorder.log_path,
            )
            session.container_id = result.container_id if result.kept else None
            if result.cancelled:
                raise BuildInterrupted(target.triple, session.distsrc)

            session.exit_code = result.exit_code
            if result.exit_code != 0:
                raise SandboxInvocationFailed(
                    target.triple, f"build exited with status {result.exit_code}", result.exit_code
                )

        except BuildInterrupted:
            self._finish(session, recorder, SessionState.INTERRUPTED, "INTERRUPTED")
            raise

        except CrossforgeError as e:
            if self._token.is_cancelled():
                self._finish(session, recorder, SessionState.INTERRUPTED, "INTERRUPTED")
                raise BuildInterrupted(target.triple, session.distsrc)
            session.error = e.message
            console.print(f"[red][RUNNER] {target.triple} FAILED: {e.message}[/red]")
            self._finish(session, recorder, SessionState.FAILED, "BUILD_FAILED", e.message)
            return self._outcome(session, time.monotonic() - start)

        console.print(f"[green][RUNNER] {target.triple} succeeded[/green]")
        self._finish(session, recorder, SessionState.SUCCEEDED, "BUILD_COMPLETE")
        return self._outcome(session, time.monotonic() - start)

    def _finish(
        self,
        session: BuildSession,
        recorder: SessionRecorder,
        state: SessionState,
        event: str,
        details: str | None = None,
    ) -> None:
        session.advance(state)
        recorder.log(event, details)
        recorder.finalize(session, self._image)

    @staticmethod
    def _outcome(session: BuildSession, duration: float) -> TargetOutcome:
        return TargetOutcome(
            target=session.target,
            state=session.state,
            exit_code=session.exit_code,
            error=session.error,
            container_id=session.container_id,
            duration_seconds=duration,
        )
