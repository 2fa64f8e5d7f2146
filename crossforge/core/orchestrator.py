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
# THE ORCHESTRATOR
# -----------------------------------------------------------------------------
# Responsibility: Drives one run end to end.
#
#   Preflight -> Targets (+ SDK gate) -> Disk space -> Directories
#     -> Builder image -> per-target sessions -> Summary
#
# Everything up to the first session is batch-fatal: a failure there means the
# preconditions of the whole batch are unsound, so nothing is started.
# -----------------------------------------------------------------------------

from pathlib import Path

from rich.console import Console

from crossforge.core.cancellation import CancellationToken
from crossforge.core.config import BuildConfig
from crossforge.core.directories import DirectoryLifecycleManager, build_layout
from crossforge.core.planner import HostPlanner
from crossforge.core.preflight import PreflightChecker
from crossforge.core.report import ReportFormatter
from crossforge.core.resources import ResourceEstimator
from crossforge.core.runner import BuildSessionRunner
from crossforge.domain.models import DirectoryLayout, RunReport, SessionState
from crossforge.infra.depends import DependsClient
from crossforge.infra.docker_client import DockerProvider
from crossforge.infra.git_client import GitProvider

console = Console()

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_TARGET_FAILED = 2


def exit_code_for(report: RunReport, config: BuildConfig) -> int:
    """Per-target failures only fail the process when configured to."""
    if report.failed_targets and config.fail_on_target_failure:
        return EXIT_TARGET_FAILED
    return EXIT_OK


class Orchestrator:
    """
    Wires the components together for one run.

    Collaborators can be injected; by default they are built from the config.
    """

    def __init__(
        self,
        config: BuildConfig,
        docker: DockerProvider | None = None,
        git: GitProvider | None = None,
        depends: DependsClient | None = None,
        preflight: PreflightChecker | None = None,
        planner: HostPlanner | None = None,
        estimator: ResourceEstimator | None = None,
        report: ReportFormatter | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self.config = config
        self.docker = docker or DockerProvider(auto_wake=config.docker_auto_wake)
        self.git = git or GitProvider(config.worktree)
        self.depends = depends or DependsClient(
            config.worktree,
            jobs=config.jobs,
            verbose=config.verbose,
            sources_path=config.sources_path,
        )
        self.report = report or ReportFormatter()
        self.preflight = preflight or PreflightChecker(
            config, self.git, self.docker, report=self.report
        )
        self.planner = planner or HostPlanner(self.depends, sdk_path=config.sdk_path)
        self.estimator = estimator or ResourceEstimator()
        self.directories = DirectoryLifecycleManager(config, self.depends)
        self.token = token or CancellationToken()
        self.runner: BuildSessionRunner | None = None
        self.layout: DirectoryLayout | None = None

    def reference_timestamp(self) -> int:
        """The forced SOURCE_DATE_EPOCH, or the committer time of HEAD."""
        if self.config.reference_timestamp_is_forced:
            return self.config.source_date_epoch
        return self.git.commit_timestamp()

    def run(self) -> RunReport:
        """
        Execute the whole batch.

        Raises:
            CrossforgeError: Any batch-fatal error, before a session starts.
            BuildInterrupted: On SIGINT during a session.
        """
        config = self.config

        self.preflight.validate()

        version = config.force_version or self.git.head_version()
        source_date_epoch = self.reference_timestamp()
        console.print(
            f"[cyan][ORCHESTRATOR] Version {version}, reference timestamp {source_date_epoch}[/cyan]"
        )
        layout = build_layout(config, version)
        self.layout = layout

        targets = self.planner.resolve_targets(config.hosts)
        self.planner.check_sdks(targets)
        self.report.banner(layout, [t.triple for t in targets])

        self.runner = BuildSessionRunner(
            config,
            layout,
            self.docker,
            self.depends,
            source_date_epoch=source_date_epoch,
            git_common_dir=self._git_common_dir(),
            report=self.report,
            token=self.token,
        )
        sessions = [self.runner.prepare_session(t) for t in targets]

        self.estimator.check_disk_space(targets, layout.version_base)
        for session in sessions:
            session.advance(SessionState.SPACE_CHECKED)

        plan = self.directories.plan_directories(targets, layout)
        for session in sessions:
            session.advance(SessionState.DIRECTORY_PREPARED)

        image = self.docker.ensure_image(
            config.builder_image,
            substitute_urls=config.substitute_urls,
            pull_options=config.additional_pull_options,
        )

        run_report = self.runner.run_all(sessions, plan, image=image)
        self.report.summary(run_report)
        return run_report

    def _git_common_dir(self) -> Path | None:
        common = self.git.common_dir()
        return common if common.exists() else None
