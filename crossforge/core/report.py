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
# REPORT FORMATTER
# -----------------------------------------------------------------------------
# Responsibility: Everything the operator reads. Fatal errors become a red
# panel (diagnosis, context, remediation hint; never a stack trace), each
# session gets an INFO block, and the run ends with a summary table.
# -----------------------------------------------------------------------------

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from crossforge.core.config import BuildConfig
from crossforge.domain.errors import BuildInterrupted, CrossforgeError
from crossforge.domain.models import (
    SOURCE_MOUNT,
    BuildSession,
    DirectoryLayout,
    RunReport,
    SessionState,
)

_STATE_STYLES = {
    SessionState.SUCCEEDED: "green",
    SessionState.FAILED: "red",
    SessionState.INTERRUPTED: "yellow",
}


class ReportFormatter:
    """Operator-facing output for one run."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def fatal(self, error: CrossforgeError) -> None:
        """Render a batch-fatal error."""
        lines = [f"[bold red]{escape(error.message)}[/bold red]"]
        if error.context:
            lines.append("")
            lines.extend(
                f"  {escape(str(key))}: {escape(str(value))}"
                for key, value in error.context.items()
                if value
            )
        if error.hint:
            lines.append("")
            lines.append(f"[yellow]Hint:[/yellow] {escape(error.hint)}")
        self.console.print(
            Panel("\n".join(lines), title=error.title, border_style="red")
        )

    def interrupt_guidance(self, error: BuildInterrupted) -> None:
        """Cleanup guidance for the target that was building when INT arrived."""
        self.console.print(
            Panel(
                f"[bold yellow]** {error.message}[/bold yellow]\n\n"
                f"  in-progress build directory: {error.distsrc}\n\n"
                f"[yellow]Hint:[/yellow] {error.hint}",
                title=error.title,
                border_style="yellow",
            )
        )

    def banner(self, layout: DirectoryLayout, triples: list[str]) -> None:
        self.console.rule(f"[bold cyan]crossforge {layout.version}[/bold cyan]")
        self.console.print(f"[cyan]Targets:[/cyan] {' '.join(triples)}")
        self.console.print(f"[cyan]Version base:[/cyan] {layout.version_base}")

    def session_info(
        self, session: BuildSession, layout: DirectoryLayout, config: BuildConfig
    ) -> None:
        """The INFO block printed before each sandbox session."""
        target = session.target
        lines = [
            f"INFO: Building {layout.version} for platform triple {target.triple}:",
            f"      ...using reference timestamp: {session.source_date_epoch}",
            f"      ...running the build with {session.jobs} jobs",
            f"      ...from worktree directory: '{layout.worktree}'",
            f"          ...bind-mounted in container to: '{SOURCE_MOUNT}'",
            f"      ...in build directory: '{session.distsrc}'",
            f"          ...bind-mounted in container to: '{layout.container_distsrc_for(target)}'",
            f"      ...outdir: '{session.outdir}'",
            f"          ...bind-mounted in container to: '{layout.container_outdir_for(target)}'",
            f"      ...builder image: {config.builder_image}",
        ]
        if config.additional_run_options or config.additional_pull_options:
            lines.append("      ADDITIONAL OPTIONS")
            lines.append(f"          ADDITIONAL_RUN_OPTIONS: {config.additional_run_options}")
            lines.append(f"          ADDITIONAL_PULL_OPTIONS: {config.additional_pull_options}")
        self.console.print("\n".join(lines), markup=False, highlight=False)

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]WARNING: {escape(message)}[/yellow]")

    def summary(self, report: RunReport) -> None:
        """End-of-run table, with the consolidated failed-target list."""
        table = Table(title="Build summary")
        table.add_column("Target")
        table.add_column("State")
        table.add_column("Exit")
        table.add_column("Duration")
        table.add_column("Detail")

        for outcome in report.outcomes:
            style = _STATE_STYLES.get(outcome.state, "white")
            table.add_row(
                outcome.target.triple,
                f"[{style}]{outcome.state.value}[/{style}]",
                "" if outcome.exit_code is None else str(outcome.exit_code),
                f"{outcome.duration_seconds:.1f}s",
                outcome.error or (
                    f"container {outcome.container_id} kept" if outcome.container_id else ""
                ),
            )
        self.console.print(table)

        if report.failed_targets:
            self.console.print(
                f"[red]Failed targets: {' '.join(report.failed_targets)}[/red]"
            )
        elif not report.interrupted:
            self.console.print("[bold green]All targets built.[/bold green]")
