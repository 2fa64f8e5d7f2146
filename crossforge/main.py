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
# CROSSFORGE - COMMAND LINE INTERFACE
# -----------------------------------------------------------------------------
# Responsibility: Parse flags, load the configuration and run the
# orchestrator. Maps outcomes to exit codes:
#
#   0  orchestration succeeded (per-target failures are reported)
#   1  batch-fatal error (preflight, planning, disk space, directories)
#   2  a target failed and --fail-on-target-failure is set
#   SIGINT during a session: guidance, then a normal KeyboardInterrupt
# -----------------------------------------------------------------------------

import argparse
import sys
from pathlib import Path

from rich.console import Console

from crossforge.core.config import load_config
from crossforge.core.orchestrator import EXIT_FATAL, Orchestrator, exit_code_for
from crossforge.core.report import ReportFormatter
from crossforge.domain.errors import BuildInterrupted, CrossforgeError

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crossforge",
        description="Deterministic, containerized multi-target builds.",
    )
    parser.add_argument(
        "--worktree", type=Path, default=Path.cwd(), help="Source checkout (default: cwd)"
    )
    parser.add_argument("--config", type=Path, help="YAML config (default: crossforge.yaml)")
    parser.add_argument("--hosts", help="Space-separated platform triples; replaces HOSTS")
    parser.add_argument("--jobs", type=int, help="Parallel jobs inside each session")
    parser.add_argument(
        "--force-dirty-worktree",
        action="store_true",
        default=None,
        help="Build even if the worktree has uncommitted changes",
    )
    parser.add_argument(
        "--fail-on-target-failure",
        action="store_true",
        default=None,
        help="Exit non-zero when any target fails",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    report = ReportFormatter(console)

    overrides = {
        "hosts": args.hosts,
        "jobs": args.jobs,
        "force_dirty_worktree": args.force_dirty_worktree,
        "fail_on_target_failure": args.fail_on_target_failure,
    }

    try:
        config = load_config(args.worktree, config_path=args.config, overrides=overrides)
        orchestrator = Orchestrator(config, report=report)
        run_report = orchestrator.run()
    except BuildInterrupted as e:
        report.interrupt_guidance(e)
        raise KeyboardInterrupt from None
    except CrossforgeError as e:
        report.fatal(e)
        return EXIT_FATAL

    return exit_code_for(run_report, config)


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
