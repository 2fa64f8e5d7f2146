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
# DEPENDS INFRASTRUCTURE - Dependency Fetch Subsystem
# -----------------------------------------------------------------------------
# Responsibility: Thin wrapper around the worktree's depends/ Makefile.
#
# Two operations only:
# - download(target): fetch-if-missing of every source archive a platform
#   family needs, so the sandbox can run without network access
# - print_vars(names): query effective depends settings (print-<NAME>)
#
# Downloads are idempotent, so calling download once per target needs no lock.
# -----------------------------------------------------------------------------

import subprocess
from pathlib import Path

from rich.console import Console

from crossforge.domain.errors import CrossforgeError
from crossforge.domain.models import Target

console = Console()

QUERY_TIMEOUT_SECONDS = 120


class DependsError(CrossforgeError):
    """Raised when a depends make invocation fails."""

    title = "DEPENDS FAILURE"


class DependsClient:
    """Runs make against <worktree>/depends."""

    def __init__(
        self,
        worktree: Path,
        jobs: int = 1,
        verbose: bool = False,
        sources_path: Path | None = None,
    ) -> None:
        self._depends_dir = Path(worktree) / "depends"
        self._jobs = jobs
        self._verbose = verbose
        self._sources_path = sources_path

    def print_vars(
        self,
        names: list[str],
        host: str | None = None,
        variables: dict[str, str] | None = None,
    ) -> dict[str, str]:
        """
        Resolve depends variables through its print-<NAME> targets.

        Args:
            names: Variable names, e.g. ["SOURCES_PATH", "BASE_CACHE"].
            host: Optional platform triple passed as HOST=.
            variables: Extra make variables (operator-supplied paths).

        Returns:
            Mapping of name to value (empty string when depends leaves it unset).

        Raises:
            DependsError: If make fails.
        """
        cmd = ["make", "-C", str(self._depends_dir), "--no-print-directory"]
        if host:
            cmd.append(f"HOST={host}")
        cmd.extend(f"{key}={value}" for key, value in (variables or {}).items())
        cmd.append("--")
        cmd.extend(f"print-{name}" for name in names)

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=QUERY_TIMEOUT_SECONDS
            )
        except subprocess.TimeoutExpired:
            raise DependsError(f"depends query timed out ({QUERY_TIMEOUT_SECONDS}s limit)")
        except OSError as e:
            raise DependsError(f"Could not run make: {e}")

        if result.returncode != 0:
            raise DependsError(
                f"depends query failed: {' '.join(names)}",
                context={"stderr": result.stderr.strip()},
            )

        values = {name: "" for name in names}
        for line in result.stdout.splitlines():
            key, sep, value = line.partition("=")
            if sep and key.strip() in values:
                values[key.strip()] = value.strip()
        return values

    def print_var(
        self, name: str, host: str | None = None, variables: dict[str, str] | None = None
    ) -> str:
        return self.print_vars([name], host=host, variables=variables)[name]

    def download(self, target: Target) -> None:
        """
        Download the depends sources for the target's platform family.

        Output goes straight to the terminal. Blocks on network I/O.

        Raises:
            DependsError: If the download fails or is interrupted.
        """
        cmd = [
            "make",
            "-C",
            str(self._depends_dir),
            f"-j{self._jobs}",
            f"download-{target.family.value}",
        ]
        if self._verbose:
            cmd.append("V=1")
        if self._sources_path:
            cmd.append(f"SOURCES_PATH={self._sources_path}")

        console.print(f"[cyan][DEPENDS] Downloading sources for {target.triple}...[/cyan]")
        try:
            result = subprocess.run(cmd)
        except OSError as e:
            raise DependsError(f"Could not run make: {e}")

        if result.returncode != 0:
            raise DependsError(
                f"depends download failed for {target.triple} (exit {result.returncode})"
            )
        console.print(f"[green][DEPENDS] Sources ready for {target.triple}[/green]")
