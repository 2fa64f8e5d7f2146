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
# GIT INFRASTRUCTURE - Worktree Queries
# -----------------------------------------------------------------------------
# Responsibility: Read-only questions about the source worktree: is it clean,
# which version does HEAD describe, when was HEAD committed, where does the
# shared git metadata live.
#
# Uses subprocess for lean, direct git command execution. Nothing here ever
# writes to the repository.
# -----------------------------------------------------------------------------

import subprocess
from pathlib import Path

from rich.console import Console

from crossforge.domain.errors import CrossforgeError

console = Console()

GIT_TIMEOUT_SECONDS = 60


class GitError(CrossforgeError):
    """Raised when a Git operation fails."""

    title = "GIT FAILURE"


class GitProvider:
    """
    Lean Git queries wrapper using subprocess.

    Every method is a query against the worktree; the orchestrator never
    commits, fetches or checks out.
    """

    def __init__(self, worktree: Path) -> None:
        """
        Initialize Git provider with the worktree path.

        Args:
            worktree: Path to the checked out source tree.
        """
        self._worktree = Path(worktree)

        if not self._worktree.exists():
            raise GitError(f"Worktree does not exist: {worktree}")

    @property
    def worktree(self) -> Path:
        return self._worktree

    def _run(self, cmd: list[str], check: bool = True) -> subprocess.CompletedProcess:
        """
        Run a git command in the worktree.

        Args:
            cmd: Command parts (e.g., ["git", "status"])
            check: Raise on non-zero exit

        Returns:
            CompletedProcess result

        Raises:
            GitError: If command fails and check=True
        """
        try:
            result = subprocess.run(
                cmd,
                cwd=self._worktree,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"Git operation timed out ({GIT_TIMEOUT_SECONDS}s limit)")
        except (OSError, subprocess.SubprocessError) as e:
            raise GitError(f"Git subprocess error: {e}")

        if check and result.returncode != 0:
            error_msg = (result.stderr or result.stdout or "Unknown error").strip()
            console.print(f"[red][GIT] {' '.join(cmd[1:])} failed[/red]")
            raise GitError(
                f"Git command failed: {' '.join(cmd[1:])}",
                hint="Make sure the worktree is a git checkout with at least one commit.",
                context={"stderr": error_msg},
            )
        return result

    def is_clean(self) -> bool:
        """
        True when there are no uncommitted changes and no untracked files.

        Ignored files do not count.
        """
        diff = self._run(["git", "diff-index", "--quiet", "HEAD", "--"], check=False)
        if diff.returncode != 0:
            return False
        untracked = self._run(["git", "ls-files", "--others", "--exclude-standard"])
        return not untracked.stdout.strip()

    def head_version(self) -> str:
        """
        Version string of HEAD.

        An exact tag (leading 'v' stripped) when HEAD is tagged, otherwise the
        12-character abbreviated commit hash.
        """
        described = self._run(["git", "describe", "--exact-match", "HEAD"], check=False)
        tag = described.stdout.strip()
        if described.returncode == 0 and tag:
            return tag[1:] if tag.startswith("v") else tag
        return self._run(["git", "rev-parse", "--short=12", "HEAD"]).stdout.strip()

    def commit_timestamp(self) -> int:
        """Committer time of HEAD as a Unix timestamp."""
        result = self._run(["git", "-c", "log.showSignature=false", "log", "--format=%at", "-1"])
        try:
            return int(result.stdout.strip())
        except ValueError:
            raise GitError(f"Unexpected git log output: {result.stdout.strip()!r}")

    def common_dir(self) -> Path:
        """Absolute path of the git common directory (shared across worktrees)."""
        raw = self._run(["git", "rev-parse", "--git-common-dir"]).stdout.strip()
        path = Path(raw)
        if not path.is_absolute():
            path = self._worktree / path
        return path.resolve()
