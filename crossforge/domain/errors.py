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
# ERROR TAXONOMY
# -----------------------------------------------------------------------------
# Every failure the orchestrator can report to an operator. Each error carries
# a short diagnosis (the message), a remediation hint and a context mapping
# that the ReportFormatter renders as a panel.
#
# Batch-fatal: everything raised before the first sandbox session.
# Per-target:  SandboxInvocationFailed (recorded, the loop continues).
# Preemptive:  BuildInterrupted (stops the loop, never recovered).
# -----------------------------------------------------------------------------

from collections.abc import Mapping, Sequence
from pathlib import Path

CLEAN_HINT = (
    "To blow everything away, you may want to remove the per-target build\n"
    "directories (distsrc-*) while keeping the precious directories listed in\n"
    "the precious_dirs file: the depends download cache, the depends built\n"
    "packages cache, the SDK directory, the profiles and the output directory."
)


class CrossforgeError(Exception):
    """Base error: a diagnosis, an optional remediation hint and context."""

    title = "BUILD HALTED"

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = dict(context or {})


class ConfigurationError(CrossforgeError):
    """Raised when the build configuration cannot be validated."""

    title = "INVALID CONFIGURATION"


class MissingTool(CrossforgeError):
    """A required executable is not on the search path."""

    title = "MISSING TOOL"

    def __init__(self, tool: str) -> None:
        super().__init__(
            f"This build requires that '{tool}' is installed and available in your $PATH",
            hint=f"Install '{tool}' or add its directory to $PATH, then rerun.",
            context={"tool": tool},
        )
        self.tool = tool


class ConflictingEnvironment(CrossforgeError):
    """An ambient environment variable would break determinism."""

    title = "CONFLICTING ENVIRONMENT"

    def __init__(self, variable: str, value: str, message: str, hint: str) -> None:
        super().__init__(message, hint=hint, context={variable: value})
        self.variable = variable
        self.value = value


class DirtyWorktree(CrossforgeError):
    title = "DIRTY WORKTREE"

    def __init__(self, worktree: Path) -> None:
        super().__init__(
            "The current git worktree is dirty, which may lead to broken builds.",
            hint=(
                "To make your git worktree clean, you may want to:\n"
                "  1. Commit your changes,\n"
                "  2. Stash your changes, or\n"
                "  3. Set the 'FORCE_DIRTY_WORKTREE' environment variable if you insist\n"
                "     on using a dirty worktree"
            ),
            context={"worktree": str(worktree)},
        )


class BackendUnreachable(CrossforgeError):
    """The Docker Engine did not answer a ping."""

    title = "SANDBOX BACKEND UNREACHABLE"

    def __init__(self, detail: str) -> None:
        super().__init__(
            "Failed to connect to the Docker Engine, please ensure that one is "
            "running and reachable.",
            hint=(
                "Start the Docker daemon (e.g. 'systemctl start docker') or point\n"
                "DOCKER_HOST at a reachable engine. If this hangs, you may want to\n"
                "try turning the daemon off and on again."
            ),
            context={"detail": detail},
        )


class ExistingBuildDirectories(CrossforgeError):
    """Build directories for this version already exist for some targets."""

    title = "EXISTING BUILD DIRECTORIES"

    def __init__(self, conflicts: Sequence[tuple[str, Path]]) -> None:
        super().__init__(
            "Build directories for this version already exist for the following "
            "platform triples you're attempting to build, probably because of "
            "previous builds. Please remove, or otherwise deal with them prior to "
            "starting another build.",
            hint=CLEAN_HINT,
            context={triple: str(path) for triple, path in conflicts},
        )
        self.conflicts = list(conflicts)


class InvalidPreciousDirectory(CrossforgeError):
    title = "INVALID PRECIOUS DIRECTORY"

    def __init__(self, name: str, path: Path, reason: str) -> None:
        super().__init__(
            f"{name} {reason}",
            hint=f"Point {name} at a real directory, or unset it to use the default.",
            context={name: str(path)},
        )
        self.name = name
        self.path = path


class InsufficientDiskSpace(CrossforgeError):
    title = "INSUFFICIENT DISK SPACE"

    def __init__(self, required_kib: int, available_kib: int, location: Path) -> None:
        required_gib = required_kib // 1048576
        available_gib = available_kib // 1048576
        super().__init__(
            f"Building the selected targets requires {required_gib} GiB, however, "
            f"only {available_gib} GiB is available.",
            hint="Please free up some disk space, or build fewer targets at once.",
            context={
                "location": str(location),
                "required": f"{required_kib} KiB",
                "available": f"{available_kib} KiB",
            },
        )
        self.required_kib = required_kib
        self.available_kib = available_kib


class UnsupportedPlatform(CrossforgeError):
    title = "UNSUPPORTED PLATFORM"

    def __init__(self, triple: str) -> None:
        super().__init__(
            f"Cannot determine the platform family of '{triple}'.",
            hint="Supported triples contain one of: 'linux', 'mingw', 'darwin'.",
            context={"triple": triple},
        )
        self.triple = triple


class MissingPlatformSDK(CrossforgeError):
    title = "MISSING PLATFORM SDK"

    def __init__(self, triple: str, path: Path) -> None:
        super().__init__(
            f"macOS SDK does not exist at '{path}'.",
            hint=(
                "Place the extracted, untarred SDK there to perform darwin builds, "
                "or define the SDK_PATH environment variable."
            ),
            context={"triple": triple, "sdk": str(path)},
        )
        self.triple = triple
        self.path = path


class SandboxInvocationFailed(CrossforgeError):
    """A single target's sandbox session could not run or exited non-zero."""

    title = "SANDBOX SESSION FAILED"

    def __init__(self, triple: str, detail: str, exit_code: int | None = None) -> None:
        super().__init__(
            f"Build for {triple} failed: {detail}",
            context={"triple": triple, "exit_code": "" if exit_code is None else str(exit_code)},
        )
        self.triple = triple
        self.exit_code = exit_code


class BuildInterrupted(CrossforgeError):
    """The operator interrupted the run while a target was building."""

    title = "INTERRUPTED"

    def __init__(self, triple: str, distsrc: Path) -> None:
        super().__init__(
            f"INT received while building {triple}, you may want to clean up the "
            f"relevant work directories (e.g. distsrc-*) before rebuilding",
            hint=CLEAN_HINT,
            context={"triple": triple, "distsrc": str(distsrc)},
        )
        self.triple = triple
        self.distsrc = distsrc


class InvalidStateTransition(Exception):
    """Raised when a BuildSession is moved out of order. A programming error."""

    pass
