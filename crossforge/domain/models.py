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
# DOMAIN MODELS - TARGETS, LAYOUT AND SESSIONS
# -----------------------------------------------------------------------------
# Immutable descriptions (Target, Mount, DirectoryLayout, PreciousDirectory)
# are Pydantic models; the mutable per-run records (BuildSession,
# TargetOutcome, RunReport) are dataclasses owned by the orchestration loop.
#
# Determinism: every per-target path is a pure function of the layout roots,
# the version and the platform triple.
# -----------------------------------------------------------------------------

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field

from crossforge.domain.errors import InvalidStateTransition

# Fixed container-side locations. Independent of where the operator checked
# out the source so that build outputs never embed host paths.
SOURCE_MOUNT = PurePosixPath("/source")
DISTSRC_MOUNT = PurePosixPath("/distsrc-base")
OUTDIR_MOUNT = PurePosixPath("/outdir-base")
DIST_ARCHIVE_MOUNT = OUTDIR_MOUNT / "dist-archive"


class PlatformFamily(str, Enum):
    """Platform family of a target triple. Values match the depends naming."""

    LINUX = "linux"
    WINDOWS = "win"
    MACOS = "osx"


# Disk space needed per target, in KiB.
REQUIRED_KIB = {
    PlatformFamily.MACOS: 440000,
    PlatformFamily.WINDOWS: 7600000,
    PlatformFamily.LINUX: 6400000,
}


class Target(BaseModel):
    """A resolved platform triple. Immutable once resolved."""

    model_config = ConfigDict(frozen=True)

    triple: str = Field(..., min_length=1, description="Platform triple, e.g. x86_64-linux-gnu")
    family: PlatformFamily

    @property
    def required_kib(self) -> int:
        return REQUIRED_KIB[self.family]

    def __str__(self) -> str:
        return self.triple


class Mount(BaseModel):
    """A bind mount from a host path into the sandbox."""

    model_config = ConfigDict(frozen=True)

    source: Path
    target: str = Field(..., description="Absolute path inside the container")
    read_only: bool = False

    def as_volume(self) -> dict[str, str]:
        """Docker SDK volume spec for this mount."""
        return {"bind": self.target, "mode": "ro" if self.read_only else "rw"}


class PreciousOrigin(str, Enum):
    CONFIGURED = "configured"
    DEFAULT = "default"


class PreciousDirectory(BaseModel):
    """A directory whose contents must survive cleanup between runs."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: Path | None
    origin: PreciousOrigin


def _suffixed(name: str, suffix: str | None) -> str:
    return f"{name}-{suffix}" if suffix else name


class DirectoryLayout(BaseModel):
    """
    Process-wide roots keyed off the release version.

    Created once at startup and never mutated; every per-target path is derived
    from these roots.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(..., min_length=1)
    worktree: Path
    version_base: Path
    distsrc_base: Path
    outdir_base: Path
    var_base: Path
    profiles_base: Path

    def distsrc_name(self, target: Target) -> str:
        return f"distsrc-{self.version}-{target.triple}"

    def distsrc_for(self, target: Target) -> Path:
        return self.distsrc_base / self.distsrc_name(target)

    def outdir_for(self, target: Target, suffix: str | None = None) -> Path:
        return self.outdir_base / _suffixed(target.triple, suffix)

    def profile_dir_for(self, target: Target, suffix: str | None = None) -> Path:
        return self.profiles_base / _suffixed(target.triple, suffix)

    def container_distsrc_for(self, target: Target) -> PurePosixPath:
        return DISTSRC_MOUNT / self.distsrc_name(target)

    def container_outdir_for(self, target: Target, suffix: str | None = None) -> PurePosixPath:
        return OUTDIR_MOUNT / _suffixed(target.triple, suffix)

    @property
    def precious_file(self) -> Path:
        return self.var_base / "precious_dirs"


class DirectoryPlan(BaseModel):
    """Validated per-target directories for one run."""

    model_config = ConfigDict(frozen=True)

    layout: DirectoryLayout
    distsrc: dict[str, Path]
    outdir: dict[str, Path]
    profile_dir: dict[str, Path]
    precious: list[PreciousDirectory] = Field(default_factory=list)

    @property
    def precious_file(self) -> Path:
        return self.layout.precious_file


class SessionState(str, Enum):
    """Lifecycle of one BuildSession. Terminal states are final."""

    PLANNED = "planned"
    SPACE_CHECKED = "space_checked"
    DIRECTORY_PREPARED = "directory_prepared"
    SANDBOX_INVOKED = "sandbox_invoked"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {SessionState.SUCCEEDED, SessionState.FAILED, SessionState.INTERRUPTED}
)

_TRANSITIONS = {
    SessionState.PLANNED: {SessionState.SPACE_CHECKED},
    SessionState.SPACE_CHECKED: {SessionState.DIRECTORY_PREPARED},
    # Download and distsrc claim can end a session before the sandbox starts
    SessionState.DIRECTORY_PREPARED: {
        SessionState.SANDBOX_INVOKED,
        SessionState.FAILED,
        SessionState.INTERRUPTED,
    },
    SessionState.SANDBOX_INVOKED: set(TERMINAL_STATES),
}


@dataclass
class StateEntry:
    state: SessionState
    timestamp: str


@dataclass
class BuildSession:
    """
    One attempt to build one Target.

    Owned by a single iteration of the orchestration loop. The state record is
    the source of truth for progress; directory existence is only used to
    detect the initial state.
    """

    target: Target
    distsrc: Path
    outdir: Path
    profile_dir: Path
    source_date_epoch: int
    jobs: int
    environment: dict[str, str] = field(default_factory=dict)
    mounts: list[Mount] = field(default_factory=list)
    state: SessionState = SessionState.PLANNED
    history: list[StateEntry] = field(default_factory=list)
    exit_code: int | None = None
    error: str | None = None
    container_id: str | None = None

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(StateEntry(self.state, _now()))

    def advance(self, state: SessionState) -> None:
        """Move to the next state. Skipping or leaving a terminal state is refused."""
        allowed = _TRANSITIONS.get(self.state, set())
        if state not in allowed:
            raise InvalidStateTransition(
                f"{self.target.triple}: cannot move from {self.state.value} to {state.value}"
            )
        self.state = state
        self.history.append(StateEntry(state, _now()))

    def to_record(self) -> dict:
        """Serializable session record for the profile directory."""
        return {
            "target": self.target.triple,
            "family": self.target.family.value,
            "distsrc": str(self.distsrc),
            "outdir": str(self.outdir),
            "source_date_epoch": self.source_date_epoch,
            "jobs": self.jobs,
            "environment": dict(self.environment),
            "mounts": [
                {"source": str(m.source), "target": str(m.target), "read_only": m.read_only}
                for m in self.mounts
            ],
            "state": self.state.value,
            "history": [{"state": e.state.value, "timestamp": e.timestamp} for e in self.history],
            "exit_code": self.exit_code,
            "error": self.error,
            "container_id": self.container_id,
        }


@dataclass
class TargetOutcome:
    """Result of one target's session."""

    target: Target
    state: SessionState
    exit_code: int | None = None
    error: str | None = None
    container_id: str | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state == SessionState.SUCCEEDED


@dataclass
class RunReport:
    """Ordered outcomes of one orchestration run."""

    outcomes: list[TargetOutcome] = field(default_factory=list)
    interrupted: bool = False

    @property
    def failed_targets(self) -> list[str]:
        return [o.target.triple for o in self.outcomes if o.state == SessionState.FAILED]

    @property
    def succeeded_targets(self) -> list[str]:
        return [o.target.triple for o in self.outcomes if o.succeeded]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
