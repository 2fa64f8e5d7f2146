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
# DIRECTORY LIFECYCLE MANAGER
# -----------------------------------------------------------------------------
# Responsibility: Own every directory a run writes to.
#
# - Derives the per-target distsrc / output / profile paths from the layout
# - Refuses the WHOLE batch if any target's distsrc already exists
# - Validates and creates precious directories (caches, SDKs, outputs)
# - Regenerates the precious_dirs file read by the external cleanup tool
# - Claims each distsrc with exclusive-create right before its session
# -----------------------------------------------------------------------------

from pathlib import Path

from rich.console import Console

from crossforge.core.config import BuildConfig
from crossforge.domain.errors import ExistingBuildDirectories, InvalidPreciousDirectory
from crossforge.domain.models import (
    DirectoryLayout,
    DirectoryPlan,
    PreciousDirectory,
    PreciousOrigin,
    Target,
)
from crossforge.infra.depends import DependsClient

console = Console()

# Resolved by depends itself (print-<NAME>)
DEPENDS_PRECIOUS_NAMES = ("SOURCES_PATH", "BASE_CACHE", "SDK_PATH")
PRECIOUS_NAMES = DEPENDS_PRECIOUS_NAMES + ("OUTDIR_BASE", "PROFILES_BASE")

_PRECIOUS_FIELDS = {
    "SOURCES_PATH": "sources_path",
    "BASE_CACHE": "base_cache",
    "SDK_PATH": "sdk_path",
    "OUTDIR_BASE": "outdir_base",
    "PROFILES_BASE": "profiles_base",
}


def build_layout(config: BuildConfig, version: str) -> DirectoryLayout:
    """
    Compute the process-wide roots for a version.

    Defaults:
        version_base  <worktree>/crossforge-build-<version>
        distsrc_base  version_base
        outdir_base   <version_base>/output
        var_base      <worktree>/contrib/crossforge/var
        profiles_base <var_base>/profiles
    """
    worktree = config.worktree
    version_base = config.version_base or worktree / f"crossforge-build-{version}"
    var_base = config.var_base or worktree / "contrib" / "crossforge" / "var"
    return DirectoryLayout(
        version=version,
        worktree=worktree,
        version_base=version_base,
        distsrc_base=config.distsrc_base or version_base,
        outdir_base=config.outdir_base or version_base / "output",
        var_base=var_base,
        profiles_base=config.profiles_base or var_base / "profiles",
    )


class DirectoryLifecycleManager:
    """Plans, validates and creates the directories of one run."""

    def __init__(self, config: BuildConfig, depends: DependsClient) -> None:
        self._config = config
        self._depends = depends

    def configured_precious(self) -> dict[str, Path | None]:
        """Operator-supplied precious paths (None when left to the default)."""
        return {name: getattr(self._config, field) for name, field in _PRECIOUS_FIELDS.items()}

    @staticmethod
    def validate_precious(name: str, path: Path) -> None:
        """
        Make sure a precious directory path is usable.

        A missing path is created. A symlink or a non-directory is rejected.

        Raises:
            InvalidPreciousDirectory: If the path is a symlink or not a directory.
        """
        if path.is_symlink():
            raise InvalidPreciousDirectory(name, path, "cannot be a symbolic link")
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            console.print(f"[cyan][DIRS] Created {name}: {path}[/cyan]")
            return
        if not path.is_dir():
            raise InvalidPreciousDirectory(name, path, "must be a directory")

    @staticmethod
    def find_existing(targets: list[Target], layout: DirectoryLayout) -> list[tuple[str, Path]]:
        """Every target whose distsrc directory already exists."""
        return [
            (t.triple, layout.distsrc_for(t))
            for t in targets
            if layout.distsrc_for(t).exists() or layout.distsrc_for(t).is_symlink()
        ]

    def plan_directories(self, targets: list[Target], layout: DirectoryLayout) -> DirectoryPlan:
        """
        Validate and prepare every directory of the batch.

        Nothing is created when a conflict is found.

        Raises:
            ExistingBuildDirectories: If any target's distsrc already exists.
            InvalidPreciousDirectory: If a configured precious path is unusable.
        """
        conflicts = self.find_existing(targets, layout)
        if conflicts:
            for triple, path in conflicts:
                console.print(f"[red][DIRS] Already exists: {triple} '{path}'[/red]")
            raise ExistingBuildDirectories(conflicts)

        precious = []
        for name, path in self.configured_precious().items():
            if path is not None:
                self.validate_precious(name, path)
                precious.append(
                    PreciousDirectory(name=name, path=path, origin=PreciousOrigin.CONFIGURED)
                )

        layout.distsrc_base.mkdir(parents=True, exist_ok=True)
        layout.outdir_base.mkdir(parents=True, exist_ok=True)
        layout.var_base.mkdir(parents=True, exist_ok=True)
        layout.profiles_base.mkdir(parents=True, exist_ok=True)

        plan = DirectoryPlan(
            layout=layout,
            distsrc={t.triple: layout.distsrc_for(t) for t in targets},
            outdir={t.triple: layout.outdir_for(t) for t in targets},
            profile_dir={t.triple: layout.profile_dir_for(t) for t in targets},
            precious=self._effective_precious(precious, layout),
        )
        self.write_precious_file(plan)
        return plan

    def _effective_precious(
        self, configured: list[PreciousDirectory], layout: DirectoryLayout
    ) -> list[PreciousDirectory]:
        """Configured entries plus the defaults for everything left unset."""
        by_name = {p.name: p for p in configured}
        unset_depends = [n for n in DEPENDS_PRECIOUS_NAMES if n not in by_name]
        variables = {p.name: str(p.path) for p in configured if p.name in DEPENDS_PRECIOUS_NAMES}

        resolved: dict[str, str] = {}
        if unset_depends:
            resolved = self._depends.print_vars(unset_depends, variables=variables or None)

        defaults = {"OUTDIR_BASE": layout.outdir_base, "PROFILES_BASE": layout.profiles_base}
        effective = []
        for name in PRECIOUS_NAMES:
            if name in by_name:
                effective.append(by_name[name])
            elif name in defaults:
                effective.append(
                    PreciousDirectory(name=name, path=defaults[name], origin=PreciousOrigin.DEFAULT)
                )
            else:
                value = resolved.get(name, "")
                effective.append(
                    PreciousDirectory(
                        name=name,
                        path=Path(value) if value else None,
                        origin=PreciousOrigin.DEFAULT,
                    )
                )
        return effective

    @staticmethod
    def write_precious_file(plan: DirectoryPlan) -> Path:
        """
        Record the effective precious directories, one NAME=path per line.

        Fully regenerated on every run.
        """
        lines = [f"{p.name}={p.path if p.path is not None else ''}" for p in plan.precious]
        path = plan.precious_file
        path.write_text("\n".join(lines) + "\n")
        console.print(f"[cyan][DIRS] Precious directories recorded: {path}[/cyan]")
        return path

    @staticmethod
    def claim_distsrc(target: Target, plan: DirectoryPlan) -> Path:
        """
        Create a target's distsrc directory exclusively.

        Raises:
            ExistingBuildDirectories: If another run created it after the batch scan.
        """
        path = plan.distsrc[target.triple]
        try:
            path.mkdir(parents=False, exist_ok=False)
        except FileExistsError:
            raise ExistingBuildDirectories([(target.triple, path)])
        return path
