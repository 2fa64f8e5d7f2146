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
# HOST PLANNER
# -----------------------------------------------------------------------------
# Responsibility: Resolve the requested platform triples, classify each into
# a platform family and gate darwin targets on an available SDK.
#
# Classification contract (substring match, first hit wins):
#   *darwin* -> osx,  *mingw* -> win,  *linux* -> linux,  anything else fails
# -----------------------------------------------------------------------------

from collections.abc import Iterable
from pathlib import Path

from rich.console import Console

from crossforge.domain.errors import MissingPlatformSDK, UnsupportedPlatform
from crossforge.domain.models import PlatformFamily, Target
from crossforge.infra.depends import DependsClient

console = Console()

DEFAULT_HOSTS = (
    "x86_64-linux-gnu",
    "arm-linux-gnueabihf",
    "aarch64-linux-gnu",
    "riscv64-linux-gnu",
    "powerpc64-linux-gnu",
    "powerpc64le-linux-gnu",
    "x86_64-w64-mingw32",
    "x86_64-apple-darwin",
    "arm64-apple-darwin",
)

_FAMILY_PATTERNS = (
    ("darwin", PlatformFamily.MACOS),
    ("mingw", PlatformFamily.WINDOWS),
    ("linux", PlatformFamily.LINUX),
)


def platform_family(triple: str) -> PlatformFamily:
    """
    Classify a platform triple.

    Raises:
        UnsupportedPlatform: If no known family matches.
    """
    for pattern, family in _FAMILY_PATTERNS:
        if pattern in triple:
            return family
    raise UnsupportedPlatform(triple)


class HostPlanner:
    """Turns the configured host list into an ordered list of Targets."""

    def __init__(
        self, depends: DependsClient, sdk_path: Path | None = None, sdk_exists=Path.exists
    ) -> None:
        self._depends = depends
        self._sdk_path = sdk_path
        self._sdk_exists = sdk_exists

    def resolve_targets(self, raw: str | Iterable[str] | None = None) -> list[Target]:
        """
        Resolve the target list.

        Args:
            raw: None for the defaults; otherwise a whitespace-separated string
                or a sequence of triples that replaces the defaults.

        Returns:
            Targets in request order, duplicates dropped.

        Raises:
            UnsupportedPlatform: On an empty list or an unclassifiable triple.
        """
        if raw is None:
            triples = list(DEFAULT_HOSTS)
        elif isinstance(raw, str):
            triples = raw.split()
        else:
            triples = [t.strip() for t in raw if t.strip()]

        if not triples:
            raise UnsupportedPlatform("(empty target list)")

        targets: list[Target] = []
        seen = set()
        for triple in triples:
            if triple in seen:
                continue
            seen.add(triple)
            targets.append(Target(triple=triple, family=platform_family(triple)))

        console.print(
            f"[cyan][PLANNER] Targets: {' '.join(t.triple for t in targets)}[/cyan]"
        )
        return targets

    def sdk_path_for(self, target: Target) -> Path:
        """Where depends expects the macOS SDK for this target."""
        variables = {"SDK_PATH": str(self._sdk_path)} if self._sdk_path else None
        return Path(self._depends.print_var("OSX_SDK", host=target.triple, variables=variables))

    def check_sdks(self, targets: list[Target]) -> None:
        """
        Verify the SDK of every darwin target before any work starts.

        Raises:
            MissingPlatformSDK: For the first darwin target without an SDK.
        """
        for target in targets:
            if target.family != PlatformFamily.MACOS:
                continue
            sdk = self.sdk_path_for(target)
            # An empty print-OSX_SDK answer becomes Path(".")
            if str(sdk) == "." or not self._sdk_exists(sdk):
                console.print(f"[red][PLANNER] macOS SDK missing for {target.triple}[/red]")
                raise MissingPlatformSDK(target.triple, sdk)
            console.print(f"[green][PLANNER] Found macOS SDK at '{sdk}', using...[/green]")
