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
# RESOURCE ESTIMATOR
# -----------------------------------------------------------------------------
# Responsibility: Refuse to start a batch that cannot fit on disk.
# Required space is a per-family constant (see REQUIRED_KIB), summed over all
# requested targets and compared with the free space under the version base.
# -----------------------------------------------------------------------------

import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

from rich.console import Console

from crossforge.domain.errors import InsufficientDiskSpace
from crossforge.domain.models import Target

console = Console()


def available_kib(path: Path) -> int:
    """Free space available at path, in KiB."""
    return shutil.disk_usage(path).free // 1024


def nearest_existing(path: Path) -> Path:
    """path itself, or its closest ancestor that exists."""
    path = Path(path).absolute()
    while not path.exists() and path.parent != path:
        path = path.parent
    return path


class ResourceEstimator:
    """Disk space gate for a whole batch."""

    def __init__(self, free_space: Callable[[Path], int] = available_kib) -> None:
        self._free_space = free_space

    @staticmethod
    def required_kib(targets: Iterable[Target]) -> int:
        return sum(t.required_kib for t in targets)

    def check_disk_space(self, targets: list[Target], version_base: Path) -> int:
        """
        Compare the batch's required space with what is free.

        Passes when required == available.

        Returns:
            The required amount in KiB.

        Raises:
            InsufficientDiskSpace: If required > available.
        """
        required = self.required_kib(targets)
        # The version base is only created later, with the build directories
        available = self._free_space(nearest_existing(version_base))

        if required > available:
            console.print(
                f"[red][RESOURCES] Need {required} KiB, {available} KiB available[/red]"
            )
            raise InsufficientDiskSpace(required, available, version_base)

        console.print(
            f"[green][RESOURCES] Disk space OK: {required // 1048576} GiB required, "
            f"{available // 1048576} GiB available[/green]"
        )
        return required
