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
# DOCKER PROVIDER - SANDBOX BACKEND
# -----------------------------------------------------------------------------
# Responsibility: A robust wrapper around the Docker SDK with connection
# validation, pinned builder image resolution and single-command sessions.
#
# What the orchestrator needs from a sandbox, and nothing more:
# - a set of read-only / read-write bind mounts
# - an explicit environment map (nothing leaks in from the host)
# - one command run to completion
# - its exit status
# -----------------------------------------------------------------------------

import os
import platform
import subprocess
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import docker
from docker import DockerClient
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.utils import parse_repository_tag
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import ReadTimeout
from rich.console import Console

from crossforge.domain.errors import BackendUnreachable, CrossforgeError
from crossforge.domain.models import SOURCE_MOUNT, BuildSession

console = Console()

WAKE_TIMEOUT_SECONDS = 60
POLL_SECONDS = 2
STOP_TIMEOUT_SECONDS = 10

# Keyword arguments of containers.run() that the orchestrator owns.
RESERVED_RUN_OPTIONS = frozenset(
    {
        "command",
        "environment",
        "volumes",
        "working_dir",
        "network_disabled",
        "detach",
        "auto_remove",
        "name",
    }
)


class DockerProviderError(CrossforgeError):
    """Raised when the Docker Engine cannot provide what a session needs."""

    title = "SANDBOX BACKEND ERROR"


@dataclass
class SandboxResult:
    """Outcome of one containerized command."""

    exit_code: int | None
    container_id: str
    kept: bool
    cancelled: bool = False


class DockerProvider:
    """
    Docker SDK wrapper used as the build sandbox.

    - All Docker connection logic lives here
    - Auto-wake for Docker Desktop (macOS) or a user systemd unit, when asked
    - BackendUnreachable when the engine does not answer
    """

    def __init__(self, auto_wake: bool = False, client: DockerClient | None = None) -> None:
        """
        Initialize the Docker provider. Does not connect yet.

        Args:
            auto_wake: If True, attempt to start Docker Desktop if it's sleeping.
            client: An already constructed client (tests inject a mock here).
        """
        self._client = client
        self._auto_wake = auto_wake

    def _wake_docker(self) -> DockerClient | None:
        """
        Attempt to launch the Docker engine if it's sleeping.

        Returns:
            DockerClient if wake succeeds, None otherwise.
        """
        system = platform.system()
        console.print("[yellow][DOCKER] Engine sleeping. Attempting auto-wake...[/yellow]")

        if system == "Darwin":
            subprocess.run(["open", "-a", "Docker"], check=False)
        elif system == "Linux":
            # User-level systemctl avoids a sudo password hang
            subprocess.run(["systemctl", "--user", "start", "docker"], check=False)
        else:
            console.print(f"[yellow][DOCKER] Auto-wake not supported on {system}[/yellow]")
            return None

        with console.status(
            f"[yellow]Waiting for Docker Engine (up to {WAKE_TIMEOUT_SECONDS}s)...[/yellow]",
            spinner="clock",
        ):
            for _ in range(WAKE_TIMEOUT_SECONDS):
                try:
                    client = docker.from_env()
                    client.ping()
                    console.print("[green][DOCKER] Engine Online.[/green]")
                    return client
                except DockerException:
                    time.sleep(1)

        console.print("[red][DOCKER] Wake timeout - Docker did not respond[/red]")
        return None

    def connect(self) -> DockerClient:
        """
        Establish (or re-check) the connection to the Docker daemon.

        Raises:
            BackendUnreachable: If the daemon does not answer.
        """
        try:
            if self._client is None:
                self._client = docker.from_env()
            self._client.ping()
            console.print("[green][DOCKER] Connected to Docker Engine[/green]")
            return self._client
        except DockerException as e:
            detail = str(e)

        self._client = self._wake_docker() if self._auto_wake else None
        if self._client is None:
            raise BackendUnreachable(detail)
        return self._client

    def is_connected(self) -> bool:
        """True if Docker is currently reachable."""
        if self._client is None:
            return False
        try:
            self._client.ping()
            return True
        except DockerException:
            return False

    def _get_client(self) -> DockerClient:
        if self._client is None:
            return self.connect()
        return self._client

    def ensure_image(
        self,
        image: str,
        substitute_urls: Sequence[str] = (),
        pull_options: Mapping[str, object] | None = None,
    ) -> str:
        """
        Make the pinned builder image available locally.

        Substitute registries are tried in order before the canonical
        reference. A pull through a substitute is re-tagged with the canonical
        name when the reference is a tag (digest references run as pulled).

        Returns:
            The image reference to run.

        Raises:
            DockerProviderError: If no source could provide the image.
        """
        client = self._get_client()
        try:
            client.images.get(image)
            console.print(f"[cyan][DOCKER] Image ready: {image}[/cyan]")
            return image
        except ImageNotFound:
            pass
        except DockerException as e:
            raise DockerProviderError(
                f"Could not inspect builder image {image}: {e}",
                hint="Check that the Docker Engine is healthy, then rerun.",
            )

        candidates = [f"{url.rstrip('/')}/{image}" for url in substitute_urls] + [image]
        failures = {}
        for ref in candidates:
            console.print(f"[yellow][DOCKER] Pulling: {ref}...[/yellow]")
            try:
                pulled = client.images.pull(ref, **dict(pull_options or {}))
            except (APIError, ImageNotFound) as e:
                console.print(f"[yellow][DOCKER] Pull failed: {ref}[/yellow]")
                failures[ref] = str(e)
                continue

            console.print(f"[green][DOCKER] Pulled: {ref}[/green]")
            if ref == image or "@" in image:
                return ref
            repository, tag = parse_repository_tag(image)
            pulled.tag(repository, tag=tag)
            return image

        raise DockerProviderError(
            f"Builder image {image} is not available locally and could not be pulled.",
            hint="Check the image reference, your registry credentials and SUBSTITUTE_URLS.",
            context=failures,
        )

    def run_session(
        self,
        session: BuildSession,
        image: str,
        command: list[str],
        name: str,
        run_options: Mapping[str, object] | None = None,
        cancelled: Callable[[], bool] = lambda: False,
        log_path: Path | None = None,
    ) -> SandboxResult:
        """
        Run one command in a fresh container and wait for it to exit.

        The container gets no network, no host environment and a fixed working
        directory. A container that exits non-zero is kept for debugging; one
        that succeeds is removed.

        Args:
            session: The session whose mounts and environment to apply.
            image: Image reference from ensure_image().
            command: Command to run inside the container.
            name: Container name.
            run_options: Extra containers.run() keyword arguments.
            cancelled: Polled while waiting; when it returns True the
                container is stopped and the result is marked cancelled.
            log_path: File that receives a copy of the container output.

        Raises:
            DockerProviderError: If the container could not be started, or the
                engine failed while it ran (the container is kept).
        """
        client = self._get_client()
        options = dict(run_options or {})
        for key in RESERVED_RUN_OPTIONS.intersection(options):
            console.print(f"[yellow][DOCKER] Ignoring reserved run option: {key}[/yellow]")
            del options[key]

        cpus = min(session.jobs, os.cpu_count() or session.jobs)
        kwargs = {
            "command": command,
            "name": name,
            "detach": True,
            "auto_remove": False,
            "environment": dict(session.environment),
            "volumes": {str(m.source): m.as_volume() for m in session.mounts},
            "working_dir": str(SOURCE_MOUNT),
            "network_disabled": True,
            "nano_cpus": cpus * 1_000_000_000,
            "labels": {"crossforge.target": session.target.triple},
        }
        kwargs.update(options)

        try:
            container = client.containers.run(image, **kwargs)
        except APIError as e:
            if "Conflict" not in str(e):
                raise DockerProviderError(f"Could not start container {name}: {e}")
            console.print("[yellow][DOCKER] Removing stale container...[/yellow]")
            try:
                client.containers.get(name).remove(force=True)
                container = client.containers.run(image, **kwargs)
            except (APIError, NotFound) as retry_error:
                raise DockerProviderError(f"Could not start container {name}: {retry_error}")

        console.print(f"[green][DOCKER] Container active: {container.short_id}[/green]")

        streamer = threading.Thread(
            target=self._stream_logs, args=(container, log_path), daemon=True
        )
        streamer.start()

        while True:
            if cancelled():
                console.print(f"[red][DOCKER] Stopping container {container.short_id}...[/red]")
                try:
                    container.stop(timeout=STOP_TIMEOUT_SECONDS)
                except APIError as e:
                    console.print(f"[red][DOCKER] Could not stop container: {e}[/red]")
                return SandboxResult(
                    exit_code=None, container_id=container.short_id, kept=True, cancelled=True
                )
            try:
                status = container.wait(timeout=POLL_SECONDS)
                break
            except ReadTimeout:
                continue
            except RequestsConnectionError as e:
                # Unix-socket read timeouts surface as ConnectionError too
                if self.is_connected():
                    continue
                raise DockerProviderError(
                    f"Lost the Docker Engine while waiting for container {container.short_id}",
                    hint="Restart the Docker daemon; the container may need manual cleanup.",
                    context={"container": container.short_id, "detail": str(e)},
                )
            except DockerException as e:
                raise DockerProviderError(
                    f"Could not wait for container {container.short_id}: {e}",
                    context={"container": container.short_id},
                )

        streamer.join(timeout=POLL_SECONDS)
        exit_code = int(status.get("StatusCode", -1))

        if exit_code == 0:
            try:
                container.remove(force=True)
            except DockerException as e:
                console.print(
                    f"[yellow][DOCKER] Could not remove container {container.short_id}: {e}[/yellow]"
                )
                return SandboxResult(exit_code=0, container_id=container.short_id, kept=True)
            return SandboxResult(exit_code=0, container_id=container.short_id, kept=False)

        console.print(
            f"[yellow][DOCKER] Keeping failed container {container.short_id} for debugging[/yellow]"
        )
        return SandboxResult(exit_code=exit_code, container_id=container.short_id, kept=True)

    def _stream_logs(self, container: Container, log_path: Path | None) -> None:
        """Copy container output to the terminal (and the session log)."""
        log_file = open(log_path, "ab") if log_path else None
        try:
            for chunk in container.logs(stream=True, follow=True):
                if log_file:
                    log_file.write(chunk)
                console.out(chunk.decode("utf-8", errors="replace"), end="", highlight=False)
        except DockerException as e:
            console.print(f"[yellow][DOCKER] Log stream ended: {e}[/yellow]")
        finally:
            if log_file:
                log_file.close()
