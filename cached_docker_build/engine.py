from __future__ import annotations

import shlex
from pathlib import Path
from typing import Protocol

import docker
from docker.errors import DockerException

from cached_docker_build import actions
from cached_docker_build.errors import EngineError
from cached_docker_build.runtime import CommandResult, run_command, stream_command


BUILD_SHELL = "sh"


class ContainerEngine(Protocol):
    def build(self, args: str) -> None:
        ...

    def save(self, tags: list[str], output: Path) -> None:
        ...

    def load(self, archive: Path) -> None:
        ...


class DockerCliEngine:
    """Builds and saves through the docker CLI, loads through the Docker SDK.

    The build argument string goes through ``sh -c`` unchanged, so
    ``$VAR`` and ``$(...)`` expand as they would in a workflow step.
    """

    def __init__(self, docker_bin: str = "docker", cwd: Path | None = None, client=None) -> None:
        self.docker_bin = docker_bin
        self.cwd = cwd
        self._client = client

    def _docker_client(self):
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _run(self, cmd: list[str], *, stream: bool) -> CommandResult:
        try:
            if stream:
                return stream_command(cmd, cwd=self.cwd)
            return run_command(cmd, cwd=self.cwd)
        except FileNotFoundError as exc:
            raise EngineError(f"{cmd[0]} executable not found") from exc
        except OSError as exc:
            raise EngineError(f"failed to run {shlex.join(cmd)}: {exc}") from exc

    def _check(self, result: CommandResult) -> None:
        if result.exit_code == 0:
            return
        detail = (result.stderr or result.stdout).strip()
        if not detail:
            detail = f"Command failed: {shlex.join(result.cmd)} (exit code {result.exit_code})"
        raise EngineError(detail)

    def build(self, args: str) -> None:
        command = f"{shlex.quote(self.docker_bin)} build {args}"
        actions.info(command)
        self._check(self._run([BUILD_SHELL, "-c", command], stream=True))

    def save(self, tags: list[str], output: Path) -> None:
        cmd = [self.docker_bin, "save", "-o", str(output), *tags]
        result = self._run(cmd, stream=False)
        if result.exit_code != 0:
            actions.error(shlex.join(cmd))
        self._check(result)

    def load(self, archive: Path) -> None:
        try:
            with open(archive, "rb") as handle:
                self._docker_client().images.load(handle)
        except (DockerException, OSError) as exc:
            actions.error(f"docker load -i {archive}")
            raise EngineError(f"failed to load {archive}: {exc}") from exc


def docker_available() -> tuple[bool, str]:
    try:
        client = docker.from_env()
        client.ping()
        version = client.version().get("Version", "unknown")
        return True, f"docker daemon reachable (server {version})"
    except DockerException as exc:
        return False, f"Docker is not available: {exc}"
