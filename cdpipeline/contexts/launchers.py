"""Launchers decide how an execution context actually runs a command.

LocalLauncher runs commands directly on the host with the context's
private environment. ContainerLauncher wraps every command in a
``docker run --rm`` of the context's image with the run's shared volumes
and the context's private home mounted.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Optional

from cdpipeline.commands import Command

from .exceptions import ContextLaunchError
from .models import CONTAINER_HOME

if TYPE_CHECKING:
    from .context import ExecutionContext

# Host variables the docker CLI itself needs
DOCKER_CLI_ENV = ("PATH", "HOME", "DOCKER_HOST", "DOCKER_CONFIG", "DOCKER_CERT_PATH", "DOCKER_TLS_VERIFY")


@dataclass
class LaunchSpec:
    """Concrete process invocation for one command.

    Attributes:
        argv: Argument vector to execute, or None to run the command as-is.
        cwd: Host working directory (None for container launches).
        env: Environment of the launched process.
    """

    argv: Optional[list[str]]
    cwd: Optional[Path]
    env: dict[str, str]


class Launcher(ABC):
    """Interface for turning a context command into a process invocation."""

    name: str = ""

    @abstractmethod
    def translate(self, context: "ExecutionContext", host_path: Path) -> str:
        """Return how ``host_path`` is addressed from inside the context."""
        pass

    @abstractmethod
    def prepare(
        self, context: "ExecutionContext", command: Command, env: dict[str, str]
    ) -> LaunchSpec:
        """Build the process invocation for ``command`` in ``context``.

        Args:
            context: The context the command runs in.
            command: The command to run.
            env: The context environment as seen by the command.
        """
        pass


class LocalLauncher(Launcher):
    """Runs commands on the host, isolated only by environment and home dir."""

    name = "local"

    def translate(self, context: "ExecutionContext", host_path: Path) -> str:
        return str(host_path)

    def prepare(
        self, context: "ExecutionContext", command: Command, env: dict[str, str]
    ) -> LaunchSpec:
        cwd = context.workspace / command.workdir if command.workdir else context.workspace
        return LaunchSpec(argv=None, cwd=cwd, env=dict(env))


class ContainerLauncher(Launcher):
    """Runs each command in a throwaway container of the context's image."""

    name = "docker"

    def __init__(self, docker: str = "docker", host_env: Optional[dict[str, str]] = None):
        """Initialize the launcher.

        Args:
            docker: Path or name of the docker CLI.
            host_env: Host environment the docker CLI reads its own settings
                from. Defaults to the current process environment.
        """
        self._docker = docker
        self._host_env = host_env if host_env is not None else dict(os.environ)

    def translate(self, context: "ExecutionContext", host_path: Path) -> str:
        host_path = Path(host_path)
        for volume in context.volumes.values():
            if host_path == volume.host_path or volume.host_path in host_path.parents:
                relative = host_path.relative_to(volume.host_path)
                return str(PurePosixPath(volume.mount_path) / relative.as_posix())
        if host_path == context.home or context.home in host_path.parents:
            relative = host_path.relative_to(context.home)
            return str(PurePosixPath(CONTAINER_HOME) / relative.as_posix())
        return str(host_path)

    def prepare(
        self, context: "ExecutionContext", command: Command, env: dict[str, str]
    ) -> LaunchSpec:
        if not context.template.image:
            raise ContextLaunchError(context.identity, "no container image configured")

        workdir = self.translate(context, context.workspace)
        if command.workdir:
            workdir = str(PurePosixPath(workdir) / command.workdir)

        argv = [self._docker, "run", "--rm"]
        if command.stdin is not None:
            argv.append("-i")
        if context.template.privileged:
            argv.append("--privileged")
        argv += ["-w", workdir]
        for volume in context.volumes.values():
            argv += ["-v", f"{volume.host_path}:{volume.mount_path}"]
        argv += ["-v", f"{context.home}:{CONTAINER_HOME}"]

        # Values travel through the docker CLI's environment so they never
        # appear on its command line.
        process_env = {
            key: self._host_env[key] for key in DOCKER_CLI_ENV if key in self._host_env
        }
        for key, value in env.items():
            if key == "HOME":
                argv += ["-e", f"HOME={CONTAINER_HOME}"]
                continue
            if key == "PATH":
                continue
            argv += ["-e", key]
            process_env[key] = value

        argv.append(context.template.image)
        if command.is_shell:
            argv += ["sh", "-c", command.args]  # type: ignore[list-item]
        else:
            argv += list(command.args)
        return LaunchSpec(argv=argv, cwd=None, env=process_env)


def make_launcher(name: str) -> Launcher:
    """Create a launcher by name ("local" or "docker")."""
    if name == LocalLauncher.name:
        return LocalLauncher()
    if name in (ContainerLauncher.name, "container"):
        return ContainerLauncher()
    raise ValueError(f"Unknown context launcher '{name}'. Use 'local' or 'docker'.")
