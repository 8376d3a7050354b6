"""ExecutionContext - an isolated environment stage commands run in."""

import logging
import os
from pathlib import Path
from typing import Optional

from cdpipeline.commands import (
    BackgroundProcess,
    Command,
    CommandFailedError,
    CommandResult,
    CommandRunner,
    ErrorPolicy,
)

from .launchers import Launcher
from .models import VOLUME_ENV_VARS, WORKSPACE, ContextTemplate, SharedVolume

logger = logging.getLogger(__name__)

# Host variables every context inherits; everything else must be declared
INHERITED_ENV = ("PATH", "LANG", "LC_ALL", "TZ")


class ExecutionContext:
    """An isolated environment with its own identity, home and environment.

    The context does not inherit the pipeline process environment (which
    may hold secret material); commands see only an allowlist of host
    variables, the template's variables, the shared volume locations and
    whatever the credential scope manager has materialized for the active
    stage.
    """

    def __init__(
        self,
        template: ContextTemplate,
        volumes: dict[str, SharedVolume],
        home: Path,
        runner: CommandRunner,
        launcher: Launcher,
        passthrough_env: tuple[str, ...] = (),
    ):
        """Initialize the context.

        Args:
            template: Declared identity and image.
            volumes: The run's shared volumes this context mounts.
            home: Private home directory, never shared with other contexts.
            runner: Command runner used for every command.
            launcher: How commands are turned into processes.
            passthrough_env: Extra host variable names to inherit.
        """
        self._template = template
        self._volumes = volumes
        self._home = home
        self._runner = runner
        self._launcher = launcher
        self._passthrough_env = passthrough_env
        self._scoped_env: dict[str, str] = {}

    @property
    def identity(self) -> str:
        return self._template.identity

    @property
    def template(self) -> ContextTemplate:
        return self._template

    @property
    def volumes(self) -> dict[str, SharedVolume]:
        return self._volumes

    @property
    def home(self) -> Path:
        return self._home

    @property
    def workspace(self) -> Path:
        return self.volume_path(WORKSPACE)

    @property
    def launcher(self) -> Launcher:
        return self._launcher

    def volume_path(self, name: str) -> Path:
        """Host path of a mounted shared volume.

        Raises:
            KeyError: If this context does not mount the volume.
        """
        if name not in self._volumes:
            raise KeyError(f"Context '{self.identity}' does not mount volume '{name}'")
        return self._volumes[name].host_path

    def env_path(self, host_path: Path) -> str:
        """How ``host_path`` is addressed by commands running in this context."""
        return self._launcher.translate(self, host_path)

    # -- scoped (credential) environment ------------------------------------

    def set_scoped_env(self, name: str, value: str) -> None:
        """Expose a variable to commands until clear_scoped_env() is called."""
        self._scoped_env[name] = value

    def clear_scoped_env(self, name: str) -> None:
        self._scoped_env.pop(name, None)

    @property
    def scoped_env_names(self) -> set[str]:
        return set(self._scoped_env)

    def environment(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        """Environment as seen by a command in this context."""
        env = {
            key: os.environ[key]
            for key in INHERITED_ENV + self._passthrough_env
            if key in os.environ
        }
        env["HOME"] = self.env_path(self._home)
        for name, volume in self._volumes.items():
            env[VOLUME_ENV_VARS.get(name, name.upper().replace("-", "_"))] = self.env_path(
                volume.host_path
            )
        env.update(self._template.env)
        env.update(self._scoped_env)
        if extra:
            env.update(extra)
        return env

    # -- running commands ---------------------------------------------------

    def run(self, command: Command) -> CommandResult:
        """Run a command and report its result without applying its policy."""
        spec = self._launcher.prepare(self, command, self.environment(command.env))
        return self._runner.run(command, argv=spec.argv, cwd=spec.cwd, env=spec.env)

    def execute(self, command: Command) -> CommandResult:
        """Run a command and apply its error policy.

        Returns:
            The CommandResult. Absorbed failures are flagged ``absorbed``.

        Raises:
            CommandFailedError: If a FATAL command exits non-zero.
            RunAbortedError: If the run is aborted while the command runs.
        """
        logger.info("[%s] %s", self.identity, command.label)
        result = self.run(command)
        if result.succeeded:
            return result
        if command.policy is ErrorPolicy.ABSORBED:
            result.absorbed = True
            logger.warning(
                "[%s] '%s' failed with exit code %d (absorbed by policy)",
                self.identity,
                command.label,
                result.exit_code,
            )
            return result
        raise CommandFailedError(result)

    def spawn(self, command: Command, log_name: str) -> BackgroundProcess:
        """Start a long-running command; its output goes to the context home."""
        spec = self._launcher.prepare(self, command, self.environment(command.env))
        return self._runner.spawn(
            command,
            log_path=self._home / "logs" / log_name,
            argv=spec.argv,
            cwd=spec.cwd,
            env=spec.env,
        )
