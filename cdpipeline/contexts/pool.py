"""ContextPool - creates execution contexts and owns the run's shared volumes."""

import logging
import shutil
from pathlib import Path
from typing import Optional

from cdpipeline.commands import CommandRunner

from .context import ExecutionContext
from .exceptions import UnknownContextError
from .launchers import Launcher, LocalLauncher
from .models import ALL_VOLUMES, DEFAULT_MOUNT_PATHS, ContextTemplate, SharedVolume

logger = logging.getLogger(__name__)


class ContextPool:
    """A set of execution contexts sharing one run's volumes.

    Volumes live under ``<run_root>/volumes`` and every context that mounts
    a volume sees the same directory. Each context gets a private home
    under ``<run_root>/contexts/<identity>`` created with owner-only
    permissions.

    Example usage:
        pool = ContextPool(run_root, [ContextTemplate("source")])
        pool.prepare()
        context = pool.acquire("source")
        context.execute(Command(["npm", "install"]))
        pool.release_all()
    """

    def __init__(
        self,
        run_root: Path,
        templates: list[ContextTemplate],
        runner: Optional[CommandRunner] = None,
        launcher: Optional[Launcher] = None,
        passthrough_env: tuple[str, ...] = (),
    ):
        # docker treats a relative -v source as a named volume
        self._run_root = Path(run_root).absolute()
        self._templates = {t.identity: t for t in templates}
        self._runner = runner or CommandRunner()
        self._launcher = launcher or LocalLauncher()
        self._passthrough_env = passthrough_env
        self._volumes = {
            name: SharedVolume(
                name=name,
                host_path=self._run_root / "volumes" / name,
                mount_path=DEFAULT_MOUNT_PATHS[name],
            )
            for name in ALL_VOLUMES
        }
        self._contexts: dict[str, ExecutionContext] = {}

    @property
    def run_root(self) -> Path:
        return self._run_root

    @property
    def volumes(self) -> dict[str, SharedVolume]:
        return dict(self._volumes)

    @property
    def identities(self) -> list[str]:
        return list(self._templates)

    def volume_path(self, name: str) -> Path:
        return self._volumes[name].host_path

    def prepare(self) -> None:
        """Create the shared volume directories."""
        for volume in self._volumes.values():
            volume.host_path.mkdir(parents=True, exist_ok=True)
        logger.debug("Prepared shared volumes under %s", self._run_root / "volumes")

    def acquire(self, identity: str) -> ExecutionContext:
        """Return the context with this identity, creating it on first use.

        Raises:
            UnknownContextError: If no template declares this identity.
        """
        if identity in self._contexts:
            return self._contexts[identity]

        template = self._templates.get(identity)
        if template is None:
            raise UnknownContextError(identity, self.identities)

        for name in template.volumes:
            self._volumes[name].host_path.mkdir(parents=True, exist_ok=True)
        home = self._run_root / "contexts" / identity
        home.mkdir(parents=True, exist_ok=True)
        home.chmod(0o700)

        context = ExecutionContext(
            template=template,
            volumes={name: self._volumes[name] for name in template.volumes},
            home=home,
            runner=self._runner,
            launcher=self._launcher,
            passthrough_env=self._passthrough_env,
        )
        self._contexts[identity] = context
        logger.debug("Created execution context '%s' (%s)", identity, self._launcher.name)
        return context

    def release_all(self) -> list[str]:
        """Remove every context's private home.

        Returns:
            Error messages for homes that could not be removed.
        """
        errors: list[str] = []
        for identity, context in list(self._contexts.items()):
            try:
                if context.home.exists():
                    shutil.rmtree(context.home)
            except OSError as e:
                logger.warning("Failed to remove home of context '%s': %s", identity, e)
                errors.append(f"{identity}: {e}")
            del self._contexts[identity]
        return errors
