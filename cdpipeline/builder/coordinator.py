"""ImageBuilderCoordinator - drives a BuildKit daemon through one build-and-push."""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from cdpipeline.cache import BuildCacheStore
from cdpipeline.commands import BackgroundProcess, Command, CommandResult
from cdpipeline.contexts import CACHE_CONFIG, ExecutionContext
from cdpipeline.credentials import UsernamePassword
from cdpipeline.polling import PollTimeoutError, poll_until
from cdpipeline.registry import ImageReference, registry_auth_config

from .exceptions import BuildFailedError, BuilderUnavailableError
from .models import BuildResult

logger = logging.getLogger(__name__)

# Optional daemon configuration read from the cache-config volume
DAEMON_CONFIG_FILE = "buildkitd.toml"

AUTH_FAILURE_MARKERS = ("unauthorized", "authentication required", "denied: requested access")
PUSH_FAILURE_MARKERS = ("failed to push", "error pushing", "pushing layers")


def classify_build_failure(output: str) -> str:
    """Tell build, push and registry authentication failures apart."""
    lowered = output.lower()
    if any(marker in lowered for marker in AUTH_FAILURE_MARKERS):
        return "registry authentication failed"
    if any(marker in lowered for marker in PUSH_FAILURE_MARKERS):
        return "push failed"
    return "build failed"


class ImageBuilderCoordinator:
    """Coordinates the image build daemon and the build-and-push request.

    The daemon (``buildkitd``) runs in the background inside the builder
    context. Before any request is issued the coordinator polls the daemon's
    control socket with bounded exponential backoff; exceeding the bound
    fails the stage with BuilderUnavailableError. Failures are never retried
    here: re-running the pipeline is the caller's retry policy.

    Example usage:
        coordinator = ImageBuilderCoordinator(pool.acquire("builder"))
        result = coordinator.build_and_push(source, image_ref, creds, cache)
        print(result.digest)
    """

    def __init__(
        self,
        context: ExecutionContext,
        buildctl: str = "buildctl",
        buildkitd: str = "buildkitd",
        dockerfile: str = "Dockerfile",
        ready_timeout: float = 60.0,
        ready_initial_delay: float = 0.5,
        ready_max_delay: float = 5.0,
        build_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the coordinator.

        Args:
            context: Builder execution context.
            buildctl: Build client executable.
            buildkitd: Build daemon executable.
            dockerfile: Recipe file name inside the source tree.
            ready_timeout: Hard upper bound on the daemon readiness wait.
            ready_initial_delay: First delay between readiness probes.
            ready_max_delay: Maximum delay between readiness probes.
            build_timeout: Seconds before the build request is killed.
            clock: Monotonic clock (injectable for tests).
            sleep: Sleep function (injectable for tests).
        """
        self._context = context
        self._buildctl = buildctl
        self._buildkitd = buildkitd
        self._dockerfile = dockerfile
        self._ready_timeout = ready_timeout
        self._ready_initial_delay = ready_initial_delay
        self._ready_max_delay = ready_max_delay
        self._build_timeout = build_timeout
        self._clock = clock
        self._sleep = sleep

    @property
    def state_dir(self) -> Path:
        return self._context.home / "buildkit"

    @property
    def address(self) -> str:
        """Control socket address as seen from inside the builder context."""
        return f"unix://{self._context.env_path(self.state_dir / 'buildkitd.sock')}"

    def _daemon_command(self) -> Command:
        args = [
            self._buildkitd,
            "--addr",
            self.address,
            "--root",
            self._context.env_path(self.state_dir / "root"),
        ]
        if CACHE_CONFIG in self._context.volumes:
            config_file = self._context.volume_path(CACHE_CONFIG) / DAEMON_CONFIG_FILE
            if config_file.exists():
                args += ["--config", self._context.env_path(config_file)]
        return Command(args, description="start build daemon")

    def start_daemon(self) -> BackgroundProcess:
        """Start the build daemon in the background.

        Raises:
            BuilderUnavailableError: If the daemon process cannot be started.
        """
        (self.state_dir / "root").mkdir(parents=True, exist_ok=True)
        try:
            return self._context.spawn(self._daemon_command(), log_name="buildkitd.log")
        except OSError as e:
            raise BuilderUnavailableError(f"failed to start daemon: {e}") from e

    def wait_until_ready(self, daemon: BackgroundProcess) -> int:
        """Poll the daemon until it answers, within the readiness bound.

        Returns:
            Number of probes it took.

        Raises:
            BuilderUnavailableError: If the daemon exits or stays unreachable.
        """
        probe_command = Command(
            [self._buildctl, "--addr", self.address, "debug", "workers"],
            description="probe build daemon",
            timeout=10,
        )

        def probe() -> bool:
            exit_code = daemon.poll()
            if exit_code is not None:
                raise BuilderUnavailableError(
                    f"daemon exited with code {exit_code}", daemon.log_tail()
                )
            return self._context.run(probe_command).succeeded

        try:
            attempts = poll_until(
                probe,
                timeout=self._ready_timeout,
                initial_delay=self._ready_initial_delay,
                max_delay=self._ready_max_delay,
                clock=self._clock,
                sleep=self._sleep,
            )
        except PollTimeoutError as e:
            raise BuilderUnavailableError(
                f"daemon not reachable within {self._ready_timeout:g}s "
                f"after {e.attempts} attempts",
                daemon.log_tail(),
            ) from e
        logger.info("Build daemon ready after %d probe(s)", attempts)
        return attempts

    def _build_command(
        self,
        source: Path,
        image_ref: ImageReference,
        import_dir: Path,
        export_dir: Path,
        metadata_file: Path,
    ) -> Command:
        ctx = self._context
        source_path = ctx.env_path(source)
        args = [
            self._buildctl,
            "--addr",
            self.address,
            "build",
            "--frontend",
            "dockerfile.v0",
            "--local",
            f"context={source_path}",
            "--local",
            f"dockerfile={source_path}",
            "--opt",
            f"filename={self._dockerfile}",
            "--output",
            f"type=image,name={image_ref},push=true",
            "--export-cache",
            f"type=local,dest={ctx.env_path(export_dir)},mode=max",
            "--metadata-file",
            ctx.env_path(metadata_file),
        ]
        # A cache without an index has nothing to import yet
        if (import_dir / "index.json").exists():
            args += ["--import-cache", f"type=local,src={ctx.env_path(import_dir)}"]
        return Command(args, description=f"build and push {image_ref}", timeout=self._build_timeout)

    def _run_build(
        self, command: Command, image_ref: ImageReference, credentials: UsernamePassword
    ) -> CommandResult:
        with registry_auth_config(self._context.home, image_ref.registry, credentials) as auth_dir:
            command.env["DOCKER_CONFIG"] = self._context.env_path(auth_dir)
            logger.info("[%s] %s", self._context.identity, command.label)
            return self._context.run(command)

    def build_and_push(
        self,
        source: Path,
        image_ref: ImageReference,
        registry_credentials: UsernamePassword,
        cache: BuildCacheStore,
    ) -> BuildResult:
        """Build ``source`` and push it as ``image_ref``.

        Args:
            source: Source tree containing the container recipe.
            image_ref: Target reference, tagged with the run identifier.
            registry_credentials: Passed to the builder opaquely; never logged.
            cache: Build cache used as import and export location.

        Returns:
            BuildResult for the pushed image.

        Raises:
            BuilderUnavailableError: If the daemon never became reachable.
            BuildFailedError: If the build, push or registry login failed.
        """
        daemon = self.start_daemon()
        try:
            attempts = self.wait_until_ready(daemon)
            import_dir = cache.prepare()
            export_dir = cache.export_target()
            metadata_file = self.state_dir / "metadata.json"
            command = self._build_command(source, image_ref, import_dir, export_dir, metadata_file)

            result = self._run_build(command, image_ref, registry_credentials)
            if not result.succeeded:
                cache.discard(export_dir)
                reason = "build timed out" if result.timed_out else classify_build_failure(result.output)
                raise BuildFailedError(reason, result.exit_code, result.output)

            cache_stats = cache.finalize(export_dir)
            digest = self._read_digest(metadata_file)
            logger.info("Pushed %s (%s)", image_ref, digest or "digest unknown")
            return BuildResult(
                image_ref=str(image_ref),
                digest=digest,
                duration_seconds=result.duration_seconds,
                daemon_ready_attempts=attempts,
                cache=cache_stats.to_dict(),
            )
        finally:
            exit_code = daemon.stop()
            logger.debug("Build daemon stopped (exit code %s)", exit_code)

    @staticmethod
    def _read_digest(metadata_file: Path) -> Optional[str]:
        try:
            metadata = json.loads(metadata_file.read_text())
        except (OSError, ValueError):
            return None
        return metadata.get("containerimage.digest")
