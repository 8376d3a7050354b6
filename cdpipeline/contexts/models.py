"""Data models for execution contexts and run-owned shared volumes."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

# Shared volume names. Volumes are owned by the run, not by any context.
WORKSPACE = "workspace"
BUILD_CACHE = "build-cache"
CACHE_CONFIG = "cache-config"

ALL_VOLUMES = (WORKSPACE, BUILD_CACHE, CACHE_CONFIG)

# Where each volume appears inside a container context
DEFAULT_MOUNT_PATHS = {
    WORKSPACE: "/workspace",
    BUILD_CACHE: "/cache/build",
    CACHE_CONFIG: "/cache/config",
}

# Environment variable announcing each volume's location to commands
VOLUME_ENV_VARS = {
    WORKSPACE: "WORKSPACE",
    BUILD_CACHE: "BUILD_CACHE_DIR",
    CACHE_CONFIG: "CACHE_CONFIG_DIR",
}

CONTAINER_HOME = "/home/pipeline"


@dataclass(frozen=True)
class SharedVolume:
    """A directory shared by every context of one run that mounts it.

    Attributes:
        name: Volume name (workspace, build-cache, cache-config).
        host_path: Location on the machine running the pipeline.
        mount_path: Location inside container contexts.
    """

    name: str
    host_path: Path
    mount_path: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "host_path": str(self.host_path),
            "mount_path": self.mount_path,
        }


@dataclass(frozen=True)
class ContextTemplate:
    """Declared identity of an execution context and how to instantiate it.

    Attributes:
        identity: Context name stages refer to (e.g. "source", "builder").
        image: Container image the context is instantiated from. Ignored by
            the local launcher.
        volumes: Names of the shared volumes this context mounts.
        env: Non-secret environment variables for every command.
        privileged: Whether a container context needs elevated privileges
            (the image builder daemon does).
    """

    identity: str
    image: Optional[str] = None
    volumes: tuple[str, ...] = ALL_VOLUMES
    env: dict[str, str] = field(default_factory=dict)
    privileged: bool = False
