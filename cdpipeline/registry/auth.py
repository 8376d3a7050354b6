"""Temporary registry auth configuration for docker-compatible clients."""

import base64
import json
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from cdpipeline.credentials import UsernamePassword

# Docker Hub credentials are keyed by this legacy index URL
DOCKER_HUB_AUTH_KEY = "https://index.docker.io/v1/"
DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io", "registry-1.docker.io")


def auth_key(registry: str) -> str:
    """Key under which a registry's credentials are stored in config.json."""
    if registry in DOCKER_HUB_ALIASES:
        return DOCKER_HUB_AUTH_KEY
    return registry


def build_auth_config(registry: str, credentials: UsernamePassword) -> dict:
    token = base64.b64encode(
        f"{credentials.username}:{credentials.password}".encode()
    ).decode()
    return {"auths": {auth_key(registry): {"auth": token}}}


@contextmanager
def registry_auth_config(
    parent: Path, registry: str, credentials: UsernamePassword
) -> Iterator[Path]:
    """Write a private docker config directory for the duration of the block.

    The directory holds a ``config.json`` readable only by the owner and is
    removed on every exit path. Point DOCKER_CONFIG at the yielded path.

    Args:
        parent: Where to create the directory (a context's private home).
        registry: Registry host the credentials are for.
        credentials: Username/password for the registry.
    """
    parent.mkdir(parents=True, exist_ok=True)
    directory = Path(tempfile.mkdtemp(prefix="docker-config-", dir=parent))
    try:
        config_path = directory / "config.json"
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as config_file:
            json.dump(build_auth_config(registry, credentials), config_file)
        yield directory
    finally:
        shutil.rmtree(directory, ignore_errors=True)
