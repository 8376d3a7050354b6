"""Execution context pool.

A stage runs inside exactly one execution context. Contexts share the
run's volumes (workspace, build cache, cache config) but each has its own
private home and environment.

Public API:
    - ContextPool: Creates contexts and owns the run's shared volumes
    - ExecutionContext: Runs commands with the context's environment
    - ContextTemplate: Declared identity and image of a context
    - SharedVolume: A run-owned directory mounted by contexts
    - LocalLauncher / ContainerLauncher: How commands become processes
    - ContextError, UnknownContextError, ContextLaunchError: Exceptions
"""

from .context import ExecutionContext
from .exceptions import ContextError, ContextLaunchError, UnknownContextError
from .launchers import ContainerLauncher, Launcher, LaunchSpec, LocalLauncher, make_launcher
from .models import (
    BUILD_CACHE,
    CACHE_CONFIG,
    WORKSPACE,
    ContextTemplate,
    SharedVolume,
)
from .pool import ContextPool

__all__ = [
    "ContextPool",
    "ExecutionContext",
    "ContextTemplate",
    "SharedVolume",
    "Launcher",
    "LaunchSpec",
    "LocalLauncher",
    "ContainerLauncher",
    "make_launcher",
    "WORKSPACE",
    "BUILD_CACHE",
    "CACHE_CONFIG",
    "ContextError",
    "ContextLaunchError",
    "UnknownContextError",
]
