"""Image builder coordinator.

Public API:
    - ImageBuilderCoordinator: Starts the build daemon, waits for it, builds and pushes
    - BuildResult: Outcome of a successful build-and-push
    - BuilderError: Base exception for builder errors
    - BuilderUnavailableError: The daemon never became reachable
    - BuildFailedError: Build, push or registry authentication failed
"""

from .coordinator import ImageBuilderCoordinator, classify_build_failure
from .exceptions import BuilderError, BuilderUnavailableError, BuildFailedError
from .models import BuildResult

__all__ = [
    "ImageBuilderCoordinator",
    "classify_build_failure",
    "BuildResult",
    "BuilderError",
    "BuilderUnavailableError",
    "BuildFailedError",
]
