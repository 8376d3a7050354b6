"""Exceptions for the build cache module."""

from cdpipeline.errors import PipelineError


class CacheError(PipelineError):
    """Base exception for build cache errors."""

    pass


class CacheFinalizeError(CacheError):
    """Raised when exported cache entries cannot be merged into the store."""

    def __init__(self, staging: str, reason: str):
        self.staging = staging
        self.reason = reason
        super().__init__(f"Failed to finalize build cache export {staging}: {reason}")
