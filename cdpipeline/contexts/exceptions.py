"""Exceptions for the execution contexts module."""

from cdpipeline.errors import PipelineError


class ContextError(PipelineError):
    """Base exception for execution context errors."""

    pass


class UnknownContextError(ContextError):
    """Raised when a stage names a context the pool has no template for."""

    def __init__(self, identity: str, known: list[str]):
        self.identity = identity
        self.known = known
        super().__init__(
            f"Unknown execution context '{identity}'. Known contexts: {known}"
        )


class ContextLaunchError(ContextError):
    """Raised when a context cannot run commands (e.g. no image configured)."""

    def __init__(self, identity: str, reason: str):
        self.identity = identity
        self.reason = reason
        super().__init__(f"Cannot launch context '{identity}': {reason}")
