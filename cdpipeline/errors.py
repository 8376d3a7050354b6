"""Base exceptions shared by every pipeline component."""


class PipelineError(Exception):
    """Base exception for all pipeline failures.

    Attributes:
        output: Raw error output of the operation that failed (may be empty).
            The executor attaches it to the failing stage result so the
            failure report can show it verbatim.
    """

    output: str = ""


class ConfigError(PipelineError):
    """Raised when pipeline configuration is missing or invalid."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")
