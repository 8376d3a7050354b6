"""Exceptions for the image builder module."""

from cdpipeline.errors import PipelineError


class BuilderError(PipelineError):
    """Base exception for image builder errors."""

    pass


class BuilderUnavailableError(BuilderError):
    """Raised when the build daemon never becomes reachable.

    Attributes:
        reason: Why the daemon is considered unavailable.
        log_tail: Last lines of the daemon's own output, if any.
    """

    def __init__(self, reason: str, log_tail: str = ""):
        self.reason = reason
        self.log_tail = log_tail
        self.output = log_tail
        super().__init__(f"builder unavailable: {reason}")


class BuildFailedError(BuilderError):
    """Raised when the build-and-push request fails.

    Covers build errors, push errors and registry authentication errors;
    ``reason`` tells them apart and ``output`` holds the builder's own
    error text.

    Attributes:
        reason: "build failed", "push failed" or "registry authentication failed".
        exit_code: Exit code of the build client.
    """

    def __init__(self, reason: str, exit_code: int, output: str):
        self.reason = reason
        self.exit_code = exit_code
        self.output = output
        last_line = next(
            (line.strip() for line in reversed(output.splitlines()) if line.strip()), ""
        )
        msg = f"{reason} (exit code {exit_code})"
        if last_line:
            msg += f": {last_line}"
        super().__init__(msg)
