"""Exceptions for the source module."""

from cdpipeline.errors import PipelineError


class SourceError(PipelineError):
    """Base exception for source provider errors."""

    pass


class CheckoutError(SourceError):
    """Raised when the source tree cannot be checked out.

    Attributes:
        url: Repository URL or local path.
        branch: Branch that was requested.
        reason: Error text from git.
    """

    def __init__(self, url: str, branch: str, reason: str):
        self.url = url
        self.branch = branch
        self.reason = reason
        self.output = reason
        super().__init__(f"Checkout of '{url}' (branch '{branch}') failed: {reason}")
