"""Exceptions for the executor module."""

from cdpipeline.errors import PipelineError


class ExecutorError(PipelineError):
    """Base exception for executor errors."""

    pass


class RunSealedError(ExecutorError):
    """Raised when a sealed or closed run is modified.

    Attributes:
        build_number: Identifier of the run.
        operation: What was attempted.
    """

    def __init__(self, build_number: str, operation: str):
        self.build_number = build_number
        self.operation = operation
        super().__init__(f"Run {build_number} is sealed; cannot {operation}")
