"""Exceptions for the commands module."""

from cdpipeline.errors import PipelineError

from .models import CommandResult


class CommandError(PipelineError):
    """Base exception for command execution errors."""

    pass


class CommandFailedError(CommandError):
    """Raised when a FATAL command exits non-zero.

    Attributes:
        result: The CommandResult of the failed command.
    """

    def __init__(self, result: CommandResult):
        self.result = result
        self.output = result.output
        reason = "timed out" if result.timed_out else f"exited with code {result.exit_code}"
        super().__init__(f"Command '{result.command}' {reason}")


class RunAbortedError(CommandError):
    """Raised when a command is interrupted by an abort of the run.

    Attributes:
        command: Display form of the interrupted command.
        reason: Why the run was aborted.
    """

    def __init__(self, command: str, reason: str = "aborted"):
        self.command = command
        self.reason = reason
        super().__init__(f"Command '{command}' interrupted: {reason}")
