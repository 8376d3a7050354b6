"""Command execution for pipeline stages.

Public API:
    - Command: An opaque shell-level operation with an error policy
    - CommandResult: Outcome of a command
    - ErrorPolicy: FATAL or ABSORBED
    - CommandRunner: Runs commands as subprocesses with timeout and abort
    - BackgroundProcess: Handle on a spawned long-running process
    - AbortSignal: Cross-thread abort request
    - CommandError: Base exception for command errors
    - CommandFailedError: A FATAL command exited non-zero
    - RunAbortedError: A command was interrupted by an abort
"""

from .abort import AbortSignal
from .exceptions import CommandError, CommandFailedError, RunAbortedError
from .models import Command, CommandResult, ErrorPolicy
from .runner import BackgroundProcess, CommandRunner

__all__ = [
    "Command",
    "CommandResult",
    "ErrorPolicy",
    "CommandRunner",
    "BackgroundProcess",
    "AbortSignal",
    "CommandError",
    "CommandFailedError",
    "RunAbortedError",
]
