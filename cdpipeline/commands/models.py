"""Data models for shell-level commands and their results."""

import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

# Exit code reported for commands killed by their timeout (same as coreutils timeout)
TIMEOUT_EXIT_CODE = 124

# Exit code reported when the executable could not be found
NOT_FOUND_EXIT_CODE = 127


class ErrorPolicy(Enum):
    """What a non-zero exit of a command means for its stage.

    FATAL: the stage fails and the run halts.
    ABSORBED: the failure is logged and ignored by policy.
    """

    FATAL = "fatal"
    ABSORBED = "absorbed"


@dataclass
class Command:
    """An opaque shell-level operation run inside an execution context.

    Attributes:
        args: Argument vector, or a single shell line (run through ``sh -c``).
        policy: Whether a non-zero exit fails the stage or is absorbed.
        description: Human readable label used in logs and results.
        timeout: Seconds before the command is killed (None = no limit).
        stdin: Text fed to the command's standard input.
        workdir: Working directory relative to the workspace volume.
        env: Extra non-secret environment variables for this command only.
    """

    args: Union[list[str], str]
    policy: ErrorPolicy = ErrorPolicy.FATAL
    description: str = ""
    timeout: Optional[float] = None
    stdin: Optional[str] = None
    workdir: Optional[str] = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def is_shell(self) -> bool:
        """Whether the command is a shell line rather than an argv list."""
        return isinstance(self.args, str)

    @property
    def display(self) -> str:
        """Printable form of the command."""
        if self.is_shell:
            return self.args  # type: ignore[return-value]
        return shlex.join(self.args)

    @property
    def label(self) -> str:
        return self.description or self.display

    @classmethod
    def absorbed(cls, args: Union[list[str], str], **kwargs: Any) -> "Command":
        """Build a command whose failure is ignored by policy."""
        return cls(args=args, policy=ErrorPolicy.ABSORBED, **kwargs)


@dataclass
class CommandResult:
    """Outcome of running a single command.

    Attributes:
        command: Display form of the command that ran.
        exit_code: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock duration.
        timed_out: True if the command was killed by its timeout.
        absorbed: True if a non-zero exit was ignored by policy.
    """

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False
    absorbed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined output, stderr last since it usually holds the error."""
        parts = [part.rstrip("\n") for part in (self.stdout, self.stderr) if part]
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_seconds": self.duration_seconds,
            "timed_out": self.timed_out,
            "absorbed": self.absorbed,
        }
