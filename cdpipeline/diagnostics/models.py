"""Data models for the diagnostics module."""

from dataclasses import dataclass
from typing import Any

UNAVAILABLE_PREFIX = "diagnostic unavailable"


@dataclass
class DiagnosticBlock:
    """Labelled output of one read-only inspection command.

    Attributes:
        label: What the block shows (e.g. "pod logs").
        command: Display form of the command that produced it.
        output: Command output, or the unavailability notice.
        available: False when the command could not produce its output.
        reason: Why the block is unavailable.
    """

    label: str
    command: str
    output: str = ""
    available: bool = True
    reason: str = ""

    @classmethod
    def unavailable(cls, label: str, command: str, reason: str) -> "DiagnosticBlock":
        return cls(
            label=label,
            command=command,
            output=f"{UNAVAILABLE_PREFIX}: {reason}",
            available=False,
            reason=reason,
        )

    def render(self) -> str:
        header = f"===== {self.label} ({self.command}) ====="
        return f"{header}\n{self.output.rstrip()}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "label": self.label,
            "command": self.command,
            "output": self.output,
            "available": self.available,
            "reason": self.reason,
        }
