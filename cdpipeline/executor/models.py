"""Data models for pipeline runs and their stage results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from cdpipeline.commands import CommandResult

from .exceptions import RunSealedError


class RunStatus(Enum):
    """Final status of a pipeline run."""

    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"


class StageStatus(Enum):
    """Outcome of one stage."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


@dataclass
class StageResult:
    """Result of a single stage.

    Attributes:
        name: Stage name.
        status: SUCCEEDED, FAILED, SKIPPED or ABORTED.
        duration_seconds: Wall-clock duration.
        details: Stage-specific facts (image digest, rollout counts, ...).
        error: Error message of a failed or aborted stage.
        output: Raw error output of the failing operation.
        commands: Results of the stage's commands, in order.
        started_at: Monotonic start time.
        finished_at: Monotonic finish time.
    """

    name: str
    status: StageStatus
    duration_seconds: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    output: str = ""
    commands: list[CommandResult] = field(default_factory=list)
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def success(self) -> bool:
        return self.status is StageStatus.SUCCEEDED

    @property
    def skipped(self) -> bool:
        return self.status is StageStatus.SKIPPED

    @classmethod
    def skip(cls, name: str, reason: str) -> "StageResult":
        """Record a stage that never started."""
        return cls(name=name, status=StageStatus.SKIPPED, details={"reason": reason})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "details": self.details,
            "error": self.error,
            "output": self.output,
            "commands": [c.to_dict() for c in self.commands],
        }


@dataclass
class HookResult:
    """Result of one post hook."""

    name: str
    phase: str
    success: bool
    duration_seconds: float = 0.0
    error: str | None = None


@dataclass
class PipelineRun:
    """Record of one pipeline run.

    Mutated only by the executor. Once sealed, the status is final and no
    more stages can be recorded; once closed, nothing can be recorded at
    all. Hooks run between the two.
    """

    build_number: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    stages: list[StageResult] = field(default_factory=list)
    hook_results: list[HookResult] = field(default_factory=list)
    reports: list[str] = field(default_factory=list)
    error: str | None = None
    _status: Optional[RunStatus] = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def status(self) -> Optional[RunStatus]:
        """Final status, or None while stages are still running."""
        return self._status

    @property
    def sealed(self) -> bool:
        return self._status is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def success(self) -> bool:
        return self._status is RunStatus.SUCCESS

    @property
    def failed_stage(self) -> Optional[StageResult]:
        """The stage that failed the run, if any."""
        return next((s for s in self.stages if s.status is StageStatus.FAILED), None)

    def record_stage(self, result: StageResult) -> None:
        if self.sealed:
            raise RunSealedError(self.build_number, f"record stage '{result.name}'")
        self.stages.append(result)

    def seal(self, status: RunStatus) -> None:
        """Fix the run's final status."""
        if self.sealed:
            raise RunSealedError(self.build_number, f"change status to {status.value}")
        self._status = status

    def record_hook(self, result: HookResult) -> None:
        if self._closed:
            raise RunSealedError(self.build_number, f"record hook '{result.name}'")
        self.hook_results.append(result)

    def add_report(self, text: str) -> None:
        """Append a section to the failure/success report."""
        if self._closed:
            raise RunSealedError(self.build_number, "add a report")
        self.reports.append(text)

    def close(self) -> None:
        self._closed = True
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "build_number": self.build_number,
            "status": self._status.value if self._status else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stages": [s.to_dict() for s in self.stages],
            "hooks": [
                {"name": h.name, "phase": h.phase, "success": h.success, "error": h.error}
                for h in self.hook_results
            ],
            "error": self.error,
        }
