"""Post hooks run after the stage sequence."""

from dataclasses import dataclass, field
from typing import Callable

from .models import PipelineRun, RunStatus

ALWAYS = "always"
SUCCESS = "success"
FAILURE = "failure"


@dataclass
class Hook:
    """A named callable receiving the sealed run."""

    name: str
    fn: Callable[[PipelineRun], None]


@dataclass
class PostHooks:
    """Hooks grouped by when they run.

    ``always`` hooks run for every run. Then ``success`` hooks run for a
    successful run and ``failure`` hooks for a failed one. An aborted run
    runs neither.
    """

    always: list[Hook] = field(default_factory=list)
    success: list[Hook] = field(default_factory=list)
    failure: list[Hook] = field(default_factory=list)

    def add(self, phase: str, name: str, fn: Callable[[PipelineRun], None]) -> None:
        getattr(self, phase).append(Hook(name, fn))

    def for_status(self, status: RunStatus) -> list[tuple[str, Hook]]:
        """Hooks to run, in order, for a run sealed with ``status``."""
        ordered = [(ALWAYS, hook) for hook in self.always]
        if status is RunStatus.SUCCESS:
            ordered += [(SUCCESS, hook) for hook in self.success]
        elif status is RunStatus.FAILURE:
            ordered += [(FAILURE, hook) for hook in self.failure]
        return ordered
