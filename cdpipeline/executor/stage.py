"""Stage definitions."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from cdpipeline.commands import Command
from cdpipeline.contexts import ExecutionContext
from cdpipeline.credentials import CredentialBinding, ScopedCredentials

from .models import PipelineRun


@dataclass
class StageContext:
    """What a stage action gets to work with.

    Attributes:
        run: The run in progress.
        context: The execution context the stage runs in.
        credentials: Material of the stage's bindings.
        state: Values handed from one stage to the next (e.g. the source tree).
        details: Facts recorded into the stage's result.
    """

    run: PipelineRun
    context: ExecutionContext
    credentials: ScopedCredentials
    state: dict[str, Any]
    details: dict[str, Any] = field(default_factory=dict)


StageAction = Callable[[StageContext], None]


@dataclass
class Stage:
    """One ordered unit of pipeline work bound to one execution context.

    The stage's commands run first, in order, followed by its action.

    Attributes:
        name: Stage name.
        context: Identity of the execution context the stage runs in.
        bindings: Credentials materialized for the stage's lifetime only.
        commands: Shell-level operations run in the context.
        action: Coordinator call made after the commands.
    """

    name: str
    context: str
    bindings: list[CredentialBinding] = field(default_factory=list)
    commands: list[Command] = field(default_factory=list)
    action: Optional[StageAction] = None

    def describe(self) -> list[str]:
        """Human readable plan of the stage."""
        lines = [f"{self.name} [context: {self.context}]"]
        for binding in self.bindings:
            lines.append(f"  credential: {binding.credential_id} ({type(binding).__name__})")
        for command in self.commands:
            lines.append(f"  $ {command.display} ({command.policy.value})")
        if self.action is not None:
            action_name = getattr(self.action, "__name__", repr(self.action)).lstrip("_")
            lines.append(f"  action: {action_name}")
        return lines
