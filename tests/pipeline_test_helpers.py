"""Shared fakes for pipeline tests.

Used by:
    - tests/test_reconciler.py (fake clock rollout scenarios, ReplicaSet filtering)
    - tests/test_builder.py (fake clock readiness waits)
    - tests/test_diagnostics.py, tests/test_pipeline.py (scripted kubectl)
"""

import json
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

from cdpipeline.commands import Command, CommandResult


class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_result(
    command: str = "cmd",
    exit_code: int = 0,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
) -> CommandResult:
    return CommandResult(
        command=command,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def make_context(
    tmp_path: Path,
    responder: Optional[Callable[[Command], CommandResult]] = None,
    identity: str = "cluster",
) -> MagicMock:
    """A MagicMock ExecutionContext whose run() answers from ``responder``.

    Every command passed to run() is recorded in ``context.commands``.
    """
    home = tmp_path / "home" / identity
    home.mkdir(parents=True, exist_ok=True)
    workspace = tmp_path / "workspace"
    workspace.mkdir(parents=True, exist_ok=True)

    context = MagicMock()
    context.identity = identity
    context.home = home
    context.workspace = workspace
    context.volumes = {}
    context.env_path.side_effect = lambda path: str(path)
    context.commands = []

    def run(command: Command) -> CommandResult:
        context.commands.append(command)
        if responder is None:
            return make_result(command.display)
        return responder(command)

    context.run.side_effect = run
    return context


def deployment_json(
    desired: int = 3,
    updated: int = 0,
    ready: int = 0,
    available: int = 0,
    total: Optional[int] = None,
    generation: int = 2,
    observed_generation: int = 2,
    conditions: Optional[list[dict]] = None,
    revision: Optional[int] = None,
) -> str:
    """``kubectl get deployment -o json`` output."""
    status = {
        "observedGeneration": observed_generation,
        "replicas": updated if total is None else total,
        "updatedReplicas": updated,
        "readyReplicas": ready,
        "availableReplicas": available,
        "conditions": conditions or [],
    }
    metadata = {"name": "nodejs-app", "namespace": "default", "generation": generation}
    if revision is not None:
        metadata["annotations"] = {"deployment.kubernetes.io/revision": str(revision)}
    return json.dumps(
        {
            "kind": "Deployment",
            "metadata": metadata,
            "spec": {"replicas": desired},
            "status": status,
        }
    )


def pods_json(*waiting_reasons: str) -> str:
    """``kubectl get pods -o json`` output with one pod per waiting reason."""
    items = []
    for reason in waiting_reasons:
        items.append(
            {
                "metadata": {"name": f"nodejs-app-{len(items)}"},
                "status": {
                    "containerStatuses": [
                        {"name": "nodejs-app", "state": {"waiting": {"reason": reason}}}
                    ]
                },
            }
        )
    return json.dumps({"kind": "List", "items": items})


def replicasets_json(*revisions: tuple[int, str]) -> str:
    """``kubectl get replicasets -o json`` output, one per (revision, hash)."""
    items = [
        {
            "metadata": {
                "name": f"nodejs-app-{template_hash}",
                "labels": {"app": "nodejs", "pod-template-hash": template_hash},
                "annotations": {"deployment.kubernetes.io/revision": str(revision)},
                "ownerReferences": [{"kind": "Deployment", "name": "nodejs-app"}],
            }
        }
        for revision, template_hash in revisions
    ]
    return json.dumps({"kind": "List", "items": items})


def labeled_pods_json(*pods: tuple[str, Optional[str]]) -> str:
    """``kubectl get pods -o json`` output, one pod per (template hash, waiting reason)."""
    items = []
    for template_hash, reason in pods:
        state = {"waiting": {"reason": reason}} if reason else {"running": {}}
        items.append(
            {
                "metadata": {
                    "name": f"nodejs-app-{template_hash}-{len(items)}",
                    "labels": {"app": "nodejs", "pod-template-hash": template_hash},
                },
                "status": {"containerStatuses": [{"name": "nodejs-app", "state": state}]},
            }
        )
    return json.dumps({"kind": "List", "items": items})
