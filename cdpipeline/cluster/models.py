"""Data models for the cluster module."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Pod waiting reasons that mean the rollout will not converge on its own
FAILED_WAITING_REASONS = frozenset(
    {"CrashLoopBackOff", "ImagePullBackOff", "ErrImagePull", "CreateContainerConfigError"}
)

PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"

REVISION_ANNOTATION = "deployment.kubernetes.io/revision"
TEMPLATE_HASH_LABEL = "pod-template-hash"


def _revision(obj: dict[str, Any]) -> Optional[int]:
    value = obj.get("metadata", {}).get("annotations", {}).get(REVISION_ANNOTATION)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def current_template_hash(
    deployment: dict[str, Any], replica_sets: Optional[dict[str, Any]]
) -> Optional[str]:
    """Pod template hash of the deployment's current ReplicaSet.

    The current ReplicaSet carries the same revision annotation as the
    deployment. When the deployment has no revision yet, the newest owned
    ReplicaSet is used. Returns "" when the deployment has a revision but
    its ReplicaSet does not exist yet, and None when ReplicaSets were not
    read.
    """
    if replica_sets is None:
        return None
    name = deployment.get("metadata", {}).get("name")
    owned = []
    for rs in replica_sets.get("items", []):
        owners = rs.get("metadata", {}).get("ownerReferences", [])
        if owners and not any(o.get("kind") == "Deployment" and o.get("name") == name for o in owners):
            continue
        owned.append(rs)

    revision = _revision(deployment)
    if revision is not None:
        current = [rs for rs in owned if _revision(rs) == revision]
    else:
        ranked = [rs for rs in owned if _revision(rs) is not None]
        current = [max(ranked, key=_revision)] if ranked else []
    if not current:
        return "" if revision is not None else None
    return current[0].get("metadata", {}).get("labels", {}).get(TEMPLATE_HASH_LABEL)


class RolloutOutcome(Enum):
    """Terminal state of a rollout wait."""

    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class ApplyResult:
    """Result of asserting desired state.

    Attributes:
        changed: False when the cluster already matched the descriptor.
        output: Client output of the apply (or of the diff when unchanged).
        diff: Client diff output.
    """

    changed: bool
    output: str = ""
    diff: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"changed": self.changed, "output": self.output, "diff": self.diff}


@dataclass
class RolloutObservation:
    """Point-in-time read of a deployment's rollout state.

    Attributes:
        desired: Replica count asked for.
        updated: Replicas running the current template.
        ready: Replicas passing their readiness probe.
        available: Replicas available for at least minReadySeconds.
        total: All replicas, old template included.
        generation: Generation of the deployment spec.
        observed_generation: Generation the controller has acted on.
        conditions: Condition type -> (status, reason).
        waiting_reasons: Waiting reasons of the containers of pods created by
            the current ReplicaSet. Pods left over from earlier revisions
            are ignored.
        observed_at: Monotonic timestamp of the read.
    """

    desired: int
    updated: int = 0
    ready: int = 0
    available: int = 0
    total: int = 0
    generation: int = 0
    observed_generation: int = 0
    conditions: dict[str, tuple[str, str]] = field(default_factory=dict)
    waiting_reasons: list[str] = field(default_factory=list)
    observed_at: float = 0.0

    @classmethod
    def from_objects(
        cls,
        deployment: dict[str, Any],
        pods: Optional[dict[str, Any]] = None,
        observed_at: float = 0.0,
        replica_sets: Optional[dict[str, Any]] = None,
    ) -> "RolloutObservation":
        """Build an observation from ``kubectl get -o json`` documents.

        Without ``replica_sets`` every pod in ``pods`` is considered.
        """
        spec = deployment.get("spec", {})
        status = deployment.get("status", {})
        conditions = {
            c.get("type", ""): (c.get("status", ""), c.get("reason", ""))
            for c in status.get("conditions", [])
        }
        template_hash = current_template_hash(deployment, replica_sets)
        generation = deployment.get("metadata", {}).get("generation", 0)
        if replica_sets is not None and status.get("observedGeneration", 0) < generation:
            # the controller has not created the new ReplicaSet yet
            template_hash = ""
        waiting = []
        for pod in (pods or {}).get("items", []):
            labels = pod.get("metadata", {}).get("labels", {})
            if template_hash is not None and labels.get(TEMPLATE_HASH_LABEL) != template_hash:
                continue
            pod_status = pod.get("status", {})
            statuses = pod_status.get("initContainerStatuses", []) + pod_status.get(
                "containerStatuses", []
            )
            for container in statuses:
                reason = container.get("state", {}).get("waiting", {}).get("reason")
                if reason:
                    waiting.append(reason)
        return cls(
            desired=spec.get("replicas", 1),
            updated=status.get("updatedReplicas", 0),
            ready=status.get("readyReplicas", 0),
            available=status.get("availableReplicas", 0),
            total=status.get("replicas", 0),
            generation=generation,
            observed_generation=status.get("observedGeneration", 0),
            conditions=conditions,
            waiting_reasons=waiting,
            observed_at=observed_at,
        )

    @property
    def converged(self) -> bool:
        """Whether every desired replica runs the current template and is ready."""
        return (
            self.observed_generation >= self.generation
            and self.updated >= self.desired
            and self.ready >= self.desired
            and self.available >= self.desired
            and self.total <= self.updated
        )

    def failure_reason(self) -> Optional[str]:
        """Reason the cluster reports the rollout as failed, if any."""
        status, reason = self.conditions.get("Progressing", ("", ""))
        if status == "False" and reason == PROGRESS_DEADLINE_EXCEEDED:
            return PROGRESS_DEADLINE_EXCEEDED
        for waiting in self.waiting_reasons:
            if waiting in FAILED_WAITING_REASONS:
                return f"pod waiting: {waiting}"
        return None

    @property
    def progress(self) -> str:
        return (
            f"{self.updated}/{self.desired} updated, {self.ready}/{self.desired} ready, "
            f"{self.available}/{self.desired} available"
        )


@dataclass
class RolloutResult:
    """Outcome of waiting for a rollout.

    Attributes:
        outcome: CONVERGED, TIMED_OUT or FAILED.
        observations: Number of status reads taken.
        elapsed_seconds: Time spent waiting.
        reason: Why the rollout did not converge (empty when it did).
        last_progress: Replica counts at the last successful read.
    """

    outcome: RolloutOutcome
    observations: int
    elapsed_seconds: float
    reason: str = ""
    last_progress: str = ""

    @property
    def converged(self) -> bool:
        return self.outcome is RolloutOutcome.CONVERGED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "outcome": self.outcome.value,
            "observations": self.observations,
            "elapsed_seconds": self.elapsed_seconds,
            "reason": self.reason,
            "last_progress": self.last_progress,
        }
