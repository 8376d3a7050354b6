"""Exceptions for the cluster module."""

from cdpipeline.commands import CommandResult
from cdpipeline.errors import PipelineError


class ClusterError(PipelineError):
    """Base exception for cluster errors."""

    pass


class DescriptorError(ClusterError):
    """Raised when a deployment descriptor is malformed."""

    pass


class ClusterCommandError(ClusterError):
    """Raised when a cluster client call fails.

    Attributes:
        operation: What was attempted (e.g. "apply").
        result: The CommandResult of the client call.
    """

    def __init__(self, operation: str, result: CommandResult):
        self.operation = operation
        self.result = result
        self.output = result.output
        detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ""
        msg = f"kubectl {operation} failed with exit code {result.exit_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class RolloutError(ClusterError):
    """Base exception for a rollout that did not converge.

    Attributes:
        name: Deployment name.
        namespace: Deployment namespace.
        reason: Why the rollout is considered unsuccessful.
        elapsed_seconds: Time spent waiting.
    """

    def __init__(self, name: str, namespace: str, reason: str, elapsed_seconds: float):
        self.name = name
        self.namespace = namespace
        self.reason = reason
        self.elapsed_seconds = elapsed_seconds
        super().__init__(f"Rollout of {namespace}/{name}: {reason}")


class RolloutTimeoutError(RolloutError):
    """Raised when the rollout does not converge within its timeout."""

    pass


class RolloutFailedError(RolloutError):
    """Raised when the cluster reports the rollout as failed."""

    pass
