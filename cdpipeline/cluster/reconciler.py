"""ClusterReconciler - asserts desired state and watches the rollout converge."""

import json
import logging
import time
from typing import Callable, Optional

from cdpipeline.commands import Command, CommandResult
from cdpipeline.contexts import ExecutionContext

from .descriptor import DeploymentDescriptor
from .exceptions import ClusterCommandError, ClusterError, RolloutFailedError, RolloutTimeoutError
from .models import ApplyResult, RolloutObservation, RolloutOutcome, RolloutResult

logger = logging.getLogger(__name__)

# kubectl diff exits 1 when differences were found, >1 on error
DIFF_CHANGED_EXIT_CODE = 1


class ClusterReconciler:
    """Applies a deployment descriptor and polls its rollout.

    All cluster access goes through ``kubectl`` inside the cluster-client
    context; the kubeconfig arrives through the context's scoped
    environment (``KUBECONFIG``).

    Example usage:
        reconciler = ClusterReconciler(pool.acquire("cluster"))
        reconciler.apply(descriptor)
        result = reconciler.wait_for_rollout("nodejs-app", "default", timeout=120)
    """

    def __init__(
        self,
        context: ExecutionContext,
        kubectl: str = "kubectl",
        poll_interval: float = 5.0,
        request_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
    ):
        """Initialize the reconciler.

        Args:
            context: Cluster-client execution context.
            kubectl: Cluster client executable.
            poll_interval: Seconds between rollout status reads.
            request_timeout: Seconds before a single client call is killed.
            clock: Monotonic clock (injectable for tests).
            sleep: Sleep function (injectable for tests).
        """
        self._context = context
        self._kubectl = kubectl
        self._poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._clock = clock
        self._sleep = sleep

    def _run(self, args: list[str], description: str, stdin: Optional[str] = None) -> CommandResult:
        command = Command(
            [self._kubectl] + args,
            description=description,
            timeout=self._request_timeout,
            stdin=stdin,
        )
        return self._context.run(command)

    def apply(self, descriptor: DeploymentDescriptor) -> ApplyResult:
        """Assert the descriptor's desired state on the cluster.

        The manifest is diffed first; an unchanged cluster is left alone, so
        applying the same descriptor twice is a no-op.

        Returns:
            ApplyResult telling whether anything changed.

        Raises:
            ClusterCommandError: If the diff or the apply fails.
        """
        manifest = descriptor.to_yaml()
        diff = self._run(["diff", "-f", "-"], "diff desired state", stdin=manifest)
        if diff.exit_code == 0:
            logger.info("Cluster already matches %s/%s; nothing to apply", descriptor.namespace, descriptor.name)
            return ApplyResult(changed=False, output=diff.stdout)
        if diff.exit_code != DIFF_CHANGED_EXIT_CODE:
            raise ClusterCommandError("diff", diff)

        result = self._run(["apply", "-f", "-"], "apply desired state", stdin=manifest)
        if not result.succeeded:
            raise ClusterCommandError("apply", result)
        logger.info("Applied %s/%s (image %s)", descriptor.namespace, descriptor.name, descriptor.image)
        return ApplyResult(changed=True, output=result.stdout, diff=diff.stdout)

    def _get_json(self, args: list[str], operation: str) -> dict:
        result = self._run(["get"] + args + ["-o", "json"], f"get {operation}")
        if not result.succeeded:
            raise ClusterCommandError(f"get {operation}", result)
        try:
            return json.loads(result.stdout)
        except ValueError as e:
            raise ClusterError(f"kubectl get {operation} returned invalid JSON: {e}") from e

    def observe(self, name: str, namespace: str, selector: Optional[str] = None) -> RolloutObservation:
        """Read the deployment (and its ReplicaSets and pods) once.

        Raises:
            ClusterError: If the status cannot be read.
        """
        deployment = self._get_json(["deployment", name, "-n", namespace], "deployment")
        pods = replica_sets = None
        if selector:
            replica_sets = self._get_json(
                ["replicasets", "-n", namespace, "-l", selector], "replicasets"
            )
            pods = self._get_json(["pods", "-n", namespace, "-l", selector], "pods")
        return RolloutObservation.from_objects(
            deployment, pods, observed_at=self._clock(), replica_sets=replica_sets
        )

    def wait_for_rollout(
        self,
        name: str,
        namespace: str,
        timeout: float = 120.0,
        selector: Optional[str] = None,
    ) -> RolloutResult:
        """Poll until the rollout converges, fails, or ``timeout`` elapses.

        A status read that fails is treated as transient and polling
        continues; only the timeout ends the wait in that case.

        Returns:
            RolloutResult with outcome CONVERGED, FAILED or TIMED_OUT.
        """
        start = self._clock()
        observations = 0
        last_progress = ""
        logger.info("Waiting up to %gs for rollout of %s/%s", timeout, namespace, name)

        while True:
            try:
                observation = self.observe(name, namespace, selector)
            except ClusterError as e:
                logger.warning("Rollout status read failed, retrying: %s", e)
            else:
                observations += 1
                last_progress = observation.progress
                elapsed = self._clock() - start
                logger.debug("Rollout %s/%s: %s", namespace, name, last_progress)
                if observation.converged:
                    logger.info("Rollout of %s/%s converged after %.1fs", namespace, name, elapsed)
                    return RolloutResult(
                        RolloutOutcome.CONVERGED, observations, elapsed, last_progress=last_progress
                    )
                reason = observation.failure_reason()
                if reason:
                    logger.error("Rollout of %s/%s failed: %s", namespace, name, reason)
                    return RolloutResult(
                        RolloutOutcome.FAILED, observations, elapsed, reason, last_progress
                    )

            elapsed = self._clock() - start
            if elapsed >= timeout:
                reason = f"did not converge within {timeout:g}s"
                if last_progress:
                    reason += f" ({last_progress})"
                logger.error("Rollout of %s/%s %s", namespace, name, reason)
                return RolloutResult(
                    RolloutOutcome.TIMED_OUT, observations, elapsed, reason, last_progress
                )
            self._sleep(min(self._poll_interval, timeout - elapsed))

    def verify_rollout(
        self,
        name: str,
        namespace: str,
        timeout: float = 120.0,
        selector: Optional[str] = None,
    ) -> RolloutResult:
        """Wait for the rollout and raise unless it converged.

        Raises:
            RolloutTimeoutError: If the timeout elapsed first.
            RolloutFailedError: If the cluster reported a failure.
        """
        result = self.wait_for_rollout(name, namespace, timeout, selector)
        if result.outcome is RolloutOutcome.TIMED_OUT:
            raise RolloutTimeoutError(name, namespace, result.reason, result.elapsed_seconds)
        if result.outcome is RolloutOutcome.FAILED:
            raise RolloutFailedError(name, namespace, result.reason, result.elapsed_seconds)
        return result
