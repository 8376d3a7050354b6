"""DiagnosticsCollector - best-effort cluster inspection after a failure."""

import logging
from typing import Optional

from cdpipeline.commands import Command
from cdpipeline.contexts import ExecutionContext
from cdpipeline.errors import PipelineError

from .models import DiagnosticBlock

logger = logging.getLogger(__name__)


def format_blocks(blocks: list[DiagnosticBlock]) -> str:
    """Render blocks as labelled text, in collection order."""
    return "\n\n".join(block.render() for block in blocks)


class DiagnosticsCollector:
    """Runs a fixed, ordered list of read-only cluster inspection commands.

    Collection is best-effort: a command that fails (or cannot run at all)
    yields a block marked "diagnostic unavailable: <reason>" and collection
    moves on. Nothing here influences the run's status.

    Example usage:
        collector = DiagnosticsCollector(pool.acquire("cluster"))
        blocks = collector.collect("app=nodejs", "default", name="nodejs-app")
        print(format_blocks(blocks))
    """

    def __init__(
        self,
        context: ExecutionContext,
        kubectl: str = "kubectl",
        tail_lines: int = 50,
        events_limit: int = 20,
        command_timeout: float = 30.0,
    ):
        self._context = context
        self._kubectl = kubectl
        self._tail_lines = tail_lines
        self._events_limit = events_limit
        self._command_timeout = command_timeout

    def _commands(
        self, selector: str, namespace: str, name: Optional[str]
    ) -> list[tuple[str, list[str]]]:
        k = self._kubectl
        describe = (
            [k, "describe", "deployment", name, "-n", namespace]
            if name
            else [k, "describe", "pods", "-n", namespace, "-l", selector]
        )
        return [
            (
                "cluster status",
                [k, "get", "deployments,replicasets,pods,services", "-n", namespace, "-l", selector, "-o", "wide"],
            ),
            ("object description", describe),
            (
                "pod logs",
                [
                    k,
                    "logs",
                    "-n",
                    namespace,
                    "-l",
                    selector,
                    "--all-containers=true",
                    "--prefix",
                    f"--tail={self._tail_lines}",
                ],
            ),
            (
                "recent events",
                [k, "get", "events", "-n", namespace, "--sort-by=.metadata.creationTimestamp"],
            ),
        ]

    def collect(
        self, selector: str, namespace: str, name: Optional[str] = None
    ) -> list[DiagnosticBlock]:
        """Run every inspection command and return one block per command."""
        blocks = []
        for label, args in self._commands(selector, namespace, name):
            command = Command(args, description=label, timeout=self._command_timeout)
            blocks.append(self._collect_one(label, command))
        available = sum(1 for block in blocks if block.available)
        logger.info("Collected %d/%d diagnostic blocks", available, len(blocks))
        return blocks

    def _collect_one(self, label: str, command: Command) -> DiagnosticBlock:
        try:
            result = self._context.run(command)
        except (PipelineError, OSError) as e:
            logger.warning("Diagnostic '%s' could not run: %s", label, e)
            return DiagnosticBlock.unavailable(label, command.display, str(e))

        if not result.succeeded:
            reason = result.stderr.strip() or f"exit code {result.exit_code}"
            if result.timed_out:
                reason = f"timed out after {self._command_timeout:g}s"
            logger.warning("Diagnostic '%s' unavailable: %s", label, reason)
            return DiagnosticBlock.unavailable(label, command.display, reason)

        output = result.stdout
        if label == "recent events":
            output = self._tail_events(output)
        return DiagnosticBlock(label=label, command=command.display, output=output)

    def _tail_events(self, output: str) -> str:
        lines = output.splitlines()
        if len(lines) <= self._events_limit + 1:
            return output
        # Keep the column header
        return "\n".join([lines[0]] + lines[-self._events_limit:])

    def unavailable(
        self, reason: str, selector: str, namespace: str, name: Optional[str] = None
    ) -> list[DiagnosticBlock]:
        """Blocks for when the cluster cannot be reached at all."""
        return [
            DiagnosticBlock.unavailable(label, " ".join(args), reason)
            for label, args in self._commands(selector, namespace, name)
        ]
