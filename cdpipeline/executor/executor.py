"""PipelineExecutor - runs stages in order and routes to the post hooks."""

import logging
import time
from typing import Any, Optional

from cdpipeline.commands import AbortSignal, CommandFailedError, RunAbortedError
from cdpipeline.config import PipelineConfig
from cdpipeline.contexts import ContextPool
from cdpipeline.credentials import CredentialScopeManager
from cdpipeline.errors import PipelineError

from .hooks import PostHooks
from .models import HookResult, PipelineRun, RunStatus, StageResult, StageStatus
from .stage import Stage, StageContext

logger = logging.getLogger(__name__)


class PipelineExecutor:
    """Runs an ordered list of stages, then the post hooks.

    Stages run strictly one after another. The first stage that fails halts
    the sequence and the remaining stages are recorded as skipped. The run's
    status is sealed before any hook runs, so hooks can read it but never
    change it; a hook that raises is logged and recorded, nothing more.

    Example:
        executor = PipelineExecutor(config, pool, CredentialScopeManager(store))
        run = executor.run(stages)
        print(run.status)
    """

    def __init__(
        self,
        config: PipelineConfig,
        pool: ContextPool,
        credentials: CredentialScopeManager,
        hooks: Optional[PostHooks] = None,
        abort: Optional[AbortSignal] = None,
    ):
        self._config = config
        self._pool = pool
        self._credentials = credentials
        self._hooks = hooks or PostHooks()
        self._abort = abort or AbortSignal()

    @property
    def abort_signal(self) -> AbortSignal:
        return self._abort

    def _run_stage(self, stage: Stage, run: PipelineRun, state: dict[str, Any]) -> StageResult:
        """Run one stage inside its context and credential scope."""
        start = time.monotonic()
        details: dict[str, Any] = {}
        commands = []
        logger.info("Stage '%s' starting in context '%s'", stage.name, stage.context)

        def finish(status: StageStatus, error: Optional[str] = None, output: str = "") -> StageResult:
            end = time.monotonic()
            return StageResult(
                name=stage.name,
                status=status,
                duration_seconds=round(end - start, 2),
                details=details,
                error=error,
                output=output,
                commands=commands,
                started_at=start,
                finished_at=end,
            )

        try:
            context = self._pool.acquire(stage.context)
            with self._credentials.scope(stage.bindings, context) as scoped:
                for command in stage.commands:
                    result = context.execute(command)
                    commands.append(result)
                    if result.absorbed:
                        details.setdefault("absorbed_failures", []).append(command.label)
                if stage.action is not None:
                    stage.action(StageContext(run, context, scoped, state, details))
        except (KeyboardInterrupt, RunAbortedError) as e:
            if isinstance(e, KeyboardInterrupt):
                self._abort.set("interrupted")
            reason = self._abort.reason or str(e)
            logger.warning("Stage '%s' aborted: %s", stage.name, reason)
            return finish(StageStatus.ABORTED, error=f"aborted: {reason}")
        except Exception as e:
            logger.exception("Stage '%s' failed", stage.name)
            if isinstance(e, CommandFailedError):
                commands.append(e.result)
            output = e.output if isinstance(e, PipelineError) else ""
            return finish(StageStatus.FAILED, error=str(e), output=output)

        result = finish(StageStatus.SUCCEEDED)
        logger.info("Stage '%s' succeeded in %.2fs", stage.name, result.duration_seconds)
        return result

    def _run_hooks(self, run: PipelineRun) -> None:
        for phase, hook in self._hooks.for_status(run.status):
            start = time.monotonic()
            try:
                hook.fn(run)
            except Exception as e:
                logger.exception("%s hook '%s' failed", phase.capitalize(), hook.name)
                run.record_hook(
                    HookResult(hook.name, phase, False, round(time.monotonic() - start, 2), str(e))
                )
            else:
                run.record_hook(HookResult(hook.name, phase, True, round(time.monotonic() - start, 2)))

    def _release_contexts(self) -> None:
        errors = self._pool.release_all()
        if errors:
            logger.warning("Some context homes could not be removed: %s", errors)

    def run(self, stages: list[Stage]) -> PipelineRun:
        """Execute the stages, seal the status, then run the post hooks.

        Returns:
            The closed PipelineRun.
        """
        run = PipelineRun(build_number=self._config.build_number)
        state: dict[str, Any] = {}
        status = RunStatus.SUCCESS
        halted_by: Optional[str] = None
        logger.info("Run %s starting (%d stages)", run.build_number, len(stages))

        try:
            self._pool.prepare()
        except OSError as e:
            logger.exception("Could not prepare the run's volumes")
            run.error = f"could not prepare volumes: {e}"
            status = RunStatus.FAILURE
            halted_by = "setup"

        for stage in stages:
            if halted_by is None and self._abort.is_set():
                status = RunStatus.ABORTED
                halted_by = "abort"
                run.error = f"aborted: {self._abort.reason}"
            if halted_by is not None:
                run.record_stage(StageResult.skip(stage.name, f"halted by {halted_by}"))
                continue

            result = self._run_stage(stage, run, state)
            run.record_stage(result)
            if result.status is StageStatus.FAILED:
                status = RunStatus.FAILURE
                halted_by = stage.name
            elif result.status is StageStatus.ABORTED:
                status = RunStatus.ABORTED
                halted_by = "abort"
                run.error = result.error

        run.seal(status)
        logger.info("Run %s finished with status %s", run.build_number, status.value.upper())
        try:
            self._run_hooks(run)
        finally:
            self._release_contexts()
            run.close()
        return run
