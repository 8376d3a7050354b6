"""Pipeline executor.

Runs ordered stages in scoped execution contexts and routes the sealed
run to its post hooks.

Public API:
    - PipelineExecutor: Sequential stage execution with post hooks
    - DeliveryPipeline: The standard checkout/test/build/deploy/verify pipeline
    - Stage, StageContext: Stage definition and what its action receives
    - PostHooks, Hook: always / success / failure hooks
    - PipelineRun, StageResult, HookResult: Run records
    - RunStatus, StageStatus: Outcomes
    - ExecutorError, RunSealedError: Exceptions
"""

from .exceptions import ExecutorError, RunSealedError
from .executor import PipelineExecutor
from .hooks import ALWAYS, FAILURE, SUCCESS, Hook, PostHooks
from .models import HookResult, PipelineRun, RunStatus, StageResult, StageStatus
from .pipeline import DeliveryPipeline
from .stage import Stage, StageAction, StageContext

__all__ = [
    "PipelineExecutor",
    "DeliveryPipeline",
    "Stage",
    "StageAction",
    "StageContext",
    "PostHooks",
    "Hook",
    "ALWAYS",
    "SUCCESS",
    "FAILURE",
    "PipelineRun",
    "StageResult",
    "HookResult",
    "RunStatus",
    "StageStatus",
    "ExecutorError",
    "RunSealedError",
]
