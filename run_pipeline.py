"""CLI entry point for the delivery pipeline."""

import argparse
import signal
import sys

from dotenv import load_dotenv

from cdpipeline.commands import AbortSignal
from cdpipeline.config import PipelineConfig
from cdpipeline.errors import ConfigError
from cdpipeline.executor import DeliveryPipeline, PipelineRun, RunStatus, StageStatus
from cdpipeline.logging_config import configure_logging
from cdpipeline.registry import TagConflictPolicy

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 130
EXIT_CONFIG_ERROR = 2

EXIT_CODES = {
    RunStatus.SUCCESS: EXIT_SUCCESS,
    RunStatus.FAILURE: EXIT_FAILURE,
    RunStatus.ABORTED: EXIT_ABORTED,
}

STAGE_LABELS = {
    StageStatus.SUCCEEDED: "OK",
    StageStatus.FAILED: "FAILED",
    StageStatus.SKIPPED: "SKIPPED",
    StageStatus.ABORTED: "ABORTED",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the continuous-delivery pipeline")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (overrides LOG_LEVEL env var)",
    )
    parser.add_argument("--build-number", help="Run identifier and image tag (overrides BUILD_NUMBER)")
    parser.add_argument("--repo-url", help="Application repository (overrides REPO_URL)")
    parser.add_argument("--branch", help="Branch to check out (overrides BRANCH)")
    parser.add_argument("--namespace", help="Target namespace (overrides NAMESPACE)")
    parser.add_argument(
        "--rollout-timeout",
        type=float,
        help="Seconds to wait for the rollout (overrides ROLLOUT_TIMEOUT)",
    )
    parser.add_argument(
        "--tag-policy",
        choices=[p.value for p in TagConflictPolicy],
        help="What to do when the image tag already exists (overrides TAG_CONFLICT_POLICY)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the stage plan and exit without running anything",
    )
    return parser


def print_summary(run: PipelineRun) -> None:
    print("\n--- Pipeline Summary ---")
    for stage in run.stages:
        print(f"  {stage.name}: {STAGE_LABELS[stage.status]} ({stage.duration_seconds}s)")
        for key, value in stage.details.items():
            print(f"    {key}: {value}")
        if stage.error:
            print(f"    error: {stage.error}")
    for hook in run.hook_results:
        if not hook.success:
            print(f"  hook {hook.phase}/{hook.name}: FAILED ({hook.error})")

    if run.reports:
        print("\n--- Failure Report ---", file=sys.stderr)
        for section in run.reports:
            print(section, file=sys.stderr)

    print(f"\nResult: {run.status.value.upper()}")


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)
    configure_logging(level_override=args.log_level)

    try:
        config = PipelineConfig.from_env().replace(
            build_number=args.build_number,
            repo_url=args.repo_url,
            branch=args.branch,
            namespace=args.namespace,
            rollout_timeout=args.rollout_timeout,
            tag_conflict_policy=TagConflictPolicy(args.tag_policy) if args.tag_policy else None,
        )
        config.validate()
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    abort = AbortSignal()
    pipeline = DeliveryPipeline(config, abort=abort)

    if args.dry_run:
        print("\n".join(pipeline.plan()))
        return EXIT_SUCCESS

    def handle_signal(signum, frame):
        abort.set(f"received {signal.Signals(signum).name}")

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    run = pipeline.run()
    print_summary(run)
    return EXIT_CODES[run.status]


if __name__ == "__main__":
    sys.exit(main())
