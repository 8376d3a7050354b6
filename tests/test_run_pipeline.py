"""Tests for the run_pipeline CLI entry point."""

import os
import signal
from unittest.mock import patch

import pytest

import run_pipeline
from cdpipeline.executor import HookResult, PipelineRun, RunStatus, StageResult, StageStatus
from cdpipeline.registry import TagConflictPolicy

BASE_ENV = {"REPO_URL": "https://example.com/app.git", "BUILD_NUMBER": "5"}


def sealed_run(status, stages=(), reports=()):
    run = PipelineRun(build_number="5")
    for stage in stages:
        run.record_stage(stage)
    run.seal(status)
    for report in reports:
        run.add_report(report)
    run.close()
    return run


@pytest.fixture(autouse=True)
def quiet_setup():
    with patch("run_pipeline.load_dotenv"), patch("run_pipeline.configure_logging"), patch(
        "run_pipeline.signal.signal"
    ) as mock_signal:
        yield mock_signal


@pytest.fixture
def mock_pipeline_cls():
    with patch("run_pipeline.DeliveryPipeline") as cls:
        yield cls


class TestMain:
    @pytest.mark.parametrize(
        "status,code",
        [(RunStatus.SUCCESS, 0), (RunStatus.FAILURE, 1), (RunStatus.ABORTED, 130)],
    )
    def test_exit_code_follows_status(self, mock_pipeline_cls, status, code):
        mock_pipeline_cls.return_value.run.return_value = sealed_run(status)
        with patch.dict(os.environ, BASE_ENV, clear=True):
            assert run_pipeline.main([]) == code

    def test_cli_overrides_env(self, mock_pipeline_cls):
        mock_pipeline_cls.return_value.run.return_value = sealed_run(RunStatus.SUCCESS)
        with patch.dict(os.environ, BASE_ENV, clear=True):
            run_pipeline.main(
                ["--build-number", "9", "--namespace", "prod", "--tag-policy", "overwrite", "--rollout-timeout", "300"]
            )
        config = mock_pipeline_cls.call_args.args[0]
        assert config.build_number == "9"
        assert config.namespace == "prod"
        assert config.tag_conflict_policy is TagConflictPolicy.OVERWRITE
        assert config.rollout_timeout == 300
        assert config.repo_url == "https://example.com/app.git"

    def test_config_error_exits_2(self, mock_pipeline_cls, capsys):
        with patch.dict(os.environ, {"BUILD_NUMBER": "5"}, clear=True):
            assert run_pipeline.main([]) == run_pipeline.EXIT_CONFIG_ERROR
        assert "REPO_URL" in capsys.readouterr().err
        mock_pipeline_cls.assert_not_called()

    def test_invalid_env_value_exits_2(self, mock_pipeline_cls):
        with patch.dict(os.environ, dict(BASE_ENV, ROLLOUT_TIMEOUT="soon"), clear=True):
            assert run_pipeline.main([]) == 2

    def test_dry_run_prints_plan(self, mock_pipeline_cls, capsys):
        mock_pipeline_cls.return_value.plan.return_value = ["Run 5: docker.io/nocnex/nodejs:5", "checkout"]
        with patch.dict(os.environ, BASE_ENV, clear=True):
            assert run_pipeline.main(["--dry-run"]) == 0
        assert "checkout" in capsys.readouterr().out
        mock_pipeline_cls.return_value.run.assert_not_called()

    def test_signals_abort_the_run(self, mock_pipeline_cls, quiet_setup):
        mock_pipeline_cls.return_value.run.return_value = sealed_run(RunStatus.ABORTED)
        with patch.dict(os.environ, BASE_ENV, clear=True):
            run_pipeline.main([])

        handlers = {call.args[0]: call.args[1] for call in quiet_setup.call_args_list}
        assert set(handlers) == {signal.SIGINT, signal.SIGTERM}
        abort = mock_pipeline_cls.call_args.kwargs["abort"]
        handlers[signal.SIGTERM](signal.SIGTERM, None)
        assert abort.is_set()
        assert abort.reason == "received SIGTERM"


class TestPrintSummary:
    def test_prints_stages_and_failure_report(self, capsys):
        run = sealed_run(
            RunStatus.FAILURE,
            stages=[
                StageResult("checkout", StageStatus.SUCCEEDED, 1.5, details={"commit": "abc"}),
                StageResult("deploy", StageStatus.FAILED, 0.2, error="kubectl apply failed"),
            ],
            reports=["===== pod logs (kubectl logs) =====\nboom"],
        )
        run_pipeline.print_summary(run)
        captured = capsys.readouterr()

        assert "checkout: OK (1.5s)" in captured.out
        assert "commit: abc" in captured.out
        assert "deploy: FAILED" in captured.out
        assert "error: kubectl apply failed" in captured.out
        assert "Result: FAILURE" in captured.out
        assert "===== pod logs" in captured.err

    def test_reports_failed_hooks(self, capsys):
        run = PipelineRun(build_number="5")
        run.seal(RunStatus.SUCCESS)
        run.record_hook(HookResult("purge_build_cache", "always", False, 0.1, "disk full"))
        run_pipeline.print_summary(run)
        assert "hook always/purge_build_cache: FAILED (disk full)" in capsys.readouterr().out
