"""Integration tests against real tools.

These need a git remote, a BuildKit daemon binary, a registry account and a
cluster, so they are deselected by default.

Run locally:
    REPO_URL=https://github.com/org/app.git IMAGE_NAME=me/app \
    DOCKER_HUB_USERNAME=... DOCKER_HUB_PASSWORD=... KUBECONFIG_FILE=~/.kube/config \
    python -m pytest tests/test_pipeline_integration.py -m integration -v -s
"""

import os
import shutil

import pytest
from dotenv import load_dotenv

from cdpipeline.commands import CommandRunner
from cdpipeline.config import PipelineConfig
from cdpipeline.contexts import ContextPool, ContextTemplate
from cdpipeline.credentials import CredentialScopeManager, EnvSecretStore, FileBinding
from cdpipeline.diagnostics import DiagnosticsCollector
from cdpipeline.executor import DeliveryPipeline, RunStatus
from cdpipeline.source import GitSourceProvider

# Load environment variables
load_dotenv()


@pytest.mark.integration
class TestPipelineIntegration:
    """Tests that need network access and real tooling."""

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_shallow_clone_of_public_repository(self, tmp_path):
        tree = GitSourceProvider().checkout(
            "https://github.com/git-fixtures/basic.git", "master", tmp_path / "source"
        )
        assert len(tree.commit) == 40
        assert (tmp_path / "source" / ".git" / "shallow").exists()

    @pytest.mark.skipif(
        not os.getenv("KUBECONFIG_FILE") or shutil.which("kubectl") is None,
        reason="KUBECONFIG_FILE not set or kubectl not installed",
    )
    def test_diagnostics_against_cluster(self, tmp_path):
        pool = ContextPool(tmp_path / "run", [ContextTemplate("cluster")], runner=CommandRunner())
        pool.prepare()
        context = pool.acquire("cluster")
        manager = CredentialScopeManager(EnvSecretStore())

        with manager.scope([FileBinding("kubeconfig", ".kube/config", "KUBECONFIG")], context):
            blocks = DiagnosticsCollector(context).collect("app=does-not-exist", "default")

        assert [b.label for b in blocks][0] == "cluster status"
        assert blocks[3].available
        pool.release_all()

    @pytest.mark.skipif(
        not os.getenv("REPO_URL") or not os.getenv("KUBECONFIG_FILE"),
        reason="REPO_URL or KUBECONFIG_FILE not set",
    )
    def test_full_run(self, tmp_path):
        config = PipelineConfig.from_env().replace(work_root=tmp_path)
        run = DeliveryPipeline(config).run()
        for report in run.reports:
            print(report)
        assert run.status is RunStatus.SUCCESS
