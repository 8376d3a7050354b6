"""Tests for execution contexts and the context pool."""

import os
import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cdpipeline.commands import Command, CommandFailedError, CommandResult
from cdpipeline.config import PipelineConfig
from cdpipeline.contexts import (
    BUILD_CACHE,
    WORKSPACE,
    ContainerLauncher,
    ContextLaunchError,
    ContextPool,
    ContextTemplate,
    LocalLauncher,
    UnknownContextError,
    make_launcher,
)


@pytest.fixture
def runner():
    runner = MagicMock()
    runner.run.return_value = CommandResult(command="cmd", exit_code=0)
    return runner


@pytest.fixture
def pool(tmp_path, runner):
    pool = ContextPool(
        tmp_path / "run-1",
        [
            ContextTemplate("source", image="node:18"),
            ContextTemplate("cluster", image="kubectl", volumes=(WORKSPACE,), env={"KIND": "k8s"}),
        ],
        runner=runner,
    )
    pool.prepare()
    return pool


class TestContextPool:
    def test_prepare_creates_volumes(self, pool, tmp_path):
        for name in ("workspace", "build-cache", "cache-config"):
            assert (tmp_path / "run-1" / "volumes" / name).is_dir()

    def test_acquire_creates_private_home(self, pool):
        context = pool.acquire("source")
        assert context.home.is_dir()
        assert stat.S_IMODE(context.home.stat().st_mode) == 0o700

    def test_acquire_reuses_context(self, pool):
        assert pool.acquire("source") is pool.acquire("source")

    def test_contexts_share_workspace_but_not_home(self, pool):
        source = pool.acquire("source")
        cluster = pool.acquire("cluster")
        assert source.workspace == cluster.workspace
        assert source.home != cluster.home

    def test_context_mounts_only_declared_volumes(self, pool):
        cluster = pool.acquire("cluster")
        with pytest.raises(KeyError):
            cluster.volume_path(BUILD_CACHE)

    def test_unknown_identity(self, pool):
        with pytest.raises(UnknownContextError) as exc_info:
            pool.acquire("deployer")
        assert exc_info.value.known == ["source", "cluster"]

    def test_release_all_removes_homes(self, pool):
        home = pool.acquire("source").home
        (home / "secret").write_text("x")
        assert pool.release_all() == []
        assert not home.exists()
        assert pool.volume_path(WORKSPACE).is_dir()


class TestExecutionContext:
    def test_environment_excludes_pipeline_secrets(self, pool):
        context = pool.acquire("cluster")
        with patch.dict(os.environ, {"DOCKER_HUB_PASSWORD": "hunter2", "PATH": "/usr/bin"}):
            env = context.environment()
        assert "DOCKER_HUB_PASSWORD" not in env
        assert env["PATH"] == "/usr/bin"
        assert env["HOME"] == str(context.home)
        assert env["WORKSPACE"] == str(context.workspace)
        assert env["KIND"] == "k8s"

    def test_scoped_env_visible_until_cleared(self, pool):
        context = pool.acquire("source")
        context.set_scoped_env("NPM_TOKEN", "abc")
        assert context.environment()["NPM_TOKEN"] == "abc"
        context.clear_scoped_env("NPM_TOKEN")
        assert "NPM_TOKEN" not in context.environment()

    def test_command_env_applied(self, pool, runner):
        context = pool.acquire("source")
        context.run(Command(["npm", "ci"], env={"CI": "true"}))
        kwargs = runner.run.call_args.kwargs
        assert kwargs["env"]["CI"] == "true"
        assert kwargs["cwd"] == context.workspace

    def test_execute_raises_on_fatal_failure(self, pool, runner):
        runner.run.return_value = CommandResult(command="npm ci", exit_code=1, stderr="boom")
        with pytest.raises(CommandFailedError) as exc_info:
            pool.acquire("source").execute(Command(["npm", "ci"]))
        assert exc_info.value.output == "boom"

    def test_execute_absorbs_failure(self, pool, runner):
        runner.run.return_value = CommandResult(command="npm test", exit_code=1)
        result = pool.acquire("source").execute(Command.absorbed(["npm", "test"]))
        assert result.absorbed
        assert result.exit_code == 1

    def test_spawn_logs_to_home(self, pool, runner):
        context = pool.acquire("source")
        context.spawn(Command(["buildkitd"]), log_name="buildkitd.log")
        assert runner.spawn.call_args.kwargs["log_path"] == context.home / "logs" / "buildkitd.log"


class TestLaunchers:
    def test_make_launcher(self):
        assert isinstance(make_launcher("local"), LocalLauncher)
        assert isinstance(make_launcher("docker"), ContainerLauncher)
        with pytest.raises(ValueError):
            make_launcher("vm")

    def test_local_workdir(self, pool):
        context = pool.acquire("source")
        spec = LocalLauncher().prepare(context, Command(["ls"], workdir="source"), {})
        assert spec.argv is None
        assert spec.cwd == context.workspace / "source"

    def test_container_wraps_command(self, tmp_path, runner):
        pool = ContextPool(
            tmp_path / "run",
            [ContextTemplate("builder", image="moby/buildkit", privileged=True)],
            runner=runner,
            launcher=ContainerLauncher(host_env={"PATH": "/bin"}),
        )
        context = pool.acquire("builder")
        spec = context.launcher.prepare(
            context, Command("buildctl build", workdir="source"), {"HOME": "/x", "TOKEN": "s3cret"}
        )
        assert spec.argv[:4] == ["docker", "run", "--rm", "--privileged"]
        assert spec.argv[-4:] == ["moby/buildkit", "sh", "-c", "buildctl build"]
        assert "/workspace/source" in spec.argv
        assert "HOME=/home/pipeline" in spec.argv
        # secret values never appear on the docker command line
        assert "s3cret" not in " ".join(spec.argv)
        assert spec.env["TOKEN"] == "s3cret"

    def test_container_translates_paths(self, tmp_path, runner):
        pool = ContextPool(
            tmp_path / "run",
            [ContextTemplate("builder", image="img")],
            runner=runner,
            launcher=ContainerLauncher(host_env={}),
        )
        context = pool.acquire("builder")
        assert context.env_path(context.workspace / "source") == "/workspace/source"
        assert context.env_path(context.home / ".docker") == "/home/pipeline/.docker"
        assert context.env_path(Path("/elsewhere")) == "/elsewhere"

    def test_container_mounts_absolute_paths_for_relative_root(self, tmp_path, runner, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = PipelineConfig(repo_url="https://example.com/app.git", build_number="7")
        pool = ContextPool(
            config.run_root,
            [ContextTemplate("source", image="node:18")],
            runner=runner,
            launcher=ContainerLauncher(host_env={}),
        )
        context = pool.acquire("source")
        spec = context.launcher.prepare(context, Command(["ls"]), {})

        mounts = [spec.argv[i + 1] for i, arg in enumerate(spec.argv) if arg == "-v"]
        assert len(mounts) == 4
        for mount in mounts:
            host_path = Path(mount.split(":")[0])
            assert host_path.is_absolute()
            assert host_path.resolve().is_relative_to(tmp_path.resolve())

    def test_container_requires_image(self, tmp_path, runner):
        pool = ContextPool(
            tmp_path / "run", [ContextTemplate("source")], runner=runner,
            launcher=ContainerLauncher(host_env={}),
        )
        with pytest.raises(ContextLaunchError):
            pool.acquire("source").run(Command(["ls"]))
