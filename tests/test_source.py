"""Tests for the git source provider."""

import shutil
from unittest.mock import MagicMock, patch

import pytest
from git import Actor, GitCommandError, Repo

from cdpipeline.source import CheckoutError, GitSourceProvider

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

AUTHOR = Actor("Pipeline Tests", "tests@example.com")


@pytest.fixture
def origin(tmp_path):
    path = tmp_path / "origin"
    repo = Repo.init(path)
    (path / "Dockerfile").write_text("FROM node:18-alpine\n")
    (path / "package.json").write_text('{"name": "app"}\n')
    repo.index.add(["Dockerfile", "package.json"])
    repo.index.commit("initial", author=AUTHOR, committer=AUTHOR)
    repo.git.branch("-M", "main")
    yield repo
    repo.close()


class TestGitSourceProvider:
    @requires_git
    def test_checkout(self, origin, tmp_path):
        dest = tmp_path / "workspace" / "source"
        tree = GitSourceProvider().checkout(str(origin.working_dir), "main", dest)

        assert tree.path == dest
        assert tree.branch == "main"
        assert tree.commit == origin.head.commit.hexsha
        assert (dest / "Dockerfile").exists()

    @requires_git
    def test_checkout_replaces_stale_tree(self, origin, tmp_path):
        dest = tmp_path / "source"
        dest.mkdir()
        (dest / "stale.txt").write_text("old")
        GitSourceProvider().checkout(str(origin.working_dir), None, dest)
        assert not (dest / "stale.txt").exists()

    @requires_git
    def test_unknown_branch(self, origin, tmp_path):
        with pytest.raises(CheckoutError) as exc_info:
            GitSourceProvider().checkout(str(origin.working_dir), "nope", tmp_path / "source")
        assert exc_info.value.branch == "nope"
        assert not (tmp_path / "source").exists()

    @patch("cdpipeline.source.provider.Repo.clone_from")
    def test_clone_failure_wrapped(self, mock_clone, tmp_path):
        mock_clone.side_effect = GitCommandError(
            "clone", 128, stderr="fatal: repository 'https://example.com/x.git/' not found"
        )
        with pytest.raises(CheckoutError, match="not found") as exc_info:
            GitSourceProvider().checkout("https://example.com/x.git", "main", tmp_path / "source")
        assert exc_info.value.url == "https://example.com/x.git"

    @patch("cdpipeline.source.provider.Repo.clone_from")
    def test_shallow_clone_of_branch(self, mock_clone, tmp_path):
        repo = MagicMock()
        repo.head.commit.hexsha = "a" * 40
        mock_clone.return_value = repo

        GitSourceProvider(default_branch="develop").checkout("url", None, tmp_path / "source")

        mock_clone.assert_called_once_with("url", tmp_path / "source", branch="develop", depth=1)
        repo.close.assert_called_once()

    @requires_git
    def test_from_local_git_path(self, origin, tmp_path):
        tree = GitSourceProvider().from_local_path(origin.working_dir, tmp_path / "source")
        assert tree.commit == origin.head.commit.hexsha
        assert tree.branch == "main"
        assert not (tmp_path / "source" / ".git").exists()

    def test_from_plain_directory(self, tmp_path):
        app = tmp_path / "app"
        app.mkdir()
        (app / "Dockerfile").write_text("FROM scratch\n")
        tree = GitSourceProvider().from_local_path(app, tmp_path / "source")
        assert tree.commit is None
        assert (tmp_path / "source" / "Dockerfile").exists()

    def test_from_missing_directory(self, tmp_path):
        with pytest.raises(CheckoutError):
            GitSourceProvider().from_local_path(tmp_path / "missing", tmp_path / "source")
