"""GitSourceProvider - shallow clones of the application source."""

import logging
import shutil
from pathlib import Path
from typing import Optional

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from .exceptions import CheckoutError
from .models import SourceTree

logger = logging.getLogger(__name__)


class GitSourceProvider:
    """Checks out the application source into the run's workspace.

    Example usage:
        provider = GitSourceProvider()
        tree = provider.checkout("https://github.com/org/app.git", "main", workspace / "source")
        print(tree.commit)
    """

    def __init__(self, default_branch: str = "main"):
        self.default_branch = default_branch

    def checkout(self, url: str, branch: Optional[str], dest: Path) -> SourceTree:
        """Shallow-clone ``url`` at ``branch`` into ``dest``.

        An existing ``dest`` is removed first so a run never builds stale files.

        Args:
            url: Repository URL (https/ssh) or path to a local repository.
            branch: Branch to check out. Defaults to ``default_branch``.
            dest: Destination directory.

        Returns:
            SourceTree describing the checkout.

        Raises:
            CheckoutError: If git fails.
        """
        branch = branch or self.default_branch
        dest = Path(dest)
        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Cloning %s (branch %s) into %s", url, branch, dest)
        repo = None
        try:
            repo = Repo.clone_from(url, dest, branch=branch, depth=1)
            commit = repo.head.commit.hexsha
        except GitCommandError as e:
            shutil.rmtree(dest, ignore_errors=True)
            reason = (e.stderr or str(e)).strip()
            raise CheckoutError(url, branch, reason) from e
        finally:
            if repo is not None:
                repo.close()

        logger.info("Checked out %s at %s", url, commit[:12])
        return SourceTree(path=dest, url=url, branch=branch, commit=commit)

    def from_local_path(self, path: Path, dest: Path) -> SourceTree:
        """Use an existing directory as the source, copied into ``dest``.

        Raises:
            CheckoutError: If ``path`` is not a directory or cannot be copied.
        """
        path = Path(path)
        dest = Path(dest)
        if not path.is_dir():
            raise CheckoutError(str(path), "-", "path does not exist or is not a directory")
        if dest.exists():
            shutil.rmtree(dest)
        try:
            shutil.copytree(path, dest, ignore=shutil.ignore_patterns(".git"))
        except OSError as e:
            raise CheckoutError(str(path), "-", str(e)) from e

        commit = None
        branch = "-"
        try:
            with Repo(path) as repo:
                commit = repo.head.commit.hexsha
                if not repo.head.is_detached:
                    branch = repo.active_branch.name
        except (InvalidGitRepositoryError, NoSuchPathError, ValueError):
            logger.debug("%s is not a git checkout; commit unknown", path)
        logger.info("Copied local source %s into %s", path, dest)
        return SourceTree(path=dest, url=str(path), branch=branch, commit=commit)
