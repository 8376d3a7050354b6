"""Data models for the source module."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


@dataclass
class SourceTree:
    """A checked-out source tree.

    Attributes:
        path: Root of the tree on the host.
        url: Where it came from.
        branch: Branch that was checked out.
        commit: Commit hash of HEAD, when known.
    """

    path: Path
    url: str
    branch: str
    commit: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "path": str(self.path),
            "url": self.url,
            "branch": self.branch,
            "commit": self.commit,
        }
