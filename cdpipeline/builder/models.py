"""Data models for the image builder module."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class BuildResult:
    """Outcome of a successful build-and-push.

    Attributes:
        image_ref: Full reference that was pushed.
        digest: Manifest digest reported by the builder, if available.
        duration_seconds: Time spent in the build request.
        daemon_ready_attempts: Readiness probes it took before the build.
        cache: Counts from merging the exported cache.
    """

    image_ref: str
    digest: Optional[str] = None
    duration_seconds: float = 0.0
    daemon_ready_attempts: int = 0
    cache: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "image_ref": self.image_ref,
            "digest": self.digest,
            "duration_seconds": self.duration_seconds,
            "daemon_ready_attempts": self.daemon_ready_attempts,
            "cache": dict(self.cache),
        }
