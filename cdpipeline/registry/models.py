"""Data models for image references and registry policies."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

DEFAULT_REGISTRY = "docker.io"


class TagConflictPolicy(Enum):
    """What to do when the run's tag already exists in the registry.

    Build numbers can be reused (e.g. after the CI server's counter is
    reset), so pushing ``<image>:<build>`` may replace an unrelated image.

    FAIL: refuse to build; the stage fails with TagConflictError.
    OVERWRITE: push anyway, replacing the existing tag.
    """

    FAIL = "fail"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class ImageReference:
    """A build artifact's name: ``<registry>/<repository>:<tag>``.

    Attributes:
        registry: Registry host (e.g. "docker.io", "europe-docker.pkg.dev").
        repository: Image path within the registry (e.g. "nocnex/nodejs").
        tag: Version tag; the pipeline uses the run's build number.
    """

    registry: str
    repository: str
    tag: str

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"

    @property
    def name(self) -> str:
        """Untagged logical name ``<registry>/<repository>``."""
        return f"{self.registry}/{self.repository}"

    def with_tag(self, tag: str) -> "ImageReference":
        return ImageReference(registry=self.registry, repository=self.repository, tag=tag)

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse ``[registry/]repository[:tag]``.

        The first path component is treated as a registry host when it
        contains a dot or a port, or is "localhost". The tag defaults to
        "latest".

        Raises:
            ValueError: If the reference is empty or has no repository.
        """
        reference = reference.strip()
        if not reference:
            raise ValueError("Empty image reference")

        name, tag = reference, "latest"
        last_slash = reference.rfind("/")
        last_colon = reference.rfind(":")
        if last_colon > last_slash:
            name, tag = reference[:last_colon], reference[last_colon + 1:]

        first, _, rest = name.partition("/")
        if rest and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, rest
        else:
            registry, repository = DEFAULT_REGISTRY, name
        if not repository or not tag:
            raise ValueError(f"Invalid image reference '{reference}'")
        return cls(registry=registry, repository=repository, tag=tag)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"registry": self.registry, "repository": self.repository, "tag": self.tag}
