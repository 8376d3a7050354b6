"""BuildCacheStore - local content-addressed cache for image builds."""

import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .exceptions import CacheFinalizeError

logger = logging.getLogger(__name__)

# Content-addressed entries live under this directory of a cache export
BLOBS_DIR = "blobs"

STAGING_PREFIX = ".export-"


@dataclass
class FinalizeResult:
    """Counts from merging an export into the cache.

    Attributes:
        added: New content-addressed entries moved into the cache.
        skipped: Entries already present (content addressed, so identical).
        replaced: Index/metadata files atomically replaced.
    """

    added: int = 0
    skipped: int = 0
    replaced: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"added": self.added, "skipped": self.skipped, "replaced": self.replaced}


class BuildCacheStore:
    """Local cache directory used as the builder's import and export location.

    The builder imports from ``directory`` and exports into a fresh staging
    directory next to it. ``finalize()`` merges a staging directory into the
    cache one entry at a time: content-addressed blobs are only added, never
    rewritten, and index files are swapped in with an atomic rename. A
    failed or partial export therefore never corrupts entries already in the
    cache.

    Example usage:
        cache = BuildCacheStore(volume / "buildkit")
        import_dir = cache.prepare()
        export_dir = cache.export_target()
        ...  # builder runs
        cache.finalize(export_dir)
        cache.purge()
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)
        self._staging: list[Path] = []

    @property
    def directory(self) -> Path:
        return self._directory

    def prepare(self) -> Path:
        """Ensure the cache directory exists (empty if new) and return it."""
        self._directory.mkdir(parents=True, exist_ok=True)
        blobs = self._directory / BLOBS_DIR
        entries = sum(1 for p in blobs.rglob("*") if p.is_file()) if blobs.exists() else 0
        logger.info("Build cache ready at %s (%d existing entries)", self._directory, entries)
        return self._directory

    def export_target(self) -> Path:
        """Create a fresh staging directory for the builder to export into."""
        name = f"{STAGING_PREFIX}{self._directory.name}-{uuid.uuid4().hex[:12]}"
        staging = self._directory.parent / name
        staging.mkdir(parents=True)
        self._staging.append(staging)
        return staging

    def finalize(self, staging: Optional[Path] = None) -> FinalizeResult:
        """Merge an export staging directory into the cache.

        Args:
            staging: The directory the builder exported into. Defaults to the
                most recent export_target().

        Returns:
            FinalizeResult with merge counts.

        Raises:
            CacheFinalizeError: If there is nothing to finalize or a move fails.
        """
        if staging is None:
            if not self._staging:
                raise CacheFinalizeError("(none)", "no export target was created")
            staging = self._staging[-1]
        staging = Path(staging)
        if not staging.is_dir():
            raise CacheFinalizeError(str(staging), "staging directory does not exist")

        self._directory.mkdir(parents=True, exist_ok=True)
        result = FinalizeResult()
        files = sorted(p for p in staging.rglob("*") if p.is_file())
        # Blobs first so an index never refers to a missing blob
        blobs = [p for p in files if p.relative_to(staging).parts[0] == BLOBS_DIR]
        metadata = [p for p in files if p.relative_to(staging).parts[0] != BLOBS_DIR]

        try:
            for source in blobs:
                target = self._directory / source.relative_to(staging)
                if target.exists():
                    result.skipped += 1
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(source, target)
                result.added += 1
            for source in metadata:
                target = self._directory / source.relative_to(staging)
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(source, target)
                result.replaced += 1
        except OSError as e:
            raise CacheFinalizeError(str(staging), e.strerror or str(e)) from e

        shutil.rmtree(staging, ignore_errors=True)
        if staging in self._staging:
            self._staging.remove(staging)
        logger.info(
            "Build cache finalized: %d added, %d already present, %d index files",
            result.added,
            result.skipped,
            result.replaced,
        )
        return result

    def discard(self, staging: Path) -> None:
        """Drop a staging directory without merging it (e.g. after a failed build)."""
        shutil.rmtree(staging, ignore_errors=True)
        if staging in self._staging:
            self._staging.remove(staging)

    def purge(self) -> bool:
        """Delete the cache contents and any leftover staging directories.

        Never raises; failures are logged.

        Returns:
            True if everything was removed.
        """
        ok = True
        targets = list(self._staging)
        if self._directory.parent.exists():
            targets += [
                p
                for p in self._directory.parent.glob(f"{STAGING_PREFIX}{self._directory.name}-*")
                if p not in targets
            ]
        if self._directory.exists():
            targets += list(self._directory.iterdir())

        for target in targets:
            try:
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                elif target.exists() or target.is_symlink():
                    target.unlink()
            except OSError as e:
                ok = False
                logger.warning("Failed to purge build cache entry %s: %s", target, e)
        self._staging.clear()
        if ok:
            logger.info("Build cache purged: %s", self._directory)
        return ok
