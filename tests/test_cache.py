"""Tests for the build cache store."""

from unittest.mock import patch

import pytest

from cdpipeline.cache import BuildCacheStore, CacheFinalizeError


def write(path, content="x"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


@pytest.fixture
def cache(tmp_path):
    store = BuildCacheStore(tmp_path / "build-cache" / "buildkit")
    store.prepare()
    return store


class TestBuildCacheStore:
    def test_prepare_creates_empty_directory(self, cache):
        assert cache.directory.is_dir()
        assert list(cache.directory.iterdir()) == []

    def test_export_target_is_fresh_sibling(self, cache):
        first = cache.export_target()
        second = cache.export_target()
        assert first != second
        assert first.parent == cache.directory.parent
        assert first.is_dir()

    def test_finalize_merges_blobs_and_index(self, cache):
        staging = cache.export_target()
        write(staging / "blobs" / "sha256" / "aaa", "layer-a")
        write(staging / "index.json", "{}")

        result = cache.finalize(staging)

        assert result.to_dict() == {"added": 1, "skipped": 0, "replaced": 1}
        assert (cache.directory / "blobs" / "sha256" / "aaa").read_text() == "layer-a"
        assert (cache.directory / "index.json").read_text() == "{}"
        assert not staging.exists()

    def test_finalize_never_rewrites_existing_blob(self, cache):
        write(cache.directory / "blobs" / "sha256" / "aaa", "original")
        staging = cache.export_target()
        write(staging / "blobs" / "sha256" / "aaa", "other")
        write(staging / "blobs" / "sha256" / "bbb", "new")

        result = cache.finalize()

        assert result.added == 1
        assert result.skipped == 1
        assert (cache.directory / "blobs" / "sha256" / "aaa").read_text() == "original"

    def test_finalize_replaces_index(self, cache):
        write(cache.directory / "index.json", "old")
        staging = cache.export_target()
        write(staging / "index.json", "new")
        cache.finalize(staging)
        assert (cache.directory / "index.json").read_text() == "new"

    def test_finalize_without_export(self, cache):
        with pytest.raises(CacheFinalizeError, match="no export target"):
            cache.finalize()

    def test_finalize_missing_staging(self, cache, tmp_path):
        with pytest.raises(CacheFinalizeError):
            cache.finalize(tmp_path / "nowhere")

    def test_failed_move_keeps_existing_entries(self, cache):
        write(cache.directory / "blobs" / "sha256" / "aaa", "original")
        staging = cache.export_target()
        write(staging / "blobs" / "sha256" / "bbb", "new")

        with patch("cdpipeline.cache.store.os.replace", side_effect=OSError(28, "No space left")):
            with pytest.raises(CacheFinalizeError, match="No space left"):
                cache.finalize(staging)

        assert (cache.directory / "blobs" / "sha256" / "aaa").read_text() == "original"

    def test_discard_drops_staging(self, cache):
        staging = cache.export_target()
        write(staging / "index.json")
        cache.discard(staging)
        assert not staging.exists()

    def test_purge_removes_contents_and_leftover_exports(self, cache):
        write(cache.directory / "blobs" / "sha256" / "aaa")
        staging = cache.export_target()
        write(staging / "index.json")

        assert cache.purge() is True
        assert list(cache.directory.iterdir()) == []
        assert not staging.exists()

    def test_purge_missing_directory(self, tmp_path):
        assert BuildCacheStore(tmp_path / "never-created").purge() is True

    def test_purge_reports_failure_without_raising(self, cache):
        write(cache.directory / "index.json")
        with patch("cdpipeline.cache.store.Path.unlink", side_effect=PermissionError("denied")):
            assert cache.purge() is False
