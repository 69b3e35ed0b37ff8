"""Tests for the upload cache."""

import pytest

from fantastic_probe.storage.upload_cache import UploadCache, UploadStatus


class TestUploadCache:
    """Test UploadCache functionality."""

    @pytest.fixture
    def clock(self):
        """Controllable clock."""
        return [1_700_000_000.0]

    @pytest.fixture
    def cache(self, config, clock):
        """Create upload cache instance."""
        return UploadCache(config, clock=lambda: clock[0])

    def test_pending_then_success(self, cache):
        """Test the normal pending to success transition."""
        cache.mark_pending("/strm/a.json", "/remote/a.json")
        assert cache.status_of("/strm/a.json") is UploadStatus.PENDING

        cache.mark_success("/strm/a.json")

        entry = cache.get("/strm/a.json")
        assert entry.status is UploadStatus.SUCCESS
        assert entry.upload_count == 1
        assert entry.target_path == "/remote/a.json"
        assert entry.last_error_message is None

    def test_failed_creates_row(self, cache):
        """Test a failure is recorded even without a pending row."""
        cache.mark_failed("/strm/a.json", "Path mapping failed")

        entry = cache.get("/strm/a.json")
        assert entry.status is UploadStatus.FAILED
        assert entry.target_path == ""
        assert entry.last_error_message == "Path mapping failed"

    def test_failed_then_success_clears_error(self, cache):
        """Test a later success wipes the stored error."""
        cache.mark_pending("/strm/a.json", "/remote/a.json")
        cache.mark_failed("/strm/a.json", "Copy failed")
        cache.mark_pending("/strm/a.json", "/remote/a.json")
        cache.mark_success("/strm/a.json")

        entry = cache.get("/strm/a.json")
        assert entry.status is UploadStatus.SUCCESS
        assert entry.upload_count == 2
        assert entry.last_error_message is None

    def test_entries_by_status(self, cache, clock):
        """Test listing by status, oldest first."""
        cache.mark_failed("/strm/b.json", "x")
        clock[0] += 10
        cache.mark_failed("/strm/a.json", "x")
        cache.mark_pending("/strm/c.json", "/remote/c.json")

        failed = cache.entries_by_status(UploadStatus.FAILED)
        assert [e.source_path for e in failed] == ["/strm/b.json", "/strm/a.json"]

    def test_stats(self, cache):
        """Test per-status counters."""
        cache.mark_pending("/a", "/ra")
        cache.mark_success("/a")
        cache.mark_failed("/b", "x")
        cache.mark_pending("/c", "/rc")

        assert cache.stats() == {"pending": 1, "success": 1, "failed": 1, "total": 3}

    def test_cleanup_only_old_successes(self, cache, clock):
        """Test cleanup drops old success rows and keeps failures."""
        cache.mark_pending("/old", "/r/old")
        cache.mark_success("/old")
        cache.mark_failed("/old-failed", "x")
        clock[0] += 31 * 86400
        cache.mark_pending("/new", "/r/new")
        cache.mark_success("/new")

        assert cache.cleanup(30) == 1
        assert cache.get("/old") is None
        assert cache.get("/old-failed") is not None
        assert cache.get("/new") is not None

    def test_reset(self, cache):
        """Test removing a single record."""
        cache.mark_failed("/a", "x")

        assert cache.reset("/a") is True
        assert cache.reset("/a") is False
