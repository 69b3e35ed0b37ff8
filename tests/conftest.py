"""Shared test configuration and fixtures."""

import logging

import pytest

from fantastic_probe.cli import cleanup_logging
from fantastic_probe.config import ProbeConfig


@pytest.fixture(scope="function", autouse=True)
def cleanup_logging_handlers():
    """Automatically cleanup logging handlers after each test to prevent ResourceWarnings."""
    yield
    cleanup_logging()


@pytest.fixture(scope="function", autouse=True)
def reset_logging():
    """Reset logging configuration after each test."""
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory with pauses disabled."""
    strm_root = tmp_path / "strm"
    strm_root.mkdir()
    return ProbeConfig(
        strm_root=strm_root,
        cache_dir=tmp_path / "cache",
        log_dir=tmp_path / "logs",
        lock_dir=tmp_path / "locks",
        mount_root=tmp_path / "mnt",
        scan_item_interval=0,
        upload_interval=0,
        remote_visibility_wait=0,
    )
