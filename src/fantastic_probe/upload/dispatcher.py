"""Copy generated artifacts next to their ISO on remote storage."""

import logging
import re
import shutil
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from fantastic_probe.config import SUPPORTED_UPLOAD_TYPES, ProbeConfig
from fantastic_probe.disc.protocol import DESCRIPTOR_SUFFIX, PLACEHOLDER_SUFFIX
from fantastic_probe.error_handling import UploadError
from fantastic_probe.process_lock import ProcessLock
from fantastic_probe.storage.upload_cache import UploadCache, UploadStatus

logger = logging.getLogger(__name__)

_SUBTITLE_LANGUAGE = re.compile(r"\.(en|zh|ja|ko|fr|de|es|zh-CN|zh-TW|pt-BR)$")

# Glob patterns per upload type; json only matches descriptors
_TYPE_PATTERNS = {
    "json": (f"*{DESCRIPTOR_SUFFIX}",),
    "nfo": ("*.nfo",),
    "srt": ("*.srt",),
    "ass": ("*.ass",),
    "ssa": ("*.ssa",),
    "png": ("*.png",),
    "jpg": ("*.jpg", "*.jpeg"),
}


@dataclass
class UploadSummary:
    """Counters for bulk and retry runs."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped


def detect_file_type(source: Path) -> str:
    suffix = source.suffix.lower().lstrip(".")
    if suffix == "jpeg":
        suffix = "jpg"
    if suffix not in SUPPORTED_UPLOAD_TYPES:
        msg = f"Unsupported file type: {source.name}"
        raise UploadError(msg)
    return suffix


def read_placeholder(placeholder: Path) -> str:
    """First line of a placeholder, CR/LF stripped."""
    with open(placeholder, encoding="utf-8", errors="replace") as f:
        return f.readline().strip("\r\n")


class UploadDispatcher:
    """Serialized, rate-limited copier backed by the upload cache.

    Every copy happens under the upload lock and is followed by
    ``upload_interval`` seconds of sleep before the lock is released, so at
    most one remote write is in flight across all processes.
    """

    def __init__(
        self,
        config: ProbeConfig,
        *,
        cache: UploadCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.cache = cache or UploadCache(config)
        self.sleep = sleep

    def _find_placeholder(self, source: Path, file_type: str) -> Path | None:
        source_dir = source.parent
        name = source.name
        candidate: Path | None = None

        if file_type == "json":
            if name.endswith(DESCRIPTOR_SUFFIX):
                base = name[: -len(DESCRIPTOR_SUFFIX)]
                candidate = source_dir / f"{base}{PLACEHOLDER_SUFFIX}"
        elif file_type in ("nfo", "png", "jpg"):
            stem = source.stem
            if stem.endswith(".iso"):
                candidate = source_dir / f"{stem}.strm"
            else:
                candidate = next(iter(sorted(source_dir.glob(f"*{PLACEHOLDER_SUFFIX}"))), None)
        else:
            stem = _SUBTITLE_LANGUAGE.sub("", source.stem)
            candidate = source_dir / f"{stem}.strm"

        if candidate is not None and candidate.is_file():
            return candidate

        # Show-level artifacts sit above the season folders holding placeholders
        logger.debug("No placeholder beside the file, searching subdirectories")
        for depth_pattern in (f"*{PLACEHOLDER_SUFFIX}", f"*/*{PLACEHOLDER_SUFFIX}"):
            matches = sorted(p for p in source_dir.glob(depth_pattern) if p.is_file())
            if matches:
                return matches[0]
        return None

    def map_target(self, source: Path, file_type: str = "auto") -> Path:
        """Remote path for ``source``, derived from its sibling placeholder."""
        if not source.is_file():
            msg = f"Source file does not exist: {source}"
            raise UploadError(msg)

        if file_type == "auto":
            file_type = detect_file_type(source)
        elif file_type not in SUPPORTED_UPLOAD_TYPES:
            msg = f"Unsupported file type: {file_type}"
            raise UploadError(msg)

        placeholder = self._find_placeholder(source, file_type)
        if placeholder is None:
            msg = f"No matching placeholder found for {source.name}"
            raise UploadError(msg, details=f"Searched {source.parent}")

        image_path = read_placeholder(placeholder)
        if not image_path:
            msg = f"Placeholder is empty: {placeholder}"
            raise UploadError(msg)

        storage_dir = Path(image_path).parent
        depth = len(placeholder.parent.relative_to(source.parent).parts)
        for _ in range(depth):
            storage_dir = storage_dir.parent

        target = storage_dir / source.name
        level = "Show-level" if depth else "Episode-level"
        logger.debug(f"{level} mapping: {source.name} -> {target}")
        return target

    def upload(self, source: Path, target: Path) -> bool:
        """Copy ``source`` to ``target`` under the upload lock."""
        if not source.is_file():
            logger.error(f"File does not exist, skipping upload: {source}")
            return False

        key = str(source)
        self.cache.mark_pending(key, str(target))

        logger.info(f"Waiting for upload lock: {source.name}")
        lock = ProcessLock(self.config.upload_lock_file, blocking=True)
        if not lock.acquire():
            self.cache.mark_failed(key, "Could not acquire upload lock", str(target))
            return False

        try:
            logger.info(f"Uploading: {source.name}")
            logger.debug(f"  Target: {target}")
            start = time.monotonic()
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                self.cache.mark_failed(key, f"Cannot create target directory: {e}")
                return False

            try:
                shutil.copyfile(source, target)
            except OSError as e:
                self.cache.mark_failed(key, f"Copy failed: {e}")
                return False

            self.cache.mark_success(key)
            logger.info(f"Upload complete: {source.name} ({int(time.monotonic() - start)}s)")
            return True
        finally:
            if self.config.upload_interval > 0:
                logger.debug(f"Waiting {self.config.upload_interval}s before next upload")
                self.sleep(self.config.upload_interval)
            lock.release()

    def upload_file(self, source: Path) -> bool:
        """Map and upload one file; mapping failures are recorded as failed uploads."""
        try:
            target = self.map_target(source)
        except UploadError as e:
            logger.error(f"Path mapping failed: {source.name}: {e.message}")
            self.cache.mark_failed(str(source), f"Path mapping failed: {e.message}")
            return False
        return self.upload(source, target)

    def _matching_files(self, directory: Path, file_types: Iterable[str]) -> list[Path]:
        found: set[Path] = set()
        for file_type in file_types:
            for pattern in _TYPE_PATTERNS.get(file_type, ()):
                found.update(p for p in directory.glob(pattern) if p.is_file())
        return sorted(found)

    def upload_all_pending(
        self,
        root: Path | None = None,
        file_types: Iterable[str] | None = None,
    ) -> UploadSummary:
        """Upload every matching artifact in directories that hold placeholders.

        Files already marked ``success`` are skipped without touching the
        filesystem or the cache.
        """
        root = root or self.config.strm_root
        types = list(file_types or self.config.upload_file_types)
        summary = UploadSummary()

        directories = sorted(
            {p.parent for p in root.rglob(f"*{PLACEHOLDER_SUFFIX}") if p.is_file()},
        )
        if not directories:
            logger.warning(f"No {PLACEHOLDER_SUFFIX} files found under {root}")
            return summary

        logger.info(f"Bulk upload: {len(directories)} directories (types: {', '.join(types)})")
        for number, directory in enumerate(directories, start=1):
            files = self._matching_files(directory, types)
            if not files:
                continue
            logger.info(f"[{number}/{len(directories)}] {directory.name}: {len(files)} files")

            for source in files:
                if self.cache.status_of(str(source)) is UploadStatus.SUCCESS:
                    logger.debug(f"Already uploaded, skipping: {source.name}")
                    summary.skipped += 1
                    continue
                if self.upload_file(source):
                    summary.succeeded += 1
                else:
                    summary.failed += 1

        logger.info(
            f"Bulk upload finished: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.skipped} already uploaded",
        )
        return summary

    def retry_failed(self) -> UploadSummary:
        """Re-run every upload currently marked ``failed``, oldest first."""
        summary = UploadSummary()
        failed = self.cache.entries_by_status(UploadStatus.FAILED)
        if not failed:
            logger.info("No failed uploads to retry")
            return summary

        logger.info(f"Retrying {len(failed)} failed uploads")
        for number, entry in enumerate(failed, start=1):
            source = Path(entry.source_path)
            logger.info(f"[{number}/{len(failed)}] {source.name}")
            if self.upload_file(source):
                summary.succeeded += 1
            else:
                summary.failed += 1

        logger.info(
            f"Retry finished: {summary.succeeded} succeeded, {summary.failed} still failing",
        )
        return summary

    def stats(self) -> dict[str, int]:
        return self.cache.stats()

    def cleanup(self, days_to_keep: int = 30) -> int:
        return self.cache.cleanup(days_to_keep)
