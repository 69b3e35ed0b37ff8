"""Blu-ray structure extraction: cached language tags, mount, list, unmount."""

import hashlib
import json
import logging
import time
from collections.abc import Callable
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.disc.lister import BDListTitles, DiscLanguageInfo
from fantastic_probe.disc.mount import IsoMounter
from fantastic_probe.error_handling import MountError, ToolError
from fantastic_probe.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)


class LanguageTagCache:
    """File cache of DiscLanguageInfo keyed by a hash of the ISO path."""

    def __init__(
        self,
        config: ProbeConfig,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = config.language_cache_dir
        self.ttl_seconds = config.language_cache_ttl_hours * 3600
        self.clock = clock

    def _entry_path(self, image_path: Path) -> Path:
        digest = hashlib.sha256(str(image_path).encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json"

    def get(self, image_path: Path) -> DiscLanguageInfo | None:
        """Return a fresh cached entry, or None when missing, stale or corrupt."""
        entry = self._entry_path(image_path)
        if not entry.exists():
            return None

        try:
            data = json.loads(entry.read_text(encoding="utf-8"))
            cached_at = float(data["cached_at"])
            info = DiscLanguageInfo.from_dict(data["info"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable language cache entry: {e}")
            entry.unlink(missing_ok=True)
            return None

        if self.clock() - cached_at > self.ttl_seconds:
            logger.debug(f"Language cache entry expired for {image_path.name}")
            entry.unlink(missing_ok=True)
            return None

        return info

    def put(self, image_path: Path, info: DiscLanguageInfo) -> None:
        payload = {
            "image_path": str(image_path),
            "cached_at": self.clock(),
            "info": info.to_dict(),
        }
        try:
            atomic_write_json(self._entry_path(image_path), payload)
        except OSError as e:
            logger.warning(f"Could not cache language tags: {e}")

    def clear(self) -> int:
        removed = 0
        if self.cache_dir.is_dir():
            for entry in self.cache_dir.glob("*.json"):
                entry.unlink(missing_ok=True)
                removed += 1
        return removed


class DiscStructureExtractor:
    """Produces DiscLanguageInfo for Blu-ray ISOs.

    Mount, lister and parse failures degrade to an empty result so that
    probing can continue without language hints.
    """

    def __init__(
        self,
        config: ProbeConfig,
        *,
        mounter: IsoMounter | None = None,
        lister: BDListTitles | None = None,
        cache: LanguageTagCache | None = None,
    ):
        self.config = config
        self.mounter = mounter or IsoMounter(config)
        self.lister = lister or BDListTitles(config)
        self.cache = cache or LanguageTagCache(config)

    def extract(self, image_path: Path) -> DiscLanguageInfo:
        cached = self.cache.get(image_path)
        if cached is not None:
            logger.info("Using cached language tags (skipping mount)")
            return cached

        try:
            mount_point = self.mounter.mount(image_path)
        except MountError as e:
            logger.warning(f"{e.message}, skipping language tag extraction")
            return DiscLanguageInfo.empty()

        info = DiscLanguageInfo.empty()
        try:
            info = self.lister.read_languages(mount_point)
        except ToolError as e:
            logger.warning(f"Language tag extraction failed: {e.message}")
        finally:
            self.mounter.unmount(mount_point)

        if info.is_empty:
            logger.warning("No language tags extracted, using defaults")
            return info

        logger.info(
            f"Extracted {len(info.audio_languages)} audio / "
            f"{len(info.subtitle_languages)} subtitle / {info.chapter_count} chapters",
        )
        hours, rem = divmod(info.main_title_duration, 3600)
        logger.info(
            f"Main title duration: {info.main_title_duration}s ({hours}h {rem // 60}m)",
        )
        self.cache.put(image_path, info)
        return info
