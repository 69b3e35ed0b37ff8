"""Disc type detection from file names."""

import logging
import re
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

PLACEHOLDER_SUFFIX = ".iso.strm"
DESCRIPTOR_SUFFIX = ".iso-mediainfo.json"

_BLURAY_MARKERS = re.compile(r"(blu-?ray|bdmv|bd)", re.IGNORECASE)
_DVD_MARKERS = re.compile(r"(dvd|video_ts)", re.IGNORECASE)


class DiscType(Enum):
    """Disc formats understood by the prober's protocol handlers."""

    BLURAY = "bluray"
    DVD = "dvd"

    @property
    def fallback(self) -> "DiscType":
        """The other protocol, tried when this one keeps failing."""
        return DiscType.DVD if self is DiscType.BLURAY else DiscType.BLURAY


def strip_placeholder_suffix(name: str) -> str:
    """``Movie.iso.strm`` -> ``Movie``."""
    if name.lower().endswith(PLACEHOLDER_SUFFIX):
        return name[: -len(PLACEHOLDER_SUFFIX)]
    if name.lower().endswith(".iso"):
        return name[:-4]
    return name


def descriptor_path_for(placeholder: Path) -> Path:
    """``Movie.iso.strm`` -> ``Movie.iso-mediainfo.json`` in the same directory."""
    return placeholder.parent / f"{strip_placeholder_suffix(placeholder.name)}{DESCRIPTOR_SUFFIX}"


def detect_disc_type(
    placeholder: Path | None = None,
    image_path: Path | str | None = None,
) -> DiscType:
    """Infer the disc type from the placeholder name, then the image name.

    Names without any marker default to Blu-ray. A wrong guess costs only the
    primary-protocol attempts, since probing falls back to the other protocol.
    """
    candidates = []
    if placeholder is not None:
        candidates.append(strip_placeholder_suffix(placeholder.name))
    if image_path is not None:
        candidates.append(strip_placeholder_suffix(Path(image_path).name))

    for name in candidates:
        if _BLURAY_MARKERS.search(name):
            logger.info("File name marks a Blu-ray ISO: %s", name)
            return DiscType.BLURAY
        if _DVD_MARKERS.search(name):
            logger.info("File name marks a DVD ISO: %s", name)
            return DiscType.DVD

    logger.info("No disc type marker in file name, assuming Blu-ray")
    return DiscType.BLURAY
