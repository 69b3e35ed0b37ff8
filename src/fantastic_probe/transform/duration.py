"""Cross-check probe duration against the disc lister's main title duration."""

import logging
from dataclasses import dataclass

from fantastic_probe.disc.protocol import DiscType

logger = logging.getLogger(__name__)

SOURCE_PROBE = "probe"
SOURCE_DISC = "disc"


@dataclass(frozen=True)
class ReconciledDuration:
    seconds: float
    source: str
    short: bool = False


def _human(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600}h {total % 3600 // 60}m"


def reconcile_duration(
    probe_duration: float | None,
    disc_duration: int,
    disc_type: DiscType,
    *,
    mismatch_threshold: int = 60,
    min_feature_duration: int = 1800,
) -> ReconciledDuration:
    """Pick the duration to publish.

    On Blu-ray the lister reads the playlist the disc itself declares, so it
    wins whenever the two disagree by more than ``mismatch_threshold`` or the
    probe duration is below ``min_feature_duration`` while the lister's is not.
    """
    probe_seconds = probe_duration or 0
    probe_whole = int(probe_seconds)
    is_bluray = disc_type is DiscType.BLURAY

    if is_bluray and disc_duration > 0 and probe_whole > 0:
        diff = abs(probe_whole - disc_duration)
        if diff > mismatch_threshold:
            logger.warning(
                f"Duration mismatch: ffprobe={probe_whole}s, "
                f"bd_list_titles={disc_duration}s, diff={diff}s",
            )
            logger.info(f"Using bd_list_titles duration: {_human(disc_duration)}")
            return ReconciledDuration(float(disc_duration), SOURCE_DISC)
        logger.info(f"Duration check passed: diff {diff}s")

    if is_bluray and probe_whole < min_feature_duration < disc_duration:
        logger.warning(
            f"ffprobe duration implausible: {probe_whole}s "
            f"(< {min_feature_duration // 60} minutes)",
        )
        logger.info(f"Using bd_list_titles duration: {_human(disc_duration)}")
        return ReconciledDuration(float(disc_duration), SOURCE_DISC)

    if 0 < probe_whole < min_feature_duration:
        logger.warning(
            f"Short media: {probe_whole}s ({probe_whole // 60} minutes), "
            "may be a short film, extra or trailer; continuing",
        )
        return ReconciledDuration(probe_seconds, SOURCE_PROBE, short=True)

    if probe_whole >= min_feature_duration:
        logger.info(f"ffprobe duration: {probe_whole}s ({_human(probe_whole)})")
    return ReconciledDuration(probe_seconds, SOURCE_PROBE)
