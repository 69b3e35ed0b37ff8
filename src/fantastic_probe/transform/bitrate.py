"""Bitrate reconstruction for containers that report bogus or missing rates."""

import logging
import math
from collections.abc import Sequence

from fantastic_probe.probe.models import StreamInfo, safe_framerate

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_FPS = 24


def calculated_bitrate(size: int | None, duration: float | None) -> int | None:
    """Average bits per second from the image size, or None without both inputs."""
    if not size or not duration or size <= 0 or duration <= 0:
        return None
    return math.floor(size * 8 / duration)


def total_bitrate(
    reported: int | None,
    size: int | None,
    duration: float | None,
    *,
    anomaly_ratio: float = 1.5,
) -> int | None:
    """Reported container bitrate unless it is missing, zero or implausibly high."""
    calculated = calculated_bitrate(size, duration)
    if reported and reported > 0:
        if calculated and reported > anomaly_ratio * calculated:
            logger.warning(
                f"Reported bitrate {reported} exceeds {anomaly_ratio}x the "
                f"size-derived {calculated}, using the calculated value",
            )
            return calculated
        return reported
    return calculated


def video_weight(stream: StreamInfo) -> int:
    """Relative share of the video bitrate: width x height x whole fps."""
    fps = safe_framerate(stream.avg_frame_rate) or DEFAULT_FPS
    return (stream.width or DEFAULT_WIDTH) * (stream.height or DEFAULT_HEIGHT) * fps


def allocate_bitrates(
    streams: Sequence[StreamInfo],
    total: int | None,
    *,
    anomaly_ratio: float = 1.5,
) -> dict[int, int | None]:
    """Bitrate per stream index.

    Audio and subtitle streams keep their reported rates. What remains of the
    total goes to video, split by ``video_weight`` unless a video stream
    reports a plausible rate of its own.
    """
    rates: dict[int, int | None] = {}
    side_sum = 0
    for stream in streams:
        if stream.codec_type != "video":
            rates[stream.index] = stream.bit_rate
            if stream.codec_type in ("audio", "subtitle"):
                side_sum += stream.bit_rate or 0

    video = [s for s in streams if s.codec_type == "video"]
    remainder = max(0, total - side_sum) if total is not None else None
    weight_sum = sum(video_weight(s) for s in video)

    for stream in video:
        reported = stream.bit_rate
        if reported and (not remainder or reported <= anomaly_ratio * remainder):
            rates[stream.index] = reported
        elif remainder is not None and weight_sum > 0:
            rates[stream.index] = math.floor(remainder * video_weight(stream) / weight_sum)
        else:
            rates[stream.index] = reported
    return rates
