"""HDR and Dolby Vision classification of video streams."""

import re
from collections.abc import Sequence

from fantastic_probe.probe.models import StreamInfo

DOLBY_VISION = "DolbyVision"
DUAL_LAYER_PROFILE7 = "DolbyVision Profile 7"
HDR10_PLUS = "HDR10+"
HDR10 = "HDR10"
HLG = "HLG"
SDR = "SDR"

_DV_FOURCC = re.compile(r"^dv(he|h1|av|a1)$")

# Profile 8 single-layer variants keyed by dv_bl_signal_compatibility_id
_PROFILE8_VARIANTS = {1: "8.1", 2: "8.2", 4: "8.4"}


def _as_int(value: object) -> int | None:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def dolby_vision_label(stream: StreamInfo) -> str:
    """``DolbyVision Profile N`` from the DOVI record, or bare ``DolbyVision``."""
    record = stream.dovi_record()
    if not record:
        return DOLBY_VISION
    profile = _as_int(record.get("dv_profile"))
    if not profile:
        return DOLBY_VISION
    if profile == 8:
        compat = _as_int(record.get("dv_bl_signal_compatibility_id"))
        return f"{DOLBY_VISION} Profile {_PROFILE8_VARIANTS.get(compat, '8.4')}"
    return f"{DOLBY_VISION} Profile {profile}"


def classify_video_range(stream: StreamInfo) -> str:
    if stream.is_pq and stream.dovi_record() is not None:
        return dolby_vision_label(stream)
    if stream.is_pq and stream.has_hdr10plus():
        return HDR10_PLUS
    if not stream.is_pq and _DV_FOURCC.match(stream.codec_tag_string or ""):
        return dolby_vision_label(stream)
    if stream.is_pq:
        return HDR10
    if stream.color_transfer == "arib-std-b67":
        return HLG
    return SDR


def detect_dual_layer_profile7(streams: Sequence[StreamInfo]) -> bool:
    """BDMV dual-layer Dolby Vision: base and enhancement layer as two PQ streams."""
    video = [s for s in streams if s.codec_type == "video"]
    pq_video = [s for s in video if s.is_pq]
    return (
        len(video) >= 2
        and len(pq_video) >= 2
        and bool(streams)
        and streams[0].codec_tag_string == "HDMV"
    )


def is_dolby_vision(video_range: str) -> bool:
    return video_range.startswith(DOLBY_VISION)


def hdr_display_tag(video_range: str) -> str:
    if is_dolby_vision(video_range):
        return "Dolby Vision"
    if video_range in (HDR10_PLUS, HDR10, HLG):
        return video_range
    return ""


def extended_video_type(video_range: str) -> str:
    if is_dolby_vision(video_range):
        return "DolbyVision"
    return {HDR10_PLUS: "HDR10Plus", HDR10: "HDR10", HLG: "HLG"}.get(video_range, "None")


def extended_video_subtype(video_range: str, stream: StreamInfo) -> tuple[str, str]:
    """``(ExtendedVideoSubType, ExtendedVideoSubTypeDescription)`` for a stream."""
    if not is_dolby_vision(video_range):
        return "None", "None"
    if video_range.startswith(DUAL_LAYER_PROFILE7):
        return "DoviProfile76", "Profile 7.6 (Bluray)"

    profile = video_range.removeprefix(f"{DOLBY_VISION} Profile ").strip()
    if profile.startswith("8."):
        return f"DoviProfile{profile.replace('.', '')}", f"Profile {profile}"

    record = stream.dovi_record()
    if record and record.get("dv_profile") is not None:
        level = record.get("dv_level", 0)
        return (
            f"DoviProfile{record['dv_profile']}{level}",
            f"Profile {record['dv_profile']}.{level}",
        )
    return "None", "None"
