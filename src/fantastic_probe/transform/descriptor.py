"""Build the Emby MediaSourceInfo descriptor from probe output and disc facts."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from fantastic_probe.disc.lister import DiscLanguageInfo
from fantastic_probe.disc.protocol import DiscType
from fantastic_probe.error_handling import MediaError
from fantastic_probe.probe.models import ProbeResult, StreamInfo, safe_framerate
from fantastic_probe.transform.bitrate import allocate_bitrates, total_bitrate
from fantastic_probe.transform.display import (
    TEXT_SUBTITLE_CODECS,
    UNDETERMINED,
    audio_display_title,
    audio_profile,
    bit_depth,
    codec_upper,
    is_hearing_impaired,
    language_name,
    subtitle_display_title,
    video_display_title,
)
from fantastic_probe.transform.hdr import (
    DUAL_LAYER_PROFILE7,
    classify_video_range,
    detect_dual_layer_profile7,
    extended_video_subtype,
    extended_video_type,
)

logger = logging.getLogger(__name__)

TICKS_PER_SECOND = 10_000_000

_STREAM_TYPES = {"video": "Video", "audio": "Audio", "subtitle": "Subtitle"}


@dataclass
class StreamDescriptor:
    """One entry of ``MediaStreams``."""

    index: int
    type: str
    codec: str
    language: str | None = None
    display_language: str | None = None
    title: str | None = None
    display_title: str = ""
    profile: str | None = None
    bit_rate: int | None = None
    bit_depth: int | None = None
    width: int | None = None
    height: int | None = None
    aspect_ratio: str | None = None
    average_frame_rate: int | None = None
    real_frame_rate: int | None = None
    time_base: str | None = None
    level: int | None = None
    ref_frames: int | None = None
    pixel_format: str | None = None
    color_transfer: str | None = None
    color_primaries: str | None = None
    color_space: str | None = None
    video_range: str | None = None
    extended_video_type: str = "None"
    extended_video_sub_type: str = "None"
    extended_video_sub_type_description: str = "None"
    is_interlaced: bool = False
    channels: int | None = None
    channel_layout: str | None = None
    sample_rate: int | None = None
    is_default: bool = False
    is_forced: bool = False
    is_hearing_impaired: bool = False
    is_text_subtitle_stream: bool = False

    def to_dict(self) -> dict[str, Any]:
        is_subtitle = self.type == "Subtitle"
        return {
            "Codec": self.codec,
            "Language": self.language,
            "DisplayLanguage": self.display_language,
            "ColorTransfer": self.color_transfer,
            "ColorPrimaries": self.color_primaries,
            "ColorSpace": self.color_space,
            "TimeBase": self.time_base,
            "Title": self.title,
            "VideoRange": self.video_range,
            "DisplayTitle": self.display_title,
            "IsInterlaced": self.is_interlaced,
            "BitRate": self.bit_rate,
            "BitDepth": self.bit_depth,
            "RefFrames": self.ref_frames,
            "IsDefault": self.is_default,
            "IsForced": self.is_forced,
            "IsHearingImpaired": self.is_hearing_impaired,
            "Height": self.height,
            "Width": self.width,
            "AverageFrameRate": self.average_frame_rate,
            "RealFrameRate": self.real_frame_rate,
            "Profile": self.profile,
            "Type": self.type,
            "AspectRatio": self.aspect_ratio,
            "Index": self.index,
            "IsExternal": False,
            "IsTextSubtitleStream": self.is_text_subtitle_stream,
            "SupportsExternalStream": is_subtitle,
            "Protocol": "File",
            "PixelFormat": self.pixel_format,
            "Level": self.level,
            "IsAnamorphic": False,
            "ExtendedVideoType": self.extended_video_type,
            "ExtendedVideoSubType": self.extended_video_sub_type,
            "ExtendedVideoSubTypeDescription": self.extended_video_sub_type_description,
            "ChannelLayout": self.channel_layout,
            "Channels": self.channels,
            "SampleRate": self.sample_rate,
            "AttachmentSize": 0,
            "SubtitleLocationType": "InternalStream" if is_subtitle else None,
        }


@dataclass
class ChapterDescriptor:
    index: int
    start_position_ticks: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "StartPositionTicks": self.start_position_ticks,
            "Name": self.name,
            "MarkerType": "Chapter",
            "ChapterIndex": self.index,
        }


@dataclass
class MediaDescriptor:
    """The ``*.iso-mediainfo.json`` payload for one disc image."""

    name: str
    container: str
    size: int
    run_time_ticks: int
    bitrate: int | None
    streams: list[StreamDescriptor] = field(default_factory=list)
    chapters: list[ChapterDescriptor] = field(default_factory=list)

    def count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for stream in self.streams:
            counts[stream.type] = counts.get(stream.type, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "Protocol": "File",
            "Type": "Default",
            "Container": self.container,
            "Size": self.size,
            "Name": self.name,
            "IsRemote": True,
            "HasMixedProtocols": False,
            "RunTimeTicks": self.run_time_ticks,
            "SupportsTranscoding": True,
            "SupportsDirectStream": True,
            "SupportsDirectPlay": True,
            "IsInfiniteStream": False,
            "RequiresOpening": False,
            "RequiresClosing": False,
            "RequiresLooping": False,
            "SupportsProbing": True,
            "MediaStreams": [s.to_dict() for s in self.streams],
            "Formats": [],
            "Bitrate": self.bitrate,
            "RequiredHttpHeaders": {},
            "AddApiKeyToDirectStreamUrl": False,
            "ReadAtNativeFramerate": False,
            "Chapters": [c.to_dict() for c in self.chapters],
        }

    def to_document(self) -> list[dict[str, Any]]:
        """Top-level JSON document Emby expects."""
        return [{"MediaSourceInfo": self.to_dict()}]


def _type_indices(streams: list[StreamInfo]) -> dict[int, int]:
    """Position of each stream among the streams of its own type, keyed by list position."""
    seen: dict[str, int] = {}
    positions: dict[int, int] = {}
    for position, stream in enumerate(streams):
        positions[position] = seen.get(stream.codec_type, 0)
        seen[stream.codec_type] = positions[position] + 1
    return positions


def resolve_language(
    stream: StreamInfo,
    type_index: int,
    disc_info: DiscLanguageInfo,
) -> str | None:
    """Disc tag at the type-relative index, then the container tag, then ``und``."""
    if stream.codec_type == "audio":
        tags = disc_info.audio_languages
    elif stream.codec_type == "subtitle":
        tags = disc_info.subtitle_languages
    elif stream.codec_type == "video":
        return None
    else:
        return stream.language
    if type_index < len(tags):
        return tags[type_index]
    return stream.language or UNDETERMINED


def build_descriptor(
    probe: ProbeResult,
    disc_info: DiscLanguageInfo,
    *,
    disc_type: DiscType,
    name: str,
    file_size: int,
    duration: float | None = None,
    anomaly_ratio: float = 1.5,
) -> MediaDescriptor:
    """Transform one probe result into a MediaDescriptor.

    ``duration`` overrides the container duration (see reconcile_duration).
    Raises MediaError for input that cannot describe any media.
    """
    if not probe.streams:
        msg = "No streams to describe"
        raise MediaError(msg)

    duration = duration if duration is not None else probe.format.duration
    if duration is not None and duration < 0:
        msg = f"Invalid duration: {duration}"
        raise MediaError(msg)

    strict = disc_type is DiscType.BLURAY and len(disc_info.audio_languages) > 0
    if strict:
        logger.debug("Blu-ray language tags present, keeping only tagged streams")

    total = total_bitrate(
        probe.format.bit_rate,
        file_size,
        duration,
        anomaly_ratio=anomaly_ratio,
    )
    rates = allocate_bitrates(probe.streams, total, anomaly_ratio=anomaly_ratio)

    dual_layer = detect_dual_layer_profile7(probe.streams)
    if dual_layer:
        logger.info("Dual-layer BDMV Dolby Vision detected (Profile 7)")

    type_indices = _type_indices(probe.streams)
    streams = []
    for position, stream in enumerate(probe.streams):
        type_index = type_indices[position]
        if strict and not _within_tags(stream, type_index, disc_info):
            continue
        streams.append(
            _describe_stream(
                stream,
                type_index,
                disc_info,
                bit_rate=rates.get(stream.index),
                dual_layer=dual_layer,
            ),
        )

    if not streams:
        logger.warning("No streams left after filtering, writing an empty stream list")
    elif strict and not any(s.type == "Audio" for s in streams):
        logger.warning("Strict filtering removed every audio stream")

    chapters = [
        ChapterDescriptor(
            index=i,
            start_position_ticks=math.floor(chapter.start_time * TICKS_PER_SECOND),
            name=chapter.title or f"Chapter {i + 1:02d}",
        )
        for i, chapter in enumerate(probe.chapters)
    ]

    return MediaDescriptor(
        name=name,
        container=probe.format.format_name or "unknown",
        size=file_size,
        run_time_ticks=math.floor((duration or 0) * TICKS_PER_SECOND),
        bitrate=total,
        streams=streams,
        chapters=chapters,
    )


def _within_tags(stream: StreamInfo, type_index: int, disc_info: DiscLanguageInfo) -> bool:
    if stream.codec_type == "audio":
        return type_index < len(disc_info.audio_languages)
    if stream.codec_type == "subtitle":
        return type_index < len(disc_info.subtitle_languages)
    return True


def _describe_stream(
    stream: StreamInfo,
    type_index: int,
    disc_info: DiscLanguageInfo,
    *,
    bit_rate: int | None,
    dual_layer: bool,
) -> StreamDescriptor:
    kind = stream.codec_type
    language = resolve_language(stream, type_index, disc_info)
    descriptor = StreamDescriptor(
        index=stream.index,
        type=_STREAM_TYPES.get(kind, kind),
        codec=codec_upper(stream.codec_name),
        language=language,
        display_language=language_name(language) if kind in ("audio", "subtitle") else None,
        title=stream.title if kind != "video" else None,
        profile=audio_profile(stream),
        bit_rate=bit_rate,
        bit_depth=bit_depth(stream),
        width=stream.width,
        height=stream.height,
        aspect_ratio=stream.display_aspect_ratio,
        average_frame_rate=safe_framerate(stream.avg_frame_rate),
        real_frame_rate=safe_framerate(stream.r_frame_rate),
        time_base=stream.time_base,
        level=stream.level,
        ref_frames=stream.refs,
        is_interlaced=bool(stream.field_order) and stream.field_order != "progressive",
        channels=stream.channels,
        sample_rate=stream.sample_rate,
        is_default=stream.is_default,
        is_forced=stream.is_forced,
        is_hearing_impaired=is_hearing_impaired(stream),
    )

    if kind == "video":
        video_range = DUAL_LAYER_PROFILE7 if dual_layer else classify_video_range(stream)
        sub_type, sub_type_description = extended_video_subtype(video_range, stream)
        descriptor.video_range = video_range
        descriptor.display_title = video_display_title(stream, video_range)
        descriptor.pixel_format = stream.pix_fmt
        descriptor.color_transfer = stream.color_transfer
        descriptor.color_primaries = stream.color_primaries
        descriptor.color_space = stream.color_space
        descriptor.extended_video_type = extended_video_type(video_range)
        descriptor.extended_video_sub_type = sub_type
        descriptor.extended_video_sub_type_description = sub_type_description
    elif kind == "audio":
        descriptor.display_title = audio_display_title(stream, language)
        descriptor.channel_layout = stream.channel_layout
    elif kind == "subtitle":
        descriptor.display_title = subtitle_display_title(stream, language)
        descriptor.is_text_subtitle_stream = (stream.codec_name or "") in TEXT_SUBTITLE_CODECS
    else:
        descriptor.display_title = (stream.codec_name or "").upper()

    return descriptor
