"""Typed view of ffprobe JSON output."""

import json
import math
from dataclasses import dataclass, field
from typing import Any

from fantastic_probe.error_handling import MediaError

DOVI_RECORD = "DOVI configuration record"
HDR10_PLUS_RECORD = "HDR10+ metadata"


def safe_number(value: Any) -> float | None:
    """Parse numbers ffprobe reports as strings; ``"N/A"`` and ``""`` become None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return int(number) if number.is_integer() else number
    return None


def safe_int(value: Any) -> int | None:
    number = safe_number(value)
    return int(number) if number is not None else None


def safe_framerate(value: Any) -> int | None:
    """``"24000/1001"`` -> 23, ``"25"`` -> 25, ``"0/0"`` -> None."""
    if value is None or value == "" or value == "0/0":
        return None
    if isinstance(value, str) and "/" in value:
        parts = value.split("/")
        if len(parts) != 2:
            return None
        numerator = safe_number(parts[0])
        denominator = safe_number(parts[1])
        if numerator is None or not denominator:
            return None
        return math.floor(numerator / denominator)
    number = safe_number(value)
    return math.floor(number) if number is not None else None


@dataclass
class FormatInfo:
    """Container-level facts."""

    format_name: str | None = None
    duration: float | None = None
    bit_rate: int | None = None
    size: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FormatInfo":
        return cls(
            format_name=data.get("format_name"),
            duration=safe_number(data.get("duration")),
            bit_rate=safe_int(data.get("bit_rate")),
            size=safe_int(data.get("size")),
        )


@dataclass
class StreamInfo:
    """One elementary stream as reported by ffprobe."""

    index: int
    codec_type: str
    codec_name: str | None = None
    codec_tag_string: str | None = None
    profile: str | None = None
    width: int | None = None
    height: int | None = None
    avg_frame_rate: str | None = None
    r_frame_rate: str | None = None
    time_base: str | None = None
    display_aspect_ratio: str | None = None
    color_transfer: str | None = None
    color_primaries: str | None = None
    color_space: str | None = None
    pix_fmt: str | None = None
    bits_per_raw_sample: int | None = None
    field_order: str | None = None
    level: int | None = None
    refs: int | None = None
    channels: int | None = None
    channel_layout: str | None = None
    sample_rate: int | None = None
    bit_rate: int | None = None
    tags: dict[str, str] = field(default_factory=dict)
    disposition: dict[str, int] = field(default_factory=dict)
    side_data_list: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: int = 0) -> "StreamInfo":
        index = safe_int(data.get("index"))
        side_data = data.get("side_data_list") or []
        return cls(
            index=index if index is not None else position,
            codec_type=str(data.get("codec_type") or "unknown"),
            codec_name=data.get("codec_name"),
            codec_tag_string=data.get("codec_tag_string"),
            profile=data.get("profile"),
            width=safe_int(data.get("width")),
            height=safe_int(data.get("height")),
            avg_frame_rate=data.get("avg_frame_rate"),
            r_frame_rate=data.get("r_frame_rate"),
            time_base=data.get("time_base"),
            display_aspect_ratio=data.get("display_aspect_ratio"),
            color_transfer=data.get("color_transfer"),
            color_primaries=data.get("color_primaries"),
            color_space=data.get("color_space"),
            pix_fmt=data.get("pix_fmt"),
            bits_per_raw_sample=safe_int(data.get("bits_per_raw_sample")),
            field_order=data.get("field_order"),
            level=safe_int(data.get("level")),
            refs=safe_int(data.get("refs")),
            channels=safe_int(data.get("channels")),
            channel_layout=data.get("channel_layout"),
            sample_rate=safe_int(data.get("sample_rate")),
            bit_rate=safe_int(data.get("bit_rate")),
            tags={str(k): str(v) for k, v in (data.get("tags") or {}).items()},
            disposition={
                str(k): int(v)
                for k, v in (data.get("disposition") or {}).items()
                if isinstance(v, int | float)
            },
            side_data_list=[sd for sd in side_data if isinstance(sd, dict)],
        )

    @property
    def language(self) -> str | None:
        return self.tags.get("language") or None

    @property
    def title(self) -> str | None:
        return self.tags.get("title") or None

    @property
    def is_default(self) -> bool:
        return self.disposition.get("default") == 1

    @property
    def is_forced(self) -> bool:
        return self.disposition.get("forced") == 1

    @property
    def is_pq(self) -> bool:
        return self.color_transfer == "smpte2084"

    def side_data(self, side_data_type: str) -> dict[str, Any] | None:
        for entry in self.side_data_list:
            if entry.get("side_data_type") == side_data_type:
                return entry
        return None

    def dovi_record(self) -> dict[str, Any] | None:
        return self.side_data(DOVI_RECORD)

    def has_hdr10plus(self) -> bool:
        return self.side_data(HDR10_PLUS_RECORD) is not None


@dataclass
class ChapterInfo:
    start_time: float
    title: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChapterInfo":
        tags = data.get("tags") or {}
        return cls(
            start_time=safe_number(data.get("start_time")) or 0,
            title=tags.get("title") or None,
        )


@dataclass
class ProbeResult:
    """Parsed ffprobe output for one attempt. Always has at least one stream."""

    format: FormatInfo
    streams: list[StreamInfo]
    chapters: list[ChapterInfo] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Any) -> "ProbeResult":
        if not isinstance(data, dict):
            msg = "Probe output is not a JSON object"
            raise MediaError(msg)

        raw_streams = data.get("streams")
        if not isinstance(raw_streams, list) or not raw_streams:
            msg = "Probe output has no streams"
            raise MediaError(msg)

        streams = [
            StreamInfo.from_dict(s, position)
            for position, s in enumerate(raw_streams)
            if isinstance(s, dict)
        ]
        if not streams:
            msg = "Probe output has no usable streams"
            raise MediaError(msg)

        raw_format = data.get("format")
        chapters = data.get("chapters") or []
        return cls(
            format=FormatInfo.from_dict(raw_format if isinstance(raw_format, dict) else {}),
            streams=streams,
            chapters=[ChapterInfo.from_dict(c) for c in chapters if isinstance(c, dict)],
            raw=data,
        )

    @classmethod
    def from_json(cls, text: str) -> "ProbeResult":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            msg = f"Probe output is not valid JSON: {e}"
            raise MediaError(msg, original_error=e) from e
        return cls.from_dict(data)

    def streams_of(self, codec_type: str) -> list[StreamInfo]:
        return [s for s in self.streams if s.codec_type == codec_type]

    def count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for stream in self.streams:
            counts[stream.codec_type] = counts.get(stream.codec_type, 0) + 1
        return counts
