"""Human-readable names and display titles for media streams."""

import re

from fantastic_probe.probe.models import StreamInfo
from fantastic_probe.transform.hdr import hdr_display_tag

UNDETERMINED = "und"

LANGUAGE_NAMES = {
    "chi": "Chinese",
    "zh": "Chinese",
    "zho": "Chinese",
    "eng": "English",
    "en": "English",
    "jpn": "Japanese",
    "ja": "Japanese",
    "kor": "Korean",
    "ko": "Korean",
    "spa": "Spanish",
    "es": "Spanish",
    "fre": "French",
    "fra": "French",
    "fr": "French",
    "ger": "German",
    "deu": "German",
    "de": "German",
    "ita": "Italian",
    "it": "Italian",
    "por": "Portuguese",
    "pt": "Portuguese",
    "rus": "Russian",
    "ru": "Russian",
    "ara": "Arabic",
    "ar": "Arabic",
    "hin": "Hindi",
    "hi": "Hindi",
    "tha": "Thai",
    "th": "Thai",
    "vie": "Vietnamese",
    "vi": "Vietnamese",
    "und": "Undetermined",
}

CODEC_NAMES = {
    "hdmv_pgs_subtitle": "PGSSUB",
    "subrip": "SUBRIP",
    "ass": "ASS",
    "webvtt": "WEBVTT",
    "dvd_subtitle": "DVDSUB",
    "mov_text": "TX3G",
}

TEXT_SUBTITLE_CODECS = {"subrip", "ass", "webvtt", "mov_text", "srt"}

ATMOS_PROFILES = {
    "truehd": "Dolby TrueHD + Dolby Atmos",
    "eac3": "Dolby Digital Plus + Dolby Atmos",
    "ac3": "Dolby Digital + Dolby Atmos",
}

_SDH = re.compile(r"sdh|hearing", re.IGNORECASE)
_SIMPLIFIED = re.compile(r"simplified|chs", re.IGNORECASE)
_TRADITIONAL = re.compile(r"traditional|cht", re.IGNORECASE)
_CANTONESE = re.compile(r"cantonese|yue", re.IGNORECASE)
_PIX_FMT_DEPTH = re.compile(r"p(\d+)")


def language_name(code: str | None) -> str | None:
    if not code:
        return None
    return LANGUAGE_NAMES.get(code.lower(), code)


def codec_upper(codec_name: str | None) -> str:
    if not codec_name:
        return ""
    return CODEC_NAMES.get(codec_name, codec_name.upper())


def resolution_tier(height: int | None) -> str:
    if not height or height <= 0:
        return ""
    if height >= 2160:
        return "4K"
    if height >= 1440:
        return "2K"
    if height >= 1080:
        return "1080p"
    if height >= 720:
        return "720p"
    return f"{height}p"


def channel_word(channels: int | None) -> str:
    if channels == 1:
        return "mono"
    if channels == 2:
        return "stereo"
    if not channels:
        return ""
    return f"{channels - 1}.1"


def subtitle_variant(stream: StreamInfo) -> str | None:
    """Chinese script variant named in the track title, if any."""
    title = stream.title
    if not title:
        return None
    if _SIMPLIFIED.search(title):
        return "Chinese Simplified"
    if _TRADITIONAL.search(title):
        return "Chinese Traditional"
    if _CANTONESE.search(title):
        return "Chinese"
    return None


def is_hearing_impaired(stream: StreamInfo) -> bool:
    if stream.codec_type == "subtitle" and stream.title:
        return bool(_SDH.search(stream.title))
    return stream.disposition.get("hearing_impaired") == 1


def audio_profile(stream: StreamInfo) -> str | None:
    """Codec profile, spelled out for Atmos tracks."""
    profile = stream.profile
    if stream.codec_type == "audio" and profile and "Atmos" in profile:
        return ATMOS_PROFILES.get(stream.codec_name or "", profile)
    return profile


def bit_depth(stream: StreamInfo) -> int | None:
    if stream.bits_per_raw_sample:
        return stream.bits_per_raw_sample
    if stream.pix_fmt:
        match = _PIX_FMT_DEPTH.search(stream.pix_fmt)
        return int(match.group(1)) if match else 8
    return None


def _language_prefix(language: str | None) -> str:
    if not language or language == UNDETERMINED:
        return ""
    return language_name(language) or ""


def video_display_title(stream: StreamInfo, video_range: str) -> str:
    """E.g. ``4K Dolby Vision HEVC``."""
    parts = [
        resolution_tier(stream.height),
        hdr_display_tag(video_range),
        (stream.codec_name or "").upper(),
    ]
    return " ".join(p for p in parts if p)


def audio_display_title(stream: StreamInfo, language: str | None) -> str:
    """E.g. ``English TRUEHD 7.1 (Default)``."""
    parts = [
        _language_prefix(language),
        (stream.codec_name or "").upper(),
        channel_word(stream.channels),
    ]
    title = " ".join(p for p in parts if p)
    if stream.is_default:
        title += " (Default)"
    return title


def subtitle_display_title(stream: StreamInfo, language: str | None) -> str:
    """E.g. ``Chinese Simplified (SDH Default PGSSUB)``."""
    label = subtitle_variant(stream) or _language_prefix(language)
    flags = ""
    if is_hearing_impaired(stream):
        flags += "SDH "
    if stream.is_default:
        flags += "Default "
    inner = f"({flags}{codec_upper(stream.codec_name)})"
    return f"{label} {inner}" if label else inner
