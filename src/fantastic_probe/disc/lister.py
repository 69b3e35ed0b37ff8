"""bd_list_titles integration for Blu-ray title, chapter and language data."""

import logging
import re
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from fantastic_probe.config import ProbeConfig
from fantastic_probe.error_handling import ToolError

logger = logging.getLogger(__name__)

_TITLE_LINE = re.compile(
    r"index:\s*(\d+)\s+duration:\s*(\d+):(\d+):(\d+)\s+chapters:\s*(\d+)",
)
_AUDIO_LINE = re.compile(r"^\s+AUD:\s*(.+)$", re.MULTILINE)
_SUBTITLE_LINE = re.compile(r"^\s+PG\s*:\s*(.+)$", re.MULTILINE)


@dataclass
class DiscLanguageInfo:
    """Main-title facts reported by the disc lister.

    The order of ``audio_languages`` and ``subtitle_languages`` matches the
    on-disc track order; index N of each list belongs to the N-th audio or
    subtitle stream of the main title.
    """

    main_title_index: int | None = None
    main_title_duration: int = 0
    audio_languages: list[str] = field(default_factory=list)
    subtitle_languages: list[str] = field(default_factory=list)
    chapter_count: int = 0

    @classmethod
    def empty(cls) -> "DiscLanguageInfo":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.main_title_index is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiscLanguageInfo":
        """Rebuild from cached JSON. Raises ValueError on malformed data."""
        if not isinstance(data, dict):
            msg = "language info must be an object"
            raise ValueError(msg)
        audio = data.get("audio_languages", [])
        subtitles = data.get("subtitle_languages", [])
        if not isinstance(audio, list) or not isinstance(subtitles, list):
            msg = "language lists must be arrays"
            raise ValueError(msg)
        index = data.get("main_title_index")
        return cls(
            main_title_index=int(index) if index is not None else None,
            main_title_duration=int(data.get("main_title_duration") or 0),
            audio_languages=[str(a) for a in audio],
            subtitle_languages=[str(s) for s in subtitles],
            chapter_count=int(data.get("chapter_count") or 0),
        )


def parse_title_listing(output: str) -> DiscLanguageInfo:
    """Parse ``bd_list_titles -l`` output.

    The main title is the one with the largest duration; on equal durations the
    first listed title wins.
    """
    max_duration = 0
    max_index: int | None = None
    chapters = 0

    for match in _TITLE_LINE.finditer(output):
        index = int(match.group(1))
        hours, minutes, seconds = (int(match.group(i)) for i in (2, 3, 4))
        duration = hours * 3600 + minutes * 60 + seconds
        if duration > max_duration:
            max_duration = duration
            max_index = index
            chapters = int(match.group(5))

    if max_index is None:
        return DiscLanguageInfo.empty()

    audio_langs: list[str] = []
    subtitle_langs: list[str] = []

    section = re.search(
        rf"index:\s*{max_index}\s.*?(?=index:\s*\d+|\Z)",
        output,
        re.DOTALL,
    )
    if section:
        section_text = section.group(0)
        audio_match = _AUDIO_LINE.search(section_text)
        if audio_match:
            audio_langs = audio_match.group(1).split()
        subtitle_match = _SUBTITLE_LINE.search(section_text)
        if subtitle_match:
            subtitle_langs = subtitle_match.group(1).split()

    return DiscLanguageInfo(
        main_title_index=max_index,
        main_title_duration=max_duration,
        audio_languages=audio_langs,
        subtitle_languages=subtitle_langs,
        chapter_count=chapters,
    )


class BDListTitles:
    """Interface to the bd_list_titles disc lister."""

    def __init__(self, config: ProbeConfig):
        self.config = config
        self.binary = config.bd_list_titles_path

    def list_titles(self, mount_point: Path) -> str:
        """Run the lister against a mounted disc and return its report."""
        cmd = [self.binary, "-l", str(mount_point)]

        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.config.lister_timeout,
            )
        except subprocess.TimeoutExpired as e:
            msg = f"bd_list_titles timed out after {self.config.lister_timeout}s"
            raise ToolError(msg, original_error=e) from e
        except FileNotFoundError as e:
            msg = f"bd_list_titles not found: {self.binary}"
            raise ToolError(
                msg,
                solution="Install with: apt-get install libbluray-bin",
                original_error=e,
            ) from e

        # BD-J warnings are noise for our purposes
        errors = [
            line
            for line in result.stderr.splitlines()
            if line.strip() and "BD-J check" not in line
        ]
        if errors:
            logger.warning("bd_list_titles reported errors:")
            for line in errors[:5]:
                logger.warning(f"  {line}")

        if not result.stdout.strip():
            msg = "bd_list_titles produced no output"
            raise ToolError(msg, details="\n".join(errors[:5]) or None)

        logger.debug("bd_list_titles output (first 5 lines):")
        for line in result.stdout.splitlines()[:5]:
            logger.debug(f"  {line}")

        return result.stdout

    def read_languages(self, mount_point: Path) -> DiscLanguageInfo:
        """List titles on a mounted disc and parse the main title's languages."""
        if not (mount_point / "BDMV").is_dir():
            logger.info("No BDMV folder on mounted image, skipping bd_list_titles")
            return DiscLanguageInfo.empty()

        info = parse_title_listing(self.list_titles(mount_point))
        logger.debug(
            f"Parsed language tags: {len(info.audio_languages)} audio, "
            f"{len(info.subtitle_languages)} subtitle, {info.chapter_count} chapters",
        )
        return info
