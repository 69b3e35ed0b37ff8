"""ffprobe wrapper speaking the bluray: and dvd: protocols."""

import logging
import subprocess
import time
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.disc.protocol import DiscType
from fantastic_probe.error_handling import MediaError, ToolError
from fantastic_probe.probe.models import ProbeResult

logger = logging.getLogger(__name__)


class FFProbe:
    """Runs ffprobe against a disc image through a protocol handler."""

    def __init__(self, config: ProbeConfig):
        self.config = config
        self.binary = config.ffprobe_path

    def build_command(self, image_path: Path, protocol: DiscType) -> list[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            "-show_chapters",
            "-protocol_whitelist",
            f"file,{protocol.value}",
            "-i",
            f"{protocol.value}:{image_path}",
        ]

    def probe(
        self,
        image_path: Path,
        protocol: DiscType,
        timeout: int | None = None,
    ) -> ProbeResult:
        """Probe once. Raises ToolError on timeout, failure or unusable output."""
        timeout = timeout or self.config.ffprobe_timeout
        cmd = self.build_command(image_path, protocol)
        logger.debug(f"Running: {' '.join(cmd)}")

        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"ffprobe timed out (>{timeout}s)")
            msg = f"ffprobe timed out after {timeout}s"
            raise ToolError(msg, original_error=e) from e
        except FileNotFoundError as e:
            msg = f"ffprobe not found: {self.binary}"
            raise ToolError(
                msg,
                solution="Install with: apt-get install ffmpeg",
                original_error=e,
            ) from e
        elapsed = int(time.monotonic() - start)

        stderr_lines = [line for line in result.stderr.splitlines() if line.strip()]
        if result.returncode != 0:
            logger.warning(f"ffprobe failed (exit code {result.returncode}, {elapsed}s)")
            if stderr_lines:
                logger.warning("Error output (first 5 lines):")
                for line in stderr_lines[:5]:
                    logger.warning(f"  {line}")
            msg = f"ffprobe exited with code {result.returncode}"
            raise ToolError(msg, details="\n".join(stderr_lines[:5]) or None)

        try:
            probe_result = ProbeResult.from_json(result.stdout)
        except MediaError as e:
            raise ToolError(e.message, original_error=e) from e

        logger.debug(f"ffprobe returned {len(probe_result.streams)} streams in {elapsed}s")
        return probe_result
