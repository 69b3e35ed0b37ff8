"""Per-placeholder pipeline: placeholder in, descriptor on disk out."""

import logging
import os
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.disc.lister import DiscLanguageInfo
from fantastic_probe.disc.protocol import (
    DiscType,
    descriptor_path_for,
    detect_disc_type,
    strip_placeholder_suffix,
)
from fantastic_probe.disc.remote import RemoteMountDetector, RemoteMountPredicate
from fantastic_probe.disc.structure import DiscStructureExtractor
from fantastic_probe.error_handling import InsufficientSpaceError, MediaError
from fantastic_probe.probe.extractor import ProbeExtractor, ProbeOutcome
from fantastic_probe.probe.retry import Deadline
from fantastic_probe.services.emby import EmbyNotifier
from fantastic_probe.storage.atomic import atomic_write_json
from fantastic_probe.transform.descriptor import MediaDescriptor, build_descriptor
from fantastic_probe.transform.duration import ReconciledDuration, reconcile_duration
from fantastic_probe.upload.dispatcher import UploadDispatcher, read_placeholder

logger = logging.getLogger(__name__)

DESCRIPTOR_MODE = 0o644


@dataclass
class ProcessingResult:
    """Everything produced while processing one placeholder."""

    placeholder: Path
    descriptor_path: Path
    image_path: Path
    disc_type: DiscType
    probe: ProbeOutcome
    duration: ReconciledDuration
    descriptor: MediaDescriptor
    uploaded: bool | None = None


def check_disk_space(directory: Path, min_free_mb: int) -> None:
    """Raise InsufficientSpaceError when ``directory`` has under ``min_free_mb`` free."""
    available_mb = shutil.disk_usage(directory).free // (1024 * 1024)
    if available_mb < min_free_mb:
        raise InsufficientSpaceError(directory, available_mb, min_free_mb)


def _format_size(size: int) -> str:
    gib = size / 1024**3
    if gib >= 1:
        return f"{gib:.2f} GB ({size} bytes)"
    return f"{size / 1024**2:.2f} MB ({size} bytes)"


class PlaceholderProcessor:
    """Runs detection, structure extraction, probing and transformation in order."""

    def __init__(
        self,
        config: ProbeConfig,
        *,
        structure: DiscStructureExtractor | None = None,
        prober: ProbeExtractor | None = None,
        uploader: UploadDispatcher | None = None,
        notifier: EmbyNotifier | None = None,
        is_remote: RemoteMountPredicate | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.is_remote = is_remote or RemoteMountDetector(config.remote_path_markers)
        self.structure = structure or DiscStructureExtractor(config)
        self.prober = prober or ProbeExtractor(config, is_remote=self.is_remote, sleep=sleep)
        self.uploader = uploader
        self.notifier = notifier or EmbyNotifier(config)
        self.sleep = sleep

    def _get_uploader(self) -> UploadDispatcher:
        if self.uploader is None:
            self.uploader = UploadDispatcher(self.config, sleep=self.sleep)
        return self.uploader

    def wait_for_image(self, image_path: Path) -> None:
        """Make sure the ISO is visible and readable.

        Remote mounts cache directory listings, so a freshly added ISO can be
        missing for a while. Those get one directory re-listing and a wait of
        ``remote_visibility_wait`` seconds before giving up.
        """
        if not image_path.exists():
            if not self.is_remote(image_path):
                msg = f"ISO file does not exist: {image_path}"
                raise MediaError(msg)

            logger.warning("ISO temporarily not visible (remote directory cache not refreshed)")
            logger.info("Refreshing remote directory listing")
            try:
                os.listdir(image_path.parent)
            except OSError as e:
                logger.debug(f"Listing {image_path.parent} failed: {e}")

            wait = self.config.remote_visibility_wait
            logger.info(f"Waiting {wait}s for the remote directory cache to refresh")
            self.sleep(wait)

            if not image_path.exists():
                msg = f"ISO file still not visible after waiting {wait}s: {image_path}"
                raise MediaError(
                    msg,
                    solution="Check that the remote mount is healthy and the path is correct",
                )
            logger.info("Remote cache refreshed, ISO is now visible")

        if not os.access(image_path, os.R_OK):
            msg = f"ISO file is not readable: {image_path}"
            raise MediaError(msg)

    def _adopt_ownership(self, descriptor_path: Path, placeholder: Path) -> None:
        """Give the descriptor the placeholder's owner so media servers can read it."""
        try:
            st = placeholder.stat()
            os.chown(descriptor_path, st.st_uid, st.st_gid)
        except OSError as e:
            logger.debug(f"Could not copy ownership to {descriptor_path.name}: {e}")

    def save_failed_probe(self, outcome: ProbeOutcome, placeholder: Path) -> Path | None:
        """Keep the raw ffprobe output of a failed transformation for inspection."""
        timestamp = int(time.time())
        debug_file = self.config.debug_dir / f"failed-ffprobe-{timestamp}-{placeholder.stem}.json"
        payload = {
            "placeholder": str(placeholder),
            "protocol": outcome.protocol.value,
            "ffprobe": outcome.result.raw,
        }
        try:
            debug_file.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_json(debug_file, payload)
        except OSError as e:
            logger.warning(f"Could not save failed ffprobe output: {e}")
            return None
        logger.error(f"Saved failed ffprobe output: {debug_file}")
        return debug_file

    def _log_stream_statistics(
        self,
        probe: ProbeOutcome,
        descriptor: MediaDescriptor,
        disc_info: DiscLanguageInfo,
        disc_type: DiscType,
    ) -> None:
        found = probe.result.count_by_type()
        written = descriptor.count_by_type()
        video = written.get("Video", 0)
        audio = written.get("Audio", 0)
        subtitles = written.get("Subtitle", 0)

        if disc_type is DiscType.BLURAY and disc_info.audio_languages:
            audio_found = found.get("audio", 0)
            subtitle_found = found.get("subtitle", 0)
            audio_note = f"language tags: {len(disc_info.audio_languages)}"
            if audio_found > audio:
                audio_note += f", filtered: {audio_found - audio}"
            subtitle_note = f"language tags: {len(disc_info.subtitle_languages)}"
            if subtitle_found > subtitles:
                subtitle_note += f", filtered: {subtitle_found - subtitles}"
            logger.info(f"  Video streams: {video}")
            logger.info(f"  Audio streams: {audio}/{audio_found} ({audio_note})")
            logger.info(f"  Subtitle streams: {subtitles}/{subtitle_found} ({subtitle_note})")
        else:
            logger.info(
                f"  Video streams: {video}, audio streams: {audio}, "
                f"subtitle streams: {subtitles}",
            )

    def process(self, placeholder: Path) -> ProcessingResult:
        """Generate the descriptor for ``placeholder``.

        Raises FantasticProbeError subclasses on failure; nothing is written
        unless every stage succeeded.
        """
        descriptor_path = descriptor_path_for(placeholder)
        logger.info(f"Processing: {placeholder}")

        check_disk_space(placeholder.parent, self.config.min_free_space_mb)

        try:
            raw_image = read_placeholder(placeholder)
        except OSError as e:
            msg = f"Cannot read placeholder: {placeholder}"
            raise MediaError(msg, original_error=e) from e
        if not raw_image:
            msg = f"Placeholder is empty: {placeholder}"
            raise MediaError(msg)

        image_path = Path(raw_image)
        self.wait_for_image(image_path)
        logger.info(f"  ISO path: {image_path}")

        disc_type = detect_disc_type(placeholder, image_path)
        logger.info(f"  ISO type: {disc_type.value.upper()}")

        if disc_type is DiscType.BLURAY:
            disc_info = self.structure.extract(image_path)
        else:
            disc_info = DiscLanguageInfo.empty()

        deadline = Deadline(self.config.max_file_processing_time)
        outcome = self.prober.extract(image_path, disc_type, deadline=deadline)

        # Disc facts only describe the image when it really is a Blu-ray
        effective_type = outcome.protocol
        if effective_type is not DiscType.BLURAY and not disc_info.is_empty:
            logger.info("Image probed as DVD, ignoring Blu-ray language tags")
            disc_info = DiscLanguageInfo.empty()

        duration = reconcile_duration(
            outcome.result.format.duration,
            disc_info.main_title_duration,
            effective_type,
            mismatch_threshold=self.config.duration_mismatch_threshold,
            min_feature_duration=self.config.min_feature_duration,
        )

        try:
            file_size = image_path.stat().st_size
            logger.info(f"  ISO size: {_format_size(file_size)}")
        except OSError as e:
            logger.warning(f"Cannot determine ISO size: {e}")
            file_size = 0

        try:
            descriptor = build_descriptor(
                outcome.result,
                disc_info,
                disc_type=effective_type,
                name=strip_placeholder_suffix(placeholder.name),
                file_size=file_size,
                duration=duration.seconds,
                anomaly_ratio=self.config.bitrate_anomaly_ratio,
            )
        except Exception:
            if self.config.debug:
                self.save_failed_probe(outcome, placeholder)
            raise

        try:
            atomic_write_json(descriptor_path, descriptor.to_document(), mode=DESCRIPTOR_MODE)
        except OSError as e:
            msg = f"Failed to write {descriptor_path}"
            raise MediaError(msg, original_error=e) from e
        self._adopt_ownership(descriptor_path, placeholder)
        logger.info(f"Generated: {descriptor_path}")

        self._log_stream_statistics(outcome, descriptor, disc_info, effective_type)

        result = ProcessingResult(
            placeholder=placeholder,
            descriptor_path=descriptor_path,
            image_path=image_path,
            disc_type=effective_type,
            probe=outcome,
            duration=duration,
            descriptor=descriptor,
        )

        if self.config.upload_enabled and "json" in self.config.upload_file_types:
            result.uploaded = self._get_uploader().upload_file(descriptor_path)

        self.notifier.notify_refresh()
        return result
