"""Tests for the per-placeholder processing pipeline."""

import json
import stat
from collections import namedtuple
from unittest.mock import Mock, patch

import pytest

from fantastic_probe.core.pipeline import PlaceholderProcessor, check_disk_space
from fantastic_probe.disc.lister import DiscLanguageInfo
from fantastic_probe.disc.protocol import DiscType
from fantastic_probe.error_handling import InsufficientSpaceError, MediaError
from fantastic_probe.probe.extractor import ProbeOutcome
from fantastic_probe.probe.models import ProbeResult

PROBE_DATA = {
    "format": {"format_name": "mpegts", "duration": "5400.0", "bit_rate": "30000000"},
    "streams": [
        {"index": 0, "codec_type": "video", "codec_name": "h264", "height": 1080},
        {"index": 1, "codec_type": "audio", "codec_name": "dts", "channels": 6,
         "tags": {"language": "deu"}},
        {"index": 2, "codec_type": "audio", "codec_name": "ac3", "channels": 2},
    ],
}

DISC_INFO = DiscLanguageInfo(
    main_title_index=1,
    main_title_duration=5500,
    audio_languages=["eng"],
    subtitle_languages=[],
    chapter_count=10,
)


def outcome(protocol=DiscType.BLURAY, used_fallback=False):
    return ProbeOutcome(
        result=ProbeResult.from_dict(PROBE_DATA),
        protocol=protocol,
        attempts=1,
        used_fallback=used_fallback,
    )


@pytest.fixture
def image(tmp_path):
    """Fake ISO on local storage."""
    path = tmp_path / "remote" / "Movie.BluRay.iso"
    path.parent.mkdir()
    path.write_bytes(b"\0" * 1024)
    return path


@pytest.fixture
def placeholder(config, image):
    """Placeholder pointing at the fake ISO."""
    path = config.strm_root / "Movie.BluRay.iso.strm"
    path.write_text(f"{image}\r\n")
    return path


@pytest.fixture
def collaborators():
    """Mocked pipeline stages."""
    structure = Mock()
    structure.extract.return_value = DISC_INFO
    prober = Mock()
    prober.extract.return_value = outcome()
    return {
        "structure": structure,
        "prober": prober,
        "uploader": Mock(),
        "notifier": Mock(),
        "sleep": Mock(),
    }


def make_processor(config, collaborators, remote=False, **overrides):
    config = config.model_copy(update={"min_free_space_mb": 0, **overrides})
    return PlaceholderProcessor(config, is_remote=lambda path: remote, **collaborators)


class TestProcess:
    """Test the happy path and stage wiring."""

    def test_writes_descriptor(self, config, collaborators, placeholder, image):
        """Test a descriptor is written beside the placeholder."""
        processor = make_processor(config, collaborators)

        result = processor.process(placeholder)

        descriptor_path = config.strm_root / "Movie.BluRay.iso-mediainfo.json"
        assert result.descriptor_path == descriptor_path
        assert result.image_path == image
        document = json.loads(descriptor_path.read_text(encoding="utf-8"))
        info = document[0]["MediaSourceInfo"]
        assert info["Name"] == "Movie.BluRay"
        assert info["Size"] == 1024
        # Disc duration wins over the 100s shorter probe duration
        assert info["RunTimeTicks"] == 5500 * 10_000_000
        assert [s["Index"] for s in info["MediaStreams"]] == [0, 1]
        assert info["MediaStreams"][1]["Language"] == "eng"
        assert stat.S_IMODE(descriptor_path.stat().st_mode) == 0o644

    def test_stage_calls(self, config, collaborators, placeholder, image):
        """Test detection feeds structure extraction and probing."""
        processor = make_processor(config, collaborators)

        processor.process(placeholder)

        collaborators["structure"].extract.assert_called_once_with(image)
        args, kwargs = collaborators["prober"].extract.call_args
        assert args == (image, DiscType.BLURAY)
        assert kwargs["deadline"] is not None
        collaborators["notifier"].notify_refresh.assert_called_once()
        collaborators["uploader"].upload_file.assert_not_called()

    def test_upload_when_enabled(self, config, collaborators, placeholder):
        """Test descriptors are uploaded when json uploads are enabled."""
        collaborators["uploader"].upload_file.return_value = True
        processor = make_processor(config, collaborators, upload_enabled=True)

        result = processor.process(placeholder)

        collaborators["uploader"].upload_file.assert_called_once_with(result.descriptor_path)
        assert result.uploaded is True

    def test_dvd_skips_structure(self, config, collaborators, image):
        """Test DVD images are not mounted."""
        placeholder = config.strm_root / "Movie.DVD.iso.strm"
        placeholder.write_text(str(image))
        collaborators["prober"].extract.return_value = outcome(DiscType.DVD)
        processor = make_processor(config, collaborators)

        result = processor.process(placeholder)

        collaborators["structure"].extract.assert_not_called()
        assert result.disc_type is DiscType.DVD

    def test_fallback_to_dvd_drops_disc_tags(self, config, collaborators, placeholder):
        """Test Blu-ray tags are ignored when the image probed as DVD."""
        collaborators["prober"].extract.return_value = outcome(DiscType.DVD, True)
        processor = make_processor(config, collaborators)

        result = processor.process(placeholder)

        streams = result.descriptor.streams
        assert len(streams) == 3
        assert streams[1].language == "deu"
        assert result.duration.seconds == 5400


class TestProcessFailures:
    """Test failures that must leave no descriptor behind."""

    def test_empty_placeholder(self, config, collaborators):
        """Test empty placeholders are rejected."""
        placeholder = config.strm_root / "Empty.iso.strm"
        placeholder.write_text("")
        processor = make_processor(config, collaborators)

        with pytest.raises(MediaError, match="empty"):
            processor.process(placeholder)

    def test_missing_local_image(self, config, collaborators, tmp_path):
        """Test local images that do not exist fail immediately."""
        placeholder = config.strm_root / "Gone.iso.strm"
        placeholder.write_text(str(tmp_path / "gone.iso"))
        processor = make_processor(config, collaborators)

        with pytest.raises(MediaError, match="does not exist"):
            processor.process(placeholder)

        collaborators["sleep"].assert_not_called()

    def test_remote_image_still_not_visible(self, config, collaborators, tmp_path):
        """Test remote images get one listing refresh and wait before failing."""
        placeholder = config.strm_root / "Remote.iso.strm"
        placeholder.write_text(str(tmp_path / "clouddrive" / "Remote.iso"))
        processor = make_processor(
            config,
            collaborators,
            remote=True,
            remote_visibility_wait=60,
        )

        with pytest.raises(MediaError, match="still not visible after waiting 60s"):
            processor.process(placeholder)

        collaborators["sleep"].assert_called_once_with(60)
        collaborators["prober"].extract.assert_not_called()
        assert not (config.strm_root / "Remote.iso-mediainfo.json").exists()

    def test_remote_image_appears_after_wait(self, config, collaborators, tmp_path):
        """Test processing continues once the remote listing catches up."""
        image = tmp_path / "clouddrive" / "Late.iso"
        placeholder = config.strm_root / "Late.iso.strm"
        placeholder.write_text(str(image))

        def appear(seconds):
            image.parent.mkdir(parents=True)
            image.write_bytes(b"\0")

        collaborators["sleep"].side_effect = appear
        processor = make_processor(config, collaborators, remote=True)

        result = processor.process(placeholder)

        assert result.descriptor_path.exists()

    def test_probe_failure_writes_nothing(self, config, collaborators, placeholder):
        """Test probe failures propagate and leave no descriptor."""
        collaborators["prober"].extract.side_effect = MediaError("boom")
        processor = make_processor(config, collaborators)

        with pytest.raises(MediaError):
            processor.process(placeholder)

        assert list(config.strm_root.glob("*.json")) == []
        collaborators["notifier"].notify_refresh.assert_not_called()

    def test_transform_failure_saves_ffprobe_output_in_debug(
        self, config, collaborators, placeholder,
    ):
        """Test debug mode keeps the raw ffprobe output when transformation fails."""
        processor = make_processor(config, collaborators, debug=True)

        with patch(
            "fantastic_probe.core.pipeline.build_descriptor",
            side_effect=MediaError("Invalid duration: -1"),
        ):
            with pytest.raises(MediaError):
                processor.process(placeholder)

        (saved,) = processor.config.debug_dir.glob("failed-ffprobe-*.json")
        data = json.loads(saved.read_text(encoding="utf-8"))
        assert data["placeholder"] == str(placeholder)
        assert data["protocol"] == "bluray"
        assert data["ffprobe"] == PROBE_DATA
        assert list(config.strm_root.glob("*.json")) == []

    def test_transform_failure_saves_nothing_without_debug(
        self, config, collaborators, placeholder,
    ):
        """Test raw ffprobe output is only kept in debug mode."""
        processor = make_processor(config, collaborators)

        with patch(
            "fantastic_probe.core.pipeline.build_descriptor",
            side_effect=MediaError("Invalid duration: -1"),
        ):
            with pytest.raises(MediaError):
                processor.process(placeholder)

        assert not config.debug_dir.exists()


class TestDiskSpace:
    """Test the free space guard."""

    def test_insufficient_space(self, tmp_path):
        """Test low free space raises a fatal error."""
        usage = namedtuple("usage", "total used free")(100, 90, 10 * 1024 * 1024)

        with patch("fantastic_probe.core.pipeline.shutil.disk_usage", return_value=usage):
            with pytest.raises(InsufficientSpaceError) as exc_info:
                check_disk_space(tmp_path, 100)

        assert exc_info.value.recoverable is False

    def test_enough_space(self, tmp_path):
        """Test enough free space passes."""
        usage = namedtuple("usage", "total used free")(100, 0, 500 * 1024 * 1024)

        with patch("fantastic_probe.core.pipeline.shutil.disk_usage", return_value=usage):
            check_disk_space(tmp_path, 100)
