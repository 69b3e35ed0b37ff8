"""Tests for HDR and Dolby Vision classification."""

import pytest

from fantastic_probe.probe.models import StreamInfo
from fantastic_probe.transform.hdr import (
    DUAL_LAYER_PROFILE7,
    HDR10,
    HDR10_PLUS,
    HLG,
    SDR,
    classify_video_range,
    detect_dual_layer_profile7,
    extended_video_subtype,
    extended_video_type,
    hdr_display_tag,
)


def video(**kwargs):
    data = {"index": 0, "codec_type": "video", "codec_name": "hevc"}
    data.update(kwargs)
    return StreamInfo.from_dict(data)


def dovi(profile, compat=None, level=6):
    record = {
        "side_data_type": "DOVI configuration record",
        "dv_profile": profile,
        "dv_level": level,
    }
    if compat is not None:
        record["dv_bl_signal_compatibility_id"] = compat
    return [record]


class TestClassifyVideoRange:
    """Test single-stream classification."""

    @pytest.mark.parametrize(
        ("compat", "expected"),
        [(1, "8.1"), (2, "8.2"), (4, "8.4"), (6, "8.4"), (None, "8.4")],
    )
    def test_profile8_variants(self, compat, expected):
        """Test profile 8 is refined by its compatibility id."""
        stream = video(color_transfer="smpte2084", side_data_list=dovi(8, compat))

        assert classify_video_range(stream) == f"DolbyVision Profile {expected}"

    def test_profile5(self):
        """Test other profiles are reported as-is."""
        stream = video(color_transfer="smpte2084", side_data_list=dovi(5))

        assert classify_video_range(stream) == "DolbyVision Profile 5"

    def test_hdr10_plus(self):
        """Test HDR10+ metadata on a PQ stream."""
        stream = video(
            color_transfer="smpte2084",
            side_data_list=[{"side_data_type": "HDR10+ metadata"}],
        )

        assert classify_video_range(stream) == HDR10_PLUS

    def test_codec_tag_dolby_vision(self):
        """Test DV codec tags without PQ transfer."""
        stream = video(codec_tag_string="dvhe")

        assert classify_video_range(stream) == "DolbyVision"

    @pytest.mark.parametrize(
        ("transfer", "expected"),
        [("smpte2084", HDR10), ("arib-std-b67", HLG), ("bt709", SDR), (None, SDR)],
    )
    def test_plain_ranges(self, transfer, expected):
        """Test PQ, HLG and SDR."""
        assert classify_video_range(video(color_transfer=transfer)) == expected


class TestDualLayerProfile7:
    """Test BDMV dual-layer detection."""

    def test_detected(self):
        """Test two PQ video streams led by an HDMV tagged stream."""
        streams = [
            video(index=0, color_transfer="smpte2084", codec_tag_string="HDMV"),
            video(index=1, color_transfer="smpte2084"),
        ]

        assert detect_dual_layer_profile7(streams) is True

    def test_single_video_not_detected(self):
        """Test one video stream is never dual layer."""
        streams = [video(color_transfer="smpte2084", codec_tag_string="HDMV")]

        assert detect_dual_layer_profile7(streams) is False

    def test_requires_hdmv_tag(self):
        """Test the first stream must carry the HDMV tag."""
        streams = [
            video(index=0, color_transfer="smpte2084"),
            video(index=1, color_transfer="smpte2084"),
        ]

        assert detect_dual_layer_profile7(streams) is False


class TestExtendedTypes:
    """Test Emby extended video type fields."""

    def test_profile82_subtype(self):
        """Test profile 8.2 subtype naming."""
        stream = video(color_transfer="smpte2084", side_data_list=dovi(8, 2))

        assert extended_video_type("DolbyVision Profile 8.2") == "DolbyVision"
        assert extended_video_subtype("DolbyVision Profile 8.2", stream) == (
            "DoviProfile82",
            "Profile 8.2",
        )

    def test_profile7_subtype(self):
        """Test dual-layer Profile 7 subtype naming."""
        assert extended_video_subtype(DUAL_LAYER_PROFILE7, video()) == (
            "DoviProfile76",
            "Profile 7.6 (Bluray)",
        )

    def test_profile5_subtype_from_record(self):
        """Test other profiles use the record's profile and level."""
        stream = video(color_transfer="smpte2084", side_data_list=dovi(5, level=9))

        assert extended_video_subtype("DolbyVision Profile 5", stream) == (
            "DoviProfile59",
            "Profile 5.9",
        )

    def test_non_dolby_vision(self):
        """Test HDR10 and SDR map to plain types."""
        assert extended_video_type(HDR10) == "HDR10"
        assert extended_video_type(HDR10_PLUS) == "HDR10Plus"
        assert extended_video_type(SDR) == "None"
        assert extended_video_subtype(HDR10, video()) == ("None", "None")

    def test_display_tag(self):
        """Test display tags for titles."""
        assert hdr_display_tag("DolbyVision Profile 8.1") == "Dolby Vision"
        assert hdr_display_tag(HLG) == "HLG"
        assert hdr_display_tag(SDR) == ""
