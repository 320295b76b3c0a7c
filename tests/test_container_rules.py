"""Tests for container_rules module."""

from convoy.container_rules import (
    CONTAINER_RULES,
    accepts_image_subtitles,
    accepts_text_subtitles,
    allows_audio_codec,
    allows_text_subtitle,
    allows_video_codec,
    muxer_for,
    rules,
)
from convoy.models import Container


class TestRules:
    """Tests for rule lookup."""

    def test_every_container_has_rules(self):
        for container in Container:
            assert container in CONTAINER_RULES

    def test_lookup_by_string(self):
        assert rules("mp4") is CONTAINER_RULES[Container.MP4]
        assert rules("MKV") is CONTAINER_RULES[Container.MKV]

    def test_unknown_container(self):
        assert rules("avi") is None
        assert muxer_for("avi") is None

    def test_mp4_requires_faststart(self):
        assert rules(Container.MP4).requires_faststart is True
        assert rules(Container.MOV).requires_faststart is True
        assert rules(Container.WEBM).requires_faststart is False


class TestCodecChecks:
    """Tests for codec and subtitle compatibility checks."""

    def test_mp4_codecs(self):
        rule = rules(Container.MP4)
        assert allows_video_codec(rule, "h264")
        assert allows_video_codec(rule, "hevc")
        assert not allows_video_codec(rule, "vp9")
        assert allows_audio_codec(rule, "aac")
        assert not allows_audio_codec(rule, "opus")

    def test_mkv_accepts_anything(self):
        rule = rules(Container.MKV)
        assert allows_video_codec(rule, "mpeg2video")
        assert allows_audio_codec(rule, "dts")
        assert allows_text_subtitle(rule, "ass")
        assert accepts_text_subtitles(rule)
        assert accepts_image_subtitles(rule)

    def test_mp4_subtitles(self):
        rule = rules(Container.MP4)
        assert allows_text_subtitle(rule, "mov_text")
        assert not allows_text_subtitle(rule, "subrip")
        assert accepts_text_subtitles(rule)
        assert not accepts_image_subtitles(rule)

    def test_webm_has_no_subtitles(self):
        rule = rules(Container.WEBM)
        assert not accepts_text_subtitles(rule)
        assert not accepts_image_subtitles(rule)


class TestMuxers:
    """Tests for muxer names."""

    def test_muxer_names(self):
        assert muxer_for(Container.MKV) == "matroska"
        assert muxer_for(Container.M4A) == "mp4"
        assert muxer_for(Container.MOV) == "mov"
        assert muxer_for("png") == "image2"
