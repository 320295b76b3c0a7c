"""Tests for args_builder module."""

from pathlib import Path

from convoy.args_builder import (
    audio_args,
    container_args,
    image_args,
    inject_burn_in,
    input_args,
    resolve_video_profile,
    subtitle_args,
    subtitles_filter,
    video_args,
)
from convoy.models import (
    Container,
    MediaSummary,
    PlannerDecision,
    StreamAction,
    SubtitleAction,
    VideoTierDefaults,
)
from convoy.container_rules import rules
from convoy.presets import get_preset


def make_decision(
    video_action: StreamAction = StreamAction.TRANSCODE,
) -> PlannerDecision:
    """Helper to create a decision with typical transcode args."""
    decision = PlannerDecision(preset_id="webm-vp9-opus")
    decision.video_action = video_action
    decision.args = [
        "-map",
        "0:v:0?",
        "-c:v",
        "libvpx-vp9",
        "-map",
        "0:a:0?",
        "-c:a",
        "libopus",
        "-sn",
        "-f",
        "webm",
    ]
    decision.burn_in_requested = True
    return decision


class TestStreamArgs:
    """Tests for per-stream argument builders."""

    def test_video_drop(self):
        preset = get_preset("audio-mp3")
        assert video_args(StreamAction.DROP, None, None, preset) == ["-vn"]

    def test_video_copy(self):
        preset = get_preset("remux-mkv")
        args = video_args(StreamAction.COPY, "copy", None, preset)
        assert args == ["-map", "0:v:0?", "-c:v", "copy"]

    def test_video_transcode_crf(self):
        preset = get_preset("mp4-h264-aac-balanced")
        defaults = VideoTierDefaults(crf=23)
        args = video_args(StreamAction.TRANSCODE, "libx264", defaults, preset)
        assert args == ["-map", "0:v:0?", "-c:v", "libx264", "-crf", "23"]

    def test_audio_fallback_bitrate(self):
        preset = get_preset("audio-flac")
        args = audio_args(StreamAction.TRANSCODE, "flac", None, preset)
        assert args == ["-map", "0:a:0?", "-c:a", "flac"]

    def test_subtitle_args(self):
        assert subtitle_args(SubtitleAction.DROP) == ["-sn"]
        assert subtitle_args(SubtitleAction.COPY) == ["-map", "0:s?", "-c:s", "copy"]
        converted = subtitle_args(SubtitleAction.CONVERT)
        assert converted == ["-map", "0:s?", "-c:s", "mov_text"]

    def test_container_args(self):
        assert container_args(Container.MP4, rules(Container.MP4)) == [
            "-movflags",
            "+faststart",
            "-f",
            "mp4",
        ]
        assert container_args(Container.WEBM, rules(Container.WEBM)) == ["-f", "webm"]

    def test_image_args(self):
        args = image_args("libwebp", "webp")
        assert args[args.index("-quality") + 1] == "90"
        assert args[-2:] == ["-f", "image2"]

    def test_input_args(self):
        assert input_args(Path("/in/a.mkv")) == ["-y", "-nostdin", "-i", "/in/a.mkv"]

    def test_prores_profiles(self):
        assert resolve_video_profile("prores", "422") == "standard"
        assert resolve_video_profile("prores", "422LT") == "lt"
        assert resolve_video_profile("prores", "hq") == "hq"
        assert resolve_video_profile("h264", "high") == "high"


class TestBurnIn:
    """Tests for subtitle burn-in injection."""

    def test_text_subtitles_use_filter(self):
        summary = MediaSummary(video_codec="h264", has_text_subs=True)
        args, note = inject_burn_in(
            make_decision().args, Path("/in/clip.mkv"), summary, make_decision()
        )

        index = args.index("-vf")
        assert args[index + 1].startswith("subtitles=filename=")
        assert args[index + 2] == "-c:v"
        assert "text subtitles" in note

    def test_image_subtitles_use_overlay(self):
        summary = MediaSummary(video_codec="h264", has_image_subs=True)
        args, note = inject_burn_in(
            make_decision().args, Path("/in/clip.mkv"), summary, make_decision()
        )

        assert "[0:v:0][0:s:0]overlay[vout]" in args
        assert args[args.index("-map") + 1] == "[vout]"
        assert "overlaying" in note

    def test_copied_video_is_unchanged(self):
        summary = MediaSummary(video_codec="h264", has_text_subs=True)
        decision = make_decision(StreamAction.COPY)
        args, note = inject_burn_in(decision.args, Path("/in/clip.mkv"), summary, decision)

        assert args == decision.args
        assert "skipped" in note

    def test_no_subtitles_is_unchanged(self):
        summary = MediaSummary(video_codec="h264")
        decision = make_decision()
        args, note = inject_burn_in(decision.args, Path("/in/clip.mkv"), summary, decision)

        assert args == decision.args
        assert "no subtitle streams" in note

    def test_filter_escaping(self):
        result = subtitles_filter(Path("/in/it's:a [clip].mkv"))
        assert "\\\\\\'" in result
        assert "\\\\:" in result
        assert "\\[clip\\]" in result
