"""Tests for planner module."""

from convoy.models import (
    AudioPolicy,
    AudioTierDefaults,
    CapabilitySnapshot,
    ColorInfo,
    Container,
    MediaSummary,
    Preset,
    StreamAction,
    SubtitleAction,
    SubtitleMode,
    SubtitlePolicy,
    Tier,
    VideoPolicy,
    VideoTierDefaults,
)
from convoy.planner import (
    Planner,
    normalize_codec,
    predict_exclusive,
    resolve_tier,
)
from convoy.presets import get_preset
from convoy.strategies import SoftwareOnlyVideoStrategy


def make_summary(
    video_codec: str | None = "h264",
    audio_codec: str | None = "aac",
    duration: float = 60.0,
    width: int | None = 1920,
    height: int | None = 1080,
    fps: float | None = 24.0,
    channels: int | None = 2,
    has_text_subs: bool = False,
    has_image_subs: bool = False,
    color: ColorInfo | None = None,
) -> MediaSummary:
    """Helper to create media summaries for testing."""
    return MediaSummary(
        duration_sec=duration,
        width=width if video_codec else None,
        height=height if video_codec else None,
        fps=fps if video_codec else None,
        video_codec=video_codec,
        audio_codec=audio_codec,
        channels=channels if audio_codec else None,
        color=color,
        has_text_subs=has_text_subs,
        has_image_subs=has_image_subs,
    )


def make_caps(video=(), audio=()) -> CapabilitySnapshot:
    """Helper to create capability snapshots for testing."""
    return CapabilitySnapshot(
        video_encoders=frozenset(video), audio_encoders=frozenset(audio)
    )


def make_fast_only_preset() -> Preset:
    """A transcoding preset that only defines the fast tier."""
    return Preset(
        id="test-fast-only",
        label="Fast only",
        container=Container.MKV,
        video=VideoPolicy(
            codec="hevc", tiers={Tier.FAST: VideoTierDefaults(bitrate_k=2000)}
        ),
        audio=AudioPolicy(
            codec="opus", tiers={Tier.FAST: AudioTierDefaults(bitrate_k=96)}
        ),
        subs=SubtitlePolicy(mode=SubtitleMode.DROP),
    )


def value_after(args: list[str], flag: str) -> str:
    """Return the argument following flag."""
    return args[args.index(flag) + 1]


class TestHelpers:
    """Tests for planner helper functions."""

    def test_normalize_codec(self):
        assert normalize_codec("AVC1") == "h264"
        assert normalize_codec("h265") == "hevc"
        assert normalize_codec("opus") == "opus"
        assert normalize_codec(None) is None
        assert normalize_codec("") is None

    def test_resolve_tier_exact(self):
        tiers = {Tier.FAST: 1, Tier.HIGH: 3}
        assert resolve_tier(tiers, Tier.HIGH) == (Tier.HIGH, 3, False)

    def test_resolve_tier_fallback_order(self):
        tiers = {Tier.FAST: 1, Tier.BALANCED: 2}
        assert resolve_tier(tiers, Tier.HIGH) == (Tier.BALANCED, 2, True)
        assert resolve_tier({Tier.HIGH: 3}, Tier.FAST) == (Tier.HIGH, 3, True)

    def test_resolve_tier_empty(self):
        assert resolve_tier({}, Tier.HIGH) == (Tier.HIGH, None, False)

    def test_predict_exclusive(self):
        assert predict_exclusive(get_preset("webm-av1-opus"))
        assert predict_exclusive(get_preset("mov-prores-pcm"))
        assert not predict_exclusive(get_preset("mp4-h264-aac-balanced"))
        assert not predict_exclusive(get_preset("remux-mkv"))


class TestRemuxDetection:
    """Tests for stream copy decisions."""

    def test_matching_source_with_convert_subs_is_not_remux(self):
        """Both streams copy, but subtitle conversion means it is not a remux."""
        preset = get_preset("mp4-h264-aac-balanced")
        decision = Planner().plan(make_summary(), preset, Tier.BALANCED)

        assert decision.video_action == StreamAction.COPY
        assert decision.audio_action == StreamAction.COPY
        assert decision.subtitle_action == SubtitleAction.CONVERT
        assert decision.remux_only is False

    def test_pure_remux_without_subtitles(self):
        preset = get_preset("mkv-passthrough")
        decision = Planner().plan(make_summary(), preset, Tier.BALANCED)

        assert decision.remux_only is True
        assert decision.video_encoder == "copy"
        assert "-c:v" in decision.args
        assert value_after(decision.args, "-c:v") == "copy"
        assert value_after(decision.args, "-f") == "matroska"
        assert any("keep requested but no streams" in n for n in decision.notes)

    def test_copy_warns_when_container_does_not_list_codec(self):
        preset = get_preset("remux-mp4")
        decision = Planner().plan(
            make_summary(video_codec="vp9", audio_codec="opus"), preset
        )

        assert decision.video_action == StreamAction.COPY
        assert any("vp9" in w and "not listed" in w for w in decision.warnings)
        assert any("opus" in w and "not listed" in w for w in decision.warnings)


class TestVideoPlanning:
    """Tests for video stream planning."""

    def test_transcode_with_tier(self):
        preset = get_preset("mp4-hevc-aac")
        decision = Planner().plan(
            make_summary(), preset, Tier.HIGH, make_caps(video=["libx265"], audio=["aac"])
        )

        assert decision.video_action == StreamAction.TRANSCODE
        assert decision.video_encoder == "libx265"
        assert decision.video_tier == Tier.HIGH
        assert value_after(decision.args, "-b:v") == "5500k"
        assert value_after(decision.args, "-maxrate") == "7500k"
        assert value_after(decision.args, "-bufsize") == "11000k"
        assert "Video tier high applied." in decision.notes

    def test_tier_fallback_mentions_fast(self):
        decision = Planner().plan(make_summary(), make_fast_only_preset(), Tier.HIGH)

        assert decision.video_tier == Tier.FAST
        assert any("fast" in note for note in decision.notes)
        assert "Video tier fallback applied: using fast." in decision.notes
        assert "Audio tier fallback applied: using fast." in decision.notes

    def test_missing_encoder_warns(self):
        preset = get_preset("mp4-hevc-aac")
        decision = Planner().plan(make_summary(), preset, capabilities=make_caps(audio=["aac"]))

        assert decision.video_encoder == "libx265"
        assert any("libx265" in w and "not available" in w for w in decision.warnings)

    def test_hardware_encoder_note(self):
        preset = get_preset("mp4-hevc-aac")
        caps = make_caps(video=["hevc_videotoolbox", "libx265"], audio=["aac"])
        decision = Planner().plan(make_summary(), preset, capabilities=caps)

        assert decision.video_encoder == "hevc_videotoolbox"
        assert any("hardware accelerated" in n for n in decision.notes)

    def test_software_only_strategy(self):
        preset = get_preset("mp4-hevc-aac")
        caps = make_caps(video=["hevc_videotoolbox", "libx265"], audio=["aac"])
        planner = Planner(video_strategy=SoftwareOnlyVideoStrategy())
        decision = planner.plan(make_summary(), preset, capabilities=caps)

        assert decision.video_encoder == "libx265"

    def test_color_metadata_copied(self):
        preset = get_preset("mp4-hevc-aac")
        color = ColorInfo(primaries="bt2020", transfer="smpte2084", space="bt2020nc")
        decision = Planner().plan(make_summary(color=color), preset)

        assert value_after(decision.args, "-color_primaries") == "bt2020"
        assert value_after(decision.args, "-color_trc") == "smpte2084"
        assert value_after(decision.args, "-colorspace") == "bt2020nc"
        assert "Video color metadata copied." in decision.notes

    def test_no_video_stream(self):
        preset = get_preset("mp4-h264-aac-balanced")
        decision = Planner().plan(make_summary(video_codec=None), preset)

        assert decision.video_action == StreamAction.DROP
        assert "-vn" in decision.args
        assert len([w for w in decision.warnings if "video" in w.lower()]) == 2

    def test_prores_profile_and_exclusive(self):
        preset = get_preset("mov-prores-pcm")
        decision = Planner().plan(make_summary(), preset, Tier.BALANCED)

        assert decision.video_encoder == "prores_ks"
        assert value_after(decision.args, "-profile:v") == "hq"
        assert value_after(decision.args, "-f") == "mov"
        assert decision.exclusive is True

    def test_copy_is_not_exclusive(self):
        preset = get_preset("webm-av1-opus")
        decision = Planner().plan(make_summary(video_codec="av1", audio_codec="opus"), preset)

        assert decision.video_action == StreamAction.COPY
        assert decision.exclusive is False


class TestAudioPlanning:
    """Tests for audio stream planning."""

    def test_transcode_downmix(self):
        preset = get_preset("webm-vp9-opus")
        decision = Planner().plan(
            make_summary(audio_codec="ac3", channels=6), preset, Tier.BALANCED
        )

        assert decision.audio_encoder == "libopus"
        assert value_after(decision.args, "-c:a") == "libopus"
        assert value_after(decision.args, "-b:a") == "128k"
        assert value_after(decision.args, "-ac") == "2"
        assert any("downmixing 6 channels" in n for n in decision.notes)

    def test_audio_tier_override(self):
        preset = get_preset("webm-vp9-opus")
        decision = Planner().plan(
            make_summary(audio_codec="ac3"), preset, Tier.FAST, audio_tier=Tier.HIGH
        )

        assert decision.video_tier == Tier.FAST
        assert decision.audio_tier == Tier.HIGH
        assert value_after(decision.args, "-b:a") == "160k"

    def test_no_audio_stream(self):
        preset = get_preset("audio-mp3")
        decision = Planner().plan(make_summary(audio_codec=None), preset)

        assert decision.audio_action == StreamAction.DROP
        assert "-an" in decision.args
        assert "-vn" in decision.args

    def test_audio_only_preset(self):
        preset = get_preset("audio-m4a")
        decision = Planner().plan(make_summary(audio_codec="opus"), preset)

        assert decision.video_action == StreamAction.DROP
        assert decision.audio_action == StreamAction.TRANSCODE
        assert "Video: disabled by preset." in decision.notes
        assert value_after(decision.args, "-movflags") == "+faststart"


class TestSubtitlePlanning:
    """Tests for subtitle planning."""

    def test_convert_without_text_subs_warns(self):
        preset = get_preset("mp4-h264-aac-balanced")
        decision = Planner().plan(make_summary(), preset)

        assert "No text subtitles available for conversion." in decision.warnings
        assert value_after(decision.args, "-c:s") == "mov_text"

    def test_convert_excludes_image_subs(self):
        preset = get_preset("mp4-h264-aac-balanced")
        decision = Planner().plan(
            make_summary(has_text_subs=True, has_image_subs=True), preset
        )

        assert any("Image-based subtitles" in w for w in decision.warnings)
        assert "-0:s:m:codec:hdmv_pgs_subtitle?" in decision.args

    def test_keep_warns_for_unsupported_container(self):
        preset = Preset(
            id="test-webm-keep",
            label="WebM keep",
            container=Container.WEBM,
            video=VideoPolicy(codec="copy"),
            audio=AudioPolicy(codec="copy"),
            subs=SubtitlePolicy(mode=SubtitleMode.KEEP),
        )
        decision = Planner().plan(
            make_summary(video_codec="vp9", audio_codec="opus", has_text_subs=True),
            preset,
        )

        assert any("does not permit text subtitles" in w for w in decision.warnings)
        assert decision.subtitle_action == SubtitleAction.COPY

    def test_burn_in_requested(self):
        preset = get_preset("webm-vp9-opus")
        decision = Planner().plan(make_summary(has_text_subs=True), preset)

        assert decision.burn_in_requested is True
        assert decision.subtitle_action == SubtitleAction.DROP
        assert any("burn-in" in w for w in decision.warnings)
        assert "-sn" in decision.args

    def test_drop(self):
        preset = get_preset("audio-flac")
        decision = Planner().plan(make_summary(has_text_subs=True), preset)

        assert "Subtitles: drop streams per preset." in decision.notes


class TestSpecialPresets:
    """Tests for GIF and still image planning."""

    def test_gif_clamps_and_warns(self):
        preset = get_preset("gif-export")
        decision = Planner().plan(
            make_summary(duration=45.0, width=1921, fps=60.0), preset
        )

        assert any("under ~20 seconds" in w for w in decision.warnings)
        graph = value_after(decision.args, "-filter_complex")
        assert "fps=20" in graph
        assert "scale=640:-2" in graph
        assert decision.args[-2:] == ["-f", "gif"]
        assert decision.audio_action == StreamAction.DROP

    def test_gif_default_fps(self):
        preset = get_preset("gif-export")
        decision = Planner().plan(make_summary(fps=None, width=301), preset)

        graph = value_after(decision.args, "-filter_complex")
        assert "fps=12" in graph
        assert "scale=300:-2" in graph

    def test_gif_without_video(self):
        preset = get_preset("gif-export")
        decision = Planner().plan(make_summary(video_codec=None), preset)

        assert any("GIF export will fail" in w for w in decision.warnings)

    def test_image_jpeg(self):
        preset = get_preset("image-jpg")
        decision = Planner().plan(make_summary(), preset)

        assert value_after(decision.args, "-c:v") == "mjpeg"
        assert value_after(decision.args, "-q:v") == "2"
        assert decision.args[-2:] == ["-f", "image2"]
        assert value_after(decision.args, "-frames:v") == "1"

    def test_image_webp_encoder(self):
        preset = get_preset("image-webp")
        decision = Planner().plan(make_summary(), preset)

        assert decision.video_encoder == "libwebp"
