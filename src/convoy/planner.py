"""Plan ffmpeg arguments for converting a probed source with a preset."""

from dataclasses import dataclass
from typing import Optional, TypeVar

from rich.table import Table

from . import args_builder
from .constants import (
    COPY_CODEC,
    EXCLUSIVE_VIDEO_CODECS,
    GIF_DEFAULT_FPS,
    GIF_DEFAULT_WIDTH,
    GIF_DURATION_WARNING_SECONDS,
    GIF_MAX_FPS,
    GIF_MAX_WIDTH,
    GIF_MIN_FPS,
    GIF_MIN_WIDTH,
    MOV_TEXT_CODEC,
    NONE_CODEC,
    TIER_PRIORITY,
)
from .container_rules import (
    accepts_image_subtitles,
    accepts_text_subtitles,
    allows_audio_codec,
    allows_text_subtitle,
    allows_video_codec,
    rules,
)
from .models import (
    CapabilitySnapshot,
    Container,
    ContainerRule,
    MediaSummary,
    PlannerDecision,
    Preset,
    StreamAction,
    SubtitleAction,
    SubtitleMode,
    Tier,
)
from .strategies import (
    AudioEncoderStrategy,
    DefaultAudioStrategy,
    HardwareFirstVideoStrategy,
    VideoEncoderStrategy,
)
from .utils import clamp, console

T = TypeVar("T")

# Source codec spellings that mean the same thing as a preset codec
CODEC_ALIASES = {
    "avc": "h264",
    "avc1": "h264",
    "x264": "h264",
    "h265": "hevc",
    "hvc1": "hevc",
    "hev1": "hevc",
    "x265": "hevc",
    "vp09": "vp9",
    "av01": "av1",
    "libopus": "opus",
    "libvorbis": "vorbis",
    "mp4a": "aac",
    "libmp3lame": "mp3",
    "jpeg": "mjpeg",
}

HARDWARE_ENCODER_MARKERS = ("videotoolbox", "_nvenc", "_qsv", "_vaapi", "_amf")


def normalize_codec(name: Optional[str]) -> Optional[str]:
    """Lowercase a codec name and fold common aliases."""
    if not name:
        return None
    lowered = name.strip().lower()
    return CODEC_ALIASES.get(lowered, lowered)


def is_hardware_encoder(encoder: Optional[str]) -> bool:
    return bool(encoder) and any(m in encoder for m in HARDWARE_ENCODER_MARKERS)


def resolve_tier(
    tiers: dict[Tier, T], requested: Tier
) -> tuple[Tier, Optional[T], bool]:
    """
    Pick the tier defaults to use.

    Falls back through balanced, fast, high when the requested tier is not
    defined.

    Returns:
        Tuple of (tier used, its defaults or None, whether a fallback happened)
    """
    if not tiers:
        return requested, None, False
    if requested in tiers:
        return requested, tiers[requested], False
    for name in TIER_PRIORITY:
        candidate = Tier(name)
        if candidate in tiers:
            return candidate, tiers[candidate], candidate != requested
    return requested, None, False


def predict_exclusive(preset: Preset) -> bool:
    """Whether a job using this preset is expected to need the machine alone."""
    return not preset.remux_only and preset.video.codec in EXCLUSIVE_VIDEO_CODECS


@dataclass
class _StreamPlan:
    action: StreamAction
    encoder: Optional[str]
    tier: Optional[Tier] = None
    defaults: Optional[object] = None


class Planner:
    """
    Turns (source summary, preset, tier) into a PlannerDecision.

    Planning never refuses: anything doubtful is attached to the decision as
    a warning and left for the run to prove or disprove.
    """

    def __init__(
        self,
        video_strategy: Optional[VideoEncoderStrategy] = None,
        audio_strategy: Optional[AudioEncoderStrategy] = None,
    ):
        self.video_strategy = video_strategy or HardwareFirstVideoStrategy()
        self.audio_strategy = audio_strategy or DefaultAudioStrategy()

    def plan(
        self,
        summary: MediaSummary,
        preset: Preset,
        tier: Tier = Tier.BALANCED,
        capabilities: Optional[CapabilitySnapshot] = None,
        audio_tier: Optional[Tier] = None,
    ) -> PlannerDecision:
        if preset.container == Container.GIF:
            return self._plan_gif(summary, preset, capabilities)
        if preset.container.is_image:
            return self._plan_image(preset, capabilities)

        decision = PlannerDecision(preset_id=preset.id)
        rule = rules(preset.container)
        if rule is None:
            decision.warnings.append(
                f"No container rules defined for {preset.container.value}; "
                "planner will assume compatibility."
            )

        video = self._plan_video(summary, preset, tier, capabilities, rule, decision)
        audio = self._plan_audio(
            summary, preset, audio_tier or tier, capabilities, rule, decision
        )
        subtitles, exclude_image = self._plan_subtitles(summary, preset, rule, decision)

        decision.video_action = video.action
        decision.audio_action = audio.action
        decision.subtitle_action = subtitles
        decision.video_encoder = video.encoder
        decision.audio_encoder = audio.encoder
        decision.video_tier = video.tier
        decision.audio_tier = audio.tier

        args = args_builder.video_args(
            video.action, video.encoder, video.defaults, preset, summary
        )
        if video.action == StreamAction.TRANSCODE and video.defaults is not None:
            decision.notes.append(f"Video tier {video.tier.value} applied.")
        if (
            video.action == StreamAction.TRANSCODE
            and preset.video.copy_color_metadata
            and summary.color is not None
        ):
            decision.notes.append("Video color metadata copied.")

        args += args_builder.audio_args(
            audio.action, audio.encoder, audio.defaults, preset
        )
        if audio.action == StreamAction.TRANSCODE and audio.defaults is not None:
            decision.notes.append(f"Audio tier {audio.tier.value} applied.")

        args += args_builder.subtitle_args(subtitles, exclude_image)
        args += args_builder.container_args(preset.container, rule)
        if rule is not None and rule.requires_faststart:
            decision.notes.append("Applied faststart for streaming playback.")

        decision.args = args
        decision.remux_only = (
            video.action == StreamAction.COPY
            and audio.action == StreamAction.COPY
            and subtitles == SubtitleAction.COPY
        )
        decision.exclusive = (
            video.action == StreamAction.TRANSCODE
            and preset.video.codec in EXCLUSIVE_VIDEO_CODECS
        )
        return decision

    def _plan_video(
        self,
        summary: MediaSummary,
        preset: Preset,
        tier: Tier,
        capabilities: Optional[CapabilitySnapshot],
        rule: Optional[ContainerRule],
        decision: PlannerDecision,
    ) -> _StreamPlan:
        target = preset.video.codec
        source = normalize_codec(summary.video_codec)

        if target == NONE_CODEC:
            decision.notes.append("Video: disabled by preset.")
            return _StreamPlan(StreamAction.DROP, None)

        if source is None:
            decision.notes.append("Video: input provides no video stream.")
            decision.warnings.append(
                "Input contains no video stream; output will omit video."
            )
            decision.warnings.append(
                "Preset expects video output but planner is dropping the stream."
            )
            return _StreamPlan(StreamAction.DROP, None)

        if target == COPY_CODEC or source == target:
            decision.notes.append(f"Video: copy source codec {source}.")
            if rule is not None and not allows_video_codec(rule, source):
                decision.warnings.append(
                    f"Source video codec {source} is not listed for "
                    f"{preset.container.value}; verify container compatibility."
                )
            return _StreamPlan(StreamAction.COPY, COPY_CODEC)

        available = capabilities.video_encoders if capabilities is not None else None
        encoder = self.video_strategy.select(target, available) or target
        if available is not None and encoder not in available:
            decision.warnings.append(
                f"Encoder {encoder} for {target} is not available; transcode may fail."
            )

        used, defaults, fallback = resolve_tier(preset.video.tiers, tier)
        if fallback:
            decision.notes.append(f"Video tier fallback applied: using {used.value}.")

        accel = " (hardware accelerated)" if is_hardware_encoder(encoder) else ""
        decision.notes.append(
            f"Video: transcode {source} to {target} with {encoder}{accel}."
        )
        return _StreamPlan(StreamAction.TRANSCODE, encoder, used, defaults)

    def _plan_audio(
        self,
        summary: MediaSummary,
        preset: Preset,
        tier: Tier,
        capabilities: Optional[CapabilitySnapshot],
        rule: Optional[ContainerRule],
        decision: PlannerDecision,
    ) -> _StreamPlan:
        target = preset.audio.codec
        source = normalize_codec(summary.audio_codec)

        if target == NONE_CODEC:
            decision.notes.append("Audio: disabled by preset.")
            return _StreamPlan(StreamAction.DROP, None)

        if source is None:
            decision.notes.append("Audio: input provides no audio stream.")
            decision.warnings.append(
                "Input contains no audio stream; output will omit audio."
            )
            decision.warnings.append(
                "Preset expects audio output but planner is dropping the stream."
            )
            return _StreamPlan(StreamAction.DROP, None)

        if target == COPY_CODEC or source == target:
            decision.notes.append(f"Audio: copy source codec {source}.")
            if rule is not None and not allows_audio_codec(rule, source):
                decision.warnings.append(
                    f"Source audio codec {source} is not listed for "
                    f"{preset.container.value}; verify container compatibility."
                )
            return _StreamPlan(StreamAction.COPY, COPY_CODEC)

        available = capabilities.audio_encoders if capabilities is not None else None
        encoder = self.audio_strategy.select(target, available) or target
        if available is not None and encoder not in available:
            decision.warnings.append(
                f"Encoder {encoder} for {target} is not available; transcode may fail."
            )

        used, defaults, fallback = resolve_tier(preset.audio.tiers, tier)
        if fallback:
            decision.notes.append(f"Audio tier fallback applied: using {used.value}.")

        decision.notes.append(f"Audio: transcode {source} to {target} with {encoder}.")
        if preset.audio.stereo_only and summary.channels and summary.channels > 2:
            decision.notes.append(
                f"Audio: downmixing {summary.channels} channels to stereo."
            )
        return _StreamPlan(StreamAction.TRANSCODE, encoder, used, defaults)

    def _plan_subtitles(
        self,
        summary: MediaSummary,
        preset: Preset,
        rule: Optional[ContainerRule],
        decision: PlannerDecision,
    ) -> tuple[SubtitleAction, bool]:
        """
        Decide what happens to subtitle streams.

        Returns:
            Tuple of (action, whether image streams must be excluded)
        """
        has_text = summary.has_text_subs
        has_image = summary.has_image_subs
        has_any = has_text or has_image
        mode = preset.subs.mode
        container = preset.container.value

        if mode == SubtitleMode.KEEP:
            if not has_any:
                decision.notes.append(
                    "Subtitles: keep requested but no streams detected."
                )
                return SubtitleAction.COPY, False
            if has_text and rule is not None and not accepts_text_subtitles(rule):
                decision.warnings.append(
                    f"{container} does not permit text subtitles; "
                    "consider converting or burning in."
                )
            if has_image and rule is not None and not accepts_image_subtitles(rule):
                decision.warnings.append(
                    f"{container} does not permit image subtitles; consider burn-in."
                )
            decision.notes.append("Subtitles: keep existing streams.")
            return SubtitleAction.COPY, False

        if mode == SubtitleMode.CONVERT:
            if not has_text:
                decision.warnings.append("No text subtitles available for conversion.")
            if has_image:
                decision.warnings.append(
                    "Image-based subtitles detected; conversion to mov_text not supported."
                )
            if rule is not None and not allows_text_subtitle(rule, MOV_TEXT_CODEC):
                decision.warnings.append(
                    f"{container} container does not advertise {MOV_TEXT_CODEC}; "
                    "conversion may fail."
                )
            decision.notes.append("Subtitles: convert text streams to mov_text.")
            return SubtitleAction.CONVERT, has_image

        if mode == SubtitleMode.BURN:
            decision.burn_in_requested = True
            decision.warnings.append(
                "Subtitle burn-in requested; execution layer must inject subtitle filters."
            )
            decision.notes.append(
                "Subtitles: burn-in requested (applied when the job runs)."
            )
            return SubtitleAction.DROP, False

        decision.notes.append(
            "Subtitles: drop streams per preset."
            if has_any
            else "Subtitles: no streams detected."
        )
        return SubtitleAction.DROP, False

    def _plan_gif(
        self,
        summary: MediaSummary,
        preset: Preset,
        capabilities: Optional[CapabilitySnapshot],
    ) -> PlannerDecision:
        decision = PlannerDecision(preset_id=preset.id)

        if summary.duration_sec > GIF_DURATION_WARNING_SECONDS:
            decision.warnings.append(
                f"GIF preset performs best on clips under ~{GIF_DURATION_WARNING_SECONDS} "
                "seconds; consider trimming the source."
            )
        if summary.video_codec is None:
            decision.warnings.append(
                "Input contains no video stream; GIF export will fail."
            )

        source_fps = summary.fps or 0
        fps = int(clamp(round(source_fps) or GIF_DEFAULT_FPS, GIF_MIN_FPS, GIF_MAX_FPS))
        if not summary.fps:
            decision.notes.append(
                f"Video: using default {GIF_DEFAULT_FPS} fps for GIF output."
            )
        elif abs(fps - source_fps) >= 1:
            decision.notes.append(
                f"Video: fps clamped from {round(source_fps)} to {fps} for GIF output."
            )

        measured = summary.width if summary.width and summary.width > 0 else GIF_DEFAULT_WIDTH
        width = int(clamp(measured, GIF_MIN_WIDTH, GIF_MAX_WIDTH))
        if width % 2:
            width -= 1
        if width < GIF_MIN_WIDTH:
            width = GIF_DEFAULT_WIDTH
        if summary.width and summary.width > GIF_MAX_WIDTH:
            decision.notes.append(
                f"Video: width limited to {width}px to keep GIF size manageable."
            )

        available = capabilities.video_encoders if capabilities is not None else None
        encoder = self.video_strategy.select("gif", available) or "gif"
        if available is not None and encoder not in available:
            decision.warnings.append(
                f"Encoder {encoder} for gif is not available; transcode may fail."
            )

        decision.args = args_builder.gif_args(fps, width)
        decision.notes.append(
            f"Video: transcode to GIF at {fps} fps with palette optimisation."
        )
        decision.video_action = StreamAction.TRANSCODE
        decision.video_encoder = encoder
        decision.audio_action = StreamAction.DROP
        decision.subtitle_action = SubtitleAction.DROP
        return decision

    def _plan_image(
        self, preset: Preset, capabilities: Optional[CapabilitySnapshot]
    ) -> PlannerDecision:
        decision = PlannerDecision(preset_id=preset.id)
        codec = preset.video.codec
        available = capabilities.video_encoders if capabilities is not None else None
        encoder = self.video_strategy.select(codec, available)

        if not encoder:
            decision.warnings.append(f"Unknown image codec: {codec}")
            encoder = codec
        elif available is not None and encoder not in available:
            decision.warnings.append(
                f"Encoder {encoder} not reported by FFmpeg; conversion may fail."
            )

        decision.args = args_builder.image_args(encoder, codec)
        decision.notes.append(
            f"Image: converting to {preset.container.value.upper()} format "
            f"with {codec} codec."
        )
        decision.video_action = StreamAction.TRANSCODE
        decision.video_encoder = encoder
        return decision


def display_decision(decision: PlannerDecision, preset: Preset):
    """Print a planner decision for review."""
    table = Table(title=f"Plan: {preset.label}")
    table.add_column("Stream", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("Encoder")

    table.add_row(
        "Video", decision.video_action.value, decision.video_encoder or "-"
    )
    table.add_row(
        "Audio", decision.audio_action.value, decision.audio_encoder or "-"
    )
    table.add_row("Subtitles", decision.subtitle_action.value, "-")
    console.print(table)

    if decision.remux_only:
        console.print("[green]Remux only: no re-encoding needed.[/green]")
    if decision.exclusive:
        console.print("[yellow]Runs exclusively (heavy encode).[/yellow]")

    for note in decision.notes:
        console.print(f"  [dim]{note}[/dim]")
    for warning in decision.warnings:
        console.print(f"  [yellow]Warning:[/yellow] {warning}")
