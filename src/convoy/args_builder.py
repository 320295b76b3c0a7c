"""Build ffmpeg argument lists from planned stream actions."""

from pathlib import Path
from typing import Optional

from .constants import (
    EXCLUDED_IMAGE_SUBTITLE_CODECS,
    JPEG_QUALITY_SCALE,
    MOV_TEXT_CODEC,
    PRORES_PROFILES,
    WEBP_QUALITY,
)
from .container_rules import muxer_for
from .models import (
    AudioTierDefaults,
    Container,
    ContainerRule,
    MediaSummary,
    PlannerDecision,
    Preset,
    StreamAction,
    SubtitleAction,
    VideoTierDefaults,
)


def resolve_video_profile(codec: str, profile: str) -> str:
    """Translate preset profile names into what the encoder expects."""
    if codec != "prores":
        return profile
    normalized = profile.strip().lower()
    if normalized in ("standard", "hq"):
        return normalized
    if normalized == "422lt":
        return "lt"
    return PRORES_PROFILES.get(normalized, profile)


def video_args(
    action: StreamAction,
    encoder: Optional[str],
    defaults: Optional[VideoTierDefaults],
    preset: Preset,
    summary: Optional[MediaSummary] = None,
) -> list[str]:
    if action == StreamAction.DROP:
        return ["-vn"]

    args = ["-map", "0:v:0?"]
    if encoder:
        args.extend(["-c:v", encoder])
    if action != StreamAction.TRANSCODE:
        return args

    if defaults is not None:
        if defaults.bitrate_k is not None:
            args.extend(["-b:v", f"{defaults.bitrate_k}k"])
        if defaults.maxrate_k is not None:
            args.extend(["-maxrate", f"{defaults.maxrate_k}k"])
        if defaults.bufsize_k is not None:
            args.extend(["-bufsize", f"{defaults.bufsize_k}k"])
        if defaults.crf is not None:
            args.extend(["-crf", str(defaults.crf)])
        if defaults.profile:
            args.extend(
                ["-profile:v", resolve_video_profile(preset.video.codec, defaults.profile)]
            )

    color = summary.color if summary is not None else None
    if preset.video.copy_color_metadata and color is not None:
        if color.primaries:
            args.extend(["-color_primaries", color.primaries])
        if color.transfer:
            args.extend(["-color_trc", color.transfer])
        if color.space:
            args.extend(["-colorspace", color.space])
    return args


def audio_args(
    action: StreamAction,
    encoder: Optional[str],
    defaults: Optional[AudioTierDefaults],
    preset: Preset,
) -> list[str]:
    if action == StreamAction.DROP:
        return ["-an"]

    args = ["-map", "0:a:0?"]
    if encoder:
        args.extend(["-c:a", encoder])
    if action != StreamAction.TRANSCODE:
        return args

    bitrate = defaults.bitrate_k if defaults is not None else None
    if bitrate is None:
        bitrate = preset.audio.bitrate_k
    if bitrate is not None:
        args.extend(["-b:a", f"{bitrate}k"])
    if defaults is not None and defaults.quality is not None:
        args.extend(["-q:a", f"{defaults.quality:g}"])
    if preset.audio.stereo_only:
        args.extend(["-ac", "2"])
    return args


def subtitle_args(action: SubtitleAction, exclude_image_streams: bool = False) -> list[str]:
    if action == SubtitleAction.DROP:
        return ["-sn"]

    codec = MOV_TEXT_CODEC if action == SubtitleAction.CONVERT else "copy"
    args = ["-map", "0:s?", "-c:s", codec]
    if action == SubtitleAction.CONVERT and exclude_image_streams:
        # mov_text cannot hold bitmap subtitles
        for image_codec in EXCLUDED_IMAGE_SUBTITLE_CODECS:
            args.extend(["-map", f"-0:s:m:codec:{image_codec}?"])
    return args


def container_args(container: Container, rule: Optional[ContainerRule]) -> list[str]:
    args = []
    if rule is not None and rule.requires_faststart:
        args.extend(["-movflags", "+faststart"])
    muxer = muxer_for(container)
    if muxer:
        args.extend(["-f", muxer])
    return args


def gif_filter_graph(fps: int, width: int) -> str:
    """Two-pass palette filter graph for good-looking GIFs."""
    return (
        f"[0:v]fps={fps},scale={width}:-2:flags=lanczos,split[s0][s1];"
        "[s0]palettegen=stats_mode=single[p];"
        "[s1][p]paletteuse=dither=bayer:bayer_scale=3[out]"
    )


def gif_args(fps: int, width: int) -> list[str]:
    return [
        "-filter_complex",
        gif_filter_graph(fps, width),
        "-map",
        "[out]",
        "-gifflags",
        "-transdiff",
        "-loop",
        "0",
        "-c:v",
        "gif",
        "-an",
        "-sn",
        "-f",
        "gif",
    ]


def image_args(encoder: str, codec: str) -> list[str]:
    args = ["-map", "0:v:0?", "-c:v", encoder]
    if codec == "mjpeg":
        args.extend(["-q:v", JPEG_QUALITY_SCALE])
    elif codec == "webp":
        args.extend(["-quality", WEBP_QUALITY])
    args.extend(["-frames:v", "1", "-an", "-sn", "-f", "image2"])
    return args


def input_args(source: Path) -> list[str]:
    """Leading arguments shared by every run."""
    return ["-y", "-nostdin", "-i", str(source)]


def _escape_filter_option(value: str) -> str:
    # First level: option value inside a filter description
    for char in ("\\", "'", ":"):
        value = value.replace(char, "\\" + char)
    return value


def _escape_filter_graph(value: str) -> str:
    # Second level: the filter description inside the graph
    for char in ("\\", "'", "[", "]", ",", ";"):
        value = value.replace(char, "\\" + char)
    return value


def subtitles_filter(source: Path, stream_index: int = 0) -> str:
    """The ``subtitles`` filter reading text subtitles from the source file."""
    path = _escape_filter_option(str(source))
    return _escape_filter_graph(f"subtitles=filename={path}:si={stream_index}")


def inject_burn_in(
    args: list[str],
    source: Path,
    summary: MediaSummary,
    decision: PlannerDecision,
) -> tuple[list[str], str]:
    """
    Add the filter that renders subtitles into the video.

    Text subtitles go through the ``subtitles`` filter; bitmap subtitles are
    overlaid with a filter graph. Copied or dropped video cannot carry burned
    subtitles, and the arguments are returned unchanged.

    Returns:
        Tuple of (arguments, note describing what was done)
    """
    if decision.video_action != StreamAction.TRANSCODE:
        return list(args), "Subtitles: burn-in skipped; video is not re-encoded."
    if not summary.has_text_subs and not summary.has_image_subs:
        return list(args), "Subtitles: burn-in skipped; no subtitle streams detected."

    result = list(args)
    try:
        codec_index = result.index("-c:v")
    except ValueError:
        codec_index = len(result)

    if summary.has_text_subs:
        result[codec_index:codec_index] = ["-vf", subtitles_filter(source)]
        return result, "Subtitles: burning text subtitles into video."

    for i in range(len(result) - 1):
        if result[i] == "-map" and result[i + 1] == "0:v:0?":
            result[i + 1] = "[vout]"
            break
    result[codec_index:codec_index] = [
        "-filter_complex",
        "[0:v:0][0:s:0]overlay[vout]",
    ]
    return result, "Subtitles: overlaying image subtitles onto video."
