"""Built-in output presets, in catalog order."""

from typing import Optional

from .errors import UnknownPresetError
from .models import (
    AudioPolicy,
    AudioTierDefaults,
    Container,
    Preset,
    SubtitleMode,
    SubtitlePolicy,
    Tier,
    VideoPolicy,
    VideoTierDefaults,
)
from .utils import slugify

DEFAULT_PRESET_ID = "mp4-h264-aac-balanced"

# Shared audio tiers (kbit/s)
_AAC_TIERS = {
    Tier.FAST: AudioTierDefaults(bitrate_k=128),
    Tier.BALANCED: AudioTierDefaults(bitrate_k=160),
    Tier.HIGH: AudioTierDefaults(bitrate_k=192),
}
_OPUS_TIERS = {
    Tier.FAST: AudioTierDefaults(bitrate_k=112),
    Tier.BALANCED: AudioTierDefaults(bitrate_k=128),
    Tier.HIGH: AudioTierDefaults(bitrate_k=160),
}
_MP3_TIERS = {
    Tier.FAST: AudioTierDefaults(bitrate_k=128),
    Tier.BALANCED: AudioTierDefaults(bitrate_k=160),
    Tier.HIGH: AudioTierDefaults(bitrate_k=192),
}


def _video_tiers(fast, balanced, high) -> dict[Tier, VideoTierDefaults]:
    """Build bitrate/maxrate/bufsize tiers from (bitrate, maxrate, bufsize) triples."""
    return {
        tier: VideoTierDefaults(bitrate_k=b, maxrate_k=m, bufsize_k=s)
        for tier, (b, m, s) in (
            (Tier.FAST, fast),
            (Tier.BALANCED, balanced),
            (Tier.HIGH, high),
        )
    }


PRESETS: list[Preset] = [
    Preset(
        id="mp4-h264-aac-balanced",
        label="MP4 (H.264 + AAC)",
        container=Container.MP4,
        video=VideoPolicy(
            codec="h264",
            tiers=_video_tiers(
                (4500, 6000, 9000), (6000, 9000, 12000), (9000, 13000, 18000)
            ),
            copy_color_metadata=True,
        ),
        audio=AudioPolicy(codec="aac", tiers=_AAC_TIERS, stereo_only=True),
        subs=SubtitlePolicy(mode=SubtitleMode.CONVERT),
        description="Plays everywhere. Copies streams when they already fit.",
        tags=("video", "default"),
    ),
    Preset(
        id="mp4-hevc-aac",
        label="MP4 (HEVC + AAC)",
        container=Container.MP4,
        video=VideoPolicy(
            codec="hevc",
            tiers=_video_tiers(
                (3000, 4500, 7000), (3800, 5200, 8000), (5500, 7500, 11000)
            ),
            copy_color_metadata=True,
        ),
        audio=AudioPolicy(codec="aac", tiers=_AAC_TIERS, stereo_only=True),
        subs=SubtitlePolicy(mode=SubtitleMode.CONVERT),
        description="Smaller files at the same quality; needs a modern player.",
        tags=("video",),
    ),
    Preset(
        id="webm-vp9-opus",
        label="WebM (VP9 + Opus)",
        container=Container.WEBM,
        video=VideoPolicy(
            codec="vp9",
            tiers={
                Tier.FAST: VideoTierDefaults(bitrate_k=2800),
                Tier.BALANCED: VideoTierDefaults(bitrate_k=3500),
                Tier.HIGH: VideoTierDefaults(bitrate_k=4500),
            },
        ),
        audio=AudioPolicy(codec="opus", tiers=_OPUS_TIERS, stereo_only=True),
        subs=SubtitlePolicy(mode=SubtitleMode.BURN),
        description="Royalty-free web delivery.",
        tags=("video", "web"),
    ),
    Preset(
        id="webm-av1-opus",
        label="WebM (AV1 + Opus)",
        container=Container.WEBM,
        video=VideoPolicy(
            codec="av1",
            tiers={
                Tier.FAST: VideoTierDefaults(bitrate_k=2200),
                Tier.BALANCED: VideoTierDefaults(bitrate_k=3000),
                Tier.HIGH: VideoTierDefaults(bitrate_k=4200),
            },
        ),
        audio=AudioPolicy(codec="opus", tiers=_OPUS_TIERS),
        subs=SubtitlePolicy(mode=SubtitleMode.BURN),
        experimental=True,
        description="Best compression; slow to encode and runs alone.",
        tags=("video", "web"),
    ),
    Preset(
        id="mov-prores-pcm",
        label="MOV (ProRes + PCM)",
        container=Container.MOV,
        video=VideoPolicy(
            codec="prores",
            tiers={
                Tier.FAST: VideoTierDefaults(profile="422", bitrate_k=100000),
                Tier.BALANCED: VideoTierDefaults(profile="422hq", bitrate_k=147000),
                Tier.HIGH: VideoTierDefaults(profile="422hq", bitrate_k=220000),
            },
        ),
        audio=AudioPolicy(codec="pcm_s16le"),
        subs=SubtitlePolicy(mode=SubtitleMode.BURN),
        description="Editing intermediate. Large files.",
        tags=("video", "editing"),
    ),
    Preset(
        id="mkv-passthrough",
        label="MKV passthrough",
        container=Container.MKV,
        video=VideoPolicy(codec="copy"),
        audio=AudioPolicy(codec="copy"),
        subs=SubtitlePolicy(mode=SubtitleMode.KEEP),
        remux_only=True,
        description="Repackage every stream into Matroska without re-encoding.",
        tags=("remux",),
    ),
    Preset(
        id="gif-export",
        label="Animated GIF",
        container=Container.GIF,
        video=VideoPolicy(codec="gif"),
        audio=AudioPolicy(codec="none"),
        subs=SubtitlePolicy(mode=SubtitleMode.DROP),
        description="Short looping clips with a generated palette.",
        tags=("image", "length-guard"),
    ),
    Preset(
        id="audio-m4a",
        label="Audio only (AAC .m4a)",
        container=Container.M4A,
        video=VideoPolicy(codec="none"),
        audio=AudioPolicy(codec="aac", tiers=_AAC_TIERS, stereo_only=True),
        tags=("audio",),
    ),
    Preset(
        id="audio-mp3",
        label="Audio only (MP3)",
        container=Container.MP3,
        video=VideoPolicy(codec="none"),
        audio=AudioPolicy(codec="mp3", tiers=_MP3_TIERS, stereo_only=True),
        tags=("audio",),
    ),
    Preset(
        id="audio-flac",
        label="Audio only (FLAC)",
        container=Container.FLAC,
        video=VideoPolicy(codec="none"),
        audio=AudioPolicy(codec="flac"),
        tags=("audio", "lossless"),
    ),
    Preset(
        id="audio-wav",
        label="Audio only (WAV)",
        container=Container.WAV,
        video=VideoPolicy(codec="none"),
        audio=AudioPolicy(codec="pcm_s16le"),
        tags=("audio", "lossless"),
    ),
    Preset(
        id="remux-mp4",
        label="Remux to MP4",
        container=Container.MP4,
        video=VideoPolicy(codec="copy"),
        audio=AudioPolicy(codec="copy"),
        subs=SubtitlePolicy(mode=SubtitleMode.CONVERT),
        remux_only=True,
        tags=("remux",),
    ),
    Preset(
        id="remux-mkv",
        label="Remux to MKV",
        container=Container.MKV,
        video=VideoPolicy(codec="copy"),
        audio=AudioPolicy(codec="copy"),
        subs=SubtitlePolicy(mode=SubtitleMode.KEEP),
        remux_only=True,
        tags=("remux",),
    ),
    Preset(
        id="image-png",
        label="Still frame (PNG)",
        container=Container.PNG,
        video=VideoPolicy(codec="png"),
        audio=AudioPolicy(codec="none"),
        tags=("image",),
    ),
    Preset(
        id="image-jpg",
        label="Still frame (JPEG)",
        container=Container.JPG,
        video=VideoPolicy(codec="mjpeg"),
        audio=AudioPolicy(codec="none"),
        tags=("image",),
    ),
    Preset(
        id="image-webp",
        label="Still frame (WebP)",
        container=Container.WEBP,
        video=VideoPolicy(codec="webp"),
        audio=AudioPolicy(codec="none"),
        tags=("image",),
    ),
]

_PRESETS_BY_ID: dict[str, Preset] = {preset.id: preset for preset in PRESETS}


def get_preset(preset_id: str) -> Optional[Preset]:
    """Return the preset with this id, or None."""
    return _PRESETS_BY_ID.get(preset_id)


def resolve_preset(preset_id: str) -> Preset:
    """
    Return the preset with this id.

    Raises:
        UnknownPresetError: If no such preset exists
    """
    preset = _PRESETS_BY_ID.get(preset_id)
    if preset is None:
        raise UnknownPresetError(f"Unknown preset: {preset_id}")
    return preset


def preset_ids() -> list[str]:
    return [preset.id for preset in PRESETS]


def preset_slug(preset: Preset) -> str:
    return slugify(preset.id)
