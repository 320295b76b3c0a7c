"""Per-container codec and subtitle compatibility table."""

from typing import Optional, Union

from .constants import ANY_CODEC
from .models import Container, ContainerRule

CONTAINER_RULES: dict[Container, ContainerRule] = {
    Container.MP4: ContainerRule(
        video=("h264", "hevc", "av1"),
        audio=("aac", "alac", "mp3"),
        subtitles_text=("mov_text",),
        subtitles_image=(),
        requires_faststart=True,
    ),
    Container.WEBM: ContainerRule(
        video=("vp8", "vp9", "av1"),
        audio=("opus", "vorbis"),
    ),
    Container.MOV: ContainerRule(
        video=("h264", "prores"),
        audio=("aac", "pcm_s16le"),
        requires_faststart=True,
    ),
    Container.MKV: ContainerRule(
        video=ANY_CODEC,
        audio=ANY_CODEC,
        subtitles_text=ANY_CODEC,
        subtitles_image=ANY_CODEC,
    ),
    Container.GIF: ContainerRule(video=("gif",)),
    Container.M4A: ContainerRule(audio=("aac", "alac"), requires_faststart=True),
    Container.MP3: ContainerRule(audio=("mp3",)),
    Container.FLAC: ContainerRule(audio=("flac",)),
    Container.WAV: ContainerRule(audio=("pcm_s16le",)),
    Container.PNG: ContainerRule(video=("png",)),
    Container.JPG: ContainerRule(video=("mjpeg",)),
    Container.WEBP: ContainerRule(video=("webp",)),
}

# ffmpeg muxer names passed to -f
MUXERS: dict[Container, str] = {
    Container.MP4: "mp4",
    Container.M4A: "mp4",
    Container.MOV: "mov",
    Container.MKV: "matroska",
    Container.WEBM: "webm",
    Container.GIF: "gif",
    Container.MP3: "mp3",
    Container.FLAC: "flac",
    Container.WAV: "wav",
    Container.PNG: "image2",
    Container.JPG: "image2",
    Container.WEBP: "image2",
}


def _coerce(container: Union[Container, str]) -> Optional[Container]:
    if isinstance(container, Container):
        return container
    try:
        return Container(str(container).lower())
    except ValueError:
        return None


def rules(container: Union[Container, str]) -> Optional[ContainerRule]:
    """Look up the rule for a container; None when it is unknown."""
    kind = _coerce(container)
    if kind is None:
        return None
    return CONTAINER_RULES.get(kind)


def _allows(allowed, codec: str) -> bool:
    return allowed == ANY_CODEC or codec in allowed


def allows_video_codec(rule: ContainerRule, codec: str) -> bool:
    return _allows(rule.video, codec)


def allows_audio_codec(rule: ContainerRule, codec: str) -> bool:
    return _allows(rule.audio, codec)


def allows_text_subtitle(rule: ContainerRule, codec: str) -> bool:
    return _allows(rule.subtitles_text, codec)


def accepts_text_subtitles(rule: ContainerRule) -> bool:
    return rule.subtitles_text == ANY_CODEC or len(rule.subtitles_text) > 0


def accepts_image_subtitles(rule: ContainerRule) -> bool:
    return rule.subtitles_image == ANY_CODEC or len(rule.subtitles_image) > 0


def muxer_for(container: Union[Container, str]) -> Optional[str]:
    """ffmpeg muxer name for a container, or None when unknown."""
    kind = _coerce(container)
    if kind is None:
        return None
    return MUXERS.get(kind)
