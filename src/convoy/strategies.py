"""Encoder selection strategies.

A strategy maps a target codec ("h264", "opus", ...) to the ffmpeg encoder
that should produce it. The planner is given one video and one audio strategy
when it is constructed.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .constants import COPY_CODEC, NONE_CODEC

# Ordered by preference; the last entry is the software encoder that ships
# with most ffmpeg builds.
VIDEO_ENCODER_CANDIDATES: dict[str, tuple[str, ...]] = {
    "h264": ("h264_videotoolbox", "h264_nvenc", "h264_qsv", "libx264"),
    "hevc": ("hevc_videotoolbox", "hevc_nvenc", "hevc_qsv", "libx265"),
    "vp9": ("libvpx-vp9",),
    "av1": ("av1_nvenc", "libsvtav1", "libaom-av1"),
    "prores": ("prores_videotoolbox", "prores_ks"),
    "gif": ("gif",),
    "png": ("png",),
    "mjpeg": ("mjpeg",),
    "webp": ("libwebp",),
}

AUDIO_ENCODERS: dict[str, str] = {
    "aac": "aac",
    "alac": "alac",
    "mp3": "libmp3lame",
    "opus": "libopus",
    "vorbis": "libvorbis",
    "flac": "flac",
    "pcm_s16le": "pcm_s16le",
}


def encoder_candidates(codec: str) -> tuple[str, ...]:
    """Every encoder name known to produce codec (video or audio)."""
    if codec in VIDEO_ENCODER_CANDIDATES:
        return VIDEO_ENCODER_CANDIDATES[codec]
    if codec in AUDIO_ENCODERS:
        return (AUDIO_ENCODERS[codec],)
    return ()


class VideoEncoderStrategy(ABC):
    """Chooses a video encoder for a target codec."""

    name = "video"

    @abstractmethod
    def select(
        self, codec: str, available: Optional[frozenset[str]] = None
    ) -> Optional[str]:
        """Return the encoder for codec, "copy", or None when codec is "none"."""


class AudioEncoderStrategy(ABC):
    """Chooses an audio encoder for a target codec."""

    name = "audio"

    @abstractmethod
    def select(
        self, codec: str, available: Optional[frozenset[str]] = None
    ) -> Optional[str]:
        """Return the encoder for codec, "copy", or None when codec is "none"."""


class HardwareFirstVideoStrategy(VideoEncoderStrategy):
    """Prefer platform hardware encoders that ffmpeg reports, else software."""

    name = "hardware-first"

    def select(self, codec, available=None):
        if codec == NONE_CODEC:
            return None
        if codec == COPY_CODEC:
            return COPY_CODEC
        candidates = VIDEO_ENCODER_CANDIDATES.get(codec)
        if not candidates:
            return codec
        if available:
            for encoder in candidates:
                if encoder in available:
                    return encoder
        return candidates[-1]


class SoftwareOnlyVideoStrategy(VideoEncoderStrategy):
    """Always use the software encoder, even when hardware is reported."""

    name = "software-only"

    def select(self, codec, available=None):
        if codec == NONE_CODEC:
            return None
        if codec == COPY_CODEC:
            return COPY_CODEC
        candidates = VIDEO_ENCODER_CANDIDATES.get(codec)
        if not candidates:
            return codec
        return candidates[-1]


class DefaultAudioStrategy(AudioEncoderStrategy):
    name = "default"

    def select(self, codec, available=None):
        if codec == NONE_CODEC:
            return None
        if codec == COPY_CODEC:
            return COPY_CODEC
        return AUDIO_ENCODERS.get(codec, codec)


def video_strategy_for(software_only: bool) -> VideoEncoderStrategy:
    if software_only:
        return SoftwareOnlyVideoStrategy()
    return HardwareFirstVideoStrategy()
