"""Data models for convoy."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class Container(Enum):
    """Output container kinds."""

    MP4 = "mp4"
    WEBM = "webm"
    MOV = "mov"
    MKV = "mkv"
    GIF = "gif"
    M4A = "m4a"
    MP3 = "mp3"
    FLAC = "flac"
    WAV = "wav"
    PNG = "png"
    JPG = "jpg"
    WEBP = "webp"

    @property
    def is_image(self) -> bool:
        return self in (Container.PNG, Container.JPG, Container.WEBP)

    @property
    def is_audio_only(self) -> bool:
        return self in (Container.M4A, Container.MP3, Container.FLAC, Container.WAV)


class Tier(Enum):
    """Quality/performance tier."""

    FAST = "fast"
    BALANCED = "balanced"
    HIGH = "high"


class SubtitleMode(Enum):
    """What a preset wants done with subtitle streams."""

    KEEP = "keep"
    CONVERT = "convert"  # to mov_text
    BURN = "burn"  # rendered into the video at execution time
    DROP = "drop"


class StreamAction(Enum):
    """Planned action for a video or audio stream."""

    COPY = "copy"
    TRANSCODE = "transcode"
    DROP = "drop"


class SubtitleAction(Enum):
    """Planned action for subtitle streams."""

    COPY = "copy"
    CONVERT = "convert"
    DROP = "drop"


@dataclass(frozen=True)
class ColorInfo:
    """Colour metadata reported by the probe."""

    primaries: Optional[str] = None
    transfer: Optional[str] = None
    space: Optional[str] = None


@dataclass(frozen=True)
class MediaSummary:
    """Immutable result of probing a source file."""

    duration_sec: float = 0.0
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    channels: Optional[int] = None
    color: Optional[ColorInfo] = None
    has_text_subs: bool = False
    has_image_subs: bool = False

    @property
    def has_video(self) -> bool:
        return self.video_codec is not None

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None

    @property
    def resolution(self) -> Optional[str]:
        if self.width and self.height:
            return f"{self.width}x{self.height}"
        return None


@dataclass(frozen=True)
class VideoTierDefaults:
    """Encoder settings for one video tier. Rates are in kbit/s."""

    bitrate_k: Optional[int] = None
    maxrate_k: Optional[int] = None
    bufsize_k: Optional[int] = None
    crf: Optional[int] = None
    profile: Optional[str] = None


@dataclass(frozen=True)
class AudioTierDefaults:
    """Encoder settings for one audio tier."""

    bitrate_k: Optional[int] = None
    quality: Optional[float] = None


@dataclass(frozen=True)
class VideoPolicy:
    codec: str
    tiers: dict[Tier, VideoTierDefaults] = field(default_factory=dict)
    copy_color_metadata: bool = False


@dataclass(frozen=True)
class AudioPolicy:
    codec: str
    tiers: dict[Tier, AudioTierDefaults] = field(default_factory=dict)
    bitrate_k: Optional[int] = None  # used when no tier supplies one
    stereo_only: bool = False


@dataclass(frozen=True)
class SubtitlePolicy:
    mode: SubtitleMode = SubtitleMode.DROP


@dataclass(frozen=True)
class Preset:
    """Static description of one output target."""

    id: str
    label: str
    container: Container
    video: VideoPolicy
    audio: AudioPolicy
    subs: SubtitlePolicy = field(default_factory=SubtitlePolicy)
    remux_only: bool = False
    experimental: bool = False
    output_extension: Optional[str] = None
    description: str = ""
    tags: tuple[str, ...] = ()


# Either an explicit tuple of codec names or the "any" marker
CodecList = Union[tuple[str, ...], str]


@dataclass(frozen=True)
class ContainerRule:
    """Codec and subtitle compatibility for one container."""

    video: CodecList = ()
    audio: CodecList = ()
    subtitles_text: CodecList = ()
    subtitles_image: CodecList = ()
    requires_faststart: bool = False


@dataclass(frozen=True)
class CapabilitySnapshot:
    """What the installed ffmpeg reports it can do."""

    video_encoders: frozenset[str] = frozenset()
    audio_encoders: frozenset[str] = frozenset()
    formats: frozenset[str] = frozenset()
    filters: frozenset[str] = frozenset()

    @classmethod
    def empty(cls) -> "CapabilitySnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (
            self.video_encoders or self.audio_encoders or self.formats or self.filters
        )


@dataclass
class PlannerDecision:
    """Concrete ffmpeg arguments plus what the planner found on the way."""

    preset_id: str
    args: list[str] = field(default_factory=list)
    remux_only: bool = False
    notes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    video_action: StreamAction = StreamAction.DROP
    audio_action: StreamAction = StreamAction.DROP
    subtitle_action: SubtitleAction = SubtitleAction.DROP
    video_encoder: Optional[str] = None
    audio_encoder: Optional[str] = None
    video_tier: Optional[Tier] = None
    audio_tier: Optional[Tier] = None
    burn_in_requested: bool = False
    exclusive: bool = False


@dataclass
class ProgressRecord:
    """Mutable progress of a running job."""

    processed_seconds: float = 0.0
    fps: Optional[float] = None
    speed: Optional[float] = None
    ratio: Optional[float] = None
