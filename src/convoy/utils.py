"""Shared utilities, file extensions, and console setup."""

import re
from pathlib import Path
from typing import Optional

from rich.console import Console

# Singleton console for consistent output
console = Console()

# Supported input file extensions
VIDEO_EXTENSIONS = {
    ".mkv",
    ".mp4",
    ".avi",
    ".mov",
    ".m4v",
    ".webm",
    ".mpg",
    ".mpeg",
    ".ts",
    ".m2ts",
    ".wmv",
    ".flv",
    ".gif",
}
AUDIO_EXTENSIONS = {
    ".mka",
    ".aac",
    ".ac3",
    ".flac",
    ".mp3",
    ".opus",
    ".ogg",
    ".m4a",
    ".wav",
    ".aiff",
    ".dts",
}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}
MEDIA_EXTENSIONS = VIDEO_EXTENSIONS | AUDIO_EXTENSIONS | IMAGE_EXTENSIONS

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def slugify(text: str) -> str:
    """Lowercase text and collapse anything non-alphanumeric into dashes."""
    return _SLUG_PATTERN.sub("-", text.lower()).strip("-")


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as H:MM:SS (or M:SS under an hour)."""
    if seconds is None or seconds < 0:
        return "--:--"
    total = int(round(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def build_output_path(
    source: Path,
    preset,
    tier,
    output_dir: Optional[Path] = None,
    include_preset: bool = False,
    include_tier: bool = False,
    separator: str = "-",
) -> Path:
    """
    Work out where a converted file should land.

    The directory is ``output_dir`` or the source's own directory. The file
    name is the source stem, optionally followed by the preset slug and tier,
    with the preset's output extension (or its container name).
    """
    directory = output_dir or source.parent
    extension = preset.output_extension or preset.container.value

    parts = [source.stem]
    if include_preset:
        parts.append(slugify(preset.id))
    if include_tier:
        parts.append(tier.value)

    candidate = directory / f"{separator.join(parts)}.{extension}"
    if candidate.resolve() == source.resolve():
        # Never write over the input
        parts.append(slugify(preset.id))
        if include_tier and tier.value not in parts[:-1]:
            parts.append(tier.value)
        candidate = directory / f"{separator.join(parts)}.{extension}"
    return candidate
