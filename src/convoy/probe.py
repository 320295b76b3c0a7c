"""FFprobe wrapper for media file analysis."""

import json
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import errors
from .constants import (
    FFPROBE_BINARY,
    FFPROBE_LOG_LEVEL,
    FFPROBE_OUTPUT_FORMAT,
    IMAGE_SUBTITLE_CODECS,
)
from .errors import ProbeError
from .models import ColorInfo, MediaSummary


@dataclass
class ProbeResult:
    """Raw ffprobe document plus the summary the planner works from."""

    raw: dict
    summary: MediaSummary


def check_ffprobe(binary: str = FFPROBE_BINARY) -> bool:
    """Check if ffprobe is available."""
    try:
        subprocess.run(
            [binary, "-version"],
            capture_output=True,
            check=True,
        )
        return True
    except FileNotFoundError:
        return False
    except subprocess.CalledProcessError:
        return False


def probe_file(file_path: Path, binary: str = FFPROBE_BINARY) -> dict:
    """
    Run ffprobe and return parsed JSON.

    Raises:
        ProbeError: If the file is missing or unreadable, ffprobe is missing or
            fails, or it returns invalid output
    """
    if not file_path.is_file():
        raise ProbeError(
            f"File not found: {file_path}", code=errors.PROBE_MISSING_FILE
        )
    if not os.access(file_path, os.R_OK):
        raise ProbeError(
            f"File is not readable: {file_path}", code=errors.PROBE_UNREADABLE
        )

    cmd = [
        binary,
        "-hide_banner",
        "-loglevel",
        FFPROBE_LOG_LEVEL,
        "-print_format",
        FFPROBE_OUTPUT_FORMAT,
        "-show_format",
        "-show_streams",
        str(file_path),
    ]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=True,
        )
    except FileNotFoundError:
        raise ProbeError(
            "ffprobe not found. Please install ffmpeg.",
            code=errors.PROBE_FFPROBE_MISSING,
        )
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip().splitlines()
        reason = detail[-1] if detail else f"exit status {e.returncode}"
        raise ProbeError(
            f"ffprobe failed for {file_path.name}: {reason}",
            code=errors.PROBE_UNRECOGNIZED_FORMAT,
        )

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(
            f"Invalid ffprobe output for {file_path.name}: {e}",
            code=errors.PROBE_PARSE_JSON,
        )


def parse_frame_rate(value: Optional[str]) -> Optional[float]:
    """Parse an ffprobe rate such as "30000/1001" or "25"."""
    if not value:
        return None
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            denominator = float(den)
            if denominator == 0:
                return None
            rate = float(num) / denominator
        else:
            rate = float(value)
    except ValueError:
        return None
    return rate if rate > 0 else None


def _parse_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _normalize_codec(name: Optional[str]) -> Optional[str]:
    return name.lower() if name else None


def is_image_subtitle(codec: Optional[str]) -> bool:
    return bool(codec) and codec.lower() in IMAGE_SUBTITLE_CODECS


def summarize(probe_data: dict) -> MediaSummary:
    """Reduce an ffprobe document to a MediaSummary."""
    streams = probe_data.get("streams", [])
    fmt = probe_data.get("format", {})

    # Cover art in audio files shows up as a one-frame video stream
    video = next(
        (
            s
            for s in streams
            if s.get("codec_type") == "video"
            and s.get("disposition", {}).get("attached_pic", 0) != 1
        ),
        None,
    )
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    subtitles = [s for s in streams if s.get("codec_type") == "subtitle"]

    has_image_subs = any(is_image_subtitle(s.get("codec_name")) for s in subtitles)
    has_text_subs = any(
        not is_image_subtitle(s.get("codec_name")) for s in subtitles
    )

    duration = _parse_float(fmt.get("duration"))
    if duration is None and video is not None:
        duration = _parse_float(video.get("duration"))

    color = None
    fps = None
    if video is not None:
        fps = parse_frame_rate(video.get("avg_frame_rate")) or parse_frame_rate(
            video.get("r_frame_rate")
        )
        primaries = video.get("color_primaries")
        transfer = video.get("color_transfer")
        space = video.get("color_space")
        if primaries or transfer or space:
            color = ColorInfo(primaries=primaries, transfer=transfer, space=space)

    return MediaSummary(
        duration_sec=duration or 0.0,
        width=_parse_int(video.get("width")) if video else None,
        height=_parse_int(video.get("height")) if video else None,
        fps=fps,
        video_codec=_normalize_codec(video.get("codec_name")) if video else None,
        audio_codec=_normalize_codec(audio.get("codec_name")) if audio else None,
        channels=_parse_int(audio.get("channels")) if audio else None,
        color=color,
        has_text_subs=has_text_subs,
        has_image_subs=has_image_subs,
    )


def probe_media(file_path: Path, binary: str = FFPROBE_BINARY) -> ProbeResult:
    """
    Probe a file and summarize it.

    Raises:
        ProbeError: See probe_file
    """
    raw = probe_file(Path(file_path), binary)
    return ProbeResult(raw=raw, summary=summarize(raw))
