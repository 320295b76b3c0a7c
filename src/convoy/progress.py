"""Parse ffmpeg's progress output and rate-limit progress events."""

import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .constants import PROGRESS_INTERVAL_SECONDS

_TIMECODE_PATTERN = re.compile(r"^(-?\d+):(\d{1,2}):(\d{1,2}(?:\.\d+)?)$")
# Classic stats line: "frame= 120 fps= 30 ... time=00:00:04.00 ... speed=1.2x"
_STATS_TIME = re.compile(r"time=\s*(-?[\d:.]+)")
_STATS_FPS = re.compile(r"fps=\s*([\d.]+)")
_STATS_SPEED = re.compile(r"speed=\s*([\d.]+)x")
# -progress protocol: one "key=value" per line
_KEY_VALUE = re.compile(r"^(\w+)=\s*(\S*)$")


@dataclass
class ProgressSample:
    """Whatever a single line told us; unset fields stay None."""

    processed_seconds: Optional[float] = None
    fps: Optional[float] = None
    speed: Optional[float] = None
    finished: bool = False

    @property
    def is_empty(self) -> bool:
        return (
            self.processed_seconds is None
            and self.fps is None
            and self.speed is None
            and not self.finished
        )


def parse_timecode(value: str) -> Optional[float]:
    """Parse "HH:MM:SS.ss" or plain seconds into seconds."""
    value = value.strip()
    if not value or value.upper() == "N/A":
        return None
    match = _TIMECODE_PATTERN.match(value)
    if match:
        if value.startswith("-"):
            # ffmpeg reports a small negative time before the first frame
            return 0.0
        hours, minutes, seconds = match.groups()
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _parse_number(value: str) -> Optional[float]:
    value = value.strip().rstrip("x")
    if not value or value.upper() == "N/A":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _sample(**values) -> Optional[ProgressSample]:
    sample = ProgressSample(**values)
    return None if sample.is_empty else sample


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """
    Extract progress from one line of ffmpeg stderr.

    Understands both the ``-progress`` key=value protocol (out_time,
    out_time_us, out_time_ms, fps, speed, progress) and the classic stats
    line. Returns None when the line carries no progress at all.
    """
    line = line.strip()
    if not line:
        return None

    match = _KEY_VALUE.match(line)
    if match:
        key, value = match.groups()
        if key == "out_time":
            seconds = parse_timecode(value)
            return _sample(processed_seconds=seconds)
        if key in ("out_time_us", "out_time_ms"):
            # Both are microseconds, whatever the name says
            number = _parse_number(value)
            if number is None:
                return None
            return _sample(processed_seconds=max(0.0, number / 1_000_000))
        if key == "fps":
            return _sample(fps=_parse_number(value))
        if key == "speed":
            return _sample(speed=_parse_number(value))
        if key == "progress":
            return _sample(finished=value == "end")
        if key != "frame":
            return None

    sample = ProgressSample()
    time_match = _STATS_TIME.search(line)
    if time_match:
        sample.processed_seconds = parse_timecode(time_match.group(1))
    fps_match = _STATS_FPS.search(line)
    if fps_match:
        sample.fps = _parse_number(fps_match.group(1))
    speed_match = _STATS_SPEED.search(line)
    if speed_match:
        sample.speed = _parse_number(speed_match.group(1))
    return None if sample.is_empty else sample


class ProgressAccumulator:
    """Merge per-line samples into the latest known values."""

    def __init__(self):
        self.processed_seconds: Optional[float] = None
        self.fps: Optional[float] = None
        self.speed: Optional[float] = None
        self.finished = False

    def update(self, sample: ProgressSample) -> bool:
        """Fold a sample in. Returns True if anything changed."""
        changed = False
        for name in ("processed_seconds", "fps", "speed"):
            value = getattr(sample, name)
            if value is not None and value != getattr(self, name):
                setattr(self, name, value)
                changed = True
        if sample.finished and not self.finished:
            self.finished = True
            changed = True
        return changed

    def snapshot(self) -> ProgressSample:
        return ProgressSample(
            processed_seconds=self.processed_seconds,
            fps=self.fps,
            speed=self.speed,
            finished=self.finished,
        )


class ProgressThrottle:
    """Let at most one event through per interval."""

    def __init__(
        self,
        interval: float = PROGRESS_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self._clock = clock
        self._last: Optional[float] = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False

    def reset(self):
        self._last = None


def is_progress_line(line: str) -> bool:
    """True for ``-progress`` protocol lines (``key=value``)."""
    return _KEY_VALUE.match(line.strip()) is not None
