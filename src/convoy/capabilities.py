"""Detect what the installed ffmpeg can encode and gate presets on it."""

import logging
import re
import subprocess
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from .constants import COPY_CODEC, FFMPEG_BINARY, NONE_CODEC
from .errors import CapabilityError
from .models import CapabilitySnapshot, Preset
from .presets import PRESETS
from .strategies import encoder_candidates

logger = logging.getLogger(__name__)

_ENCODER_FLAGS = re.compile(r"^[VASFXBD.]{6}$")
_FORMAT_FLAGS = re.compile(r"^[DEd.]{1,3}$")
_FILTER_FLAGS = re.compile(r"^[TSC.|]{2,3}$")


def parse_encoders(output: str) -> tuple[set[str], set[str]]:
    """
    Parse ``ffmpeg -encoders`` output.

    Returns:
        Tuple of (video_encoders, audio_encoders)
    """
    video: set[str] = set()
    audio: set[str] = set()
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) < 2 or tokens[1] == "=":
            continue
        flags, name = tokens[0], tokens[1]
        if not _ENCODER_FLAGS.match(flags):
            continue
        if "V" in flags:
            video.add(name)
        elif "A" in flags:
            audio.add(name)
    return video, audio


def parse_formats(output: str) -> set[str]:
    """Parse ``ffmpeg -formats`` output into muxer/demuxer names."""
    formats: set[str] = set()
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) < 2 or tokens[1] == "=":
            continue
        flags = tokens[0]
        if not _FORMAT_FLAGS.match(flags):
            continue
        if "D" not in flags and "E" not in flags:
            continue
        formats.update(name for name in tokens[1].split(",") if name)
    return formats


def parse_filters(output: str) -> set[str]:
    """Parse ``ffmpeg -filters`` output into filter names."""
    filters: set[str] = set()
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) < 3 or "->" not in tokens[2]:
            continue
        if not _FILTER_FLAGS.match(tokens[0]):
            continue
        filters.add(tokens[1])
    return filters


def _run_listing(binary: str, flag: str) -> str:
    try:
        result = subprocess.run(
            [binary, "-hide_banner", flag],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=True,
            timeout=30,
        )
    except FileNotFoundError:
        raise CapabilityError(f"{binary} not found")
    except subprocess.CalledProcessError as e:
        raise CapabilityError(f"{binary} {flag} exited with status {e.returncode}")
    except (OSError, subprocess.TimeoutExpired) as e:
        raise CapabilityError(f"{binary} {flag} failed: {e}")
    return result.stdout


def query_capabilities(binary: str = FFMPEG_BINARY) -> CapabilitySnapshot:
    """
    Ask ffmpeg for its encoders, formats and filters.

    Raises:
        CapabilityError: If any of the listings cannot be obtained
    """
    video, audio = parse_encoders(_run_listing(binary, "-encoders"))
    formats = parse_formats(_run_listing(binary, "-formats"))
    filters = parse_filters(_run_listing(binary, "-filters"))
    return CapabilitySnapshot(
        video_encoders=frozenset(video),
        audio_encoders=frozenset(audio),
        formats=frozenset(formats),
        filters=frozenset(filters),
    )


class CapabilityService:
    """
    Fetches the capability snapshot once and hands the same one to everyone.

    Concurrent callers that arrive while the first fetch is in flight wait
    for it instead of starting their own. A failed fetch is cached as an
    empty snapshot.
    """

    def __init__(
        self,
        binary: str = FFMPEG_BINARY,
        fetch: Optional[Callable[[str], CapabilitySnapshot]] = None,
    ):
        self.binary = binary
        self._fetch = fetch or query_capabilities
        self._lock = threading.Lock()
        self._future: Optional[Future] = None

    def get(self) -> CapabilitySnapshot:
        with self._lock:
            future = self._future
            owner = future is None
            if owner:
                future = self._future = Future()

        if owner:
            try:
                snapshot = self._fetch(self.binary)
            except CapabilityError as e:
                logger.warning("Capability detection failed: %s", e.message)
                snapshot = CapabilitySnapshot.empty()
            except Exception:
                # Waiters block on the future, so it has to settle
                logger.exception("Capability detection crashed")
                snapshot = CapabilitySnapshot.empty()
            else:
                logger.debug(
                    "Detected %d video encoders, %d audio encoders, "
                    "%d formats, %d filters",
                    len(snapshot.video_encoders),
                    len(snapshot.audio_encoders),
                    len(snapshot.formats),
                    len(snapshot.filters),
                )
            future.set_result(snapshot)
        return future.result()

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._future is not None and self._future.done()


# Global instance (initialized on first use or by the CLI)
_service: Optional[CapabilityService] = None
_service_lock = threading.Lock()


def get_capability_service(binary: Optional[str] = None) -> CapabilityService:
    """Get the process-wide capability service, creating it on first use."""
    global _service
    with _service_lock:
        if _service is None:
            _service = CapabilityService(binary or FFMPEG_BINARY)
        return _service


def init_capability_service(
    binary: str = FFMPEG_BINARY,
    fetch: Optional[Callable[[str], CapabilitySnapshot]] = None,
) -> CapabilityService:
    """Replace the process-wide capability service."""
    global _service
    with _service_lock:
        _service = CapabilityService(binary, fetch)
        return _service


def _encoder_present(codec: str, encoders: frozenset[str]) -> bool:
    if codec in (COPY_CODEC, NONE_CODEC):
        return True
    if codec in encoders:
        return True
    return any(name in encoders for name in encoder_candidates(codec))


def preset_is_available(
    preset: Preset, capabilities: Optional[CapabilitySnapshot]
) -> bool:
    """Whether ffmpeg can produce this preset's streams."""
    if capabilities is None or preset.remux_only:
        return True
    if not _encoder_present(preset.video.codec, capabilities.video_encoders):
        return False
    if not _encoder_present(preset.audio.codec, capabilities.audio_encoders):
        return False
    return True


def available_presets(
    capabilities: Optional[CapabilitySnapshot],
    presets: Optional[list[Preset]] = None,
) -> list[Preset]:
    """Presets usable with these capabilities, in catalog order."""
    catalog = PRESETS if presets is None else presets
    return [preset for preset in catalog if preset_is_available(preset, capabilities)]
