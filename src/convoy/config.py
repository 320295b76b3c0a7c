"""Runtime settings read from the environment, and binary resolution."""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .constants import (
    CANCEL_GRACE_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    FFMPEG_BINARY,
    FFPROBE_BINARY,
    PROGRESS_INTERVAL_SECONDS,
)

logger = logging.getLogger(__name__)

ENV_FFMPEG_PATH = "CONVOY_FFMPEG_PATH"
ENV_FFPROBE_PATH = "CONVOY_FFPROBE_PATH"
ENV_MAX_CONCURRENCY = "CONVOY_MAX_CONCURRENCY"
ENV_DEBUG = "CONVOY_DEBUG"
ENV_PROGRESS_INTERVAL = "CONVOY_PROGRESS_INTERVAL"
ENV_CANCEL_GRACE = "CONVOY_CANCEL_GRACE"
ENV_OUTPUT_DIR = "CONVOY_OUTPUT_DIR"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    """Resolved runtime configuration."""

    ffmpeg_path: str = FFMPEG_BINARY
    ffprobe_path: str = FFPROBE_BINARY
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    debug: bool = False
    progress_interval: float = PROGRESS_INTERVAL_SECONDS
    cancel_grace: float = CANCEL_GRACE_SECONDS
    output_dir: Optional[Path] = None


def is_valid_binary(path: Path) -> bool:
    """An existing, non-empty regular file."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def resolve_binary(name: str, override: Optional[str] = None) -> str:
    """
    Find the binary to run.

    An override pointing at a real file wins; otherwise PATH is searched. If
    nothing is found the bare name is returned so the spawn error names it.
    """
    if override:
        candidate = Path(override).expanduser()
        if is_valid_binary(candidate):
            return str(candidate)
        logger.warning("Ignoring %s override %s: not a usable file", name, override)
    found = shutil.which(name)
    return found or name


def _get_bool(env: Mapping[str, str], var: str, default: bool) -> bool:
    value = env.get(var)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean value for %s: %s", var, value)
    return default


def _get_int(env: Mapping[str, str], var: str, default: int, minimum: int) -> int:
    value = env.get(var)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Invalid integer value for %s: %s", var, value)
        return default
    if parsed < minimum:
        logger.warning("%s must be at least %d, got %d", var, minimum, parsed)
        return default
    return parsed


def _get_float(env: Mapping[str, str], var: str, default: float) -> float:
    value = env.get(var)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Invalid number for %s: %s", var, value)
        return default
    if parsed < 0:
        logger.warning("%s must not be negative, got %s", var, value)
        return default
    return parsed


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables (os.environ by default)."""
    env = os.environ if env is None else env
    output_dir = env.get(ENV_OUTPUT_DIR)
    return Settings(
        ffmpeg_path=resolve_binary(FFMPEG_BINARY, env.get(ENV_FFMPEG_PATH)),
        ffprobe_path=resolve_binary(FFPROBE_BINARY, env.get(ENV_FFPROBE_PATH)),
        max_concurrency=_get_int(
            env, ENV_MAX_CONCURRENCY, DEFAULT_MAX_CONCURRENCY, minimum=1
        ),
        debug=_get_bool(env, ENV_DEBUG, False),
        progress_interval=_get_float(
            env, ENV_PROGRESS_INTERVAL, PROGRESS_INTERVAL_SECONDS
        ),
        cancel_grace=_get_float(env, ENV_CANCEL_GRACE, CANCEL_GRACE_SECONDS),
        output_dir=Path(output_dir).expanduser() if output_dir else None,
    )
