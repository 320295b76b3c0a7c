"""Validation functions for ffmpeg arguments, output paths and disk space."""

import os
import shutil
import threading
from pathlib import Path
from typing import Optional, Sequence

from .errors import InvalidArgumentsError
from .models import PlannerDecision, StreamAction

# Shell substitution never belongs in an argv we build ourselves
FORBIDDEN_SEQUENCES = ("$(", "`", "\x00")


def validate_args(args: Sequence[str]):
    """
    Reject argument lists that cannot have come from the planner.

    Raises:
        InvalidArgumentsError: If args is empty, holds non-strings, or
            contains shell substitution or NUL characters
    """
    if not args:
        raise InvalidArgumentsError("FFmpeg arguments cannot be empty")
    for arg in args:
        if not isinstance(arg, str):
            raise InvalidArgumentsError(f"FFmpeg argument is not a string: {arg!r}")
        for sequence in FORBIDDEN_SEQUENCES:
            if sequence in arg:
                raise InvalidArgumentsError(
                    f"FFmpeg argument contains forbidden sequence {sequence!r}: {arg!r}"
                )


def estimate_output_size(source: Path, decision: Optional[PlannerDecision]) -> int:
    """
    Estimate output size in bytes.

    Based on the input size and the kind of work planned.
    """
    try:
        input_size = source.stat().st_size
    except OSError:
        return 0

    if decision is None:
        return input_size
    if decision.remux_only or decision.video_action == StreamAction.COPY:
        # Copy mode: output is about the size of the input
        return input_size
    if decision.video_action == StreamAction.DROP:
        # Audio only: a small fraction of a typical video file
        return int(input_size * 0.2)
    return int(input_size * 0.7)


def check_disk_space(
    directory: Path, required: int
) -> tuple[bool, int, int]:
    """
    Check available disk space.

    Returns:
        Tuple of (is_sufficient, available_bytes, required_bytes)
    """
    probe_dir = directory
    while not probe_dir.exists() and probe_dir != probe_dir.parent:
        probe_dir = probe_dir.parent
    usage = shutil.disk_usage(probe_dir)
    available = usage.free
    return available >= required, available, required


def format_bytes(bytes_value: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if bytes_value < 1024:
            return f"{bytes_value:.1f} {unit}"
        bytes_value /= 1024
    return f"{bytes_value:.1f} PB"


def validate_output_directory(directory: Path) -> tuple[bool, str]:
    """
    Validate that output directory is writable.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        # Create directory if it doesn't exist
        directory.mkdir(parents=True, exist_ok=True)

        # Try to create a temporary file to test writability
        test_file = (
            directory / f".convoy_write_test_{os.getpid()}_{threading.get_ident()}"
        )
        try:
            test_file.touch()
            test_file.unlink()
            return True, ""
        except OSError as e:
            return False, f"Cannot write to {directory}: {e}"

    except OSError as e:
        return False, f"Cannot create output directory {directory}: {e}"
