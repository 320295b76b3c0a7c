"""Typed errors and the machine-readable codes attached to failed jobs."""

from typing import Optional

# Job outcome codes
JOB_COMPLETE = "job_complete"
JOB_FAILED = "job_failed"
JOB_CANCELLED = "job_cancelled"
JOB_SPAWN_FAILED = "job_spawn_failed"
JOB_FFMPEG_NOT_FOUND = "job_ffmpeg_not_found"
JOB_FINALIZE_FAILED = "job_finalize_failed"
JOB_INVALID_ARGS = "job_invalid_args"
JOB_OUTPUT_PERMISSION = "job_output_permission"
JOB_PLAN_FAILED = "job_plan_failed"

# Probe codes
PROBE_MISSING_FILE = "probe_missing_file"
PROBE_UNREADABLE = "probe_unreadable"
PROBE_FFPROBE_MISSING = "probe_ffprobe_missing"
PROBE_UNRECOGNIZED_FORMAT = "probe_unrecognized_format"
PROBE_PARSE_JSON = "probe_parse_json"

# Capability codes
CAPABILITY_QUERY_FAILED = "capability_query_failed"


class ConvoyError(Exception):
    """Base error carrying a machine-readable code."""

    code = JOB_FAILED

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ProbeError(ConvoyError):
    """Error during media probing."""

    code = PROBE_UNRECOGNIZED_FORMAT


class CapabilityError(ConvoyError):
    """The transcoder could not be queried for its capabilities."""

    code = CAPABILITY_QUERY_FAILED


class SpawnError(ConvoyError):
    """The transcoder process could not be started."""

    code = JOB_SPAWN_FAILED


class OutputError(ConvoyError):
    """Output path could not be prepared or finalized."""

    code = JOB_OUTPUT_PERMISSION


class InvalidArgumentsError(ConvoyError):
    """Argument list rejected before spawning."""

    code = JOB_INVALID_ARGS


class UnknownPresetError(ConvoyError):
    """Preset id not present in the catalog."""

    code = JOB_PLAN_FAILED


class IllegalTransitionError(ConvoyError):
    """A job was asked to move between two statuses that are not connected."""

    code = "job_illegal_transition"
