"""Constants for convoy."""

# Scheduling
DEFAULT_MAX_CONCURRENCY = 2
MIN_CONCURRENCY = 1
MAX_TERMINAL_JOBS = 50  # completed/failed/cancelled jobs kept as history

# Job log buffer
DEFAULT_LOG_MAX_LINES = 500

# Progress events
PROGRESS_INTERVAL_SECONDS = 0.25

# Cancellation: SIGTERM first, SIGKILL after this many seconds
CANCEL_GRACE_SECONDS = 5.0

# Binaries
FFMPEG_BINARY = "ffmpeg"
FFPROBE_BINARY = "ffprobe"

# FFprobe parameters
FFPROBE_LOG_LEVEL = "error"
FFPROBE_OUTPUT_FORMAT = "json"

# FFmpeg progress reporting (forced on every run)
PROGRESS_ARGS = ("-progress", "pipe:2", "-nostats")

# Temporary output suffix, renamed away on success
TEMP_OUTPUT_SUFFIX = ".tmp"

# Output naming
DEFAULT_FILENAME_SEPARATOR = "-"

# Codec markers
COPY_CODEC = "copy"
NONE_CODEC = "none"
ANY_CODEC = "any"

# Encodes expensive enough to run alone
EXCLUSIVE_VIDEO_CODECS = frozenset({"av1", "prores"})

# Tier fallback order when a preset lacks the requested tier
TIER_PRIORITY = ("balanced", "fast", "high")

# Subtitles
MOV_TEXT_CODEC = "mov_text"
IMAGE_SUBTITLE_CODECS = frozenset(
    {
        "hdmv_pgs_subtitle",
        "pgssub",
        "dvd_subtitle",
        "dvdsub",
        "dvb_subtitle",
        "xsub",
    }
)
# Image subtitle codecs excluded from the map when converting to mov_text
EXCLUDED_IMAGE_SUBTITLE_CODECS = (
    "hdmv_pgs_subtitle",
    "pgssub",
    "dvd_subtitle",
    "dvb_subtitle",
    "xsub",
)

# Animated GIF export
GIF_MIN_FPS = 2
GIF_MAX_FPS = 20
GIF_DEFAULT_FPS = 12
GIF_MIN_WIDTH = 2
GIF_MAX_WIDTH = 640
GIF_DEFAULT_WIDTH = 480
GIF_DURATION_WARNING_SECONDS = 20

# Still image export
JPEG_QUALITY_SCALE = "2"  # -q:v, lower is better
WEBP_QUALITY = "90"

# ProRes profile names accepted by prores_ks / prores_videotoolbox
PRORES_PROFILES = {
    "proxy": "proxy",
    "lt": "lt",
    "422": "standard",
    "422hq": "hq",
    "4444": "4444",
    "4444xq": "4444xq",
}

# FFmpeg exit codes with a known meaning
EXIT_CODE_EXPLANATIONS = {
    1: "Encoding failed. Check input file format and codec support.",
    2: "Invalid FFmpeg arguments. This may indicate a bug in preset configuration.",
    69: "Output file already exists and cannot be overwritten.",
}

# Diagnostic lines kept for failure messages
MAX_ERROR_LINES = 10
