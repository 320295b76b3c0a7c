"""convoy: queue-driven media conversion on top of ffmpeg."""

__version__ = "0.3.0"
