"""Tests for progress module."""

from convoy.progress import (
    ProgressAccumulator,
    ProgressSample,
    ProgressThrottle,
    is_progress_line,
    parse_progress_line,
    parse_timecode,
)


class TestParseTimecode:
    """Tests for parse_timecode."""

    def test_timecode(self):
        assert parse_timecode("01:02:03.50") == 3723.5
        assert parse_timecode("00:00:04.00") == 4.0

    def test_plain_seconds(self):
        assert parse_timecode("12.5") == 12.5

    def test_not_available(self):
        assert parse_timecode("N/A") is None
        assert parse_timecode("") is None

    def test_negative_clamped(self):
        assert parse_timecode("-00:00:00.05") == 0.0


class TestParseProgressLine:
    """Tests for parse_progress_line."""

    def test_out_time(self):
        sample = parse_progress_line("out_time=00:00:10.500000")
        assert sample.processed_seconds == 10.5

    def test_out_time_us(self):
        assert parse_progress_line("out_time_us=2500000").processed_seconds == 2.5

    def test_out_time_ms_is_microseconds(self):
        assert parse_progress_line("out_time_ms=2500000").processed_seconds == 2.5

    def test_fps_and_speed(self):
        assert parse_progress_line("fps=29.97").fps == 29.97
        assert parse_progress_line("speed=1.25x").speed == 1.25

    def test_speed_not_available(self):
        assert parse_progress_line("speed=N/A") is None

    def test_progress_end(self):
        sample = parse_progress_line("progress=end")
        assert sample.finished is True
        assert parse_progress_line("progress=continue") is None

    def test_other_keys_ignored(self):
        assert parse_progress_line("bitrate=1200.5kbits/s") is None
        assert parse_progress_line("total_size=1024") is None

    def test_classic_stats_line(self):
        line = (
            "frame=  240 fps= 48 q=28.0 size=    1024kB time=00:00:10.00 "
            "bitrate= 838.9kbits/s speed=2.01x"
        )
        sample = parse_progress_line(line)
        assert sample.processed_seconds == 10.0
        assert sample.fps == 48.0
        assert sample.speed == 2.01

    def test_diagnostic_line(self):
        assert parse_progress_line("Input #0, matroska,webm, from 'a.mkv':") is None
        assert parse_progress_line("") is None

    def test_is_progress_line(self):
        assert is_progress_line("bitrate=1200.5kbits/s")
        assert not is_progress_line("Error while decoding stream #0:0")


class TestAccumulator:
    """Tests for ProgressAccumulator."""

    def test_merges_samples(self):
        acc = ProgressAccumulator()
        assert acc.update(ProgressSample(processed_seconds=1.0))
        assert acc.update(ProgressSample(speed=1.5))
        assert not acc.update(ProgressSample(speed=1.5))

        snapshot = acc.snapshot()
        assert snapshot.processed_seconds == 1.0
        assert snapshot.speed == 1.5
        assert snapshot.finished is False


class TestThrottle:
    """Tests for ProgressThrottle."""

    def test_rate_limit(self):
        now = [0.0]
        throttle = ProgressThrottle(0.25, clock=lambda: now[0])

        assert throttle.ready()
        now[0] = 0.1
        assert not throttle.ready()
        now[0] = 0.3
        assert throttle.ready()

    def test_reset(self):
        throttle = ProgressThrottle(10.0, clock=lambda: 0.0)
        assert throttle.ready()
        throttle.reset()
        assert throttle.ready()
