"""Tests for runner module."""

import sys
import textwrap
import threading
import time
from pathlib import Path

from convoy import errors
from convoy.runner import (
    ProcessRunner,
    explain_exit_code,
    failure_message,
    temp_output_path,
    with_progress_args,
)

SUCCESS_SCRIPT = """
import sys
out = sys.argv[-1]
sys.stderr.write("Input #0, matroska,webm, from 'in.mkv':\\n")
sys.stderr.write("out_time_us=1000000\\nspeed=2.0x\\nprogress=continue\\n")
sys.stderr.write("out_time_us=2000000\\nprogress=end\\n")
with open(out, "w") as f:
    f.write("converted")
"""

FAILURE_SCRIPT = """
import sys
sys.stderr.write("Stream mapping:\\n")
sys.stderr.write("Error opening input file in.mkv.\\n")
with open(sys.argv[-1], "w") as f:
    f.write("partial")
sys.exit(1)
"""

NO_OUTPUT_SCRIPT = """
import sys
sys.stderr.write("progress=end\\n")
"""

SLOW_SCRIPT = """
import sys
import time
with open(sys.argv[-1], "w") as f:
    f.write("partial")
sys.stderr.write("out_time_us=500000\\n")
sys.stderr.flush()
time.sleep(30)
"""


def make_runner(tmp_path: Path, body: str, **kwargs) -> ProcessRunner:
    """Runner whose "ffmpeg" is a Python script written into tmp_path."""
    script = tmp_path / "fake_ffmpeg.py"
    script.write_text(textwrap.dedent(body))
    kwargs.setdefault("progress_interval", 0.0)
    return ProcessRunner([sys.executable, str(script)], **kwargs)


ARGS = ["-y", "-nostdin", "-i", "in.mkv", "-c", "copy"]


class TestHelpers:
    """Tests for runner helper functions."""

    def test_temp_output_path(self):
        assert temp_output_path(Path("/out/a.mp4")) == Path("/out/a.mp4.tmp")

    def test_progress_args_added_once(self):
        args = with_progress_args(["-i", "a"])
        assert args[-3:] == ["-progress", "pipe:2", "-nostats"]
        assert with_progress_args(args) == args

    def test_build_command(self, tmp_path):
        runner = ProcessRunner("ffmpeg")
        cmd = runner.build_command(["-i", "a.mkv"], tmp_path / "a.mp4.tmp")
        assert cmd[:2] == ["ffmpeg", "-hide_banner"]
        assert cmd[-1] == str(tmp_path / "a.mp4.tmp")
        assert "-progress" in cmd

    def test_explain_exit_code(self):
        assert "Encoding failed" in explain_exit_code(1)
        assert "Invalid FFmpeg arguments" in explain_exit_code(2)
        assert "already exists" in explain_exit_code(69)
        assert "status 3" in explain_exit_code(3)
        assert "SIGKILL" in explain_exit_code(-9)

    def test_failure_message_prefers_error_lines(self):
        message = failure_message(1, ["Stream mapping:", "Invalid data found"])
        assert "Invalid data found" in message
        assert "Stream mapping" not in message

    def test_failure_message_falls_back_to_last_lines(self):
        message = failure_message(1, ["a", "b", "c", "d"])
        assert message.endswith("b\nc\nd")


class TestRun:
    """Tests for ProcessRunner.run with a fake ffmpeg."""

    def test_success(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)
        output = tmp_path / "out" / "clip.mp4"
        samples = []
        lines = []

        outcome = runner.run("job-1", ARGS, output, samples.append, lines.append)

        assert outcome.success is True
        assert outcome.code == errors.JOB_COMPLETE
        assert outcome.output_path == output
        assert output.read_text() == "converted"
        assert not temp_output_path(output).exists()
        assert samples[-1].processed_seconds == 2.0
        assert samples[-1].finished is True
        assert "progress=end" in lines
        assert not runner.is_running("job-1")

    def test_overwrites_existing_output(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)
        output = tmp_path / "clip.mp4"
        output.write_text("old")

        outcome = runner.run("job-1", ARGS, output)

        assert outcome.success
        assert output.read_text() == "converted"

    def test_failure(self, tmp_path):
        runner = make_runner(tmp_path, FAILURE_SCRIPT)
        output = tmp_path / "clip.mp4"

        outcome = runner.run("job-1", ARGS, output)

        assert outcome.success is False
        assert outcome.cancelled is False
        assert outcome.exit_code == 1
        assert outcome.code == errors.JOB_FAILED
        assert "Encoding failed" in outcome.message
        assert "Error opening input file" in outcome.message
        assert not output.exists()
        assert not temp_output_path(output).exists()

    def test_success_without_output(self, tmp_path):
        runner = make_runner(tmp_path, NO_OUTPUT_SCRIPT)
        outcome = runner.run("job-1", ARGS, tmp_path / "clip.mp4")

        assert outcome.success is False
        assert outcome.code == errors.JOB_FINALIZE_FAILED

    def test_missing_binary(self, tmp_path):
        runner = ProcessRunner(str(tmp_path / "no-ffmpeg"))
        outcome = runner.run("job-1", ARGS, tmp_path / "clip.mp4")

        assert outcome.success is False
        assert outcome.code == errors.JOB_FFMPEG_NOT_FOUND

    def test_invalid_args(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)

        outcome = runner.run("job-1", ["-vf", "$(rm -rf /)"], tmp_path / "a.mp4")
        assert outcome.code == errors.JOB_INVALID_ARGS

        outcome = runner.run("job-2", [], tmp_path / "a.mp4")
        assert outcome.code == errors.JOB_INVALID_ARGS


class TestCancel:
    """Tests for cancelling runs."""

    def test_cancel_running(self, tmp_path):
        runner = make_runner(tmp_path, SLOW_SCRIPT, cancel_grace=1.0)
        output = tmp_path / "clip.mp4"
        results = []
        thread = threading.Thread(
            target=lambda: results.append(runner.run("job-1", ARGS, output))
        )
        thread.start()

        deadline = time.monotonic() + 10
        while not runner.is_running("job-1") and time.monotonic() < deadline:
            time.sleep(0.01)
        assert runner.cancel("job-1") is True
        thread.join(timeout=10)

        outcome = results[0]
        assert outcome.cancelled is True
        assert outcome.code == errors.JOB_CANCELLED
        assert not output.exists()
        assert not temp_output_path(output).exists()

    def test_cancel_before_spawn(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)
        output = tmp_path / "clip.mp4"

        runner.reserve("job-1")
        assert runner.cancel("job-1") is False
        outcome = runner.run("job-1", ARGS, output)

        assert outcome.cancelled is True
        assert not output.exists()

    def test_cancel_without_reserved_run_is_ignored(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)

        assert runner.cancel("job-1") is False
        assert runner.run("job-1", ARGS, tmp_path / "clip.mp4").success

    def test_late_cancel_does_not_affect_next_run(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)
        output = tmp_path / "clip.mp4"

        assert runner.run("job-1", ARGS, output).success
        # Arrives after ffmpeg exited, before the job left running
        assert runner.cancel("job-1") is False

        outcome = runner.run("job-1", ARGS, output)
        assert outcome.success
        assert not outcome.cancelled

    def test_pending_cancel_cleared_after_run(self, tmp_path):
        runner = make_runner(tmp_path, SUCCESS_SCRIPT)
        output = tmp_path / "clip.mp4"

        runner.reserve("job-1")
        runner.cancel("job-1")
        assert runner.run("job-1", ARGS, output).cancelled

        assert runner.run("job-1", ARGS, output).success
