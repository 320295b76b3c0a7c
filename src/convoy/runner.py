"""Run ffmpeg for a planned job and watch it until it exits."""

import logging
import os
import signal
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from . import errors
from .constants import (
    CANCEL_GRACE_SECONDS,
    EXIT_CODE_EXPLANATIONS,
    FFMPEG_BINARY,
    MAX_ERROR_LINES,
    PROGRESS_ARGS,
    PROGRESS_INTERVAL_SECONDS,
    TEMP_OUTPUT_SUFFIX,
)
from .errors import ConvoyError, OutputError, SpawnError
from .progress import (
    ProgressAccumulator,
    ProgressSample,
    ProgressThrottle,
    is_progress_line,
    parse_progress_line,
)
from .validation import validate_args

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressSample], None]
LogCallback = Callable[[str], None]


@dataclass
class RunOutcome:
    """How a run ended."""

    success: bool
    cancelled: bool = False
    exit_code: Optional[int] = None
    output_path: Optional[Path] = None
    message: Optional[str] = None
    code: str = errors.JOB_COMPLETE


@dataclass
class _ActiveProcess:
    job_id: str
    process: subprocess.Popen
    temp_path: Path
    cancelled: bool = False
    kill_timer: Optional[threading.Timer] = None


def temp_output_path(output_path: Path) -> Path:
    """Sibling path ffmpeg writes to before the final rename."""
    return output_path.with_name(output_path.name + TEMP_OUTPUT_SUFFIX)


def prepare_output(output_path: Path) -> Path:
    """
    Make sure output_path can be written and return the temp path to use.

    Raises:
        OutputError: If the directory cannot be created or written
    """
    directory = output_path.parent
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputError(
            f"Cannot create output directory {directory}: {e}",
            code=errors.JOB_OUTPUT_PERMISSION,
        )
    if not os.access(directory, os.W_OK):
        raise OutputError(
            f"No permission to write to {directory}",
            code=errors.JOB_OUTPUT_PERMISSION,
        )
    temp_path = temp_output_path(output_path)
    remove_file(temp_path)
    return temp_path


def finalize_output(temp_path: Path, output_path: Path):
    """
    Move the finished temp file into place.

    Raises:
        OutputError: If the temp file is missing or cannot be moved
    """
    if not temp_path.exists():
        raise OutputError(
            f"FFmpeg reported success but produced no output at {temp_path}",
            code=errors.JOB_FINALIZE_FAILED,
        )
    try:
        if output_path.exists():
            output_path.unlink()
        os.replace(temp_path, output_path)
    except OSError as e:
        raise OutputError(
            f"Cannot move output into place at {output_path}: {e}",
            code=errors.JOB_FINALIZE_FAILED,
        )


def remove_file(path: Path):
    """Remove path if it exists; failures are logged."""
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def explain_exit_code(exit_code: int) -> str:
    if exit_code < 0:
        try:
            name = signal.Signals(-exit_code).name
        except ValueError:
            name = str(-exit_code)
        return f"FFmpeg was terminated by signal {name}."
    return EXIT_CODE_EXPLANATIONS.get(
        exit_code, f"FFmpeg exited with status {exit_code}."
    )


def failure_message(exit_code: int, diagnostics: Sequence[str]) -> str:
    """
    Build a failure message from the exit code and stderr.

    Lines mentioning errors are preferred; otherwise the last few lines
    ffmpeg printed are used.
    """
    error_lines = [
        line
        for line in diagnostics
        if "error" in line.lower() or "invalid" in line.lower()
    ]
    detail = error_lines[-MAX_ERROR_LINES:] or list(diagnostics)[-3:]
    message = explain_exit_code(exit_code)
    if detail:
        message += "\n" + "\n".join(detail)
    return message


def with_progress_args(args: Sequence[str]) -> list[str]:
    """Append the machine-readable progress flags unless already present."""
    result = list(args)
    if "-progress" not in result:
        result.extend(PROGRESS_ARGS)
    return result


class ProcessRunner:
    """
    Spawns ffmpeg, streams its stderr and places the output atomically.

    ``run`` blocks the calling thread (the job's worker) until ffmpeg exits;
    ``cancel`` may be called from any thread.
    """

    def __init__(
        self,
        binary: Union[str, Sequence[str]] = FFMPEG_BINARY,
        progress_interval: float = PROGRESS_INTERVAL_SECONDS,
        cancel_grace: float = CANCEL_GRACE_SECONDS,
    ):
        # A sequence lets callers run ffmpeg through a wrapper
        self.command = [binary] if isinstance(binary, str) else list(binary)
        self.progress_interval = progress_interval
        self.cancel_grace = cancel_grace
        self._lock = threading.Lock()
        self._active: dict[str, _ActiveProcess] = {}
        self._reserved: set[str] = set()
        self._pending_cancel: set[str] = set()

    def build_command(self, args: Sequence[str], temp_path: Path) -> list[str]:
        return [*self.command, "-hide_banner", *with_progress_args(args), str(temp_path)]

    def reserve(self, job_id: str):
        """Announce a run for job_id so a cancel before the spawn is kept."""
        with self._lock:
            self._reserved.add(job_id)

    def run(
        self,
        job_id: str,
        args: Sequence[str],
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogCallback] = None,
    ) -> RunOutcome:
        """Run ffmpeg with args, writing to output_path on success."""
        self.reserve(job_id)
        try:
            return self._run(job_id, args, output_path, on_progress, on_log)
        finally:
            with self._lock:
                self._reserved.discard(job_id)
                self._pending_cancel.discard(job_id)

    def _run(
        self,
        job_id: str,
        args: Sequence[str],
        output_path: Path,
        on_progress: Optional[ProgressCallback],
        on_log: Optional[LogCallback],
    ) -> RunOutcome:
        try:
            validate_args(args)
            temp_path = prepare_output(output_path)
            cmd = self.build_command(args, temp_path)
            record = self._start(job_id, cmd, temp_path)
        except ConvoyError as e:
            return RunOutcome(success=False, message=e.message, code=e.code)

        if record is None:
            return RunOutcome(
                success=False,
                cancelled=True,
                message="Cancelled before start",
                code=errors.JOB_CANCELLED,
            )

        try:
            diagnostics = self._monitor(record, on_progress, on_log)
            exit_code = record.process.wait()
        finally:
            with self._lock:
                self._active.pop(job_id, None)
            if record.kill_timer is not None:
                record.kill_timer.cancel()

        if record.cancelled:
            remove_file(temp_path)
            return RunOutcome(
                success=False,
                cancelled=True,
                exit_code=exit_code,
                message="Cancelled",
                code=errors.JOB_CANCELLED,
            )

        if exit_code != 0:
            remove_file(temp_path)
            message = failure_message(exit_code, diagnostics)
            logger.debug("Job %s failed with exit code %s", job_id, exit_code)
            return RunOutcome(
                success=False,
                exit_code=exit_code,
                message=message,
                code=errors.JOB_FAILED,
            )

        try:
            finalize_output(temp_path, output_path)
        except OutputError as e:
            remove_file(temp_path)
            return RunOutcome(
                success=False, exit_code=exit_code, message=e.message, code=e.code
            )
        return RunOutcome(success=True, exit_code=0, output_path=output_path)

    def _start(
        self, job_id: str, cmd: list[str], temp_path: Path
    ) -> Optional[_ActiveProcess]:
        with self._lock:
            if job_id in self._pending_cancel:
                self._pending_cancel.discard(job_id)
                return None
            logger.debug("Starting job %s: %s", job_id, " ".join(cmd))
            try:
                process = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except FileNotFoundError:
                raise SpawnError(
                    f"{self.command[0]} not found. Please install ffmpeg.",
                    code=errors.JOB_FFMPEG_NOT_FOUND,
                )
            except OSError as e:
                raise SpawnError(
                    f"Could not start {self.command[0]}: {e}",
                    code=errors.JOB_SPAWN_FAILED,
                )
            record = _ActiveProcess(job_id=job_id, process=process, temp_path=temp_path)
            self._active[job_id] = record
            return record

    def _monitor(
        self,
        record: _ActiveProcess,
        on_progress: Optional[ProgressCallback],
        on_log: Optional[LogCallback],
    ) -> list[str]:
        """Read stderr to EOF. Returns the non-progress lines ffmpeg printed."""
        accumulator = ProgressAccumulator()
        throttle = ProgressThrottle(self.progress_interval)
        diagnostics: deque[str] = deque(maxlen=50)

        stderr = record.process.stderr
        assert stderr is not None, "stderr should be available with PIPE"

        for raw in stderr:
            line = raw.rstrip()
            if not line:
                continue
            if on_log is not None:
                on_log(line)

            sample = parse_progress_line(line)
            if sample is None:
                if not is_progress_line(line):
                    diagnostics.append(line)
                continue
            changed = accumulator.update(sample)
            if on_progress is not None and changed and (
                sample.finished or throttle.ready()
            ):
                on_progress(accumulator.snapshot())

        stderr.close()
        return list(diagnostics)

    def cancel(self, job_id: str) -> bool:
        """
        Ask a running ffmpeg to stop; it is killed if still alive after the
        grace period. A reserved run that has not spawned yet is stopped on
        spawn. Cancels for ids with no reserved run are ignored.

        Returns:
            True if a running process was signalled
        """
        with self._lock:
            record = self._active.get(job_id)
            if record is None:
                if job_id in self._reserved:
                    self._pending_cancel.add(job_id)
                return False
            if record.cancelled:
                return True
            record.cancelled = True

        logger.debug("Terminating job %s", job_id)
        record.process.terminate()
        timer = threading.Timer(self.cancel_grace, self._force_kill, args=(record,))
        timer.daemon = True
        record.kill_timer = timer
        timer.start()
        return True

    def _force_kill(self, record: _ActiveProcess):
        if record.process.poll() is None:
            logger.warning(
                "Job %s did not stop within %.1fs; killing it",
                record.job_id,
                self.cancel_grace,
            )
            record.process.kill()

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active
