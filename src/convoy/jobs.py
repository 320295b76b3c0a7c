"""Jobs and the FIFO queue that holds them.

JobQueue is not thread-safe on its own; the scheduler serialises access with
its lock.
"""

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .constants import DEFAULT_LOG_MAX_LINES, MAX_TERMINAL_JOBS
from .lifecycle import (
    CancelledState,
    CompletedState,
    FailedState,
    JobState,
    JobStatus,
    LifecycleGuard,
    PlanningState,
    ProbingState,
    QueuedState,
    RunningState,
    is_active,
    is_terminal,
)
from .models import MediaSummary, PlannerDecision, ProgressRecord, Tier
from .planner import predict_exclusive
from .presets import get_preset

logger = logging.getLogger(__name__)


class LogBuffer:
    """Bounded log; the oldest lines fall off once the cap is reached."""

    def __init__(self, max_lines: int = DEFAULT_LOG_MAX_LINES):
        self.max_lines = max_lines
        self._lines: deque[str] = deque(maxlen=max_lines)

    def append(self, line: str):
        self._lines.append(line)

    def extend(self, lines: Iterable[str]):
        self._lines.extend(lines)

    def lines(self) -> list[str]:
        return list(self._lines)

    def tail(self, count: int) -> list[str]:
        if count <= 0:
            return []
        return list(self._lines)[-count:]

    def clear(self):
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


@dataclass
class Job:
    """One source file on its way through the pipeline."""

    id: str
    path: Path
    preset_id: str
    tier: Tier
    state: JobState
    summary: Optional[MediaSummary] = None
    output_path: Optional[Path] = None
    exclusive: bool = False
    logs: LogBuffer = field(default_factory=LogBuffer)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def status(self) -> JobStatus:
        return self.state.status

    @property
    def progress(self) -> Optional[ProgressRecord]:
        if isinstance(self.state, RunningState):
            return self.state.progress
        return None

    @property
    def decision(self) -> Optional[PlannerDecision]:
        if isinstance(self.state, RunningState):
            return self.state.decision
        return None

    def eta_seconds(self) -> Optional[float]:
        """Remaining wall-clock seconds, when duration and speed are known."""
        progress = self.progress
        if progress is None or not progress.speed or self.summary is None:
            return None
        duration = self.summary.duration_sec
        if duration <= 0:
            return None
        remaining = max(0.0, duration - progress.processed_seconds)
        return remaining / progress.speed


def _new_job_id() -> str:
    return uuid.uuid4().hex


class JobQueue:
    """Ordered job store with guarded status changes."""

    def __init__(
        self,
        guard: Optional[LifecycleGuard] = None,
        log_max_lines: int = DEFAULT_LOG_MAX_LINES,
        max_terminal_jobs: int = MAX_TERMINAL_JOBS,
        clock: Callable[[], float] = time.time,
    ):
        self.guard = guard or LifecycleGuard()
        self.log_max_lines = log_max_lines
        self.max_terminal_jobs = max_terminal_jobs
        self._clock = clock
        self._jobs: dict[str, Job] = {}

    # Queries

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def queued(self) -> list[Job]:
        return [job for job in self._jobs.values() if job.status == JobStatus.QUEUED]

    def active(self) -> list[Job]:
        return [job for job in self._jobs.values() if is_active(job.status)]

    def peek_next(self) -> Optional[Job]:
        """First queued job in enqueue order; nothing is changed."""
        for job in self._jobs.values():
            if job.status == JobStatus.QUEUED:
                return job
        return None

    def find_by_path(self, path: Path) -> Optional[Job]:
        """A non-terminal job for this path, if any."""
        key = _path_key(path)
        for job in self._jobs.values():
            if not is_terminal(job.status) and _path_key(job.path) == key:
                return job
        return None

    def __len__(self) -> int:
        return len(self._jobs)

    # Enqueueing

    def enqueue(
        self, path: Path, preset_id: str, tier: Tier = Tier.BALANCED
    ) -> Optional[str]:
        """
        Add a job for path.

        Returns:
            The new job id, or None if the path is already queued or running
            or the preset is unknown
        """
        path = Path(path)
        preset = get_preset(preset_id)
        if preset is None:
            logger.warning("Cannot enqueue %s: unknown preset %s", path, preset_id)
            return None
        if self.find_by_path(path) is not None:
            logger.debug("Skipping duplicate enqueue for %s", path)
            return None

        now = self._clock()
        job = Job(
            id=_new_job_id(),
            path=path,
            preset_id=preset_id,
            tier=tier,
            state=QueuedState(enqueued_at=now),
            exclusive=predict_exclusive(preset),
            logs=LogBuffer(self.log_max_lines),
            created_at=now,
            updated_at=now,
        )
        self._jobs[job.id] = job
        logger.debug("Enqueued %s as %s (%s, %s)", path, job.id, preset_id, tier.value)
        return job.id

    def enqueue_many(
        self, paths: Iterable[Path], preset_id: str, tier: Tier = Tier.BALANCED
    ) -> list[str]:
        ids = []
        for path in paths:
            job_id = self.enqueue(path, preset_id, tier)
            if job_id is not None:
                ids.append(job_id)
        return ids

    # Transitions

    def _transition(self, job: Job, state: JobState) -> bool:
        if not self.guard.check(job.status, state.status, job.id):
            return False
        job.state = state
        job.updated_at = self._clock()
        return True

    def mark_probing(self, job: Job) -> bool:
        state = job.state
        return self._transition(
            job, ProbingState(enqueued_at=state.enqueued_at, started_at=self._clock())
        )

    def mark_planning(self, job: Job, summary: MediaSummary) -> bool:
        state = job.state
        started_at = getattr(state, "started_at", None) or self._clock()
        if not self._transition(
            job,
            PlanningState(
                enqueued_at=state.enqueued_at, started_at=started_at, summary=summary
            ),
        ):
            return False
        job.summary = summary
        return True

    def mark_running(self, job: Job, decision: PlannerDecision) -> bool:
        state = job.state
        if not isinstance(state, PlanningState):
            # Let the guard report the illegal move
            self.guard.check(job.status, JobStatus.RUNNING, job.id)
            return False
        return self._transition(
            job,
            RunningState(
                enqueued_at=state.enqueued_at,
                started_at=state.started_at,
                summary=state.summary,
                decision=decision,
            ),
        )

    def mark_completed(self, job: Job, output_path: Path) -> bool:
        state = job.state
        if not self._transition(
            job,
            CompletedState(
                enqueued_at=state.enqueued_at,
                started_at=getattr(state, "started_at", None) or state.enqueued_at,
                finished_at=self._clock(),
                output_path=output_path,
            ),
        ):
            return False
        job.output_path = output_path
        return True

    def mark_failed(self, job: Job, message: str, code: Optional[str] = None) -> bool:
        state = job.state
        return self._transition(
            job,
            FailedState(
                enqueued_at=state.enqueued_at,
                started_at=getattr(state, "started_at", None),
                finished_at=self._clock(),
                message=message,
                code=code,
            ),
        )

    def mark_cancelled(self, job: Job) -> bool:
        state = job.state
        return self._transition(
            job,
            CancelledState(
                enqueued_at=state.enqueued_at,
                started_at=getattr(state, "started_at", None),
                finished_at=self._clock(),
            ),
        )

    def send_back(self, job: Job) -> bool:
        """Return an active job to the queue (scheduling was denied)."""
        return self._transition(job, QueuedState(enqueued_at=job.state.enqueued_at))

    def requeue(self, job: Job) -> bool:
        """Reset a finished job so it runs again from scratch."""
        if not is_terminal(job.status):
            self.guard.check(job.status, JobStatus.QUEUED, job.id)
            return False
        if not self._transition(job, QueuedState(enqueued_at=self._clock())):
            return False
        # Move to the back of the FIFO
        del self._jobs[job.id]
        self._jobs[job.id] = job
        job.summary = None
        job.output_path = None
        job.logs.clear()
        preset = get_preset(job.preset_id)
        job.exclusive = predict_exclusive(preset) if preset else False
        return True

    # Running-job updates

    def update_progress(
        self,
        job: Job,
        processed_seconds: Optional[float] = None,
        fps: Optional[float] = None,
        speed: Optional[float] = None,
    ) -> bool:
        """Apply a progress sample. Ignored unless the job is running."""
        state = job.state
        if not isinstance(state, RunningState):
            return False
        progress = state.progress
        if processed_seconds is not None:
            progress.processed_seconds = processed_seconds
            duration = state.summary.duration_sec
            if duration > 0:
                progress.ratio = min(max(processed_seconds / duration, 0.0), 1.0)
            else:
                progress.ratio = None
        if fps is not None:
            progress.fps = fps
        if speed is not None:
            progress.speed = speed
        job.updated_at = self._clock()
        return True

    def append_log(self, job: Job, line: str):
        job.logs.append(line)

    # Housekeeping

    def clear_completed(self) -> int:
        """Drop every finished job. Returns how many were removed."""
        finished = [job_id for job_id, job in self._jobs.items() if is_terminal(job.status)]
        for job_id in finished:
            del self._jobs[job_id]
        return len(finished)

    def prune_terminal(self) -> int:
        """Keep at most max_terminal_jobs finished jobs, dropping the oldest."""
        finished = [job for job in self._jobs.values() if is_terminal(job.status)]
        excess = len(finished) - self.max_terminal_jobs
        if excess <= 0:
            return 0
        finished.sort(key=lambda job: job.updated_at)
        for job in finished[:excess]:
            del self._jobs[job.id]
        return excess


def _path_key(path: Path) -> str:
    return str(Path(path).expanduser().absolute())
