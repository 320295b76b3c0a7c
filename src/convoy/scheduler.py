"""Job scheduling: concurrency limits, exclusivity, and the per-job pipeline.

Every job that leaves the queue gets its own worker thread which probes,
plans and runs it. All queue mutations happen under one lock, and every
terminal transition is followed by a scheduling pass in the same critical
section so freed capacity is reused straight away.
"""

import functools
import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from . import errors
from .args_builder import inject_burn_in, input_args
from .capabilities import get_capability_service
from .config import Settings
from .constants import (
    DEFAULT_FILENAME_SEPARATOR,
    DEFAULT_MAX_CONCURRENCY,
    MIN_CONCURRENCY,
)
from .errors import ProbeError, UnknownPresetError
from .events import EventBus, JobCompletedEvent, JobLogEvent, JobProgressEvent, JobStatusEvent
from .jobs import Job, JobQueue
from .lifecycle import (
    CompletedState,
    FailedState,
    JobStatus,
    LifecycleGuard,
)
from .models import CapabilitySnapshot, Tier
from .planner import Planner
from .presets import resolve_preset
from .probe import ProbeResult, probe_media
from .progress import ProgressSample
from .runner import ProcessRunner, RunOutcome
from .strategies import video_strategy_for
from .utils import build_output_path

logger = logging.getLogger(__name__)

Prober = Callable[[Path], ProbeResult]


class CapabilitySource(Protocol):
    def get(self) -> CapabilitySnapshot: ...


class Scheduler:
    """
    Owns the job queue and decides when queued jobs start.

    A job may start when fewer than ``max_concurrency`` jobs are active, no
    exclusive job is active, and, if the job itself is exclusive, nothing
    else is active. Queue order is strictly FIFO: a blocked head blocks the
    jobs behind it.
    """

    def __init__(
        self,
        planner: Optional[Planner] = None,
        runner: Optional[ProcessRunner] = None,
        prober: Optional[Prober] = None,
        capabilities: Optional[CapabilitySource] = None,
        events: Optional[EventBus] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        output_dir: Optional[Path] = None,
        include_preset_in_name: bool = False,
        include_tier_in_name: bool = False,
        filename_separator: str = DEFAULT_FILENAME_SEPARATOR,
        guard: Optional[LifecycleGuard] = None,
    ):
        self.planner = planner or Planner()
        self.runner = runner or ProcessRunner()
        self.prober = prober or probe_media
        self.capabilities = capabilities
        self.events = events or EventBus()
        self.output_dir = output_dir
        self.include_preset_in_name = include_preset_in_name
        self.include_tier_in_name = include_tier_in_name
        self.filename_separator = filename_separator

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._queue = JobQueue(guard or LifecycleGuard())
        self._max_concurrency = max(MIN_CONCURRENCY, max_concurrency)
        self._workers: dict[str, threading.Thread] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, software_only: bool = False, **kwargs
    ) -> "Scheduler":
        """Wire a scheduler to the binaries and limits in settings."""
        kwargs.setdefault(
            "planner", Planner(video_strategy=video_strategy_for(software_only))
        )
        kwargs.setdefault(
            "runner",
            ProcessRunner(
                settings.ffmpeg_path,
                progress_interval=settings.progress_interval,
                cancel_grace=settings.cancel_grace,
            ),
        )
        kwargs.setdefault(
            "prober", functools.partial(probe_media, binary=settings.ffprobe_path)
        )
        kwargs.setdefault("capabilities", get_capability_service(settings.ffmpeg_path))
        kwargs.setdefault("max_concurrency", settings.max_concurrency)
        kwargs.setdefault("output_dir", settings.output_dir)
        kwargs.setdefault("guard", LifecycleGuard(debug=settings.debug))
        return cls(**kwargs)

    # Queries

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._queue.get(job_id)

    def jobs(self) -> list[Job]:
        with self._lock:
            return self._queue.jobs()

    def active_jobs(self) -> list[Job]:
        with self._lock:
            return self._queue.active()

    def queued_jobs(self) -> list[Job]:
        with self._lock:
            return self._queue.queued()

    def peek_next(self) -> Optional[Job]:
        with self._lock:
            return self._queue.peek_next()

    # Caller operations

    def enqueue(
        self, path: Path, preset_id: str, tier: Tier = Tier.BALANCED
    ) -> Optional[str]:
        """Queue a file. Returns None for a duplicate path or unknown preset."""
        with self._lock:
            job_id = self._queue.enqueue(path, preset_id, tier)
            if job_id is not None:
                self.events.publish(JobStatusEvent(job_id, JobStatus.QUEUED))
            return job_id

    def enqueue_many(
        self, paths: Iterable[Path], preset_id: str, tier: Tier = Tier.BALANCED
    ) -> list[str]:
        ids = []
        with self._lock:
            for path in paths:
                job_id = self.enqueue(path, preset_id, tier)
                if job_id is not None:
                    ids.append(job_id)
        return ids

    def start_next(self) -> Optional[Job]:
        """
        Start the head of the queue if the limits allow it.

        Returns:
            The started job, or None if the queue is empty or the head has
            to wait
        """
        with self._lock:
            job = self._queue.peek_next()
            if job is None:
                return None
            if not self._can_start(job):
                logger.debug("Job %s must wait for capacity", job.id)
                return None
            if not self._queue.mark_probing(job):
                return None
            self.events.publish(JobStatusEvent(job.id, JobStatus.PROBING))

            worker = threading.Thread(
                target=self._work,
                args=(job.id,),
                name=f"convoy-job-{job.id[:8]}",
                daemon=True,
            )
            self._workers[job.id] = worker
            worker.start()
            return job

    def start_available(self) -> list[Job]:
        """Start queued jobs until the limits say stop."""
        started = []
        with self._lock:
            while True:
                job = self.start_next()
                if job is None:
                    return started
                started.append(job)

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a job.

        Queued and still-preparing jobs are cancelled at once; a running job
        has its ffmpeg terminated and becomes cancelled when it exits.

        Returns:
            False if the job is unknown or already finished
        """
        with self._lock:
            job = self._queue.get(job_id)
            if job is None:
                return False
            status = job.status
            if status == JobStatus.RUNNING:
                self.runner.cancel(job_id)
                return True
            if status not in (JobStatus.QUEUED, JobStatus.PROBING, JobStatus.PLANNING):
                return False
            self._queue.mark_cancelled(job)
            self._publish_finished(job)
            self._after_terminal()
            return True

    def cancel_all(self) -> int:
        """Cancel every queued or active job. Returns how many were cancelled."""
        with self._lock:
            # Queued first so nothing starts in the gaps
            targets = self._queue.queued() + self._queue.active()
            return sum(1 for job in targets if self.cancel(job.id))

    def requeue(self, job_id: str) -> bool:
        """Put a finished job back in the queue to run again."""
        with self._lock:
            job = self._queue.get(job_id)
            if job is None or not self._queue.requeue(job):
                return False
            self.events.publish(JobStatusEvent(job.id, JobStatus.QUEUED))
            return True

    def clear_completed(self) -> int:
        with self._lock:
            return self._queue.clear_completed()

    def set_max_concurrency(self, value: int):
        """Change the limit. Running jobs are never interrupted."""
        with self._lock:
            self._max_concurrency = max(MIN_CONCURRENCY, int(value))
            logger.debug("Max concurrency set to %d", self._max_concurrency)
            self._pump()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no job is active. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._queue.active(), timeout)

    # Scheduling

    def _can_start(self, job: Job) -> bool:
        active = self._queue.active()
        if len(active) >= self._max_concurrency:
            return False
        if any(other.exclusive for other in active):
            return False
        if job.exclusive and active:
            return False
        return True

    def _pump(self):
        while self.start_next() is not None:
            pass

    def _after_terminal(self):
        self._queue.prune_terminal()
        self._pump()
        self._idle.notify_all()

    def _publish_finished(self, job: Job):
        state = job.state
        message = code = None
        output_path = None
        if isinstance(state, FailedState):
            message, code = state.message, state.code
        elif isinstance(state, CompletedState):
            output_path = state.output_path
            code = errors.JOB_COMPLETE
        else:
            code = errors.JOB_CANCELLED
        self.events.publish(
            JobCompletedEvent(
                job_id=job.id,
                status=job.status,
                output_path=output_path,
                message=message,
                code=code,
            )
        )

    # Worker

    def _work(self, job_id: str):
        try:
            self._pipeline(job_id)
        except Exception as e:
            logger.exception("Job %s crashed", job_id)
            with self._lock:
                job = self._queue.get(job_id)
                if job is not None and job.status in (
                    JobStatus.PROBING,
                    JobStatus.PLANNING,
                    JobStatus.RUNNING,
                ):
                    code = (
                        errors.JOB_PLAN_FAILED
                        if job.status == JobStatus.PLANNING
                        else errors.JOB_FAILED
                    )
                    self._queue.mark_failed(job, str(e), code)
                    self._publish_finished(job)
                    self._after_terminal()
        finally:
            with self._lock:
                self._workers.pop(job_id, None)

    def _pipeline(self, job_id: str):
        job = self.get(job_id)
        if job is None:
            return

        try:
            result = self.prober(job.path)
        except ProbeError as e:
            self._fail(job, JobStatus.PROBING, e.message, e.code)
            return

        with self._lock:
            if job.status != JobStatus.PROBING:
                return
            self._queue.mark_planning(job, result.summary)
            self.events.publish(JobStatusEvent(job.id, JobStatus.PLANNING))

        try:
            preset = resolve_preset(job.preset_id)
        except UnknownPresetError as e:
            self._fail(job, JobStatus.PLANNING, e.message, e.code)
            return

        capabilities = self.capabilities.get() if self.capabilities else None
        decision = self.planner.plan(result.summary, preset, job.tier, capabilities)
        output_path = build_output_path(
            job.path,
            preset,
            job.tier,
            self.output_dir,
            include_preset=self.include_preset_in_name,
            include_tier=self.include_tier_in_name,
            separator=self.filename_separator,
        )

        args = input_args(job.path) + decision.args
        if decision.burn_in_requested:
            args, note = inject_burn_in(args, job.path, result.summary, decision)
            decision.notes.append(note)
        decision.args = args

        with self._lock:
            if job.status != JobStatus.PLANNING:
                return
            for warning in decision.warnings:
                logger.warning("%s: %s", job.path.name, warning)
                self._queue.append_log(job, f"warning: {warning}")
            job.exclusive = decision.exclusive
            others = [other for other in self._queue.active() if other.id != job.id]
            if (job.exclusive and others) or any(other.exclusive for other in others):
                # Heavier than expected; wait for the machine to free up
                logger.debug("Job %s needs exclusive access; requeued", job.id)
                self._queue.send_back(job)
                self.events.publish(JobStatusEvent(job.id, JobStatus.QUEUED))
                self._idle.notify_all()
                return
            job.output_path = output_path
            self._queue.mark_running(job, decision)
            # A cancel between here and the spawn must still reach the runner
            self.runner.reserve(job.id)
            self.events.publish(JobStatusEvent(job.id, JobStatus.RUNNING))

        outcome = self.runner.run(
            job.id,
            args,
            output_path,
            on_progress=functools.partial(self._on_progress, job.id),
            on_log=functools.partial(self._on_log, job.id),
        )
        self._finish(job, outcome)

    def _fail(self, job: Job, expected: JobStatus, message: str, code: str):
        with self._lock:
            if job.status != expected:
                return
            logger.debug("Job %s failed: %s", job.id, message)
            self._queue.append_log(job, message)
            self._queue.mark_failed(job, message, code)
            self._publish_finished(job)
            self._after_terminal()

    def _finish(self, job: Job, outcome: RunOutcome):
        with self._lock:
            if job.status != JobStatus.RUNNING:
                return
            if outcome.success:
                self._queue.mark_completed(job, outcome.output_path)
            elif outcome.cancelled:
                self._queue.mark_cancelled(job)
            else:
                self._queue.mark_failed(job, outcome.message or "Unknown error", outcome.code)
            self.events.publish(
                JobCompletedEvent(
                    job_id=job.id,
                    status=job.status,
                    output_path=outcome.output_path,
                    message=outcome.message,
                    code=outcome.code,
                    exit_code=outcome.exit_code,
                )
            )
            self._after_terminal()

    def _on_progress(self, job_id: str, sample: ProgressSample):
        with self._lock:
            job = self._queue.get(job_id)
            if job is None or not self._queue.update_progress(
                job, sample.processed_seconds, sample.fps, sample.speed
            ):
                return
            progress = job.progress
            self.events.publish(
                JobProgressEvent(
                    job_id=job_id,
                    processed_seconds=progress.processed_seconds,
                    ratio=progress.ratio,
                    fps=progress.fps,
                    speed=progress.speed,
                    eta_seconds=job.eta_seconds(),
                )
            )

    def _on_log(self, job_id: str, line: str):
        with self._lock:
            job = self._queue.get(job_id)
            if job is None:
                return
            self._queue.append_log(job, line)
            self.events.publish(JobLogEvent(job_id, line))
