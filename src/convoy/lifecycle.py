"""Job status state machine.

Each status has its own frozen payload type, so a job cannot be "running"
without a planner decision or "failed" without a message. The allowed moves
between statuses are fixed in TRANSITIONS; LifecycleGuard enforces them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Optional, Union

from .errors import IllegalTransitionError
from .models import MediaSummary, PlannerDecision, ProgressRecord

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    QUEUED = "queued"
    PROBING = "probing"
    PLANNING = "planning"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({JobStatus.PROBING, JobStatus.PLANNING, JobStatus.RUNNING})
TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROBING, JobStatus.CANCELLED}),
    JobStatus.PROBING: frozenset(
        {JobStatus.PLANNING, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.QUEUED}
    ),
    JobStatus.PLANNING: frozenset(
        {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.QUEUED}
    ),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.QUEUED}
    ),
    JobStatus.COMPLETED: frozenset({JobStatus.QUEUED}),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.CANCELLED: frozenset({JobStatus.QUEUED}),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def allowed_transitions(status: JobStatus) -> frozenset[JobStatus]:
    return TRANSITIONS.get(status, frozenset())


def is_active(status: JobStatus) -> bool:
    return status in ACTIVE_STATUSES


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class QueuedState:
    status: ClassVar[JobStatus] = JobStatus.QUEUED
    enqueued_at: float


@dataclass(frozen=True)
class ProbingState:
    status: ClassVar[JobStatus] = JobStatus.PROBING
    enqueued_at: float
    started_at: float


@dataclass(frozen=True)
class PlanningState:
    status: ClassVar[JobStatus] = JobStatus.PLANNING
    enqueued_at: float
    started_at: float
    summary: MediaSummary


@dataclass(frozen=True)
class RunningState:
    status: ClassVar[JobStatus] = JobStatus.RUNNING
    enqueued_at: float
    started_at: float
    summary: MediaSummary
    decision: PlannerDecision
    progress: ProgressRecord = field(default_factory=ProgressRecord)


@dataclass(frozen=True)
class CompletedState:
    status: ClassVar[JobStatus] = JobStatus.COMPLETED
    enqueued_at: float
    started_at: float
    finished_at: float
    output_path: Path


@dataclass(frozen=True)
class FailedState:
    status: ClassVar[JobStatus] = JobStatus.FAILED
    enqueued_at: float
    finished_at: float
    message: str
    code: Optional[str] = None
    started_at: Optional[float] = None


@dataclass(frozen=True)
class CancelledState:
    status: ClassVar[JobStatus] = JobStatus.CANCELLED
    enqueued_at: float
    finished_at: float
    started_at: Optional[float] = None


JobState = Union[
    QueuedState,
    ProbingState,
    PlanningState,
    RunningState,
    CompletedState,
    FailedState,
    CancelledState,
]


class LifecycleGuard:
    """
    Refuses illegal status changes.

    With ``debug`` set an illegal change raises IllegalTransitionError so the
    bug surfaces immediately; otherwise it is logged and refused.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def check(
        self, current: JobStatus, target: JobStatus, job_id: Optional[str] = None
    ) -> bool:
        if can_transition(current, target):
            return True
        message = (
            f"Illegal job transition {current.value} -> {target.value}"
            + (f" for job {job_id}" if job_id else "")
        )
        if self.debug:
            raise IllegalTransitionError(message)
        logger.error(message)
        return False
