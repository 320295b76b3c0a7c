"""Events pushed to callers, keyed by job id."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .lifecycle import JobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobStatusEvent:
    job_id: str
    status: JobStatus


@dataclass(frozen=True)
class JobProgressEvent:
    job_id: str
    processed_seconds: float
    ratio: Optional[float] = None
    fps: Optional[float] = None
    speed: Optional[float] = None
    eta_seconds: Optional[float] = None


@dataclass(frozen=True)
class JobLogEvent:
    job_id: str
    line: str


@dataclass(frozen=True)
class JobCompletedEvent:
    """Final word on a job: completed, failed or cancelled."""

    job_id: str
    status: JobStatus
    output_path: Optional[Path] = None
    message: Optional[str] = None
    code: Optional[str] = None
    exit_code: Optional[int] = None


JobEvent = Union[JobStatusEvent, JobProgressEvent, JobLogEvent, JobCompletedEvent]
Listener = Callable[[JobEvent], None]


class EventBus:
    """Synchronous fan-out to subscribers.

    Listeners run on the thread that publishes (usually a job's worker), so
    they should return quickly. A listener that raises is logged and skipped.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: JobEvent):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", type(event).__name__)
