"""Job registry: lifecycle and progress of long-running operations."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from photorific.config import JOB_RETENTION_SECONDS
from photorific.services.errors import JobStateError
from photorific.services.events import EventBroadcaster, JobUpdate

logger = logging.getLogger(__name__)


class JobKind(Enum):
    """Operation a job tracks."""

    SYNC_CHECK = "sync_check"
    UPLOAD = "upload"


class JobStatus(Enum):
    """Job status. RUNNING is the only non-terminal state."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


@dataclass
class Job:
    """A tracked operation. Only JobRegistry mutates it."""

    id: str
    kind: JobKind
    total_items: int
    status: JobStatus = JobStatus.RUNNING
    completed_items: int = 0
    failed_items: int = 0
    current_item: str | None = None
    errors: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def progress(self) -> int:
        """Whole-number percentage of items processed, rounded down.

        A job with nothing to process counts as done.
        """
        if self.status is JobStatus.COMPLETED or self.total_items <= 0:
            return 100
        return min(100, self.completed_items * 100 // self.total_items)

    @property
    def duration_ms(self) -> int:
        end = self.finished_at or datetime.now(UTC)
        return int((end - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "status": self.status.value,
            "progress": self.progress,
            "totalItems": self.total_items,
            "completedItems": self.completed_items,
            "failedItems": self.failed_items,
            "currentItem": self.current_item,
            "errors": list(self.errors),
            "startTime": self.started_at.isoformat(),
            "duration": self.duration_ms,
        }


class JobRegistry:
    """Creates, updates and retires jobs, publishing every change.

    Updates are published after the registry lock is released so a subscriber
    bootstrapping from snapshot() never waits on a publisher.
    """

    def __init__(
        self,
        broadcaster: EventBroadcaster,
        retention_seconds: float = JOB_RETENTION_SECONDS,
    ) -> None:
        self.broadcaster = broadcaster
        self.retention_seconds = retention_seconds
        self._jobs: dict[str, Job] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        broadcaster.snapshot_provider = self.snapshot

    def create(self, kind: JobKind, total_items: int) -> Job:
        """Register a new running job."""
        job = Job(id=str(uuid.uuid4()), kind=kind, total_items=total_items)
        with self._lock:
            self._jobs[job.id] = job
        logger.debug("Created %s job %s with %d items", kind.value, job.id, total_items)
        return job

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def snapshot(self) -> list[dict[str, Any]]:
        """Serialized state of every tracked job."""
        with self._lock:
            return [job.to_dict() for job in self._jobs.values()]

    def _ensure_running(self, job: Job) -> None:
        if job.status.is_terminal:
            raise JobStateError(f"Job {job.id} is already {job.status.value}")

    def update_progress(
        self,
        job: Job,
        completed_items: int,
        current_item: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record progress, and a failed item when error is given.

        Raises:
            JobStateError: If the job has already finished
        """
        with self._lock:
            self._ensure_running(job)
            job.completed_items = completed_items
            job.current_item = current_item
            if error:
                job.failed_items += 1
                job.errors.append(error)
            data = job.to_dict()
        self.broadcaster.publish(JobUpdate(job=data))

    def complete(self, job: Job) -> None:
        """Mark the job completed and schedule its retirement.

        Raises:
            JobStateError: If the job has already finished
        """
        with self._lock:
            self._ensure_running(job)
            job.status = JobStatus.COMPLETED
            job.current_item = None
            job.finished_at = datetime.now(UTC)
            data = job.to_dict()
            self._schedule_retirement(job.id)
        self.broadcaster.publish(JobUpdate(job=data))

    def fail(self, job: Job, error: str) -> None:
        """Mark the job failed and schedule its retirement.

        Raises:
            JobStateError: If the job has already finished
        """
        with self._lock:
            self._ensure_running(job)
            job.status = JobStatus.FAILED
            job.errors.append(error)
            job.finished_at = datetime.now(UTC)
            data = job.to_dict()
            self._schedule_retirement(job.id)
        self.broadcaster.publish(JobUpdate(job=data))

    def _schedule_retirement(self, job_id: str) -> None:
        # Caller holds self._lock
        timer = threading.Timer(self.retention_seconds, self._retire, args=(job_id,))
        timer.daemon = True
        self._timers[job_id] = timer
        timer.start()

    def _retire(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)
            self._timers.pop(job_id, None)
        logger.debug("Retired job %s", job_id)

    def shutdown(self) -> None:
        """Cancel pending retirements and forget every job."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._jobs.clear()
