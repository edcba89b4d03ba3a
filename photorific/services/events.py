"""Event messages and the broadcaster that fans them out to subscribers."""

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Anything the broadcaster can deliver."""

    type: ClassVar[str]

    def to_dict(self) -> dict[str, Any]: ...


@dataclass
class JobsSnapshot:
    """Every tracked job, sent once to each new subscriber."""

    jobs: list[dict[str, Any]]
    type: ClassVar[str] = "jobs_list"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "jobs": self.jobs}


@dataclass
class JobUpdate:
    """A job's state right after a progress or terminal transition."""

    job: dict[str, Any]
    type: ClassVar[str] = "job_update"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "job": self.job}


@dataclass
class SyncResult:
    """Full presence map from a tracked sync check."""

    job_id: str
    sync_status: dict[str, dict[str, Any]]
    remote_object_count: int
    type: ClassVar[str] = "sync_status_result"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "jobId": self.job_id,
            "syncStatus": self.sync_status,
            "remoteObjectCount": self.remote_object_count,
        }


@dataclass
class FileUploadSucceeded:
    """One file landed in the bucket."""

    job_id: str
    relative_path: str
    destination_key: str
    context_ids: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[str] = "file_upload_success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "jobId": self.job_id,
            "relativePath": self.relative_path,
            "destinationKey": self.destination_key,
            "contextIds": self.context_ids,
        }


@dataclass
class BatchUploadResult:
    """Per-file outcomes of a finished upload batch."""

    job_id: str
    outcomes: list[dict[str, Any]]
    context_ids: dict[str, Any] = field(default_factory=dict)
    type: ClassVar[str] = "upload_result"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "jobId": self.job_id,
            "outcomes": self.outcomes,
            "contextIds": self.context_ids,
        }


class Subscription:
    """A subscriber's private FIFO of serialized events."""

    def __init__(self) -> None:
        self._queue: deque[dict[str, Any]] = deque()
        self._ready = threading.Event()
        self.closed = False

    def push(self, data: dict[str, Any]) -> None:
        self._queue.append(data)
        self._ready.set()

    def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Pop the next event, waiting up to timeout seconds for one.

        Returns:
            The event dict, or None if nothing arrived in time
        """
        try:
            return self._queue.popleft()
        except IndexError:
            pass

        self._ready.clear()
        # An event pushed between the failed pop and clear() must not be missed
        if not self._queue:
            self._ready.wait(timeout)

        try:
            return self._queue.popleft()
        except IndexError:
            return None

    def drain(self) -> list[dict[str, Any]]:
        """Pop everything currently queued without waiting."""
        items: list[dict[str, Any]] = []
        while True:
            try:
                items.append(self._queue.popleft())
            except IndexError:
                return items

    def close(self) -> None:
        self.closed = True
        self._ready.set()


class EventBroadcaster:
    """Publish-subscribe hub for job and result events.

    Delivery is fire-and-forget: nothing is acknowledged or replayed, and a
    subscriber only sees events published while it is subscribed. Each
    subscriber receives events in publish order.
    """

    def __init__(self, snapshot_provider: Callable[[], list[dict[str, Any]]] | None = None) -> None:
        self.snapshot_provider = snapshot_provider
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a subscriber, bootstrapped with a snapshot of all jobs.

        The snapshot is taken under the same lock that publish() holds, so an
        update is either already reflected in the snapshot or delivered after it.
        """
        subscription = Subscription()
        with self._lock:
            jobs = self.snapshot_provider() if self.snapshot_provider else []
            subscription.push(JobsSnapshot(jobs=jobs).to_dict())
            self._subscribers.append(subscription)
            count = len(self._subscribers)
        logger.debug("Subscriber connected (%d total)", count)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)
            count = len(self._subscribers)
        subscription.close()
        logger.debug("Subscriber disconnected (%d remaining)", count)

    def publish(self, event: Event) -> None:
        """Deliver an event to every current subscriber."""
        data = event.to_dict()
        with self._lock:
            for subscription in self._subscribers:
                subscription.push(data)

    def close(self) -> None:
        """Disconnect every subscriber."""
        with self._lock:
            subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription.close()
