"""
FeedTrak Job Queue
==================

Message-passing interface between request handling and background work.
Producers enqueue a JobSpec; workers pull due JobRecords. Callers never
inspect queue internals.

Job lifecycle::

    pending -> running -> succeeded
                       -> failed_retryable -> (requeued) -> running ...
                       -> failed_permanent
"""

import heapq
import itertools
import threading
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

FETCH_FEED = "fetch_feed"
FETCH_THUMBNAIL = "fetch_thumbnail"

DEFAULT_QUEUE = "default"
FEEDS_QUEUE = "feeds"


class JobState(str, Enum):
    """Job lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_PERMANENT = "failed_permanent"


@dataclass
class JobSpec:
    """What to run: a handler kind, its payload and a queue name."""
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    queue: str = DEFAULT_QUEUE


@dataclass
class JobRecord:
    """A queued unit of work and its execution history."""
    spec: JobSpec
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    next_run_at: float = field(default_factory=time.time)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED_PERMANENT)

    def __str__(self) -> str:
        return f"Job({self.spec.kind}:{self.job_id[:8]} {self.state.value} attempt {self.attempts})"


class JobQueue(ABC):
    """Abstract job queue."""

    @abstractmethod
    def enqueue(self, spec: JobSpec, delay: float = 0) -> JobRecord:
        """Queue a new job, runnable after ``delay`` seconds."""

    @abstractmethod
    def requeue(self, record: JobRecord, delay: float) -> None:
        """Put an existing record back for another attempt."""

    @abstractmethod
    def dequeue(self, timeout: Optional[float] = None) -> Optional[JobRecord]:
        """Block until a job is due (or ``timeout`` elapses) and return it."""

    @abstractmethod
    def pop_due(self) -> Optional[JobRecord]:
        """Return a job that is due now without blocking."""

    @abstractmethod
    def pending_count(self) -> int:
        """Number of queued jobs, due or not."""

    def wake_all(self) -> None:
        """Release blocked consumers (used on shutdown)."""


class InMemoryJobQueue(JobQueue):
    """Process-local queue ordered by run time."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._heap: List[tuple] = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()

    def enqueue(self, spec: JobSpec, delay: float = 0) -> JobRecord:
        record = JobRecord(spec=spec, next_run_at=self._clock() + delay)
        self._push(record)
        return record

    def requeue(self, record: JobRecord, delay: float) -> None:
        record.next_run_at = self._clock() + delay
        self._push(record)

    def _push(self, record: JobRecord) -> None:
        with self._condition:
            # The sequence number keeps FIFO order among jobs due at the same time
            heapq.heappush(self._heap, (record.next_run_at, next(self._sequence), record))
            self._condition.notify()

    def dequeue(self, timeout: Optional[float] = None) -> Optional[JobRecord]:
        deadline = None if timeout is None else self._clock() + timeout
        with self._condition:
            while True:
                now = self._clock()
                if self._heap and self._heap[0][0] <= now:
                    return heapq.heappop(self._heap)[2]

                wait_for = None
                if self._heap:
                    wait_for = self._heap[0][0] - now
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait_for = remaining if wait_for is None else min(wait_for, remaining)

                self._condition.wait(wait_for)

    def pop_due(self) -> Optional[JobRecord]:
        with self._condition:
            if self._heap and self._heap[0][0] <= self._clock():
                return heapq.heappop(self._heap)[2]
            return None

    def pending_count(self) -> int:
        with self._condition:
            return len(self._heap)

    def pending(self) -> List[JobRecord]:
        """Snapshot of queued records in run order."""
        with self._condition:
            return [item[2] for item in sorted(self._heap)]

    def wake_all(self) -> None:
        with self._condition:
            self._condition.notify_all()


def enqueue_fetch(
    queue: JobQueue,
    feed_url: str,
    user_id: Optional[int] = None,
    category_id: Optional[int] = None,
    queue_name: str = DEFAULT_QUEUE,
) -> JobRecord:
    """Queue a feed fetch, optionally subscribing ``user_id`` on success."""
    payload: Dict[str, Any] = {"feed_url": feed_url}
    if user_id is not None:
        payload["user_id"] = user_id
    if category_id is not None:
        payload["category_id"] = category_id
    return queue.enqueue(JobSpec(kind=FETCH_FEED, payload=payload, queue=queue_name))


def enqueue_thumbnail_fetch(queue: JobQueue, entry_id: int) -> JobRecord:
    """Queue a thumbnail backfill for one entry."""
    return queue.enqueue(JobSpec(kind=FETCH_THUMBNAIL, payload={"entry_id": entry_id}))
