"""
FeedTrak Job Runner
===================

Executes queued jobs with per-kind timeouts and retry policies, and a pool
of worker threads that keeps pulling due jobs off a queue.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .queue import JobQueue, JobRecord, JobState
from ..recovery.retry_logic import RetryConfig, RetryStatistics
from ..utils.exceptions import ErrorCode, FeedTrakError, JobTimeoutError
from ..utils.logging import get_logger_for_component

JobHandler = Callable[[Dict[str, Any]], Any]


@dataclass
class JobPolicy:
    """How one job kind is executed."""
    handler: JobHandler
    retry: RetryConfig
    timeout: float


class JobRunner:
    """Runs single job attempts and decides what happens after each one."""

    def __init__(self, queue: JobQueue, statistics: Optional[RetryStatistics] = None):
        self.queue = queue
        self.statistics = statistics or RetryStatistics()
        self.policies: Dict[str, JobPolicy] = {}
        self._in_flight = 0
        self._lock = threading.Lock()
        self.logger = get_logger_for_component("job_runner")

    @property
    def in_flight(self) -> int:
        """Attempts currently executing."""
        with self._lock:
            return self._in_flight

    def register(self, kind: str, handler: JobHandler, retry: RetryConfig, timeout: float) -> None:
        self.policies[kind] = JobPolicy(handler=handler, retry=retry, timeout=timeout)

    def run(self, record: JobRecord) -> JobRecord:
        """Execute one attempt of ``record`` and settle its state.

        Retryable failures are put back on the queue with the policy delay.
        """
        kind = record.spec.kind
        policy = self.policies.get(kind)
        if policy is None:
            error = FeedTrakError(
                f"No handler registered for job kind '{kind}'",
                error_code=ErrorCode.JOB_UNKNOWN_KIND,
            )
            record.state = JobState.FAILED_PERMANENT
            record.last_error = str(error)
            self.logger.error(record.last_error, extra={"job_id": record.job_id})
            return record

        record.state = JobState.RUNNING
        record.attempts += 1
        logger = get_logger_for_component("job_runner", job_id=record.job_id)
        logger.debug(f"Running {record}")

        with self._lock:
            self._in_flight += 1
        try:
            self._execute(record, policy)
        except Exception as e:
            self._handle_failure(record, policy, e, logger)
            return record
        finally:
            with self._lock:
                self._in_flight -= 1

        record.state = JobState.SUCCEEDED
        record.last_error = None
        self.statistics.record(kind, record.attempts, success=True)
        logger.info(f"Job {kind} succeeded on attempt {record.attempts}")
        return record

    def _execute(self, record: JobRecord, policy: JobPolicy) -> None:
        # A fresh single-thread executor per attempt, so an attempt that
        # overruns its timeout never blocks the next job
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"job-{record.spec.kind}")
        try:
            future = executor.submit(policy.handler, dict(record.spec.payload))
            try:
                future.result(timeout=policy.timeout)
            except FutureTimeoutError:
                future.cancel()
                raise JobTimeoutError(
                    f"Job {record.spec.kind} exceeded {policy.timeout}s",
                    job_id=record.job_id,
                )
        finally:
            executor.shutdown(wait=False)

    def _handle_failure(self, record: JobRecord, policy: JobPolicy, error: Exception, logger) -> None:
        record.last_error = str(error)

        if policy.retry.should_retry(error, record.attempts):
            delay = policy.retry.delay_for_attempt(record.attempts)
            record.state = JobState.FAILED_RETRYABLE
            self.statistics.record(record.spec.kind, record.attempts, success=False, error=error, delay=delay)
            logger.warning(
                f"Job {record.spec.kind} failed on attempt {record.attempts}, retrying in {delay}s: {error}"
            )
            self.queue.requeue(record, delay)
            return

        record.state = JobState.FAILED_PERMANENT
        self.statistics.record(record.spec.kind, record.attempts, success=False, error=error)
        if isinstance(error, FeedTrakError) and not error.recoverable:
            logger.warning(f"Job {record.spec.kind} failed permanently: {error}")
        else:
            logger.error(
                f"Job {record.spec.kind} failed after {record.attempts} attempts: {error}",
                exc_info=not isinstance(error, FeedTrakError),
            )

    def drain(self) -> List[JobRecord]:
        """Run every job that is due now, including ones enqueued meanwhile.

        Jobs requeued with a delay are left on the queue.
        """
        processed = []
        while True:
            record = self.queue.pop_due()
            if record is None:
                return processed
            processed.append(self.run(record))


class WorkerPool:
    """Daemon worker threads feeding a JobRunner from its queue."""

    def __init__(self, runner: JobRunner, worker_count: int = 4, poll_interval: float = 1.0):
        self.runner = runner
        self.worker_count = worker_count
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self.logger = get_logger_for_component("worker_pool")

    def start(self) -> None:
        self._stop_event.clear()
        for index in range(self.worker_count):
            thread = threading.Thread(target=self._work, name=f"feedtrak-worker-{index}", daemon=True)
            thread.start()
            self._threads.append(thread)
        self.logger.info(f"Started {self.worker_count} workers")

    def _work(self) -> None:
        while not self._stop_event.is_set():
            record = self.runner.queue.dequeue(timeout=self.poll_interval)
            if record is None:
                continue
            try:
                self.runner.run(record)
            except Exception as e:
                # run() settles job failures itself; this only guards the thread
                self.logger.error(f"Worker crashed while running {record}: {e}", exc_info=True)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        self.runner.queue.wake_all()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        self.logger.info("Workers stopped")

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def _idle(self) -> bool:
        return self.runner.queue.pending_count() == 0 and self.runner.in_flight == 0

    def wait_until_idle(self, poll_interval: float = 0.5) -> None:
        """Block until the queue is empty and no attempt is running.

        Idleness must hold across two polls, since a worker briefly holds a
        dequeued job before it counts as in flight.
        """
        while True:
            if self._idle():
                time.sleep(poll_interval)
                if self._idle():
                    return
            else:
                time.sleep(poll_interval)


def build_job_runner(queue: JobQueue, db_connection, settings=None, discovery=None, session=None) -> JobRunner:
    """Runner with the feed fetch and thumbnail handlers registered.

    Args:
        queue: Queue jobs are pulled from and retried on
        db_connection: DatabaseConnection shared by the handlers
        settings: FeedTrakSettings, defaults to the loaded settings
        discovery: FeedDiscoveryService override
        session: requests session override for the thumbnail job
    """
    from .fetch_feed_job import FetchFeedPipeline
    from .queue import FETCH_FEED, FETCH_THUMBNAIL
    from .thumbnail_job import ThumbnailBackfillJob
    from ..config.settings import get_settings

    settings = settings or get_settings()
    jobs = settings.jobs

    runner = JobRunner(queue)
    pipeline = FetchFeedPipeline(db_connection, settings=settings, discovery=discovery)
    runner.register(
        FETCH_FEED,
        pipeline.handle,
        RetryConfig(max_attempts=jobs.fetch_max_attempts, schedule=list(jobs.fetch_backoff)),
        jobs.fetch_timeout,
    )

    thumbnails = ThumbnailBackfillJob(db_connection, settings=settings, session=session)
    runner.register(
        FETCH_THUMBNAIL,
        thumbnails.handle,
        RetryConfig(max_attempts=jobs.thumbnail_max_attempts, schedule=[0]),
        jobs.thumbnail_timeout,
    )
    return runner
