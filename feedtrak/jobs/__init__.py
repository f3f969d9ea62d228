"""
FeedTrak Background Jobs
========================

Job queue, runner and worker pool, plus the feed fetch and thumbnail
backfill handlers.
"""

from .queue import (
    FETCH_FEED,
    FETCH_THUMBNAIL,
    InMemoryJobQueue,
    JobQueue,
    JobRecord,
    JobSpec,
    JobState,
    enqueue_fetch,
    enqueue_thumbnail_fetch,
)
from .runner import JobRunner, WorkerPool, build_job_runner

__all__ = [
    "FETCH_FEED",
    "FETCH_THUMBNAIL",
    "InMemoryJobQueue",
    "JobQueue",
    "JobRecord",
    "JobSpec",
    "JobState",
    "enqueue_fetch",
    "enqueue_thumbnail_fetch",
    "JobRunner",
    "WorkerPool",
    "build_job_runner",
]
