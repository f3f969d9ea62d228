"""
FeedTrak Retry Logic
====================

Retry policy for background jobs: how many attempts a job gets, how long
to wait between them, and which failures are worth another attempt.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from ..utils.exceptions import is_retryable_error
from ..utils.logging import get_logger_for_component


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    schedule: List[float] = field(default_factory=lambda: [10.0, 30.0, 60.0])

    def delay_for_attempt(self, failed_attempt: int) -> float:
        """Seconds to wait after the given 1-based attempt failed.

        A schedule shorter than the attempt count repeats its last delay.
        """
        if not self.schedule:
            return 0.0
        index = min(max(failed_attempt - 1, 0), len(self.schedule) - 1)
        return float(self.schedule[index])

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Whether a failure on ``attempt`` earns another attempt.

        Non-recoverable errors never retry, whatever budget remains.
        """
        if not is_retryable_error(exception):
            return False
        return attempt < self.max_attempts


@dataclass
class RetryAttempt:
    """Information about one job attempt."""
    job_kind: str
    attempt_number: int
    success: bool
    timestamp: datetime
    error: Optional[str] = None
    delay: float = 0.0


class RetryStatistics:
    """Attempt outcomes per job kind, for worker status output."""

    def __init__(self, history_limit: int = 1000):
        self.history_limit = history_limit
        self.attempts: List[RetryAttempt] = []
        self.logger = get_logger_for_component("retry_statistics")

    def record(
        self,
        job_kind: str,
        attempt_number: int,
        success: bool,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.attempts.append(
            RetryAttempt(
                job_kind=job_kind,
                attempt_number=attempt_number,
                success=success,
                timestamp=datetime.now(timezone.utc),
                error=str(error) if error else None,
                delay=delay,
            )
        )
        if len(self.attempts) > self.history_limit:
            self.attempts = self.attempts[-self.history_limit:]

    def summary(self) -> Dict[str, Dict[str, Any]]:
        """Attempts, successes and failures grouped by job kind."""
        result: Dict[str, Dict[str, Any]] = {}
        for attempt in self.attempts:
            stats = result.setdefault(
                attempt.job_kind, {"attempts": 0, "successes": 0, "failures": 0, "retries": 0}
            )
            stats["attempts"] += 1
            if attempt.success:
                stats["successes"] += 1
            else:
                stats["failures"] += 1
            if attempt.attempt_number > 1:
                stats["retries"] += 1

        for stats in result.values():
            stats["success_rate"] = round(stats["successes"] / stats["attempts"] * 100, 1)
        return result
