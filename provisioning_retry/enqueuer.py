"""
Retry Enqueuer
==============
Registers a failed provisioning attempt for a delayed retry.
"""

import time
from typing import Any, Callable, Optional

import structlog

from . import metrics
from .backoff import DEFAULT_BACKOFF, BackoffPolicy
from .exceptions import AttemptLimitExceeded
from .models import RetryJob
from .store.base import JobStore

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


class RetryEnqueuer:
    """
    Writes the job for the next attempt into the job store.

    Called synchronously from failure paths, so it performs one store write,
    never retries, and never raises store errors to the caller.
    """

    def __init__(
        self,
        store: JobStore,
        backoff: Optional[BackoffPolicy] = None,
        max_attempts: int = 3,
        clock: Clock = time.time,
    ):
        self.store = store
        self.backoff = backoff or DEFAULT_BACKOFF
        self.max_attempts = max_attempts
        self._clock = clock

    def build_job(self, logical_key: str, payload: Any, attempt: int, error: str) -> RetryJob:
        """
        Build the job for ``attempt + 1``.

        Raises:
            AttemptLimitExceeded: If ``attempt + 1`` is past ``max_attempts``
        """
        next_attempt = attempt + 1
        if next_attempt > self.max_attempts:
            raise AttemptLimitExceeded(logical_key, next_attempt, self.max_attempts)

        now = int(self._clock())
        return RetryJob(
            logical_key=logical_key,
            payload=payload,
            attempt=next_attempt,
            last_error=error,
            enqueued_at=now,
            execute_at=now + self.backoff.delay_seconds(next_attempt),
        )

    async def enqueue(
        self,
        logical_key: str,
        payload: Any,
        attempt: int,
        error: str,
    ) -> Optional[RetryJob]:
        """
        Enqueue a failed provisioning job for retry.

        Args:
            logical_key: Identifier of the entity being provisioned
            payload: JSON-serializable snapshot of the original request
            attempt: Number of the attempt that just failed (0 for the original call)
            error: Description of the failure

        Returns:
            The written job, or None if the store rejected it

        Raises:
            AttemptLimitExceeded: If called past the attempt cap
        """
        job = self.build_job(logical_key, payload, attempt, error)

        try:
            await self.store.add(job)
        except Exception as e:
            metrics.record_enqueue_failure()
            logger.error(
                "retry_enqueue_failed",
                logical_key=logical_key,
                attempt=job.attempt,
                error=str(e),
            )
            return None

        metrics.record_enqueued(job.attempt)
        logger.info(
            "retry_job_enqueued",
            logical_key=logical_key,
            attempt=job.attempt,
            max_attempts=self.max_attempts,
            delay=job.execute_at - job.enqueued_at,
            execute_at=job.execute_at,
        )
        return job
