"""
Outcome Handler
===============
Decides the fate of a claimed job once it has been executed.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from . import metrics
from .audit.base import AuditSink
from .enqueuer import RetryEnqueuer
from .models import AuditRecord, AuditStatus, ExecutionOutcome, MalformedEntry, RetryJob

logger = structlog.get_logger(__name__)


class OutcomeHandler:
    """
    Routes an execution outcome to the audit trail and, on a retryable
    failure, back through the enqueuer.

    - success: audit ``success``
    - failure below the cap: re-enqueue, audit ``failed``
    - failure at the cap: audit ``permanently_failed``
    - failure whose re-enqueue is rejected: audit ``permanently_failed``
    """

    def __init__(
        self,
        enqueuer: RetryEnqueuer,
        audit: AuditSink,
        max_attempts: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.enqueuer = enqueuer
        self.audit = audit
        self.max_attempts = max_attempts if max_attempts is not None else enqueuer.max_attempts
        self._clock = clock

    async def handle(self, job: RetryJob, outcome: ExecutionOutcome) -> AuditStatus:
        if outcome.success:
            logger.info("retry_succeeded", logical_key=job.logical_key, attempt=job.attempt)
            status = AuditStatus.SUCCESS
            error = None

        elif job.attempt < self.max_attempts:
            error = outcome.error or "unknown error"
            logger.warning(
                "retry_attempt_failed",
                logical_key=job.logical_key,
                attempt=job.attempt,
                max_attempts=self.max_attempts,
                error=error,
            )
            status = AuditStatus.FAILED
            requeued = await self.enqueuer.enqueue(job.logical_key, job.payload, job.attempt, error)
            if requeued is None:
                logger.error(
                    "retry_job_lost",
                    logical_key=job.logical_key,
                    attempt=job.attempt,
                )
                status = AuditStatus.PERMANENTLY_FAILED
                error = f"{error} (next retry could not be scheduled)"

        else:
            error = outcome.error or "unknown error"
            logger.error(
                "retry_permanently_failed",
                logical_key=job.logical_key,
                attempts=job.attempt,
                error=error,
            )
            status = AuditStatus.PERMANENTLY_FAILED

        await self._record(job.logical_key, job.attempt, status, error)
        return status

    async def dead_letter(self, entry: MalformedEntry) -> None:
        """Close out a job that could not be decoded; it is never retried."""
        logger.error(
            "retry_job_dead_lettered",
            logical_key=entry.logical_key,
            error=entry.error,
        )
        await self._record(entry.logical_key, 0, AuditStatus.DEAD_LETTERED, entry.error)

    async def record_pending(self, job: RetryJob) -> None:
        await self._record(job.logical_key, job.attempt, AuditStatus.PENDING, job.last_error)

    async def _record(
        self,
        logical_key: str,
        attempt: int,
        status: AuditStatus,
        error: Optional[str],
    ) -> None:
        metrics.record_outcome(status.value)
        record = AuditRecord(
            logical_key=logical_key,
            attempt=attempt,
            status=status,
            error=error,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )
        try:
            await self.audit.record(record)
        except Exception as e:
            logger.error(
                "Failed to update provisioning log",
                logical_key=logical_key,
                status=status.value,
                error=str(e),
            )
