"""
Retry Worker
============
Long-lived poller that claims due retry jobs and drives them to an outcome.
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from . import metrics
from .config import SchedulerConfig
from .executor import ExecutorAdapter
from .models import RetryJob
from .outcome import OutcomeHandler
from .store.base import JobStore

logger = structlog.get_logger(__name__)


class RetryWorker:
    """
    Polls the job store on a fixed interval.

    Each tick returns expired leases (when leases are on), claims up to
    ``batch_size`` due jobs, dead-letters entries that cannot be decoded and
    runs the rest concurrently. Errors in a tick are logged and the next
    tick is always scheduled.

    Example:
        worker = RetryWorker(store, executor, handler, config)
        worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        store: JobStore,
        executor: ExecutorAdapter,
        handler: OutcomeHandler,
        config: Optional[SchedulerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.executor = executor
        self.handler = handler
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the polling loop on the running event loop."""
        if self.running:
            raise RuntimeError("Retry worker already running")

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="provisioning-retry-worker")
        logger.info(
            "Starting provisioning retry worker",
            poll_interval=self.config.poll_interval_seconds,
            batch_size=self.config.batch_size,
            max_attempts=self.config.max_attempts,
        )
        return self._task

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop scheduling ticks and wait for the current one to finish.

        Args:
            timeout: Seconds to wait before cancelling the in-flight tick
        """
        if self._task is None:
            return

        self._stop_event.set()
        timeout = self.config.shutdown_timeout_seconds if timeout is None else timeout
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("retry_worker_stop_timeout", timeout=timeout)
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
        logger.info("retry_worker_stopped", ticks=self.ticks)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                count = await self.run_once()
                if count > 0:
                    logger.info("Processed retry jobs", count=count)
            except Exception as e:
                metrics.record_tick_error()
                logger.error("Error processing retry jobs", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.config.poll_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> int:
        """
        Run a single tick.

        Returns:
            Number of entries claimed (jobs plus dead-lettered entries)

        Raises:
            StoreError: If the job store cannot be reached
        """
        self.ticks += 1
        now = int(self._clock())
        lease_seconds = self.config.visibility_timeout_seconds

        if lease_seconds > 0:
            restored = await self.store.requeue_expired(now)
            if restored:
                logger.warning("retry_leases_expired", restored=restored)

        batch = await self.store.claim_due(now, self.config.batch_size, lease_seconds)
        metrics.record_claimed(len(batch))

        for entry in batch.malformed:
            await self.handler.dead_letter(entry)

        if batch.jobs:
            await asyncio.gather(*(self._process(job) for job in batch.jobs))

        await self._refresh_depth()
        return len(batch)

    async def _process(self, job: RetryJob) -> None:
        logger.info(
            "Retrying provisioning",
            logical_key=job.logical_key,
            attempt=job.attempt,
            max_attempts=self.config.max_attempts,
        )
        try:
            outcome = await self.executor.execute(job.payload)
            await self.handler.handle(job, outcome)
        except Exception as e:
            # Lease (if any) is left to expire so the job is picked up again
            logger.error(
                "retry_job_handling_failed",
                logical_key=job.logical_key,
                attempt=job.attempt,
                error=str(e),
                exc_info=True,
            )
            return

        if self.config.visibility_timeout_seconds > 0:
            try:
                await self.store.ack(job)
            except Exception as e:
                logger.warning(
                    "retry_lease_ack_failed",
                    logical_key=job.logical_key,
                    error=str(e),
                )

    async def _refresh_depth(self) -> None:
        try:
            metrics.record_queue_depth(await self.store.size(), await self.store.in_flight())
        except Exception as e:
            logger.debug("retry_queue_depth_unavailable", error=str(e))
