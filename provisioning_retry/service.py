"""
Retry Service
=============
Wires store, audit sink, executor, enqueuer and worker into one component
with an explicit lifecycle.

Usage:
    config = SchedulerConfig.from_env()
    service = RetryService.from_config(config, provision_email_account)

    await service.start()
    ...
    # In the request handler's failure path
    await service.register_failure(user_id, payload, str(error))
    ...
    await service.stop()
"""

import time
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis
import structlog
from sqlalchemy.ext.asyncio import create_async_engine

from .audit.base import AuditSink
from .audit.logging_sink import LoggingAuditSink
from .audit.sql import SqlAuditSink
from .config import SchedulerConfig
from .enqueuer import RetryEnqueuer
from .executor import ExecutorAdapter, ProvisioningOperation
from .outcome import OutcomeHandler
from .store.base import JobStore
from .store.redis_store import RedisJobStore
from .worker import RetryWorker

logger = structlog.get_logger(__name__)


class RetryService:
    """Retry scheduler with constructor-injected collaborators."""

    def __init__(
        self,
        store: JobStore,
        audit: AuditSink,
        operation: ProvisioningOperation,
        config: Optional[SchedulerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or SchedulerConfig()
        self.store = store
        self.audit = audit
        self.enqueuer = RetryEnqueuer(
            store,
            backoff=self.config.backoff_policy(),
            max_attempts=self.config.max_attempts,
            clock=clock,
        )
        self.handler = OutcomeHandler(self.enqueuer, audit, self.config.max_attempts, clock=clock)
        self.executor = ExecutorAdapter(operation, self.config.execution_timeout_seconds)
        self.worker = RetryWorker(store, self.executor, self.handler, self.config, clock=clock)
        self._redis = None

    @classmethod
    def from_config(
        cls,
        config: SchedulerConfig,
        operation: ProvisioningOperation,
        redis_client=None,
        audit: Optional[AuditSink] = None,
    ) -> "RetryService":
        """
        Build a service backed by Redis and, when configured, a SQL audit table.

        Args:
            config: Scheduler configuration
            operation: Async provisioning callable; raises on failure
            redis_client: Existing async Redis client, created without
                ``decode_responses`` (created from config if None)
            audit: Audit sink override
        """
        owned_redis = None
        if redis_client is None:
            # Raw bytes replies; the store decodes each claimed body on its own
            redis_client = owned_redis = aioredis.from_url(config.redis_url)
        store = RedisJobStore(redis_client, queue_key=config.queue_key)

        if audit is None:
            if config.database_url:
                audit = SqlAuditSink(
                    create_async_engine(config.database_url, pool_pre_ping=True),
                    table_name=config.audit_table,
                    schema=config.audit_schema,
                )
            else:
                audit = LoggingAuditSink()

        service = cls(store, audit, operation, config)
        service._redis = owned_redis
        return service

    @property
    def running(self) -> bool:
        return self.worker.running

    async def register_failure(self, logical_key: str, payload: Any, error: str) -> bool:
        """
        Schedule the first retry after the original provisioning call failed.

        Never raises store errors: losing a retry registration must not
        become a second failure for the caller.
        """
        job = await self.enqueuer.enqueue(logical_key, payload, 0, error)
        if job is None:
            return False

        await self.handler.record_pending(job)
        return True

    async def start(self) -> None:
        self.worker.start()

    async def stop(self, timeout: Optional[float] = None) -> None:
        await self.worker.stop(timeout)

    async def close(self) -> None:
        """Stop the worker and release clients."""
        await self.stop()
        await self.audit.close()
        if self._redis is not None:
            await self._redis.aclose()

    async def stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "pending": await self.store.size(),
            "in_flight": await self.store.in_flight(),
            "ticks": self.worker.ticks,
        }

    async def __aenter__(self) -> "RetryService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
