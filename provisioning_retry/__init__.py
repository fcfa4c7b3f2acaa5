"""
Provisioning Retry Scheduler
============================
Delayed, bounded retries for failed provisioning operations.
"""

__version__ = "0.1.0"

# Backoff
from provisioning_retry.backoff import (
    BackoffPolicy,
    StaircaseBackoff,
    ExponentialBackoff,
    calculate_backoff_seconds,
)

# Models
from provisioning_retry.models import (
    RetryJob,
    AuditRecord,
    AuditStatus,
    ExecutionOutcome,
    ClaimedBatch,
    MalformedEntry,
)

# Exceptions
from provisioning_retry.exceptions import (
    RetrySchedulerError,
    ConfigError,
    StoreError,
    MalformedJobError,
    AttemptLimitExceeded,
    ProvisioningError,
)

# Stores
from provisioning_retry.store import JobStore, InMemoryJobStore, RedisJobStore

# Audit
from provisioning_retry.audit import (
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    SqlAuditSink,
)

# Runtime
from provisioning_retry.config import SchedulerConfig
from provisioning_retry.enqueuer import RetryEnqueuer
from provisioning_retry.executor import ExecutorAdapter, HttpProvisioningExecutor
from provisioning_retry.outcome import OutcomeHandler
from provisioning_retry.worker import RetryWorker
from provisioning_retry.service import RetryService
from provisioning_retry.logging_config import configure_logging
from provisioning_retry.health import create_health_router

__all__ = [
    "__version__",
    # Backoff
    "BackoffPolicy",
    "StaircaseBackoff",
    "ExponentialBackoff",
    "calculate_backoff_seconds",
    # Models
    "RetryJob",
    "AuditRecord",
    "AuditStatus",
    "ExecutionOutcome",
    "ClaimedBatch",
    "MalformedEntry",
    # Exceptions
    "RetrySchedulerError",
    "ConfigError",
    "StoreError",
    "MalformedJobError",
    "AttemptLimitExceeded",
    "ProvisioningError",
    # Stores
    "JobStore",
    "InMemoryJobStore",
    "RedisJobStore",
    # Audit
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "SqlAuditSink",
    # Runtime
    "SchedulerConfig",
    "RetryEnqueuer",
    "ExecutorAdapter",
    "HttpProvisioningExecutor",
    "OutcomeHandler",
    "RetryWorker",
    "RetryService",
    "configure_logging",
    # Health
    "create_health_router",
]
