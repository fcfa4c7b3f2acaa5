"""
Retry Scheduler Configuration
=============================
Configuration for the retry scheduler, with environment overrides.

Environment variables:
    RETRY_POLL_INTERVAL_SECONDS      seconds between worker ticks (30)
    RETRY_MAX_ATTEMPTS               retries before giving up (3)
    RETRY_BATCH_SIZE                 jobs claimed per tick (10)
    RETRY_BACKOFF_SCHEDULE           comma-separated delays ("60,300,1800")
    RETRY_BACKOFF_FALLBACK_SECONDS   delay past the schedule (3600)
    RETRY_EXECUTION_TIMEOUT_SECONDS  per-job execution timeout (60)
    RETRY_VISIBILITY_TIMEOUT_SECONDS claim lease, 0 disables (0)
    RETRY_QUEUE_KEY                  Redis key prefix
    REDIS_URL                        Redis connection string
    RETRY_AUDIT_DATABASE_URL         async SQLAlchemy URL for the audit trail
    RETRY_AUDIT_TABLE                audit table name
    SERVICE_NAME                     service name for logs
    LOG_LEVEL / LOG_FORMAT           logging setup
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .backoff import DEFAULT_FALLBACK_SECONDS, DEFAULT_SCHEDULE, StaircaseBackoff
from .exceptions import ConfigError


def _parse_schedule(value: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in value.split(",") if part.strip())
    except ValueError:
        raise ConfigError(f"Invalid backoff schedule: {value!r}")


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass
class SchedulerConfig:
    """Configuration for the retry scheduler."""
    poll_interval_seconds: float = 30.0
    max_attempts: int = 3
    batch_size: int = 10
    backoff_schedule: Tuple[int, ...] = DEFAULT_SCHEDULE
    backoff_fallback_seconds: int = DEFAULT_FALLBACK_SECONDS
    execution_timeout_seconds: float = 60.0
    visibility_timeout_seconds: int = 0
    queue_key: str = "email:provisioning:retry"
    redis_url: str = "redis://localhost:6379/0"
    database_url: Optional[str] = None
    audit_table: str = "provisioning_retry_log"
    audit_schema: Optional[str] = None
    service_name: str = "provisioning-retry"
    log_level: str = "INFO"
    log_format: str = "json"
    shutdown_timeout_seconds: float = field(default=30.0)

    def __post_init__(self):
        self.backoff_schedule = tuple(self.backoff_schedule)
        if self.poll_interval_seconds <= 0:
            raise ConfigError("poll_interval_seconds must be > 0")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be >= 1")
        if self.execution_timeout_seconds <= 0:
            raise ConfigError("execution_timeout_seconds must be > 0")
        if self.visibility_timeout_seconds < 0:
            raise ConfigError("visibility_timeout_seconds must be >= 0")
        if 0 < self.visibility_timeout_seconds <= self.execution_timeout_seconds:
            # Lease must outlive the execution timeout
            raise ConfigError(
                "visibility_timeout_seconds must exceed execution_timeout_seconds when leases are on"
            )
        if self.log_format not in ("json", "console"):
            raise ConfigError("log_format must be 'json' or 'console'")
        try:
            self.backoff_policy()
        except ValueError as e:
            raise ConfigError(str(e))

    def backoff_policy(self) -> StaircaseBackoff:
        return StaircaseBackoff(self.backoff_schedule, self.backoff_fallback_seconds)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SchedulerConfig":
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()

        schedule = env.get("RETRY_BACKOFF_SCHEDULE")
        return cls(
            poll_interval_seconds=_float(env, "RETRY_POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds),
            max_attempts=_int(env, "RETRY_MAX_ATTEMPTS", defaults.max_attempts),
            batch_size=_int(env, "RETRY_BATCH_SIZE", defaults.batch_size),
            backoff_schedule=_parse_schedule(schedule) if schedule else defaults.backoff_schedule,
            backoff_fallback_seconds=_int(env, "RETRY_BACKOFF_FALLBACK_SECONDS", defaults.backoff_fallback_seconds),
            execution_timeout_seconds=_float(env, "RETRY_EXECUTION_TIMEOUT_SECONDS", defaults.execution_timeout_seconds),
            visibility_timeout_seconds=_int(env, "RETRY_VISIBILITY_TIMEOUT_SECONDS", defaults.visibility_timeout_seconds),
            queue_key=env.get("RETRY_QUEUE_KEY", defaults.queue_key),
            redis_url=env.get("REDIS_URL", defaults.redis_url),
            database_url=env.get("RETRY_AUDIT_DATABASE_URL") or None,
            audit_table=env.get("RETRY_AUDIT_TABLE", defaults.audit_table),
            audit_schema=env.get("RETRY_AUDIT_SCHEMA") or None,
            service_name=env.get("SERVICE_NAME", defaults.service_name),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
            log_format=env.get("LOG_FORMAT", defaults.log_format).lower(),
            shutdown_timeout_seconds=_float(env, "RETRY_SHUTDOWN_TIMEOUT_SECONDS", defaults.shutdown_timeout_seconds),
        )
