"""
Retry Models
============
Data models for retry jobs, execution outcomes and audit records.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import MalformedJobError


class AuditStatus(str, Enum):
    """Status written to the audit trail for each attempt."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"
    DEAD_LETTERED = "dead_lettered"

    @property
    def is_terminal(self) -> bool:
        return self in (
            AuditStatus.SUCCESS,
            AuditStatus.PERMANENTLY_FAILED,
            AuditStatus.DEAD_LETTERED,
        )


_REQUIRED_FIELDS = ("logical_key", "payload", "attempt", "enqueued_at", "execute_at")


@dataclass
class RetryJob:
    """A pending retry of a failed provisioning operation."""
    logical_key: str
    payload: Any
    attempt: int
    last_error: str
    enqueued_at: int  # Unix timestamp
    execute_at: int  # Unix timestamp, never claimed before this

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> "RetryJob":
        """
        Decode a stored job.

        Raises:
            MalformedJobError: If the text is not a valid job record
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise MalformedJobError(f"Job is not valid JSON: {e}", raw=raw)

        if not isinstance(data, dict):
            raise MalformedJobError("Job record must be an object", raw=raw)

        missing = [name for name in _REQUIRED_FIELDS if name not in data]
        if missing:
            raise MalformedJobError(
                f"Job record missing fields: {', '.join(missing)}", raw=raw
            )

        try:
            job = cls(
                logical_key=str(data["logical_key"]),
                payload=data["payload"],
                attempt=int(data["attempt"]),
                last_error=str(data.get("last_error") or ""),
                enqueued_at=int(data["enqueued_at"]),
                execute_at=int(data["execute_at"]),
            )
        except (TypeError, ValueError) as e:
            raise MalformedJobError(f"Job record has invalid field: {e}", raw=raw)

        if job.attempt < 1:
            raise MalformedJobError(f"Job attempt must be >= 1, got {job.attempt}", raw=raw)
        return job


@dataclass
class MalformedEntry:
    """A stored entry that could not be decoded into a RetryJob."""
    logical_key: str
    raw: Optional[str]
    error: str


@dataclass
class ClaimedBatch:
    """Result of a claim: decoded jobs plus entries that failed to decode."""
    jobs: List[RetryJob] = field(default_factory=list)
    malformed: List[MalformedEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.jobs) + len(self.malformed)


@dataclass
class ExecutionOutcome:
    """Normalized result of one provisioning attempt."""
    success: bool
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @classmethod
    def ok(cls, duration_seconds: float = 0.0) -> "ExecutionOutcome":
        return cls(success=True, duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, error: str, duration_seconds: float = 0.0) -> "ExecutionOutcome":
        return cls(success=False, error=error, duration_seconds=duration_seconds)


@dataclass
class AuditRecord:
    """One append-only audit trail entry."""
    logical_key: str
    attempt: int
    status: AuditStatus
    error: Optional[str]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d["status"] = self.status.value
        d["timestamp"] = self.timestamp.isoformat()
        return d
