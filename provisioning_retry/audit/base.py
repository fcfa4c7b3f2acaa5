"""
Audit Sink Contract
===================
Append-only destination for per-attempt audit records.
"""

from abc import ABC, abstractmethod

from ..models import AuditRecord


class AuditSink(ABC):
    """Append-only audit trail. Implementations must never rewrite records."""

    @abstractmethod
    async def record(self, record: AuditRecord) -> None:
        """Append ``record`` to the trail."""

    async def close(self) -> None:
        return None
