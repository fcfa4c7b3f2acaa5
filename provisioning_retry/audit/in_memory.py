"""
In-Memory Audit Sink
====================
Buffered audit trail for development and testing.
"""

from typing import List, Optional

from ..models import AuditRecord, AuditStatus
from .base import AuditSink


class InMemoryAuditSink(AuditSink):
    """Keeps every record in memory until flushed."""

    def __init__(self):
        self._buffer: List[AuditRecord] = []

    async def record(self, record: AuditRecord) -> None:
        self._buffer.append(record)

    @property
    def records(self) -> List[AuditRecord]:
        return list(self._buffer)

    def records_for(
        self,
        logical_key: str,
        status: Optional[AuditStatus] = None,
    ) -> List[AuditRecord]:
        """Records for one logical job, optionally filtered by status."""
        return [
            r for r in self._buffer
            if r.logical_key == logical_key and (status is None or r.status == status)
        ]

    def flush(self) -> List[AuditRecord]:
        """
        Get and clear buffered records.

        Returns:
            List of buffered records
        """
        records = self._buffer
        self._buffer = []
        return records
