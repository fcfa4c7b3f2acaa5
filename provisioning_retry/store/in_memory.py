"""
In-Memory Job Store
===================
Single-process job store for development and testing.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from ..models import ClaimedBatch, RetryJob
from .base import JobStore, decode_claimed


class InMemoryJobStore(JobStore):
    """
    Dict-backed job store guarded by an asyncio lock.

    For development and testing only.
    Use RedisJobStore when more than one process claims jobs.
    """

    def __init__(self):
        # logical_key -> (score, raw job json)
        self._pending: Dict[str, Tuple[int, Optional[str]]] = {}
        self._in_flight: Dict[str, Tuple[int, str]] = {}
        self._lock = asyncio.Lock()

    async def add(self, job: RetryJob) -> None:
        async with self._lock:
            self._pending[job.logical_key] = (job.execute_at, job.to_json())

    async def add_raw(self, logical_key: str, raw: Optional[str], score: int) -> None:
        """Store an undecoded entry as-is."""
        async with self._lock:
            self._pending[logical_key] = (score, raw)

    async def claim_due(
        self,
        now: int,
        limit: int,
        lease_seconds: int = 0,
    ) -> ClaimedBatch:
        async with self._lock:
            due = sorted(
                (score, key) for key, (score, _) in self._pending.items() if score <= now
            )[:limit]

            entries = []
            for _, key in due:
                _, raw = self._pending.pop(key)
                if raw and lease_seconds > 0:
                    self._in_flight[key] = (now + lease_seconds, raw)
                entries.append((key, raw))

        return decode_claimed(entries)

    async def ack(self, job: RetryJob) -> None:
        async with self._lock:
            held = self._in_flight.get(job.logical_key)
            if held is not None and held[1] == job.to_json():
                del self._in_flight[job.logical_key]

    async def requeue_expired(self, now: int) -> int:
        restored = 0
        async with self._lock:
            expired = [key for key, (until, _) in self._in_flight.items() if until <= now]
            for key in expired:
                _, raw = self._in_flight.pop(key)
                if key not in self._pending:
                    self._pending[key] = (now, raw)
                    restored += 1
        return restored

    async def size(self) -> int:
        return len(self._pending)

    async def in_flight(self) -> int:
        return len(self._in_flight)

    async def peek(self, limit: int = 10) -> List[Tuple[RetryJob, int]]:
        async with self._lock:
            ordered = sorted(self._pending.items(), key=lambda item: item[1][0])[:limit]
        batch = decode_claimed((key, raw) for key, (_, raw) in ordered)
        scores = {key: score for key, (score, _) in ordered}
        return [(job, scores[job.logical_key]) for job in batch.jobs]
