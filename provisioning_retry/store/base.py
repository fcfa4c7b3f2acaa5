"""
Job Store Contract
==================
Interface shared by all job store backends.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple, Union

from ..exceptions import MalformedJobError
from ..models import ClaimedBatch, MalformedEntry, RetryJob


class JobStore(ABC):
    """
    Ordered store of pending retry jobs, scored by ``execute_at``.

    Jobs are keyed by ``logical_key``: adding a job replaces any pending job
    for the same key. ``claim_due`` must be atomic, so a due job is handed to
    exactly one caller.
    """

    @abstractmethod
    async def add(self, job: RetryJob) -> None:
        """Write ``job`` scored by its ``execute_at``."""

    @abstractmethod
    async def claim_due(
        self,
        now: int,
        limit: int,
        lease_seconds: int = 0,
    ) -> ClaimedBatch:
        """
        Atomically remove and return up to ``limit`` jobs with score <= now.

        When ``lease_seconds`` is positive the claimed jobs are held in flight
        until ``ack`` is called or the lease expires.
        """

    @abstractmethod
    async def ack(self, job: RetryJob) -> None:
        """
        Release the in-flight lease for a handled job.

        A lease is released only while it still holds this exact job, so a
        stale ack never frees a newer claim for the same key.
        """

    @abstractmethod
    async def requeue_expired(self, now: int) -> int:
        """Return jobs whose lease expired to the pending set."""

    @abstractmethod
    async def size(self) -> int:
        """Number of pending jobs."""

    @abstractmethod
    async def in_flight(self) -> int:
        """Number of claimed jobs still holding a lease."""

    @abstractmethod
    async def peek(self, limit: int = 10) -> List[Tuple[RetryJob, int]]:
        """Earliest pending jobs with their scores, without claiming them."""

    async def ping(self) -> bool:
        return True


def decode_claimed(entries: Iterable[Tuple[str, Union[bytes, str, None]]]) -> ClaimedBatch:
    """
    Split raw ``(logical_key, raw_json)`` pairs into jobs and poison entries.

    Bodies may arrive as bytes; each one is decoded on its own so a single
    undecodable body cannot take the rest of the batch with it.
    """
    batch = ClaimedBatch()
    for logical_key, raw in entries:
        if not raw:
            batch.malformed.append(
                MalformedEntry(logical_key=logical_key, raw=None, error="Job body missing")
            )
            continue
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                batch.malformed.append(
                    MalformedEntry(
                        logical_key=logical_key,
                        raw=raw.decode("utf-8", errors="replace"),
                        error=f"Job body is not valid UTF-8: {e}",
                    )
                )
                continue
        try:
            batch.jobs.append(RetryJob.from_json(raw))
        except MalformedJobError as e:
            batch.malformed.append(
                MalformedEntry(logical_key=logical_key, raw=raw, error=str(e))
            )
    return batch
