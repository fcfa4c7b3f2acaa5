"""
Job Store Module
================
Due-time ordered storage for pending retry jobs.
"""

from .base import JobStore, decode_claimed
from .in_memory import InMemoryJobStore
from .redis_store import (
    RedisJobStore,
    DEFAULT_QUEUE_KEY,
    ENQUEUE_SCRIPT,
    CLAIM_DUE_SCRIPT,
    ACK_SCRIPT,
    REQUEUE_EXPIRED_SCRIPT,
)

__all__ = [
    # Contract
    "JobStore",
    "decode_claimed",
    # Stores
    "InMemoryJobStore",
    "RedisJobStore",
    "DEFAULT_QUEUE_KEY",
    # Scripts
    "ENQUEUE_SCRIPT",
    "CLAIM_DUE_SCRIPT",
    "ACK_SCRIPT",
    "REQUEUE_EXPIRED_SCRIPT",
]
