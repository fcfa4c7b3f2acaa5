"""
Shared fixtures for the retry scheduler tests.
"""

import pytest

from provisioning_retry.audit import InMemoryAuditSink
from provisioning_retry.config import SchedulerConfig
from provisioning_retry.enqueuer import RetryEnqueuer
from provisioning_retry.outcome import OutcomeHandler
from provisioning_retry.store import InMemoryJobStore

T0 = 1_700_000_000


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedOperation:
    """Provisioning operation that fails a set number of times, then succeeds."""

    def __init__(self, failures: int = 0, error: str = "stalwart unavailable"):
        self.failures = failures
        self.error = error
        self.calls = []

    async def __call__(self, payload):
        self.calls.append(payload)
        if len(self.calls) <= self.failures:
            raise RuntimeError(self.error)
        return {"ok": True}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def audit():
    return InMemoryAuditSink()


@pytest.fixture
def config():
    return SchedulerConfig(poll_interval_seconds=0.01, shutdown_timeout_seconds=2.0)


@pytest.fixture
def enqueuer(store, clock):
    return RetryEnqueuer(store, max_attempts=3, clock=clock)


@pytest.fixture
def handler(enqueuer, audit, clock):
    return OutcomeHandler(enqueuer, audit, clock=clock)


@pytest.fixture
def payload():
    return {
        "identity": {
            "id": "353361647777087498",
            "traits": {"email": "test@arack.io", "first_name": "Test", "last_name": "User"},
        }
    }
