"""
Tests for the retry worker.
"""

import asyncio

import pytest

from conftest import T0, FakeClock, ScriptedOperation
from provisioning_retry.config import SchedulerConfig
from provisioning_retry.enqueuer import RetryEnqueuer
from provisioning_retry.exceptions import StoreError
from provisioning_retry.executor import ExecutorAdapter
from provisioning_retry.metrics import RETRY_REGISTRY
from provisioning_retry.models import AuditStatus
from provisioning_retry.outcome import OutcomeHandler
from provisioning_retry.store import InMemoryJobStore
from provisioning_retry.worker import RetryWorker


def _worker(store, handler, operation, clock, timeout=5.0, **config):
    config.setdefault("poll_interval_seconds", 0.01)
    config.setdefault("shutdown_timeout_seconds", 2.0)
    return RetryWorker(
        store,
        ExecutorAdapter(operation, timeout_seconds=timeout),
        handler,
        SchedulerConfig(**config),
        clock=clock,
    )


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class FlakyStore(InMemoryJobStore):
    """Store whose first claims fail as if Redis were unreachable."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.claims = 0

    async def claim_due(self, now, limit, lease_seconds=0):
        self.claims += 1
        if self.claims <= self.failures:
            raise StoreError("Connection refused")
        return await super().claim_due(now, limit, lease_seconds)


class TestRetryLifecycle:
    """End-to-end retry scenarios driven one tick at a time."""

    @pytest.mark.asyncio
    async def test_failure_reenqueued_with_next_backoff(self, store, enqueuer, handler, clock, payload):
        """A failed retry should come back as attempt 2 due five minutes after the claim."""
        operation = ScriptedOperation(failures=10)
        worker = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", payload, 0, "initial failure")

        clock.advance(60)
        claim_time = clock()
        assert await worker.run_once() == 1

        [(job, score)] = await store.peek()
        assert job.attempt == 2
        assert score == claim_time + 300

    @pytest.mark.asyncio
    async def test_attempt_cap(self, store, enqueuer, handler, audit, clock, payload):
        """After max_attempts failed retries nothing is enqueued and one permanent record exists."""
        operation = ScriptedOperation(failures=10)
        worker = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", payload, 0, "initial failure")

        for delay in (60, 300, 1800):
            clock.advance(delay - 1)
            assert await worker.run_once() == 0
            clock.advance(1)
            assert await worker.run_once() == 1

        assert len(operation.calls) == 3
        assert await store.size() == 0

        clock.advance(10_000)
        assert await worker.run_once() == 0

        permanent = audit.records_for("user-1", AuditStatus.PERMANENTLY_FAILED)
        assert len(permanent) == 1
        assert permanent[0].attempt == 3
        assert [r.status for r in audit.records_for("user-1")] == [
            AuditStatus.FAILED,
            AuditStatus.FAILED,
            AuditStatus.PERMANENTLY_FAILED,
        ]

    @pytest.mark.asyncio
    async def test_success_closes_job(self, store, enqueuer, handler, audit, clock, payload):
        """A successful retry should not re-enqueue and should write one success record."""
        operation = ScriptedOperation(failures=0)
        worker = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", payload, 0, "initial failure")

        clock.advance(60)
        await worker.run_once()

        assert operation.calls == [payload]
        assert await store.size() == 0
        assert len(audit.records_for("user-1", AuditStatus.SUCCESS)) == 1

    @pytest.mark.asyncio
    async def test_recovers_on_second_retry(self, store, enqueuer, handler, audit, clock):
        """Should succeed on the second retry after one failure."""
        operation = ScriptedOperation(failures=1)
        worker = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", {}, 0, "initial failure")

        clock.advance(60)
        await worker.run_once()
        clock.advance(300)
        await worker.run_once()

        assert [r.status for r in audit.records] == [AuditStatus.FAILED, AuditStatus.SUCCESS]
        assert await store.size() == 0

    @pytest.mark.asyncio
    async def test_two_pollers_execute_once(self, store, enqueuer, handler, clock):
        """Two workers ticking at the same moment should execute one due job once."""
        operation = ScriptedOperation(failures=0)
        first = _worker(store, handler, operation, clock)
        second = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", {}, 0, "initial failure")
        clock.advance(60)

        counts = await asyncio.gather(first.run_once(), second.run_once())

        assert sorted(counts) == [0, 1]
        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_batch_size_bounds_tick(self, store, enqueuer, handler, clock):
        """Should claim at most batch_size jobs per tick."""
        operation = ScriptedOperation(failures=0)
        worker = _worker(store, handler, operation, clock, batch_size=2)
        for i in range(5):
            await enqueuer.enqueue(f"user-{i}", {}, 0, "boom")
        clock.advance(60)

        assert await worker.run_once() == 2
        assert await store.size() == 3

    @pytest.mark.asyncio
    async def test_malformed_job_dead_lettered(self, store, handler, audit, clock):
        """A poison entry should be audited once and never executed."""
        operation = ScriptedOperation()
        worker = _worker(store, handler, operation, clock)
        await store.add_raw("user-bad", "{definitely not json", T0)

        await worker.run_once()
        await worker.run_once()

        assert operation.calls == []
        assert [r.status for r in audit.records] == [AuditStatus.DEAD_LETTERED]
        assert await store.size() == 0

    @pytest.mark.asyncio
    async def test_one_failing_handler_does_not_sink_batch(self, store, enqueuer, audit, clock):
        """Should keep processing the batch when one job's handling raises."""
        class ExplodingHandler(OutcomeHandler):
            async def handle(self, job, outcome):
                if job.logical_key == "user-0":
                    raise RuntimeError("handler bug")
                return await super().handle(job, outcome)

        handler = ExplodingHandler(enqueuer, audit, clock=clock)
        worker = _worker(store, handler, ScriptedOperation(), clock)
        await enqueuer.enqueue("user-0", {}, 0, "boom")
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)

        assert await worker.run_once() == 2
        assert [r.logical_key for r in audit.records] == ["user-1"]

    @pytest.mark.asyncio
    async def test_execution_timeout_is_retryable(self, store, enqueuer, handler, audit, clock):
        """Should treat an execution timeout as a retryable failure."""
        async def hang(payload):
            await asyncio.sleep(10)

        worker = _worker(store, handler, hang, clock, timeout=0.01)
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)

        await worker.run_once()

        [record] = audit.records
        assert record.status == AuditStatus.FAILED
        assert "timed out" in record.error
        [(job, _)] = await store.peek()
        assert job.attempt == 2


class TestRetryLeases:
    """Tests for at-least-once delivery with leases."""

    @pytest.mark.asyncio
    async def test_handled_job_is_acked(self, store, enqueuer, handler, clock):
        """Should release the lease once the outcome is handled."""
        worker = _worker(store, handler, ScriptedOperation(), clock, visibility_timeout_seconds=120)
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)

        await worker.run_once()

        assert await store.in_flight() == 0

    @pytest.mark.asyncio
    async def test_crashed_job_is_reclaimed(self, store, enqueuer, audit, clock):
        """A job whose handling crashed should run again once its lease expires."""
        calls = []

        class CrashOnce(OutcomeHandler):
            async def handle(self, job, outcome):
                calls.append(job.attempt)
                if len(calls) == 1:
                    raise RuntimeError("worker died mid-job")
                return await super().handle(job, outcome)

        handler = CrashOnce(enqueuer, audit, clock=clock)
        worker = _worker(store, handler, ScriptedOperation(), clock, visibility_timeout_seconds=120)
        await enqueuer.enqueue("user-1", {}, 0, "boom")

        clock.advance(60)
        await worker.run_once()
        assert await store.in_flight() == 1

        clock.advance(120)
        await worker.run_once()

        assert calls == [1, 1]
        assert [r.status for r in audit.records] == [AuditStatus.SUCCESS]
        assert await store.in_flight() == 0


class TestWorkerLoop:
    """Tests for the background loop lifecycle."""

    @pytest.mark.asyncio
    async def test_store_outage_does_not_stop_loop(self, audit):
        """Tick errors should be logged and the loop should keep ticking."""
        clock = FakeClock()
        store = FlakyStore(failures=2)
        enqueuer = RetryEnqueuer(store, clock=clock)
        handler = OutcomeHandler(enqueuer, audit, clock=clock)
        operation = ScriptedOperation()
        worker = _worker(store, handler, operation, clock)
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)
        before = RETRY_REGISTRY.get_sample_value("provisioning_retry_tick_errors_total") or 0

        worker.start()
        await _wait_for(lambda: len(operation.calls) == 1)
        await worker.stop()

        assert store.claims >= 3
        after = RETRY_REGISTRY.get_sample_value("provisioning_retry_tick_errors_total")
        assert after == before + 2
        assert not worker.running

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_job(self, store, enqueuer, handler, audit, clock):
        """Stopping should let the current tick's executions finish."""
        started = asyncio.Event()

        async def slow(payload):
            started.set()
            await asyncio.sleep(0.05)

        worker = _worker(store, handler, slow, clock)
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)

        worker.start()
        await asyncio.wait_for(started.wait(), timeout=2.0)
        await worker.stop()

        assert [r.status for r in audit.records] == [AuditStatus.SUCCESS]

    @pytest.mark.asyncio
    async def test_stop_cancels_after_timeout(self, store, enqueuer, handler, audit, clock):
        """Should cancel a tick that outlives the shutdown timeout."""
        started = asyncio.Event()

        async def stuck(payload):
            started.set()
            await asyncio.sleep(10)

        worker = _worker(store, handler, stuck, clock)
        await enqueuer.enqueue("user-1", {}, 0, "boom")
        clock.advance(60)

        worker.start()
        await asyncio.wait_for(started.wait(), timeout=2.0)
        await worker.stop(timeout=0.05)

        assert not worker.running
        assert audit.records == []

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, store, handler, clock):
        """Should refuse to start a running worker."""
        worker = _worker(store, handler, ScriptedOperation(), clock)

        worker.start()
        try:
            with pytest.raises(RuntimeError):
                worker.start()
        finally:
            await worker.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, store, handler, clock):
        """Should run again after being stopped."""
        worker = _worker(store, handler, ScriptedOperation(), clock)

        worker.start()
        await worker.stop()
        worker.start()
        await _wait_for(lambda: worker.ticks >= 2)
        await worker.stop()

        assert not worker.running
