"""
Tests for retry job serialization and audit records.
"""

import json
from datetime import datetime, timezone

import pytest

from provisioning_retry.exceptions import MalformedJobError
from provisioning_retry.models import AuditRecord, AuditStatus, RetryJob


def _job(**overrides):
    fields = dict(
        logical_key="353361647777087498",
        payload={"identity": {"id": "353361647777087498"}},
        attempt=1,
        last_error="Test error",
        enqueued_at=1234567890,
        execute_at=1234567950,
    )
    fields.update(overrides)
    return RetryJob(**fields)


class TestRetryJob:
    """Tests for RetryJob encoding."""

    def test_json_roundtrip(self):
        """Should survive a store round trip unchanged."""
        job = _job()

        assert RetryJob.from_json(job.to_json()) == job

    def test_rejects_invalid_json(self):
        with pytest.raises(MalformedJobError) as exc:
            RetryJob.from_json("{not json")
        assert exc.value.raw == "{not json"

    def test_rejects_non_object(self):
        with pytest.raises(MalformedJobError):
            RetryJob.from_json("[1, 2, 3]")

    def test_rejects_missing_fields(self):
        """Should name the missing fields."""
        raw = json.dumps({"logical_key": "u1", "attempt": 1})

        with pytest.raises(MalformedJobError, match="payload"):
            RetryJob.from_json(raw)

    def test_rejects_bad_attempt(self):
        data = _job().to_dict()
        data["attempt"] = "three"
        with pytest.raises(MalformedJobError):
            RetryJob.from_json(json.dumps(data))

        data["attempt"] = 0
        with pytest.raises(MalformedJobError):
            RetryJob.from_json(json.dumps(data))

    def test_missing_last_error_defaults_to_empty(self):
        data = _job().to_dict()
        del data["last_error"]

        assert RetryJob.from_json(json.dumps(data)).last_error == ""


class TestAuditRecord:
    """Tests for audit records."""

    def test_to_dict(self):
        """Should serialize status and timestamp as strings."""
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        record = AuditRecord("u1", 2, AuditStatus.FAILED, "boom", ts)

        d = record.to_dict()

        assert d["status"] == "failed"
        assert d["timestamp"] == "2026-01-01T00:00:00+00:00"
        assert d["attempt"] == 2

    def test_terminal_statuses(self):
        assert AuditStatus.SUCCESS.is_terminal
        assert AuditStatus.PERMANENTLY_FAILED.is_terminal
        assert AuditStatus.DEAD_LETTERED.is_terminal
        assert not AuditStatus.FAILED.is_terminal
        assert not AuditStatus.PENDING.is_terminal
