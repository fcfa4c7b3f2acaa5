"""
Logging Audit Sink
==================
Writes audit records as structured log events.
"""

import structlog

from ..models import AuditRecord
from .base import AuditSink


class LoggingAuditSink(AuditSink):
    """
    Emits each record as an ``audit.provisioning_retry`` log event.

    Used when no audit database is configured; log shipping keeps the trail.
    """

    def __init__(self, logger_name: str = "provisioning_retry.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def record(self, record: AuditRecord) -> None:
        self._logger.info("audit.provisioning_retry", **record.to_dict())
