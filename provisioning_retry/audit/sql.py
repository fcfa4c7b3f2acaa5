"""
SQL Audit Sink
==============
Appends audit records to a relational table through an async SQLAlchemy engine.
"""

from typing import Optional

import structlog
from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    insert,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..exceptions import RetrySchedulerError
from ..models import AuditRecord
from .base import AuditSink

logger = structlog.get_logger(__name__)

DEFAULT_AUDIT_TABLE = "provisioning_retry_log"


def build_audit_table(name: str = DEFAULT_AUDIT_TABLE, schema: Optional[str] = None) -> Table:
    """Table definition for the audit trail."""
    return Table(
        name,
        MetaData(schema=schema),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("logical_key", String(255), nullable=False, index=True),
        Column("action", String(50), nullable=False, default="create"),
        Column("status", String(50), nullable=False, index=True),
        Column("error_message", Text, nullable=True),
        Column("attempt_count", Integer, nullable=False),
        Column("recorded_at", DateTime(timezone=True), nullable=False),
        Column("created_at", DateTime(timezone=True), server_default=func.now()),
    )


class SqlAuditSink(AuditSink):
    """
    Audit sink writing one row per attempt.

    Example:
        engine = create_async_engine("postgresql+asyncpg://...")
        sink = SqlAuditSink(engine, table_name="provisioning_retry_log", schema="email")
        await sink.create_table()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        table_name: str = DEFAULT_AUDIT_TABLE,
        schema: Optional[str] = None,
        action: str = "create",
    ):
        self.engine = engine
        self.action = action
        self.table = build_audit_table(table_name, schema)

    async def create_table(self) -> None:
        """Create the audit table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(self.table.metadata.create_all)

    async def record(self, record: AuditRecord) -> None:
        statement = insert(self.table).values(
            logical_key=record.logical_key,
            action=self.action,
            status=record.status.value,
            error_message=record.error,
            attempt_count=record.attempt,
            recorded_at=record.timestamp,
        )
        try:
            async with self.engine.begin() as conn:
                await conn.execute(statement)
        except SQLAlchemyError as e:
            logger.error(
                "audit_write_failed",
                logical_key=record.logical_key,
                status=record.status.value,
                error=str(e),
            )
            raise RetrySchedulerError(f"Failed to write audit record: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
