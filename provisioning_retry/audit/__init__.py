"""
Audit Module
============
Append-only audit trail of every retry attempt.
"""

from .base import AuditSink
from .in_memory import InMemoryAuditSink
from .logging_sink import LoggingAuditSink
from .sql import SqlAuditSink, build_audit_table, DEFAULT_AUDIT_TABLE

__all__ = [
    # Contract
    "AuditSink",
    # Sinks
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "SqlAuditSink",
    # Schema
    "build_audit_table",
    "DEFAULT_AUDIT_TABLE",
]
