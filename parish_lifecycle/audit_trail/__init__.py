"""
Audit Trail Module - append-only mutation log.

Records every create, update, delete, cascade delete and restore performed
through the lifecycle coordinator, in the ``transaction_logs`` shape the
administrative console reads.
"""

from .logger import AuditLog
from .models import Actor, AuditAction, AuditEntry, AuditQuery
from .storage import (
    AuditStorage,
    MemoryAuditStorage,
    SQLAuditStorage,
    get_audit_storage,
)

__all__ = [
    # Log
    "AuditLog",
    # Models
    "Actor",
    "AuditAction",
    "AuditEntry",
    "AuditQuery",
    # Storage
    "AuditStorage",
    "SQLAuditStorage",
    "MemoryAuditStorage",
    "get_audit_storage",
]
