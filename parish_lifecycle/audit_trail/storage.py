"""
Storage backends for audit trail data.

Backends expose only append and read operations; nothing here updates or
deletes an entry once it is written.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, Index, String, asc, desc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..database import Base
from .models import AuditEntry, AuditQuery


class AuditEntryDB(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for audit entries."""

    __tablename__ = "transaction_logs"

    id = Column(String(50), primary_key=True)
    table_name = Column(String(100), nullable=False, index=True)
    action = Column(String(30), nullable=False, index=True)
    record_id = Column(String(100), nullable=True, index=True)
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    performed_by = Column(String(200), nullable=False)
    performed_by_email = Column(String(200), nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)

    __table_args__ = (Index("idx_transaction_logs_record", table_name, record_id),)


class AuditStorage(ABC):
    """Abstract base class for audit trail storage backends."""

    @abstractmethod
    async def store(self, entry: AuditEntry) -> None:
        """
        Store an audit entry.

        Args:
            entry: Audit entry to store
        """
        pass

    @abstractmethod
    async def query(self, query: AuditQuery) -> List[AuditEntry]:
        """
        Query audit entries.

        Args:
            query: Query parameters

        Returns:
            List of matching audit entries
        """
        pass

    @abstractmethod
    async def get_by_id(self, entry_id: str) -> Optional[AuditEntry]:
        """Get a specific audit entry by ID."""
        pass


class SQLAuditStorage(AuditStorage):
    """SQL database storage backend for the audit trail."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=engine
        )

    @staticmethod
    def _entry_to_db(entry: AuditEntry) -> AuditEntryDB:
        return AuditEntryDB(
            id=entry.id,
            table_name=entry.table_name,
            action=entry.action,
            record_id=entry.record_id,
            old_data=entry.old_data,
            new_data=entry.new_data,
            performed_by=entry.performed_by,
            performed_by_email=entry.performed_by_email,
            timestamp=entry.timestamp,
        )

    @staticmethod
    def _db_to_entry(db_entry: AuditEntryDB) -> AuditEntry:
        return AuditEntry(
            id=db_entry.id,
            table_name=db_entry.table_name,
            action=db_entry.action,
            record_id=db_entry.record_id,
            old_data=db_entry.old_data,
            new_data=db_entry.new_data,
            performed_by=db_entry.performed_by,
            performed_by_email=db_entry.performed_by_email,
            timestamp=db_entry.timestamp,
        )

    async def store(self, entry: AuditEntry) -> None:
        """Store a single audit entry."""
        with self.SessionLocal() as session:
            session.add(self._entry_to_db(entry))
            session.commit()

    async def query(self, query: AuditQuery) -> List[AuditEntry]:
        """Query audit entries with filters."""
        with self.SessionLocal() as session:
            q = session.query(AuditEntryDB)

            if query.table_name:
                q = q.filter(AuditEntryDB.table_name == query.table_name)
            if query.record_id is not None:
                q = q.filter(AuditEntryDB.record_id == query.record_id)
            if query.actions:
                q = q.filter(AuditEntryDB.action.in_(query.actions))
            if query.performed_by_email:
                q = q.filter(
                    AuditEntryDB.performed_by_email == query.performed_by_email
                )

            order = desc if query.newest_first else asc
            # id keeps the order stable for equal timestamps
            q = q.order_by(order(AuditEntryDB.timestamp), order(AuditEntryDB.id))
            q = q.limit(query.limit).offset(query.offset)

            return [self._db_to_entry(r) for r in q.all()]

    async def get_by_id(self, entry_id: str) -> Optional[AuditEntry]:
        """Get a specific audit entry."""
        with self.SessionLocal() as session:
            db_entry = session.get(AuditEntryDB, entry_id)
            return self._db_to_entry(db_entry) if db_entry else None


class MemoryAuditStorage(AuditStorage):
    """In-process storage for tests and dry runs."""

    def __init__(self) -> None:
        self._entries: List[AuditEntry] = []

    async def store(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    async def query(self, query: AuditQuery) -> List[AuditEntry]:
        actions = set(query.actions) if query.actions else None
        # Append order stands in for timestamp order
        entries = [
            e
            for e in self._entries
            if (not query.table_name or e.table_name == query.table_name)
            and (query.record_id is None or e.record_id == query.record_id)
            and (actions is None or e.action in actions)
            and (
                not query.performed_by_email
                or e.performed_by_email == query.performed_by_email
            )
        ]
        if query.newest_first:
            entries.reverse()
        return entries[query.offset : query.offset + query.limit]

    async def get_by_id(self, entry_id: str) -> Optional[AuditEntry]:
        return next((e for e in self._entries if e.id == entry_id), None)


def get_audit_storage(
    backend: str = "sql", engine: Optional[Engine] = None
) -> AuditStorage:
    """
    Factory function to get audit storage backend.

    Args:
        backend: Storage backend type ("sql" or "memory")
        engine: Engine for the SQL backend

    Returns:
        Audit storage instance
    """
    if backend == "sql":
        if engine is None:
            raise ValueError("SQL audit storage requires an engine")
        return SQLAuditStorage(engine)
    if backend == "memory":
        return MemoryAuditStorage()
    raise ValueError(f"Unsupported audit storage backend: {backend}")
