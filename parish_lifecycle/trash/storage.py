"""Storage backends for trash entries."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import Column, DateTime, Index, String, Text, desc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..database import Base
from .models import TrashEntry


class TrashEntryDB(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for trash entries."""

    __tablename__ = "deleted_records"

    id = Column(String(50), primary_key=True)
    original_table = Column(String(100), nullable=False, index=True)
    record_id = Column(String(100), nullable=False)
    record_data = Column(Text, nullable=False)
    deleted_by = Column(String(200), nullable=False)
    deleted_by_email = Column(String(200), nullable=False)
    deleted_at = Column(DateTime, nullable=False, index=True)
    deletion_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_deleted_records_origin", original_table, record_id),
    )


class TrashStorage(ABC):
    """Abstract base class for trash storage backends."""

    @abstractmethod
    async def insert(self, entry: TrashEntry) -> None:
        """Store a new trash entry."""
        pass

    @abstractmethod
    async def get(self, entry_id: str) -> Optional[TrashEntry]:
        """Get an entry by ID, or None."""
        pass

    @abstractmethod
    async def find(self, original_table: str, record_id: str) -> List[TrashEntry]:
        """All entries for one original row, newest first."""
        pass

    @abstractmethod
    async def list(self, original_table: Optional[str] = None) -> List[TrashEntry]:
        """Entries, optionally for one table, newest first."""
        pass

    @abstractmethod
    async def delete(self, entry_id: str) -> bool:
        """Delete an entry; False when it did not exist."""
        pass


class SQLTrashStorage(TrashStorage):
    """SQL database storage backend for the trash."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=engine
        )

    @staticmethod
    def _db_to_entry(db_entry: TrashEntryDB) -> TrashEntry:
        return TrashEntry(
            id=db_entry.id,
            original_table=db_entry.original_table,
            record_id=db_entry.record_id,
            record_data=db_entry.record_data,
            deleted_by=db_entry.deleted_by,
            deleted_by_email=db_entry.deleted_by_email,
            deleted_at=db_entry.deleted_at,
            deletion_reason=db_entry.deletion_reason,
        )

    async def insert(self, entry: TrashEntry) -> None:
        with self.SessionLocal() as session:
            session.add(TrashEntryDB(**entry.model_dump()))
            session.commit()

    async def get(self, entry_id: str) -> Optional[TrashEntry]:
        with self.SessionLocal() as session:
            db_entry = session.get(TrashEntryDB, entry_id)
            return self._db_to_entry(db_entry) if db_entry else None

    async def find(self, original_table: str, record_id: str) -> List[TrashEntry]:
        with self.SessionLocal() as session:
            rows = (
                session.query(TrashEntryDB)
                .filter(
                    TrashEntryDB.original_table == original_table,
                    TrashEntryDB.record_id == record_id,
                )
                .order_by(desc(TrashEntryDB.deleted_at))
                .all()
            )
            return [self._db_to_entry(r) for r in rows]

    async def list(self, original_table: Optional[str] = None) -> List[TrashEntry]:
        with self.SessionLocal() as session:
            q = session.query(TrashEntryDB)
            if original_table:
                q = q.filter(TrashEntryDB.original_table == original_table)
            q = q.order_by(desc(TrashEntryDB.deleted_at))
            return [self._db_to_entry(r) for r in q.all()]

    async def delete(self, entry_id: str) -> bool:
        with self.SessionLocal() as session:
            deleted = (
                session.query(TrashEntryDB)
                .filter(TrashEntryDB.id == entry_id)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted > 0


class MemoryTrashStorage(TrashStorage):
    """In-process storage for tests and dry runs."""

    def __init__(self) -> None:
        self._entries: Dict[str, TrashEntry] = {}

    async def insert(self, entry: TrashEntry) -> None:
        self._entries[entry.id] = entry

    async def get(self, entry_id: str) -> Optional[TrashEntry]:
        return self._entries.get(entry_id)

    async def find(self, original_table: str, record_id: str) -> List[TrashEntry]:
        matches = [
            e
            for e in self._entries.values()
            if e.original_table == original_table and e.record_id == record_id
        ]
        return list(reversed(matches))

    async def list(self, original_table: Optional[str] = None) -> List[TrashEntry]:
        entries = [
            e
            for e in self._entries.values()
            if not original_table or e.original_table == original_table
        ]
        return list(reversed(entries))

    async def delete(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None


def get_trash_storage(
    backend: str = "sql", engine: Optional[Engine] = None
) -> TrashStorage:
    """
    Factory function to get trash storage backend.

    Args:
        backend: Storage backend type ("sql" or "memory")
        engine: Engine for the SQL backend

    Returns:
        Trash storage instance
    """
    if backend == "sql":
        if engine is None:
            raise ValueError("SQL trash storage requires an engine")
        return SQLTrashStorage(engine)
    if backend == "memory":
        return MemoryTrashStorage()
    raise ValueError(f"Unsupported trash storage backend: {backend}")
