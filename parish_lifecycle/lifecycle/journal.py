"""
Operation journal.

Lifecycle operations are sequences of independently committed steps. The
journal runs each step under a time budget, remembers which steps already
committed, and, when a later step fails, leaves a pending-operation marker
an operator can inspect and resolve.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from ..audit_trail.models import UNKNOWN_ACTOR, Actor, utcnow
from ..database import Base
from ..exceptions import (
    LifecycleError,
    NotFoundError,
    OperationFailedError,
    StepTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PENDING_TABLE = "pending_operations"

# Sentinel for "use the journal's own timeout"
_DEFAULT = object()


class PendingOperationDB(Base):  # type: ignore[valid-type,misc]
    """SQLAlchemy model for pending-operation markers."""

    __tablename__ = PENDING_TABLE

    id = Column(String(50), primary_key=True)
    operation = Column(String(50), nullable=False)
    target_table = Column(String(100), nullable=False)
    target_id = Column(String(100), nullable=False)
    completed_steps = Column(JSON, nullable=False)
    failed_step = Column(String(200), nullable=True)
    error = Column(Text, nullable=False)
    performed_by = Column(String(200), nullable=False)
    performed_by_email = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(200), nullable=True)


class PendingOperation(BaseModel):
    """A lifecycle operation that stopped after committing some steps."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    operation: str = Field(..., description="soft_delete, restore, ...")
    target_table: str = Field(..., description="Table the operation targeted")
    target_id: str = Field(..., description="Record or trash entry ID")
    completed_steps: List[str] = Field(default_factory=list)
    failed_step: Optional[str] = Field(None, description="Step that failed")
    error: str = Field(..., description="Error message of the failure")
    performed_by: str = UNKNOWN_ACTOR
    performed_by_email: str = UNKNOWN_ACTOR
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None


class PendingOperationStorage(ABC):
    """Abstract base class for pending-operation storage backends."""

    @abstractmethod
    async def insert(self, operation: PendingOperation) -> None:
        pass

    @abstractmethod
    async def get(self, operation_id: str) -> Optional[PendingOperation]:
        pass

    @abstractmethod
    async def list(self, include_resolved: bool = False) -> List[PendingOperation]:
        """Markers, newest first."""
        pass

    @abstractmethod
    async def mark_resolved(
        self, operation_id: str, resolved_by: str
    ) -> Optional[PendingOperation]:
        """Mark a marker resolved; None when it does not exist."""
        pass


class SQLPendingOperationStorage(PendingOperationStorage):
    """SQL database storage backend for pending-operation markers."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=engine
        )

    @staticmethod
    def _db_to_model(row: PendingOperationDB) -> PendingOperation:
        return PendingOperation(
            id=row.id,
            operation=row.operation,
            target_table=row.target_table,
            target_id=row.target_id,
            completed_steps=list(row.completed_steps or []),
            failed_step=row.failed_step,
            error=row.error,
            performed_by=row.performed_by,
            performed_by_email=row.performed_by_email,
            created_at=row.created_at,
            resolved_at=row.resolved_at,
            resolved_by=row.resolved_by,
        )

    async def insert(self, operation: PendingOperation) -> None:
        with self.SessionLocal() as session:
            session.add(PendingOperationDB(**operation.model_dump()))
            session.commit()

    async def get(self, operation_id: str) -> Optional[PendingOperation]:
        with self.SessionLocal() as session:
            row = session.get(PendingOperationDB, operation_id)
            return self._db_to_model(row) if row else None

    async def list(self, include_resolved: bool = False) -> List[PendingOperation]:
        with self.SessionLocal() as session:
            q = session.query(PendingOperationDB)
            if not include_resolved:
                q = q.filter(PendingOperationDB.resolved_at.is_(None))
            q = q.order_by(PendingOperationDB.created_at.desc())
            return [self._db_to_model(r) for r in q.all()]

    async def mark_resolved(
        self, operation_id: str, resolved_by: str
    ) -> Optional[PendingOperation]:
        with self.SessionLocal() as session:
            row = session.get(PendingOperationDB, operation_id)
            if row is None:
                return None
            row.resolved_at = utcnow()
            row.resolved_by = resolved_by
            session.commit()
            return self._db_to_model(row)


class MemoryPendingOperationStorage(PendingOperationStorage):
    """In-process storage for tests and dry runs."""

    def __init__(self) -> None:
        self._operations: Dict[str, PendingOperation] = {}

    async def insert(self, operation: PendingOperation) -> None:
        self._operations[operation.id] = operation

    async def get(self, operation_id: str) -> Optional[PendingOperation]:
        return self._operations.get(operation_id)

    async def list(self, include_resolved: bool = False) -> List[PendingOperation]:
        ops = [
            op
            for op in self._operations.values()
            if include_resolved or not op.resolved
        ]
        return list(reversed(ops))

    async def mark_resolved(
        self, operation_id: str, resolved_by: str
    ) -> Optional[PendingOperation]:
        op = self._operations.get(operation_id)
        if op is None:
            return None
        op = op.model_copy(update={"resolved_at": utcnow(), "resolved_by": resolved_by})
        self._operations[operation_id] = op
        return op


def get_pending_storage(
    backend: str = "sql", engine: Optional[Engine] = None
) -> PendingOperationStorage:
    """Factory function to get pending-operation storage backend."""
    if backend == "sql":
        if engine is None:
            raise ValueError("SQL pending-operation storage requires an engine")
        return SQLPendingOperationStorage(engine)
    if backend == "memory":
        return MemoryPendingOperationStorage()
    raise ValueError(f"Unsupported pending-operation storage backend: {backend}")


class OperationJournal:
    """
    Step runner for one lifecycle operation.

    Example:
        >>> journal = OperationJournal("soft_delete", "booking_tbl", 7, actor, 30)
        >>> row = await journal.run("read booking_tbl/7", store.read(...), commits=False)
        >>> await journal.run("stash booking_tbl/7", trash.stash(...))
    """

    def __init__(
        self,
        operation: str,
        table: str,
        record_id: Any,
        actor: Actor,
        timeout: Optional[float] = None,
    ):
        self.operation = operation
        self.table = table
        self.record_id = str(record_id)
        self.actor = actor
        self.timeout = timeout
        self.completed: List[str] = []
        self.current_step: Optional[str] = None

    async def run(
        self,
        step: str,
        awaitable: Awaitable[T],
        commits: bool = True,
        timeout: Any = _DEFAULT,
    ) -> T:
        """
        Run one step.

        Args:
            step: Human-readable step name
            awaitable: The step's work
            commits: Whether a successful step leaves committed state behind
            timeout: Per-step override; None disables the budget

        Raises:
            StepTimeoutError: The step exceeded its budget
            OperationFailedError: The step raised a non-lifecycle exception
            LifecycleError: Raised by the step itself, unchanged
        """
        budget = self.timeout if timeout is _DEFAULT else timeout
        self.current_step = step
        try:
            result = await asyncio.wait_for(awaitable, budget)
        except asyncio.TimeoutError as e:
            raise StepTimeoutError(step, budget or 0) from e
        except LifecycleError:
            raise
        except Exception as e:
            logger.debug(f"{self.operation}: step '{step}' raised {e!r}")
            raise OperationFailedError(step, e) from e

        if commits:
            self.completed.append(step)
        self.current_step = None
        return result

    def to_pending(self, error: LifecycleError) -> PendingOperation:
        """Marker describing this journal's state after ``error``."""
        return PendingOperation(
            operation=self.operation,
            target_table=self.table,
            target_id=self.record_id,
            completed_steps=list(error.completed_steps or self.completed),
            failed_step=self.current_step,
            error=str(error),
            performed_by=self.actor.display_name,
            performed_by_email=self.actor.email,
        )


class PendingOperationLog:
    """Records and resolves pending-operation markers."""

    def __init__(self, storage: PendingOperationStorage):
        self.storage = storage

    async def record(self, journal: OperationJournal, error: LifecycleError) -> str:
        """Persist a marker for an interrupted operation and return its ID."""
        marker = journal.to_pending(error)
        await self.storage.insert(marker)
        logger.warning(
            f"Pending {marker.operation} on {marker.target_table}/{marker.target_id}: "
            f"completed {marker.completed_steps}, failed at {marker.failed_step}"
        )
        return marker.id

    async def list(self, include_resolved: bool = False) -> List[PendingOperation]:
        return await self.storage.list(include_resolved)

    async def resolve(
        self, operation_id: str, actor: Optional[Actor] = None
    ) -> PendingOperation:
        """
        Mark a marker resolved after an operator reconciled it.

        Raises:
            NotFoundError: If the marker does not exist
        """
        actor = actor or Actor()
        marker = await self.storage.mark_resolved(operation_id, actor.display_name)
        if marker is None:
            raise NotFoundError(PENDING_TABLE, operation_id)
        logger.info(f"Pending operation {operation_id} resolved by {actor.display_name}")
        return marker
