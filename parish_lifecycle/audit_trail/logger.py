"""
Append-only audit log.

Provides the AuditLog class the lifecycle coordinator writes every mutation
through.
"""

import logging
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from ..exceptions import AuditWriteError
from .models import Actor, AuditAction, AuditEntry, AuditQuery
from .storage import AuditStorage

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only writer and reader of audit entries.

    Entries are never updated or deleted through this class. Reads are
    plain finite queries: calling ``list`` again re-runs the query rather
    than continuing a subscription.

    Example:
        >>> audit = AuditLog(SQLAuditStorage(engine))
        >>> await audit.append(
        ...     AuditAction.DELETE,
        ...     "booking_tbl",
        ...     100,
        ...     old_data=row,
        ...     new_data=None,
        ...     actor=Actor(display_name="Ana Cruz", email="ana@parish.ph"),
        ... )
    """

    def __init__(self, storage: AuditStorage, default_limit: int = 100):
        self.storage = storage
        self.default_limit = default_limit

    async def append(
        self,
        action: Union[str, AuditAction],
        table: str,
        record_id: Any,
        old_data: Optional[Dict[str, Any]] = None,
        new_data: Optional[Dict[str, Any]] = None,
        actor: Union[Actor, Dict[str, Any], None] = None,
    ) -> AuditEntry:
        """
        Append an audit entry.

        Args:
            action: Mutation performed
            table: Table of the mutated row
            record_id: ID of the mutated row
            old_data: Row state before the mutation
            new_data: Row state after the mutation
            actor: Who performed the mutation

        Returns:
            The stored entry

        Raises:
            AuditWriteError: If the entry could not be stored
        """
        actor = Actor.coerce(actor)
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            table_name=table,
            action=AuditAction(action),
            record_id=record_id,
            old_data=old_data,
            new_data=new_data,
            performed_by=actor.display_name,
            performed_by_email=actor.email,
        )

        try:
            await self.storage.store(entry)
        except Exception as e:
            logger.error(
                f"Failed to write {entry.action} audit entry for {table}/{record_id}: {e}"
            )
            raise AuditWriteError(
                f"Audit entry for {entry.action} on {table}/{record_id} "
                f"could not be written: {e}",
                table=table,
                record_id=record_id,
            ) from e

        return entry

    async def list(
        self,
        limit: Optional[int] = None,
        newest_first: bool = True,
        table: Optional[str] = None,
        actions: Optional[List[AuditAction]] = None,
    ) -> List[AuditEntry]:
        """
        List audit entries ordered by time.

        Args:
            limit: Maximum entries (defaults to the configured list limit)
            newest_first: Sort by timestamp descending
            table: Optional table filter
            actions: Optional action filter

        Returns:
            List of entries
        """
        query = AuditQuery(
            table_name=table,
            actions=actions,
            limit=limit or self.default_limit,
            newest_first=newest_first,
        )
        return await self.storage.query(query)

    async def iter_entries(
        self, page_size: int = 100, newest_first: bool = True
    ) -> AsyncIterator[AuditEntry]:
        """Lazily page through the whole trail."""
        offset = 0
        while True:
            page = await self.storage.query(
                AuditQuery(limit=page_size, offset=offset, newest_first=newest_first)
            )
            for entry in page:
                yield entry
            if len(page) < page_size:
                return
            offset += page_size

    async def history(self, table: str, record_id: Any) -> List[AuditEntry]:
        """Chronological entries for one record."""
        return await self.storage.query(
            AuditQuery(
                table_name=table,
                record_id=record_id,
                limit=1000,
                newest_first=False,
            )
        )
