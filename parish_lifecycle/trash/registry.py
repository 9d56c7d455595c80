"""
Trash registry - CRUD over staged snapshots of soft-deleted rows.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from ..audit_trail.models import Actor
from ..exceptions import InvalidReasonError, NotFoundError
from .models import TrashEntry, serialize_snapshot
from .storage import TrashStorage

logger = logging.getLogger(__name__)

TRASH_TABLE = "deleted_records"


class TrashRegistry:
    """Creates, looks up and removes trash entries.

    Entries are only ever created by a soft delete and only removed after
    a successful restore or purge.
    """

    def __init__(self, storage: TrashStorage, reason_min_length: int = 0):
        self.storage = storage
        self.reason_min_length = reason_min_length

    def validate_reason(self, reason: Optional[str]) -> None:
        """Reject a deletion reason shorter than the configured minimum."""
        if reason is not None and len(reason.strip()) < self.reason_min_length:
            raise InvalidReasonError(self.reason_min_length)

    async def stash(
        self,
        table: str,
        record_id: Any,
        snapshot: Dict[str, Any],
        actor: Union[Actor, Dict[str, Any], None] = None,
        reason: Optional[str] = None,
    ) -> TrashEntry:
        """
        Stage a row snapshot.

        Args:
            table: Table the row lives in
            record_id: ID of the row
            snapshot: Complete row state
            actor: Who is deleting the row
            reason: Optional deletion reason

        Returns:
            The new trash entry
        """
        self.validate_reason(reason)

        actor = Actor.coerce(actor)
        entry = TrashEntry(
            id=str(uuid.uuid4()),
            original_table=table,
            record_id=record_id,
            record_data=serialize_snapshot(snapshot),
            deleted_by=actor.display_name,
            deleted_by_email=actor.email,
            deletion_reason=reason.strip() if reason else None,
        )
        await self.storage.insert(entry)

        return entry

    async def get(self, entry_id: str) -> TrashEntry:
        """
        Get a trash entry.

        Raises:
            NotFoundError: If the entry does not exist
        """
        entry = await self.storage.get(entry_id)
        if entry is None:
            raise NotFoundError(TRASH_TABLE, entry_id)
        return entry

    async def find(self, original_table: str, record_id: Any) -> Optional[TrashEntry]:
        """Newest entry for an original row, or None."""
        matches = await self.storage.find(original_table, str(record_id))
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} trash entries exist for {original_table}/{record_id}; "
                "using the newest"
            )
        return matches[0] if matches else None

    async def list_by_original_table(
        self, table: Optional[str] = None
    ) -> List[TrashEntry]:
        """Entries, newest first, optionally for one table."""
        return await self.storage.list(table)

    async def remove(self, entry_id: str) -> None:
        """
        Remove a trash entry.

        Raises:
            NotFoundError: If the entry does not exist
        """
        if not await self.storage.delete(entry_id):
            raise NotFoundError(TRASH_TABLE, entry_id)
