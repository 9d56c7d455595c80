"""
Lifecycle coordinator.

Orchestrates soft delete, restore and purge across the record store, the
object store, the audit log and the trash registry, in the order the
parish console depends on:

- soft delete: cascaded document first, then snapshot, delete, audit
- restore: cascaded document first, booking foreign key rewritten to it
- purge: cascaded document entry first, then attachments, then the entry

Steps are committed one at a time and never rolled back. A failure after
a committed step leaves a pending-operation marker and an error whose
``completed_steps`` lists what already happened.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.engine import Engine

from ..audit_trail import AuditAction, AuditLog, get_audit_storage
from ..audit_trail.models import Actor
from ..config import LifecycleConfig, StorageBackend, get_config
from ..database import make_engine
from ..exceptions import (
    CascadeResolutionError,
    LifecycleError,
    NotFoundError,
    RequiredFieldsError,
)
from ..stores import HTTPObjectStore, LocalObjectStore, ObjectStore, RecordStore
from ..stores.records import SQLRecordStore
from ..trash import PurgeResult, StorageRef, TrashEntry, TrashRegistry, get_trash_storage
from ..trash.registry import TRASH_TABLE
from .descriptors import TableRegistry, default_registry
from .journal import (
    MemoryPendingOperationStorage,
    OperationJournal,
    PendingOperation,
    PendingOperationLog,
    get_pending_storage,
)
from .linker import SacramentDocumentLinker

logger = logging.getLogger(__name__)

ActorLike = Union[Actor, Dict[str, Any], None]


class LifecycleCoordinator:
    """
    Soft delete, restore and purge for the parish tables.

    Example:
        >>> coordinator = LifecycleCoordinator.from_config()
        >>> entry = await coordinator.soft_delete("booking_tbl", 100, actor)
        >>> doc = await coordinator.find_trash("booking_wedding_docu_tbl", 42)
        >>> booking = await coordinator.restore_cascade(entry.id, actor)
    """

    def __init__(
        self,
        records: RecordStore,
        objects: ObjectStore,
        audit: AuditLog,
        trash: TrashRegistry,
        linker: Optional[SacramentDocumentLinker] = None,
        registry: Optional[TableRegistry] = None,
        pending: Optional[PendingOperationLog] = None,
        config: Optional[LifecycleConfig] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            records: Relational row store
            objects: Attachment object store
            audit: Audit log
            trash: Trash registry
            linker: Sacrament linker; built from config when omitted
            registry: Table descriptors; the parish schema when omitted
            pending: Pending-operation log; in-memory when omitted
            config: Lifecycle configuration; the global one when omitted
        """
        self.config = config or get_config()
        self.records = records
        self.objects = objects
        self.audit = audit
        self.trash = trash
        self.registry = registry or default_registry(
            self.config.default_attachment_bucket
        )
        self.linker = linker or SacramentDocumentLinker(
            registry=self.registry,
            public_url_base=self.config.storage_public_url_base,
            default_bucket=self.config.default_attachment_bucket,
            scan_untyped=self.config.scan_untyped_attachments,
        )
        self.pending = pending or PendingOperationLog(MemoryPendingOperationStorage())

    @classmethod
    def from_config(
        cls,
        config: Optional[LifecycleConfig] = None,
        engine: Optional[Engine] = None,
        object_store: Optional[ObjectStore] = None,
    ) -> "LifecycleCoordinator":
        """Wire a coordinator from configuration."""
        config = config or get_config()
        engine = engine or make_engine(config.database_url)
        backend = StorageBackend(config.storage_backend).value

        if object_store is None:
            if config.storage_api_url:
                object_store = HTTPObjectStore(
                    config.storage_api_url,
                    config.storage_api_key or "",
                    public_url_base=config.storage_public_url_base,
                    timeout=config.step_timeout_seconds,
                )
            else:
                object_store = LocalObjectStore(
                    config.storage_root, config.storage_public_url_base
                )

        return cls(
            records=SQLRecordStore(engine),
            objects=object_store,
            audit=AuditLog(get_audit_storage(backend, engine), config.audit_list_limit),
            trash=TrashRegistry(
                get_trash_storage(backend, engine), config.deletion_reason_min_length
            ),
            pending=PendingOperationLog(get_pending_storage(backend, engine)),
            config=config,
        )

    def _journal(
        self, operation: str, table: str, record_id: Any, actor: Actor
    ) -> OperationJournal:
        return OperationJournal(
            operation, table, record_id, actor, self.config.step_timeout_seconds
        )

    async def _abort(self, journal: OperationJournal, error: LifecycleError) -> None:
        """Record a pending marker when ``error`` interrupts committed work."""
        if not journal.completed:
            # Nothing of this operation committed; a nested marker, if any, stands
            return

        error.completed_steps = journal.completed + error.completed_steps
        try:
            error.pending_operation_id = await self.pending.record(journal, error)
        except Exception as e:
            logger.error(
                f"Could not record pending {journal.operation} on "
                f"{journal.table}/{journal.record_id}: {e}"
            )
        logger.error(
            f"{journal.operation} on {journal.table}/{journal.record_id} stopped "
            f"after {error.completed_steps}: {error}"
        )

    async def _exists(self, table: str, record_id: Any) -> bool:
        try:
            await self.records.read(table, record_id)
        except NotFoundError:
            return False
        return True

    # Soft delete

    async def soft_delete(
        self,
        table: str,
        record_id: Any,
        actor: ActorLike = None,
        reason: Optional[str] = None,
    ) -> TrashEntry:
        """
        Move a row into the trash.

        Args:
            table: Table the row lives in
            record_id: ID of the row
            actor: Who is deleting the row
            reason: Optional deletion reason

        Returns:
            The trash entry of the row itself

        Raises:
            NotFoundError: The row does not exist; nothing is written
            CascadeResolutionError: A booking's document linkage is inconsistent
            AuditWriteError: The row is already trashed but unaudited
        """
        actor = Actor.coerce(actor)
        self.trash.validate_reason(reason)

        entry = await self._soft_delete(table, record_id, actor, reason, AuditAction.DELETE)
        logger.info(
            f"Soft deleted {table}/{record_id} as trash entry {entry.id} "
            f"by {actor.display_name}"
        )
        return entry

    async def _soft_delete(
        self,
        table: str,
        record_id: Any,
        actor: Actor,
        reason: Optional[str],
        action: AuditAction,
    ) -> TrashEntry:
        journal = self._journal("soft_delete", table, record_id, actor)
        try:
            row = await journal.run(
                f"read {table}/{record_id}",
                self.records.read(table, record_id),
                commits=False,
            )

            if self.config.cascade_delete_enabled:
                for child in self.registry.get(table).children(row):
                    await journal.run(
                        f"cascade {child.table}/{child.record_id}",
                        self._soft_delete(
                            child.table,
                            child.record_id,
                            actor,
                            reason,
                            AuditAction.CASCADE_DELETE,
                        ),
                        timeout=None,
                    )

            entry = await journal.run(
                f"stash {table}/{record_id}",
                self.trash.stash(table, record_id, row, actor, reason),
            )
            try:
                await journal.run(
                    f"delete {table}/{record_id}", self.records.delete(table, record_id)
                )
            except NotFoundError:
                logger.warning(
                    f"{table}/{record_id} was removed concurrently; trash entry "
                    f"{entry.id} is a duplicate"
                )
                raise
            await journal.run(
                f"audit {action.value} {table}/{record_id}",
                self.audit.append(action, table, record_id, old_data=row, actor=actor),
            )
        except LifecycleError as e:
            if e.table is None:
                e.table = table
                e.record_id = str(record_id)
            await self._abort(journal, e)
            raise

        if action == AuditAction.CASCADE_DELETE:
            logger.info(f"Cascaded soft delete to {table}/{record_id}")
        return entry

    # Restore

    async def restore(
        self,
        entry_id: str,
        actor: ActorLike = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Reinsert a trashed row under a new identity.

        Computed display fields and the old primary key are dropped from the
        snapshot. A booking whose document was restored separately needs the
        document's new ID in ``overrides``; :meth:`restore_cascade` does this.

        Args:
            entry_id: Trash entry ID
            actor: Who is restoring the row
            overrides: Field values applied over the snapshot

        Returns:
            The restored row, including its new ID
        """
        actor = Actor.coerce(actor)
        journal = self._journal("restore", TRASH_TABLE, entry_id, actor)
        try:
            entry = await journal.run(
                f"fetch trash entry {entry_id}", self.trash.get(entry_id), commits=False
            )
            table = entry.original_table
            snapshot = entry.snapshot
            fields = self.registry.get(table).clean_snapshot(
                snapshot, drop_primary_key=True
            )
            fields.update(overrides or {})

            new_id = await journal.run(
                f"insert {table}", self.records.create(table, fields)
            )
            row = await journal.run(
                f"read {table}/{new_id}", self.records.read(table, new_id), commits=False
            )
            await journal.run(
                f"remove trash entry {entry_id}", self.trash.remove(entry_id)
            )
            await journal.run(
                f"audit RESTORE {table}/{new_id}",
                self.audit.append(
                    AuditAction.RESTORE,
                    table,
                    new_id,
                    old_data=snapshot,
                    new_data=row,
                    actor=actor,
                ),
            )
        except LifecycleError as e:
            await self._abort(journal, e)
            raise

        logger.info(
            f"Restored {table}/{entry.record_id} from trash as {table}/{new_id} "
            f"by {actor.display_name}"
        )
        return row

    async def restore_cascade(
        self, entry_id: str, actor: ActorLike = None
    ) -> Dict[str, Any]:
        """
        Restore a trashed row together with the document it owns.

        The document is restored first and the row's foreign key is rewritten
        to the document's new ID. A document that is still live is left as
        is.

        Raises:
            CascadeResolutionError: The document is neither trashed nor live
        """
        actor = Actor.coerce(actor)
        journal = self._journal("restore_cascade", TRASH_TABLE, entry_id, actor)
        try:
            entry = await journal.run(
                f"fetch trash entry {entry_id}", self.trash.get(entry_id), commits=False
            )
            overrides: Dict[str, Any] = {}

            for child in self.registry.get(entry.original_table).children(
                entry.snapshot
            ):
                child_entry = await journal.run(
                    f"find trashed {child.table}/{child.record_id}",
                    self.trash.find(child.table, child.record_id),
                    commits=False,
                )
                if child_entry is None:
                    live = await journal.run(
                        f"check {child.table}/{child.record_id}",
                        self._exists(child.table, child.record_id),
                        commits=False,
                    )
                    if not live:
                        raise CascadeResolutionError(
                            f"{child.table}/{child.record_id} referenced by "
                            f"{child.fk_field} is neither trashed nor live",
                            table=entry.original_table,
                            record_id=entry.record_id,
                        )
                    continue

                restored = await journal.run(
                    f"restore {child.table}/{child.record_id}",
                    self.restore(child_entry.id, actor),
                    timeout=None,
                )
                overrides[child.fk_field] = restored[
                    self.registry.get(child.table).primary_key
                ]

            row = await journal.run(
                f"restore {entry.original_table}/{entry.record_id}",
                self.restore(entry_id, actor, overrides),
                timeout=None,
            )
        except LifecycleError as e:
            await self._abort(journal, e)
            raise

        return row

    # Purge

    async def purge(self, entry_id: str, actor: ActorLike = None) -> PurgeResult:
        """
        Irreversibly remove a trash entry and the objects its snapshot owns.

        The entry is always re-read from the registry. Object removal is
        best effort: failures are logged and listed in the result, and the
        entry is removed regardless. Purge writes no audit entry.

        Args:
            entry_id: Trash entry ID
            actor: Who is purging; only recorded on pending markers

        Returns:
            What was removed, what was already gone and what failed
        """
        actor = Actor.coerce(actor)
        journal = self._journal("purge", TRASH_TABLE, entry_id, actor)
        try:
            entry = await journal.run(
                f"fetch trash entry {entry_id}", self.trash.get(entry_id), commits=False
            )
            result = PurgeResult(
                entry_id=entry.id,
                original_table=entry.original_table,
                record_id=entry.record_id,
            )
            snapshot = entry.snapshot

            for child in self.registry.get(entry.original_table).children(snapshot):
                child_entry = await journal.run(
                    f"find trashed {child.table}/{child.record_id}",
                    self.trash.find(child.table, child.record_id),
                    commits=False,
                )
                if child_entry is None:
                    logger.debug(
                        f"{child.table}/{child.record_id} is not in the trash; "
                        "nothing to cascade"
                    )
                    continue
                result.cascaded.append(
                    await journal.run(
                        f"purge {child.table}/{child.record_id}",
                        self.purge(child_entry.id, actor),
                        timeout=None,
                    )
                )

            await self._remove_objects(
                journal,
                self.linker.extract_storage_refs(snapshot, entry.original_table),
                result,
            )
            await journal.run(
                f"remove trash entry {entry_id}", self.trash.remove(entry_id)
            )
        except LifecycleError as e:
            await self._abort(journal, e)
            raise

        logger.info(
            f"Purged {entry.original_table}/{entry.record_id} (trash entry {entry_id}): "
            f"{len(result.removed_objects)} objects removed, "
            f"{len(result.failed_objects)} failed"
        )
        return result

    async def _remove_objects(
        self,
        journal: OperationJournal,
        refs: List[StorageRef],
        result: PurgeResult,
    ) -> None:
        by_bucket: Dict[str, List[StorageRef]] = {}
        for ref in refs:
            by_bucket.setdefault(ref.bucket, []).append(ref)

        for bucket, bucket_refs in by_bucket.items():
            paths = [ref.path for ref in bucket_refs]
            try:
                removed = await journal.run(
                    f"remove {len(paths)} objects from {bucket}",
                    self.objects.remove(bucket, paths),
                )
            except LifecycleError as e:
                logger.error(f"Could not remove objects {paths} from {bucket}: {e}")
                result.failed_objects.extend(bucket_refs)
                result.storage_errors.append(str(e))
                continue

            removed_paths = set(removed)
            for ref in bucket_refs:
                if ref.path in removed_paths:
                    result.removed_objects.append(ref)
                else:
                    logger.warning(f"Object {bucket}/{ref.path} was already gone")
                    result.missing_objects.append(ref)

    # Create and update

    async def create(
        self, table: str, fields: Dict[str, Any], actor: ActorLike = None
    ) -> Dict[str, Any]:
        """
        Insert a row and audit it.

        Raises:
            RequiredFieldsError: A required field is missing or blank
        """
        actor = Actor.coerce(actor)
        descriptor = self.registry.get(table)
        fields = descriptor.clean_snapshot(fields)
        missing = descriptor.missing_required(fields)
        if missing:
            raise RequiredFieldsError(table, missing)

        journal = self._journal("create", table, "new", actor)
        try:
            new_id = await journal.run(
                f"insert {table}", self.records.create(table, fields)
            )
            journal.record_id = str(new_id)
            row = await journal.run(
                f"read {table}/{new_id}", self.records.read(table, new_id), commits=False
            )
            await journal.run(
                f"audit CREATE {table}/{new_id}",
                self.audit.append(
                    AuditAction.CREATE, table, new_id, new_data=row, actor=actor
                ),
            )
        except LifecycleError as e:
            await self._abort(journal, e)
            raise

        logger.info(f"Created {table}/{new_id} by {actor.display_name}")
        return row

    async def update(
        self,
        table: str,
        record_id: Any,
        patch: Dict[str, Any],
        actor: ActorLike = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial update and audit the before and after state.

        Raises:
            NotFoundError: The row does not exist
            RequiredFieldsError: The patch blanks a required field
        """
        actor = Actor.coerce(actor)
        descriptor = self.registry.get(table)
        patch = descriptor.clean_snapshot(patch, drop_primary_key=True)

        journal = self._journal("update", table, record_id, actor)
        try:
            old = await journal.run(
                f"read {table}/{record_id}",
                self.records.read(table, record_id),
                commits=False,
            )
            missing = descriptor.missing_required({**old, **patch})
            if missing:
                raise RequiredFieldsError(table, missing)

            new = await journal.run(
                f"update {table}/{record_id}",
                self.records.update(table, record_id, patch),
            )
            await journal.run(
                f"audit UPDATE {table}/{record_id}",
                self.audit.append(
                    AuditAction.UPDATE,
                    table,
                    record_id,
                    old_data=old,
                    new_data=new,
                    actor=actor,
                ),
            )
        except LifecycleError as e:
            await self._abort(journal, e)
            raise

        logger.info(f"Updated {table}/{record_id} by {actor.display_name}")
        return new

    # Queries

    async def list_trash(self, table: Optional[str] = None) -> List[TrashEntry]:
        return await self.trash.list_by_original_table(table)

    async def find_trash(self, table: str, record_id: Any) -> Optional[TrashEntry]:
        """Newest trash entry for a row, by its original table and ID."""
        return await self.trash.find(table, record_id)

    async def list_pending(self, include_resolved: bool = False) -> List[PendingOperation]:
        return await self.pending.list(include_resolved)

    async def resolve_pending(
        self, operation_id: str, actor: ActorLike = None
    ) -> PendingOperation:
        return await self.pending.resolve(operation_id, Actor.coerce(actor))
