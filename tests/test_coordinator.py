"""
Tests for the lifecycle coordinator.

Covers soft delete, cascade, restore, purge, create and update against an
in-memory SQLite database and a temporary object store, plus failure
injection for partial operations.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from parish_lifecycle.audit_trail import AuditLog, SQLAuditStorage
from parish_lifecycle.config import LifecycleConfig, StorageBackend
from parish_lifecycle.database import init_db, make_engine
from parish_lifecycle.exceptions import (
    AuditWriteError,
    CascadeResolutionError,
    InvalidReasonError,
    LifecycleError,
    NotFoundError,
    OperationFailedError,
    RequiredFieldsError,
    StepTimeoutError,
    StorageError,
)
from parish_lifecycle.lifecycle import (
    LifecycleCoordinator,
    PendingOperationLog,
    SQLPendingOperationStorage,
)
from parish_lifecycle.lifecycle.journal import MemoryPendingOperationStorage
from parish_lifecycle.stores import LocalObjectStore, ObjectStore, SQLRecordStore
from parish_lifecycle.trash import MemoryTrashStorage, SQLTrashStorage, TrashRegistry

PUBLIC_BASE = "https://parish.supabase.co/storage/v1/object/public"

ADMIN = {"firstName": "Maria", "lastName": "Santos", "email": "maria@parish.ph"}


@pytest.fixture
def config():
    return LifecycleConfig(
        environment="test",
        storage_public_url_base=PUBLIC_BASE,
        step_timeout_seconds=5,
    )


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def objects(tmp_path):
    return LocalObjectStore(str(tmp_path / "storage"), PUBLIC_BASE)


def build(engine, objects, config):
    return LifecycleCoordinator(
        records=SQLRecordStore(engine),
        objects=objects,
        audit=AuditLog(SQLAuditStorage(engine)),
        trash=TrashRegistry(SQLTrashStorage(engine), config.deletion_reason_min_length),
        pending=PendingOperationLog(SQLPendingOperationStorage(engine)),
        config=config,
    )


@pytest.fixture
def coordinator(engine, objects, config):
    return build(engine, objects, config)


async def add_wedding(coordinator, doc_id=42, booking_id=100, **doc_fields):
    """Insert a wedding document and the booking that owns it."""
    doc = {
        "id": doc_id,
        "groom_fname": "Juan",
        "groom_lname": "Dela Cruz",
        "bride_fname": "Ana",
        "bride_lname": "Reyes",
    }
    doc.update(doc_fields)
    await coordinator.records.create("booking_wedding_docu_tbl", doc)
    await coordinator.records.create(
        "booking_tbl",
        {
            "id": booking_id,
            "user_id": "5b0f6c1e-0000-4000-8000-000000000001",
            "booking_sacrament": "Wedding",
            "booking_date": "2026-06-14",
            "booking_time": "10:30:00",
            "booking_pax": 150,
            "wedding_docu_id": doc_id,
        },
    )


async def add_confession(coordinator, booking_id=7):
    await coordinator.records.create(
        "booking_tbl",
        {
            "id": booking_id,
            "booking_sacrament": "Confession",
            "booking_date": "2026-03-01",
            "booking_time": "16:00:00",
        },
    )


class TestSoftDelete:
    """Test moving rows into the trash."""

    @pytest.mark.asyncio
    async def test_snapshot_matches_row(self, coordinator):
        """Test the trash entry deep-equals the pre-delete row."""
        await add_confession(coordinator)
        before = await coordinator.records.read("booking_tbl", 7)

        entry = await coordinator.soft_delete("booking_tbl", 7, ADMIN, reason="Cancelled")

        assert entry.original_table == "booking_tbl"
        assert entry.record_id == "7"
        assert entry.snapshot == before
        assert entry.deleted_by == "Maria Santos"
        assert entry.deletion_reason == "Cancelled"
        with pytest.raises(NotFoundError):
            await coordinator.records.read("booking_tbl", 7)

        trail = await coordinator.audit.list()
        assert len(trail) == 1
        assert trail[0].action == "DELETE"
        assert trail[0].old_data == before
        assert trail[0].performed_by_email == "maria@parish.ph"

    @pytest.mark.asyncio
    async def test_columns_outside_models_survive(self, engine, objects, config):
        """Test a column added to the live table is snapshotted and restored."""
        with engine.begin() as conn:
            conn.execute(text("ALTER TABLE booking_tbl ADD COLUMN legacy_note TEXT"))
        coordinator = build(engine, objects, config)
        receipt = f"{PUBLIC_BASE}/payment-receipts/receipts/r.png"
        await coordinator.records.create(
            "booking_tbl",
            {
                "id": 9,
                "booking_sacrament": "Confession",
                "booking_date": "2026-03-01",
                "booking_time": "16:00:00",
                "price": 250.0,
                "payment_receipts": receipt,
                "legacy_note": "walk-in",
            },
        )

        entry = await coordinator.soft_delete("booking_tbl", 9, ADMIN)

        assert entry.snapshot["legacy_note"] == "walk-in"
        assert entry.snapshot["price"] == 250.0
        assert entry.snapshot["payment_receipts"] == receipt
        assert entry.snapshot["booking_status"] == "pending"
        with pytest.raises(NotFoundError):
            await coordinator.records.read("booking_tbl", 9)

        row = await coordinator.restore(entry.id, ADMIN)

        assert row["legacy_note"] == "walk-in"
        assert row["payment_receipts"] == receipt

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_wedding_booking_cascades(self, coordinator):
        """Test a wedding booking trashes its document first."""
        await add_wedding(coordinator)

        entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        assert entry.record_id == "100"
        doc_entry = await coordinator.find_trash("booking_wedding_docu_tbl", 42)
        assert doc_entry is not None
        assert doc_entry.snapshot["groom_fname"] == "Juan"
        assert len(await coordinator.list_trash()) == 2

        for table, record_id in (("booking_tbl", 100), ("booking_wedding_docu_tbl", 42)):
            with pytest.raises(NotFoundError):
                await coordinator.records.read(table, record_id)

        trail = await coordinator.audit.list(newest_first=False)
        assert [(e.action, e.table_name, e.record_id) for e in trail] == [
            ("CASCADE_DELETE", "booking_wedding_docu_tbl", "42"),
            ("DELETE", "booking_tbl", "100"),
        ]

    @pytest.mark.asyncio
    async def test_missing_row_writes_nothing(self, coordinator):
        """Test a missing row leaves no trash entry and no audit entry."""
        with pytest.raises(NotFoundError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 999, ADMIN)

        assert not exc_info.value.is_partial
        assert exc_info.value.pending_operation_id is None
        assert await coordinator.list_trash() == []
        assert await coordinator.audit.list() == []
        assert await coordinator.list_pending() == []

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_missing_document_aborts_before_parent(self, coordinator):
        await add_wedding(coordinator)
        await coordinator.records.delete("booking_wedding_docu_tbl", 42)

        with pytest.raises(NotFoundError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        assert exc_info.value.table == "booking_wedding_docu_tbl"
        assert await coordinator.records.read("booking_tbl", 100)
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_inconsistent_linkage_aborts(self, coordinator):
        await add_confession(coordinator)
        await coordinator.records.update("booking_tbl", 7, {"burial_docu_id": 3})

        with pytest.raises(CascadeResolutionError):
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        assert await coordinator.records.read("booking_tbl", 7)
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    async def test_cascade_can_be_disabled(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"cascade_delete_enabled": False})
        )
        await add_wedding(coordinator)

        await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        assert await coordinator.records.read("booking_wedding_docu_tbl", 42)
        assert len(await coordinator.list_trash()) == 1

    @pytest.mark.asyncio
    async def test_reason_too_short(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"deletion_reason_min_length": 10})
        )
        await add_confession(coordinator)

        with pytest.raises(InvalidReasonError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN, reason="no")

        assert isinstance(exc_info.value, LifecycleError)
        assert not exc_info.value.is_partial
        assert await coordinator.records.read("booking_tbl", 7)
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    async def test_concurrent_delete_leaves_duplicate_entry(self, coordinator):
        """Test a row removed by another caller keeps the stashed entry."""
        await add_confession(coordinator)
        coordinator.records.delete = AsyncMock(side_effect=NotFoundError("booking_tbl", 7))

        with pytest.raises(NotFoundError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        assert exc_info.value.completed_steps == ["stash booking_tbl/7"]
        assert len(await coordinator.list_trash()) == 1
        assert await coordinator.audit.list() == []
        assert exc_info.value.pending_operation_id is not None


class TestPartialFailures:
    """Test failures after committed steps surface and leave markers."""

    @pytest.mark.asyncio
    async def test_audit_failure_after_delete(self, coordinator):
        await add_confession(coordinator)
        coordinator.audit.storage.store = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(AuditWriteError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        error = exc_info.value
        assert error.is_partial
        assert error.completed_steps == ["stash booking_tbl/7", "delete booking_tbl/7"]

        with pytest.raises(NotFoundError):
            await coordinator.records.read("booking_tbl", 7)
        assert len(await coordinator.list_trash()) == 1

        pending = await coordinator.list_pending()
        assert [p.id for p in pending] == [error.pending_operation_id]
        assert pending[0].operation == "soft_delete"
        assert pending[0].failed_step == "audit DELETE booking_tbl/7"
        assert pending[0].performed_by == "Maria Santos"

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_parent_failure_after_child_cascade(self, coordinator):
        """Test a cascaded child stays trashed when the parent fails."""
        await add_wedding(coordinator)
        insert = coordinator.trash.storage.insert

        async def failing_insert(entry):
            if entry.original_table == "booking_tbl":
                raise RuntimeError("connection reset")
            await insert(entry)

        coordinator.trash.storage.insert = failing_insert

        with pytest.raises(OperationFailedError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        error = exc_info.value
        assert error.completed_steps == ["cascade booking_wedding_docu_tbl/42"]
        assert isinstance(error.__cause__, RuntimeError)
        assert await coordinator.records.read("booking_tbl", 100)
        assert await coordinator.find_trash("booking_wedding_docu_tbl", 42)

        pending = await coordinator.list_pending()
        assert pending[0].failed_step == "stash booking_tbl/100"

    @pytest.mark.asyncio
    async def test_step_timeout_before_any_write(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"step_timeout_seconds": 0.05})
        )

        async def slow_read(table, record_id):
            await asyncio.sleep(5)

        coordinator.records.read = slow_read

        with pytest.raises(StepTimeoutError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        assert exc_info.value.step == "read booking_tbl/7"
        assert not exc_info.value.is_partial
        assert await coordinator.list_pending() == []

    @pytest.mark.asyncio
    async def test_step_timeout_after_stash(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"step_timeout_seconds": 0.05})
        )
        await add_confession(coordinator)

        async def slow_delete(table, record_id):
            await asyncio.sleep(5)

        coordinator.records.delete = slow_delete

        with pytest.raises(StepTimeoutError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        assert exc_info.value.completed_steps == ["stash booking_tbl/7"]
        assert len(await coordinator.list_pending()) == 1

    @pytest.mark.asyncio
    async def test_resolve_pending(self, coordinator):
        await add_confession(coordinator)
        coordinator.audit.storage.store = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(AuditWriteError) as exc_info:
            await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        resolved = await coordinator.resolve_pending(
            exc_info.value.pending_operation_id, {"display_name": "Fr. Tomas"}
        )

        assert resolved.resolved
        assert resolved.resolved_by == "Fr. Tomas"
        assert await coordinator.list_pending() == []
        assert len(await coordinator.list_pending(include_resolved=True)) == 1

        with pytest.raises(NotFoundError):
            await coordinator.resolve_pending("no-such-marker")


class TestRestore:
    """Test restoring trashed rows."""

    @pytest.mark.asyncio
    async def test_restore_assigns_new_identity(self, coordinator):
        await add_confession(coordinator, booking_id=7)
        entry = await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        row = await coordinator.restore(entry.id, ADMIN)

        assert row["id"] != 7
        assert row["booking_sacrament"] == "Confession"
        assert row["booking_date"] == "2026-03-01"
        with pytest.raises(NotFoundError):
            await coordinator.trash.get(entry.id)

        restore_entry = (await coordinator.audit.list())[0]
        assert restore_entry.action == "RESTORE"
        assert restore_entry.record_id == str(row["id"])
        assert restore_entry.old_data["id"] == 7
        assert restore_entry.new_data == row

    @pytest.mark.asyncio
    async def test_restore_missing_entry(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.restore("no-such-entry", ADMIN)

        assert await coordinator.audit.list() == []

    @pytest.mark.asyncio
    async def test_computed_fields_are_dropped(self, coordinator):
        """Test joined display fields in a snapshot are not written back."""
        entry = await coordinator.trash.stash(
            "booking_tbl",
            55,
            {
                "id": 55,
                "booking_sacrament": "communion",
                "booking_date": "2026-05-03",
                "booking_time": "09:00:00",
                "user_firstname": "Juan",
                "user_lastname": "Luna",
                "price": 500,
            },
        )

        row = await coordinator.restore(entry.id, ADMIN)

        assert "user_firstname" not in row
        assert row["booking_sacrament"] == "communion"
        assert row["price"] == 500

    @pytest.mark.asyncio
    async def test_round_trip(self, coordinator):
        """Test restore then soft delete reproduces the snapshot modulo ID."""
        await add_confession(coordinator)
        first = await coordinator.soft_delete("booking_tbl", 7, ADMIN)
        row = await coordinator.restore(first.id, ADMIN)

        second = await coordinator.soft_delete("booking_tbl", row["id"], ADMIN)

        first_fields = dict(first.snapshot, id=None)
        assert dict(second.snapshot, id=None) == first_fields
        assert second.original_table == first.original_table

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_leaf_first_restore_by_caller(self, coordinator):
        """Test restoring the document first and rewriting the booking's key."""
        await add_wedding(coordinator)
        booking_entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)
        doc_entry = await coordinator.find_trash("booking_wedding_docu_tbl", 42)

        doc = await coordinator.restore(doc_entry.id, ADMIN)
        booking = await coordinator.restore(
            booking_entry.id, ADMIN, overrides={"wedding_docu_id": doc["id"]}
        )

        assert booking["wedding_docu_id"] == doc["id"]
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_restore_cascade(self, coordinator):
        await add_wedding(coordinator)
        booking_entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        booking = await coordinator.restore_cascade(booking_entry.id, ADMIN)

        doc = await coordinator.records.read(
            "booking_wedding_docu_tbl", booking["wedding_docu_id"]
        )
        assert doc["groom_fname"] == "Juan"
        assert await coordinator.list_trash() == []

        restores = await coordinator.audit.list(
            actions=["RESTORE"], newest_first=False
        )
        assert [e.table_name for e in restores] == [
            "booking_wedding_docu_tbl",
            "booking_tbl",
        ]

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_restore_cascade_with_live_document(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"cascade_delete_enabled": False})
        )
        await add_wedding(coordinator)
        entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        booking = await coordinator.restore_cascade(entry.id, ADMIN)

        assert booking["wedding_docu_id"] == 42

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_restore_cascade_with_lost_document(self, engine, objects, config):
        coordinator = build(
            engine, objects, config.model_copy(update={"cascade_delete_enabled": False})
        )
        await add_wedding(coordinator)
        entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)
        await coordinator.records.delete("booking_wedding_docu_tbl", 42)

        with pytest.raises(CascadeResolutionError):
            await coordinator.restore_cascade(entry.id, ADMIN)

        assert await coordinator.trash.get(entry.id)

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_restore_cascade_partial(self, coordinator):
        """Test a booking insert failure after the document came back."""
        await add_wedding(coordinator)
        entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)
        create = coordinator.records.create

        async def failing_create(table, fields):
            if table == "booking_tbl":
                raise RuntimeError("constraint violation")
            return await create(table, fields)

        coordinator.records.create = failing_create

        with pytest.raises(OperationFailedError) as exc_info:
            await coordinator.restore_cascade(entry.id, ADMIN)

        assert exc_info.value.completed_steps == [
            "restore booking_wedding_docu_tbl/42"
        ]
        assert await coordinator.trash.get(entry.id)
        assert await coordinator.find_trash("booking_wedding_docu_tbl", 42) is None


class TestPurge:
    """Test irreversible removal."""

    @pytest.mark.asyncio
    async def test_purge_calls_remove_once_per_bucket(self, engine, config):
        """Test attachment removal for a trashed wedding document."""
        objects = AsyncMock(spec=ObjectStore)
        objects.remove.return_value = ["groom_123.png"]
        coordinator = build(engine, objects, config)
        entry = await coordinator.trash.stash(
            "booking_wedding_docu_tbl",
            42,
            {"id": 42, "groom_1x1": f"{PUBLIC_BASE}/certificates/groom_123.png"},
        )

        result = await coordinator.purge(entry.id)

        objects.remove.assert_awaited_once_with("certificates", ["groom_123.png"])
        assert [r.path for r in result.removed_objects] == ["groom_123.png"]
        assert result.clean
        with pytest.raises(NotFoundError):
            await coordinator.trash.get(entry.id)

    @pytest.mark.asyncio
    async def test_booking_payment_receipt_removed(self, engine, config):
        objects = AsyncMock(spec=ObjectStore)
        objects.remove.return_value = ["receipts/r.png"]
        coordinator = build(engine, objects, config)
        entry = await coordinator.trash.stash(
            "booking_tbl",
            7,
            {
                "id": 7,
                "booking_sacrament": "Confession",
                "price": 250.0,
                "payment_receipts": f"{PUBLIC_BASE}/payment-receipts/receipts/r.png",
            },
        )

        result = await coordinator.purge(entry.id)

        objects.remove.assert_awaited_once_with("payment-receipts", ["receipts/r.png"])
        assert [r.field for r in result.removed_objects] == ["payment_receipts"]
        assert result.clean

    @pytest.mark.asyncio
    async def test_receipt_files_are_gone(self, coordinator, objects):
        """Test booking and donation receipts are deleted from storage."""
        receipt = await objects.upload("payment-receipts", "receipts/r.png", b"png")
        await add_confession(coordinator)
        await coordinator.records.update("booking_tbl", 7, {"payment_receipts": receipt})
        await objects.upload("payment-receipts", "donations/d.png", b"png")
        booking = await coordinator.soft_delete("booking_tbl", 7, ADMIN)
        donation = await coordinator.trash.stash(
            "donation_tbl", 3, {"id": 3, "donation_receipts": "donations/d.png"}
        )

        await coordinator.purge(booking.id, ADMIN)
        await coordinator.purge(donation.id, ADMIN)

        assert not await objects.exists("payment-receipts", "receipts/r.png")
        assert not await objects.exists("payment-receipts", "donations/d.png")

    @pytest.mark.asyncio
    async def test_purged_files_are_gone(self, coordinator, objects):
        url = await objects.upload("certificates", "groom_123.png", b"png")
        license_url = await objects.upload("booking-documents", "42/license.pdf", b"pdf")
        await add_wedding(
            coordinator, groom_1x1=url, marriage_license="42/license.pdf"
        )
        await coordinator.soft_delete("booking_tbl", 100, ADMIN)
        doc_entry = await coordinator.find_trash("booking_wedding_docu_tbl", 42)

        result = await coordinator.purge(doc_entry.id, ADMIN)

        assert len(result.removed_objects) == 2
        assert not await objects.exists("certificates", "groom_123.png")
        assert not await objects.exists("booking-documents", "42/license.pdf")
        assert license_url.endswith("/booking-documents/42/license.pdf")

    @pytest.mark.asyncio
    @pytest.mark.cascade
    async def test_booking_purge_cascades_to_document(self, coordinator, objects):
        url = await objects.upload("certificates", "bride_cenomar.pdf", b"pdf")
        await add_wedding(coordinator, bride_cenomar=url)
        entry = await coordinator.soft_delete("booking_tbl", 100, ADMIN)

        result = await coordinator.purge(entry.id, ADMIN)

        assert [c.original_table for c in result.cascaded] == [
            "booking_wedding_docu_tbl"
        ]
        assert result.cascaded[0].removed_objects[0].path == "bride_cenomar.pdf"
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    async def test_missing_objects_are_not_errors(self, coordinator):
        entry = await coordinator.trash.stash(
            "booking_wedding_docu_tbl",
            42,
            {"id": 42, "groom_banns": f"{PUBLIC_BASE}/certificates/never-uploaded.png"},
        )

        result = await coordinator.purge(entry.id)

        assert result.clean
        assert [r.path for r in result.missing_objects] == ["never-uploaded.png"]

    @pytest.mark.asyncio
    async def test_storage_errors_are_collected(self, engine, config):
        """Test object store failures never block entry removal."""
        objects = AsyncMock(spec=ObjectStore)
        objects.remove.side_effect = StorageError("HTTP 503", bucket="certificates")
        coordinator = build(engine, objects, config)
        entry = await coordinator.trash.stash(
            "booking_wedding_docu_tbl",
            42,
            {"id": 42, "groom_1x1": f"{PUBLIC_BASE}/certificates/groom_123.png"},
        )

        result = await coordinator.purge(entry.id)

        assert not result.clean
        assert result.storage_errors == ["HTTP 503"]
        assert [r.path for r in result.failed_objects] == ["groom_123.png"]
        assert await coordinator.list_trash() == []

    @pytest.mark.asyncio
    async def test_purge_writes_no_audit_entry(self, coordinator):
        await add_confession(coordinator)
        entry = await coordinator.soft_delete("booking_tbl", 7, ADMIN)

        await coordinator.purge(entry.id, ADMIN)

        assert [e.action for e in await coordinator.audit.list()] == ["DELETE"]

    @pytest.mark.asyncio
    async def test_purge_missing_entry(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.purge("no-such-entry")


class TestCreateAndUpdate:
    """Test audited writes from the console's save handlers."""

    @pytest.mark.asyncio
    async def test_create(self, coordinator):
        row = await coordinator.create(
            "donation_tbl",
            {
                "user_id": "u-1",
                "donation_amount": 1500.0,
                "donation_intercession": "For the sick",
                "user_firstname": "Juan",
                "user_tbl": {"user_firstname": "Juan"},
            },
            ADMIN,
        )

        assert row["donation_amount"] == 1500.0
        assert "user_firstname" not in row

        trail = await coordinator.audit.list()
        assert trail[0].action == "CREATE"
        assert trail[0].record_id == str(row["id"])
        assert trail[0].new_data == row
        assert trail[0].old_data is None

    @pytest.mark.asyncio
    async def test_create_missing_required(self, coordinator):
        with pytest.raises(RequiredFieldsError) as exc_info:
            await coordinator.create("priest_tbl", {"priest_diocese": "Manila"}, ADMIN)

        assert exc_info.value.missing == ["priest_name"]
        assert await coordinator.audit.list() == []

    @pytest.mark.asyncio
    async def test_update(self, coordinator):
        await add_confession(coordinator)

        row = await coordinator.update(
            "booking_tbl", 7, {"booking_status": "approved", "price": 300}, ADMIN
        )

        assert row["booking_status"] == "approved"
        assert row["price"] == 300
        entry = (await coordinator.audit.list())[0]
        assert entry.action == "UPDATE"
        assert entry.old_data["booking_status"] == "pending"
        assert entry.new_data["booking_status"] == "approved"

    @pytest.mark.asyncio
    async def test_update_cannot_blank_required(self, coordinator):
        await add_confession(coordinator)

        with pytest.raises(RequiredFieldsError):
            await coordinator.update("booking_tbl", 7, {"booking_sacrament": ""}, ADMIN)

    @pytest.mark.asyncio
    async def test_update_missing_row(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.update("booking_tbl", 404, {"paid": True}, ADMIN)


class TestFromConfig:
    """Test wiring a coordinator from configuration."""

    def test_memory_backends(self, tmp_path):
        config = LifecycleConfig(
            environment="test",
            database_url=f"sqlite:///{tmp_path / 'parish.db'}",
            storage_backend=StorageBackend.MEMORY,
            storage_root=str(tmp_path / "files"),
        )

        coordinator = LifecycleCoordinator.from_config(config)

        assert isinstance(coordinator.trash.storage, MemoryTrashStorage)
        assert isinstance(coordinator.pending.storage, MemoryPendingOperationStorage)
        assert isinstance(coordinator.objects, LocalObjectStore)
        assert coordinator.linker.public_url_base == config.storage_public_url_base

    def test_http_object_store(self, tmp_path):
        from parish_lifecycle.stores import HTTPObjectStore

        config = LifecycleConfig(
            environment="test",
            database_url=f"sqlite:///{tmp_path / 'parish.db'}",
            storage_api_url="https://parish.supabase.co",
            storage_api_key="service-key",
        )

        coordinator = LifecycleCoordinator.from_config(config)

        assert isinstance(coordinator.objects, HTTPObjectStore)
        assert isinstance(coordinator.trash.storage, SQLTrashStorage)
