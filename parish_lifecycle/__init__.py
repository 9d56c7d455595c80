"""
Parish Lifecycle - record lifecycle and audit subsystem for a parish console.

Administrators of a parish console manage bookings of sacraments, the
documents attached to them, donations, certificate requests and staff
records. This package owns what happens to those rows after they exist:

Key Features
------------
* **Soft Delete**: Rows move into a reversible trash with a full snapshot
* **Cascade**: Deleting a Wedding, Baptism or Burial booking trashes its
  sacrament document first
* **Restore**: Trashed rows come back under a new identity, documents first
* **Purge**: Irreversible removal of a trashed row and its stored attachments
* **Audit Trail**: Append-only log of every create, update, delete and restore
* **Pending Operations**: Partially completed operations stay visible to an
  operator instead of failing silently

Quick Start
-----------
>>> from parish_lifecycle import LifecycleCoordinator, configure
>>>
>>> configure(database_url="sqlite:///parish.db")
>>> coordinator = LifecycleCoordinator.from_config()
>>>
>>> actor = {"firstName": "Maria", "lastName": "Santos", "email": "maria@parish.ph"}
>>> entry = await coordinator.soft_delete("booking_tbl", 100, actor)
>>> booking = await coordinator.restore_cascade(entry.id, actor)

License
-------
MIT License - See LICENSE file for details.
"""

__version__ = "1.0.0"

from .audit_trail import Actor, AuditAction, AuditEntry, AuditLog
from .config import LifecycleConfig, configure, get_config, set_config
from .exceptions import (
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
from .lifecycle import (
    LifecycleCoordinator,
    SacramentDocumentLinker,
    TableDescriptor,
    TableRegistry,
)
from .trash import PurgeResult, TrashEntry, TrashRegistry

__all__ = [
    # Coordinator
    "LifecycleCoordinator",
    "SacramentDocumentLinker",
    "TableDescriptor",
    "TableRegistry",
    # Audit Trail
    "AuditLog",
    "AuditEntry",
    "AuditAction",
    "Actor",
    # Trash
    "TrashRegistry",
    "TrashEntry",
    "PurgeResult",
    # Configuration
    "LifecycleConfig",
    "configure",
    "get_config",
    "set_config",
    # Exceptions
    "LifecycleError",
    "NotFoundError",
    "CascadeResolutionError",
    "StorageError",
    "AuditWriteError",
    "StepTimeoutError",
    "OperationFailedError",
    "RequiredFieldsError",
    "InvalidReasonError",
]
