"""
Trash Module - reversible staging area for soft-deleted rows.
"""

from .models import PurgeResult, StorageRef, TrashEntry, serialize_snapshot
from .registry import TrashRegistry
from .storage import (
    MemoryTrashStorage,
    SQLTrashStorage,
    TrashStorage,
    get_trash_storage,
)

__all__ = [
    # Registry
    "TrashRegistry",
    # Models
    "TrashEntry",
    "StorageRef",
    "PurgeResult",
    "serialize_snapshot",
    # Storage
    "TrashStorage",
    "SQLTrashStorage",
    "MemoryTrashStorage",
    "get_trash_storage",
]
