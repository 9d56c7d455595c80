"""
Lifecycle Module - soft delete, restore and purge orchestration.
"""

from .coordinator import LifecycleCoordinator
from .descriptors import (
    CascadeRule,
    ChildRef,
    SacramentCascade,
    TableDescriptor,
    TableRegistry,
    default_registry,
)
from .journal import (
    MemoryPendingOperationStorage,
    OperationJournal,
    PendingOperation,
    PendingOperationLog,
    PendingOperationStorage,
    SQLPendingOperationStorage,
    get_pending_storage,
)
from .linker import SACRAMENT_LINKS, SacramentDocumentLinker, SacramentLink

__all__ = [
    # Coordinator
    "LifecycleCoordinator",
    # Descriptors
    "TableDescriptor",
    "TableRegistry",
    "CascadeRule",
    "SacramentCascade",
    "ChildRef",
    "default_registry",
    # Linker
    "SacramentDocumentLinker",
    "SacramentLink",
    "SACRAMENT_LINKS",
    # Pending operations
    "OperationJournal",
    "PendingOperation",
    "PendingOperationLog",
    "PendingOperationStorage",
    "SQLPendingOperationStorage",
    "MemoryPendingOperationStorage",
    "get_pending_storage",
]
