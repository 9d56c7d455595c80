"""
Data models for the trash staging area.

A trash entry keeps the complete row snapshot as JSON text, exactly as the
``deleted_records`` table of the administrative console stores it.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..audit_trail.models import UNKNOWN_ACTOR, utcnow


def serialize_snapshot(snapshot: Dict[str, Any]) -> str:
    """Serialize a row snapshot to JSON text."""
    return json.dumps(snapshot, default=str)


class TrashEntry(BaseModel):
    """Immutable snapshot of a soft-deleted row."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier of the trash entry")
    original_table: str = Field(..., description="Table the row was removed from")
    record_id: str = Field(..., description="ID the row had in its table")
    record_data: str = Field(..., description="Row snapshot as JSON text")
    deleted_by: str = Field(UNKNOWN_ACTOR, description="Actor display name")
    deleted_by_email: str = Field(UNKNOWN_ACTOR, description="Actor email")
    deleted_at: datetime = Field(
        default_factory=utcnow, description="When the row was trashed"
    )
    deletion_reason: Optional[str] = Field(None, description="Why it was trashed")

    @field_validator("record_id", mode="before")
    @classmethod
    def stringify_record_id(cls, v: Any) -> str:
        return str(v)

    @property
    def snapshot(self) -> Dict[str, Any]:
        """The deserialized row snapshot (a fresh copy on every access)."""
        return json.loads(self.record_data)


class StorageRef(BaseModel):
    """A stored object owned by a snapshot field."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    path: str
    original_url: str
    field: Optional[str] = None


class PurgeResult(BaseModel):
    """Outcome of an irreversible purge.

    Storage failures do not stop a purge; they are listed here so the
    caller can show them to an operator.
    """

    entry_id: str
    original_table: str
    record_id: str
    removed_objects: List[StorageRef] = Field(default_factory=list)
    missing_objects: List[StorageRef] = Field(default_factory=list)
    failed_objects: List[StorageRef] = Field(default_factory=list)
    storage_errors: List[str] = Field(default_factory=list)
    cascaded: List["PurgeResult"] = Field(default_factory=list)

    @property
    def clean(self) -> bool:
        """True when every attachment, including cascaded ones, was handled."""
        return not self.storage_errors and all(c.clean for c in self.cascaded)
