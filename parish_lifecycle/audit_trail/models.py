"""
Data models for the audit trail.

These models mirror the ``transaction_logs`` table the administrative
console reads.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_ACTOR = "Unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditAction(str, Enum):
    """Mutations recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    CASCADE_DELETE = "CASCADE_DELETE"


class Actor(BaseModel):
    """Identity of whoever triggered a lifecycle operation."""

    model_config = ConfigDict(frozen=True)

    display_name: str = Field(UNKNOWN_ACTOR, description="Name shown in the log")
    email: str = Field(UNKNOWN_ACTOR, description="Email of the actor")

    @classmethod
    def coerce(cls, actor: Union["Actor", Dict[str, Any], None]) -> "Actor":
        """
        Build an actor from the shapes callers hand in.

        Accepts an ``Actor``, a ``{"display_name", "email"}`` dict, the
        console's admin profile dict (``firstName``, ``lastName``, ``email``)
        or ``None`` for an unknown actor.
        """
        if isinstance(actor, Actor):
            return actor
        if not actor:
            return cls()
        if "display_name" in actor:
            return cls(
                display_name=actor["display_name"] or UNKNOWN_ACTOR,
                email=actor.get("email") or UNKNOWN_ACTOR,
            )
        name = " ".join(
            part for part in (actor.get("firstName"), actor.get("lastName")) if part
        )
        return cls(
            display_name=name or UNKNOWN_ACTOR,
            email=actor.get("email") or UNKNOWN_ACTOR,
        )


class AuditEntry(BaseModel):
    """
    Immutable audit trail entry.

    Each entry records what happened to which row, the row state before and
    after, who did it and when.
    """

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    id: str = Field(..., description="Unique identifier for the audit entry")
    table_name: str = Field(..., description="Table the mutated row belongs to")
    action: AuditAction = Field(..., description="Type of mutation")
    record_id: Optional[str] = Field(None, description="ID of the mutated row")
    old_data: Optional[Dict[str, Any]] = Field(
        None, description="Row state before the mutation"
    )
    new_data: Optional[Dict[str, Any]] = Field(
        None, description="Row state after the mutation"
    )
    performed_by: str = Field(UNKNOWN_ACTOR, description="Actor display name")
    performed_by_email: str = Field(UNKNOWN_ACTOR, description="Actor email")
    timestamp: datetime = Field(
        default_factory=utcnow, description="UTC timestamp of the mutation"
    )

    @field_validator("record_id", mode="before")
    @classmethod
    def stringify_record_id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)


class AuditQuery(BaseModel):
    """Query parameters for reading the audit trail."""

    model_config = ConfigDict(use_enum_values=True)

    table_name: Optional[str] = Field(None, description="Filter by table")
    record_id: Optional[str] = Field(None, description="Filter by record ID")
    actions: Optional[List[AuditAction]] = Field(
        None, description="Filter by action types"
    )
    performed_by_email: Optional[str] = Field(None, description="Filter by actor")
    limit: int = Field(100, description="Maximum results", gt=0, le=10000)
    offset: int = Field(0, description="Result offset", ge=0)
    newest_first: bool = Field(True, description="Sort by timestamp descending")

    @field_validator("record_id", mode="before")
    @classmethod
    def stringify_record_id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)
