"""
Table descriptors.

Per-table lifecycle behavior is data, not branching: which fields a create
must carry, which fields are display-only and never written back, which
fields hold stored objects, and which child rows a row owns.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..exceptions import CascadeResolutionError
from .linker import SACRAMENT_LINKS, SacramentDocumentLinker, SacramentLink

logger = logging.getLogger(__name__)


class ChildRef(BaseModel):
    """A row owned by another row through a foreign key field."""

    model_config = ConfigDict(frozen=True)

    table: str
    record_id: Any
    fk_field: str


class CascadeRule(ABC):
    """Resolves the child rows a row owns."""

    @abstractmethod
    def children(self, row: Dict[str, Any]) -> List[ChildRef]:
        """Child rows referenced by ``row``; empty when it owns none."""
        pass


class SacramentCascade(CascadeRule):
    """A booking owns the document row its sacrament type points at."""

    def __init__(
        self,
        discriminator: str = "booking_sacrament",
        links: Iterable[SacramentLink] = SACRAMENT_LINKS,
    ):
        self.discriminator = discriminator
        self.linker = SacramentDocumentLinker(links)

    def children(self, row: Dict[str, Any]) -> List[ChildRef]:
        sacrament = row.get(self.discriminator)
        link = self.linker.resolve(sacrament)

        stray = [
            f
            for f in self.linker.fk_fields
            if row.get(f) is not None and (link is None or f != link.fk_field)
        ]
        if stray:
            raise CascadeResolutionError(
                f"Booking of type '{sacrament}' references a document through "
                f"{', '.join(stray)}",
                table=None,
                record_id=row.get("id"),
            )

        if link is None or row.get(link.fk_field) is None:
            return []
        return [
            ChildRef(
                table=link.table,
                record_id=row[link.fk_field],
                fk_field=link.fk_field,
            )
        ]


class TableDescriptor(BaseModel):
    """Lifecycle metadata for one table.

    ``attachment_fields`` of None means the table declares nothing and may
    be scanned for object URLs; an empty tuple means it owns no objects.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    display_name: str = ""
    primary_key: str = "id"
    required_fields: Tuple[str, ...] = ()
    computed_fields: Tuple[str, ...] = ()
    attachment_fields: Optional[Tuple[str, ...]] = None
    attachment_bucket: Optional[str] = None
    cascade: Optional[CascadeRule] = None

    def clean_snapshot(
        self, snapshot: Dict[str, Any], drop_primary_key: bool = False
    ) -> Dict[str, Any]:
        """Copy of ``snapshot`` without display-only fields."""
        dropped = set(self.computed_fields)
        if drop_primary_key:
            dropped.add(self.primary_key)
        return {k: v for k, v in snapshot.items() if k not in dropped}

    def missing_required(self, fields: Dict[str, Any]) -> List[str]:
        """Required fields that are absent or blank."""
        return [
            f
            for f in self.required_fields
            if fields.get(f) is None or str(fields.get(f)).strip() == ""
        ]

    def children(self, row: Dict[str, Any]) -> List[ChildRef]:
        if self.cascade is None:
            return []
        children = self.cascade.children(row)
        for child in children:
            logger.debug(
                f"{self.name}/{row.get(self.primary_key)} owns "
                f"{child.table}/{child.record_id}"
            )
        return children


class TableRegistry:
    """Descriptors by table name.

    Unknown tables get a permissive descriptor: nothing required, nothing
    computed, attachments undeclared.
    """

    def __init__(self, descriptors: Iterable[TableDescriptor] = ()):
        self._descriptors: Dict[str, TableDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: TableDescriptor) -> None:
        self._descriptors[descriptor.name] = descriptor

    def get(self, table: str) -> TableDescriptor:
        descriptor = self._descriptors.get(table)
        if descriptor is None:
            return TableDescriptor(name=table, display_name=table)
        return descriptor

    def names(self) -> List[str]:
        return sorted(self._descriptors)

    def __contains__(self, table: object) -> bool:
        return table in self._descriptors


WEDDING_ATTACHMENTS = (
    "groom_1x1",
    "bride_1x1",
    "groom_baptismal_cert",
    "bride_baptismal_cert",
    "groom_confirmation_cert",
    "bride_confirmation_cert",
    "groom_cenomar",
    "bride_cenomar",
    "groom_banns",
    "bride_banns",
    "groom_permission",
    "bride_permission",
    "marriage_license",
    "marriage_contract",
)

# Bucket the console uploads payment receipts to
RECEIPT_BUCKET = "payment-receipts"

# Joined user columns shown beside a row in the console
USER_JOIN_FIELDS = ("user_firstname", "user_lastname", "user_tbl")


def default_registry(attachment_bucket: Optional[str] = None) -> TableRegistry:
    """Descriptors for the parish schema."""
    return TableRegistry(
        [
            TableDescriptor(
                name="user_tbl",
                display_name="Users",
                required_fields=("user_firstname", "user_lastname", "user_email"),
                attachment_fields=("user_image",),
                attachment_bucket=attachment_bucket,
            ),
            TableDescriptor(
                name="admin_tbl",
                display_name="Admins",
                required_fields=("admin_firstname", "admin_lastname", "admin_email"),
            ),
            TableDescriptor(
                name="priest_tbl",
                display_name="Priests",
                required_fields=("priest_name",),
            ),
            TableDescriptor(
                name="donation_tbl",
                display_name="Donations",
                required_fields=("donation_amount",),
                computed_fields=USER_JOIN_FIELDS,
                attachment_fields=("donation_receipts",),
                attachment_bucket=RECEIPT_BUCKET,
            ),
            TableDescriptor(
                name="document_tbl",
                display_name="Documents",
                required_fields=("firstname", "lastname"),
                attachment_fields=(
                    "baptismal_certificate",
                    "confirmation_certificate",
                    "wedding_certificate",
                ),
                attachment_bucket=attachment_bucket,
            ),
            TableDescriptor(
                name="request_tbl",
                display_name="Certificate Requests",
                required_fields=("user_id",),
                computed_fields=USER_JOIN_FIELDS,
            ),
            TableDescriptor(
                name="booking_tbl",
                display_name="Bookings",
                required_fields=("booking_sacrament", "booking_date", "booking_time"),
                computed_fields=USER_JOIN_FIELDS + ("form",),
                attachment_fields=("payment_receipts",),
                attachment_bucket=RECEIPT_BUCKET,
                cascade=SacramentCascade(),
            ),
            TableDescriptor(
                name="booking_wedding_docu_tbl",
                display_name="Wedding Documents",
                computed_fields=("groom_fullname", "bride_fullname"),
                attachment_fields=WEDDING_ATTACHMENTS,
                attachment_bucket=attachment_bucket,
            ),
            TableDescriptor(
                name="booking_baptism_docu_tbl",
                display_name="Baptism Documents",
                attachment_fields=(),
            ),
            TableDescriptor(
                name="booking_burial_docu_tbl",
                display_name="Burial Documents",
                attachment_fields=(),
            ),
        ]
    )
