"""
Sacrament document linkage and attachment discovery.

A booking of a Wedding, Baptism or Burial owns one row in the matching
document table, referenced by a sacrament-specific foreign key field.
Confession, Anointing and Communion bookings own no document.
"""

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict

from ..trash.models import StorageRef

if TYPE_CHECKING:
    from .descriptors import TableRegistry

logger = logging.getLogger(__name__)

# Public object URLs look like <host>/storage/v1/object/public/<bucket>/<path>
PUBLIC_OBJECT_PATTERN = re.compile(r"/storage/v1/object/public/([^/]+)/(.+)$")

DEFAULT_ATTACHMENT_BUCKET = "booking-documents"


class SacramentLink(BaseModel):
    """Where a sacrament's document lives and how a booking points at it."""

    model_config = ConfigDict(frozen=True)

    sacrament: str
    table: str
    fk_field: str


SACRAMENT_LINKS: Tuple[SacramentLink, ...] = (
    SacramentLink(
        sacrament="wedding",
        table="booking_wedding_docu_tbl",
        fk_field="wedding_docu_id",
    ),
    SacramentLink(
        sacrament="baptism",
        table="booking_baptism_docu_tbl",
        fk_field="baptism_docu_id",
    ),
    SacramentLink(
        sacrament="burial",
        table="booking_burial_docu_tbl",
        fk_field="burial_docu_id",
    ),
)


def normalize_sacrament(sacrament: Any) -> str:
    return str(sacrament or "").strip().lower()


class SacramentDocumentLinker:
    """Static sacrament-to-document mapping plus attachment extraction.

    The mapping is fixed at construction; nothing mutates it afterwards.

    Example:
        >>> linker = SacramentDocumentLinker()
        >>> linker.resolve("Wedding").fk_field
        'wedding_docu_id'
        >>> linker.resolve("Confession") is None
        True
    """

    def __init__(
        self,
        links: Iterable[SacramentLink] = SACRAMENT_LINKS,
        registry: Optional["TableRegistry"] = None,
        public_url_base: Optional[str] = None,
        default_bucket: str = DEFAULT_ATTACHMENT_BUCKET,
        scan_untyped: bool = True,
    ):
        self._by_sacrament: Dict[str, SacramentLink] = {
            link.sacrament: link for link in links
        }
        self._by_table: Dict[str, SacramentLink] = {
            link.table: link for link in self._by_sacrament.values()
        }
        self.registry = registry
        self.public_url_base = public_url_base.rstrip("/") if public_url_base else None
        self.default_bucket = default_bucket
        self.scan_untyped = scan_untyped

    def resolve(self, sacrament: Any) -> Optional[SacramentLink]:
        """Document linkage for a sacrament type, or None when it has none."""
        return self._by_sacrament.get(normalize_sacrament(sacrament))

    def link_for_table(self, table: str) -> Optional[SacramentLink]:
        """Reverse lookup from a document table."""
        return self._by_table.get(table)

    @property
    def fk_fields(self) -> List[str]:
        return [link.fk_field for link in self._by_sacrament.values()]

    @property
    def document_tables(self) -> List[str]:
        return list(self._by_table)

    def parse_public_url(self, url: str) -> Optional[Tuple[str, str]]:
        """
        Split a public object URL into bucket and path.

        Returns:
            ``(bucket, path)`` or None when the URL is not a public object URL
        """
        url = url.strip().split("?", 1)[0]
        if self.public_url_base and url.startswith(self.public_url_base + "/"):
            rest = url[len(self.public_url_base) + 1 :]
        else:
            match = PUBLIC_OBJECT_PATTERN.search(url)
            if not match or not url.startswith(("https://", "http://")):
                return None
            rest = f"{match.group(1)}/{match.group(2)}"

        bucket, _, path = rest.partition("/")
        if not bucket or not path:
            return None
        return bucket, unquote(path)

    def extract_storage_refs(
        self, snapshot: Dict[str, Any], table: Optional[str] = None
    ) -> List[StorageRef]:
        """
        Find the stored objects a snapshot owns.

        Tables with declared attachment fields are read field by field; a
        bare path in such a field belongs to the table's attachment bucket.
        For other tables every string field is scanned for public object
        URLs, unless untyped scanning is switched off.

        Args:
            snapshot: Row snapshot
            table: Table the snapshot came from

        Returns:
            One reference per distinct stored object
        """
        descriptor = self.registry.get(table) if self.registry and table else None

        if descriptor is not None and descriptor.attachment_fields is not None:
            candidates = [(f, snapshot.get(f)) for f in descriptor.attachment_fields]
            path_bucket: Optional[str] = (
                descriptor.attachment_bucket or self.default_bucket
            )
        elif self.scan_untyped:
            candidates = list(snapshot.items())
            path_bucket = None
        else:
            return []

        refs: List[StorageRef] = []
        seen = set()
        for field, value in candidates:
            if not isinstance(value, str) or not value.strip():
                continue

            location = self.parse_public_url(value)
            if location is None:
                if path_bucket is None or "://" in value or value.startswith(
                    ("data:", "blob:")
                ):
                    continue
                location = (path_bucket, value.strip().lstrip("/"))

            if location in seen:
                continue
            seen.add(location)
            refs.append(
                StorageRef(
                    bucket=location[0],
                    path=location[1],
                    original_url=value,
                    field=field,
                )
            )

        return refs
