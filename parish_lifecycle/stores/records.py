"""
Relational record store used by the lifecycle coordinator.

Rows cross this boundary as JSON-shaped dictionaries: dates and times leave
the store as ISO strings and are parsed back on the way in, so a snapshot
written to the trash can be inserted again unchanged.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser
from sqlalchemy import MetaData, Table, asc, delete, desc, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.sql import sqltypes

from ..database import Base
from ..exceptions import LifecycleError, NotFoundError


class RecordStore(ABC):
    """Abstract row store addressed by table name and primary key."""

    @abstractmethod
    async def create(self, table: str, fields: Dict[str, Any]) -> Any:
        """Insert a row and return its primary key."""
        pass

    @abstractmethod
    async def read(self, table: str, record_id: Any) -> Dict[str, Any]:
        """
        Read a row.

        Raises:
            NotFoundError: If the row does not exist
        """
        pass

    @abstractmethod
    async def update(
        self, table: str, record_id: Any, patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Apply a partial update and return the new row state."""
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: Any) -> None:
        """
        Delete a row.

        Raises:
            NotFoundError: If no row was deleted
        """
        pass

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows whose columns equal every value in ``filters``."""
        pass


def to_json_value(value: Any) -> Any:
    """Convert a column value into its JSON-compatible form."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class SQLRecordStore(RecordStore):
    """Record store over a SQLAlchemy engine.

    Rows are read and written through the live table reflected from the
    database, so columns the package models do not declare still reach
    snapshots and are written back on restore. Python-side column defaults
    of the models on ``metadata`` are applied on insert.
    """

    def __init__(self, engine: Engine, metadata: Optional[MetaData] = None):
        self.engine = engine
        self.metadata = metadata if metadata is not None else Base.metadata
        self._reflected = MetaData()

    def _table(self, name: str) -> Table:
        if name in self._reflected.tables:
            return self._reflected.tables[name]
        try:
            return Table(name, self._reflected, autoload_with=self.engine)
        except NoSuchTableError as e:
            raise LifecycleError(f"Unknown table: {name}", table=name) from e

    def _apply_defaults(self, table: Table, values: Dict[str, Any]) -> None:
        model = self.metadata.tables.get(table.name)
        if model is None:
            return
        for column in model.c:
            default = column.default
            if default is None or column.name in values or column.name not in table.c:
                continue
            if default.is_scalar:
                values[column.name] = default.arg
            elif default.is_callable:
                values[column.name] = default.arg(None)

    @staticmethod
    def _primary_key(table: Table) -> Any:
        columns = list(table.primary_key.columns)
        if len(columns) != 1:
            raise LifecycleError(
                f"Table {table.name} must have a single-column primary key",
                table=table.name,
            )
        return columns[0]

    def _coerce_id(self, table: Table, record_id: Any) -> Any:
        pk = self._primary_key(table)
        if isinstance(pk.type, sqltypes.Integer) and isinstance(record_id, str):
            try:
                return int(record_id)
            except ValueError:
                raise NotFoundError(table.name, record_id) from None
        return record_id

    def _coerce_fields(self, table: Table, fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(fields) - set(table.c.keys()))
        if unknown:
            raise LifecycleError(
                f"Unknown columns for {table.name}: {', '.join(unknown)}",
                table=table.name,
            )

        values: Dict[str, Any] = {}
        for key, value in fields.items():
            column_type = table.c[key].type
            if isinstance(value, str) and value:
                if isinstance(column_type, sqltypes.DateTime):
                    value = date_parser.isoparse(value)
                elif isinstance(column_type, sqltypes.Date):
                    value = date_parser.isoparse(value).date()
                elif isinstance(column_type, sqltypes.Time):
                    value = date_parser.parse(value).time()
            values[key] = value
        return values

    @staticmethod
    def _row_to_dict(row: Any) -> Dict[str, Any]:
        return {key: to_json_value(value) for key, value in row._mapping.items()}

    async def create(self, table: str, fields: Dict[str, Any]) -> Any:
        """Insert a row and return its primary key."""
        t = self._table(table)
        values = self._coerce_fields(t, fields)

        self._apply_defaults(t, values)

        pk = self._primary_key(t)
        if values.get(pk.name) is None and isinstance(pk.type, sqltypes.String):
            values[pk.name] = str(uuid.uuid4())

        with self.engine.begin() as conn:
            result = conn.execute(insert(t).values(**values))
            return result.inserted_primary_key[0]

    async def read(self, table: str, record_id: Any) -> Dict[str, Any]:
        """Read a row by primary key."""
        t = self._table(table)
        pk = self._primary_key(t)
        with self.engine.connect() as conn:
            row = conn.execute(
                select(t).where(pk == self._coerce_id(t, record_id))
            ).first()
        if row is None:
            raise NotFoundError(table, record_id)
        return self._row_to_dict(row)

    async def update(
        self, table: str, record_id: Any, patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Apply a partial update and return the new row state."""
        t = self._table(table)
        pk = self._primary_key(t)
        key = self._coerce_id(t, record_id)
        values = self._coerce_fields(t, patch)
        values.pop(pk.name, None)

        with self.engine.begin() as conn:
            if values:
                result = conn.execute(update(t).where(pk == key).values(**values))
                if result.rowcount == 0:
                    raise NotFoundError(table, record_id)
            row = conn.execute(select(t).where(pk == key)).first()
        if row is None:
            raise NotFoundError(table, record_id)
        return self._row_to_dict(row)

    async def delete(self, table: str, record_id: Any) -> None:
        """Delete a row by primary key."""
        t = self._table(table)
        pk = self._primary_key(t)
        with self.engine.begin() as conn:
            result = conn.execute(delete(t).where(pk == self._coerce_id(t, record_id)))
        if result.rowcount == 0:
            raise NotFoundError(table, record_id)

    async def query(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows matching equality filters."""
        t = self._table(table)
        stmt = select(t)

        for key, value in self._coerce_fields(t, filters or {}).items():
            stmt = stmt.where(t.c[key] == value)

        if order_by:
            if order_by not in t.c:
                raise LifecycleError(
                    f"Unknown column for {table}: {order_by}", table=table
                )
            stmt = stmt.order_by(desc(t.c[order_by]) if descending else asc(t.c[order_by]))
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.engine.connect() as conn:
            return [self._row_to_dict(row) for row in conn.execute(stmt)]
