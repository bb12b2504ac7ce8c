"""Base repository classes for database operations.

``TableSpec`` describes one table: its key, its columns, which of them a
caller may change, and how rows map to model objects. ``BaseRepository``
implements the table operations once against a ``TableSpec``; ``EntityRepository``
exposes them as the public CRUD contract for a single entity family.
"""

import dataclasses
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from tracker.core.errors import (
    InvalidIdentifierError,
    NotFoundError,
    TrackerError,
    translate_sqlite_error,
)
from tracker.core.models import format_timestamp, parse_timestamp, parse_uuid, utc_now

logger = logging.getLogger(__name__)

# Page size for search_by_name; callers must not assume every match is returned
SEARCH_LIMIT = 20


@dataclass(frozen=True)
class TableSpec:
    """Declarative description of one table.

    Attributes:
        table: Table name
        entity: Entity kind used in error messages ("Person", "Milestone", ...)
        model: Dataclass the rows map to (must provide ``from_dict``)
        key_columns: Primary key columns, in key order
        columns: Every stored column, in insert order
        mutable_columns: Columns a full update replaces
        uuid_columns: Columns holding UUID text (parsed on the way in)
        fields: Column -> model attribute, where the names differ
        order_by: ORDER BY clause for listings
        search_column: Column matched by search_by_name
        stamped: Whether the table has ``updated_at``
    """

    table: str
    entity: str
    model: type
    key_columns: tuple[str, ...]
    columns: tuple[str, ...]
    mutable_columns: tuple[str, ...]
    uuid_columns: frozenset = frozenset()
    fields: Mapping[str, str] = dataclasses.field(default_factory=dict)
    order_by: str = "name"
    search_column: Optional[str] = None
    stamped: bool = True

    def attr(self, column: str) -> str:
        """Model attribute name for a column."""
        return self.fields.get(column, column)

    def column(self, attr: str) -> str:
        """Column name for a model attribute."""
        for column, name in self.fields.items():
            if name == attr:
                return column
        return attr

    def to_row(self, entity: Any) -> Dict[str, Any]:
        """Map a model object to column values."""
        return {column: _to_sql(getattr(entity, self.attr(column))) for column in self.columns}

    def from_row(self, row: sqlite3.Row) -> Any:
        """Map a row to a model object."""
        return self.model.from_dict(dict(row))

    def key_of(self, entity: Any) -> tuple:
        """Key values of a model object."""
        return tuple(getattr(entity, self.attr(column)) for column in self.key_columns)


def _to_sql(value: Any) -> Any:
    """Convert a model value to its stored form."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class BaseRepository:
    """Base class for all repositories.

    Provides common database utilities over a borrowed connection. The
    connection must be in autocommit mode (``isolation_level=None``);
    multi-statement operations open their own transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        """Initialize repository with a database connection.

        Args:
            conn: sqlite3.Connection from ``open_database``; never closed here
        """
        if conn is None:
            raise ValueError("A database connection must be provided")
        self.conn = conn

    def _execute(
        self, query: str, params: Sequence[Any] = (), entity: str = "Database", key: Any = None
    ) -> sqlite3.Cursor:
        """Execute a query, translating driver errors.

        Raises:
            TrackerError: Translated sqlite3 error
        """
        try:
            return self.conn.execute(query, tuple(params))
        except sqlite3.Error as e:
            raise translate_sqlite_error(e, entity, key) from e

    def _fetchone(self, query: str, params: Sequence[Any] = (), entity: str = "Database") -> Optional[sqlite3.Row]:
        return self._execute(query, params, entity).fetchone()

    def _fetchall(self, query: str, params: Sequence[Any] = (), entity: str = "Database") -> List[sqlite3.Row]:
        return self._execute(query, params, entity).fetchall()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Run a block atomically.

        Opens ``BEGIN IMMEDIATE`` (taking the write lock up front so the other
        connection cannot interleave) or, when already inside a transaction,
        a savepoint.
        """
        if self.conn.in_transaction:
            name = f"sp_{uuid.uuid4().hex}"
            self._execute(f"SAVEPOINT {name}")
            try:
                yield
            except BaseException:
                self.conn.execute(f"ROLLBACK TO {name}")
                self.conn.execute(f"RELEASE {name}")
                raise
            self._execute(f"RELEASE {name}")
            return

        self._execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        try:
            self.conn.execute("COMMIT")
        except sqlite3.Error as e:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise translate_sqlite_error(e, "Database") from e

    def _key_params(self, spec: TableSpec, key: Sequence[Any]) -> tuple:
        """Normalize key values to their stored form.

        Raises:
            InvalidIdentifierError: Wrong arity or malformed UUID text
        """
        key = tuple(key)
        if len(key) != len(spec.key_columns):
            raise InvalidIdentifierError(
                spec.entity, key, detail=f"expected {len(spec.key_columns)} key part(s)"
            )
        params = []
        for column, value in zip(spec.key_columns, key):
            if column in spec.uuid_columns:
                params.append(str(parse_uuid(value, spec.entity)))
            else:
                params.append(value)
        return tuple(params)

    def _key_where(self, spec: TableSpec) -> str:
        return " AND ".join(f"{column} = ?" for column in spec.key_columns)

    def _insert(self, spec: TableSpec, entity: Any) -> Any:
        """Insert an entity, stamping its timestamps.

        Returns:
            The entity as stored

        Raises:
            ConflictError: Key already exists
            InvalidReferenceError: A referenced row does not exist
        """
        now = utc_now()
        stamps = {"created_at": now}
        if spec.stamped:
            stamps["updated_at"] = now
        stored = dataclasses.replace(entity, **stamps)

        row = spec.to_row(stored)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        key = spec.key_of(stored)
        self._execute(
            f"INSERT INTO {spec.table} ({columns}) VALUES ({placeholders})",
            list(row.values()),
            spec.entity,
            key,
        )
        logger.debug(f"Created {spec.entity} {key}")
        return stored

    def _select_one(self, spec: TableSpec, key: Sequence[Any]) -> Optional[Any]:
        """Fetch one entity by key, or None."""
        row = self._fetchone(
            f"SELECT * FROM {spec.table} WHERE {self._key_where(spec)}",
            self._key_params(spec, key),
            spec.entity,
        )
        return spec.from_row(row) if row else None

    def _select_where(
        self,
        spec: TableSpec,
        where: Optional[str] = None,
        params: Sequence[Any] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Fetch entities matching a WHERE clause."""
        query = f"SELECT * FROM {spec.table}"
        if where:
            query += f" WHERE {where}"
        query += f" ORDER BY {order_by or spec.order_by}"
        if limit is not None:
            query += " LIMIT ?"
            params = (*params, limit)
        return [spec.from_row(row) for row in self._fetchall(query, params, spec.entity)]

    def _exists(self, spec: TableSpec, key: Sequence[Any]) -> bool:
        row = self._fetchone(
            f"SELECT 1 FROM {spec.table} WHERE {self._key_where(spec)}",
            self._key_params(spec, key),
            spec.entity,
        )
        return row is not None

    def _update(self, spec: TableSpec, entity: Any) -> Any:
        """Replace an entity's mutable columns and re-stamp ``updated_at``.

        ``updated_at`` never moves backwards, even if clocks disagree between
        the two writers.

        Returns:
            The entity as stored

        Raises:
            NotFoundError: Key does not exist
        """
        key = spec.key_of(entity)
        key_params = self._key_params(spec, key)
        row = spec.to_row(entity)

        assignments = [f"{column} = ?" for column in spec.mutable_columns]
        params = [row[column] for column in spec.mutable_columns]
        if spec.stamped:
            assignments.append("updated_at = MAX(COALESCE(updated_at, ''), ?)")
            params.append(format_timestamp(utc_now()))

        with self._transaction():
            cursor = self._execute(
                f"UPDATE {spec.table} SET {', '.join(assignments)} WHERE {self._key_where(spec)}",
                [*params, *key_params],
                spec.entity,
                key,
            )
            if cursor.rowcount == 0:
                raise NotFoundError(spec.entity, key)
            stored = self._select_one(spec, key)

        logger.debug(f"Updated {spec.entity} {key}")
        return stored

    def _update_fields(self, spec: TableSpec, key: Sequence[Any], changes: Mapping[str, Any]) -> Any:
        """Fetch, merge ``changes`` and write back, atomically.

        Args:
            spec: Table to update
            key: Entity key
            changes: Model attribute -> new value; only mutable attributes allowed

        Raises:
            NotFoundError: Key does not exist
            ValueError: A change names an attribute that cannot be updated
        """
        allowed = {spec.attr(column) for column in spec.mutable_columns}
        invalid = set(changes) - allowed
        if invalid:
            raise ValueError(
                f"Cannot update {spec.entity} field(s): {', '.join(sorted(invalid))}"
            )

        with self._transaction():
            current = self._select_one(spec, key)
            if current is None:
                raise NotFoundError(spec.entity, tuple(key) if len(key) > 1 else key[0])
            merged = dataclasses.replace(current, **_coerce_changes(spec, changes))
            return self._update(spec, merged)

    def _delete(self, spec: TableSpec, key: Sequence[Any]) -> None:
        """Delete by key; dependants go through the engine's cascades.

        Raises:
            NotFoundError: Key does not exist
            InvalidReferenceError: Row is still referenced without a cascade
        """
        key_params = self._key_params(spec, key)
        display_key = tuple(key) if len(key) > 1 else key[0]
        cursor = self._execute(
            f"DELETE FROM {spec.table} WHERE {self._key_where(spec)}",
            key_params,
            spec.entity,
            display_key,
        )
        if cursor.rowcount == 0:
            raise NotFoundError(spec.entity, display_key)
        logger.debug(f"Deleted {spec.entity} {display_key}")


def _coerce_changes(spec: TableSpec, changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Parse text UUIDs and timestamps in a partial-update payload."""
    coerced = {}
    for name, value in changes.items():
        column = spec.column(name)
        if value is not None and column in spec.uuid_columns:
            value = parse_uuid(value, spec.entity)
        elif value is not None and column == "due_date" and not isinstance(value, datetime):
            value = parse_timestamp(value)
        coerced[name] = value
    return coerced


class EntityRepository(BaseRepository):
    """Generic CRUD over one ``TableSpec``.

    Subclasses set ``spec`` and add family-specific operations.
    """

    spec: TableSpec

    def create(self, entity: Any) -> Any:
        """Insert an entity.

        Returns:
            The stored entity with server-stamped timestamps

        Raises:
            ConflictError: Key already exists
            InvalidReferenceError: A referenced row does not exist
        """
        return self._insert(self.spec, entity)

    def find_by_key(self, *key: Any) -> Optional[Any]:
        """Fetch by key; None when absent."""
        return self._select_one(self.spec, key)

    def exists(self, *key: Any) -> bool:
        """Check whether a key exists."""
        return self._exists(self.spec, key)

    def list_all(self) -> List[Any]:
        """All entities, ordered by name."""
        return self._select_where(self.spec)

    def search_by_name(self, query: str) -> List[Any]:
        """Case-insensitive substring match on name, capped at ``SEARCH_LIMIT``."""
        if self.spec.search_column is None:
            raise TrackerError(f"{self.spec.entity} does not support search", self.spec.entity)
        pattern = "%" + _escape_like(query.strip()) + "%"
        return self._select_where(
            self.spec,
            f"{self.spec.search_column} LIKE ? ESCAPE '\\'",
            (pattern,),
            limit=SEARCH_LIMIT,
        )

    def update(self, entity: Any) -> Any:
        """Replace mutable fields; never an upsert.

        Raises:
            NotFoundError: Key does not exist
        """
        return self._update(self.spec, entity)

    def update_fields(self, key: Any, changes: Mapping[str, Any]) -> Any:
        """Partial update of the named attributes.

        Args:
            key: Entity key (tuple for composite keys)
            changes: Attribute -> value

        Raises:
            NotFoundError: Key does not exist
            ValueError: Attribute is not updatable
        """
        key = key if isinstance(key, tuple) else (key,)
        return self._update_fields(self.spec, key, changes)

    def delete(self, *key: Any) -> None:
        """Delete by key.

        Raises:
            NotFoundError: Key does not exist
        """
        self._delete(self.spec, key)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
