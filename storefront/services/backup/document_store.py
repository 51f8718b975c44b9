"""Document-style access to the allow-listed storefront tables.

Records are plain dicts keyed by column name. Every operation takes the
collection name and an equality filter, and refuses collections outside the
backup allow-list.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Protocol

from sqlalchemy import MetaData, Table, and_, delete, insert, select
from sqlalchemy.engine import Connection, Engine

from storefront.config.logging import get_logger
from storefront.services.backup.collection_spec import DEFAULT_COLLECTIONS, CollectionSpec

logger = get_logger("backup.documents")

Record = dict[str, Any]


class DocumentStore(Protocol):
    """Collection/record operations used by backup and restore."""

    def find(self, collection: str, criteria: dict[str, Any]) -> list[Record]: ...

    def delete_many(self, collection: str, criteria: dict[str, Any]) -> int: ...

    def insert_many(self, collection: str, records: list[Record]) -> None: ...

    def replace(self, collection: str, criteria: dict[str, Any], records: list[Record]) -> int: ...


class SqlDocumentStore:
    """DocumentStore over SQLAlchemy tables, one table per collection."""

    def __init__(
        self,
        engine: Engine,
        metadata: MetaData | None = None,
        collections: Iterable[CollectionSpec] = DEFAULT_COLLECTIONS,
    ) -> None:
        self.engine = engine
        self._metadata = metadata
        self._reflected = MetaData()
        self._allowed = {spec.name for spec in collections}
        self._tables: dict[str, Table] = {}

    def _table(self, collection: str) -> Table:
        if collection not in self._allowed:
            raise ValueError(f"Collection is not in the backup allow-list: {collection}")

        table = self._tables.get(collection)
        if table is None:
            if self._metadata is not None and collection in self._metadata.tables:
                table = self._metadata.tables[collection]
            else:
                table = Table(collection, self._reflected, autoload_with=self.engine)
            self._tables[collection] = table
        return table

    @staticmethod
    def _where(table: Table, criteria: dict[str, Any]):
        if not criteria:
            raise ValueError(f"Refusing unscoped query on {table.name}")
        clauses = []
        for key, value in criteria.items():
            if key not in table.c:
                raise ValueError(f"Unknown column {key!r} for collection {table.name}")
            clauses.append(table.c[key] == value)
        return and_(*clauses)

    @staticmethod
    def _coerce(table: Table, record: Record) -> Record:
        """Convert ISO strings back to date/datetime/Decimal per column type."""
        row = {}
        for key, value in record.items():
            if key not in table.c:
                raise ValueError(f"Unknown column {key!r} for collection {table.name}")
            if isinstance(value, str):
                try:
                    python_type = table.c[key].type.python_type
                except NotImplementedError:
                    python_type = None
                if python_type is datetime:
                    value = datetime.fromisoformat(value)
                elif python_type is date:
                    value = date.fromisoformat(value)
                elif python_type is Decimal:
                    try:
                        value = Decimal(value)
                    except InvalidOperation:
                        raise ValueError(f"Invalid decimal {value!r} for {table.name}.{key}") from None
            row[key] = value
        return row

    def find(self, collection: str, criteria: dict[str, Any]) -> list[Record]:
        table = self._table(collection)
        stmt = select(table).where(self._where(table, criteria)).order_by(*table.primary_key.columns)
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def delete_many(self, collection: str, criteria: dict[str, Any]) -> int:
        with self.engine.begin() as conn:
            return self._delete(conn, collection, criteria)

    def insert_many(self, collection: str, records: list[Record]) -> None:
        if not records:
            return
        with self.engine.begin() as conn:
            self._insert(conn, collection, records)

    def replace(self, collection: str, criteria: dict[str, Any], records: list[Record]) -> int:
        """Delete matching records and insert `records` in one transaction.

        Returns the number of records deleted.
        """
        with self.engine.begin() as conn:
            deleted = self._delete(conn, collection, criteria)
            if records:
                self._insert(conn, collection, records)
        logger.debug(f"[{collection}] replaced {deleted} record(s) with {len(records)}")
        return deleted

    def _delete(self, conn: Connection, collection: str, criteria: dict[str, Any]) -> int:
        table = self._table(collection)
        result = conn.execute(delete(table).where(self._where(table, criteria)))
        return result.rowcount or 0

    def _insert(self, conn: Connection, collection: str, records: list[Record]) -> None:
        table = self._table(collection)
        conn.execute(insert(table), [self._coerce(table, record) for record in records])
