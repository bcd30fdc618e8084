"""Row access for the record graph extractor.

The extractor only needs two reads: one row by key, and the rows of a table
matching one column value. Rows are flat property bags with string values;
a missing key means the column was NULL or absent.
"""

from collections.abc import Mapping
from typing import Any, Protocol

import structlog
from sqlalchemy import Engine, MetaData, Table, create_engine, select
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from formdoc.errors import RowAccessError

Row = dict[str, str]


class RowAccessor(Protocol):
    def fetch_by_key(self, table: str, key_column: str, key_value: str) -> Row | None: ...

    def query(
        self,
        table: str,
        where_column: str,
        where_value: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]: ...


def create_engine_from_url(url: str) -> Engine:
    """Create a synchronous engine.

    In-memory SQLite URLs share one connection so that every session sees the
    same database.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url)


class SqlRowStore:
    """RowAccessor over any SQLAlchemy engine, using reflected tables."""

    def __init__(
        self,
        engine: Engine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}

    def fetch_by_key(self, table: str, key_column: str, key_value: str) -> Row | None:
        """Fetch the first row whose ``key_column`` equals ``key_value``.

        Raises:
            RowAccessError: If the table or column is unknown or the query fails.
        """
        rows = self.query(table, key_column, key_value, limit=1)
        if not rows:
            self._logger.debug("row_not_found", table=table, key_column=key_column, key_value=key_value)
            return None
        return rows[0]

    def query(
        self,
        table: str,
        where_column: str,
        where_value: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        reflected = self._table(table)
        if where_column not in reflected.c:
            raise RowAccessError(f"table '{table}' has no column '{where_column}'")

        statement = select(reflected).where(reflected.c[where_column] == where_value).offset(offset)
        if limit is not None:
            statement = statement.limit(limit)

        try:
            with self._engine.connect() as connection:
                result = connection.execute(statement)
                rows = [_to_row(mapping) for mapping in result.mappings()]
        except SQLAlchemyError as e:
            raise RowAccessError(f"query on '{table}' failed: {e}") from e

        self._logger.debug("rows_fetched", table=table, where_column=where_column, row_count=len(rows))
        return rows

    def _table(self, name: str) -> Table:
        if name in self._tables:
            return self._tables[name]
        try:
            table = Table(name, self._metadata, autoload_with=self._engine)
        except NoSuchTableError as e:
            raise RowAccessError(f"unknown table '{name}'") from e
        except SQLAlchemyError as e:
            raise RowAccessError(f"could not reflect table '{name}': {e}") from e
        self._tables[name] = table
        return table


def _to_row(mapping: Mapping[str, Any]) -> Row:
    return {str(key): str(value) for key, value in mapping.items() if value is not None}
