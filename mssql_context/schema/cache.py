import logging
import time
from typing import Any, Dict, Optional, Tuple

from ..errors import TableNotFound
from ..models import ColumnInfo, SqlExecutor, TableInfo
from .queries import COLUMNS_QUERY, TABLES_QUERY

logger = logging.getLogger(__name__)


class SchemaCache:
    """In-memory table / column metadata for one configured schema.

    Entries are immutable tuples stored whole, and are only dropped by
    :meth:`clear`. Two concurrent misses for the same key may both hit the
    database; the later one wins, which is harmless since the results match.
    """

    def __init__(self, db_connector: SqlExecutor, schema: str):
        self.db_connector = db_connector
        self.schema = schema
        self._tables: Dict[str, Tuple[TableInfo, ...]] = {}
        self._columns: Dict[str, Tuple[ColumnInfo, ...]] = {}
        # Bumped by clear(); a fetch started before a clear does not store its result.
        self._generation = 0
        self.cache_stats: Dict[str, Any] = {
            'hits': 0,
            'misses': 0,
            'last_cleared': None,
        }

    def get(self, key: str) -> Optional[Tuple[Any, ...]]:
        """Raw lookup: the schema name for table lists, ``schema.table`` for columns."""
        if key in self._tables:
            return self._tables[key]
        return self._columns.get(key)

    def put_tables(self, tables: Tuple[TableInfo, ...], generation: Optional[int] = None) -> None:
        if generation is None or generation == self._generation:
            self._tables[self.schema] = tuple(tables)

    def put_columns(self, table_name: str, columns: Tuple[ColumnInfo, ...], generation: Optional[int] = None) -> None:
        if generation is None or generation == self._generation:
            self._columns[self._column_key(table_name)] = tuple(columns)

    def clear(self) -> None:
        """Drop every cached entry. Safe to call at any time."""
        self._tables = {}
        self._columns = {}
        self._generation += 1
        self.cache_stats['last_cleared'] = time.time()
        logger.info("Schema cache cleared for schema %s", self.schema)

    async def get_tables(self) -> Tuple[TableInfo, ...]:
        """Base tables of the configured schema, ordered by name."""
        cached = self._tables.get(self.schema)
        if cached is not None:
            self.cache_stats['hits'] += 1
            return cached

        self.cache_stats['misses'] += 1
        generation = self._generation
        logger.debug("Loading table list for schema %s", self.schema)
        rows = await self.db_connector.query(TABLES_QUERY, {"schema": self.schema})
        tables = tuple(TableInfo.from_row(r) for r in rows)
        logger.info("Found %d tables in schema %s", len(tables), self.schema)
        self.put_tables(tables, generation)
        return tables

    async def get_columns(self, table_name: str) -> Tuple[ColumnInfo, ...]:
        """Columns of one table in ordinal order.

        Raises:
            TableNotFound: if the table is not a base table of the configured schema.
        """
        tables = await self.get_tables()
        if not any(t.table_name == table_name and t.schema == self.schema for t in tables):
            raise TableNotFound(self.schema, table_name)

        key = self._column_key(table_name)
        cached = self._columns.get(key)
        if cached is not None:
            self.cache_stats['hits'] += 1
            return cached

        self.cache_stats['misses'] += 1
        generation = self._generation
        logger.debug("Lazily loading columns for %s", key)
        rows = await self.db_connector.query(
            COLUMNS_QUERY, {"schema": self.schema, "tableName": table_name}
        )
        columns = tuple(ColumnInfo.from_row(r) for r in rows)
        self.put_columns(table_name, columns, generation)
        return columns

    def _column_key(self, table_name: str) -> str:
        return f"{self.schema}.{table_name}"
