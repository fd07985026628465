import asyncio
import logging
from typing import Optional, Tuple

from ..errors import InvalidArgument
from ..models import (
    DatabaseSnapshot,
    ForeignKeyInfo,
    PrimaryKeyInfo,
    SqlExecutor,
    TableDescription,
    TableInfo,
)
from .cache import SchemaCache
from .queries import FOREIGN_KEYS_QUERY, PRIMARY_KEYS_QUERY

logger = logging.getLogger(__name__)

MAX_TABLES_LIMIT = 200


class SchemaManager:
    """Schema directory: composes cached tables/columns with live key metadata.

    Table and column lists come from the :class:`SchemaCache`; primary and
    foreign keys are queried on every call and never cached.
    """

    def __init__(self, db_connector: SqlExecutor, cache: SchemaCache):
        self.db_connector = db_connector
        self.cache = cache

    @property
    def schema(self) -> str:
        return self.cache.schema

    async def list_tables(self) -> Tuple[TableInfo, ...]:
        return await self.cache.get_tables()

    async def get_primary_keys(self) -> Tuple[PrimaryKeyInfo, ...]:
        """Primary key columns for every table in the schema"""
        rows = await self.db_connector.query(PRIMARY_KEYS_QUERY, {"schema": self.schema})
        return tuple(PrimaryKeyInfo.from_row(r) for r in rows)

    async def get_foreign_keys(self) -> Tuple[ForeignKeyInfo, ...]:
        """Foreign key column pairs where both sides are in the schema"""
        rows = await self.db_connector.query(FOREIGN_KEYS_QUERY, {"schema": self.schema})
        return tuple(ForeignKeyInfo.from_row(r) for r in rows)

    async def describe_table(self, table_name: str) -> TableDescription:
        """Columns plus the table's primary key, ordered by key ordinal.

        Raises TableNotFound for tables outside the configured schema.
        """
        # Raises before any key query is issued for an unknown table.
        columns = await self.cache.get_columns(table_name)
        all_primary_keys = await self.get_primary_keys()
        primary_keys = sorted(
            (pk for pk in all_primary_keys if pk.table_name == table_name),
            key=lambda pk: pk.key_ordinal,
        )
        return TableDescription(
            table_name=table_name,
            columns=columns,
            primary_keys=tuple(primary_keys),
        )

    async def get_context(self, max_tables: Optional[int] = None) -> DatabaseSnapshot:
        """Tables, primary keys and foreign keys for the whole schema.

        ``max_tables`` truncates the table list only; key lists are returned
        in full so callers can cross-reference by table name.
        """
        if max_tables is not None and not 1 <= max_tables <= MAX_TABLES_LIMIT:
            raise InvalidArgument(f"maxTables must be between 1 and {MAX_TABLES_LIMIT}, got {max_tables}")

        tables, primary_keys, foreign_keys = await asyncio.gather(
            self.cache.get_tables(),
            self.get_primary_keys(),
            self.get_foreign_keys(),
        )
        if max_tables is not None:
            tables = tables[:max_tables]

        logger.debug(
            "Built context for %s: %d tables, %d PK columns, %d FK columns",
            self.schema, len(tables), len(primary_keys), len(foreign_keys),
        )
        return DatabaseSnapshot(
            schema=self.schema,
            tables=tuple(tables),
            primary_keys=primary_keys,
            foreign_keys=foreign_keys,
        )
