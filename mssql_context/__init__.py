from typing import Optional, Tuple

from .errors import QueryRejected
from .models import (
    DatabaseSnapshot,
    ForeignKeyInfo,
    QueryResult,
    SqlExecutor,
    TableDescription,
    TableInfo,
)
from .query import BoundedExecutor, QueryGuard
from .schema import SchemaCache, SchemaManager

DEFAULT_SCHEMA = "SalesLT"


class DatabaseContext:
    def __init__(self, db_connector: SqlExecutor, schema: str = DEFAULT_SCHEMA, strict_guard: bool = False):
        """Wire the schema directory and the guarded query path around one SQL executor.

        Args:
            db_connector: Executor used for metadata and agent queries
            schema: Configured schema; fixed for the lifetime of this context
            strict_guard: Add the tokenizer pass to the query guard
        """
        self.db_connector = db_connector
        self.schema = schema
        self.schema_cache = SchemaCache(db_connector, schema)
        self.schema_manager = SchemaManager(db_connector, self.schema_cache)
        self.query_guard = QueryGuard(strict=strict_guard)
        self.query_executor = BoundedExecutor(db_connector)

    async def initialize(self) -> None:
        """Prime the table cache (and the connection pool with it)"""
        await self.schema_cache.get_tables()

    async def list_tables(self) -> Tuple[TableInfo, ...]:
        """List base tables in the configured schema"""
        return await self.schema_manager.list_tables()

    async def describe_table(self, table_name: str) -> TableDescription:
        """Get columns and primary key for a specific table"""
        return await self.schema_manager.describe_table(table_name)

    async def get_database_context(self, max_tables: Optional[int] = None) -> DatabaseSnapshot:
        """Get tables plus every primary and foreign key in the schema"""
        return await self.schema_manager.get_context(max_tables)

    async def get_foreign_keys(self) -> Tuple[ForeignKeyInfo, ...]:
        """Get foreign key relationships inside the schema"""
        return await self.schema_manager.get_foreign_keys()

    async def run_select(self, sql: str, max_rows: Optional[int] = None) -> QueryResult:
        """Guard, cap and run an agent-supplied read-only query"""
        decision = self.query_guard.classify(sql)
        if not decision.accepted:
            raise QueryRejected(decision.reason)
        return await self.query_executor.run(decision.normalized, max_rows)

    def clear_cache(self) -> None:
        """Drop cached table and column metadata"""
        self.schema_cache.clear()

    async def close(self) -> None:
        """Release the connection pool"""
        await self.db_connector.close()


__all__ = ["DatabaseContext", "DEFAULT_SCHEMA"]
