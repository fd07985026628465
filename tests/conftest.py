import asyncio
import os
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
import pytest_asyncio

from mssql_context import DatabaseContext
from mssql_context.errors import DatabaseError
from mssql_context.schema.queries import (
    COLUMNS_QUERY,
    FOREIGN_KEYS_QUERY,
    PRIMARY_KEYS_QUERY,
    TABLES_QUERY,
)

DB_CONN_ENV = "DB_CONNECTION_STRING"
DEFAULT_CONN = os.getenv(DB_CONN_ENV)

SCHEMA = "SalesLT"

TABLE_ROWS = [
    {"tableName": name, "schema": SCHEMA}
    for name in ("Address", "Customer", "CustomerAddress", "Product", "ProductCategory", "SalesOrderDetail")
]

COLUMN_ROWS = {
    "Product": [
        {"columnName": "ProductID", "dataType": "int", "isNullable": "NO", "maxLength": None, "precision": 10, "scale": 0},
        {"columnName": "Name", "dataType": "nvarchar", "isNullable": "NO", "maxLength": 50, "precision": None, "scale": None},
        {"columnName": "ListPrice", "dataType": "money", "isNullable": "NO", "maxLength": None, "precision": 19, "scale": 4},
        {"columnName": "ProductCategoryID", "dataType": "int", "isNullable": "YES", "maxLength": None, "precision": 10, "scale": 0},
    ],
    "CustomerAddress": [
        {"columnName": "CustomerID", "dataType": "int", "isNullable": "NO", "maxLength": None, "precision": 10, "scale": 0},
        {"columnName": "AddressID", "dataType": "int", "isNullable": "NO", "maxLength": None, "precision": 10, "scale": 0},
        {"columnName": "AddressType", "dataType": "nvarchar", "isNullable": "NO", "maxLength": 50, "precision": None, "scale": None},
    ],
}

# Deliberately out of key order for the composite keys.
PRIMARY_KEY_ROWS = [
    {"tableName": "CustomerAddress", "columnName": "AddressID", "keyOrdinal": 2},
    {"tableName": "Product", "columnName": "ProductID", "keyOrdinal": 1},
    {"tableName": "CustomerAddress", "columnName": "CustomerID", "keyOrdinal": 1},
    {"tableName": "SalesOrderDetail", "columnName": "SalesOrderDetailID", "keyOrdinal": 2},
    {"tableName": "SalesOrderDetail", "columnName": "SalesOrderID", "keyOrdinal": 1},
]

FOREIGN_KEY_ROWS = [
    {
        "fkName": "FK_Product_ProductCategory_ProductCategoryID",
        "fromSchema": SCHEMA, "fromTable": "Product", "fromColumn": "ProductCategoryID",
        "toSchema": SCHEMA, "toTable": "ProductCategory", "toColumn": "ProductCategoryID",
    },
    {
        "fkName": "FK_SalesOrderDetail_Product_ProductID",
        "fromSchema": SCHEMA, "fromTable": "SalesOrderDetail", "fromColumn": "ProductID",
        "toSchema": SCHEMA, "toTable": "Product", "toColumn": "ProductID",
    },
]


class FakeSession:
    """Mimics one pooled connection, honouring SET ROWCOUNT like SQL Server does."""

    def __init__(self, connector):
        self.connector = connector
        self.rowcount = 0
        self.invalidated = False

    async def execute(self, text):
        self.connector.statements.append(text)
        if text.startswith("SET ROWCOUNT"):
            limit = int(text.split()[-1])
            if limit == 0 and self.connector.fail_reset:
                raise DatabaseError("Communication link failure", sqlstate="08S01")
            self.rowcount = limit

    async def query(self, text, params=None):
        self.connector.statements.append(text)
        await asyncio.sleep(0)
        if self.connector.fail_query:
            raise DatabaseError(self.connector.fail_query, sqlstate="42S02")
        rows = [dict(r) for r in self.connector.data_rows]
        return rows[: self.rowcount] if self.rowcount else rows

    def invalidate(self):
        self.invalidated = True


class FakeConnector:
    """In-memory stand-in for DatabaseConnector that records every query."""

    def __init__(self):
        self.tables = [dict(r) for r in TABLE_ROWS]
        self.columns = {k: [dict(r) for r in v] for k, v in COLUMN_ROWS.items()}
        self.primary_keys = [dict(r) for r in PRIMARY_KEY_ROWS]
        self.foreign_keys = [dict(r) for r in FOREIGN_KEY_ROWS]
        self.data_rows = [{"ProductID": i, "Name": f"Product {i}"} for i in range(1, 301)]
        self.calls = []
        self.statements = []
        self.sessions = []
        self.fail_query = None
        self.fail_reset = False
        self.gate = None  # asyncio.Event holding metadata queries until set
        self.closed = False

    async def query(self, text, params=None):
        self.calls.append((text, dict(params or {})))
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        schema = params["schema"]
        if text == TABLES_QUERY:
            return [dict(r) for r in self.tables if r["schema"] == schema]
        if text == COLUMNS_QUERY:
            return [dict(r) for r in self.columns.get(params["tableName"], [])]
        if text == PRIMARY_KEYS_QUERY:
            return [dict(r) for r in self.primary_keys]
        if text == FOREIGN_KEYS_QUERY:
            return [dict(r) for r in self.foreign_keys]
        raise AssertionError(f"Unexpected metadata query: {text!r}")

    @asynccontextmanager
    async def session(self):
        session = FakeSession(self)
        self.sessions.append(session)
        yield session

    def count(self, query):
        return sum(1 for text, _ in self.calls if text == query)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_connector():
    return FakeConnector()


@pytest.fixture
def db_context(fake_connector):
    return DatabaseContext(fake_connector, schema=SCHEMA)


@pytest.fixture
def tool_ctx(db_context):
    """Stand-in for the FastMCP Context handed to tool functions."""
    return SimpleNamespace(request_context=SimpleNamespace(lifespan_context=db_context))


# Integration tests need a reachable SQL Server with the AdventureWorksLT sample;
# they are skipped automatically if the connection string is absent.


@pytest.fixture(scope="session")
def mssql_connection_string():
    if not DEFAULT_CONN:
        pytest.skip(f"Environment variable {DB_CONN_ENV} not set; integration tests skipped.")
    return DEFAULT_CONN


@pytest_asyncio.fixture(scope="function")
async def db_context_live(mssql_connection_string):
    """Function-scoped so the pool and its asyncio primitives share the test's event loop."""
    pytest.importorskip("aioodbc")
    from mssql_context.database import DatabaseConnector

    ctx = DatabaseContext(
        DatabaseConnector(mssql_connection_string),
        schema=os.getenv("DB_SCHEMA") or SCHEMA,
    )
    await ctx.initialize()
    try:
        yield ctx
    finally:
        await ctx.close()
