import json

import pytest
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from mssql_context import tools

pytestmark = pytest.mark.asyncio

EXPECTED_TOOLS = {
    "db.describeTable",
    "db.getDatabaseContext",
    "db.listTables",
    "db.listRelationships",
    "db.select",
    "sys.echo",
}


@pytest.fixture
def server():
    return tools.register_tools(FastMCP("test-server"))


async def test_all_tools_registered_read_only(server):
    listed = await server.list_tools()

    assert {t.name for t in listed} == EXPECTED_TOOLS
    assert all(t.annotations.readOnlyHint is True for t in listed)


async def test_input_schemas(server):
    listed = {t.name: t for t in await server.list_tools()}

    describe = listed["db.describeTable"].inputSchema
    assert describe["required"] == ["tableName"]
    assert describe["properties"]["tableName"]["minLength"] == 1

    select = listed["db.select"].inputSchema
    assert select["required"] == ["sql"]
    assert select["properties"]["sql"]["minLength"] == 1
    max_rows = [s for s in select["properties"]["maxRows"]["anyOf"] if s.get("type") == "integer"][0]
    assert (max_rows["minimum"], max_rows["maximum"]) == (1, 200)

    context = listed["db.getDatabaseContext"].inputSchema
    assert "required" not in context or context["required"] == []
    assert "ctx" not in context["properties"]


async def test_describe_table_tool(tool_ctx):
    payload = json.loads(await tools.describe_table("CustomerAddress", tool_ctx))

    assert payload["tableName"] == "CustomerAddress"
    assert [pk["columnName"] for pk in payload["primaryKeys"]] == ["CustomerID", "AddressID"]
    assert len(payload["columns"]) == 3


async def test_describe_table_tool_reports_missing_table(tool_ctx):
    with pytest.raises(ToolError, match="Table not found or not allowed: SalesLT.Person"):
        await tools.describe_table("Person", tool_ctx)


async def test_get_database_context_tool(tool_ctx):
    payload = json.loads(await tools.get_database_context(tool_ctx, maxTables=2))

    assert set(payload) == {"schema", "tables", "primaryKeys", "foreignKeys", "note"}
    assert payload["schema"] == "SalesLT"
    assert [t["tableName"] for t in payload["tables"]] == ["Address", "Customer"]
    assert len(payload["primaryKeys"]) == 5
    assert payload["note"] == tools.CONTEXT_NOTE


async def test_get_database_context_tool_rejects_bad_limit(tool_ctx):
    with pytest.raises(ToolError, match="maxTables"):
        await tools.get_database_context(tool_ctx, maxTables=500)


async def test_list_tables_and_relationships_tools(tool_ctx):
    tables = json.loads(await tools.list_tables(tool_ctx))
    relationships = json.loads(await tools.list_relationships(tool_ctx))

    assert tables[0] == {"tableName": "Address", "schema": "SalesLT"}
    assert {fk["toTable"] for fk in relationships} == {"ProductCategory", "Product"}


async def test_select_tool(tool_ctx, fake_connector):
    payload = json.loads(await tools.select("SELECT ProductID, Name FROM SalesLT.Product;", tool_ctx, maxRows=3))

    assert payload == {
        "rowCount": 3,
        "cappedAt": 3,
        "data": [{"ProductID": i, "Name": f"Product {i}"} for i in (1, 2, 3)],
    }
    assert "SELECT ProductID, Name FROM SalesLT.Product" in fake_connector.statements


async def test_select_tool_default_cap(tool_ctx):
    payload = json.loads(await tools.select("SELECT * FROM SalesLT.Product", tool_ctx))
    assert payload["cappedAt"] == 100
    assert payload["rowCount"] == 100


@pytest.mark.parametrize("sql,reason", [
    ("SELECT 1; DELETE FROM SalesLT.Product", "multiple statements not allowed"),
    ("EXEC sp_who", "only SELECT/WITH statements allowed"),
    ("SELECT * INTO NewTable FROM SalesLT.Product", "forbidden keyword detected: INTO"),
])
async def test_select_tool_rejections_never_reach_database(tool_ctx, fake_connector, sql, reason):
    with pytest.raises(ToolError) as exc:
        await tools.select(sql, tool_ctx)

    assert str(exc.value) == f"Query rejected: {reason}"
    assert fake_connector.sessions == []


async def test_select_tool_execution_failure(tool_ctx, fake_connector):
    fake_connector.fail_query = "Invalid column name 'Nope'."

    with pytest.raises(ToolError, match="SQL Error: Invalid column name 'Nope'."):
        await tools.select("SELECT Nope FROM SalesLT.Product", tool_ctx)
    assert fake_connector.statements[-2:] == ["SET ROWCOUNT 0", "SET NOCOUNT OFF"]


async def test_echo_tool():
    text = await tools.echo("ping")
    assert text.startswith("Server is LIVE! Message: ping. Time: ")
