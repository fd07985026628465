"""MCP tool surface.

Handlers read the :class:`DatabaseContext` from the server lifespan and
return JSON text. Agent-facing failures are raised as ``ToolError`` so the
client receives an error result carrying a one-line reason.
"""
import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations
from pydantic import Field

from . import DatabaseContext
from .errors import DbContextError
from .utils import to_json

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True)
CONTEXT_NOTE = "All results are filtered to the configured schema."


def _db_context(ctx: Context) -> DatabaseContext:
    return ctx.request_context.lifespan_context


async def describe_table(
    tableName: Annotated[str, Field(min_length=1, description="Table name, e.g. 'Product'")],
    ctx: Context,
) -> str:
    """Returns columns and primary keys for a specific table. Use before writing queries."""
    db_context = _db_context(ctx)
    try:
        description = await db_context.describe_table(tableName)
    except DbContextError as e:
        raise ToolError(str(e)) from e
    return to_json(description.to_dict())


async def get_database_context(
    ctx: Context,
    maxTables: Optional[Annotated[int, Field(ge=1, le=200, description="Limit number of tables returned.")]] = None,
) -> str:
    """Returns tables, primary keys, and foreign key relationships. Use at the start to understand the DB structure."""
    db_context = _db_context(ctx)
    try:
        snapshot = await db_context.get_database_context(maxTables)
    except DbContextError as e:
        raise ToolError(str(e)) from e
    payload = snapshot.to_dict()
    payload["note"] = CONTEXT_NOTE
    return to_json(payload)


async def list_tables(ctx: Context) -> str:
    """Returns all base tables in the configured schema. Use this first to see what data is available."""
    db_context = _db_context(ctx)
    try:
        tables = await db_context.list_tables()
    except DbContextError as e:
        raise ToolError(str(e)) from e
    return to_json([t.to_dict() for t in tables])


async def list_relationships(ctx: Context) -> str:
    """Returns foreign keys so the agent can understand how to JOIN tables correctly."""
    db_context = _db_context(ctx)
    try:
        foreign_keys = await db_context.get_foreign_keys()
    except DbContextError as e:
        raise ToolError(str(e)) from e
    return to_json([fk.to_dict() for fk in foreign_keys])


async def select(
    sql: Annotated[str, Field(min_length=1)],
    ctx: Context,
    maxRows: Optional[Annotated[int, Field(ge=1, le=200, description="Max rows (default 100, max 200)")]] = None,
) -> str:
    """Executes a read-only SELECT (or WITH..SELECT) query. Rows capped server-side. Single statement only."""
    db_context = _db_context(ctx)
    try:
        result = await db_context.run_select(sql, maxRows)
    except DbContextError as e:
        raise ToolError(str(e)) from e
    return to_json(result.to_dict())


async def echo(message: Annotated[str, Field(description="The message to echo back")]) -> str:
    """Returns the input string to verify the connection is working."""
    now = datetime.now(timezone.utc).isoformat()
    return f"Server is LIVE! Message: {message}. Time: {now}"


def register_tools(mcp: FastMCP) -> FastMCP:
    """Register every tool on ``mcp``; all of them are read-only."""
    mcp.tool(name="db.describeTable", title="Describe table structure", annotations=READ_ONLY)(describe_table)
    mcp.tool(
        name="db.getDatabaseContext",
        title="Get complete database schema context",
        annotations=READ_ONLY,
    )(get_database_context)
    mcp.tool(name="db.listTables", title="List database tables", annotations=READ_ONLY)(list_tables)
    mcp.tool(
        name="db.listRelationships",
        title="List foreign key relationships",
        annotations=READ_ONLY,
    )(list_relationships)
    mcp.tool(name="db.select", title="Execute dynamic SELECT query", annotations=READ_ONLY)(select)
    mcp.tool(name="sys.echo", title="Echo Test", annotations=READ_ONLY)(echo)
    logger.debug("Registered MCP tools")
    return mcp
