import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from mssql_context import DEFAULT_SCHEMA, DatabaseContext
from mssql_context.database import DatabaseConnector
from mssql_context.tools import register_tools
from mssql_context.utils import build_connection_string

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


DB_CONNECTION_STRING = os.getenv('DB_CONNECTION_STRING')  # Full ODBC string; overrides the parts below
DB_SERVER = os.getenv('DB_SERVER', '')  # e.g. myserver.database.windows.net
DB_PORT = int(os.getenv('DB_PORT', '1433'))
DB_NAME = os.getenv('DB_NAME', '')
DB_USER = os.getenv('DB_USER')
DB_PASSWORD = os.getenv('DB_PASSWORD')
DB_ODBC_DRIVER = os.getenv('DB_ODBC_DRIVER', 'ODBC Driver 18 for SQL Server')
DB_ENCRYPT = _env_flag('DB_ENCRYPT', 'true')
DB_TRUST_SERVER_CERTIFICATE = _env_flag('DB_TRUST_SERVER_CERTIFICATE', 'false')
DB_CONNECT_TIMEOUT = int(os.getenv('DB_CONNECT_TIMEOUT', '15'))
DB_POOL_MAX = int(os.getenv('DB_POOL_MAX', '10'))
DB_SCHEMA = os.getenv('DB_SCHEMA', DEFAULT_SCHEMA)
SQL_GUARD_STRICT = _env_flag('SQL_GUARD_STRICT', 'false')
MCP_TRANSPORT = os.getenv('MCP_TRANSPORT', 'stdio')  # stdio | streamable-http
HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', '3000'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# stdout carries the stdio transport; diagnostics go to stderr
logging.basicConfig(
    stream=sys.stderr,
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("mssql_mcp_server")


def resolve_connection_string() -> str:
    if DB_CONNECTION_STRING:
        return DB_CONNECTION_STRING
    if not DB_SERVER:
        raise ValueError(
            "DB_CONNECTION_STRING or DB_SERVER environment variable is required. Set it in .env file or environment."
        )
    return build_connection_string(
        server=DB_SERVER,
        database=DB_NAME,
        user=DB_USER,
        password=DB_PASSWORD,
        port=DB_PORT,
        driver=DB_ODBC_DRIVER,
        encrypt=DB_ENCRYPT,
        trust_server_certificate=DB_TRUST_SERVER_CERTIFICATE,
        connect_timeout=DB_CONNECT_TIMEOUT,
    )


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[DatabaseContext]:
    """Manage application lifecycle and ensure DatabaseContext is properly initialized"""
    logger.info("App lifespan initialising")
    db_connector = DatabaseConnector(
        resolve_connection_string(),
        pool_max=DB_POOL_MAX,
        connect_timeout=DB_CONNECT_TIMEOUT,
    )
    db_context = DatabaseContext(db_connector, schema=DB_SCHEMA, strict_guard=SQL_GUARD_STRICT)

    try:
        logger.info("Priming database metadata for schema %s...", DB_SCHEMA)
        await db_context.initialize()
        logger.info("Cache ready!")
        yield db_context
    finally:
        logger.info("Closing database connections...")
        await db_context.close()
        logger.info("Database connections closed")


mcp = register_tools(FastMCP("adventureworks-manager", lifespan=app_lifespan, host=HOST, port=PORT))


def main() -> None:
    mcp.run(transport=MCP_TRANSPORT)


if __name__ == "__main__":
    main()
