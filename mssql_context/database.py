import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Set

import aioodbc
import pyodbc

from .errors import DatabaseError
from .utils import bind_named_params, sqlstate_of

logger = logging.getLogger(__name__)


def _to_database_error(exc: pyodbc.Error) -> DatabaseError:
    sqlstate = sqlstate_of(exc)
    message = exc.args[1] if sqlstate and len(exc.args) > 1 else str(exc)
    return DatabaseError(str(message), sqlstate=sqlstate)


class PooledSession:
    """A connection checked out of the pool for a unit of work."""

    def __init__(self, conn):
        self._conn = conn
        self.invalidated = False
        self.connection_lost = False

    async def _run(self, text: str, params: Optional[Mapping[str, Any]], fetch: bool):
        sql, args = bind_named_params(text, params)
        cursor = None
        try:
            cursor = await self._conn.cursor()
            await cursor.execute(sql, *args)
            if fetch:
                return await self._fetch_rows(cursor)
            return None
        except pyodbc.Error as e:
            error = _to_database_error(e)
            if error.connection_lost:
                self.connection_lost = True
                self.invalidate()
            raise error from e
        finally:
            if cursor is not None:
                try:
                    await cursor.close()
                except pyodbc.Error as e:
                    logger.debug("Error closing cursor: %s", e)

    @staticmethod
    async def _fetch_rows(cursor) -> List[Dict[str, Any]]:
        # Skip leading row-count-only results until one with columns appears.
        while cursor.description is None:
            if not await cursor.nextset():
                return []
        columns = [desc[0] for desc in cursor.description]
        rows = await cursor.fetchall()
        return [dict(zip(columns, row)) for row in rows]

    async def query(self, text: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        return await self._run(text, params, fetch=True)

    async def execute(self, text: str) -> None:
        await self._run(text, None, fetch=False)

    def invalidate(self) -> None:
        """Close the connection instead of returning it to the pool."""
        self.invalidated = True


class DatabaseConnector:
    def __init__(
        self,
        connection_string: str,
        pool_min: int = 0,
        pool_max: int = 10,
        connect_timeout: int = 15,
    ):
        """Create a new connector. The pool is opened lazily on first use.

        Args:
            connection_string: ODBC connection string for SQL Server
            pool_min: Connections kept open while idle
            pool_max: Upper bound on concurrently open connections
            connect_timeout: Login timeout in seconds
        """
        self.connection_string = connection_string
        self.pool_min = pool_min
        self.pool_max = pool_max
        self.connect_timeout = connect_timeout
        self._pool = None
        self._pool_lock = asyncio.Lock()
        self._closing_pools: Set[asyncio.Task] = set()

    async def initialize_pool(self):
        """Initialize the connection pool"""
        async with self._pool_lock:
            if self._pool is None:
                logger.info("Creating connection pool...")
                try:
                    self._pool = await aioodbc.create_pool(
                        dsn=self.connection_string,
                        minsize=self.pool_min,
                        maxsize=self.pool_max,
                        autocommit=True,
                        timeout=self.connect_timeout,
                    )
                except pyodbc.Error as e:
                    logger.error("Error creating connection pool: %s", e)
                    raise _to_database_error(e) from e
                logger.info("Database connection pool initialized")
            return self._pool

    def _discard_pool(self, pool) -> None:
        """Drop an unhealthy pool so the next request builds a fresh one."""
        if self._pool is not pool:
            return
        logger.error("Discarding database connection pool after a connection failure")
        self._pool = None
        pool.close()
        task = asyncio.ensure_future(pool.wait_closed())
        self._closing_pools.add(task)
        task.add_done_callback(self._closing_pools.discard)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PooledSession]:
        """Check out one connection; it is returned to the pool on exit."""
        pool = await self.initialize_pool()
        try:
            conn = await pool.acquire()
        except pyodbc.Error as e:
            logger.error("Error acquiring connection from pool: %s", e)
            self._discard_pool(pool)
            raise _to_database_error(e) from e

        session = PooledSession(conn)
        try:
            yield session
        finally:
            if session.invalidated:
                try:
                    await conn.close()
                except pyodbc.Error as e:
                    logger.warning("Error closing invalidated connection: %s", e)
            await pool.release(conn)
            if session.connection_lost:
                self._discard_pool(pool)

    async def query(self, text: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run one statement with named ``@param`` values and return rows as dicts."""
        async with self.session() as session:
            return await session.query(text, params)

    async def close(self) -> None:
        """Close the connection pool"""
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            await pool.wait_closed()
            logger.info("Connection pool closed")
        if self._closing_pools:
            await asyncio.gather(*self._closing_pools, return_exceptions=True)
