import logging
from typing import Optional

from ..errors import DatabaseError, ExecutionFailure
from ..models import QueryResult, SqlExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 100
MAX_ROWS_LIMIT = 200


def clamp_max_rows(max_rows: Optional[int]) -> int:
    """Map a requested row cap into ``[1, MAX_ROWS_LIMIT]``; unset or non-positive means the default."""
    if max_rows is None or max_rows < 1:
        return DEFAULT_MAX_ROWS
    return min(int(max_rows), MAX_ROWS_LIMIT)


class BoundedExecutor:
    """Runs guard-accepted statements under a server-side ``SET ROWCOUNT`` cap.

    The cap is applied on the same pooled connection as the statement and is
    reset on every exit path together with NOCOUNT, so a reused connection
    never inherits either setting.
    Failures are not retried.
    """

    def __init__(self, db_connector: SqlExecutor):
        self.db_connector = db_connector

    async def run(self, accepted_text: str, max_rows: Optional[int] = None) -> QueryResult:
        cap = clamp_max_rows(max_rows)
        try:
            async with self.db_connector.session() as session:
                try:
                    await session.execute("SET NOCOUNT ON")
                    # cap is a clamped int; SET ROWCOUNT must run as a plain batch
                    # (not a prepared statement) to stay in effect for the session
                    await session.execute(f"SET ROWCOUNT {cap}")
                    rows = await session.query(accepted_text)
                finally:
                    await self._reset_session_options(session)
        except DatabaseError as e:
            logger.warning("Query execution failed: %s", e)
            raise ExecutionFailure(str(e)) from e

        return QueryResult(row_count=len(rows), capped_at=cap, rows=rows)

    @staticmethod
    async def _reset_session_options(session) -> None:
        try:
            await session.execute("SET ROWCOUNT 0")
            await session.execute("SET NOCOUNT OFF")
        except DatabaseError as e:
            # Connection can't be trusted to carry the limit; keep it out of the pool.
            logger.error("Could not reset session options, discarding connection: %s", e)
            session.invalidate()
