"""Errors reported back to the agent as tool results.

Every subclass of :class:`DbContextError` carries a one-line, agent-facing
message. Tools turn them into error results instead of protocol failures.
"""
from typing import Optional

from .utils import is_connection_sqlstate


class DbContextError(Exception):
    pass


class QueryRejected(DbContextError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Query rejected: {reason}")


class TableNotFound(DbContextError):
    def __init__(self, schema: str, table_name: str):
        self.schema = schema
        self.table_name = table_name
        super().__init__(f"Table not found or not allowed: {schema}.{table_name}")


class InvalidArgument(DbContextError):
    pass


class DatabaseError(DbContextError):
    """A driver error, detached from the driver's exception hierarchy."""

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        self.sqlstate = sqlstate
        super().__init__(message)

    @property
    def connection_lost(self) -> bool:
        return is_connection_sqlstate(self.sqlstate)


class ExecutionFailure(DbContextError):
    def __init__(self, message: str):
        self.detail = message
        super().__init__(f"SQL Error: {message}")
