"""Lexical read-only guard for agent-supplied SQL.

The guard is a conservative filter, not a parser: comments are blanked out,
a single trailing terminator is tolerated, the statement must open with
``SELECT`` or ``WITH`` and no write / execution keyword may appear anywhere,
including inside subqueries and CTEs. The database login is expected to be
read-only as well.

``strict=True`` adds a sqlparse token pass that fails closed on anything it
cannot classify as a single SELECT.
"""
import logging
import re
from typing import Optional

import sqlparse
from sqlparse import tokens as T

from ..models import GuardDecision

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "MERGE",
    "EXEC",
    "EXECUTE",
    "GRANT",
    "REVOKE",
    "DENY",
    "WAITFOR",
    "DBCC",
    "OPENROWSET",
    "OPENDATASOURCE",
    "BULK",
    "SHUTDOWN",
)

REASON_MULTIPLE_STATEMENTS = "multiple statements not allowed"
REASON_NOT_SELECT = "only SELECT/WITH statements allowed"
REASON_FORBIDDEN = "forbidden keyword detected"
REASON_UNRECOGNIZED = "statement could not be classified as a single SELECT"

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"--[^\n]*")
_LEADING_KEYWORD = re.compile(r"(SELECT|WITH)\b")
_FORBIDDEN = re.compile(r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b")
_INTO = re.compile(r"\bINTO\b")


def strip_comments(sql: str) -> str:
    """Blank out ``/* */`` and ``--`` comments (not nesting-aware)."""
    return _LINE_COMMENT.sub(" ", _BLOCK_COMMENT.sub(" ", sql))


class QueryGuard:
    def __init__(self, strict: bool = False):
        self.strict = strict

    def classify(self, text: str) -> GuardDecision:
        """Classify ``text`` as a single read-only statement or reject it with a reason.

        The accepted text keeps its original case and formatting, minus
        comments, the trailing terminator and surrounding whitespace.
        """
        query = strip_comments(text or "").strip()

        if ";" in query:
            if not (query.endswith(";") and query.count(";") == 1):
                return self._reject(REASON_MULTIPLE_STATEMENTS)
            query = query[:-1].rstrip()

        upper = query.upper()

        if not _LEADING_KEYWORD.match(upper):
            return self._reject(REASON_NOT_SELECT)

        forbidden = _FORBIDDEN.search(upper)
        if forbidden:
            return self._reject(f"{REASON_FORBIDDEN}: {forbidden.group(1)}")

        if _INTO.search(upper):
            return self._reject(f"{REASON_FORBIDDEN}: INTO")

        if self.strict:
            reason = self._token_check(query)
            if reason:
                return self._reject(reason)

        return GuardDecision(accepted=True, normalized=query)

    @staticmethod
    def _token_check(query: str) -> Optional[str]:
        statements = [s for s in sqlparse.parse(query) if s.token_first(skip_cm=True) is not None]
        if len(statements) != 1:
            return REASON_MULTIPLE_STATEMENTS

        stmt = statements[0]
        if stmt.get_type() != "SELECT":
            return REASON_NOT_SELECT

        for token in stmt.flatten():
            if token.ttype in T.Error:
                return f"{REASON_UNRECOGNIZED} (unexpected {token.value!r})"
        return None

    @staticmethod
    def _reject(reason: str) -> GuardDecision:
        logger.info("Query rejected by guard: %s", reason)
        return GuardDecision(accepted=False, reason=reason)
