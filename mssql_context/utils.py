"""Utility helpers for the mssql-mcp-server package.

Currently provides:
    - to_json: Render tool payloads as JSON text, including the driver types
      (Decimal, datetime, UUID, bytes) that the json module rejects.
    - bind_named_params: Rebind ``@name`` markers to ODBC ``?`` placeholders so
      metadata queries can be written with named parameters.
    - build_connection_string: Assemble an ODBC connection string for SQL Server.
    - sqlstate_of / is_connection_sqlstate: Inspect driver error SQLSTATEs.

None of these import the ODBC driver, so they can be used (and tested) without
an ODBC installation.
"""
from __future__ import annotations

import datetime
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

__all__ = [
    "to_json",
    "bind_named_params",
    "build_connection_string",
    "sqlstate_of",
    "is_connection_sqlstate",
]

_NAMED_PARAM = re.compile(r"(?<![@\w])@([A-Za-z_]\w*)")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value) if value.is_finite() else str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(payload: Any) -> str:
    """Serialize a tool payload the way it is shown to the agent (indented JSON)."""
    return json.dumps(payload, indent=2, default=_json_default)


def bind_named_params(text: str, params: Optional[Mapping[str, Any]] = None) -> Tuple[str, List[Any]]:
    """Replace ``@name`` markers with ``?`` and return the positional values.

    Text is returned untouched when no parameters are given, so statements
    written by the agent are never rewritten. ``@@GLOBALS`` are not markers.

    Raises
    ------
    ValueError
        If a marker has no value in ``params``.
    """
    if not params:
        return text, []

    values: List[Any] = []

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in params:
            raise ValueError(f"No value supplied for query parameter @{name}")
        values.append(params[name])
        return "?"

    return _NAMED_PARAM.sub(_replace, text), values


def _odbc_value(value: str) -> str:
    if any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(
    server: str,
    database: str,
    user: Optional[str] = None,
    password: Optional[str] = None,
    port: int = 1433,
    driver: str = "ODBC Driver 18 for SQL Server",
    encrypt: bool = True,
    trust_server_certificate: bool = False,
    connect_timeout: int = 15,
) -> str:
    """Build an ODBC connection string for SQL Server / Azure SQL."""
    if not server:
        raise ValueError("A database server name is required")
    parts: Dict[str, str] = {
        "DRIVER": "{" + driver + "}",
        "SERVER": f"tcp:{server},{int(port)}",
        "DATABASE": _odbc_value(database or ""),
    }
    if user:
        parts["UID"] = _odbc_value(user)
        parts["PWD"] = _odbc_value(password or "")
    parts["Encrypt"] = "yes" if encrypt else "no"
    parts["TrustServerCertificate"] = "yes" if trust_server_certificate else "no"
    parts["Connection Timeout"] = str(int(connect_timeout))
    return ";".join(f"{key}={value}" for key, value in parts.items()) + ";"


def sqlstate_of(exc: BaseException) -> Optional[str]:
    """Return the SQLSTATE of an ODBC error (``args[0]``), if it carries one."""
    args = getattr(exc, "args", ())
    if len(args) >= 2 and isinstance(args[0], str) and len(args[0]) == 5:
        return args[0]
    return None


def is_connection_sqlstate(sqlstate: Optional[str]) -> bool:
    # Class 08 is "connection exception"; HYT01 is a connection timeout.
    if not sqlstate:
        return False
    return sqlstate.startswith("08") or sqlstate == "HYT01"
