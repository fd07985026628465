from dataclasses import dataclass
from typing import Any, AsyncContextManager, Dict, List, Mapping, Optional, Protocol, Tuple


@dataclass(frozen=True)
class TableInfo:
    table_name: str
    schema: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TableInfo":
        return cls(table_name=row["tableName"], schema=row["schema"])

    def to_dict(self) -> Dict[str, Any]:
        return {"tableName": self.table_name, "schema": self.schema}


@dataclass(frozen=True)
class ColumnInfo:
    column_name: str
    data_type: str
    is_nullable: str  # "YES" | "NO", as reported by INFORMATION_SCHEMA
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ColumnInfo":
        return cls(
            column_name=row["columnName"],
            data_type=row["dataType"],
            is_nullable=row["isNullable"],
            max_length=row.get("maxLength"),
            precision=row.get("precision"),
            scale=row.get("scale"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnName": self.column_name,
            "dataType": self.data_type,
            "isNullable": self.is_nullable,
            "maxLength": self.max_length,
            "precision": self.precision,
            "scale": self.scale,
        }


@dataclass(frozen=True)
class PrimaryKeyInfo:
    table_name: str
    column_name: str
    key_ordinal: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PrimaryKeyInfo":
        return cls(
            table_name=row["tableName"],
            column_name=row["columnName"],
            key_ordinal=int(row["keyOrdinal"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableName": self.table_name,
            "columnName": self.column_name,
            "keyOrdinal": self.key_ordinal,
        }


_FK_COLUMNS = {
    "fk_name": "fkName",
    "from_schema": "fromSchema",
    "from_table": "fromTable",
    "from_column": "fromColumn",
    "to_schema": "toSchema",
    "to_table": "toTable",
    "to_column": "toColumn",
}


@dataclass(frozen=True)
class ForeignKeyInfo:
    fk_name: str
    from_schema: str
    from_table: str
    from_column: str
    to_schema: str
    to_table: str
    to_column: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ForeignKeyInfo":
        return cls(**{field: row[key] for field, key in _FK_COLUMNS.items()})

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, field) for field, key in _FK_COLUMNS.items()}


@dataclass(frozen=True)
class TableDescription:
    table_name: str
    columns: Tuple[ColumnInfo, ...]
    primary_keys: Tuple[PrimaryKeyInfo, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tableName": self.table_name,
            "columns": [c.to_dict() for c in self.columns],
            "primaryKeys": [pk.to_dict() for pk in self.primary_keys],
        }


@dataclass(frozen=True)
class DatabaseSnapshot:
    schema: str
    tables: Tuple[TableInfo, ...]
    primary_keys: Tuple[PrimaryKeyInfo, ...]
    foreign_keys: Tuple[ForeignKeyInfo, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema,
            "tables": [t.to_dict() for t in self.tables],
            "primaryKeys": [pk.to_dict() for pk in self.primary_keys],
            "foreignKeys": [fk.to_dict() for fk in self.foreign_keys],
        }


@dataclass(frozen=True)
class GuardDecision:
    accepted: bool
    normalized: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class QueryResult:
    row_count: int
    capped_at: int
    rows: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {"rowCount": self.row_count, "cappedAt": self.capped_at, "data": self.rows}


class SqlSession(Protocol):
    """One pooled connection, held for the duration of a multi-statement unit of work"""
    async def query(self, text: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]: ...
    async def execute(self, text: str) -> None: ...
    def invalidate(self) -> None: ...


class SqlExecutor(Protocol):
    """Protocol defining the interface the schema and query layers need from the database"""
    async def query(self, text: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]: ...
    def session(self) -> AsyncContextManager[SqlSession]: ...
    async def close(self) -> None: ...
