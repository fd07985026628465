"""Metadata queries for SQL Server. Identifiers are bound as ``@schema`` / ``@tableName`` parameters."""

TABLES_QUERY = """
SELECT
    TABLE_NAME AS tableName,
    TABLE_SCHEMA AS [schema]
FROM INFORMATION_SCHEMA.TABLES
WHERE TABLE_SCHEMA = @schema
  AND TABLE_TYPE = 'BASE TABLE'
ORDER BY TABLE_NAME
"""

COLUMNS_QUERY = """
SELECT
    COLUMN_NAME AS columnName,
    DATA_TYPE AS dataType,
    CAST(IS_NULLABLE AS varchar(3)) AS isNullable,
    CHARACTER_MAXIMUM_LENGTH AS maxLength,
    NUMERIC_PRECISION AS precision,
    NUMERIC_SCALE AS scale
FROM INFORMATION_SCHEMA.COLUMNS
WHERE TABLE_SCHEMA = @schema
  AND TABLE_NAME = @tableName
ORDER BY ORDINAL_POSITION
"""

PRIMARY_KEYS_QUERY = """
SELECT
    tc.TABLE_NAME AS tableName,
    kcu.COLUMN_NAME AS columnName,
    kcu.ORDINAL_POSITION AS keyOrdinal
FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
  ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
 AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
 AND tc.TABLE_NAME = kcu.TABLE_NAME
WHERE tc.TABLE_SCHEMA = @schema
  AND tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
ORDER BY tc.TABLE_NAME, kcu.ORDINAL_POSITION
"""

# INFORMATION_SCHEMA does not expose FK column pairs reliably, hence sys.*.
# Both sides must be in the configured schema.
FOREIGN_KEYS_QUERY = """
SELECT
    fk.name AS fkName,
    sp.name AS fromSchema,
    tp.name AS fromTable,
    cp.name AS fromColumn,
    sr.name AS toSchema,
    tr.name AS toTable,
    cr.name AS toColumn
FROM sys.foreign_keys fk
JOIN sys.foreign_key_columns fkc
  ON fkc.constraint_object_id = fk.object_id
JOIN sys.tables tp
  ON tp.object_id = fkc.parent_object_id
JOIN sys.columns cp
  ON cp.object_id = tp.object_id
 AND cp.column_id = fkc.parent_column_id
JOIN sys.tables tr
  ON tr.object_id = fkc.referenced_object_id
JOIN sys.columns cr
  ON cr.object_id = tr.object_id
 AND cr.column_id = fkc.referenced_column_id
JOIN sys.schemas sp
  ON sp.schema_id = tp.schema_id
JOIN sys.schemas sr
  ON sr.schema_id = tr.schema_id
WHERE sp.name = @schema
  AND sr.name = @schema
ORDER BY fromTable, fkName, fromColumn
"""
