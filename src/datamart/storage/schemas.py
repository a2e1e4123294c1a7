"""
DuckDB schema definitions for the reporting data mart.

The tables are populated by the ingestion pipeline; this module only creates
them (for local databases and tests) and checks that a live database matches
the codified layout.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from duckdb import DuckDBPyConnection

from datamart.config.schemas.tables import DATAMART_SCHEMA, TABLE_SCHEMAS, TableSchema

SCHEMAS = (DATAMART_SCHEMA,)
log = logging.getLogger(__name__)


def _quote(identifier: str) -> str:
    """
    Quote an identifier for DuckDB.

    Returns
    -------
    str
        Identifier wrapped in double quotes with internal quotes escaped.
    """
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def _column_lines(table: TableSchema) -> list[str]:
    col_lines: list[str] = []
    for col in table.columns:
        nullable_sql = "" if col.nullable else " NOT NULL"
        default_sql = f" DEFAULT {col.default}" if col.default is not None else ""
        col_lines.append(f"    {_quote(col.name)} {col.type}{nullable_sql}{default_sql}")
    if table.primary_key:
        pk_cols = ", ".join(_quote(col) for col in table.primary_key)
        col_lines.append(f"    PRIMARY KEY ({pk_cols})")
    return col_lines


def _build_table_ddl(table: TableSchema) -> str:
    """
    Generate CREATE TABLE DDL from a TableSchema.

    Returns
    -------
    str
        CREATE TABLE IF NOT EXISTS statement for the provided schema.
    """
    cols_sql = ",\n".join(_column_lines(table))
    return (
        f"CREATE TABLE IF NOT EXISTS {_quote(table.schema)}.{_quote(table.name)} (\n"
        f"{cols_sql}\n"
        ");"
    )


def _build_drop_ddl(table: TableSchema) -> str:
    return f"DROP TABLE IF EXISTS {_quote(table.schema)}.{_quote(table.name)};"


TABLE_DDL: dict[str, str] = {key: _build_table_ddl(schema) for key, schema in TABLE_SCHEMAS.items()}


def _build_index_ddl(table: TableSchema) -> list[str]:
    statements: list[str] = []
    for index in table.indexes:
        columns = ", ".join(_quote(col) for col in index.columns)
        uniqueness = "UNIQUE " if index.unique else ""
        statements.append(
            f"CREATE {uniqueness}INDEX IF NOT EXISTS {_quote(index.name)} "
            f"ON {_quote(table.schema)}.{_quote(table.name)}({columns});"
        )
    return statements


INDEX_DDL: tuple[str, ...] = tuple(
    ddl for schema in TABLE_SCHEMAS.values() for ddl in _build_index_ddl(schema)
)


def create_schemas(con: DuckDBPyConnection) -> None:
    """Ensure the logical data mart schema exists."""
    for schema in SCHEMAS:
        con.execute(f"CREATE SCHEMA IF NOT EXISTS {schema};")


def apply_all_schemas(
    con: DuckDBPyConnection,
    *,
    recreate: bool = False,
    extra_ddl: Iterable[str] | None = None,
) -> None:
    """
    Create all data mart tables and indexes in the current DuckDB database.

    Parameters
    ----------
    con:
        Writable DuckDB connection.
    recreate:
        When True, drop existing tables first (destroys data).
    extra_ddl:
        Additional statements executed after the codified DDL.
    """
    create_schemas(con)
    if recreate:
        for table in reversed(list(TABLE_SCHEMAS.values())):
            con.execute(_build_drop_ddl(table))

    for ddl in TABLE_DDL.values():
        con.execute(ddl)

    for ddl in INDEX_DDL:
        con.execute(ddl)

    if extra_ddl:
        for stmt in extra_ddl:
            con.execute(stmt)
    log.debug("Applied %d data mart table definitions", len(TABLE_DDL))


def assert_schema_alignment(
    con: DuckDBPyConnection,
    *,
    strict: bool = True,
    logger: logging.Logger | None = None,
) -> list[str]:
    """
    Validate that the live DuckDB schema matches the codified TABLE_SCHEMAS.

    Returns
    -------
    list[str]
        Human-readable drift messages; empty when aligned.

    Raises
    ------
    RuntimeError
        If strict is True and schema drift is detected.
    """
    issues: list[str] = []
    for table in TABLE_SCHEMAS.values():
        rows = con.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = ? AND table_name = ?
            ORDER BY ordinal_position
            """,
            [table.schema, table.name],
        ).fetchall()
        actual = [row[0] for row in rows]
        expected = table.column_names()
        if actual != expected:
            issues.append(f"{table.fq_name}: expected {expected} got {actual}")

    if issues:
        message = "; ".join(issues)
        logref = logger or log
        logref.error("Schema drift detected: %s", message)
        if strict:
            error_message = f"Schema drift detected: {message}"
            raise RuntimeError(error_message)
    return issues
