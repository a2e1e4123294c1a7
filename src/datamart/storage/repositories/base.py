"""Shared repository helpers for DuckDB-backed storage."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from datamart.storage.gateway import DuckDBConnection

RowDict = dict[str, Any]
FETCH_BATCH_SIZE = 512


@contextmanager
def query_cursor(con: DuckDBConnection) -> Iterator[DuckDBConnection]:
    """
    Open a cursor scoped to one query sequence.

    The cursor is closed on every exit path, including when the body raises.

    Yields
    ------
    DuckDBConnection
        Cursor sharing the database of ``con``.
    """
    cursor = con.cursor()
    try:
        yield cursor
    finally:
        cursor.close()


def _columns(con: DuckDBConnection) -> list[str]:
    description = con.description or []
    return [desc[0] for desc in description]


def fetch_one_dict(con: DuckDBConnection, sql: str, params: Sequence[object]) -> RowDict | None:
    """
    Execute a query and return the first row as a mapping.

    Returns
    -------
    RowDict | None
        Mapping of column to value when a row exists; otherwise ``None``.
    """
    result = con.execute(sql, list(params))
    row = result.fetchone()
    if row is None:
        return None
    cols = _columns(result)
    return {col: row[idx] for idx, col in enumerate(cols)}


def fetch_all_dicts(con: DuckDBConnection, sql: str, params: Sequence[object]) -> list[RowDict]:
    """
    Execute a query and return all rows as mappings.

    Returns
    -------
    list[RowDict]
        List of rows represented as dictionaries keyed by column name.
    """
    result = con.execute(sql, list(params))
    rows = result.fetchall()
    cols = _columns(result)
    return [{col: row[idx] for idx, col in enumerate(cols)} for row in rows]


def fetch_scalar(con: DuckDBConnection, sql: str, params: Sequence[object]) -> Any:
    """
    Execute a single-value query.

    Returns
    -------
    Any
        First column of the first row, or ``None`` when no row is returned.
    """
    row = con.execute(sql, list(params)).fetchone()
    return None if row is None else row[0]


def iter_rows(
    con: DuckDBConnection,
    sql: str,
    params: Sequence[object],
    *,
    batch_size: int = FETCH_BATCH_SIZE,
) -> Iterator[RowDict]:
    """
    Stream query rows as mappings in fetch batches.

    Consumers may stop early; remaining rows are left unfetched.

    Yields
    ------
    RowDict
        One mapping per result row, in query order.
    """
    result = con.execute(sql, list(params))
    cols = _columns(result)
    while True:
        batch = result.fetchmany(batch_size)
        if not batch:
            return
        for row in batch:
            yield {col: row[idx] for idx, col in enumerate(cols)}


@dataclass(frozen=True)
class BaseRepository:
    """Base class for repositories bound to one DuckDB connection or cursor."""

    con: DuckDBConnection
