"""Repository layer for DuckDB persistence."""

from datamart.storage.repositories.base import (
    BaseRepository,
    RowDict,
    fetch_all_dicts,
    fetch_one_dict,
    fetch_scalar,
    iter_rows,
    query_cursor,
)
from datamart.storage.repositories.reports import ReportRepository

__all__ = [
    "BaseRepository",
    "ReportRepository",
    "RowDict",
    "fetch_all_dicts",
    "fetch_one_dict",
    "fetch_scalar",
    "iter_rows",
    "query_cursor",
]
