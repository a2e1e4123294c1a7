"""Total, before and after counts that let pages compose into a whole."""

from __future__ import annotations

from dataclasses import dataclass

from datamart.reports.queries import (
    PageQuery,
    entity_before_query,
    entity_total_query,
    relation_before_query,
    relation_total_query,
)
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.base import fetch_scalar


@dataclass(frozen=True)
class PageCounts:
    """
    Counts reconciling one page against its whole scope.

    ``before + candidate_count + after == total`` always holds for the
    candidate (pre-sampling) count.
    """

    total: int
    before: int
    after: int


def _count(con: DuckDBConnection, query: PageQuery) -> int:
    value = fetch_scalar(con, query.sql, query.params)
    return int(value or 0)


def reconcile_entity_counts(
    con: DuckDBConnection,
    report_key: str,
    *,
    candidate_count: int,
    minimum_entity_id: int | None,
    timers: QueryTimers | None = None,
) -> PageCounts:
    """
    Count entity rows in scope and those strictly before the page window.

    Returns
    -------
    PageCounts
        Total, before and after counts; ``before`` is 0 for an empty page.
    """
    with timed(timers, "selectTotalEntityPageCount"):
        total = _count(con, entity_total_query(report_key))
    before = 0
    with timed(timers, "selectBeforePageEntityCount"):
        if candidate_count > 0 and minimum_entity_id is not None:
            before = _count(con, entity_before_query(report_key, minimum_entity_id))
    return PageCounts(total=total, before=before, after=total - candidate_count - before)


def reconcile_relation_counts(
    con: DuckDBConnection,
    report_key: str,
    *,
    candidate_count: int,
    minimum_key: tuple[int, int] | None,
    timers: QueryTimers | None = None,
) -> PageCounts:
    """
    Count relation rows in scope and those strictly before the page window.

    Returns
    -------
    PageCounts
        Total, before and after counts; ``before`` is 0 for an empty page.
    """
    with timed(timers, "selectTotalRelationsPageCount"):
        total = _count(con, relation_total_query(report_key))
    before = 0
    with timed(timers, "selectBeforePageRelationCount"):
        if candidate_count > 0 and minimum_key is not None:
            before = _count(con, relation_before_query(report_key, *minimum_key))
    return PageCounts(total=total, before=before, after=total - candidate_count - before)
