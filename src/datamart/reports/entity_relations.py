"""Entity relation breakdown: how many entities have a given number of relations."""

from __future__ import annotations

import logging
import random

from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportCode, ReportKey
from datamart.reports.models import EntitiesPage, EntityRelationsBreakdown, EntityRelationsCount
from datamart.reports.paging import DEFAULT_PAGE_SIZE, retrieve_entities_page
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.reports import ReportRepository

LOG = logging.getLogger("datamart.reports.entity_relations")


def get_entity_relations_breakdown(
    con: DuckDBConnection, *, timers: QueryTimers | None = None
) -> EntityRelationsBreakdown:
    """
    Return the entity count for every relation count, largest count first.

    Returns
    -------
    EntityRelationsBreakdown
        One entry per relation count present in the ERB report.
    """
    with timed(timers, "selectEntityRelationsBreakdown"):
        rows = ReportRepository(con).statistic_counts(ReportCode.ENTITY_RELATION_BREAKDOWN)
    counts = [
        EntityRelationsCount(
            relations_count=int(row["statistic"]), entity_count=row["entity_count"] or 0
        )
        for row in rows
    ]
    counts.sort(key=lambda count: count.relations_count, reverse=True)
    return EntityRelationsBreakdown(entity_relations_counts=counts)


def get_entity_relations_count(
    con: DuckDBConnection, relations_count: int, *, timers: QueryTimers | None = None
) -> EntityRelationsCount:
    """Return the number of entities having exactly ``relations_count`` relations."""
    with timed(timers, "selectCountForEntityRelations"):
        row = ReportRepository(con).statistic_row(
            ReportCode.ENTITY_RELATION_BREAKDOWN, str(relations_count)
        )
    entity_count = 0 if row is None else row["entity_count"] or 0
    return EntityRelationsCount(relations_count=relations_count, entity_count=entity_count)


def get_entity_ids_for_relations_count(  # noqa: PLR0913
    con: DuckDBConnection,
    relations_count: int,
    bound: str | None = None,
    bound_type: BoundType | str | None = None,
    page_size: int | None = None,
    sample_size: int | None = None,
    *,
    timers: QueryTimers | None = None,
    rng: random.Random | None = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> EntitiesPage:
    """
    Return a page of entities having exactly ``relations_count`` relations.

    Raises
    ------
    ValueError
        If the relations count is negative or the paging arguments are invalid.
    """
    if relations_count < 0:
        message = f"The relations count cannot be less than zero: {relations_count}"
        raise ValueError(message)
    report_key = ReportKey(ReportCode.ENTITY_RELATION_BREAKDOWN, str(relations_count))
    return retrieve_entities_page(
        con,
        report_key,
        bound,
        bound_type,
        page_size,
        sample_size,
        timers=timers,
        rng=rng,
        default_page_size=default_page_size,
    )
