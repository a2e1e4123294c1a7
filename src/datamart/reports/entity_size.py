"""Entity size breakdown: how many entities have a given number of records."""

from __future__ import annotations

import logging
import random

from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportCode, ReportKey
from datamart.reports.models import EntitiesPage, EntitySizeBreakdown, EntitySizeCount
from datamart.reports.paging import DEFAULT_PAGE_SIZE, retrieve_entities_page
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.reports import ReportRepository

LOG = logging.getLogger("datamart.reports.entity_size")


def get_entity_size_breakdown(
    con: DuckDBConnection, *, timers: QueryTimers | None = None
) -> EntitySizeBreakdown:
    """
    Return the entity count for every entity size, largest size first.

    Parameters
    ----------
    con
        Open DuckDB connection.
    timers
        Optional recorder for query stage durations.

    Returns
    -------
    EntitySizeBreakdown
        One entry per entity size present in the ESB report.
    """
    with timed(timers, "selectEntitySizeBreakdown"):
        rows = ReportRepository(con).statistic_counts(ReportCode.ENTITY_SIZE_BREAKDOWN)
    counts = [
        EntitySizeCount(entity_size=int(row["statistic"]), entity_count=row["entity_count"] or 0)
        for row in rows
    ]
    counts.sort(key=lambda count: count.entity_size, reverse=True)
    return EntitySizeBreakdown(entity_size_counts=counts)


def get_entity_size_count(
    con: DuckDBConnection, entity_size: int, *, timers: QueryTimers | None = None
) -> EntitySizeCount:
    """
    Return the number of entities having ``entity_size`` records.

    Returns
    -------
    EntitySizeCount
        Count for the size; zero when no entity has that many records.
    """
    with timed(timers, "selectCountForEntitySize"):
        row = ReportRepository(con).statistic_row(
            ReportCode.ENTITY_SIZE_BREAKDOWN, str(entity_size)
        )
    entity_count = 0 if row is None else row["entity_count"] or 0
    return EntitySizeCount(entity_size=entity_size, entity_count=entity_count)


def get_entity_ids_for_entity_size(  # noqa: PLR0913
    con: DuckDBConnection,
    entity_size: int,
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
    Return a page of entities having ``entity_size`` records.

    Raises
    ------
    ValueError
        If the entity size is less than one or the paging arguments are invalid.
    """
    if entity_size < 1:
        message = f"The entity size cannot be less than one: {entity_size}"
        raise ValueError(message)
    report_key = ReportKey(ReportCode.ENTITY_SIZE_BREAKDOWN, str(entity_size))
    LOG.debug("Retrieving entities of size %d", entity_size)
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
