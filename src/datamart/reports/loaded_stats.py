"""
Loaded statistics: entity, record and unmatched record counts per data source.

Counts come from the ``DSS`` rows of ``dm.report``; the total entity count is
the sum over the entity size breakdown so that entities spanning several data
sources are counted once.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable

from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportCode, ReportKey, ReportStatistic
from datamart.reports.models import EntitiesPage, LoadedStats, SourceLoadedStats
from datamart.reports.paging import DEFAULT_PAGE_SIZE, retrieve_entities_page
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.reports import ReportRepository

LOG = logging.getLogger("datamart.reports.loaded_stats")


def get_loaded_statistics(
    con: DuckDBConnection,
    data_sources: Iterable[str] | None = None,
    *,
    timers: QueryTimers | None = None,
) -> LoadedStats:
    """
    Return loaded totals plus per data source counts.

    Parameters
    ----------
    con
        Open DuckDB connection.
    data_sources
        Data sources that must appear in the result even when nothing was
        loaded for them; such sources are zero filled.
    timers
        Optional recorder for query stage durations.

    Returns
    -------
    LoadedStats
        Totals and per data source counts ordered by data source code.
    """
    repo = ReportRepository(con)
    with timed(timers, "selectEntityCount"):
        total_entity_count = repo.sum_entity_count(ReportCode.ENTITY_SIZE_BREAKDOWN)

    with timed(timers, "selectCountsBySource"):
        count_rows = repo.counts_by_source(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT
        )
    counts: dict[str, dict[str, int]] = {
        row["data_source1"]: {
            "entity_count": row["entity_count"] or 0,
            "record_count": row["record_count"] or 0,
        }
        for row in count_rows
    }

    with timed(timers, "selectUnmatchedCountsBySource"):
        unmatched_rows = repo.counts_by_source(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.UNMATCHED_COUNT
        )
    unmatched: dict[str, int] = {
        row["data_source1"]: row["entity_count"] or 0 for row in unmatched_rows
    }

    for data_source in sorted(unmatched.keys() - counts.keys()):
        LOG.warning(
            "Missing entity and record count stats for data source, "
            "but got unmatched record count stats: %s",
            data_source,
        )
    for data_source in sorted(counts.keys() - unmatched.keys()):
        LOG.warning(
            "Missing unmatched record count stats for data source, "
            "but got entity and record count stats: %s",
            data_source,
        )

    requested = set(data_sources or ())
    source_stats: list[SourceLoadedStats] = []
    for data_source in sorted(counts.keys() | unmatched.keys() | requested):
        found = counts.get(data_source, {})
        source_stats.append(
            SourceLoadedStats(
                data_source=data_source,
                entity_count=found.get("entity_count", 0),
                record_count=found.get("record_count", 0),
                unmatched_record_count=unmatched.get(data_source, 0),
            )
        )

    return LoadedStats(
        total_entity_count=total_entity_count,
        total_record_count=sum(found["record_count"] for found in counts.values()),
        total_unmatched_record_count=sum(unmatched.values()),
        data_source_counts=source_stats,
    )


def get_source_loaded_statistics(
    con: DuckDBConnection, data_source: str, *, timers: QueryTimers | None = None
) -> SourceLoadedStats:
    """
    Return the loaded counts for one data source.

    Missing statistics are logged and reported as zero.

    Returns
    -------
    SourceLoadedStats
        Entity, record and unmatched record counts for ``data_source``.
    """
    repo = ReportRepository(con)
    with timed(timers, "selectCountsForSource"):
        row = repo.statistic_row(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT, data_source
        )
    if row is None:
        LOG.warning("Failed to find entity and record count stats for data source: %s", data_source)
        row = {}

    with timed(timers, "selectUnmatchedCountForSource"):
        unmatched = repo.statistic_row(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.UNMATCHED_COUNT, data_source
        )
    if unmatched is None:
        LOG.warning("Failed to find unmatched record count stats for data source: %s", data_source)
        unmatched = {}

    return SourceLoadedStats(
        data_source=data_source,
        entity_count=row.get("entity_count") or 0,
        record_count=row.get("record_count") or 0,
        unmatched_record_count=unmatched.get("entity_count") or 0,
    )


def get_entity_ids_for_data_source(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    bound: str | None = None,
    bound_type: BoundType | str | None = None,
    page_size: int | None = None,
    sample_size: int | None = None,
    *,
    timers: QueryTimers | None = None,
    rng: random.Random | None = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> EntitiesPage:
    """Return a page of entities having at least one record from ``data_source``."""
    report_key = ReportKey(
        ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT, data_source, data_source
    )
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
