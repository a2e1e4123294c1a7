"""
Data source and cross-source summary statistics.

Summary rows live in ``dm.report`` under the ``DSS`` code when both data sources
are the same and the ``CSS`` code otherwise. Each row's ``statistic`` column
holds a statistic token (see :class:`datamart.reports.codes.StatisticKey`) and
is sorted into one of five bucket families keyed by (match key, principle).
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Sequence

from datamart.reports.bounds import BoundType
from datamart.reports.codes import (
    ReportCode,
    ReportKey,
    ReportStatistic,
    StatisticKey,
    dimension_matches,
    normalize_dimension,
    unwildcard,
)
from datamart.reports.models import (
    CrossSourceMatchCounts,
    CrossSourceRelationCounts,
    CrossSourceSummary,
    EntitiesPage,
    MatchCounts,
    RelationCounts,
    RelationsPage,
    SourceSummary,
    SummaryStats,
)
from datamart.reports.paging import (
    DEFAULT_PAGE_SIZE,
    retrieve_entities_page,
    retrieve_relations_page,
)
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.base import RowDict
from datamart.storage.repositories.reports import ReportRepository

LOG = logging.getLogger("datamart.reports.summary_stats")

_SOURCE_STATISTICS = (ReportStatistic.ENTITY_COUNT, ReportStatistic.UNMATCHED_COUNT)

# Bucket family of each summary statistic, in CrossSourceSummary field order.
_FAMILY_FIELDS: dict[ReportStatistic, str] = {
    ReportStatistic.MATCHED_COUNT: "matches",
    ReportStatistic.AMBIGUOUS_MATCH_COUNT: "ambiguous_matches",
    ReportStatistic.POSSIBLE_MATCH_COUNT: "possible_matches",
    ReportStatistic.POSSIBLE_RELATION_COUNT: "possible_relations",
    ReportStatistic.DISCLOSED_RELATION_COUNT: "disclosed_relations",
}

type _Bucket = tuple[str | None, str | None]


def _loaded_data_sources(repo: ReportRepository, timers: QueryTimers | None) -> list[str]:
    with timed(timers, "selectLoadedSources"):
        return repo.loaded_data_sources(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT
        )


def _merge_sources(loaded: Iterable[str], requested: Iterable[str] | None) -> list[str]:
    return sorted(set(loaded) | set(requested or ()))


def _family_statistic(statistic: ReportStatistic | str) -> ReportStatistic:
    try:
        resolved = ReportStatistic(statistic)
    except ValueError:
        message = f"Unrecognized report statistic: {statistic}"
        raise ValueError(message) from None
    if resolved not in _FAMILY_FIELDS:
        message = f"The statistic does not identify a summary bucket family: {resolved}"
        raise ValueError(message)
    return resolved


def _bucket_sort_key(counts: MatchCounts) -> tuple[bool, str, bool, str]:
    return (
        counts.match_key is not None,
        counts.match_key or "",
        counts.principle is not None,
        counts.principle or "",
    )


def _counts_from_row(key: StatisticKey, row: RowDict) -> MatchCounts:
    if key.statistic is ReportStatistic.MATCHED_COUNT:
        return MatchCounts(
            match_key=key.match_key,
            principle=key.principle,
            entity_count=row["entity_count"] or 0,
            record_count=row["record_count"] or 0,
        )
    return RelationCounts(
        match_key=key.match_key,
        principle=key.principle,
        entity_count=row["entity_count"] or 0,
        record_count=row["record_count"] or 0,
        relation_count=row["relation_count"] or 0,
    )


def _zero_counts(
    statistic: ReportStatistic, match_key: str | None, principle: str | None
) -> MatchCounts:
    if statistic is ReportStatistic.MATCHED_COUNT:
        return MatchCounts(match_key=match_key, principle=principle)
    return RelationCounts(match_key=match_key, principle=principle)


def get_summary_statistics(
    con: DuckDBConnection,
    match_key: str | None = None,
    principle: str | None = None,
    data_sources: Iterable[str] | None = None,
    *,
    timers: QueryTimers | None = None,
) -> SummaryStats:
    """
    Return one source summary for every loaded data source.

    Parameters
    ----------
    con
        Open DuckDB connection.
    match_key, principle
        Requested bucket dimensions; ``None`` matches only rows without the
        dimension and ``"*"`` matches every row.
    data_sources
        Additional data sources to report on even when nothing was loaded for
        them.
    timers
        Optional recorder for query stage durations.

    Returns
    -------
    SummaryStats
        Source summaries ordered by data source code, each comparing against
        the same set of data sources.
    """
    repo = ReportRepository(con)
    report_sources = _merge_sources(_loaded_data_sources(repo, timers), data_sources)
    summaries = [
        get_source_summary(
            con,
            data_source,
            match_key,
            principle,
            report_sources,
            augment_data_sources=False,
            timers=timers,
        )
        for data_source in report_sources
    ]
    return SummaryStats(source_summaries=summaries)


def get_source_summary(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    data_sources: Sequence[str] | None = None,
    *,
    augment_data_sources: bool = True,
    timers: QueryTimers | None = None,
) -> SourceSummary:
    """
    Return the summary for one data source against each versus data source.

    Parameters
    ----------
    con
        Open DuckDB connection.
    data_source
        Data source being summarized.
    match_key, principle
        Requested bucket dimensions.
    data_sources
        Versus data sources. When ``augment_data_sources`` is true (or no
        sources are given) the loaded data sources are added to them.
    augment_data_sources
        Whether to merge the loaded data sources into ``data_sources``.
    timers
        Optional recorder for query stage durations.

    Returns
    -------
    SourceSummary
        Entity, record and unmatched record counts plus one cross-source
        summary per versus data source.
    """
    repo = ReportRepository(con)
    with timed(timers, "selectSourceSummary"):
        rows = repo.source_statistics(
            ReportCode.DATA_SOURCE_SUMMARY, data_source, data_source, _SOURCE_STATISTICS
        )
    entity_count = record_count = unmatched_count = 0
    for row in rows:
        statistic = StatisticKey.parse(row["statistic"]).statistic
        if statistic is ReportStatistic.ENTITY_COUNT:
            entity_count = row["entity_count"] or 0
            record_count = row["record_count"] or 0
        elif statistic is ReportStatistic.UNMATCHED_COUNT:
            unmatched_count = row["record_count"] or 0

    if data_sources is None or augment_data_sources:
        report_sources = _merge_sources(_loaded_data_sources(repo, timers), data_sources)
    else:
        report_sources = list(data_sources)

    cross_summaries = [
        get_cross_source_summary(
            con, data_source, vs_data_source, match_key, principle, timers=timers
        )
        for vs_data_source in report_sources
    ]
    return SourceSummary(
        data_source=data_source,
        entity_count=entity_count,
        record_count=record_count,
        unmatched_record_count=unmatched_count,
        cross_source_summaries=cross_summaries,
    )


def get_cross_source_summary(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    statistic: ReportStatistic | str | None = None,
    timers: QueryTimers | None = None,
) -> CrossSourceSummary:
    """
    Return the bucketed match and relation counts between two data sources.

    Each family holds at most one bucket per (match key, principle) pair; a
    later row for the same pair replaces an earlier one. A requested family
    with no matching rows still carries one zero-valued bucket for the
    requested dimensions (``"*"`` reported as absent).

    Parameters
    ----------
    con
        Open DuckDB connection.
    data_source, vs_data_source
        Data source pair; equal sources read the data source summary.
    match_key, principle
        Requested bucket dimensions.
    statistic
        Restrict the result to the family of this statistic.
    timers
        Optional recorder for query stage durations.

    Returns
    -------
    CrossSourceSummary
        Buckets for every requested family, ordered by (match key, principle)
        with absent dimensions first.
    """
    requested = None if statistic is None else _family_statistic(statistic)
    requested_match_key = normalize_dimension(match_key)
    requested_principle = normalize_dimension(principle)
    report_code = ReportCode.for_sources(data_source, vs_data_source)

    with timed(timers, "selectCrossSourceSummary"):
        rows = ReportRepository(con).cross_statistics(
            report_code,
            data_source,
            vs_data_source,
            excluded=_SOURCE_STATISTICS,
            prefix=requested,
        )

    families: dict[ReportStatistic, dict[_Bucket, MatchCounts]] = {
        family: {} for family in _FAMILY_FIELDS
    }
    for row in rows:
        key = StatisticKey.parse(row["statistic"])
        if requested is not None and key.statistic is not requested:
            continue
        if not dimension_matches(requested_principle, key.principle):
            continue
        if not dimension_matches(requested_match_key, key.match_key):
            continue
        if key.statistic not in families:
            message = f"Unexpected statistic encountered: {row['statistic']}"
            raise ValueError(message)
        counts = _counts_from_row(key, row)
        families[key.statistic][counts.bucket] = counts

    zero_match_key = unwildcard(requested_match_key)
    zero_principle = unwildcard(requested_principle)
    for family, buckets in families.items():
        if buckets or (requested is not None and requested is not family):
            continue
        zero = _zero_counts(family, zero_match_key, zero_principle)
        buckets[zero.bucket] = zero

    ordered = {
        _FAMILY_FIELDS[family]: sorted(buckets.values(), key=_bucket_sort_key)
        for family, buckets in families.items()
    }
    LOG.debug(
        "cross source summary %s vs %s: %s",
        data_source,
        vs_data_source,
        {field: len(buckets) for field, buckets in ordered.items()},
    )
    return CrossSourceSummary(
        data_source=data_source, versus_data_source=vs_data_source, **ordered
    )


def get_cross_source_match_summary(
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    timers: QueryTimers | None = None,
) -> CrossSourceMatchCounts:
    """Return only the matched buckets between two data sources."""
    summary = get_cross_source_summary(
        con,
        data_source,
        vs_data_source,
        match_key,
        principle,
        statistic=ReportStatistic.MATCHED_COUNT,
        timers=timers,
    )
    return CrossSourceMatchCounts(
        data_source=data_source, versus_data_source=vs_data_source, counts=summary.matches
    )


def _relation_summary(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    statistic: ReportStatistic,
    match_key: str | None,
    principle: str | None,
    timers: QueryTimers | None,
) -> CrossSourceRelationCounts:
    summary = get_cross_source_summary(
        con,
        data_source,
        vs_data_source,
        match_key,
        principle,
        statistic=statistic,
        timers=timers,
    )
    relation_type = statistic.relation_type
    if relation_type is None:
        message = f"Relations are not tracked for statistic: {statistic}"
        raise ValueError(message)
    return CrossSourceRelationCounts(
        data_source=data_source,
        versus_data_source=vs_data_source,
        relation_type=relation_type,
        counts=getattr(summary, _FAMILY_FIELDS[statistic]),
    )


def get_cross_source_ambiguous_match_summary(
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    timers: QueryTimers | None = None,
) -> CrossSourceRelationCounts:
    """Return only the ambiguous match buckets between two data sources."""
    return _relation_summary(
        con,
        data_source,
        vs_data_source,
        ReportStatistic.AMBIGUOUS_MATCH_COUNT,
        match_key,
        principle,
        timers,
    )


def get_cross_source_possible_match_summary(
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    timers: QueryTimers | None = None,
) -> CrossSourceRelationCounts:
    """Return only the possible match buckets between two data sources."""
    return _relation_summary(
        con,
        data_source,
        vs_data_source,
        ReportStatistic.POSSIBLE_MATCH_COUNT,
        match_key,
        principle,
        timers,
    )


def get_cross_source_possible_relation_summary(
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    timers: QueryTimers | None = None,
) -> CrossSourceRelationCounts:
    """Return only the possible relation buckets between two data sources."""
    return _relation_summary(
        con,
        data_source,
        vs_data_source,
        ReportStatistic.POSSIBLE_RELATION_COUNT,
        match_key,
        principle,
        timers,
    )


def get_cross_source_disclosed_relation_summary(
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    match_key: str | None = None,
    principle: str | None = None,
    *,
    timers: QueryTimers | None = None,
) -> CrossSourceRelationCounts:
    """Return only the disclosed relation buckets between two data sources."""
    return _relation_summary(
        con,
        data_source,
        vs_data_source,
        ReportStatistic.DISCLOSED_RELATION_COUNT,
        match_key,
        principle,
        timers,
    )


def _summary_report_key(
    data_source: str,
    vs_data_source: str,
    statistic: ReportStatistic,
    match_key: str | None,
    principle: str | None,
) -> ReportKey:
    stat_key = statistic.with_dimensions(
        principle=unwildcard(principle), match_key=unwildcard(match_key)
    )
    return ReportKey.for_statistic(stat_key, data_source, vs_data_source)


def get_summary_entity_ids(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    statistic: ReportStatistic | str,
    match_key: str | None = None,
    principle: str | None = None,
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
    Return a page of entities counted by a statistic within one data source.

    Raises
    ------
    ValueError
        If the statistic is not a bucket family or the paging arguments are
        invalid.
    """
    return get_cross_entity_ids(
        con,
        data_source,
        data_source,
        statistic,
        match_key,
        principle,
        bound,
        bound_type,
        page_size,
        sample_size,
        timers=timers,
        rng=rng,
        default_page_size=default_page_size,
    )


def get_cross_entity_ids(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    statistic: ReportStatistic | str,
    match_key: str | None = None,
    principle: str | None = None,
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
    Return a page of entities counted by a statistic between two data sources.

    A ``"*"`` match key or principle scopes the page to the statistic without
    that dimension.

    Raises
    ------
    ValueError
        If the statistic is not a bucket family or the paging arguments are
        invalid.
    """
    family = _family_statistic(statistic)
    report_key = _summary_report_key(data_source, vs_data_source, family, match_key, principle)
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


def get_cross_relations(  # noqa: PLR0913
    con: DuckDBConnection,
    data_source: str,
    vs_data_source: str,
    statistic: ReportStatistic | str,
    match_key: str | None = None,
    principle: str | None = None,
    bound: str | None = None,
    bound_type: BoundType | str | None = None,
    page_size: int | None = None,
    sample_size: int | None = None,
    *,
    timers: QueryTimers | None = None,
    rng: random.Random | None = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> RelationsPage:
    """
    Return a page of relations counted by a relation statistic.

    Raises
    ------
    ValueError
        If the statistic does not count relations (``MATCHED_COUNT``) or the
        paging arguments are invalid.
    """
    family = _family_statistic(statistic)
    if family.relation_type is None:
        message = f"Relations are not tracked for statistic: {family}"
        raise ValueError(message)
    report_key = _summary_report_key(data_source, vs_data_source, family, match_key, principle)
    return retrieve_relations_page(
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
