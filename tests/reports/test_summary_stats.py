"""Data source and cross-source summary statistics."""

from __future__ import annotations

from datamart.reports import summary_stats
from datamart.reports.codes import RelationType, ReportStatistic
from datamart.reports.models import CrossSourceSummary, MatchCounts, RelationCounts
from datamart.storage.gateway import DuckDBConnection
from tests._helpers.expect import (
    entity_ids,
    expect_equal,
    expect_len,
    expect_value_error,
    relation_keys,
)
from tests._helpers.seed import (
    CUSTOMERS,
    NAME_DOB_MATCH_KEY,
    NAME_MATCH_KEY,
    PRINCIPLE,
    VENDORS,
    WATCHLIST,
)

_RELATION_FAMILIES = (
    "ambiguous_matches",
    "possible_matches",
    "possible_relations",
    "disclosed_relations",
)


def _buckets(summary: CrossSourceSummary, family: str) -> list[tuple[object, ...]]:
    buckets: list[MatchCounts] = getattr(summary, family)
    return [
        (
            bucket.match_key,
            bucket.principle,
            bucket.entity_count,
            bucket.record_count,
            *((bucket.relation_count,) if isinstance(bucket, RelationCounts) else ()),
        )
        for bucket in buckets
    ]


def test_unqualified_buckets_with_zero_fill(con: DuckDBConnection) -> None:
    """Without dimensions only unqualified rows count and empty families get a zero bucket."""
    summary = summary_stats.get_cross_source_summary(con, CUSTOMERS, CUSTOMERS)
    expect_equal(_buckets(summary, "possible_matches"), [(None, None, 5, 5, 4)])
    expect_equal(_buckets(summary, "matches"), [(None, None, 0, 0)])
    for family in ("ambiguous_matches", "possible_relations", "disclosed_relations"):
        expect_equal(_buckets(summary, family), [(None, None, 0, 0, 0)], label=family)


def test_wildcards_match_every_bucket(con: DuckDBConnection) -> None:
    """Wildcard dimensions return each bucket, unqualified buckets first."""
    summary = summary_stats.get_cross_source_summary(con, CUSTOMERS, CUSTOMERS, "*", "*")
    expect_equal(
        _buckets(summary, "possible_matches"),
        [(None, None, 5, 5, 4), (NAME_MATCH_KEY, PRINCIPLE, 5, 5, 4)],
    )
    expect_equal(_buckets(summary, "matches"), [(None, None, 0, 0)])


def test_requested_bucket_without_rows_is_zero_valued(con: DuckDBConnection) -> None:
    """A match key with no rows under an absent principle still yields its bucket."""
    summary = summary_stats.get_cross_source_summary(con, CUSTOMERS, CUSTOMERS, NAME_MATCH_KEY)
    expect_equal(_buckets(summary, "possible_matches"), [(NAME_MATCH_KEY, None, 0, 0, 0)])
    expect_equal(_buckets(summary, "matches"), [(NAME_MATCH_KEY, None, 0, 0)])


def test_exact_dimensions_select_one_bucket(con: DuckDBConnection) -> None:
    """Exact match key and principle select the qualified row only."""
    summary = summary_stats.get_cross_source_summary(
        con, CUSTOMERS, CUSTOMERS, NAME_MATCH_KEY, PRINCIPLE
    )
    expect_equal(
        _buckets(summary, "possible_matches"), [(NAME_MATCH_KEY, PRINCIPLE, 5, 5, 4)]
    )
    expect_equal(
        _buckets(summary, "disclosed_relations"), [(NAME_MATCH_KEY, PRINCIPLE, 0, 0, 0)]
    )


def test_cross_source_match_family(con: DuckDBConnection) -> None:
    """The match family reads the cross-source rows of the pair."""
    counts = summary_stats.get_cross_source_match_summary(con, CUSTOMERS, WATCHLIST, "*", "*")
    expect_equal((counts.data_source, counts.versus_data_source), (CUSTOMERS, WATCHLIST))
    expect_equal(
        [(c.match_key, c.principle, c.entity_count, c.record_count) for c in counts.counts],
        [(None, None, 4, 8), (NAME_DOB_MATCH_KEY, PRINCIPLE, 4, 8)],
    )


def test_cross_source_relation_families(con: DuckDBConnection) -> None:
    """Relation families carry their relation type and zero fill when empty."""
    relations = summary_stats.get_cross_source_possible_relation_summary(con, CUSTOMERS, WATCHLIST)
    expect_equal(relations.relation_type, RelationType.POSSIBLE_RELATION)
    expect_equal(
        [(c.entity_count, c.record_count, c.relation_count) for c in relations.counts], [(2, 4, 1)]
    )
    disclosed = summary_stats.get_cross_source_disclosed_relation_summary(
        con, CUSTOMERS, WATCHLIST
    )
    expect_equal(disclosed.relation_type, RelationType.DISCLOSED_RELATION)
    expect_equal([(c.entity_count, c.relation_count) for c in disclosed.counts], [(0, 0)])
    ambiguous = summary_stats.get_cross_source_ambiguous_match_summary(con, WATCHLIST, CUSTOMERS)
    expect_equal(ambiguous.relation_type, RelationType.AMBIGUOUS_MATCH)
    possible = summary_stats.get_cross_source_possible_match_summary(con, CUSTOMERS, CUSTOMERS)
    expect_equal([c.relation_count for c in possible.counts], [4])


def test_family_filter_leaves_other_families_empty(con: DuckDBConnection) -> None:
    """Restricting to one statistic leaves the other families without buckets."""
    summary = summary_stats.get_cross_source_summary(
        con, CUSTOMERS, WATCHLIST, statistic=ReportStatistic.MATCHED_COUNT
    )
    expect_equal(_buckets(summary, "matches"), [(None, None, 4, 8)])
    for family in _RELATION_FAMILIES:
        expect_len(getattr(summary, family), 0, label=family)


def test_source_summary_counts_and_versus_sources(con: DuckDBConnection) -> None:
    """A source summary compares against every loaded source plus requested ones."""
    summary = summary_stats.get_source_summary(con, CUSTOMERS, data_sources=[VENDORS])
    expect_equal(
        (summary.entity_count, summary.record_count, summary.unmatched_record_count),
        (254, 254, 250),
    )
    expect_equal(
        [cross.versus_data_source for cross in summary.cross_source_summaries],
        [CUSTOMERS, VENDORS, WATCHLIST],
    )
    fixed = summary_stats.get_source_summary(
        con, WATCHLIST, data_sources=[CUSTOMERS], augment_data_sources=False
    )
    expect_equal(
        [cross.versus_data_source for cross in fixed.cross_source_summaries], [CUSTOMERS]
    )
    expect_equal(fixed.unmatched_record_count, 0)


def test_summary_statistics_cover_every_source(con: DuckDBConnection) -> None:
    """Every loaded and requested source is summarized against the same sources."""
    stats = summary_stats.get_summary_statistics(con)
    expect_equal(
        [summary.data_source for summary in stats.source_summaries], [CUSTOMERS, WATCHLIST]
    )
    stats = summary_stats.get_summary_statistics(con, data_sources=[VENDORS])
    expect_equal(
        [summary.data_source for summary in stats.source_summaries],
        [CUSTOMERS, VENDORS, WATCHLIST],
    )
    for summary in stats.source_summaries:
        expect_len(summary.cross_source_summaries, 3, label=summary.data_source)
    vendors = stats.source_summaries[1]
    expect_equal((vendors.entity_count, vendors.record_count), (0, 0))


def test_summary_entity_pages(con: DuckDBConnection) -> None:
    """Entity pages resolve the statistic, dimensions and source pair to one scope."""
    plain = summary_stats.get_summary_entity_ids(
        con, CUSTOMERS, ReportStatistic.POSSIBLE_MATCH_COUNT
    )
    expect_equal(entity_ids(plain), [10, 20, 30, 40, 50])
    qualified = summary_stats.get_summary_entity_ids(
        con, CUSTOMERS, "POSSIBLE_MATCH_COUNT", NAME_MATCH_KEY, PRINCIPLE, page_size=2
    )
    expect_equal(entity_ids(qualified), [10, 20])
    expect_equal(qualified.after_page_count, 3)
    cross = summary_stats.get_cross_entity_ids(
        con, CUSTOMERS, WATCHLIST, ReportStatistic.MATCHED_COUNT, "*", "*"
    )
    expect_equal(entity_ids(cross), [251, 252, 253, 254])


def test_summary_relation_pages(con: DuckDBConnection) -> None:
    """Relation pages are available for the relation families only."""
    page = summary_stats.get_cross_relations(
        con,
        CUSTOMERS,
        CUSTOMERS,
        ReportStatistic.POSSIBLE_MATCH_COUNT,
        NAME_MATCH_KEY,
        PRINCIPLE,
        "max:max",
        page_size=2,
    )
    expect_equal(relation_keys(page), [(20, 30), (40, 50)])
    expect_value_error(
        lambda: summary_stats.get_cross_relations(
            con, CUSTOMERS, WATCHLIST, ReportStatistic.MATCHED_COUNT
        ),
        "Relations are not tracked",
    )


def test_non_family_statistics_are_rejected(con: DuckDBConnection) -> None:
    """Source statistics and unknown names do not identify a bucket family."""
    expect_value_error(
        lambda: summary_stats.get_cross_entity_ids(
            con, CUSTOMERS, CUSTOMERS, ReportStatistic.ENTITY_COUNT
        ),
        "does not identify a summary bucket family",
    )
    expect_value_error(
        lambda: summary_stats.get_cross_source_summary(
            con, CUSTOMERS, CUSTOMERS, statistic="BOGUS_COUNT"
        ),
        "Unrecognized report statistic",
    )
