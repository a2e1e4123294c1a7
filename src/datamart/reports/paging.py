"""
Cursor-bounded retrieval of entity and relation pages.

Each call resolves the bound, runs the bounded page query, groups the rows,
optionally samples the grouped page and reconciles the page counts. All
queries for one call run on a single cursor that is closed on every exit path.
"""

from __future__ import annotations

import logging
import random

from datamart.reports.bounds import (
    BoundType,
    format_relation_value,
    resolve_entity_bound,
    resolve_relation_bound,
)
from datamart.reports.codes import ReportKey
from datamart.reports.counts import reconcile_entity_counts, reconcile_relation_counts
from datamart.reports.grouping import group_entity_rows, group_relation_rows
from datamart.reports.models import EntitiesPage, RelationsPage
from datamart.reports.queries import entity_page_query, relation_page_query
from datamart.reports.sampling import sample_page
from datamart.reports.timing import QueryTimers, timed
from datamart.storage.gateway import DuckDBConnection
from datamart.storage.repositories.base import iter_rows, query_cursor

LOG = logging.getLogger("datamart.reports.paging")

DEFAULT_PAGE_SIZE = 100
SAMPLE_SIZE_MULTIPLIER = 20


def resolve_page_size(
    page_size: int | None,
    sample_size: int | None,
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> int:
    """
    Validate page and sample sizes and return the effective page size.

    Parameters
    ----------
    page_size
        Requested page size, or ``None`` for the default.
    sample_size
        Requested sample size, or ``None`` for no sampling.
    default_page_size
        Page size used when neither size is given.

    Returns
    -------
    int
        ``page_size`` when given, otherwise 20 times the sample size when a
        sample size is given, otherwise ``default_page_size``.

    Raises
    ------
    ValueError
        If a size is less than one or the sample size is not strictly less
        than the page size.
    """
    if page_size is not None and page_size < 1:
        message = f"If specified, the page size must be a positive integer: {page_size}"
        raise ValueError(message)
    if sample_size is not None and sample_size < 1:
        message = f"If specified, the sample size must be a positive integer: {sample_size}"
        raise ValueError(message)
    if page_size is not None and sample_size is not None and sample_size >= page_size:
        message = (
            "If both the page size and sample size are specified then the sample size "
            f"({sample_size}) must be strictly less-than the page size ({page_size})"
        )
        raise ValueError(message)
    if page_size is not None:
        return page_size
    if sample_size is not None:
        return SAMPLE_SIZE_MULTIPLIER * sample_size
    return default_page_size


def retrieve_entities_page(  # noqa: PLR0913
    con: DuckDBConnection,
    report_key: ReportKey | str,
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
    Retrieve one page of entities for a report scope.

    Parameters
    ----------
    con
        Open DuckDB connection; a private cursor is taken from it.
    report_key
        Scope key selecting the entity rows of ``dm.report_detail``.
    bound
        Entity ID bound text (an integer or ``max``), or ``None``.
    bound_type
        Bound type; inferred from ``bound`` when ``None``.
    page_size
        Maximum candidates to scan for the page.
    sample_size
        When given, at most this many candidates are returned.
    timers
        Optional recorder for query stage durations.
    rng
        Random source used for sampling.
    default_page_size
        Page size used when neither size is given.

    Returns
    -------
    EntitiesPage
        Page with entities in ascending entity ID order and reconciled counts.

    Raises
    ------
    ValueError
        If the sizes, bound text or bound type are invalid. Raised before any
        query runs.
    """
    size = resolve_page_size(page_size, sample_size, default_page_size=default_page_size)
    resolved = resolve_entity_bound(bound, bound_type)
    key_text = str(report_key)
    query = entity_page_query(key_text, resolved, size)

    with query_cursor(con) as cursor:
        with timed(timers, "selectPagedEntities"):
            grouped = group_entity_rows(iter_rows(cursor, query.sql, query.params), size)
        shown = sorted(
            sample_page(grouped.items, sample_size, rng=rng), key=lambda entity: entity.entity_id
        )
        counts = reconcile_entity_counts(
            cursor,
            key_text,
            candidate_count=grouped.candidate_count,
            minimum_entity_id=grouped.minimum,
            timers=timers,
        )

    LOG.debug(
        "entities page %s bound=%s type=%s: %d candidates, %d shown",
        key_text,
        resolved.text,
        resolved.bound_type,
        grouped.candidate_count,
        len(shown),
    )
    return EntitiesPage(
        bound=resolved.text,
        bound_type=resolved.bound_type,
        page_size=size,
        sample_size=sample_size,
        minimum_value=shown[0].entity_id if shown else None,
        maximum_value=shown[-1].entity_id if shown else None,
        page_minimum_value=grouped.minimum,
        page_maximum_value=grouped.maximum,
        total_entity_count=counts.total,
        before_page_count=counts.before,
        after_page_count=counts.after,
        entities=shown,
    )


def retrieve_relations_page(  # noqa: PLR0913
    con: DuckDBConnection,
    report_key: ReportKey | str,
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
    Retrieve one page of relations for a report scope.

    Bound text is ``entityId:relatedId`` where either side may be ``max``;
    see :func:`datamart.reports.bounds.resolve_relation_bound`.

    Returns
    -------
    RelationsPage
        Page with relations in ascending (entity ID, related ID) order and
        reconciled counts.

    Raises
    ------
    ValueError
        If the sizes, bound text or bound type are invalid. Raised before any
        query runs.
    """
    size = resolve_page_size(page_size, sample_size, default_page_size=default_page_size)
    resolved = resolve_relation_bound(bound, bound_type)
    key_text = str(report_key)
    query = relation_page_query(key_text, resolved, size)

    with query_cursor(con) as cursor:
        with timed(timers, "selectPagedRelations"):
            grouped = group_relation_rows(iter_rows(cursor, query.sql, query.params), size)
        shown = sorted(
            sample_page(grouped.items, sample_size, rng=rng), key=lambda relation: relation.key
        )
        counts = reconcile_relation_counts(
            cursor,
            key_text,
            candidate_count=grouped.candidate_count,
            minimum_key=grouped.minimum,
            timers=timers,
        )

    LOG.debug(
        "relations page %s bound=%s type=%s: %d candidates, %d shown",
        key_text,
        resolved.text,
        resolved.bound_type,
        grouped.candidate_count,
        len(shown),
    )
    return RelationsPage(
        bound=resolved.text,
        bound_type=resolved.bound_type,
        page_size=size,
        sample_size=sample_size,
        minimum_value=_pair_text(shown[0].key) if shown else None,
        maximum_value=_pair_text(shown[-1].key) if shown else None,
        page_minimum_value=_pair_text(grouped.minimum),
        page_maximum_value=_pair_text(grouped.maximum),
        total_relation_count=counts.total,
        before_page_count=counts.before,
        after_page_count=counts.after,
        relations=shown,
    )


def _pair_text(pair: tuple[int, int] | None) -> str | None:
    return None if pair is None else format_relation_value(*pair)
