"""
SQL builders for bounded report pages and their reconciliation counts.

Each page query has two stages: a bounded, ordered and limited selection of
keys from ``dm.report_detail`` scoped to one report key, and an outer join that
expands each key into entity and record detail. The outer rows are always
ordered by key, then data source, then record ID; the row grouper relies on
that order.
"""

from __future__ import annotations

from dataclasses import dataclass

from datamart.reports.bounds import EntityBound, RelationBound

ENTITY_ROWS = "related_id = 0"
RELATION_ROWS = "related_id <> 0"


@dataclass(frozen=True)
class PageQuery:
    """SQL text with its positional parameters."""

    sql: str
    params: tuple[object, ...]


def _limit(page_size: int) -> int:
    if page_size < 1:
        message = f"The page size must be a positive integer: {page_size}"
        raise ValueError(message)
    return int(page_size)


def entity_page_query(report_key: str, bound: EntityBound, page_size: int) -> PageQuery:
    """
    Build the bounded entity page query.

    Parameters
    ----------
    report_key
        Encoded report key scoping the detail rows.
    bound
        Resolved entity bound providing operator, direction and value.
    page_size
        Maximum number of entities selected.

    Returns
    -------
    PageQuery
        Query yielding entity_id, entity_name, record_count, relation_count,
        data_source, record_id, match_key and errule_code rows.
    """
    bound_type = bound.bound_type
    sql = f"""
        WITH page_entities AS (
            SELECT entity_id
            FROM dm.report_detail
            WHERE report_key = ? AND {ENTITY_ROWS} AND entity_id {bound_type.operator} ?
            ORDER BY entity_id {bound_type.sort_direction}
            LIMIT {_limit(page_size)}
        )
        SELECT
            p.entity_id,
            e.entity_name,
            e.record_count,
            e.relation_count,
            r.data_source,
            r.record_id,
            r.match_key,
            r.errule_code
        FROM page_entities AS p
        LEFT JOIN dm.entity AS e ON e.entity_id = p.entity_id
        LEFT JOIN dm.record AS r ON r.entity_id = p.entity_id
        ORDER BY p.entity_id ASC, r.data_source ASC, r.record_id ASC
    """  # noqa: S608 - operator, direction and limit are not caller text
    return PageQuery(sql=sql, params=(report_key, bound.value))


_RELATION_SIDE_SELECT = """
        SELECT
            k.entity_id AS rel_entity_id,
            k.related_id AS rel_related_id,
            rel.match_type AS match_type,
            rel.match_key AS rel_match_key,
            rel.rev_match_key AS rel_rev_match_key,
            rel.errule_code AS rel_errule_code,
            k.{side} AS entity_id,
            e.entity_name AS entity_name,
            e.record_count AS record_count,
            e.relation_count AS relation_count,
            r.data_source AS data_source,
            r.record_id AS record_id,
            r.match_key AS match_key,
            r.errule_code AS errule_code
        FROM page_relations AS k
        LEFT JOIN dm.relation AS rel
            ON rel.entity_id = LEAST(k.entity_id, k.related_id)
            AND rel.related_id = GREATEST(k.entity_id, k.related_id)
        LEFT JOIN dm.entity AS e ON e.entity_id = k.{side}
        LEFT JOIN dm.record AS r ON r.entity_id = k.{side}
"""


def relation_page_query(report_key: str, bound: RelationBound, page_size: int) -> PageQuery:
    """
    Build the bounded relation page query.

    Relations are stored once per unordered pair, so the outer stage unions two
    symmetric branches: one expands the primary entity of each selected pair,
    the other expands the related entity. Both join the stored relation on the
    least/greatest ordering of the pair.

    Returns
    -------
    PageQuery
        Query yielding rel_entity_id, rel_related_id, match_type,
        rel_match_key, rel_rev_match_key, rel_errule_code followed by the
        entity and record columns of one side.
    """
    bound_type = bound.bound_type
    op = bound_type.operator
    direction = bound_type.sort_direction
    sql = f"""
        WITH page_relations AS (
            SELECT entity_id, related_id
            FROM dm.report_detail
            WHERE report_key = ? AND {RELATION_ROWS}
              AND ((entity_id = ? AND related_id {op} ?) OR entity_id {op} ?)
            ORDER BY entity_id {direction}, related_id {direction}
            LIMIT {_limit(page_size)}
        )
        SELECT * FROM (
            {_RELATION_SIDE_SELECT.format(side="entity_id")}
            UNION
            {_RELATION_SIDE_SELECT.format(side="related_id")}
        ) AS relations_page
        ORDER BY rel_entity_id, rel_related_id, entity_id, data_source, record_id
    """  # noqa: S608 - operator, direction and limit are not caller text
    params = (report_key, bound.entity_value, bound.related_value, bound.entity_value)
    return PageQuery(sql=sql, params=params)


def entity_total_query(report_key: str) -> PageQuery:
    """Count every entity row in scope, ignoring the bound."""
    return PageQuery(
        sql=f"SELECT COUNT(*) FROM dm.report_detail WHERE report_key = ? AND {ENTITY_ROWS}",
        params=(report_key,),
    )


def entity_before_query(report_key: str, minimum_entity_id: int) -> PageQuery:
    """Count entity rows in scope strictly before ``minimum_entity_id``."""
    return PageQuery(
        sql=(
            "SELECT COUNT(*) FROM dm.report_detail "
            f"WHERE report_key = ? AND {ENTITY_ROWS} AND entity_id < ?"
        ),
        params=(report_key, minimum_entity_id),
    )


def relation_total_query(report_key: str) -> PageQuery:
    """Count every relation row in scope, ignoring the bound."""
    return PageQuery(
        sql=f"SELECT COUNT(*) FROM dm.report_detail WHERE report_key = ? AND {RELATION_ROWS}",
        params=(report_key,),
    )


def relation_before_query(
    report_key: str,
    minimum_entity_id: int,
    minimum_related_id: int,
) -> PageQuery:
    """Count relation rows in scope strictly before the (entity, related) minimum."""
    return PageQuery(
        sql=(
            "SELECT COUNT(*) FROM dm.report_detail "
            f"WHERE report_key = ? AND {RELATION_ROWS} "
            "AND ((entity_id = ? AND related_id < ?) OR entity_id < ?)"
        ),
        params=(report_key, minimum_entity_id, minimum_related_id, minimum_entity_id),
    )
