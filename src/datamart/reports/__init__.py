"""Paginated report retrieval over the data mart aggregate tables."""

from __future__ import annotations

from datamart.reports.bounds import BoundType, resolve_entity_bound, resolve_relation_bound
from datamart.reports.codes import ReportCode, ReportKey, ReportStatistic, StatisticKey
from datamart.reports.paging import (
    DEFAULT_PAGE_SIZE,
    SAMPLE_SIZE_MULTIPLIER,
    retrieve_entities_page,
    retrieve_relations_page,
)
from datamart.reports.timing import QueryTimers

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "SAMPLE_SIZE_MULTIPLIER",
    "BoundType",
    "QueryTimers",
    "ReportCode",
    "ReportKey",
    "ReportStatistic",
    "StatisticKey",
    "resolve_entity_bound",
    "resolve_relation_bound",
    "retrieve_entities_page",
    "retrieve_relations_page",
]
