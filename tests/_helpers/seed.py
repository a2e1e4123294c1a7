"""Seed a small, internally consistent data mart for report tests."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from datamart.reports.codes import ReportCode, ReportKey, ReportStatistic, StatisticKey
from datamart.storage.gateway import (
    StorageConfig,
    StorageGateway,
    open_gateway,
    open_memory_gateway,
)

CUSTOMERS = "CUSTOMERS"
WATCHLIST = "WATCHLIST"
VENDORS = "VENDORS"

SINGLE_RECORD_IDS = tuple(range(1, 251))
CROSS_SOURCE_IDS = (251, 252, 253, 254)
POSSIBLE_MATCH_PAIRS = ((10, 20), (10, 30), (20, 30), (40, 50))
POSSIBLE_MATCH_IDS = (10, 20, 30, 40, 50)
NAME_MATCH_KEY = "+NAME"
NAME_DOB_MATCH_KEY = "+NAME+DOB"
PRINCIPLE = "CNAME_CFF"


@dataclass(frozen=True)
class SeededMart:
    """Encoded report keys of the seeded scopes."""

    size_one: str
    size_two: str
    relations_zero: str
    relations_one: str
    relations_two: str
    customers_loaded: str
    watchlist_loaded: str
    possible_matches: str
    possible_matches_by_name: str
    cross_matches: str
    cross_matches_by_name_dob: str
    cross_possible_relations: str


def _key(
    code: ReportCode | str,
    statistic: str | StatisticKey,
    data_source: str | None = None,
    vs_data_source: str | None = None,
) -> str:
    return ReportKey(code, str(statistic), data_source, vs_data_source).format()


def _statistic(
    statistic: ReportStatistic, *, principle: str | None = None, match_key: str | None = None
) -> StatisticKey:
    return statistic.with_dimensions(principle=principle, match_key=match_key)


def _relation_count(entity_id: int) -> int:
    pairs = [*POSSIBLE_MATCH_PAIRS, (251, 252)]
    return sum(1 for pair in pairs if entity_id in pair)


def seed_data_mart(gateway: StorageGateway) -> SeededMart:
    """
    Populate the data mart tables with a fixed scenario.

    * Entities 1-250 each hold one CUSTOMERS record.
    * Entities 251-254 each hold a CUSTOMERS and a WATCHLIST record.
    * Entities 10, 20, 30, 40 and 50 are possible matches of each other.
    * Entities 251 and 252 are a cross-source possible relation.
    * WATCHLIST has no unmatched record count statistic.

    Returns
    -------
    SeededMart
        Report keys for the seeded scopes.
    """
    tables = gateway.reports
    all_ids = (*SINGLE_RECORD_IDS, *CROSS_SOURCE_IDS)
    tables.insert_entities(
        (
            entity_id,
            f"Entity {entity_id}",
            2 if entity_id in CROSS_SOURCE_IDS else 1,
            _relation_count(entity_id),
        )
        for entity_id in all_ids
    )
    tables.insert_records(
        (CUSTOMERS, f"C{entity_id:04d}", entity_id, None, None) for entity_id in all_ids
    )
    tables.insert_records(
        (WATCHLIST, f"W{entity_id:04d}", entity_id, NAME_DOB_MATCH_KEY, PRINCIPLE)
        for entity_id in CROSS_SOURCE_IDS
    )
    tables.insert_relations(
        (entity_id, related_id, "POSSIBLE_MATCH", NAME_MATCH_KEY, NAME_MATCH_KEY, PRINCIPLE)
        for entity_id, related_id in POSSIBLE_MATCH_PAIRS
    )
    tables.insert_relations([(251, 252, "POSSIBLE_RELATION", "+ADDRESS", "+ADDRESS-PHONE", None)])

    keys = SeededMart(
        size_one=_key(ReportCode.ENTITY_SIZE_BREAKDOWN, "1"),
        size_two=_key(ReportCode.ENTITY_SIZE_BREAKDOWN, "2"),
        relations_zero=_key(ReportCode.ENTITY_RELATION_BREAKDOWN, "0"),
        relations_one=_key(ReportCode.ENTITY_RELATION_BREAKDOWN, "1"),
        relations_two=_key(ReportCode.ENTITY_RELATION_BREAKDOWN, "2"),
        customers_loaded=_key(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT, CUSTOMERS, CUSTOMERS
        ),
        watchlist_loaded=_key(
            ReportCode.DATA_SOURCE_SUMMARY, ReportStatistic.ENTITY_COUNT, WATCHLIST, WATCHLIST
        ),
        possible_matches=_key(
            ReportCode.DATA_SOURCE_SUMMARY,
            ReportStatistic.POSSIBLE_MATCH_COUNT,
            CUSTOMERS,
            CUSTOMERS,
        ),
        possible_matches_by_name=_key(
            ReportCode.DATA_SOURCE_SUMMARY,
            _statistic(
                ReportStatistic.POSSIBLE_MATCH_COUNT, principle=PRINCIPLE, match_key=NAME_MATCH_KEY
            ),
            CUSTOMERS,
            CUSTOMERS,
        ),
        cross_matches=_key(
            ReportCode.CROSS_SOURCE_SUMMARY, ReportStatistic.MATCHED_COUNT, CUSTOMERS, WATCHLIST
        ),
        cross_matches_by_name_dob=_key(
            ReportCode.CROSS_SOURCE_SUMMARY,
            _statistic(
                ReportStatistic.MATCHED_COUNT, principle=PRINCIPLE, match_key=NAME_DOB_MATCH_KEY
            ),
            CUSTOMERS,
            WATCHLIST,
        ),
        cross_possible_relations=_key(
            ReportCode.CROSS_SOURCE_SUMMARY,
            ReportStatistic.POSSIBLE_RELATION_COUNT,
            CUSTOMERS,
            WATCHLIST,
        ),
    )

    dss, css = ReportCode.DATA_SOURCE_SUMMARY.value, ReportCode.CROSS_SOURCE_SUMMARY.value
    tables.insert_reports(
        [
            (keys.size_one, "ESB", "1", None, None, len(SINGLE_RECORD_IDS), None, None),
            (keys.size_two, "ESB", "2", None, None, len(CROSS_SOURCE_IDS), None, None),
            (keys.relations_zero, "ERB", "0", None, None, 247, None, None),
            (keys.relations_one, "ERB", "1", None, None, 4, None, None),
            (keys.relations_two, "ERB", "2", None, None, 3, None, None),
            (keys.customers_loaded, dss, "ENTITY_COUNT", CUSTOMERS, CUSTOMERS, 254, 254, None),
            (
                _key(dss, ReportStatistic.UNMATCHED_COUNT, CUSTOMERS, CUSTOMERS),
                dss,
                "UNMATCHED_COUNT",
                CUSTOMERS,
                CUSTOMERS,
                250,
                250,
                None,
            ),
            (keys.watchlist_loaded, dss, "ENTITY_COUNT", WATCHLIST, WATCHLIST, 4, 4, None),
            (keys.possible_matches, dss, "POSSIBLE_MATCH_COUNT", CUSTOMERS, CUSTOMERS, 5, 5, 4),
            (
                keys.possible_matches_by_name,
                dss,
                f"POSSIBLE_MATCH_COUNT:{PRINCIPLE}:{NAME_MATCH_KEY}",
                CUSTOMERS,
                CUSTOMERS,
                5,
                5,
                4,
            ),
            (keys.cross_matches, css, "MATCHED_COUNT", CUSTOMERS, WATCHLIST, 4, 8, None),
            (
                keys.cross_matches_by_name_dob,
                css,
                f"MATCHED_COUNT:{PRINCIPLE}:{NAME_DOB_MATCH_KEY}",
                CUSTOMERS,
                WATCHLIST,
                4,
                8,
                None,
            ),
            (
                keys.cross_possible_relations,
                css,
                "POSSIBLE_RELATION_COUNT",
                CUSTOMERS,
                WATCHLIST,
                2,
                4,
                1,
            ),
        ]
    )

    details: list[tuple[str, int, int, int]] = []
    details.extend((keys.size_one, entity_id, 0, 1) for entity_id in SINGLE_RECORD_IDS)
    details.extend((keys.size_two, entity_id, 0, 1) for entity_id in CROSS_SOURCE_IDS)
    details.extend((keys.relations_one, entity_id, 0, 1) for entity_id in (40, 50, 251, 252))
    details.extend((keys.relations_two, entity_id, 0, 1) for entity_id in (10, 20, 30))
    details.extend((keys.customers_loaded, entity_id, 0, 1) for entity_id in all_ids)
    details.extend((keys.watchlist_loaded, entity_id, 0, 1) for entity_id in CROSS_SOURCE_IDS)
    for scope in (keys.possible_matches, keys.possible_matches_by_name):
        details.extend((scope, entity_id, 0, 1) for entity_id in POSSIBLE_MATCH_IDS)
        details.extend(
            (scope, entity_id, related_id, 1) for entity_id, related_id in POSSIBLE_MATCH_PAIRS
        )
    for scope in (keys.cross_matches, keys.cross_matches_by_name_dob):
        details.extend((scope, entity_id, 0, 1) for entity_id in CROSS_SOURCE_IDS)
    # stored from the CUSTOMERS side, so the greater entity ID is primary
    details.extend(
        [
            (keys.cross_possible_relations, 251, 0, 1),
            (keys.cross_possible_relations, 252, 0, 1),
            (keys.cross_possible_relations, 252, 251, 1),
        ]
    )
    tables.insert_report_details(details)
    return keys


def open_seeded_memory_gateway() -> tuple[StorageGateway, SeededMart]:
    """
    Open an in-memory gateway populated by :func:`seed_data_mart`.

    Returns
    -------
    tuple[StorageGateway, SeededMart]
        Gateway plus the seeded report keys; the caller closes the gateway.
    """
    gateway = open_memory_gateway()
    return gateway, seed_data_mart(gateway)


def write_seeded_database(db_path: Path) -> SeededMart:
    """
    Create a DuckDB file at ``db_path`` holding the seeded data mart.

    Returns
    -------
    SeededMart
        Report keys for the seeded scopes.
    """
    gateway = open_gateway(StorageConfig.for_seeding(db_path))
    try:
        return seed_data_mart(gateway)
    finally:
        gateway.close()
