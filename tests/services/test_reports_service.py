"""ReportsService behavior over the seeded data mart."""

from __future__ import annotations

import logging
from http import HTTPStatus
from pathlib import Path

import pytest

from datamart.config.serving_models import ServingConfig
from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportStatistic
from datamart.serving.services.reports_service import (
    PageRequest,
    ReportsService,
    ServiceObservability,
    build_reports_service,
)
from datamart.storage.gateway import StorageGateway, open_memory_gateway
from tests._helpers.expect import (
    entity_ids,
    expect_equal,
    expect_len,
    expect_problem,
    expect_true,
    relation_keys,
)
from tests._helpers.seed import CUSTOMERS, VENDORS, WATCHLIST


def test_entity_size_page_through_service(reports_service: ReportsService) -> None:
    """A max bound without a bound type scans down from the highest entity."""
    page = reports_service.get_entity_size_entities(1, PageRequest(bound="max", page_size=5))
    expect_equal(entity_ids(page), [246, 247, 248, 249, 250])
    expect_equal(page.bound_type, BoundType.EXCLUSIVE_UPPER)
    expect_equal(page.before_page_count, 245)
    expect_equal(list(reports_service.calls), ["get_entity_size_entities"])


def test_page_size_above_limit_is_invalid(reports_service: ReportsService) -> None:
    """Page and sample sizes above the configured maximum are rejected."""
    expect_problem(
        lambda: reports_service.get_entity_size_entities(1, PageRequest(page_size=501)),
        status=HTTPStatus.BAD_REQUEST,
        detail="cannot exceed 500",
    )
    expect_problem(
        lambda: reports_service.get_data_source_entities(
            CUSTOMERS, PageRequest(sample_size=900)
        ),
        status=HTTPStatus.BAD_REQUEST,
        detail="sample size",
    )
    expect_len(reports_service.calls, 0)


def test_report_argument_errors_become_invalid_argument(reports_service: ReportsService) -> None:
    """ValueErrors raised by the reports surface as 400 problems."""
    expect_problem(
        lambda: reports_service.get_entity_size_entities(1, PageRequest(bound="abc")),
        status=HTTPStatus.BAD_REQUEST,
        detail="integer",
    )
    expect_problem(
        lambda: reports_service.get_cross_relations(
            CUSTOMERS, WATCHLIST, ReportStatistic.MATCHED_COUNT
        ),
        status=HTTPStatus.BAD_REQUEST,
        detail="Relations are not tracked",
    )
    expect_problem(
        lambda: reports_service.get_cross_source_counts(
            CUSTOMERS, WATCHLIST, ReportStatistic.ENTITY_COUNT
        ),
        status=HTTPStatus.BAD_REQUEST,
    )


def test_unknown_data_source_is_not_found(reports_service: ReportsService) -> None:
    """Codes outside the configured data sources are 404 problems."""
    expect_problem(
        lambda: reports_service.get_source_loaded_statistics("NOPE"),
        status=HTTPStatus.NOT_FOUND,
        detail="NOPE",
    )
    expect_problem(
        lambda: reports_service.get_cross_source_summary(CUSTOMERS, "NOPE"),
        status=HTTPStatus.NOT_FOUND,
    )


def test_unconfigured_service_accepts_any_data_source(seeded_gateway: StorageGateway) -> None:
    """Without configured data sources any code is reported, zero filled."""
    service = build_reports_service(seeded_gateway, ServingConfig(db_path=Path(":memory:")))
    stats = service.get_source_loaded_statistics("NOPE")
    expect_equal((stats.data_source, stats.entity_count), ("NOPE", 0))


def test_configured_sources_extend_loaded_ones(reports_service: ReportsService) -> None:
    """Configured sources are reported only when callers opt out of loaded-only."""
    loaded = reports_service.get_loaded_statistics()
    expect_equal([row.data_source for row in loaded.data_source_counts], [CUSTOMERS, WATCHLIST])
    configured = reports_service.get_loaded_statistics(only_loaded_sources=False)
    expect_equal(
        [row.data_source for row in configured.data_source_counts],
        [CUSTOMERS, VENDORS, WATCHLIST],
    )
    summary = reports_service.get_summary_statistics(only_loaded_sources=False)
    expect_len(summary.source_summaries, 3)


def test_summary_pages_through_service(reports_service: ReportsService) -> None:
    """Summary entity and relation pages resolve their scope from the statistic."""
    entities = reports_service.get_summary_entities(
        CUSTOMERS, ReportStatistic.POSSIBLE_MATCH_COUNT, match_key="*"
    )
    expect_equal(entity_ids(entities), [10, 20, 30, 40, 50])
    relations = reports_service.get_cross_relations(
        CUSTOMERS,
        CUSTOMERS,
        ReportStatistic.POSSIBLE_MATCH_COUNT,
        page=PageRequest(page_size=2),
    )
    expect_equal(relation_keys(relations), [(10, 20), (10, 30)])
    counts = reports_service.get_cross_source_counts(
        CUSTOMERS, WATCHLIST, ReportStatistic.POSSIBLE_RELATION_COUNT
    )
    expect_equal([bucket.entity_count for bucket in counts.counts], [2])
    expect_equal(
        list(reports_service.calls),
        [
            "get_summary_entities[POSSIBLE_MATCH_COUNT]",
            "get_cross_relations[POSSIBLE_MATCH_COUNT]",
            "get_cross_source_counts[POSSIBLE_RELATION_COUNT]",
        ],
    )


def test_call_history_keeps_only_recent_calls(
    seeded_gateway: StorageGateway, serving_config: ServingConfig
) -> None:
    """The recorded call names are bounded by the configured history length."""
    service = ReportsService(gateway=seeded_gateway, config=serving_config, call_history=2)
    service.get_entity_size_breakdown()
    service.get_entity_relations_breakdown()
    service.get_loaded_statistics()
    expect_equal(
        list(service.calls), ["get_entity_relations_breakdown", "get_loaded_statistics"]
    )
    expect_equal(build_reports_service(seeded_gateway, serving_config).calls.maxlen, 256)


def test_backend_errors_become_backend_failure() -> None:
    """DuckDB failures surface as 500 problems."""
    gateway = open_memory_gateway(apply_schema=False, validate_schema=False)
    try:
        service = build_reports_service(gateway, ServingConfig(db_path=Path(":memory:")))
        expect_problem(
            service.get_entity_size_breakdown, status=HTTPStatus.INTERNAL_SERVER_ERROR
        )
    finally:
        gateway.close()


def test_observability_logs_each_call(
    seeded_gateway: StorageGateway,
    serving_config: ServingConfig,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Enabled observability emits one structured line per call with query stages."""
    logger = logging.getLogger("tests.reports.observability")
    service = build_reports_service(
        seeded_gateway,
        serving_config,
        observability=ServiceObservability(enabled=True, logger=logger),
    )
    with caplog.at_level(logging.INFO, logger=logger.name):
        service.get_entity_relations_entities(2)
        expect_problem(
            lambda: service.get_entity_relations_entities(-1),
            status=HTTPStatus.BAD_REQUEST,
        )
    messages = [record.getMessage() for record in caplog.records if record.name == logger.name]
    expect_len(messages, 2)
    expect_true(
        "get_entity_relations_entities" in messages[0] and "'rows': 3" in messages[0],
        message=f"unexpected success log: {messages[0]}",
    )
    expect_true(
        "selectPagedEntities" in messages[0],
        message=f"query stages missing from {messages[0]}",
    )
    expect_true("ReportsError" in messages[1], message=f"unexpected error log: {messages[1]}")


def test_disabled_observability_is_silent(
    reports_service: ReportsService, caplog: pytest.LogCaptureFixture
) -> None:
    """The default configuration leaves service calls unlogged."""
    with caplog.at_level(logging.INFO, logger="datamart.serving.services.reports"):
        reports_service.get_entity_size_breakdown()
    expect_equal(
        [record for record in caplog.records if "service_call" in record.getMessage()], []
    )
