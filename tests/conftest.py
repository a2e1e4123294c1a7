"""Pytest configuration for the data mart report test suite."""

from __future__ import annotations

import random
from collections.abc import Iterator
from pathlib import Path

import pytest

from datamart.config.serving_models import ServingConfig
from datamart.serving.services.reports_service import ReportsService, build_reports_service
from datamart.storage.gateway import DuckDBConnection, StorageGateway
from tests._helpers.seed import (
    CUSTOMERS,
    VENDORS,
    WATCHLIST,
    SeededMart,
    open_seeded_memory_gateway,
    write_seeded_database,
)


@pytest.fixture
def seeded() -> Iterator[tuple[StorageGateway, SeededMart]]:
    """Provide an in-memory gateway holding the seeded data mart.

    Yields
    ------
    tuple[StorageGateway, SeededMart]
        Gateway plus report keys; closed after the test.
    """
    gateway, keys = open_seeded_memory_gateway()
    try:
        yield gateway, keys
    finally:
        gateway.close()


@pytest.fixture
def seeded_gateway(seeded: tuple[StorageGateway, SeededMart]) -> StorageGateway:
    """Return the gateway of the seeded data mart."""
    return seeded[0]


@pytest.fixture
def seeded_keys(seeded: tuple[StorageGateway, SeededMart]) -> SeededMart:
    """Return the report keys of the seeded data mart."""
    return seeded[1]


@pytest.fixture
def con(seeded_gateway: StorageGateway) -> DuckDBConnection:
    """Return the live connection of the seeded data mart."""
    return seeded_gateway.con


@pytest.fixture
def rng() -> random.Random:
    """Deterministic random source for sampling."""
    return random.Random(20240611)


@pytest.fixture
def serving_config() -> ServingConfig:
    """Serving configuration naming the seeded and one unloaded data source."""
    return ServingConfig(
        db_path=Path(":memory:"),
        read_only=False,
        data_sources=(CUSTOMERS, WATCHLIST, VENDORS),
        max_page_size=500,
    )


@pytest.fixture
def reports_service(
    seeded_gateway: StorageGateway, serving_config: ServingConfig
) -> ReportsService:
    """Reports service over the seeded data mart."""
    return build_reports_service(seeded_gateway, serving_config)


@pytest.fixture
def seeded_db_path(tmp_path: Path) -> Path:
    """Write the seeded data mart to a DuckDB file and return its path.

    Returns
    -------
    Path
        Path to the closed, seeded database file.
    """
    db_path = tmp_path / "db" / "datamart.duckdb"
    write_seeded_database(db_path)
    return db_path
