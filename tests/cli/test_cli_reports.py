"""Tests for the data mart report CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from datamart.cli.main import main, make_parser
from datamart.reports.codes import ReportStatistic
from tests._helpers.expect import expect_equal, expect_len, expect_true
from tests._helpers.seed import CUSTOMERS, VENDORS, WATCHLIST


@dataclass
class CliResult:
    """Captured CLI execution result."""

    exit_code: int
    stdout: str

    def payload(self) -> dict[str, Any]:
        """Decode the JSON document written to stdout."""
        return json.loads(self.stdout)


CliRunner = Callable[..., CliResult]


@pytest.fixture
def cli_runner(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
    seeded_db_path: Path,
) -> CliRunner:
    """
    Run the CLI against the seeded database file with captured output.

    Returns
    -------
    CliRunner
        Callable that executes the CLI and captures stdout.
    """
    for name in ("DATAMART_DB_PATH", "DATAMART_DATA_SOURCES", "DATAMART_MAX_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)

    def _run(*args: str) -> CliResult:
        exit_code = main([*args, "--db-path", str(seeded_db_path)])
        captured = capsys.readouterr()
        return CliResult(exit_code=exit_code, stdout=captured.out)

    return _run


def _ok(result: CliResult) -> dict[str, Any]:
    if result.exit_code != 0:
        pytest.fail(f"CLI exited with {result.exit_code}")
    return result.payload()


def _ids(payload: dict[str, Any]) -> list[int]:
    return [entity["entityId"] for entity in payload["entities"]]


def test_sizes_breakdown_json(cli_runner: CliRunner) -> None:
    """The breakdown command prints the camelCase payload."""
    payload = _ok(cli_runner("sizes", "breakdown"))
    expect_equal(
        payload["entitySizeCounts"],
        [{"entitySize": 2, "entityCount": 4}, {"entitySize": 1, "entityCount": 250}],
    )


def test_size_and_relation_pages(cli_runner: CliRunner) -> None:
    """Page commands accept bound, bound type and page size options."""
    sizes = _ok(cli_runner("sizes", "entities", "--size", "2", "--page-size", "2"))
    expect_equal(_ids(sizes), [251, 252])
    relations = _ok(cli_runner("relations", "entities", "--relations", "2", "--bound", "max"))
    expect_equal(_ids(relations), [10, 20, 30])
    expect_equal(relations["boundType"], "EXCLUSIVE_UPPER")
    inclusive = _ok(
        cli_runner(
            "relations",
            "entities",
            "--relations",
            "1",
            "--bound",
            "50",
            "--bound-type",
            "INCLUSIVE_UPPER",
        )
    )
    expect_equal(_ids(inclusive), [40, 50])
    count = _ok(cli_runner("relations", "count", "--relations", "0"))
    expect_equal(count, {"relationsCount": 0, "entityCount": 247})


def test_loaded_stats_with_configured_sources(cli_runner: CliRunner) -> None:
    """Configured data source codes are normalized and reported on request."""
    payload = _ok(
        cli_runner(
            "loaded",
            "stats",
            "--include-configured",
            "--data-sources",
            "customers, watchlist,vendors",
        )
    )
    expect_equal(
        [row["dataSource"] for row in payload["dataSourceCounts"]],
        [CUSTOMERS, VENDORS, WATCHLIST],
    )
    loaded_only = _ok(cli_runner("loaded", "stats", "--data-sources", "vendors"))
    expect_len(loaded_only["dataSourceCounts"], 2)


def test_summary_commands(cli_runner: CliRunner) -> None:
    """Summary commands cover families, entity pages and relation pages."""
    family = _ok(
        cli_runner(
            "summary",
            "family",
            "--data-source",
            CUSTOMERS,
            "--vs",
            WATCHLIST,
            "--statistic",
            "MATCHED_COUNT",
            "--match-key",
            "*",
            "--principle",
            "*",
        )
    )
    expect_len(family["counts"], 2)
    within = _ok(
        cli_runner(
            "summary",
            "entities",
            "--data-source",
            CUSTOMERS,
            "--statistic",
            "POSSIBLE_MATCH_COUNT",
        )
    )
    expect_equal(_ids(within), [10, 20, 30, 40, 50])
    cross = _ok(
        cli_runner(
            "summary",
            "entities",
            "--data-source",
            CUSTOMERS,
            "--vs",
            WATCHLIST,
            "--statistic",
            "MATCHED_COUNT",
            "--page-size",
            "3",
        )
    )
    expect_equal(_ids(cross), [251, 252, 253])
    relations = _ok(
        cli_runner(
            "summary",
            "relations",
            "--data-source",
            CUSTOMERS,
            "--vs",
            WATCHLIST,
            "--statistic",
            "POSSIBLE_RELATION_COUNT",
        )
    )
    expect_equal(relations["relations"][0]["matchKey"], "+ADDRESS-PHONE")
    source = _ok(cli_runner("summary", "source", "--data-source", WATCHLIST))
    expect_equal(
        [cross["versusDataSource"] for cross in source["crossSourceSummaries"]],
        [CUSTOMERS, WATCHLIST],
    )


def test_problem_exits_nonzero(cli_runner: CliRunner, caplog: pytest.LogCaptureFixture) -> None:
    """Report problems are logged as Problem Details and exit with 1."""
    with caplog.at_level(logging.ERROR, logger="datamart.cli"):
        result = cli_runner(
            "loaded", "source", "--data-source", "NOPE", "--data-sources", CUSTOMERS
        )
    expect_equal(result.exit_code, 1)
    expect_equal(result.stdout, "")
    expect_true(
        any('"status":404' in record.getMessage() for record in caplog.records),
        message="expected a not-found problem log",
    )


def test_invalid_page_exits_nonzero(cli_runner: CliRunner) -> None:
    """Invalid paging arguments are reported rather than raised."""
    result = cli_runner("sizes", "entities", "--size", "1", "--bound", "abc")
    expect_equal((result.exit_code, result.stdout), (1, ""))


def test_missing_database_path(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Without --db-path or DATAMART_DB_PATH the command fails cleanly."""
    monkeypatch.delenv("DATAMART_DB_PATH", raising=False)
    with caplog.at_level(logging.ERROR, logger="datamart.cli"):
        exit_code = main(["sizes", "breakdown"])
    expect_equal(exit_code, 1)
    expect_equal(capsys.readouterr().out, "")
    expect_true(
        any("cli-failure" in record.getMessage() for record in caplog.records),
        message="expected a cli-failure problem log",
    )


def test_parser_restricts_statistics(capsys: pytest.CaptureFixture[str]) -> None:
    """Only bucket family statistics are accepted by summary commands."""
    parser = make_parser()
    family = ["summary", "family", "--data-source", "A", "--vs", "B", "--statistic"]
    args = parser.parse_args([*family, "AMBIGUOUS_MATCH_COUNT"])
    expect_equal(args.statistic, ReportStatistic.AMBIGUOUS_MATCH_COUNT)
    with pytest.raises(SystemExit):
        parser.parse_args([*family, "ENTITY_COUNT"])
    capsys.readouterr()
