"""Statistic tokens and report scope keys."""

from __future__ import annotations

import pytest

from datamart.reports.codes import (
    ReportCode,
    ReportKey,
    ReportStatistic,
    StatisticKey,
    dimension_matches,
    unwildcard,
)
from tests._helpers.expect import expect_equal, expect_true, expect_value_error


@pytest.mark.parametrize(
    ("key", "encoded"),
    [
        (StatisticKey(ReportStatistic.MATCHED_COUNT), "MATCHED_COUNT"),
        (StatisticKey(ReportStatistic.MATCHED_COUNT, principle="MFF"), "MATCHED_COUNT:MFF"),
        (
            StatisticKey(
                ReportStatistic.POSSIBLE_MATCH_COUNT, principle="CNAME", match_key="+NAME"
            ),
            "POSSIBLE_MATCH_COUNT:CNAME:+NAME",
        ),
        (
            StatisticKey(ReportStatistic.AMBIGUOUS_MATCH_COUNT, match_key="+ADDRESS"),
            "AMBIGUOUS_MATCH_COUNT::+ADDRESS",
        ),
        (
            StatisticKey(ReportStatistic.DISCLOSED_RELATION_COUNT, principle="*", match_key="*"),
            "DISCLOSED_RELATION_COUNT:*:*",
        ),
    ],
)
def test_statistic_token_format_and_parse(key: StatisticKey, encoded: str) -> None:
    """Tokens encode absent, exact and wildcard dimensions and parse back."""
    expect_equal(key.format(), encoded)
    expect_equal(StatisticKey.parse(encoded), key)


def test_statistic_token_normalizes_blank_dimensions() -> None:
    """Blank dimensions are treated as absent."""
    parsed = StatisticKey.parse(" MATCHED_COUNT: : ")
    expect_equal(parsed, StatisticKey(ReportStatistic.MATCHED_COUNT))


@pytest.mark.parametrize(
    ("encoded", "match"),
    [
        ("", "cannot be blank"),
        (":MFF", "Improperly formatted"),
        ("UNKNOWN_COUNT:MFF", "Improperly formatted"),
    ],
)
def test_statistic_token_rejects_bad_text(encoded: str, match: str) -> None:
    """Blank, headless or unknown tokens are rejected."""
    expect_value_error(lambda: StatisticKey.parse(encoded), match)


def test_dimension_query_modes() -> None:
    """None matches absence only, the wildcard matches anything, text matches exactly."""
    expect_true(dimension_matches(None, None), message="absent should match absent")
    expect_true(not dimension_matches(None, "+NAME"), message="absent should not match a value")
    expect_true(dimension_matches("*", None), message="wildcard should match absent")
    expect_true(dimension_matches("*", "+NAME"), message="wildcard should match a value")
    expect_true(dimension_matches("+NAME", "+NAME"), message="exact value should match")
    expect_true(not dimension_matches("+NAME", "+DOB"), message="other value should not match")
    expect_equal(unwildcard(" * "), None)
    expect_equal(unwildcard(" +NAME "), "+NAME")


def test_report_key_encodes_each_component() -> None:
    """Statistic and data source components are form encoded between colons."""
    stat = ReportStatistic.MATCHED_COUNT.with_dimensions(principle="MFF", match_key="+NAME+DOB")
    key = ReportKey.for_statistic(stat, "CUSTOMERS", "WATCH LIST")
    expect_equal(key.report_code, ReportCode.CROSS_SOURCE_SUMMARY)
    expect_equal(key.format(), "CSS:MATCHED_COUNT%3AMFF%3A%2BNAME%2BDOB:CUSTOMERS:WATCH+LIST")
    expect_equal(ReportKey.parse(key.format()), key)


def test_report_key_for_same_source_uses_data_source_summary() -> None:
    """Comparing a data source with itself reads the data source summary."""
    key = ReportKey.for_statistic(StatisticKey(ReportStatistic.ENTITY_COUNT), "CRM", "CRM")
    expect_equal(key.format(), "DSS:ENTITY_COUNT:CRM:CRM")


def test_report_key_without_data_sources() -> None:
    """Breakdown keys have only a code and a statistic."""
    key = ReportKey(ReportCode.ENTITY_SIZE_BREAKDOWN, "3")
    expect_equal(str(key), "ESB:3")
    expect_equal(ReportKey.parse("ESB:3"), key)


@pytest.mark.parametrize(
    ("build", "match"),
    [
        (lambda: ReportKey(ReportCode.ENTITY_SIZE_BREAKDOWN, ""), "cannot be empty"),
        (
            lambda: ReportKey(ReportCode.CROSS_SOURCE_SUMMARY, "MATCHED_COUNT", None, "CRM"),
            "second data source",
        ),
        (lambda: ReportKey.parse("ESB"), "not an encoded report key"),
        (lambda: ReportKey.parse("XYZ:1"), "Unrecognized report code"),
    ],
)
def test_report_key_rejects_invalid_keys(build: object, match: str) -> None:
    """Empty statistics, orphan second sources and unknown codes are rejected."""
    expect_value_error(build, match)  # type: ignore[arg-type]
