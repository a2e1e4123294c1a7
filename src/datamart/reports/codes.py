"""
Report codes, statistic tokens and report scope keys.

Every aggregate row in ``dm.report`` and ``dm.report_detail`` is addressed by a
report key of the form ``CODE:stat[:ds1[:ds2]]``. For the summary reports the
``stat`` component is itself a statistic token of the form
``STAT[:principle[:matchKey]]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import quote_plus, unquote_plus

WILDCARD = "*"
_KEY_SEPARATOR = ":"
_MIN_KEY_TOKENS = 2
_MAX_KEY_TOKENS = 4


class ReportCode(StrEnum):
    """Report categories stored in the shared aggregate tables."""

    DATA_SOURCE_SUMMARY = "DSS"
    CROSS_SOURCE_SUMMARY = "CSS"
    ENTITY_SIZE_BREAKDOWN = "ESB"
    ENTITY_RELATION_BREAKDOWN = "ERB"

    @classmethod
    def lookup(cls, code: str) -> ReportCode:
        """
        Resolve a three-letter report code.

        Returns
        -------
        ReportCode
            Matching report code.

        Raises
        ------
        ValueError
            If the code is not a known report code.
        """
        try:
            return cls(code)
        except ValueError:
            message = f"Unrecognized report code: {code}"
            raise ValueError(message) from None

    @classmethod
    def for_sources(cls, data_source: str, vs_data_source: str) -> ReportCode:
        """Return DSS for a self-comparison and CSS otherwise."""
        if data_source == vs_data_source:
            return cls.DATA_SOURCE_SUMMARY
        return cls.CROSS_SOURCE_SUMMARY


class RelationType(StrEnum):
    """Categories of entity relations."""

    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    POSSIBLE_MATCH = "POSSIBLE_MATCH"
    POSSIBLE_RELATION = "POSSIBLE_RELATION"
    DISCLOSED_RELATION = "DISCLOSED_RELATION"


class ReportStatistic(StrEnum):
    """Base statistics tracked by the data source and cross source summaries."""

    ENTITY_COUNT = "ENTITY_COUNT"
    UNMATCHED_COUNT = "UNMATCHED_COUNT"
    MATCHED_COUNT = "MATCHED_COUNT"
    AMBIGUOUS_MATCH_COUNT = "AMBIGUOUS_MATCH_COUNT"
    POSSIBLE_MATCH_COUNT = "POSSIBLE_MATCH_COUNT"
    DISCLOSED_RELATION_COUNT = "DISCLOSED_RELATION_COUNT"
    POSSIBLE_RELATION_COUNT = "POSSIBLE_RELATION_COUNT"

    @property
    def relation_type(self) -> RelationType | None:
        """Relation category counted by this statistic, if any."""
        return _RELATION_TYPES.get(self)

    def with_dimensions(
        self,
        *,
        principle: str | None = None,
        match_key: str | None = None,
    ) -> StatisticKey:
        """
        Qualify the statistic with optional principle and match key dimensions.

        Returns
        -------
        StatisticKey
            Statistic token for the given dimensions.
        """
        return StatisticKey(self, principle=principle, match_key=match_key)


_RELATION_TYPES: dict[ReportStatistic, RelationType] = {
    ReportStatistic.AMBIGUOUS_MATCH_COUNT: RelationType.AMBIGUOUS_MATCH,
    ReportStatistic.POSSIBLE_MATCH_COUNT: RelationType.POSSIBLE_MATCH,
    ReportStatistic.POSSIBLE_RELATION_COUNT: RelationType.POSSIBLE_RELATION,
    ReportStatistic.DISCLOSED_RELATION_COUNT: RelationType.DISCLOSED_RELATION,
}


def normalize_dimension(value: str | None) -> str | None:
    """
    Trim a match key or principle, mapping blank text to ``None``.

    Returns
    -------
    str | None
        Trimmed text, or ``None`` when absent or blank.
    """
    if value is None:
        return None
    text = value.strip()
    return text or None


def dimension_matches(requested: str | None, actual: str | None) -> bool:
    """
    Apply the three query modes for one statistic dimension.

    ``None`` matches only rows without the dimension, ``"*"`` matches every row,
    and any other value must match exactly.

    Returns
    -------
    bool
        True when the stored value satisfies the requested value.
    """
    if requested == WILDCARD:
        return True
    return requested == actual


def unwildcard(value: str | None) -> str | None:
    """Map the ``"*"`` wildcard to ``None``; other values pass through normalized."""
    normalized = normalize_dimension(value)
    return None if normalized == WILDCARD else normalized


def _lookup_statistic(token: str, encoded: str) -> ReportStatistic:
    try:
        return ReportStatistic(token.strip())
    except ValueError:
        message = f"Improperly formatted report statistic: {encoded}"
        raise ValueError(message) from None


@dataclass(frozen=True)
class StatisticKey:
    """
    Statistic name plus optional principle and match key.

    Encoded as ``STAT``, ``STAT:principle`` or ``STAT:principle:matchKey``; a
    match key without a principle encodes as ``STAT::matchKey``.
    """

    statistic: ReportStatistic
    principle: str | None = None
    match_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "principle", normalize_dimension(self.principle))
        object.__setattr__(self, "match_key", normalize_dimension(self.match_key))

    def format(self) -> str:
        """
        Encode the statistic token.

        Returns
        -------
        str
            Token stored in the ``statistic`` column of ``dm.report``.
        """
        if self.principle is None and self.match_key is None:
            return self.statistic.value
        principle = self.principle or ""
        if self.match_key is None:
            return f"{self.statistic.value}:{principle}"
        return f"{self.statistic.value}:{principle}:{self.match_key}"

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def parse(cls, encoded: str) -> StatisticKey:
        """
        Decode a statistic token.

        Returns
        -------
        StatisticKey
            Decoded statistic with normalized dimensions.

        Raises
        ------
        ValueError
            If the text is blank, starts with a separator, or names an unknown
            statistic.
        """
        text = encoded.strip()
        if not text:
            message = "The encoded statistic cannot be blank"
            raise ValueError(message)
        head, sep, rest = text.partition(_KEY_SEPARATOR)
        if sep and not head.strip():
            message = f"Improperly formatted report statistic: {encoded}"
            raise ValueError(message)
        statistic = _lookup_statistic(head, encoded)
        principle, _, match_key = rest.partition(_KEY_SEPARATOR)
        return cls(statistic, principle=principle, match_key=match_key)


def _encode(component: str) -> str:
    return quote_plus(component, safe="*")


@dataclass(frozen=True)
class ReportKey:
    """Scope key selecting one slice of the shared aggregate tables."""

    report_code: ReportCode
    statistic: str
    data_source1: str | None = None
    data_source2: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "report_code", ReportCode(self.report_code))
        object.__setattr__(self, "statistic", str(self.statistic or ""))
        if not self.statistic:
            message = "The report key statistic cannot be empty"
            raise ValueError(message)
        if self.data_source1 is None and self.data_source2 is not None:
            message = (
                "A second data source cannot be specified if the first data source is null: "
                f"reportCode={self.report_code}, statistic={self.statistic}, "
                f"dataSource2={self.data_source2}"
            )
            raise ValueError(message)

    @classmethod
    def for_statistic(
        cls,
        statistic: StatisticKey,
        data_source: str,
        vs_data_source: str,
    ) -> ReportKey:
        """
        Build the summary key for a statistic between two data sources.

        Returns
        -------
        ReportKey
            DSS key when both sources are equal, otherwise CSS key.
        """
        code = ReportCode.for_sources(data_source, vs_data_source)
        return cls(code, statistic.format(), data_source, vs_data_source)

    def format(self) -> str:
        """
        Encode the key with each component form-encoded.

        Returns
        -------
        str
            Text stored in the ``report_key`` columns.
        """
        parts = [self.report_code.value, _encode(self.statistic)]
        if self.data_source1 is not None:
            parts.append(_encode(self.data_source1))
            if self.data_source2 is not None:
                parts.append(_encode(self.data_source2))
        return _KEY_SEPARATOR.join(parts)

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def parse(cls, text: str) -> ReportKey:
        """
        Decode an encoded report key.

        Returns
        -------
        ReportKey
            Decoded key.

        Raises
        ------
        ValueError
            If the text does not have two to four components or names an
            unknown report code.
        """
        tokens = text.split(_KEY_SEPARATOR)
        if not _MIN_KEY_TOKENS <= len(tokens) <= _MAX_KEY_TOKENS:
            message = f"The specified text is not an encoded report key: {text}"
            raise ValueError(message)
        code = ReportCode.lookup(tokens[0])
        decoded = [unquote_plus(token) for token in tokens[1:]]
        decoded.extend([None] * (_MAX_KEY_TOKENS - len(tokens)))
        return cls(code, decoded[0], decoded[1], decoded[2])
