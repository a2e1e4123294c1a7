"""Bound parsing for cursor-bounded report pages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

MAX_BOUND_VALUE = 2**63 - 1
MIN_BOUND_VALUE = -(2**63)
MAX_SENTINEL = "max"
MAX_RELATION_BOUND = f"{MAX_SENTINEL}:{MAX_SENTINEL}"

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")


class BoundType(StrEnum):
    """How a page bound is compared and which direction the page is scanned."""

    INCLUSIVE_LOWER = "INCLUSIVE_LOWER"
    EXCLUSIVE_LOWER = "EXCLUSIVE_LOWER"
    INCLUSIVE_UPPER = "INCLUSIVE_UPPER"
    EXCLUSIVE_UPPER = "EXCLUSIVE_UPPER"

    @property
    def is_lower(self) -> bool:
        """True for the lower-bound variants, which scan ascending."""
        return self in {BoundType.INCLUSIVE_LOWER, BoundType.EXCLUSIVE_LOWER}

    @property
    def operator(self) -> str:
        """SQL comparison operator applied against the bound value."""
        return _OPERATORS[self]

    @property
    def sort_direction(self) -> str:
        """SQL sort direction for the bounded selection."""
        return "ASC" if self.is_lower else "DESC"

    @property
    def default_value(self) -> int:
        """Bound value used when no bound text is supplied."""
        return 0 if self.is_lower else MAX_BOUND_VALUE


_OPERATORS: dict[BoundType, str] = {
    BoundType.INCLUSIVE_LOWER: ">=",
    BoundType.EXCLUSIVE_LOWER: ">",
    BoundType.INCLUSIVE_UPPER: "<=",
    BoundType.EXCLUSIVE_UPPER: "<",
}


@dataclass(frozen=True)
class EntityBound:
    """Resolved entity ID bound."""

    text: str
    bound_type: BoundType
    value: int


@dataclass(frozen=True)
class RelationBound:
    """Resolved (entity ID, related ID) bound."""

    text: str
    bound_type: BoundType
    entity_value: int
    related_value: int


def _blank_to_none(text: str | None) -> str | None:
    if text is None:
        return None
    stripped = text.strip()
    return stripped or None


def coerce_bound_type(bound_type: BoundType | str | None) -> BoundType | None:
    """
    Accept a bound type or its name.

    Returns
    -------
    BoundType | None
        Parsed bound type, or ``None`` when not given.

    Raises
    ------
    ValueError
        If the name is not a supported bound type.
    """
    if bound_type is None or isinstance(bound_type, BoundType):
        return bound_type
    try:
        return BoundType(bound_type.strip().upper())
    except ValueError:
        message = f"Unsupported bound type: {bound_type}"
        raise ValueError(message) from None


def is_max_sentinel(text: str) -> bool:
    """Return True when the text is the case-insensitive ``max`` token."""
    return text.strip().lower() == MAX_SENTINEL


def parse_bound_value(text: str) -> int:
    """
    Parse one bound component as a 64-bit integer or the ``max`` sentinel.

    Returns
    -------
    int
        Parsed value; ``max`` maps to the largest signed 64-bit value.

    Raises
    ------
    ValueError
        If the text is neither an integer nor ``max``, or is out of range.
    """
    stripped = text.strip()
    if is_max_sentinel(stripped):
        return MAX_BOUND_VALUE
    if not _INTEGER_PATTERN.fullmatch(stripped):
        message = f'The entity ID bound must either be an integer or "max": {text}'
        raise ValueError(message)
    value = int(stripped)
    if not MIN_BOUND_VALUE <= value <= MAX_BOUND_VALUE:
        message = f"The entity ID bound is outside the 64-bit integer range: {text}"
        raise ValueError(message)
    return value


def resolve_entity_bound(
    bound: str | None,
    bound_type: BoundType | str | None = None,
) -> EntityBound:
    """
    Resolve an entity ID bound and its effective bound type.

    When no bound type is given it is inferred from the text: ``max`` scans
    downward with an exclusive upper bound, anything else scans upward with an
    exclusive lower bound. An absent or blank bound defaults to ``0`` for lower
    types and ``max`` for upper types.

    Parameters
    ----------
    bound
        Raw bound text: an integer, ``max``, or ``None``.
    bound_type
        Explicit bound type, its name, or ``None`` to infer.

    Returns
    -------
    EntityBound
        Normalized bound text, bound type and comparable value.

    Raises
    ------
    ValueError
        If the text or bound type is malformed.
    """
    text = _blank_to_none(bound)
    effective = coerce_bound_type(bound_type)
    if effective is None:
        max_text = text is not None and is_max_sentinel(text)
        effective = BoundType.EXCLUSIVE_UPPER if max_text else BoundType.EXCLUSIVE_LOWER

    if text is None:
        default_text = "0" if effective.is_lower else MAX_SENTINEL
        return EntityBound(default_text, effective, effective.default_value)
    if is_max_sentinel(text):
        return EntityBound(MAX_SENTINEL, effective, MAX_BOUND_VALUE)
    return EntityBound(text, effective, parse_bound_value(text))


def _relation_bound_error(bound: str) -> ValueError:
    return ValueError(f"The specified relation bound is not properly formatted: {bound}")


def _parse_relation_component(text: str, raw: str) -> tuple[str, int]:
    if is_max_sentinel(text):
        return MAX_SENTINEL, MAX_BOUND_VALUE
    try:
        return text, parse_bound_value(text)
    except ValueError as exc:
        raise _relation_bound_error(raw) from exc


def resolve_relation_bound(
    bound: str | None,
    bound_type: BoundType | str | None = None,
) -> RelationBound:
    """
    Resolve an ``entityId:relatedId`` bound and its effective bound type.

    A bound without a colon sets only the entity component (``max`` alone
    means ``max:max``); a missing related component takes the default for the
    bound direction. Without an explicit bound type, ``max`` and ``max:max``
    select an exclusive upper bound.

    Returns
    -------
    RelationBound
        Normalized bound text, bound type and both comparable values.

    Raises
    ------
    ValueError
        If the text starts with a colon, a component is malformed, or the
        bound type is unsupported.
    """
    text = _blank_to_none(bound)
    effective = coerce_bound_type(bound_type)
    if effective is None:
        max_text = text is not None and text.lower().replace(" ", "") in {
            MAX_SENTINEL,
            MAX_RELATION_BOUND,
        }
        effective = BoundType.EXCLUSIVE_UPPER if max_text else BoundType.EXCLUSIVE_LOWER
    default_value = effective.default_value

    if text is None:
        default_text = "0:0" if effective.is_lower else MAX_RELATION_BOUND
        return RelationBound(default_text, effective, default_value, default_value)

    index = text.find(":")
    if index == 0:
        raise _relation_bound_error(text)
    if index < 0:
        if is_max_sentinel(text):
            return RelationBound(MAX_RELATION_BOUND, effective, MAX_BOUND_VALUE, MAX_BOUND_VALUE)
        _, entity_value = _parse_relation_component(text, text)
        return RelationBound(text, effective, entity_value, default_value)

    part1, part2 = text[:index].strip(), text[index + 1 :].strip()
    part1, entity_value = _parse_relation_component(part1, text)
    if part2:
        part2, related_value = _parse_relation_component(part2, text)
    else:
        related_value = default_value
    return RelationBound(f"{part1}:{part2}", effective, entity_value, related_value)


def format_relation_value(entity_id: int, related_id: int) -> str:
    """
    Encode a relation key as a bound string.

    Returns
    -------
    str
        ``entityId:relatedId`` text usable as a continuation bound.
    """
    return f"{entity_id}:{related_id}"
