"""
Fold ordered, flattened join rows into entities and relations.

The grouper is a two-state machine: idle (no current group) and accumulating.
A row whose key differs from the current group's key flushes the group; once
``page_size`` groups have been emitted the scan stops and any partially read
next group is discarded.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

from datamart.reports.codes import RelationType
from datamart.reports.models import ReportEntity, ReportRecord, ReportRelation
from datamart.storage.repositories.base import RowDict


class _State(Enum):
    IDLE = auto()
    ACCUMULATING = auto()


class _Accumulator[K, T](Protocol):
    key: K

    def add(self, row: RowDict) -> None: ...

    def build(self) -> T: ...


@dataclass(frozen=True)
class GroupedRows[K, T]:
    """Groups emitted for one page with the min/max key across all of them."""

    items: list[T]
    minimum: K | None = None
    maximum: K | None = None

    @property
    def candidate_count(self) -> int:
        """Number of groups produced before any sampling."""
        return len(self.items)


def _optional_int(value: object) -> int | None:
    return None if value is None else int(value)  # type: ignore[arg-type]


@dataclass
class _EntityAccumulator:
    key: int
    entity_name: str | None = None
    record_count: int | None = None
    relation_count: int | None = None
    records: dict[tuple[str, str], ReportRecord] = field(default_factory=dict)

    def add(self, row: RowDict) -> None:
        if row.get("entity_name") is not None:
            self.entity_name = row["entity_name"]
        if row.get("record_count") is not None:
            self.record_count = _optional_int(row["record_count"])
        if row.get("relation_count") is not None:
            self.relation_count = _optional_int(row["relation_count"])
        data_source = row.get("data_source")
        record_id = row.get("record_id")
        if data_source is None or record_id is None:
            return
        self.records[(data_source, record_id)] = ReportRecord(
            data_source=data_source,
            record_id=record_id,
            match_key=row.get("match_key"),
            principle=row.get("errule_code"),
        )

    def build(self) -> ReportEntity:
        return ReportEntity(
            entity_id=self.key,
            entity_name=self.entity_name,
            record_count=self.record_count,
            relation_count=self.relation_count,
            records=[self.records[k] for k in sorted(self.records)],
        )


@dataclass
class _RelationAccumulator:
    key: tuple[int, int]
    relation_type: RelationType | None
    match_key: str | None
    principle: str | None
    primary: _EntityAccumulator = field(init=False)
    related: _EntityAccumulator = field(init=False)

    def __post_init__(self) -> None:
        self.primary = _EntityAccumulator(self.key[0])
        self.related = _EntityAccumulator(self.key[1])

    @classmethod
    def start(cls, row: RowDict) -> _RelationAccumulator:
        entity_id, related_id = relation_key(row)
        match_type = row.get("match_type")
        # stored match keys read from the lesser entity toward the greater one
        match_key = row.get("rel_rev_match_key") if related_id < entity_id else row.get(
            "rel_match_key"
        )
        return cls(
            key=(entity_id, related_id),
            relation_type=RelationType(match_type) if match_type is not None else None,
            match_key=match_key,
            principle=row.get("rel_errule_code"),
        )

    def add(self, row: RowDict) -> None:
        side_id = row.get("entity_id")
        if side_id is None:
            return
        side = self.primary if int(side_id) == self.key[0] else self.related
        side.add(row)

    def build(self) -> ReportRelation:
        return ReportRelation(
            entity=self.primary.build(),
            related_entity=self.related.build(),
            relation_type=self.relation_type,
            match_key=self.match_key,
            principle=self.principle,
        )


def entity_key(row: RowDict) -> int:
    """Return the entity ID grouping key of an entity page row."""
    return int(row["entity_id"])


def relation_key(row: RowDict) -> tuple[int, int]:
    """Return the (entity ID, related ID) grouping key of a relation page row."""
    return (int(row["rel_entity_id"]), int(row["rel_related_id"]))


def _group_rows[K, T](
    rows: Iterable[RowDict],
    page_size: int,
    key_of: Callable[[RowDict], K],
    start: Callable[[RowDict], _Accumulator[K, T]],
) -> GroupedRows[K, T]:
    state = _State.IDLE
    current: _Accumulator[K, T] | None = None
    items: list[T] = []
    keys: list[K] = []

    for row in rows:
        key = key_of(row)
        if state is _State.ACCUMULATING and current is not None and key != current.key:
            items.append(current.build())
            keys.append(current.key)
            current, state = None, _State.IDLE
            if len(items) >= page_size:
                break
        if state is _State.IDLE:
            current, state = start(row), _State.ACCUMULATING
        if current is not None:
            current.add(row)

    if state is _State.ACCUMULATING and current is not None and len(items) < page_size:
        items.append(current.build())
        keys.append(current.key)

    if not keys:
        return GroupedRows(items=items)
    return GroupedRows(items=items, minimum=min(keys), maximum=max(keys))  # type: ignore[type-var]


def group_entity_rows(rows: Iterable[RowDict], page_size: int) -> GroupedRows[int, ReportEntity]:
    """
    Group entity page rows into report entities.

    Parameters
    ----------
    rows
        Rows ordered by entity ID, data source and record ID.
    page_size
        Maximum number of entities to emit.

    Returns
    -------
    GroupedRows[int, ReportEntity]
        Entities in row order with the min/max entity ID.
    """
    return _group_rows(rows, page_size, entity_key, lambda row: _EntityAccumulator(entity_key(row)))


def group_relation_rows(
    rows: Iterable[RowDict],
    page_size: int,
) -> GroupedRows[tuple[int, int], ReportRelation]:
    """
    Group relation page rows into report relations.

    Rows for the primary side of a relation carry ``entity_id ==
    rel_entity_id``; all other rows describe the related side.

    Returns
    -------
    GroupedRows[tuple[int, int], ReportRelation]
        Relations in row order with the lexicographic min/max pair.
    """
    return _group_rows(rows, page_size, relation_key, _RelationAccumulator.start)
