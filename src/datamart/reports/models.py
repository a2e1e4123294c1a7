"""Typed report result models; serialized with camelCase field names."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from datamart.reports.bounds import BoundType
from datamart.reports.codes import RelationType


class ReportModel(BaseModel):
    """Immutable base model using camelCase aliases on the wire."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_payload(self) -> dict[str, object]:
        """
        Serialize to a JSON-friendly mapping.

        Returns
        -------
        dict[str, object]
            camelCase mapping with unset optional fields omitted.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReportRecord(ReportModel):
    """Record constituent of a report entity."""

    data_source: str
    record_id: str
    match_key: str | None = None
    principle: str | None = None


class ReportEntity(ReportModel):
    """
    Entity with its constituent records, ordered by (data source, record ID).

    ``entity_name``, ``record_count`` and ``relation_count`` come from
    ``dm.entity`` and stay ``None`` when that table has no row for the entity;
    they are never reported as zero.
    """

    entity_id: int
    entity_name: str | None = None
    record_count: int | None = None
    relation_count: int | None = None
    records: list[ReportRecord] = Field(default_factory=list)


class ReportRelation(ReportModel):
    """Relation between two entities as seen from the primary entity."""

    entity: ReportEntity
    related_entity: ReportEntity
    relation_type: RelationType | None = None
    match_key: str | None = None
    principle: str | None = None

    @property
    def key(self) -> tuple[int, int]:
        """(entity ID, related ID) pair identifying the relation."""
        return (self.entity.entity_id, self.related_entity.entity_id)


class EntitiesPage(ReportModel):
    """
    One page of entities for a report scope.

    ``minimum_value``/``maximum_value`` bound the displayed entities while
    ``page_minimum_value``/``page_maximum_value`` bound every candidate that was
    scanned for the page, which differs only when sampling dropped entities.
    """

    bound: str
    bound_type: BoundType
    page_size: int
    sample_size: int | None = None
    minimum_value: int | None = None
    maximum_value: int | None = None
    page_minimum_value: int | None = None
    page_maximum_value: int | None = None
    total_entity_count: int = 0
    before_page_count: int = 0
    after_page_count: int = 0
    entities: list[ReportEntity] = Field(default_factory=list)


class RelationsPage(ReportModel):
    """One page of relations; bounds and min/max are ``entityId:relatedId`` text."""

    bound: str
    bound_type: BoundType
    page_size: int
    sample_size: int | None = None
    minimum_value: str | None = None
    maximum_value: str | None = None
    page_minimum_value: str | None = None
    page_maximum_value: str | None = None
    total_relation_count: int = 0
    before_page_count: int = 0
    after_page_count: int = 0
    relations: list[ReportRelation] = Field(default_factory=list)


class EntitySizeCount(ReportModel):
    """Number of entities having a given number of records."""

    entity_size: int
    entity_count: int = 0


class EntitySizeBreakdown(ReportModel):
    """Entity counts per entity size, largest size first."""

    entity_size_counts: list[EntitySizeCount] = Field(default_factory=list)


class EntityRelationsCount(ReportModel):
    """Number of entities having a given number of relations."""

    relations_count: int
    entity_count: int = 0


class EntityRelationsBreakdown(ReportModel):
    """Entity counts per relation count, largest count first."""

    entity_relations_counts: list[EntityRelationsCount] = Field(default_factory=list)


class SourceLoadedStats(ReportModel):
    """Loaded entity and record counts for one data source."""

    data_source: str
    entity_count: int = 0
    record_count: int = 0
    unmatched_record_count: int = 0


class LoadedStats(ReportModel):
    """Loaded totals across data sources."""

    total_entity_count: int = 0
    total_record_count: int = 0
    total_unmatched_record_count: int = 0
    data_source_counts: list[SourceLoadedStats] = Field(default_factory=list)


class MatchCounts(ReportModel):
    """Match statistics for one (match key, principle) bucket."""

    match_key: str | None = None
    principle: str | None = None
    entity_count: int = 0
    record_count: int = 0

    @property
    def bucket(self) -> tuple[str | None, str | None]:
        """(match key, principle) pair identifying the bucket."""
        return (self.match_key, self.principle)


class RelationCounts(MatchCounts):
    """Relation statistics for one (match key, principle) bucket."""

    relation_count: int = 0


class CrossSourceSummary(ReportModel):
    """Match and relation buckets between a data source and a versus data source."""

    data_source: str
    versus_data_source: str
    matches: list[MatchCounts] = Field(default_factory=list)
    ambiguous_matches: list[RelationCounts] = Field(default_factory=list)
    possible_matches: list[RelationCounts] = Field(default_factory=list)
    possible_relations: list[RelationCounts] = Field(default_factory=list)
    disclosed_relations: list[RelationCounts] = Field(default_factory=list)


class CrossSourceMatchCounts(ReportModel):
    """Match buckets for one pair of data sources."""

    data_source: str
    versus_data_source: str
    counts: list[MatchCounts] = Field(default_factory=list)


class CrossSourceRelationCounts(ReportModel):
    """Relation buckets of one relation type for one pair of data sources."""

    data_source: str
    versus_data_source: str
    relation_type: RelationType
    counts: list[RelationCounts] = Field(default_factory=list)


class SourceSummary(ReportModel):
    """Summary for one data source with its cross-source summaries."""

    data_source: str
    entity_count: int = 0
    record_count: int = 0
    unmatched_record_count: int = 0
    cross_source_summaries: list[CrossSourceSummary] = Field(default_factory=list)


class SummaryStats(ReportModel):
    """Source summaries for every reported data source."""

    source_summaries: list[SourceSummary] = Field(default_factory=list)
