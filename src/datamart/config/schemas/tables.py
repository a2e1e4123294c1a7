"""Table schema registry for the reporting data mart."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ColumnType = Literal[
    "INTEGER",
    "BIGINT",
    "VARCHAR",
    "TIMESTAMP",
]


@dataclass(frozen=True)
class Column:
    """Definition of a single table column."""

    name: str
    type: ColumnType
    nullable: bool = True
    default: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Index:
    """Secondary index definition."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Schema definition for a DuckDB table."""

    schema: str
    name: str
    columns: list[Column]
    primary_key: tuple[str, ...] = ()
    indexes: tuple[Index, ...] = ()
    description: str | None = None

    @property
    def fq_name(self) -> str:
        """Fully qualified table name."""
        return f"{self.schema}.{self.name}"

    def column_names(self) -> list[str]:
        """
        Ordered column names.

        Returns
        -------
        list[str]
            Column names in definition order.
        """
        return [col.name for col in self.columns]


DATAMART_SCHEMA = "dm"

TABLE_SCHEMAS: dict[str, TableSchema] = {
    "dm.entity": TableSchema(
        schema=DATAMART_SCHEMA,
        name="entity",
        columns=[
            Column("entity_id", "BIGINT", nullable=False),
            Column("entity_name", "VARCHAR"),
            Column("record_count", "INTEGER"),
            Column("relation_count", "INTEGER"),
            Column("entity_hash", "VARCHAR"),
            Column("modified_on", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        ],
        primary_key=("entity_id",),
        description="Resolved entity summary maintained by the ingestion pipeline.",
    ),
    "dm.record": TableSchema(
        schema=DATAMART_SCHEMA,
        name="record",
        columns=[
            Column("data_source", "VARCHAR", nullable=False),
            Column("record_id", "VARCHAR", nullable=False),
            Column("entity_id", "BIGINT", nullable=False),
            Column("match_key", "VARCHAR", description="Why the record merged into its entity"),
            Column("errule_code", "VARCHAR", description="Resolution principle for the merge"),
            Column("modified_on", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        ],
        primary_key=("data_source", "record_id"),
        indexes=(
            Index("dm_record_entity_ix", ("entity_id",)),
            Index("dm_record_mkey_ix", ("match_key", "errule_code")),
        ),
    ),
    "dm.relation": TableSchema(
        schema=DATAMART_SCHEMA,
        name="relation",
        columns=[
            Column("entity_id", "BIGINT", nullable=False, description="Lesser entity ID"),
            Column("related_id", "BIGINT", nullable=False, description="Greater entity ID"),
            Column("match_type", "VARCHAR"),
            Column("match_key", "VARCHAR", description="Match key from entity to related"),
            Column("rev_match_key", "VARCHAR", description="Match key from related to entity"),
            Column("errule_code", "VARCHAR"),
            Column("relation_hash", "VARCHAR"),
            Column("modified_on", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        ],
        primary_key=("entity_id", "related_id"),
        indexes=(Index("dm_relation_related_ix", ("related_id", "entity_id")),),
        description="Relations stored once per unordered entity pair.",
    ),
    "dm.report": TableSchema(
        schema=DATAMART_SCHEMA,
        name="report",
        columns=[
            Column("report_key", "VARCHAR", nullable=False),
            Column("report", "VARCHAR", nullable=False),
            Column("statistic", "VARCHAR", nullable=False),
            Column("data_source1", "VARCHAR"),
            Column("data_source2", "VARCHAR"),
            Column("entity_count", "BIGINT"),
            Column("record_count", "BIGINT"),
            Column("relation_count", "BIGINT"),
            Column("report_notes", "VARCHAR"),
            Column("modified_on", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        ],
        primary_key=("report_key",),
        indexes=(Index("dm_report_stat_ix", ("report", "statistic")),),
        description="Per-statistic report totals.",
    ),
    "dm.report_detail": TableSchema(
        schema=DATAMART_SCHEMA,
        name="report_detail",
        columns=[
            Column("report_key", "VARCHAR", nullable=False),
            Column("entity_id", "BIGINT", nullable=False),
            Column("related_id", "BIGINT", nullable=False, default="0"),
            Column("stat_count", "INTEGER", default="0"),
            Column("report_notes", "VARCHAR"),
            Column("modified_on", "TIMESTAMP", default="CURRENT_TIMESTAMP"),
        ],
        primary_key=("report_key", "entity_id", "related_id"),
        indexes=(Index("dm_rpt_detail_rel_ix", ("related_id", "entity_id", "report_key")),),
        description="Entity (related_id = 0) and relation rows contributing to each report key.",
    ),
}
