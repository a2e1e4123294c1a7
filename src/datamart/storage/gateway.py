"""Composition root types and table accessors for DuckDB access."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import duckdb

from datamart.config.schemas.tables import TABLE_SCHEMAS
from datamart.storage.schemas import apply_all_schemas, assert_schema_alignment

DuckDBConnection = duckdb.DuckDBPyConnection
DuckDBRelation = duckdb.DuckDBPyRelation
DuckDBError = duckdb.Error


def _insert_rows(
    con: DuckDBConnection,
    table_key: str,
    rows: Iterable[Sequence[object]],
    *,
    columns: Sequence[str] | None = None,
) -> int:
    """
    Insert rows into a data mart table using the codified schema as ground truth.

    Rows may name a leading subset of columns; omitted trailing columns take
    their table defaults.

    Returns
    -------
    int
        Number of rows inserted.

    Raises
    ------
    ValueError
        If the table key is unknown or a row is wider than the column list.
    """
    rows_list = [tuple(row) for row in rows]
    if not rows_list:
        return 0
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_.]*", table_key) or table_key not in TABLE_SCHEMAS:
        message = f"Invalid table key: {table_key}"
        raise ValueError(message)
    schema = TABLE_SCHEMAS[table_key]
    column_list = list(columns) if columns is not None else schema.column_names()
    width = max(len(row) for row in rows_list)
    if width > len(column_list):
        message = f"Row for {table_key} has {width} values, exceeds column count {len(column_list)}"
        raise ValueError(message)
    target_columns = column_list[:width]
    normalized = [row + (None,) * (width - len(row)) for row in rows_list]
    placeholders = ", ".join("?" for _ in target_columns)
    con.executemany(
        f"INSERT INTO {schema.fq_name} ({', '.join(target_columns)}) "  # noqa: S608 - validated
        f"VALUES ({placeholders})",
        normalized,
    )
    return len(normalized)


@dataclass(frozen=True)
class StorageConfig:
    """Define configuration for opening a data mart DuckDB database."""

    db_path: Path
    read_only: bool = True
    apply_schema: bool = False
    validate_schema: bool = False

    @classmethod
    def for_readonly(cls, db_path: Path) -> StorageConfig:
        """
        Build a read-only configuration for serving/inspection surfaces.

        Parameters
        ----------
        db_path
            DuckDB database path to open read-only.

        Returns
        -------
        StorageConfig
            Preconfigured read-only storage configuration.
        """
        return cls(db_path=db_path, read_only=True, apply_schema=False, validate_schema=True)

    @classmethod
    def for_seeding(cls, db_path: Path) -> StorageConfig:
        """
        Build a write-capable configuration used to create and seed a database.

        Returns
        -------
        StorageConfig
            Configuration that applies the data mart schema on open.
        """
        return cls(db_path=db_path, read_only=False, apply_schema=True, validate_schema=True)


@dataclass(frozen=True)
class ReportTables:
    """Accessors for the data mart tables."""

    con: DuckDBConnection

    def entities(self) -> DuckDBRelation:
        """
        Return relation for dm.entity.

        Returns
        -------
        DuckDBRelation
            Relation selecting dm.entity.
        """
        return self.con.table("dm.entity")

    def report_details(self) -> DuckDBRelation:
        """Return relation for dm.report_detail."""
        return self.con.table("dm.report_detail")

    def insert_entities(self, rows: Iterable[tuple[int, str | None, int, int]]) -> int:
        """
        Insert rows into dm.entity.

        Parameters
        ----------
        rows
            Iterable of (entity_id, entity_name, record_count, relation_count).

        Returns
        -------
        int
            Number of inserted rows.
        """
        return _insert_rows(self.con, "dm.entity", rows)

    def insert_records(
        self,
        rows: Iterable[tuple[str, str, int, str | None, str | None]],
    ) -> int:
        """
        Insert rows into dm.record.

        Parameters
        ----------
        rows
            Iterable of (data_source, record_id, entity_id, match_key, errule_code).

        Returns
        -------
        int
            Number of inserted rows.
        """
        return _insert_rows(self.con, "dm.record", rows)

    def insert_relations(
        self,
        rows: Iterable[tuple[int, int, str, str | None, str | None, str | None]],
    ) -> int:
        """
        Insert rows into dm.relation.

        Pairs are normalized so ``entity_id < related_id``; when a pair is
        flipped its match keys are swapped as well.

        Parameters
        ----------
        rows
            Iterable of (entity_id, related_id, match_type, match_key,
            rev_match_key, errule_code).

        Returns
        -------
        int
            Number of inserted rows.
        """
        normalized = []
        for entity_id, related_id, match_type, match_key, rev_match_key, errule in rows:
            if related_id < entity_id:
                normalized.append(
                    (related_id, entity_id, match_type, rev_match_key, match_key, errule)
                )
            else:
                normalized.append(
                    (entity_id, related_id, match_type, match_key, rev_match_key, errule)
                )
        return _insert_rows(self.con, "dm.relation", normalized)

    def insert_reports(
        self,
        rows: Iterable[
            tuple[str, str, str, str | None, str | None, int | None, int | None, int | None]
        ],
    ) -> int:
        """
        Insert rows into dm.report.

        Parameters
        ----------
        rows
            Iterable of (report_key, report, statistic, data_source1,
            data_source2, entity_count, record_count, relation_count).

        Returns
        -------
        int
            Number of inserted rows.
        """
        return _insert_rows(self.con, "dm.report", rows)

    def insert_report_details(self, rows: Iterable[tuple[str, int, int, int]]) -> int:
        """
        Insert rows into dm.report_detail.

        Parameters
        ----------
        rows
            Iterable of (report_key, entity_id, related_id, stat_count); use
            ``related_id = 0`` for entity rows.

        Returns
        -------
        int
            Number of inserted rows.
        """
        return _insert_rows(self.con, "dm.report_detail", rows)


class StorageGateway(Protocol):
    """Expose DuckDB access along with the data mart table accessors."""

    config: StorageConfig
    reports: ReportTables

    @property
    def con(self) -> DuckDBConnection:
        """
        Return an open DuckDB connection.

        Returns
        -------
        DuckDBConnection
            Live connection bound to the configured database.
        """
        ...

    def cursor(self) -> DuckDBConnection:
        """Return a fresh cursor for one unit of work."""
        ...

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        ...

    def execute(self, sql: str, params: Sequence[object] | None = None) -> DuckDBConnection:
        """Execute SQL against the underlying connection."""
        ...


@dataclass
class _DuckDBGateway:
    """Concrete StorageGateway implementation."""

    config: StorageConfig
    con: DuckDBConnection
    reports: ReportTables = field(init=False)

    def __post_init__(self) -> None:
        self.reports = ReportTables(self.con)

    def cursor(self) -> DuckDBConnection:
        """
        Return a duplicate connection sharing the same database.

        DuckDB connections are not safe to share across threads; each request
        takes its own cursor and closes it when done.

        Returns
        -------
        DuckDBConnection
            Cursor bound to the gateway's database.
        """
        return self.con.cursor()

    def close(self) -> None:
        """Close the underlying connection."""
        self.con.close()

    def execute(self, sql: str, params: Sequence[object] | None = None) -> DuckDBConnection:
        """
        Execute a SQL statement using the active DuckDB connection.

        Returns
        -------
        DuckDBConnection
            Connection representing the executed query.
        """
        return self.con.execute(sql, params)


def _connect(config: StorageConfig) -> DuckDBConnection:
    """
    Open a DuckDB connection using the provided configuration.

    Returns
    -------
    DuckDBConnection
        Live DuckDB connection with optional schema applied.

    Raises
    ------
    FileNotFoundError
        Raised when a read-only database path does not exist.
    """
    in_memory = config.db_path == Path(":memory:")
    if config.read_only and not in_memory and not config.db_path.exists():
        message = f"Data mart database not found: {config.db_path}"
        raise FileNotFoundError(message)
    if not config.read_only and not in_memory:
        config.db_path.parent.mkdir(parents=True, exist_ok=True)

    con = duckdb.connect(str(config.db_path), read_only=config.read_only and not in_memory)
    if config.apply_schema and not config.read_only:
        apply_all_schemas(con)
    if config.validate_schema:
        assert_schema_alignment(con, strict=True)
    return con


def open_gateway(config: StorageConfig) -> StorageGateway:
    """
    Create a StorageGateway bound to a DuckDB database.

    Parameters
    ----------
    config
        Storage configuration describing connection options.

    Returns
    -------
    StorageGateway
        Gateway exposing the data mart table accessors.
    """
    con = _connect(config)
    return _DuckDBGateway(config=config, con=con)


def open_memory_gateway(
    *,
    apply_schema: bool = True,
    validate_schema: bool = True,
) -> StorageGateway:
    """
    Create an in-memory StorageGateway for tests.

    Parameters
    ----------
    apply_schema
        When True, apply all table schemas to the in-memory database.
    validate_schema
        When True, validate schema alignment after setup.

    Returns
    -------
    StorageGateway
        Gateway backed by an in-memory DuckDB connection.
    """
    cfg = StorageConfig(
        db_path=Path(":memory:"),
        read_only=False,
        apply_schema=apply_schema,
        validate_schema=validate_schema,
    )
    return open_gateway(cfg)
