"""Table schema registry for the data mart."""

from __future__ import annotations

from datamart.config.schemas.tables import (  # noqa: F401
    DATAMART_SCHEMA,
    TABLE_SCHEMAS,
    Column,
    ColumnType,
    Index,
    TableSchema,
)
