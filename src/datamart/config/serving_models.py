"""Serving configuration for the reports HTTP and CLI surfaces."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGE_SIZE = 10_000


def _parse_env_flag(value: str | None, *, default: bool) -> bool:
    """
    Interpret a string environment value as a boolean.

    Parameters
    ----------
    value:
        Raw environment variable value or None.
    default:
        Value to return when the environment variable is unset.

    Returns
    -------
    bool
        Parsed boolean flag.
    """
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _parse_code_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    codes = (part.strip().upper() for part in value.split(","))
    return tuple(dict.fromkeys(code for code in codes if code))


class ServingConfig(BaseModel):
    """
    Runtime settings shared by the FastAPI app and the CLI.

    ``data_sources`` is the resolved set of configured data source codes; the
    summary reports add them to the loaded sources when callers ask for
    sources that have no records yet.
    """

    db_path: Path | None = Field(
        default=None,
        description="Path to the data mart DuckDB database.",
    )
    read_only: bool = Field(
        default=True,
        description="Whether to open the DuckDB connection in read-only mode.",
    )
    data_sources: tuple[str, ...] = Field(
        default=(),
        description="Configured data source codes.",
    )
    default_page_size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        description="Page size applied when a caller gives neither page nor sample size.",
    )
    max_page_size: int = Field(
        default=DEFAULT_MAX_PAGE_SIZE,
        description="Hard cap on the page size accepted from callers.",
    )
    observability: bool = Field(
        default=False,
        description="Emit a structured log line for every service call.",
    )

    @classmethod
    def from_env(cls) -> ServingConfig:
        """
        Construct a ServingConfig from environment variables.

        Returns
        -------
        ServingConfig
            Validated configuration populated from environment values.
        """
        db_path_env = os.environ.get("DATAMART_DB_PATH")
        db_path = Path(db_path_env).expanduser().resolve() if db_path_env else None
        return cls(
            db_path=db_path,
            read_only=_parse_env_flag(os.environ.get("DATAMART_READ_ONLY"), default=True),
            data_sources=_parse_code_list(os.environ.get("DATAMART_DATA_SOURCES")),
            default_page_size=int(
                os.environ.get("DATAMART_DEFAULT_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))
            ),
            max_page_size=int(
                os.environ.get("DATAMART_MAX_PAGE_SIZE", str(DEFAULT_MAX_PAGE_SIZE))
            ),
            observability=_parse_env_flag(
                os.environ.get("DATAMART_OBSERVABILITY"), default=False
            ),
        )

    @model_validator(mode="after")
    def _validate_limits(self) -> ServingConfig:
        """
        Validate page size limits and normalize paths.

        Returns
        -------
        ServingConfig
            Normalized configuration.

        Raises
        ------
        ValueError
            When the page size limits are inconsistent.
        """
        if self.db_path is not None:
            self.db_path = self.db_path.expanduser()
        if self.default_page_size < 1:
            message = "default_page_size must be positive"
            raise ValueError(message)
        if self.max_page_size < self.default_page_size:
            message = "max_page_size must be at least default_page_size"
            raise ValueError(message)
        return self

    def require_db_path(self) -> Path:
        """
        Return the configured database path.

        Returns
        -------
        Path
            Database path to open.

        Raises
        ------
        ValueError
            When no database path is configured.
        """
        if self.db_path is None:
            message = "DATAMART_DB_PATH must be set to serve reports"
            raise ValueError(message)
        return self.db_path
