"""Configuration models for the data mart reports.

- **Schemas** (`schemas/`): table definitions for the ``dm`` DuckDB schema
- **Serving** (`serving_models.py`): environment-driven settings for the
  HTTP app and CLI
"""

from datamart.config.serving_models import (
    DEFAULT_MAX_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    ServingConfig,
)

__all__ = [
    "DEFAULT_MAX_PAGE_SIZE",
    "DEFAULT_PAGE_SIZE",
    "ServingConfig",
]
