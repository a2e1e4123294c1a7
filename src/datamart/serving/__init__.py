"""Serving surfaces exposing data mart reports over HTTP (FastAPI)."""

from datamart.serving.services.reports_service import (
    PageRequest,
    ReportsService,
    ServiceObservability,
    build_reports_service,
)

__all__ = [
    "PageRequest",
    "ReportsService",
    "ServiceObservability",
    "build_reports_service",
]
