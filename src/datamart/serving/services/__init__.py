"""Shared application services for data mart report surfaces."""

from __future__ import annotations

from datamart.serving.services.reports_service import (
    PageRequest,
    ReportsService,
    ServiceObservability,
    build_reports_service,
)

__all__ = ["PageRequest", "ReportsService", "ServiceObservability", "build_reports_service"]
