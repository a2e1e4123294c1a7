"""Transport-agnostic report application service."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

import duckdb

from datamart.config.serving_models import ServingConfig
from datamart.errors import backend_failure, invalid_argument, not_found
from datamart.reports import entity_relations, entity_size, loaded_stats, summary_stats
from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportStatistic
from datamart.reports.models import (
    CrossSourceMatchCounts,
    CrossSourceRelationCounts,
    CrossSourceSummary,
    EntitiesPage,
    EntityRelationsBreakdown,
    EntityRelationsCount,
    EntitySizeBreakdown,
    EntitySizeCount,
    LoadedStats,
    RelationsPage,
    SourceLoadedStats,
    SourceSummary,
    SummaryStats,
)
from datamart.reports.timing import QueryTimers
from datamart.storage.gateway import DuckDBConnection, StorageGateway
from datamart.storage.repositories.base import query_cursor

LOG = logging.getLogger("datamart.serving.services.reports")
DEFAULT_CALL_HISTORY = 256


@dataclass
class ServiceCallMetrics:
    """Structured metrics describing a service invocation."""

    name: str
    duration_ms: float
    rows: int | None = None
    error: str | None = None
    query_ms: dict[str, float] | None = None


@dataclass
class ServiceObservability:
    """Configuration for service-level observability."""

    enabled: bool = False
    logger: logging.Logger = field(default_factory=lambda: LOG)

    def record(self, metrics: ServiceCallMetrics) -> None:
        """
        Emit a structured log line for a service call.

        Parameters
        ----------
        metrics:
            Call metrics describing the invocation outcome.
        """
        if not self.enabled or not self.logger.isEnabledFor(logging.INFO):
            return
        payload: dict[str, object] = {
            "name": metrics.name,
            "duration_ms": round(metrics.duration_ms, 2),
        }
        if metrics.rows is not None:
            payload["rows"] = metrics.rows
        if metrics.error is not None:
            payload["error"] = metrics.error
        if metrics.query_ms:
            payload["query_ms"] = metrics.query_ms
        self.logger.info("service_call %s", payload)


def _extract_row_count(result: object) -> int | None:
    """
    Derive a row count from page and breakdown responses.

    Returns
    -------
    int | None
        Row count when inferrable; otherwise ``None``.
    """
    if isinstance(result, EntitiesPage):
        return len(result.entities)
    if isinstance(result, RelationsPage):
        return len(result.relations)
    if isinstance(result, EntitySizeBreakdown):
        return len(result.entity_size_counts)
    if isinstance(result, EntityRelationsBreakdown):
        return len(result.entity_relations_counts)
    if isinstance(result, LoadedStats):
        return len(result.data_source_counts)
    if isinstance(result, SummaryStats):
        return len(result.source_summaries)
    return None


def _observe_call[T](
    observability: ServiceObservability | None,
    *,
    name: str,
    timers: QueryTimers,
    func: Callable[[], T],
) -> T:
    """
    Execute a callable while capturing observability signals.

    Returns
    -------
    T
        Result returned by the wrapped callable.
    """
    start = time.perf_counter()
    try:
        result = func()
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        if observability is not None:
            observability.record(
                ServiceCallMetrics(
                    name=name,
                    duration_ms=duration_ms,
                    error=exc.__class__.__name__,
                    query_ms=timers.snapshot(),
                )
            )
        raise
    duration_ms = (time.perf_counter() - start) * 1000
    if observability is not None:
        observability.record(
            ServiceCallMetrics(
                name=name,
                duration_ms=duration_ms,
                rows=_extract_row_count(result),
                query_ms=timers.snapshot(),
            )
        )
    return result


@dataclass(frozen=True)
class PageRequest:
    """Paging arguments shared by every entity and relation page endpoint."""

    bound: str | None = None
    bound_type: BoundType | None = None
    page_size: int | None = None
    sample_size: int | None = None


@dataclass
class ReportsService:
    """
    Application service exposing every report over a storage gateway.

    Each call runs on its own DuckDB cursor. Argument errors surface as
    ``invalid_argument`` problems and DuckDB failures as ``backend_failure``
    problems. When data sources are configured, any other data source code is
    a ``not_found`` problem.
    """

    gateway: StorageGateway
    config: ServingConfig
    observability: ServiceObservability | None = None
    call_history: int = DEFAULT_CALL_HISTORY
    calls: deque[str] = field(init=False)

    def __post_init__(self) -> None:
        # Only the most recent call names are kept for the lifetime of the service.
        self.calls = deque(maxlen=self.call_history)

    def _call[T](self, name: str, func: Callable[[DuckDBConnection, QueryTimers], T]) -> T:
        """
        Run a report function on a fresh cursor with observability tracking.

        Returns
        -------
        T
            Result returned by the report function.

        Raises
        ------
        ReportsError
            When the report function rejects its arguments or DuckDB fails.
        """
        self.calls.append(name)
        timers = QueryTimers()

        def _run() -> T:
            try:
                with query_cursor(self.gateway.con) as cursor:
                    return func(cursor, timers)
            except ValueError as exc:
                raise invalid_argument(str(exc)) from exc
            except duckdb.Error as exc:
                LOG.exception("Report query failed: %s", name)
                raise backend_failure(str(exc)) from exc

        return _observe_call(self.observability, name=name, timers=timers, func=_run)

    def _check_page_limits(self, page: PageRequest) -> None:
        limit = self.config.max_page_size
        if page.page_size is not None and page.page_size > limit:
            message = f"The page size cannot exceed {limit}: {page.page_size}"
            raise invalid_argument(message)
        if page.sample_size is not None and page.sample_size > limit:
            message = f"The sample size cannot exceed {limit}: {page.sample_size}"
            raise invalid_argument(message)

    def _data_sources(self, *, only_loaded_sources: bool) -> tuple[str, ...] | None:
        return None if only_loaded_sources else self.config.data_sources

    def _require_known_sources(self, *data_sources: str) -> None:
        allowed = self.config.data_sources
        if not allowed:
            return
        for data_source in data_sources:
            if data_source not in allowed:
                message = f"Unrecognized data source code: {data_source}"
                raise not_found(message)

    # Entity size breakdown -------------------------------------------------

    def get_entity_size_breakdown(self) -> EntitySizeBreakdown:
        """Return entity counts per entity size."""
        return self._call(
            "get_entity_size_breakdown",
            lambda con, timers: entity_size.get_entity_size_breakdown(con, timers=timers),
        )

    def get_entity_size_count(self, entity_size_value: int) -> EntitySizeCount:
        """Return the entity count for one entity size."""
        return self._call(
            "get_entity_size_count",
            lambda con, timers: entity_size.get_entity_size_count(
                con, entity_size_value, timers=timers
            ),
        )

    def get_entity_size_entities(
        self, entity_size_value: int, page: PageRequest | None = None
    ) -> EntitiesPage:
        """Return a page of entities having the given number of records."""
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            "get_entity_size_entities",
            lambda con, timers: entity_size.get_entity_ids_for_entity_size(
                con,
                entity_size_value,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )

    # Entity relation breakdown --------------------------------------------

    def get_entity_relations_breakdown(self) -> EntityRelationsBreakdown:
        """Return entity counts per relation count."""
        return self._call(
            "get_entity_relations_breakdown",
            lambda con, timers: entity_relations.get_entity_relations_breakdown(
                con, timers=timers
            ),
        )

    def get_entity_relations_count(self, relations_count: int) -> EntityRelationsCount:
        """Return the entity count for one relation count."""
        return self._call(
            "get_entity_relations_count",
            lambda con, timers: entity_relations.get_entity_relations_count(
                con, relations_count, timers=timers
            ),
        )

    def get_entity_relations_entities(
        self, relations_count: int, page: PageRequest | None = None
    ) -> EntitiesPage:
        """Return a page of entities having the given number of relations."""
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            "get_entity_relations_entities",
            lambda con, timers: entity_relations.get_entity_ids_for_relations_count(
                con,
                relations_count,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )

    # Loaded statistics -----------------------------------------------------

    def get_loaded_statistics(self, *, only_loaded_sources: bool = True) -> LoadedStats:
        """Return loaded totals and per data source counts."""
        data_sources = self._data_sources(only_loaded_sources=only_loaded_sources)
        return self._call(
            "get_loaded_statistics",
            lambda con, timers: loaded_stats.get_loaded_statistics(
                con, data_sources, timers=timers
            ),
        )

    def get_source_loaded_statistics(self, data_source: str) -> SourceLoadedStats:
        """Return loaded counts for one data source."""
        self._require_known_sources(data_source)
        return self._call(
            "get_source_loaded_statistics",
            lambda con, timers: loaded_stats.get_source_loaded_statistics(
                con, data_source, timers=timers
            ),
        )

    def get_data_source_entities(
        self, data_source: str, page: PageRequest | None = None
    ) -> EntitiesPage:
        """Return a page of entities having records from one data source."""
        self._require_known_sources(data_source)
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            "get_data_source_entities",
            lambda con, timers: loaded_stats.get_entity_ids_for_data_source(
                con,
                data_source,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )

    # Summary statistics ----------------------------------------------------

    def get_summary_statistics(
        self,
        *,
        match_key: str | None = None,
        principle: str | None = None,
        only_loaded_sources: bool = True,
    ) -> SummaryStats:
        """Return source summaries for every reported data source."""
        data_sources = self._data_sources(only_loaded_sources=only_loaded_sources)
        return self._call(
            "get_summary_statistics",
            lambda con, timers: summary_stats.get_summary_statistics(
                con, match_key, principle, data_sources, timers=timers
            ),
        )

    def get_source_summary(
        self,
        data_source: str,
        *,
        match_key: str | None = None,
        principle: str | None = None,
        only_loaded_sources: bool = True,
    ) -> SourceSummary:
        """Return the summary for one data source."""
        self._require_known_sources(data_source)
        data_sources = self._data_sources(only_loaded_sources=only_loaded_sources)
        return self._call(
            "get_source_summary",
            lambda con, timers: summary_stats.get_source_summary(
                con, data_source, match_key, principle, data_sources, timers=timers
            ),
        )

    def get_cross_source_summary(
        self,
        data_source: str,
        vs_data_source: str,
        *,
        match_key: str | None = None,
        principle: str | None = None,
    ) -> CrossSourceSummary:
        """Return every bucket family between two data sources."""
        self._require_known_sources(data_source, vs_data_source)
        return self._call(
            "get_cross_source_summary",
            lambda con, timers: summary_stats.get_cross_source_summary(
                con, data_source, vs_data_source, match_key, principle, timers=timers
            ),
        )

    def get_cross_source_counts(
        self,
        data_source: str,
        vs_data_source: str,
        statistic: ReportStatistic,
        *,
        match_key: str | None = None,
        principle: str | None = None,
    ) -> CrossSourceMatchCounts | CrossSourceRelationCounts:
        """Return the buckets of one family between two data sources."""
        self._require_known_sources(data_source, vs_data_source)
        fetch = _FAMILY_SUMMARIES.get(statistic)
        if fetch is None:
            message = f"The statistic does not identify a summary bucket family: {statistic}"
            raise invalid_argument(message)
        return self._call(
            f"get_cross_source_counts[{statistic}]",
            lambda con, timers: fetch(
                con, data_source, vs_data_source, match_key, principle, timers=timers
            ),
        )

    def get_cross_entities(  # noqa: PLR0913
        self,
        data_source: str,
        vs_data_source: str,
        statistic: ReportStatistic,
        *,
        match_key: str | None = None,
        principle: str | None = None,
        page: PageRequest | None = None,
    ) -> EntitiesPage:
        """Return a page of entities counted by a summary statistic."""
        self._require_known_sources(data_source, vs_data_source)
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            f"get_cross_entities[{statistic}]",
            lambda con, timers: summary_stats.get_cross_entity_ids(
                con,
                data_source,
                vs_data_source,
                statistic,
                match_key,
                principle,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )

    def get_summary_entities(
        self,
        data_source: str,
        statistic: ReportStatistic,
        *,
        match_key: str | None = None,
        principle: str | None = None,
        page: PageRequest | None = None,
    ) -> EntitiesPage:
        """Return a page of entities counted by a statistic within one data source."""
        self._require_known_sources(data_source)
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            f"get_summary_entities[{statistic}]",
            lambda con, timers: summary_stats.get_summary_entity_ids(
                con,
                data_source,
                statistic,
                match_key,
                principle,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )

    def get_cross_relations(  # noqa: PLR0913
        self,
        data_source: str,
        vs_data_source: str,
        statistic: ReportStatistic,
        *,
        match_key: str | None = None,
        principle: str | None = None,
        page: PageRequest | None = None,
    ) -> RelationsPage:
        """Return a page of relations counted by a relation statistic."""
        self._require_known_sources(data_source, vs_data_source)
        request = page or PageRequest()
        self._check_page_limits(request)
        return self._call(
            f"get_cross_relations[{statistic}]",
            lambda con, timers: summary_stats.get_cross_relations(
                con,
                data_source,
                vs_data_source,
                statistic,
                match_key,
                principle,
                request.bound,
                request.bound_type,
                request.page_size,
                request.sample_size,
                timers=timers,
                default_page_size=self.config.default_page_size,
            ),
        )


_FAMILY_SUMMARIES: dict[
    ReportStatistic,
    Callable[..., CrossSourceMatchCounts | CrossSourceRelationCounts],
] = {
    ReportStatistic.MATCHED_COUNT: summary_stats.get_cross_source_match_summary,
    ReportStatistic.AMBIGUOUS_MATCH_COUNT: summary_stats.get_cross_source_ambiguous_match_summary,
    ReportStatistic.POSSIBLE_MATCH_COUNT: summary_stats.get_cross_source_possible_match_summary,
    ReportStatistic.POSSIBLE_RELATION_COUNT: (
        summary_stats.get_cross_source_possible_relation_summary
    ),
    ReportStatistic.DISCLOSED_RELATION_COUNT: (
        summary_stats.get_cross_source_disclosed_relation_summary
    ),
}


def build_reports_service(
    gateway: StorageGateway,
    config: ServingConfig,
    *,
    observability: ServiceObservability | None = None,
) -> ReportsService:
    """
    Construct a reports service with observability derived from configuration.

    Returns
    -------
    ReportsService
        Service bound to ``gateway``.
    """
    resolved = observability or ServiceObservability(enabled=config.observability)
    return ReportsService(gateway=gateway, config=config, observability=resolved)


__all__ = [
    "PageRequest",
    "ReportsService",
    "ServiceCallMetrics",
    "ServiceObservability",
    "build_reports_service",
]
