"""FastAPI server exposing data mart reports over DuckDB."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from enum import StrEnum
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from datamart.config.serving_models import ServingConfig
from datamart.errors import (
    PROBLEM_TYPE_ROOT,
    ProblemDetail,
    ReportsError,
    backend_failure,
    log_problem,
)
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
from datamart.serving.services.reports_service import (
    PageRequest,
    ReportsService,
    build_reports_service,
)
from datamart.storage.gateway import DuckDBError, StorageConfig, StorageGateway, open_gateway

LOG = logging.getLogger("datamart.serving.http.fastapi")


class SummaryFamily(StrEnum):
    """Path segment naming one summary bucket family."""

    MATCHES = "matches"
    AMBIGUOUS_MATCHES = "ambiguous-matches"
    POSSIBLE_MATCHES = "possible-matches"
    POSSIBLE_RELATIONS = "possible-relations"
    DISCLOSED_RELATIONS = "disclosed-relations"

    @property
    def statistic(self) -> ReportStatistic:
        """Statistic counted by this family."""
        return _FAMILY_STATISTICS[self]


class RelationFamily(StrEnum):
    """Path segment naming a summary family that tracks relations."""

    AMBIGUOUS_MATCHES = "ambiguous-matches"
    POSSIBLE_MATCHES = "possible-matches"
    POSSIBLE_RELATIONS = "possible-relations"
    DISCLOSED_RELATIONS = "disclosed-relations"

    @property
    def statistic(self) -> ReportStatistic:
        """Statistic counted by this family."""
        return _FAMILY_STATISTICS[SummaryFamily(self.value)]


_FAMILY_STATISTICS: dict[SummaryFamily, ReportStatistic] = {
    SummaryFamily.MATCHES: ReportStatistic.MATCHED_COUNT,
    SummaryFamily.AMBIGUOUS_MATCHES: ReportStatistic.AMBIGUOUS_MATCH_COUNT,
    SummaryFamily.POSSIBLE_MATCHES: ReportStatistic.POSSIBLE_MATCH_COUNT,
    SummaryFamily.POSSIBLE_RELATIONS: ReportStatistic.POSSIBLE_RELATION_COUNT,
    SummaryFamily.DISCLOSED_RELATIONS: ReportStatistic.DISCLOSED_RELATION_COUNT,
}


def _ensure_readable_db(path: Path) -> None:
    """
    Validate that the DuckDB path exists and is a readable file.

    Raises
    ------
    FileNotFoundError
        If the path does not exist.
    ValueError
        If the path is not a file.
    PermissionError
        If the file cannot be opened for reading.
    """
    if not path.exists():
        message = f"DuckDB database not found at {path}"
        raise FileNotFoundError(message)
    if not path.is_file():
        message = f"DuckDB path {path} is not a file"
        raise ValueError(message)
    try:
        with path.open("rb"):
            return
    except PermissionError as exc:
        message = f"DuckDB path {path} is not readable"
        raise PermissionError(message) from exc


def load_api_config() -> ServingConfig:
    """
    Load and validate server configuration from environment variables.

    Returns
    -------
    ServingConfig
        Validated configuration for the FastAPI surface.

    Raises
    ------
    ValueError
        If ``DATAMART_DB_PATH`` is missing.
    """
    config = ServingConfig.from_env()
    db_path = config.require_db_path()
    if config.read_only:
        _ensure_readable_db(db_path)
    return config


def problem_response(detail: ProblemDetail) -> JSONResponse:
    """
    Convert a ProblemDetail payload into a JSON HTTP response.

    Returns
    -------
    JSONResponse
        Response with RFC 7807 payload.
    """
    status_code = detail.status or status.HTTP_500_INTERNAL_SERVER_ERROR
    payload = detail.model_dump(exclude_none=True)
    payload.setdefault("status", status_code)
    return JSONResponse(status_code=status_code, content=payload)


def install_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for consistent Problem Details."""

    @app.exception_handler(ReportsError)
    def _handle_reports_error(_request: Request, exc: ReportsError) -> JSONResponse:
        if exc.status >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            log_problem(LOG, exc.detail)
        return problem_response(exc.detail)

    @app.exception_handler(RequestValidationError)
    def _handle_validation_error(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        problem = ProblemDetail(
            type=f"{PROBLEM_TYPE_ROOT}/validation-error",
            title="Invalid request",
            detail="Request validation failed",
            status=status.HTTP_400_BAD_REQUEST,
            data={"errors": exc.errors()},
        )
        return problem_response(problem)

    @app.exception_handler(Exception)
    def _handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
        problem = backend_failure(str(exc)).detail
        log_problem(LOG, problem)
        return problem_response(problem)


def install_logging_middleware(app: FastAPI) -> None:
    """Add structured logging for each request."""

    @app.middleware("http")
    async def _log_request(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        LOG.info(
            "Handled %s %s status=%s duration_ms=%.2f params=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            dict(request.query_params),
        )
        return response


def get_app_config(request: Request) -> ServingConfig:
    """
    Retrieve the validated application configuration from state.

    Raises
    ------
    ReportsError
        If the configuration is missing.
    """
    config: ServingConfig | None = getattr(request.app.state, "config", None)
    if config is not None:
        return config
    message = "Server configuration is not initialized"
    raise backend_failure(message)


def get_service(request: Request) -> ReportsService:
    """
    Retrieve the shared reports service from state.

    Raises
    ------
    ReportsError
        If the service is missing.
    """
    service: ReportsService | None = getattr(request.app.state, "service", None)
    if service is None:
        message = "Reports service is not initialized"
        raise backend_failure(message)
    return service


def page_request(
    bound: str | None = None,
    bound_type: Annotated[BoundType | None, Query(alias="boundType")] = None,
    page_size: Annotated[int | None, Query(alias="pageSize")] = None,
    sample_size: Annotated[int | None, Query(alias="sampleSize")] = None,
) -> PageRequest:
    """
    Bind the paging query parameters.

    An omitted ``boundType`` is inferred from the bound (``max`` scans
    downward, anything else upward).

    Returns
    -------
    PageRequest
        Paging arguments for the service.
    """
    return PageRequest(
        bound=bound, bound_type=bound_type, page_size=page_size, sample_size=sample_size
    )


ConfigDep = Annotated[ServingConfig, Depends(get_app_config)]
ServiceDep = Annotated[ReportsService, Depends(get_service)]
PageDep = Annotated[PageRequest, Depends(page_request)]
MatchKeyParam = Annotated[str | None, Query(alias="matchKey")]
OnlyLoadedParam = Annotated[bool, Query(alias="onlyLoadedSources")]


def build_entity_size_router() -> APIRouter:
    """
    Construct the router for the entity size breakdown.

    Returns
    -------
    APIRouter
        Router mounted under ``/statistics/sizes``.
    """
    router = APIRouter(prefix="/statistics/sizes", tags=["entity sizes"])

    @router.get(
        "/",
        response_model=EntitySizeBreakdown,
        response_model_exclude_none=True,
        summary="Entity counts per entity size",
    )
    def entity_size_breakdown(*, service: ServiceDep) -> EntitySizeBreakdown:
        return service.get_entity_size_breakdown()

    @router.get(
        "/{entity_size}",
        response_model=EntitySizeCount,
        response_model_exclude_none=True,
        summary="Entity count for one entity size",
    )
    def entity_size_count(*, service: ServiceDep, entity_size: int) -> EntitySizeCount:
        return service.get_entity_size_count(entity_size)

    @router.get(
        "/{entity_size}/entities",
        response_model=EntitiesPage,
        response_model_exclude_none=True,
        summary="Page of entities having the entity size",
    )
    def entity_size_entities(
        *, service: ServiceDep, entity_size: int, page: PageDep
    ) -> EntitiesPage:
        return service.get_entity_size_entities(entity_size, page)

    return router


def build_entity_relations_router() -> APIRouter:
    """
    Construct the router for the entity relation breakdown.

    Returns
    -------
    APIRouter
        Router mounted under ``/statistics/relations``.
    """
    router = APIRouter(prefix="/statistics/relations", tags=["entity relations"])

    @router.get(
        "/",
        response_model=EntityRelationsBreakdown,
        response_model_exclude_none=True,
        summary="Entity counts per relation count",
    )
    def entity_relations_breakdown(*, service: ServiceDep) -> EntityRelationsBreakdown:
        return service.get_entity_relations_breakdown()

    @router.get(
        "/{relations_count}",
        response_model=EntityRelationsCount,
        response_model_exclude_none=True,
        summary="Entity count for one relation count",
    )
    def entity_relations_count(
        *, service: ServiceDep, relations_count: int
    ) -> EntityRelationsCount:
        return service.get_entity_relations_count(relations_count)

    @router.get(
        "/{relations_count}/entities",
        response_model=EntitiesPage,
        response_model_exclude_none=True,
        summary="Page of entities having the relation count",
    )
    def entity_relations_entities(
        *, service: ServiceDep, relations_count: int, page: PageDep
    ) -> EntitiesPage:
        return service.get_entity_relations_entities(relations_count, page)

    return router


def build_loaded_stats_router() -> APIRouter:
    """
    Construct the router for loaded statistics.

    Returns
    -------
    APIRouter
        Router mounted under ``/statistics/loaded``.
    """
    router = APIRouter(prefix="/statistics/loaded", tags=["loaded statistics"])

    @router.get(
        "/",
        response_model=LoadedStats,
        response_model_exclude_none=True,
        summary="Loaded entity and record counts",
    )
    def loaded_statistics(
        *, service: ServiceDep, only_loaded: OnlyLoadedParam = True
    ) -> LoadedStats:
        """
        Return loaded totals plus per data source counts.

        With ``onlyLoadedSources=false`` every configured data source is
        reported, zero filled when nothing was loaded for it.
        """
        return service.get_loaded_statistics(only_loaded_sources=only_loaded)

    @router.get(
        "/data-sources/{data_source}",
        response_model=SourceLoadedStats,
        response_model_exclude_none=True,
        summary="Loaded counts for one data source",
    )
    def source_loaded_statistics(*, service: ServiceDep, data_source: str) -> SourceLoadedStats:
        return service.get_source_loaded_statistics(data_source)

    @router.get(
        "/data-sources/{data_source}/entities",
        response_model=EntitiesPage,
        response_model_exclude_none=True,
        summary="Page of entities loaded from a data source",
    )
    def data_source_entities(
        *, service: ServiceDep, data_source: str, page: PageDep
    ) -> EntitiesPage:
        return service.get_data_source_entities(data_source, page)

    return router


def build_summary_router() -> APIRouter:
    """
    Construct the router for data source and cross-source summaries.

    Literal ``/vs/`` routes are registered before the family routes so the
    family path segment never captures ``vs``.

    Returns
    -------
    APIRouter
        Router mounted under ``/statistics/summary``.
    """
    router = APIRouter(prefix="/statistics/summary", tags=["summary statistics"])

    @router.get(
        "/",
        response_model=SummaryStats,
        response_model_exclude_none=True,
        summary="Summaries for every data source",
    )
    def summary_statistics(
        *,
        service: ServiceDep,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
        only_loaded: OnlyLoadedParam = True,
    ) -> SummaryStats:
        return service.get_summary_statistics(
            match_key=match_key, principle=principle, only_loaded_sources=only_loaded
        )

    @router.get(
        "/data-sources/{data_source}",
        response_model=SourceSummary,
        response_model_exclude_none=True,
        summary="Summary for one data source",
    )
    def source_summary(
        *,
        service: ServiceDep,
        data_source: str,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
        only_loaded: OnlyLoadedParam = True,
    ) -> SourceSummary:
        return service.get_source_summary(
            data_source,
            match_key=match_key,
            principle=principle,
            only_loaded_sources=only_loaded,
        )

    @router.get(
        "/data-sources/{data_source}/vs/{vs_data_source}",
        response_model=CrossSourceSummary,
        response_model_exclude_none=True,
        summary="Summary between two data sources",
    )
    def cross_source_summary(
        *,
        service: ServiceDep,
        data_source: str,
        vs_data_source: str,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
    ) -> CrossSourceSummary:
        return service.get_cross_source_summary(
            data_source, vs_data_source, match_key=match_key, principle=principle
        )

    @router.get(
        "/data-sources/{data_source}/vs/{vs_data_source}/{family}",
        response_model=CrossSourceMatchCounts | CrossSourceRelationCounts,
        response_model_exclude_none=True,
        summary="One bucket family between two data sources",
    )
    def cross_source_counts(
        *,
        service: ServiceDep,
        data_source: str,
        vs_data_source: str,
        family: SummaryFamily,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
    ) -> CrossSourceMatchCounts | CrossSourceRelationCounts:
        return service.get_cross_source_counts(
            data_source,
            vs_data_source,
            family.statistic,
            match_key=match_key,
            principle=principle,
        )

    @router.get(
        "/data-sources/{data_source}/vs/{vs_data_source}/{family}/entities",
        response_model=EntitiesPage,
        response_model_exclude_none=True,
        summary="Page of entities in a bucket family between two data sources",
    )
    def cross_source_entities(  # noqa: PLR0913
        *,
        service: ServiceDep,
        data_source: str,
        vs_data_source: str,
        family: SummaryFamily,
        page: PageDep,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
    ) -> EntitiesPage:
        return service.get_cross_entities(
            data_source,
            vs_data_source,
            family.statistic,
            match_key=match_key,
            principle=principle,
            page=page,
        )

    @router.get(
        "/data-sources/{data_source}/vs/{vs_data_source}/{family}/relations",
        response_model=RelationsPage,
        response_model_exclude_none=True,
        summary="Page of relations in a relation family between two data sources",
    )
    def cross_source_relations(  # noqa: PLR0913
        *,
        service: ServiceDep,
        data_source: str,
        vs_data_source: str,
        family: RelationFamily,
        page: PageDep,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
    ) -> RelationsPage:
        return service.get_cross_relations(
            data_source,
            vs_data_source,
            family.statistic,
            match_key=match_key,
            principle=principle,
            page=page,
        )

    @router.get(
        "/data-sources/{data_source}/{family}/entities",
        response_model=EntitiesPage,
        response_model_exclude_none=True,
        summary="Page of entities in a bucket family within one data source",
    )
    def source_entities(
        *,
        service: ServiceDep,
        data_source: str,
        family: SummaryFamily,
        page: PageDep,
        match_key: MatchKeyParam = None,
        principle: str | None = None,
    ) -> EntitiesPage:
        return service.get_summary_entities(
            data_source,
            family.statistic,
            match_key=match_key,
            principle=principle,
            page=page,
        )

    return router


def build_health_router() -> APIRouter:
    """
    Construct the router for health endpoints.

    Returns
    -------
    APIRouter
        Router exposing ``/health``.
    """
    router = APIRouter()

    @router.get("/health", summary="Health check for the reports API")
    def health(*, service: ServiceDep, config: ConfigDep) -> dict[str, object]:
        """
        Report server health and connectivity.

        Raises
        ------
        ReportsError
            If the DuckDB connection fails the probe.
        """
        cursor = service.gateway.cursor()
        try:
            cursor.execute("SELECT 1;")
        except DuckDBError as exc:
            message = "Backend connection failed health probe."
            raise backend_failure(message) from exc
        finally:
            cursor.close()
        return {
            "status": "ok",
            "read_only": config.read_only,
            "limits": {
                "default_page_size": config.default_page_size,
                "max_page_size": config.max_page_size,
            },
        }

    return router


def register_routes(app: FastAPI) -> None:
    """Attach every report router to the application."""
    app.include_router(build_entity_size_router())
    app.include_router(build_entity_relations_router())
    app.include_router(build_loaded_stats_router())
    app.include_router(build_summary_router())
    app.include_router(build_health_router())


def _open_config_gateway(config: ServingConfig) -> StorageGateway:
    db_path = config.require_db_path()
    if config.read_only:
        return open_gateway(StorageConfig.for_readonly(db_path))
    return open_gateway(StorageConfig(db_path=db_path, read_only=False))


def create_app(
    *,
    config_loader: Callable[[], ServingConfig] = load_api_config,
    gateway: StorageGateway | None = None,
    service_factory: Callable[[StorageGateway, ServingConfig], ReportsService] = (
        build_reports_service
    ),
) -> FastAPI:
    """
    Build the FastAPI application with configured lifecycle and routes.

    Parameters
    ----------
    config_loader:
        Factory for loading application configuration.
    gateway:
        Optional StorageGateway; when omitted one is opened from the configured
        database path and closed on shutdown.
    service_factory:
        Factory building the reports service for a gateway and configuration.

    Returns
    -------
    FastAPI
        Configured FastAPI instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        config = config_loader()
        owned = gateway is None
        gw = _open_config_gateway(config) if gateway is None else gateway
        app.state.config = config
        app.state.service = service_factory(gw, config)
        LOG.info(
            "Reports API ready read_only=%s data_sources=%s",
            config.read_only,
            list(config.data_sources),
        )
        try:
            await asyncio.sleep(0)
            yield
        finally:
            if owned:
                gw.close()

    app = FastAPI(
        title="Data Mart Reports API",
        description="Paginated report statistics over the data mart aggregate tables.",
        version="0.1.0",
        lifespan=lifespan,
    )

    install_exception_handlers(app)
    install_logging_middleware(app)
    register_routes(app)
    return app


app = create_app()
