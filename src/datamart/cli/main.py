"""CLI entrypoint for data mart report retrieval."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from datamart.config.serving_models import ServingConfig
from datamart.errors import PROBLEM_TYPE_ROOT, ProblemDetail, ReportsError, log_problem
from datamart.reports.bounds import BoundType
from datamart.reports.codes import ReportStatistic
from datamart.reports.models import ReportModel
from datamart.serving.services.reports_service import (
    PageRequest,
    ReportsService,
    build_reports_service,
)
from datamart.storage.gateway import StorageConfig, open_gateway

LOG = logging.getLogger("datamart.cli")

CommandHandler = Callable[..., int]

_FAMILY_STATISTICS = tuple(
    stat
    for stat in ReportStatistic
    if stat not in {ReportStatistic.ENTITY_COUNT, ReportStatistic.UNMATCHED_COUNT}
)


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _add_common_db_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="Path to the data mart DuckDB database (default: $DATAMART_DB_PATH)",
    )
    p.add_argument(
        "--data-sources",
        default=None,
        help="Comma separated configured data source codes (default: $DATAMART_DATA_SOURCES)",
    )


def _add_page_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--bound", default=None, help="Page bound, e.g. 0, max or 10:max")
    p.add_argument(
        "--bound-type",
        type=BoundType,
        choices=list(BoundType),
        default=None,
        help="How the bound is applied (default: inferred from the bound)",
    )
    p.add_argument("--page-size", type=int, default=None, help="Maximum rows to scan")
    p.add_argument("--sample-size", type=int, default=None, help="Rows to sample from the page")


def _add_dimension_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--match-key", default=None, help="Match key filter; '*' matches any")
    p.add_argument("--principle", default=None, help="Principle filter; '*' matches any")


def _add_source_scope_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--include-configured",
        dest="only_loaded_sources",
        action="store_false",
        help="Also report configured data sources that have no loaded records",
    )


def _statistic_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--statistic",
        type=ReportStatistic,
        choices=_FAMILY_STATISTICS,
        required=True,
        help="Summary statistic identifying the bucket family",
    )


def _register_size_commands(subparsers: argparse._SubParsersAction) -> None:
    p_sizes = subparsers.add_parser("sizes", help="Entity size breakdown reports")
    sizes_sub = p_sizes.add_subparsers(dest="sizes_command", required=True)

    p_breakdown = sizes_sub.add_parser("breakdown", help="Entity counts per entity size")
    _add_common_db_args(p_breakdown)
    p_breakdown.set_defaults(func=_cmd_sizes_breakdown)

    p_count = sizes_sub.add_parser("count", help="Entity count for one entity size")
    _add_common_db_args(p_count)
    p_count.add_argument("--size", type=int, required=True, help="Records per entity")
    p_count.set_defaults(func=_cmd_sizes_count)

    p_entities = sizes_sub.add_parser("entities", help="Page of entities of one size")
    _add_common_db_args(p_entities)
    p_entities.add_argument("--size", type=int, required=True, help="Records per entity")
    _add_page_args(p_entities)
    p_entities.set_defaults(func=_cmd_sizes_entities)


def _register_relation_commands(subparsers: argparse._SubParsersAction) -> None:
    p_relations = subparsers.add_parser("relations", help="Entity relation breakdown reports")
    relations_sub = p_relations.add_subparsers(dest="relations_command", required=True)

    p_breakdown = relations_sub.add_parser(
        "breakdown", help="Entity counts per number of relations"
    )
    _add_common_db_args(p_breakdown)
    p_breakdown.set_defaults(func=_cmd_relations_breakdown)

    p_count = relations_sub.add_parser("count", help="Entity count for one relation count")
    _add_common_db_args(p_count)
    p_count.add_argument("--relations", type=int, required=True, help="Relations per entity")
    p_count.set_defaults(func=_cmd_relations_count)

    p_entities = relations_sub.add_parser(
        "entities", help="Page of entities with a given number of relations"
    )
    _add_common_db_args(p_entities)
    p_entities.add_argument("--relations", type=int, required=True, help="Relations per entity")
    _add_page_args(p_entities)
    p_entities.set_defaults(func=_cmd_relations_entities)


def _register_loaded_commands(subparsers: argparse._SubParsersAction) -> None:
    p_loaded = subparsers.add_parser("loaded", help="Loaded record statistics")
    loaded_sub = p_loaded.add_subparsers(dest="loaded_command", required=True)

    p_stats = loaded_sub.add_parser("stats", help="Loaded totals per data source")
    _add_common_db_args(p_stats)
    _add_source_scope_args(p_stats)
    p_stats.set_defaults(func=_cmd_loaded_stats)

    p_source = loaded_sub.add_parser("source", help="Loaded counts for one data source")
    _add_common_db_args(p_source)
    p_source.add_argument("--data-source", required=True, help="Data source code")
    p_source.set_defaults(func=_cmd_loaded_source)

    p_entities = loaded_sub.add_parser(
        "entities", help="Page of entities with records from a data source"
    )
    _add_common_db_args(p_entities)
    p_entities.add_argument("--data-source", required=True, help="Data source code")
    _add_page_args(p_entities)
    p_entities.set_defaults(func=_cmd_loaded_entities)


def _register_summary_commands(subparsers: argparse._SubParsersAction) -> None:
    p_summary = subparsers.add_parser("summary", help="Data source summary statistics")
    summary_sub = p_summary.add_subparsers(dest="summary_command", required=True)

    p_stats = summary_sub.add_parser("stats", help="Summaries for every data source")
    _add_common_db_args(p_stats)
    _add_dimension_args(p_stats)
    _add_source_scope_args(p_stats)
    p_stats.set_defaults(func=_cmd_summary_stats)

    p_source = summary_sub.add_parser("source", help="Summary for one data source")
    _add_common_db_args(p_source)
    p_source.add_argument("--data-source", required=True, help="Data source code")
    _add_dimension_args(p_source)
    _add_source_scope_args(p_source)
    p_source.set_defaults(func=_cmd_summary_source)

    p_cross = summary_sub.add_parser("cross", help="Cross source summary between two sources")
    _add_common_db_args(p_cross)
    p_cross.add_argument("--data-source", required=True, help="Data source code")
    p_cross.add_argument("--vs", required=True, help="Versus data source code")
    _add_dimension_args(p_cross)
    p_cross.set_defaults(func=_cmd_summary_cross)

    p_family = summary_sub.add_parser("family", help="Buckets of one summary family")
    _add_common_db_args(p_family)
    p_family.add_argument("--data-source", required=True, help="Data source code")
    p_family.add_argument("--vs", required=True, help="Versus data source code")
    _statistic_arg(p_family)
    _add_dimension_args(p_family)
    p_family.set_defaults(func=_cmd_summary_family)

    p_entities = summary_sub.add_parser(
        "entities", help="Page of entities counted by a summary statistic"
    )
    _add_common_db_args(p_entities)
    p_entities.add_argument("--data-source", required=True, help="Data source code")
    p_entities.add_argument(
        "--vs", default=None, help="Versus data source code (default: the data source itself)"
    )
    _statistic_arg(p_entities)
    _add_dimension_args(p_entities)
    _add_page_args(p_entities)
    p_entities.set_defaults(func=_cmd_summary_entities)

    p_relations = summary_sub.add_parser(
        "relations", help="Page of relations counted by a relation statistic"
    )
    _add_common_db_args(p_relations)
    p_relations.add_argument("--data-source", required=True, help="Data source code")
    p_relations.add_argument("--vs", required=True, help="Versus data source code")
    _statistic_arg(p_relations)
    _add_dimension_args(p_relations)
    _add_page_args(p_relations)
    p_relations.set_defaults(func=_cmd_summary_relations)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="datamart",
        description="Data mart report retrieval CLI",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    _register_size_commands(subparsers)
    _register_relation_commands(subparsers)
    _register_loaded_commands(subparsers)
    _register_summary_commands(subparsers)

    return parser


def make_parser() -> argparse.ArgumentParser:
    """
    Public helper to construct the CLI parser (for tests/tools).

    Returns
    -------
    argparse.ArgumentParser
        Configured parser with all subcommands registered.
    """
    return _make_parser()


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _build_config_from_args(args: argparse.Namespace) -> ServingConfig:
    """
    Overlay command line options on the environment configuration.

    Returns
    -------
    ServingConfig
        Configuration with the database path and data sources resolved.
    """
    base = ServingConfig.from_env()
    updates: dict[str, object] = {"read_only": True}
    if args.db_path is not None:
        updates["db_path"] = args.db_path.expanduser()
    if args.data_sources is not None:
        codes = (part.strip().upper() for part in args.data_sources.split(","))
        updates["data_sources"] = tuple(dict.fromkeys(code for code in codes if code))
    cfg = base.model_copy(update=updates)
    LOG.info(
        "cli.runtime.config db_path=%s data_sources=%s",
        cfg.db_path,
        ",".join(cfg.data_sources) or "-",
    )
    return cfg


@contextmanager
def _open_service(args: argparse.Namespace) -> Iterator[ReportsService]:
    cfg = _build_config_from_args(args)
    gateway = open_gateway(StorageConfig.for_readonly(cfg.require_db_path()))
    try:
        yield build_reports_service(gateway, cfg)
    finally:
        gateway.close()


def _page_from_args(args: argparse.Namespace) -> PageRequest:
    return PageRequest(
        bound=args.bound,
        bound_type=args.bound_type,
        page_size=args.page_size,
        sample_size=args.sample_size,
    )


def _emit(model: ReportModel) -> int:
    sys.stdout.write(json.dumps(model.to_payload()))
    sys.stdout.write("\n")
    return 0


def _cmd_sizes_breakdown(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_size_breakdown())


def _cmd_sizes_count(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_size_count(args.size))


def _cmd_sizes_entities(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_size_entities(args.size, _page_from_args(args)))


def _cmd_relations_breakdown(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_relations_breakdown())


def _cmd_relations_count(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_relations_count(args.relations))


def _cmd_relations_entities(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_entity_relations_entities(args.relations, _page_from_args(args)))


def _cmd_loaded_stats(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_loaded_statistics(only_loaded_sources=args.only_loaded_sources))


def _cmd_loaded_source(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_source_loaded_statistics(args.data_source))


def _cmd_loaded_entities(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        return _emit(service.get_data_source_entities(args.data_source, _page_from_args(args)))


def _cmd_summary_stats(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        response = service.get_summary_statistics(
            match_key=args.match_key,
            principle=args.principle,
            only_loaded_sources=args.only_loaded_sources,
        )
        return _emit(response)


def _cmd_summary_source(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        response = service.get_source_summary(
            args.data_source,
            match_key=args.match_key,
            principle=args.principle,
            only_loaded_sources=args.only_loaded_sources,
        )
        return _emit(response)


def _cmd_summary_cross(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        response = service.get_cross_source_summary(
            args.data_source,
            args.vs,
            match_key=args.match_key,
            principle=args.principle,
        )
        return _emit(response)


def _cmd_summary_family(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        response = service.get_cross_source_counts(
            args.data_source,
            args.vs,
            args.statistic,
            match_key=args.match_key,
            principle=args.principle,
        )
        return _emit(response)


def _cmd_summary_entities(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        if args.vs is None:
            response = service.get_summary_entities(
                args.data_source,
                args.statistic,
                match_key=args.match_key,
                principle=args.principle,
                page=_page_from_args(args),
            )
            return _emit(response)
        response = service.get_cross_entities(
            args.data_source,
            args.vs,
            args.statistic,
            match_key=args.match_key,
            principle=args.principle,
            page=_page_from_args(args),
        )
        return _emit(response)


def _cmd_summary_relations(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        response = service.get_cross_relations(
            args.data_source,
            args.vs,
            args.statistic,
            match_key=args.match_key,
            principle=args.principle,
            page=_page_from_args(args),
        )
        return _emit(response)


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for the data mart report commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except ReportsError as exc:
        log_problem(LOG, exc.detail)
        return 1
    except Exception as exc:  # noqa: BLE001
        pd = ProblemDetail(
            type=f"{PROBLEM_TYPE_ROOT}/cli-failure",
            title="CLI command failed",
            detail=str(exc),
            data={"command": args.command},
        )
        log_problem(LOG, pd)
        return 1


if __name__ == "__main__":
    sys.exit(main())
