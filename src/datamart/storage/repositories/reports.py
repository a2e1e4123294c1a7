"""Repository for per-statistic report rows stored in dm.report."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from datamart.storage.repositories.base import (
    BaseRepository,
    RowDict,
    fetch_all_dicts,
    fetch_one_dict,
    fetch_scalar,
)


@dataclass(frozen=True)
class ReportRepository(BaseRepository):
    """Read summary rows from the ``dm.report`` table."""

    def sum_entity_count(self, report: str) -> int:
        """
        Sum entity counts across every statistic of a report.

        Returns
        -------
        int
            Summed entity count; 0 when the report has no rows.
        """
        value = fetch_scalar(
            self.con,
            "SELECT SUM(entity_count) FROM dm.report WHERE report = ?",
            [str(report)],
        )
        return int(value or 0)

    def statistic_counts(self, report: str) -> list[RowDict]:
        """
        Return (statistic, entity_count) rows for every statistic of a report.

        Returns
        -------
        list[RowDict]
            Rows ordered by statistic text.
        """
        return fetch_all_dicts(
            self.con,
            "SELECT statistic, entity_count FROM dm.report WHERE report = ? ORDER BY statistic",
            [str(report)],
        )

    def statistic_row(
        self,
        report: str,
        statistic: str,
        data_source: str | None = None,
    ) -> RowDict | None:
        """
        Return the counts row for one statistic, optionally for one data source.

        Returns
        -------
        RowDict | None
            Row with entity_count, record_count and relation_count, or ``None``.
        """
        sql = (
            "SELECT entity_count, record_count, relation_count FROM dm.report "
            "WHERE report = ? AND statistic = ?"
        )
        params: list[object] = [str(report), str(statistic)]
        if data_source is not None:
            sql += " AND data_source1 = ?"
            params.append(data_source)
        return fetch_one_dict(self.con, sql, params)

    def counts_by_source(self, report: str, statistic: str) -> list[RowDict]:
        """
        Return per data source counts for one statistic.

        Returns
        -------
        list[RowDict]
            Rows with data_source1, entity_count and record_count ordered by
            data source.
        """
        return fetch_all_dicts(
            self.con,
            """
            SELECT data_source1, entity_count, record_count
            FROM dm.report
            WHERE report = ? AND statistic = ?
            ORDER BY data_source1
            """,
            [str(report), str(statistic)],
        )

    def source_statistics(
        self,
        report: str,
        data_source: str,
        vs_data_source: str,
        statistics: Sequence[str],
    ) -> list[RowDict]:
        """
        Return the listed statistics between two data sources.

        Returns
        -------
        list[RowDict]
            Rows with statistic, entity_count, record_count and relation_count.
        """
        if not statistics:
            return []
        placeholders = ", ".join("?" for _ in statistics)
        return fetch_all_dicts(
            self.con,
            f"""
            SELECT statistic, entity_count, record_count, relation_count
            FROM dm.report
            WHERE report = ? AND data_source1 = ? AND data_source2 = ?
              AND statistic IN ({placeholders})
            ORDER BY statistic
            """,  # noqa: S608 - placeholders only
            [str(report), data_source, vs_data_source, *map(str, statistics)],
        )

    def cross_statistics(  # noqa: PLR0913
        self,
        report: str,
        data_source: str,
        vs_data_source: str,
        *,
        excluded: Sequence[str],
        prefix: str | None = None,
    ) -> list[RowDict]:
        """
        Return every statistic between two data sources except ``excluded``.

        Parameters
        ----------
        report
            Report code (DSS or CSS).
        data_source, vs_data_source
            Data source pair.
        excluded
            Statistic tokens to leave out.
        prefix
            When given, only statistics whose token starts with this text.

        Returns
        -------
        list[RowDict]
            Rows with statistic, entity_count, record_count and relation_count
            ordered by statistic.
        """
        sql = (
            "SELECT statistic, entity_count, record_count, relation_count FROM dm.report "
            "WHERE report = ? AND data_source1 = ? AND data_source2 = ?"
        )
        params: list[object] = [str(report), data_source, vs_data_source]
        if excluded:
            sql += f" AND statistic NOT IN ({', '.join('?' for _ in excluded)})"
            params.extend(str(statistic) for statistic in excluded)
        if prefix is not None:
            sql += " AND starts_with(statistic, ?)"
            params.append(str(prefix))
        sql += " ORDER BY statistic"
        return fetch_all_dicts(self.con, sql, params)

    def loaded_data_sources(self, report: str, statistic: str) -> list[str]:
        """
        Return data sources with at least one loaded record.

        Returns
        -------
        list[str]
            Data source codes in ascending order.
        """
        rows = fetch_all_dicts(
            self.con,
            """
            SELECT data_source1
            FROM dm.report
            WHERE report = ? AND statistic = ? AND record_count > 0
            ORDER BY data_source1
            """,
            [str(report), str(statistic)],
        )
        return [row["data_source1"] for row in rows]
