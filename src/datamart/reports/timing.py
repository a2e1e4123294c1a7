"""Named timing of the database queries issued for one report call."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

LOG = logging.getLogger("datamart.reports.timing")


@dataclass
class QueryTimers:
    """
    Accumulate elapsed milliseconds per named query stage.

    Stage names follow the queries they time, e.g. ``selectPagedEntities`` or
    ``selectBeforePageEntityCount``. A stage that runs more than once adds to
    its previous total.
    """

    durations_ms: dict[str, float] = field(default_factory=dict)

    @contextmanager
    def querying(self, stage: str) -> Iterator[None]:
        """
        Time the enclosed block as ``stage``; the time is recorded on every exit path.

        Yields
        ------
        None
            Control to the timed block.
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.durations_ms[stage] = self.durations_ms.get(stage, 0.0) + elapsed_ms
            LOG.debug("query stage %s took %.2f ms", stage, elapsed_ms)

    def snapshot(self) -> dict[str, float]:
        """
        Return recorded durations rounded for reporting.

        Returns
        -------
        dict[str, float]
            Stage name to elapsed milliseconds.
        """
        return {stage: round(ms, 3) for stage, ms in self.durations_ms.items()}


@contextmanager
def timed(timers: QueryTimers | None, stage: str) -> Iterator[None]:
    """
    Time ``stage`` on ``timers`` when given; otherwise run the block untimed.

    Yields
    ------
    None
        Control to the block.
    """
    if timers is None:
        yield
        return
    with timers.querying(stage):
        yield
