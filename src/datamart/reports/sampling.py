"""Random down-sampling of a grouped page."""

from __future__ import annotations

import random
from collections.abc import Sequence


def sample_page[T](
    items: Sequence[T],
    sample_size: int | None,
    *,
    rng: random.Random | None = None,
) -> list[T]:
    """
    Keep a random subset of ``sample_size`` items, preserving their order.

    A shuffled permutation of the item positions is generated and the first
    ``len(items) - sample_size`` positions are dropped. No sampling happens when
    ``sample_size`` is ``None`` or at least the number of items.

    Parameters
    ----------
    items
        Grouped page items in page order.
    sample_size
        Requested sample size, or ``None`` to keep every item.
    rng
        Random source; defaults to the module-level generator.

    Returns
    -------
    list[T]
        Surviving items in their original relative order.
    """
    count = len(items)
    if sample_size is None or count <= sample_size:
        return list(items)
    positions = list(range(count))
    (rng or random).shuffle(positions)
    dropped = set(positions[: count - sample_size])
    return [item for index, item in enumerate(items) if index not in dropped]
