"""Query-directed multi-probe sequences for E2LSH.

For a query, each hash coordinate h_i = floor(p_i) leaves the query at
fractional position f_i = p_i - h_i inside its slot. Stepping that coordinate
to the neighbouring slot below costs f_i, stepping above costs 1 - f_i. A
perturbation set (a handful of such steps on distinct coordinates) is scored
by the sum of squared costs, and buckets are probed in increasing score order.

Sets are enumerated lazily with a min-heap and the shift/expand operations of
Lv et al., "Multi-Probe LSH: Efficient Indexing for High-Dimensional
Similarity Search" (VLDB 2007), so only as many sets as requested are built.
"""

from __future__ import annotations

import heapq

import numpy as np
from numpy.typing import NDArray


def single_perturbations(
    fractions: NDArray[np.floating],
) -> tuple[NDArray[np.float64], NDArray[np.int64], NDArray[np.int64]]:
    """Rank the 2k single-coordinate steps of one hash vector.

    Args:
        fractions: Fractional slot positions f_i in [0, 1), shape (k,).

    Returns:
        Tuple of (scores, coordinates, deltas), each of shape (2k,), sorted by
        ascending score. ``deltas`` holds -1 or +1.
    """
    k = len(fractions)
    scores = np.concatenate([fractions ** 2, (1.0 - fractions) ** 2])
    coords = np.concatenate([np.arange(k), np.arange(k)])
    deltas = np.concatenate([np.full(k, -1), np.full(k, 1)]).astype(np.int64)

    order = np.argsort(scores, kind="stable")
    return scores[order], coords[order], deltas[order]


def probe_sequence(
    fractions: NDArray[np.floating],
    num_probes: int,
) -> list[NDArray[np.int64]]:
    """Generate the first ``num_probes`` perturbation vectors for a query.

    Args:
        fractions: Fractional slot positions f_i in [0, 1), shape (k,).
        num_probes: Number of extra buckets to probe.

    Returns:
        List of delta vectors in {-1, 0, +1}^k, ordered by non-decreasing score.
        Shorter than ``num_probes`` only when every valid set is exhausted.
    """
    if num_probes <= 0:
        return []

    scores, coords, deltas = single_perturbations(np.asarray(fractions, dtype=np.float64))
    size = len(scores)

    probes: list[NDArray[np.int64]] = []
    heap: list[tuple[float, tuple[int, ...]]] = [(float(scores[0]), (0,))]

    while heap and len(probes) < num_probes:
        _, members = heapq.heappop(heap)
        last = members[-1]

        if last + 1 < size:
            # shift: replace the largest member with its successor
            shifted = members[:-1] + (last + 1,)
            heapq.heappush(heap, (float(scores[list(shifted)].sum()), shifted))
            # expand: add the successor of the largest member
            expanded = members + (last + 1,)
            heapq.heappush(heap, (float(scores[list(expanded)].sum()), expanded))

        touched = coords[list(members)]
        if len(np.unique(touched)) != len(touched):
            continue

        delta = np.zeros(len(fractions), dtype=np.int64)
        delta[touched] = deltas[list(members)]
        probes.append(delta)

    return probes
