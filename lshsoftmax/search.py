"""Approximate k-nearest-neighbor search over an LSHIndex.

Stage 1: Candidate retrieval - exact bucket (plus multi-probe buckets) per table
Stage 2: Exact reranking - Euclidean distance to every unique candidate
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray
from tqdm import tqdm

from lshsoftmax.errors import ConfigurationError, DataError
from lshsoftmax.lsh import LSHIndex
from lshsoftmax.multiprobe import probe_sequence
from lshsoftmax.points import as_point_set

logger = logging.getLogger(__name__)

# Neighbor index reported when fewer than k candidates were found.
MISSING_NEIGHBOR = -1


@dataclass
class QueryResult:
    """Neighbors of a batch of queries.

    Column j belongs to query j; row i holds its i-th nearest neighbor.
    Unfilled slots hold MISSING_NEIGHBOR and an infinite distance.
    """

    distances: NDArray[np.float64]  # (k, n_queries)
    neighbors: NDArray[np.int64]  # (k, n_queries)
    candidates: NDArray[np.int64]  # (n_queries,) unique candidates examined


def query(
    index: LSHIndex,
    queries: ArrayLike | None = None,
    k: int = 1,
    num_probes: int = 0,
    points_are_rows: bool = True,
    verbose: bool = False,
) -> QueryResult:
    """Find approximate k nearest neighbors of each query point.

    Args:
        index: Built LSH index.
        queries: Query points; None searches the reference set against itself
            and never reports a point as its own neighbor.
        k: Number of neighbors per query.
        num_probes: Extra buckets probed per table (0 = classic LSH).
        points_are_rows: Orientation of ``queries``.
        verbose: Log timing at INFO and show a progress bar.

    Returns:
        QueryResult with (k, n_queries) distance and neighbor matrices.

    Raises:
        ConfigurationError: If k or num_probes is out of range.
        DataError: If the query dimensionality differs from the index.
    """
    if k <= 0:
        raise ConfigurationError(f"k must be > 0, got {k}")
    if num_probes < 0:
        raise ConfigurationError(f"num_probes must be >= 0, got {num_probes}")

    monochromatic = queries is None
    if monochromatic:
        points = index.reference
    else:
        points = as_point_set(queries, points_are_rows, name="queries")
        index.check_dim(points)

    start = time.perf_counter()
    n_queries = len(points)

    # Per-table scaled projections; floor gives the hash, the rest the slot position.
    scaled = [index.project(points, t) for t in range(index.num_tables)]
    hashes = [np.floor(s).astype(np.int64) for s in scaled]
    exact_buckets = [index.bucket_ids(h) for h in hashes]

    distances = np.full((k, n_queries), np.inf)
    neighbors = np.full((k, n_queries), MISSING_NEIGHBOR, dtype=np.int64)
    candidate_counts = np.zeros(n_queries, dtype=np.int64)

    iterator = range(n_queries)
    if verbose:
        iterator = tqdm(iterator, desc="Searching")

    for q in iterator:
        candidates: set[int] = set()
        for t, table in enumerate(index.tables):
            candidates.update(table.get(int(exact_buckets[t][q]), ()))

            if num_probes > 0:
                deltas = probe_sequence(scaled[t][q] - hashes[t][q], num_probes)
                if deltas:
                    probed = index.bucket_ids(hashes[t][q] + np.array(deltas))
                    for bucket in probed:
                        candidates.update(table.get(int(bucket), ()))

        if monochromatic:
            candidates.discard(q)
        if not candidates:
            continue

        candidate_counts[q] = len(candidates)
        ids, dists = _rank_candidates(index.reference, points[q], candidates, k)
        neighbors[: len(ids), q] = ids
        distances[: len(ids), q] = dists

    elapsed = (time.perf_counter() - start) * 1000
    logger.log(
        logging.INFO if verbose else logging.DEBUG,
        "Searched %d queries (k=%d, num_probes=%d) in %.1f ms, "
        "%.1f candidates per query on average",
        n_queries, k, num_probes, elapsed, float(candidate_counts.mean()),
    )

    return QueryResult(distances=distances, neighbors=neighbors, candidates=candidate_counts)


def _rank_candidates(
    reference: NDArray[np.float64],
    point: NDArray[np.float64],
    candidates: set[int],
    k: int,
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """Return the k closest candidates by (distance, index), ascending."""
    ids = np.array(sorted(candidates), dtype=np.int64)
    dists = np.linalg.norm(reference[ids] - point, axis=1)

    # lexsort: last key is primary
    order = np.lexsort((ids, dists))[:k]
    return ids[order], dists[order]


def compute_recall(
    found: ArrayLike,
    true_neighbors: ArrayLike,
) -> float:
    """Fraction of returned neighbors that appear in the true neighbor lists.

    Both matrices are (k, n_queries); column j of ``found`` is matched against
    column j of ``true_neighbors`` regardless of order.

    Args:
        found: Neighbors returned by a search.
        true_neighbors: Exact neighbors, e.g. from brute-force search.

    Returns:
        Recall in [0, 1].
    """
    found = np.asarray(found)
    true_neighbors = np.asarray(true_neighbors)
    if found.shape != true_neighbors.shape:
        raise DataError(
            f"found neighbors have shape {found.shape}, "
            f"true neighbors have shape {true_neighbors.shape}"
        )
    if found.size == 0:
        raise DataError("cannot compute recall of an empty neighbor matrix")

    hits = sum(
        len(set(found[:, j].tolist()) & set(true_neighbors[:, j].tolist()))
        for j in range(found.shape[1])
    )
    return hits / found.size
