"""Recall evaluation and benchmarking for the LSH search engine."""

from __future__ import annotations

import time
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray
from sklearn.neighbors import NearestNeighbors

from lshsoftmax.errors import ConfigurationError
from lshsoftmax.lsh import LSHConfig, build
from lshsoftmax.points import as_point_set
from lshsoftmax.search import compute_recall, query


def brute_force_knn(
    reference: ArrayLike,
    queries: ArrayLike | None = None,
    k: int = 1,
    points_are_rows: bool = True,
) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
    """Exact k nearest neighbors, as ground truth for recall.

    Args:
        reference: Reference points.
        queries: Query points; None searches the reference set against itself,
            excluding each point from its own neighbors.
        k: Number of neighbors.
        points_are_rows: Orientation of both matrices.

    Returns:
        Tuple of (distances, neighbors), each of shape (k, n_queries), laid
        out like ``search.query`` output.
    """
    reference = as_point_set(reference, points_are_rows, name="reference")
    available = len(reference) - (1 if queries is None else 0)
    if k <= 0 or k > available:
        raise ConfigurationError(f"k must be in [1, {available}], got {k}")

    nn = NearestNeighbors(n_neighbors=k, algorithm="brute", metric="euclidean")
    nn.fit(reference)

    if queries is None:
        distances, neighbors = nn.kneighbors()
    else:
        queries = as_point_set(queries, points_are_rows, name="queries")
        distances, neighbors = nn.kneighbors(queries)

    return distances.T.astype(np.float64), neighbors.T.astype(np.int64)


def benchmark_lsh(
    reference: ArrayLike,
    queries: ArrayLike,
    k: int,
    configs: Iterable[LSHConfig],
    num_probes: Sequence[int] = (0,),
    n_runs: int = 1,
) -> pd.DataFrame:
    """Measure recall and timing of LSH search for several configurations.

    Args:
        reference: Reference points (rows).
        queries: Query points (rows).
        k: Number of neighbors.
        configs: Index configurations to build.
        num_probes: Probe counts to query each index with.
        n_runs: Query repetitions averaged for timing.

    Returns:
        DataFrame with one row per (config, num_probes).
    """
    reference = as_point_set(reference, name="reference")
    queries = as_point_set(queries, name="queries")
    _, true_neighbors = brute_force_knn(reference, queries, k)

    rows = []
    for config in configs:
        start = time.perf_counter()
        index = build(reference, config)
        build_ms = (time.perf_counter() - start) * 1000

        for probes in num_probes:
            timings = []
            for _ in range(n_runs):
                start = time.perf_counter()
                result = query(index, queries, k=k, num_probes=probes)
                timings.append((time.perf_counter() - start) * 1000)

            rows.append({
                "tables": config.tables,
                "projections": config.projections,
                "num_probes": probes,
                "hash_width": index.hash_width,
                "recall": compute_recall(result.neighbors, true_neighbors),
                "build_ms": build_ms,
                "query_ms": float(np.mean(timings)),
                "mean_candidates": float(result.candidates.mean()),
            })

    return pd.DataFrame(rows)


def print_benchmark_results(results: pd.DataFrame) -> None:
    """Print a benchmark table."""
    print("=" * 80)
    print("LSH benchmark")
    print("=" * 80)
    print(f"{'Tables':>7} | {'Proj':>5} | {'Probes':>6} | {'Recall':>8} | "
          f"{'Build (ms)':>10} | {'Query (ms)':>10} | {'Candidates':>10}")
    print("-" * 80)

    for row in results.itertuples(index=False):
        print(f"{row.tables:>7} | {row.projections:>5} | {row.num_probes:>6} | "
              f"{row.recall * 100:>7.1f}% | {row.build_ms:>10.2f} | "
              f"{row.query_ms:>10.2f} | {row.mean_candidates:>10.1f}")
