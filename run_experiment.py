#!/usr/bin/env python3
"""Experiment runner: LSH recall sweep and softmax regression on synthetic blobs."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np

from lshsoftmax.evaluation import benchmark_lsh, print_benchmark_results
from lshsoftmax.lsh import LSHConfig
from lshsoftmax.softmax import SoftmaxConfig, train

# Experiment parameters
TOP_K = 10
TABLE_CONFIGS = [5, 10, 30]
PROBE_CONFIGS = [0, 2, 8]


def make_blobs(
    num_points: int,
    dim: int,
    num_classes: int,
    seed: int,
    spread: float = 1.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Draw Gaussian clusters around random centers.

    Returns:
        Tuple of (points (n, dim), labels (n,)).
    """
    rng = np.random.default_rng(seed)
    centers = rng.uniform(-10.0, 10.0, (num_classes, dim))
    labels = rng.integers(0, num_classes, num_points)
    points = centers[labels] + spread * rng.standard_normal((num_points, dim))
    return points, labels


def run_experiment(
    num_points: int = 2000,
    num_queries: int = 100,
    dim: int = 32,
    num_classes: int = 5,
    projections: int = 10,
    seed: int = 42,
    plot: Path | None = None,
    verbose: bool = False,
) -> None:
    """Run the complete experiment pipeline."""
    print("=" * 60)
    print("LSH / Softmax Regression Experiment")
    print("=" * 60)
    print(f"Settings: {num_points} points, {num_queries} queries, dim={dim}, "
          f"{num_classes} classes")
    print()

    print("[1/3] Generating data...")
    points, labels = make_blobs(num_points + num_queries, dim, num_classes, seed)
    reference, queries = points[:num_points], points[num_points:]
    train_labels, test_labels = labels[:num_points], labels[num_points:]

    print("[2/3] Running LSH sweep...")
    configs = [
        LSHConfig(tables=tables, projections=projections, seed=seed, verbose=verbose)
        for tables in TABLE_CONFIGS
    ]
    results = benchmark_lsh(reference, queries, TOP_K, configs, num_probes=PROBE_CONFIGS)
    print()
    print_benchmark_results(results)
    print()

    print("[3/3] Training softmax regression...")
    model = train(reference, train_labels, SoftmaxConfig(seed=seed, verbose=verbose))
    print(f"      Iterations: {model.iterations} (converged={model.converged})")
    print(f"      Training accuracy: {model.evaluate(reference, train_labels):.2%}")
    print(f"      Test accuracy: {model.evaluate(queries, test_labels):.2%}")

    if plot is not None:
        save_recall_plot(results, plot)
        print(f"Recall plot saved to {plot}")


def save_recall_plot(results, path: Path) -> None:
    """Plot recall against number of tables, one line per probe count."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(7, 4))
    for probes, group in results.groupby("num_probes"):
        ax.plot(group["tables"], group["recall"], marker="o", label=f"{probes} probes")
    ax.set_xlabel("Tables")
    ax.set_ylabel(f"Recall@{TOP_K}")
    ax.set_ylim(0, 1.05)
    ax.legend()
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)


def main() -> None:
    """Entry point."""
    parser = argparse.ArgumentParser(
        description="LSH recall sweep and softmax regression experiment"
    )
    parser.add_argument("--num-points", type=int, default=2000,
                        help="Number of reference points (default: 2000)")
    parser.add_argument("--num-queries", type=int, default=100,
                        help="Number of query points (default: 100)")
    parser.add_argument("--dim", type=int, default=32,
                        help="Point dimensionality (default: 32)")
    parser.add_argument("--num-classes", type=int, default=5,
                        help="Number of clusters / classes (default: 5)")
    parser.add_argument("--projections", type=int, default=10,
                        help="Hash functions per table (default: 10)")
    parser.add_argument("--seed", type=int, default=42,
                        help="Random seed (default: 42)")
    parser.add_argument("--plot", type=Path, default=None,
                        help="Write a recall chart to this path (needs matplotlib)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show INFO logs")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    run_experiment(
        num_points=args.num_points,
        num_queries=args.num_queries,
        dim=args.dim,
        num_classes=args.num_classes,
        projections=args.projections,
        seed=args.seed,
        plot=args.plot,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
