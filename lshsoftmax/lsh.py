"""E2LSH (Euclidean LSH) index built from p-stable random projections.

Each table hashes a point with K functions

    h_i(v) = floor((a_i·v + b_i) / w)

- a_i: random vector from Gaussian N(0, 1)
- b_i: random offset from Uniform[0, w)
- w: hash width (bucket width)

and compresses the K integers into one bucket id with a second-level hash

    g(v) = (sum_i r_i * h_i(v)) mod second_hash_size

with integer weights r_i drawn uniformly from [0, second_hash_size).

Buckets have a soft capacity: ``bucket_size`` is recorded and overfull buckets
are reported, but no point is ever dropped from a table.
"""

from __future__ import annotations

import logging
import pickle
import time
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray
from tqdm import tqdm

from lshsoftmax.errors import ConfigurationError, DataError, NumericError
from lshsoftmax.points import as_point_set, resolve_seed

logger = logging.getLogger(__name__)

# Number of random point pairs averaged when the hash width is estimated.
HASH_WIDTH_SAMPLES = 25


@dataclass(frozen=True)
class LSHConfig:
    """Parameters for building an LSH index."""

    tables: int = 30  # Number of hash tables (L)
    projections: int = 10  # Hash functions per table (K)
    hash_width: float = 0.0  # 0 = estimate from the data
    second_hash_size: int = 99901  # Modulus of the second-level hash
    bucket_size: int = 500  # Soft per-bucket capacity
    seed: int = 0  # 0 = time-derived seed
    verbose: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range parameters."""
        for field_name in ("tables", "projections", "second_hash_size", "bucket_size"):
            value = getattr(self, field_name)
            if value <= 0:
                raise ConfigurationError(f"{field_name} must be > 0, got {value}")
        if not np.isfinite(self.hash_width) or self.hash_width < 0:
            raise ConfigurationError(f"hash_width must be >= 0, got {self.hash_width}")
        if self.seed < 0:
            raise ConfigurationError(f"seed must be >= 0, got {self.seed}")


def _log(verbose: bool, msg: str, *args: Any) -> None:
    logger.log(logging.INFO if verbose else logging.DEBUG, msg, *args)


def estimate_hash_width(
    points: NDArray[np.floating],
    rng: np.random.Generator,
    num_samples: int = HASH_WIDTH_SAMPLES,
) -> float:
    """Estimate a hash width as the mean distance between random point pairs.

    Pairs are drawn uniformly with replacement, so a pair may repeat or pair a
    point with itself.

    Args:
        points: Reference points of shape (n, dim).
        rng: Random generator consumed by the draw.
        num_samples: Number of pairs to average.

    Returns:
        Average Euclidean distance of the sampled pairs.

    Raises:
        NumericError: If the estimate is zero.
    """
    n = len(points)
    first = rng.integers(0, n, num_samples)
    second = rng.integers(0, n, num_samples)
    width = float(np.mean(np.linalg.norm(points[first] - points[second], axis=1)))

    if width <= 0.0:
        raise NumericError(
            "estimated hash width is 0; the sampled reference points are all "
            "identical, pass an explicit hash_width"
        )
    return width


class LSHIndex:
    """Multi-table E2LSH index over a fixed reference set.

    Vectors that are close in Euclidean distance are likely to share a bucket
    in at least one table. Instances are read-only after ``build``.
    """

    def __init__(
        self,
        reference: NDArray[np.float64],
        projections: NDArray[np.float64],
        offsets: NDArray[np.float64],
        second_hash_weights: NDArray[np.int64],
        hash_width: float,
        second_hash_size: int,
        bucket_size: int,
        seed: int,
        tables: list[dict[int, tuple[int, ...]]] | None = None,
    ) -> None:
        """Assemble an index from its drawn parameters.

        Use ``build`` instead unless restoring a saved index.

        Args:
            reference: Reference points of shape (n, dim).
            projections: Projection vectors of shape (num_tables, k, dim).
            offsets: Offsets of shape (num_tables, k), in [0, hash_width).
            second_hash_weights: Integer weights of shape (k,).
            hash_width: First-level bucket width.
            second_hash_size: Modulus of the second-level hash.
            bucket_size: Soft per-bucket capacity.
            seed: Seed the parameters were drawn with.
            tables: Populated tables; hashed from ``reference`` when None.
        """
        self.reference = reference
        self.projections = projections
        self.offsets = offsets
        self.second_hash_weights = second_hash_weights
        self.hash_width = float(hash_width)
        self.second_hash_size = int(second_hash_size)
        self.bucket_size = int(bucket_size)
        self.seed = int(seed)

        for array in (self.reference, self.projections, self.offsets, self.second_hash_weights):
            array.setflags(write=False)

        self.tables = tables if tables is not None else self._fill_tables()

    @classmethod
    def build(
        cls,
        reference: ArrayLike,
        config: LSHConfig | None = None,
        points_are_rows: bool = True,
    ) -> "LSHIndex":
        """Build an index from a reference point set.

        Args:
            reference: Reference points, one per row (or column).
            config: Build parameters (defaults when None).
            points_are_rows: Orientation of ``reference``.

        Returns:
            Populated LSHIndex.
        """
        config = config or LSHConfig()
        config.validate()
        points = as_point_set(reference, points_are_rows, name="reference")

        start = time.perf_counter()
        seed = resolve_seed(config.seed)
        rng = np.random.default_rng(seed)
        n, dim = points.shape

        hash_width = config.hash_width
        if hash_width == 0.0:
            hash_width = estimate_hash_width(points, rng)
            _log(config.verbose, "Estimated hash width: %.6g", hash_width)

        # Draw order is fixed: projections, offsets, second-level weights.
        projections = rng.standard_normal((config.tables, config.projections, dim))
        offsets = rng.uniform(0.0, hash_width, (config.tables, config.projections))
        second_hash_weights = rng.integers(
            0, config.second_hash_size, config.projections, dtype=np.int64
        )

        index = cls(
            reference=points,
            projections=projections,
            offsets=offsets,
            second_hash_weights=second_hash_weights,
            hash_width=hash_width,
            second_hash_size=config.second_hash_size,
            bucket_size=config.bucket_size,
            seed=seed,
            tables=[],
        )
        index.tables = index._fill_tables(show_progress=config.verbose)

        elapsed = (time.perf_counter() - start) * 1000
        _log(
            config.verbose,
            "Built LSH index: %d points, %d tables x %d projections in %.1f ms (seed=%d)",
            n, config.tables, config.projections, elapsed, seed,
        )

        overfull = index.overfull_buckets()
        if overfull:
            logger.warning(
                "%d bucket(s) hold more than bucket_size=%d points",
                overfull, config.bucket_size,
            )

        return index

    @property
    def num_tables(self) -> int:
        return self.projections.shape[0]

    @property
    def num_projections(self) -> int:
        return self.projections.shape[1]

    @property
    def dim(self) -> int:
        return self.projections.shape[2]

    def _fill_tables(self, show_progress: bool = False) -> list[dict[int, tuple[int, ...]]]:
        """Hash every reference point into every table."""
        iterator = range(self.num_tables)
        if show_progress:
            iterator = tqdm(iterator, desc="Hashing tables")

        tables = []
        for t in iterator:
            bucket_ids = self.bucket_ids(self.hash_points(self.reference, t))

            # Stable sort keeps point indices ascending inside each bucket.
            order = np.argsort(bucket_ids, kind="stable")
            boundaries = np.flatnonzero(np.diff(bucket_ids[order])) + 1

            table: dict[int, tuple[int, ...]] = {}
            for members in np.split(order, boundaries):
                table[int(bucket_ids[members[0]])] = tuple(members.tolist())
            tables.append(table)

        return tables

    def project(self, points: NDArray[np.floating], table_idx: int) -> NDArray[np.float64]:
        """Compute (a·v + b) / w for every point and hash function of a table.

        Args:
            points: Points of shape (n, dim).
            table_idx: Which hash table to use.

        Returns:
            Scaled projections of shape (n, k); their floor is the hash vector.
        """
        # Batch projection: (n, dim) @ (dim, k) = (n, k)
        proj = points @ self.projections[table_idx].T
        return (proj + self.offsets[table_idx]) / self.hash_width

    def hash_points(self, points: NDArray[np.floating], table_idx: int) -> NDArray[np.int64]:
        """Compute first-level hash vectors for points in one table.

        Args:
            points: Points of shape (n, dim).
            table_idx: Which hash table to use.

        Returns:
            Integer hash vectors of shape (n, k).
        """
        return np.floor(self.project(points, table_idx)).astype(np.int64)

    def bucket_ids(self, hash_vectors: NDArray[np.int64]) -> NDArray[np.int64]:
        """Compress hash vectors into bucket ids with the second-level hash.

        Args:
            hash_vectors: Integer hash vectors of shape (n, k) or (k,).

        Returns:
            Bucket ids in [0, second_hash_size), shape (n,) or scalar array.
        """
        return np.mod(hash_vectors @ self.second_hash_weights, self.second_hash_size)

    def overfull_buckets(self) -> int:
        """Count buckets, over all tables, holding more than bucket_size points."""
        return sum(
            1
            for table in self.tables
            for members in table.values()
            if len(members) > self.bucket_size
        )

    def check_dim(self, points: NDArray[np.floating], name: str = "queries") -> None:
        """Raise DataError if points do not match the index dimensionality."""
        if points.shape[1] != self.dim:
            raise DataError(
                f"{name} have dimensionality {points.shape[1]}, "
                f"index was built with {self.dim}"
            )

    def stats(self) -> dict[str, Any]:
        """Summarize table occupancy."""
        sizes = [len(members) for table in self.tables for members in table.values()]
        return {
            "reference_points": len(self.reference),
            "dim": self.dim,
            "tables": self.num_tables,
            "projections": self.num_projections,
            "hash_width": self.hash_width,
            "second_hash_size": self.second_hash_size,
            "bucket_size": self.bucket_size,
            "seed": self.seed,
            "buckets_per_table": [len(table) for table in self.tables],
            "mean_bucket_occupancy": float(np.mean(sizes)),
            "max_bucket_occupancy": int(np.max(sizes)),
            "overfull_buckets": self.overfull_buckets(),
        }

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        # Unpickled arrays come back writeable.
        for array in (self.reference, self.projections, self.offsets, self.second_hash_weights):
            array.setflags(write=False)

    def save(self, path: str) -> None:
        """Save the index (parameters, tables and reference set)."""
        with open(path, "wb") as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, path: str) -> "LSHIndex":
        """Load an index written by ``save``."""
        with open(path, "rb") as f:
            index = pickle.load(f)
        if not isinstance(index, cls):
            raise DataError(f"{path} does not contain an {cls.__name__}")
        return index


def build(
    reference: ArrayLike,
    config: LSHConfig | None = None,
    points_are_rows: bool = True,
) -> LSHIndex:
    """Build an LSH index; see ``LSHIndex.build``."""
    return LSHIndex.build(reference, config, points_are_rows)
