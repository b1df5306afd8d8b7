"""Ingestion helpers for point sets, labels and random seeds.

Every engine entry point passes its matrices through ``as_point_set`` so that
orientation, dtype and validity are checked exactly once. The returned arrays
are read-only; models keep them without copying again.
"""

from __future__ import annotations

import time

import numpy as np
from numpy.typing import ArrayLike, NDArray

from lshsoftmax.errors import ConfigurationError, DataError


def as_point_set(
    data: ArrayLike,
    points_are_rows: bool = True,
    name: str = "points",
) -> NDArray[np.float64]:
    """Normalize a matrix of points to a read-only (N, D) float64 array.

    Args:
        data: Array-like matrix (list of lists, ndarray, pandas DataFrame).
        points_are_rows: True if each row is a point, False if each column is.
        name: Name used in error messages.

    Returns:
        C-contiguous, non-writeable array of shape (N, D).

    Raises:
        DataError: If the data is not a non-empty 2D matrix of finite reals.
    """
    if data is None:
        raise DataError(f"{name} must not be None")

    try:
        points = np.array(data, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise DataError(f"{name} must be a numeric matrix: {exc}") from exc

    if points.ndim != 2:
        raise DataError(f"{name} must be 2-dimensional, got {points.ndim} dimension(s)")

    if not points_are_rows:
        points = points.T

    n, dim = points.shape
    if n == 0:
        raise DataError(f"{name} is empty")
    if dim == 0:
        raise DataError(f"{name} has zero dimensions")
    if not np.all(np.isfinite(points)):
        raise DataError(f"{name} contains NaN or infinite values")

    points = np.ascontiguousarray(points)
    points.setflags(write=False)
    return points


def as_labels(
    labels: ArrayLike,
    n_points: int,
    num_classes: int = 0,
    name: str = "labels",
) -> tuple[NDArray[np.int64], int]:
    """Validate class labels against a point count and class count.

    Args:
        labels: One label per point; a 1D sequence or a single row/column matrix.
        n_points: Number of points the labels belong to.
        num_classes: Declared class count; 0 infers ``max(labels) + 1``.
        name: Name used in error messages.

    Returns:
        Tuple of (read-only int64 labels, number of classes).

    Raises:
        DataError: If labels are non-integral, negative, out of range, or the
            wrong length.
    """
    if labels is None:
        raise DataError(f"{name} must not be None")

    values = np.asarray(labels)
    if values.ndim == 2 and 1 in values.shape:
        values = values.reshape(-1)
    if values.ndim != 1:
        raise DataError(f"{name} must be a single row or column of class ids")
    if len(values) != n_points:
        raise DataError(
            f"{name} has {len(values)} entries but there are {n_points} points"
        )

    if values.dtype.kind == "f":
        if not np.all(np.isfinite(values)) or np.any(values != np.floor(values)):
            raise DataError(f"{name} must contain integral class ids")
    elif values.dtype.kind not in "iub":
        raise DataError(f"{name} must contain integral class ids, got {values.dtype}")

    values = values.astype(np.int64)
    if np.any(values < 0):
        raise DataError(f"{name} contains negative class ids")

    if num_classes < 0:
        raise ConfigurationError(f"number of classes must be >= 0, got {num_classes}")
    if num_classes == 0:
        num_classes = int(values.max()) + 1
    elif values.max() >= num_classes:
        raise DataError(
            f"{name} contains class id {int(values.max())}, "
            f"outside [0, {num_classes})"
        )

    values.setflags(write=False)
    return values, num_classes


def resolve_seed(seed: int | None) -> int:
    """Turn a user seed into the seed actually used.

    0 (or None) means a time-derived, non-reproducible seed; any positive value
    is used as given.
    """
    if seed is None or seed == 0:
        return int(time.time())
    if seed < 0:
        raise ConfigurationError(f"seed must be >= 0, got {seed}")
    return int(seed)
