"""Pytest fixtures for lshsoftmax tests."""

import numpy as np
import pytest

from lshsoftmax.lsh import LSHConfig, LSHIndex


@pytest.fixture
def reference_points():
    """Generate random reference points."""
    rng = np.random.default_rng(42)
    return rng.standard_normal((300, 8))


@pytest.fixture
def query_points():
    """Generate random query points with the same distribution."""
    rng = np.random.default_rng(7)
    return rng.standard_normal((40, 8))


@pytest.fixture
def clustered_points():
    """Generate 5 well-separated Gaussian clusters with their labels."""
    rng = np.random.default_rng(3)
    centers = rng.uniform(-10.0, 10.0, (5, 6))
    labels = rng.integers(0, 5, 500)
    points = centers[labels] + 0.5 * rng.standard_normal((500, 6))
    return points, labels


@pytest.fixture
def two_class_data():
    """Generate a linearly separable 2-class dataset."""
    rng = np.random.default_rng(11)
    negative = rng.normal(-3.0, 0.5, (100, 2))
    positive = rng.normal(3.0, 0.5, (100, 2))
    points = np.vstack([negative, positive])
    labels = np.array([0] * 100 + [1] * 100)
    return points, labels


@pytest.fixture
def lsh_index(reference_points):
    """Build a seeded LSH index over the reference points."""
    return LSHIndex.build(reference_points, LSHConfig(tables=20, projections=4, seed=1))
