"""Error types raised by the LSH and softmax engines."""

from __future__ import annotations


class LSHSoftmaxError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(LSHSoftmaxError, ValueError):
    """Invalid, missing or mutually exclusive options."""


class DataError(LSHSoftmaxError, ValueError):
    """Input data with the wrong shape, size, values or labels."""


class NumericError(LSHSoftmaxError, ArithmeticError):
    """A computation became degenerate (zero hash width, non-finite objective)."""
