"""Softmax (multinomial logistic) regression with L2 regularization.

P(y = c | x) = exp(w_c·x̃) / sum_j exp(w_j·x̃), where x̃ is x with a trailing 1
appended when the model has an intercept. The intercept is therefore the last
column of the weight matrix.

Training minimizes

    J(W) = -(1/N) sum_n log P(y_n | x_n) + (lambda / 2) ||W||²

with L-BFGS. The penalty covers every weight, intercept column included.
"""

from __future__ import annotations

import logging
import pickle
import time
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from lshsoftmax.errors import ConfigurationError, DataError
from lshsoftmax.lbfgs import LBFGSConfig, minimize
from lshsoftmax.points import as_labels, as_point_set, resolve_seed

logger = logging.getLogger(__name__)

# Scale of the Gaussian initial weights.
INITIAL_WEIGHT_SCALE = 0.005


@dataclass(frozen=True)
class SoftmaxConfig:
    """Parameters for training a softmax regression model."""

    num_classes: int = 0  # 0 = infer as max(labels) + 1
    lambda_: float = 1e-4  # L2 regularization constant
    max_iterations: int = 400  # 0 = no limit
    fit_intercept: bool = True
    seed: int = 0  # 0 = time-derived seed
    verbose: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range parameters."""
        if self.num_classes < 0:
            raise ConfigurationError(f"num_classes must be >= 0, got {self.num_classes}")
        if not np.isfinite(self.lambda_) or self.lambda_ < 0:
            raise ConfigurationError(f"lambda must be >= 0, got {self.lambda_}")
        if self.max_iterations < 0:
            raise ConfigurationError(
                f"max_iterations must be >= 0, got {self.max_iterations}"
            )
        if self.seed < 0:
            raise ConfigurationError(f"seed must be >= 0, got {self.seed}")


def _with_intercept(points: NDArray[np.float64], fit_intercept: bool) -> NDArray[np.float64]:
    if not fit_intercept:
        return points
    return np.hstack([points, np.ones((len(points), 1))])


def _log_softmax(logits: NDArray[np.float64]) -> NDArray[np.float64]:
    shifted = logits - logits.max(axis=1, keepdims=True)
    return shifted - np.log(np.exp(shifted).sum(axis=1, keepdims=True))


class SoftmaxObjective:
    """Regularized negative log-likelihood and its gradient.

    Called with flattened (num_classes, n_features) weights, as L-BFGS expects.
    """

    def __init__(
        self,
        points: NDArray[np.float64],
        labels: NDArray[np.int64],
        num_classes: int,
        lambda_: float,
        fit_intercept: bool,
    ) -> None:
        self.data = _with_intercept(points, fit_intercept)  # (n, n_features)
        self.labels = labels
        self.num_classes = num_classes
        self.lambda_ = lambda_

        self.ground_truth = np.zeros((len(labels), num_classes))
        self.ground_truth[np.arange(len(labels)), labels] = 1.0

    @property
    def shape(self) -> tuple[int, int]:
        return self.num_classes, self.data.shape[1]

    def __call__(self, flat_weights: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
        weights = flat_weights.reshape(self.shape)
        n = len(self.data)

        log_probs = _log_softmax(self.data @ weights.T)  # (n, num_classes)
        log_likelihood = log_probs[np.arange(n), self.labels].sum() / n
        value = -log_likelihood + 0.5 * self.lambda_ * np.sum(weights ** 2)

        probs = np.exp(log_probs)
        gradient = (probs - self.ground_truth).T @ self.data / n + self.lambda_ * weights

        return float(value), gradient.ravel()


class SoftmaxModel:
    """Trained softmax regression model. Read-only after training."""

    def __init__(
        self,
        weights: NDArray[np.float64],
        fit_intercept: bool = True,
        lambda_: float = 1e-4,
        iterations: int = 0,
        converged: bool = False,
        objective: float = float("nan"),
    ) -> None:
        """
        Args:
            weights: Weight matrix (num_classes, dim [+ 1 intercept column]).
            fit_intercept: Whether the last weight column is an intercept.
            lambda_: Regularization constant used in training.
            iterations: Optimizer iterations taken.
            converged: Whether the optimizer met a convergence criterion.
            objective: Final objective value.
        """
        self.weights = np.array(weights, dtype=np.float64)
        self.weights.setflags(write=False)
        self.fit_intercept = fit_intercept
        self.lambda_ = lambda_
        self.iterations = iterations
        self.converged = converged
        self.objective = objective

    @property
    def num_classes(self) -> int:
        return self.weights.shape[0]

    @property
    def dim(self) -> int:
        """Dimensionality of the points the model was trained on."""
        return self.weights.shape[1] - (1 if self.fit_intercept else 0)

    def _check_points(self, test: ArrayLike, points_are_rows: bool) -> NDArray[np.float64]:
        points = as_point_set(test, points_are_rows, name="test")
        if points.shape[1] != self.dim:
            raise DataError(
                f"test points have dimensionality {points.shape[1]}, "
                f"model was trained with {self.dim}"
            )
        return points

    def predict_proba(self, test: ArrayLike, points_are_rows: bool = True) -> NDArray[np.float64]:
        """Class probabilities of shape (n, num_classes)."""
        points = self._check_points(test, points_are_rows)
        logits = _with_intercept(points, self.fit_intercept) @ self.weights.T
        return np.exp(_log_softmax(logits))

    def predict(self, test: ArrayLike, points_are_rows: bool = True) -> NDArray[np.int64]:
        """Predicted class id per point (argmax of the class scores)."""
        points = self._check_points(test, points_are_rows)
        logits = _with_intercept(points, self.fit_intercept) @ self.weights.T
        return np.argmax(logits, axis=1).astype(np.int64)

    def evaluate(
        self,
        test: ArrayLike,
        test_labels: ArrayLike,
        points_are_rows: bool = True,
    ) -> float:
        """Fraction of test points whose predicted class equals the label."""
        return self.accuracy(self.predict(test, points_are_rows), test_labels)

    def accuracy(self, predictions: NDArray[np.int64], test_labels: ArrayLike) -> float:
        """Fraction of predictions equal to the labels.

        Raises:
            DataError: If a label is outside [0, num_classes) or the counts differ.
        """
        labels, _ = as_labels(
            test_labels, len(predictions), self.num_classes, name="test labels"
        )
        return float(np.mean(predictions == labels))

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self.weights.setflags(write=False)

    def save(self, path: str) -> None:
        """Save the model."""
        with open(path, "wb") as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, path: str) -> "SoftmaxModel":
        """Load a model written by ``save``."""
        with open(path, "rb") as f:
            model = pickle.load(f)
        if not isinstance(model, cls):
            raise DataError(f"{path} does not contain a {cls.__name__}")
        return model


def train(
    training: ArrayLike,
    labels: ArrayLike,
    config: SoftmaxConfig | None = None,
    points_are_rows: bool = True,
) -> SoftmaxModel:
    """Fit a softmax regression model.

    Args:
        training: Training points, one per row (or column).
        labels: Class id per training point, in [0, num_classes).
        config: Training parameters (defaults when None).
        points_are_rows: Orientation of ``training``.

    Returns:
        Trained SoftmaxModel.

    Raises:
        ConfigurationError: If a parameter is out of range.
        DataError: If labels are out of range or do not match the points, or
            fewer than two classes are present.
    """
    config = config or SoftmaxConfig()
    config.validate()

    points = as_point_set(training, points_are_rows, name="training")
    labels, num_classes = as_labels(labels, len(points), config.num_classes)
    if num_classes < 2:
        raise DataError(f"softmax regression needs at least 2 classes, got {num_classes}")

    start = time.perf_counter()
    seed = resolve_seed(config.seed)
    rng = np.random.default_rng(seed)

    objective = SoftmaxObjective(
        points, labels, num_classes, config.lambda_, config.fit_intercept
    )
    initial = INITIAL_WEIGHT_SCALE * rng.standard_normal(objective.shape)

    level = logging.INFO if config.verbose else logging.DEBUG

    def report(iteration: int, value: float, gradient_norm: float) -> None:
        if iteration % 10 == 0:
            logger.log(
                level, "  L-BFGS iteration %d: objective=%.6g, gradient_norm=%.3g",
                iteration, value, gradient_norm,
            )

    logger.log(
        level, "Training softmax regression: points=%d, dim=%d, classes=%d",
        len(points), points.shape[1], num_classes,
    )
    result = minimize(
        objective,
        initial,
        LBFGSConfig(max_iterations=config.max_iterations),
        callback=report,
    )

    model = SoftmaxModel(
        weights=result.x.reshape(objective.shape),
        fit_intercept=config.fit_intercept,
        lambda_=config.lambda_,
        iterations=result.iterations,
        converged=result.converged,
        objective=result.value,
    )

    elapsed = (time.perf_counter() - start) * 1000
    logger.log(
        level,
        "Training finished after %d iterations (%s) in %.1f ms: objective=%.6g",
        result.iterations, result.reason, elapsed, result.value,
    )
    return model


def predict(model: SoftmaxModel, test: ArrayLike, points_are_rows: bool = True) -> NDArray[np.int64]:
    """Predict class ids; see ``SoftmaxModel.predict``."""
    return model.predict(test, points_are_rows)


def evaluate(
    model: SoftmaxModel,
    test: ArrayLike,
    test_labels: ArrayLike,
    points_are_rows: bool = True,
) -> float:
    """Classification accuracy; see ``SoftmaxModel.evaluate``."""
    return model.evaluate(test, test_labels, points_are_rows)
