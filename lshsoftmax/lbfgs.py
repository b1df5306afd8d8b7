"""Limited-memory BFGS minimizer.

The inverse Hessian is never stored: its action on the gradient is rebuilt each
iteration from the last ``num_basis`` step/gradient-change pairs with the
two-loop recursion (Nocedal & Wright, Algorithm 7.4). Steps are accepted by a
backtracking line search on the Armijo sufficient-decrease condition.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from lshsoftmax.errors import ConfigurationError, NumericError

logger = logging.getLogger(__name__)

Objective = Callable[[NDArray[np.float64]], tuple[float, NDArray[np.float64]]]


@dataclass(frozen=True)
class LBFGSConfig:
    """Parameters for the L-BFGS minimizer."""

    num_basis: int = 10  # Stored (s, y) pairs
    max_iterations: int = 400  # 0 = no limit
    min_gradient_norm: float = 1e-6
    factr: float = 1e-15  # Relative objective decrease that counts as progress
    armijo_constant: float = 1e-4
    backtrack_factor: float = 0.5
    max_line_search_trials: int = 50
    min_step: float = 1e-20

    def validate(self) -> None:
        """Raise ConfigurationError for out-of-range parameters."""
        if self.num_basis <= 0:
            raise ConfigurationError(f"num_basis must be > 0, got {self.num_basis}")
        if self.max_iterations < 0:
            raise ConfigurationError(
                f"max_iterations must be >= 0, got {self.max_iterations}"
            )
        if not 0.0 < self.armijo_constant < 1.0:
            raise ConfigurationError("armijo_constant must be in (0, 1)")
        if not 0.0 < self.backtrack_factor < 1.0:
            raise ConfigurationError("backtrack_factor must be in (0, 1)")
        if self.max_line_search_trials <= 0:
            raise ConfigurationError("max_line_search_trials must be > 0")


@dataclass
class OptimizeResult:
    """Outcome of a minimization."""

    x: NDArray[np.float64]
    value: float
    gradient_norm: float
    iterations: int
    converged: bool
    reason: str


def _evaluate(function: Objective, x: NDArray[np.float64]) -> tuple[float, NDArray[np.float64]]:
    value, gradient = function(x)
    value = float(value)
    if not np.isfinite(value) or not np.all(np.isfinite(gradient)):
        raise NumericError("objective or gradient is not finite")
    return value, gradient


def _search_direction(
    gradient: NDArray[np.float64],
    history: deque[tuple[NDArray[np.float64], NDArray[np.float64], float]],
) -> NDArray[np.float64]:
    """Two-loop recursion: approximate -H^{-1} g from the stored pairs."""
    q = gradient.copy()
    alphas = []
    for s, y, rho in reversed(history):
        alpha = rho * np.dot(s, q)
        q -= alpha * y
        alphas.append(alpha)

    if history:
        s, y, _ = history[-1]
        q *= np.dot(s, y) / np.dot(y, y)

    for (s, y, rho), alpha in zip(history, reversed(alphas)):
        beta = rho * np.dot(y, q)
        q += (alpha - beta) * s

    return -q


def _line_search(
    function: Objective,
    x: NDArray[np.float64],
    value: float,
    gradient: NDArray[np.float64],
    direction: NDArray[np.float64],
    config: LBFGSConfig,
) -> Optional[tuple[NDArray[np.float64], float, NDArray[np.float64]]]:
    """Backtrack from a unit step until the Armijo condition holds."""
    slope = float(np.dot(gradient, direction))
    step = 1.0

    for _ in range(config.max_line_search_trials):
        candidate = x + step * direction
        new_value, new_gradient = function(candidate)
        new_value = float(new_value)

        if np.isfinite(new_value) and new_value <= value + config.armijo_constant * step * slope:
            if not np.all(np.isfinite(new_gradient)):
                raise NumericError("gradient is not finite at accepted step")
            return candidate, new_value, new_gradient

        step *= config.backtrack_factor
        if step < config.min_step:
            break

    return None


def minimize(
    function: Objective,
    x0: NDArray[np.floating],
    config: LBFGSConfig | None = None,
    callback: Callable[[int, float, float], None] | None = None,
) -> OptimizeResult:
    """Minimize a smooth function with L-BFGS.

    Args:
        function: Returns (value, gradient) at a point.
        x0: Starting point (flattened parameters).
        config: Optimizer parameters (defaults when None).
        callback: Called as callback(iteration, value, gradient_norm) after
            every accepted step.

    Returns:
        OptimizeResult for the best point reached.

    Raises:
        NumericError: If the objective or gradient becomes non-finite.
    """
    config = config or LBFGSConfig()
    config.validate()

    x = np.array(x0, dtype=np.float64).ravel()
    value, gradient = _evaluate(function, x)
    history: deque = deque(maxlen=config.num_basis)

    iteration = 0
    reason = "maximum iterations reached"
    converged = False

    while config.max_iterations == 0 or iteration < config.max_iterations:
        gradient_norm = float(np.linalg.norm(gradient))
        if gradient_norm < config.min_gradient_norm:
            converged, reason = True, "gradient norm below tolerance"
            break

        direction = _search_direction(gradient, history)
        if np.dot(direction, gradient) >= 0:
            # Curvature model gave an ascent direction; restart from steepest descent.
            history.clear()
            direction = -gradient

        accepted = _line_search(function, x, value, gradient, direction, config)
        if accepted is None and history:
            history.clear()
            direction = -gradient
            accepted = _line_search(function, x, value, gradient, direction, config)
        if accepted is None:
            reason = "line search failed"
            logger.warning(
                "L-BFGS line search failed at iteration %d; stopping optimization "
                "(objective=%.6g, gradient_norm=%.3g)",
                iteration, value, gradient_norm,
            )
            break

        new_x, new_value, new_gradient = accepted
        s = new_x - x
        y = new_gradient - gradient
        sy = float(np.dot(s, y))
        if sy > 0:
            history.append((s, y, 1.0 / sy))

        improvement = value - new_value
        x, value, gradient = new_x, new_value, new_gradient
        iteration += 1

        if callback is not None:
            callback(iteration, value, float(np.linalg.norm(gradient)))

        if improvement <= config.factr * max(abs(value), 1.0):
            converged, reason = True, "objective decrease below tolerance"
            break

    return OptimizeResult(
        x=x,
        value=value,
        gradient_norm=float(np.linalg.norm(gradient)),
        iterations=iteration,
        converged=converged,
        reason=reason,
    )
