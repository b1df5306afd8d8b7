"""Keyword-argument entry points for the LSH and softmax engines.

Each function accepts optional named fields (None = use the default), matrices
in either orientation, and an opaque model from a previous call, and returns
plain arrays plus the model. Orientation is normalized here, once, before the
engines see the data.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from lshsoftmax import search
from lshsoftmax.errors import ConfigurationError
from lshsoftmax.lsh import LSHConfig, LSHIndex
from lshsoftmax.softmax import SoftmaxConfig, SoftmaxModel, train

logger = logging.getLogger(__name__)


def _given(**fields: Any) -> dict[str, Any]:
    return {name: value for name, value in fields.items() if value is not None}


def _orient(matrix: NDArray, points_are_rows: bool) -> NDArray:
    """Engines emit (k, n_queries); callers with row points get (n_queries, k)."""
    return matrix.T.copy() if points_are_rows else matrix


def lsh(
    *,
    bucket_size: int | None = None,
    hash_width: float | None = None,
    input_model: LSHIndex | None = None,
    k: int | None = None,
    num_probes: int | None = None,
    projections: int | None = None,
    query: ArrayLike | None = None,
    reference: ArrayLike | None = None,
    second_hash_size: int | None = None,
    seed: int | None = None,
    tables: int | None = None,
    true_neighbors: ArrayLike | None = None,
    verbose: bool = False,
    points_are_rows: bool = True,
) -> tuple[NDArray[np.float64] | None, NDArray[np.int64] | None, LSHIndex]:
    """Build (or reuse) an LSH index and optionally run a k-ANN search.

    With only ``reference`` the index is built and returned. With ``k`` the
    index is searched with ``query``, or with the reference set itself (each
    point excluded from its own neighbors) when no query is given.

    Args:
        bucket_size: Soft per-bucket capacity.
        hash_width: First-level hash width; 0 or None estimates it.
        input_model: Index from an earlier call, instead of ``reference``.
        k: Number of neighbors to find.
        num_probes: Extra buckets probed per table.
        projections: Hash functions per table.
        query: Query points.
        reference: Reference points to build an index over.
        second_hash_size: Modulus of the second-level hash.
        seed: Random seed; 0 or None is time-derived.
        tables: Number of hash tables.
        true_neighbors: Exact neighbors of the queries; recall is logged.
        verbose: Log parameters, timing and recall at INFO.
        points_are_rows: True if every matrix row is a point.

    Returns:
        Tuple of (distances, neighbors, model). Distances and neighbors are
        (n_queries, k) for row points, (k, n_queries) otherwise, and None when
        no search ran.

    Raises:
        ConfigurationError: For missing or contradictory options.
    """
    level = logging.INFO if verbose else logging.DEBUG
    build_options = _given(
        tables=tables,
        projections=projections,
        hash_width=hash_width,
        second_hash_size=second_hash_size,
        bucket_size=bucket_size,
        seed=seed,
    )

    if input_model is not None and reference is not None:
        raise ConfigurationError(
            "only one of reference or input_model may be given; "
            "a loaded index cannot be rebuilt"
        )
    if input_model is None and reference is None:
        raise ConfigurationError("one of reference or input_model must be given")
    if k is None:
        for name, value in (("query", query), ("num_probes", num_probes),
                            ("true_neighbors", true_neighbors)):
            if value is not None:
                raise ConfigurationError(f"{name} requires k")

    if input_model is not None:
        if not isinstance(input_model, LSHIndex):
            raise ConfigurationError(
                f"input_model must be an LSHIndex, got {type(input_model).__name__}"
            )
        if build_options:
            logger.warning(
                "Ignoring build options %s because input_model was given",
                sorted(build_options),
            )
        index = input_model
    else:
        config = LSHConfig(verbose=verbose, **build_options)
        logger.log(level, "LSH parameters: %s", config)
        index = LSHIndex.build(reference, config, points_are_rows)

    if k is None:
        return None, None, index

    result = search.query(
        index,
        query,
        k=k,
        num_probes=num_probes or 0,
        points_are_rows=points_are_rows,
        verbose=verbose,
    )

    if true_neighbors is not None:
        truth = np.asarray(true_neighbors)
        if points_are_rows:
            truth = truth.T
        recall = search.compute_recall(result.neighbors, truth)
        logger.log(level, "Recall: %.4f", recall)

    return (
        _orient(result.distances, points_are_rows),
        _orient(result.neighbors, points_are_rows),
        index,
    )


def softmax_regression(
    *,
    input_model: SoftmaxModel | None = None,
    labels: ArrayLike | None = None,
    lambda_: float | None = None,
    max_iterations: int | None = None,
    no_intercept: bool | None = None,
    number_of_classes: int | None = None,
    test: ArrayLike | None = None,
    test_labels: ArrayLike | None = None,
    training: ArrayLike | None = None,
    seed: int | None = None,
    verbose: bool = False,
    points_are_rows: bool = True,
) -> tuple[SoftmaxModel, NDArray[np.int64] | None]:
    """Train a softmax regression model (or reuse one) and optionally predict.

    A loaded model cannot be trained further, so ``training`` and
    ``input_model`` are mutually exclusive.

    Args:
        input_model: Model from an earlier call, instead of ``training``.
        labels: Class id per training point.
        lambda_: L2 regularization constant.
        max_iterations: L-BFGS iteration limit; 0 = no limit.
        no_intercept: Do not fit an intercept term.
        number_of_classes: Class count; 0 or None infers it from the labels.
        test: Points to predict.
        test_labels: Labels of ``test``; accuracy is logged.
        training: Training points.
        seed: Random seed for the initial weights; 0 or None is time-derived.
        verbose: Log parameters, progress and accuracy at INFO.
        points_are_rows: True if every matrix row is a point.

    Returns:
        Tuple of (model, predictions); predictions is None without ``test``.

    Raises:
        ConfigurationError: For missing or contradictory options.
    """
    level = logging.INFO if verbose else logging.DEBUG
    train_options = _given(
        num_classes=number_of_classes,
        lambda_=lambda_,
        max_iterations=max_iterations,
        seed=seed,
    )
    if no_intercept is not None:
        train_options["fit_intercept"] = not no_intercept

    if training is not None and input_model is not None:
        raise ConfigurationError(
            "only one of training or input_model may be given; "
            "a loaded model cannot be trained further"
        )
    if training is None and input_model is None:
        raise ConfigurationError("one of training or input_model must be given")
    if training is not None and labels is None:
        raise ConfigurationError("training requires labels")
    if test_labels is not None and test is None:
        raise ConfigurationError("test_labels requires test")

    if input_model is not None:
        if not isinstance(input_model, SoftmaxModel):
            raise ConfigurationError(
                f"input_model must be a SoftmaxModel, got {type(input_model).__name__}"
            )
        ignored = sorted(train_options) + (["labels"] if labels is not None else [])
        if ignored:
            logger.warning("Ignoring training options %s because input_model was given", ignored)
        model = input_model
    else:
        config = SoftmaxConfig(verbose=verbose, **train_options)
        logger.log(level, "Softmax regression parameters: %s", config)
        model = train(training, labels, config, points_are_rows)

    if test is None:
        return model, None

    predictions = model.predict(test, points_are_rows)
    if test_labels is not None:
        accuracy = model.accuracy(predictions, test_labels)
        logger.log(
            level, "Accuracy: %.2f%% of %d test points", 100 * accuracy, len(predictions)
        )

    return model, predictions
