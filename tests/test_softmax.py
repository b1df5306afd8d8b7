"""Tests for lshsoftmax/softmax.py."""

import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from lshsoftmax.errors import ConfigurationError, DataError
from lshsoftmax.softmax import (
    SoftmaxConfig,
    SoftmaxModel,
    SoftmaxObjective,
    evaluate,
    predict,
    train,
)


class TestSoftmaxObjective:
    """Tests for the regularized objective."""

    @pytest.fixture
    def objective(self):
        rng = np.random.default_rng(5)
        points = rng.standard_normal((30, 4))
        labels = rng.integers(0, 3, 30)
        return SoftmaxObjective(points, labels, 3, lambda_=0.1, fit_intercept=True)

    def test_shape_includes_intercept(self, objective):
        assert objective.shape == (3, 5)

    def test_uniform_weights_value(self):
        """Zero weights give log(C) loss and no penalty."""
        points = np.ones((4, 2))
        labels = np.array([0, 1, 2, 0])
        objective = SoftmaxObjective(points, labels, 3, lambda_=1.0, fit_intercept=False)
        value, _ = objective(np.zeros(6))
        assert value == pytest.approx(np.log(3))

    def test_penalty_includes_intercept(self):
        """The L2 term covers the intercept column too."""
        points = np.zeros((2, 1))
        labels = np.array([0, 1])
        objective = SoftmaxObjective(points, labels, 2, lambda_=2.0, fit_intercept=True)
        weights = np.array([[0.0, 1.0], [0.0, 1.0]])  # equal logits, intercepts only
        value, _ = objective(weights.ravel())
        assert value == pytest.approx(np.log(2) + 0.5 * 2.0 * 2.0)

    def test_gradient_matches_finite_differences(self, objective):
        rng = np.random.default_rng(6)
        w = rng.standard_normal(15) * 0.3
        _, gradient = objective(w)

        eps = 1e-6
        numeric = np.zeros_like(w)
        for i in range(len(w)):
            step = np.zeros_like(w)
            step[i] = eps
            numeric[i] = (objective(w + step)[0] - objective(w - step)[0]) / (2 * eps)

        np.testing.assert_allclose(gradient, numeric, rtol=1e-4, atol=1e-7)

    def test_stable_for_large_logits(self, objective):
        value, gradient = objective(np.full(15, 500.0))
        assert np.isfinite(value)
        assert np.all(np.isfinite(gradient))


class TestTrain:
    """Tests for train."""

    def test_separable_two_class(self, two_class_data):
        """Linearly separable data is fit to at least 99% accuracy."""
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(max_iterations=400, seed=1))
        assert model.evaluate(points, labels) >= 0.99

    def test_multiclass_blobs(self, clustered_points):
        points, labels = clustered_points
        model = train(points, labels, SoftmaxConfig(seed=1))
        assert model.num_classes == 5
        assert model.evaluate(points, labels) >= 0.95

    def test_agrees_with_sklearn(self, clustered_points):
        """Predictions match a reference multinomial logistic regression."""
        points, labels = clustered_points
        model = train(points, labels, SoftmaxConfig(seed=2))
        reference = LogisticRegression(max_iter=1000).fit(points, labels)

        agreement = np.mean(model.predict(points) == reference.predict(points))
        assert agreement >= 0.97

    def test_weight_shape_with_intercept(self, two_class_data):
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(seed=1))
        assert model.weights.shape == (2, 3)
        assert model.dim == 2
        assert model.fit_intercept

    def test_weight_shape_without_intercept(self, two_class_data):
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(fit_intercept=False, seed=1))
        assert model.weights.shape == (2, 2)
        assert model.dim == 2

    def test_declared_num_classes(self, two_class_data):
        """Unused classes still get weight rows."""
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(num_classes=4, seed=1))
        assert model.weights.shape == (4, 3)
        assert set(model.predict(points).tolist()) <= {0, 1}

    def test_deterministic_with_seed(self, two_class_data):
        points, labels = two_class_data
        a = train(points, labels, SoftmaxConfig(seed=3))
        b = train(points, labels, SoftmaxConfig(seed=3))
        np.testing.assert_array_equal(a.weights, b.weights)

    def test_column_major_training(self, two_class_data):
        points, labels = two_class_data
        a = train(points, labels, SoftmaxConfig(seed=3))
        b = train(points.T, labels, SoftmaxConfig(seed=3), points_are_rows=False)
        np.testing.assert_array_equal(a.weights, b.weights)

    def test_regularization_shrinks_weights(self, two_class_data):
        points, labels = two_class_data
        weak = train(points, labels, SoftmaxConfig(lambda_=1e-4, seed=1))
        strong = train(points, labels, SoftmaxConfig(lambda_=1.0, seed=1))
        assert np.linalg.norm(strong.weights) < np.linalg.norm(weak.weights)

    def test_iteration_limit(self, clustered_points):
        points, labels = clustered_points
        model = train(points, labels, SoftmaxConfig(max_iterations=2, seed=1))
        assert model.iterations <= 2

    def test_records_diagnostics(self, two_class_data):
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(seed=1))
        assert model.iterations > 0
        assert np.isfinite(model.objective)

    def test_weights_read_only(self, two_class_data):
        points, labels = two_class_data
        model = train(points, labels, SoftmaxConfig(seed=1))
        assert not model.weights.flags.writeable

    def test_label_out_of_range_raises(self, two_class_data):
        points, labels = two_class_data
        bad = labels.copy()
        bad[0] = 2
        with pytest.raises(DataError):
            train(points, bad, SoftmaxConfig(num_classes=2, seed=1))

    def test_negative_label_raises(self, two_class_data):
        points, labels = two_class_data
        bad = labels.copy()
        bad[0] = -1
        with pytest.raises(DataError):
            train(points, bad, SoftmaxConfig(seed=1))

    def test_label_count_mismatch_raises(self, two_class_data):
        points, labels = two_class_data
        with pytest.raises(DataError):
            train(points, labels[:-1], SoftmaxConfig(seed=1))

    def test_single_class_raises(self):
        with pytest.raises(DataError):
            train(np.ones((3, 2)), [0, 0, 0], SoftmaxConfig(seed=1))

    @pytest.mark.parametrize(
        "kwargs",
        [{"lambda_": -1.0}, {"max_iterations": -1}, {"num_classes": -2}, {"seed": -1}],
    )
    def test_invalid_config_raises(self, two_class_data, kwargs):
        points, labels = two_class_data
        with pytest.raises(ConfigurationError):
            train(points, labels, SoftmaxConfig(**kwargs))


class TestPredict:
    """Tests for prediction and evaluation."""

    @pytest.fixture
    def model(self, two_class_data):
        points, labels = two_class_data
        return train(points, labels, SoftmaxConfig(seed=1))

    def test_predict_labels(self, model):
        predictions = predict(model, np.array([[-3.0, -3.0], [3.0, 3.0]]))
        np.testing.assert_array_equal(predictions, [0, 1])
        assert predictions.dtype == np.int64

    def test_probabilities_sum_to_one(self, model):
        probs = model.predict_proba(np.array([[-3.0, -3.0], [0.1, 0.2], [3.0, 3.0]]))
        assert probs.shape == (3, 2)
        np.testing.assert_allclose(probs.sum(axis=1), 1.0)

    def test_evaluate_accuracy(self, model):
        test = np.array([[-3.0, -3.0], [3.0, 3.0], [3.0, 3.0], [-3.0, -3.0]])
        assert evaluate(model, test, [0, 1, 0, 0]) == 0.75

    def test_column_major_test(self, model):
        test = np.array([[-3.0, -3.0], [3.0, 3.0]])
        np.testing.assert_array_equal(
            model.predict(test), model.predict(test.T, points_are_rows=False)
        )

    def test_dimension_mismatch_raises(self, model):
        """Wider or narrower test points are rejected, never truncated."""
        with pytest.raises(DataError):
            model.predict(np.zeros((2, 3)))
        with pytest.raises(DataError):
            model.predict(np.zeros((2, 1)))

    def test_unknown_test_label_raises(self, model):
        """A class id the model was not trained for is an error, not a miss."""
        test = np.array([[-3.0, -3.0], [3.0, 3.0]])
        with pytest.raises(DataError):
            model.evaluate(test, [0, 2])

    def test_accuracy_of_given_predictions(self, model):
        assert model.accuracy(np.array([0, 1, 1, 0]), [0, 1, 0, 0]) == 0.75

    def test_test_label_count_mismatch_raises(self, model):
        with pytest.raises(DataError):
            model.evaluate(np.zeros((2, 2)), [0])

    def test_round_trip_identical_outputs(self, model, two_class_data, tmp_path):
        """A saved and reloaded model predicts exactly like the original."""
        points, _ = two_class_data
        path = tmp_path / "model.pkl"
        model.save(str(path))
        loaded = SoftmaxModel.load(str(path))

        np.testing.assert_array_equal(loaded.predict(points), model.predict(points))
        np.testing.assert_array_equal(loaded.predict_proba(points), model.predict_proba(points))
        assert not loaded.weights.flags.writeable
