"""
Unit tests for log-density models: values, gradients and input validation.
"""

import numpy as np
import pytest

from nutsbridge.errors import DimensionMismatchError, DomainError, ObservationError
from nutsbridge.models import (
    MultivariateNormalModel,
    RegressionModel,
    check_gradient,
    numeric_gradient,
)


@pytest.fixture
def mvn_model():
    observed = np.array([[1.0, 2.0], [3.0, 0.0], [2.0, 1.0]])
    return MultivariateNormalModel(observed)


@pytest.fixture
def regression_model(regression_data):
    x, y = regression_data
    return RegressionModel(x, y)


class TestMultivariateNormalModel:

    def test_dim_and_parameters(self, mvn_model):
        assert mvn_model.dim() == 2
        assert mvn_model.parameters() == ['mu_0', 'mu_1']

    def test_logp_and_grad_values(self, mvn_model):
        grad = np.empty(2)
        logp = mvn_model.logp_and_grad([2.0, 1.0], grad)
        # residuals: (-1, 1), (1, -1), (0, 0)
        assert logp == pytest.approx(-2.0)
        np.testing.assert_allclose(grad, [0.0, 0.0])

        logp = mvn_model.logp_and_grad([0.0, 0.0], grad)
        assert logp == pytest.approx(-0.5 * (1 + 4 + 9 + 0 + 4 + 1))
        np.testing.assert_allclose(grad, [6.0, 3.0])

    @pytest.mark.parametrize("obs_seed, dim", [(0, 1), (1, 3), (2, 5)])
    def test_gradient_matches_finite_differences(self, obs_seed, dim):
        rng = np.random.default_rng(obs_seed)
        model = MultivariateNormalModel(rng.normal(size=(10, dim)))
        for position in rng.normal(scale=2.0, size=(5, dim)):
            assert check_gradient(model, position) < 1e-6

    def test_custom_parameter_names(self):
        model = MultivariateNormalModel(np.zeros((4, 2)), parameters=['x', 'y'])
        assert model.parameters() == ['x', 'y']

    def test_bad_observations(self):
        with pytest.raises(ObservationError):
            MultivariateNormalModel(np.zeros(3))
        with pytest.raises(ObservationError):
            MultivariateNormalModel(np.zeros((3, 2)), parameters=['only_one'])

    def test_dimension_mismatch(self, mvn_model):
        with pytest.raises(DimensionMismatchError):
            mvn_model.logp_and_grad([1.0, 2.0, 3.0], np.empty(2))
        with pytest.raises(DimensionMismatchError, match="gradient buffer"):
            mvn_model.logp_and_grad([1.0, 2.0], np.empty(3))

    def test_dimension_mismatch_is_value_error(self, mvn_model):
        with pytest.raises(ValueError):
            mvn_model.logp([1.0])


class TestRegressionModel:

    def test_dim_and_parameters(self, regression_model):
        assert regression_model.dim() == 3
        assert regression_model.parameters() == ['alpha', 'beta', 'sigma']

    def test_logp_matches_direct_sum(self, regression_model, regression_data):
        x, y = regression_data
        alpha, beta, sigma = 1.5, 2.5, 0.8
        mu = alpha + beta * x
        expected = np.sum(-0.5 * np.log(2 * np.pi * sigma**2) - 0.5 * ((y - mu) / sigma) ** 2)
        expected += -0.5 * np.log(2 * np.pi * 100.0) * 2
        expected += -0.5 * (alpha / 10.0) ** 2 - 0.5 * (beta / 10.0) ** 2
        assert regression_model.logp([alpha, beta, sigma]) == pytest.approx(expected)

    @pytest.mark.parametrize("obs_seed", [0, 1, 2])
    def test_gradient_matches_finite_differences(self, obs_seed):
        rng = np.random.default_rng(obs_seed)
        x = rng.uniform(-2.0, 2.0, size=8)
        y = rng.normal() + rng.normal() * x + rng.normal(size=8)
        model = RegressionModel(x, y)
        for _ in range(5):
            alpha, beta = rng.normal(size=2)
            sigma = rng.uniform(0.1, 5.0)
            assert check_gradient(model, [alpha, beta, sigma]) < 1e-5

    def test_gradient_matches_finite_differences_on_fixture(self, regression_model):
        for position in ([2.0, 3.0, 1.0], [0.0, 0.0, 5.0], [-3.0, 7.0, 0.3]):
            assert check_gradient(regression_model, position) < 1e-5

    def test_likelihood_gradient_formula(self):
        # flat priors leave only the likelihood terms
        x = np.array([1.0, 2.0])
        y = np.array([2.0, 5.0])
        model = RegressionModel(x, y, priors={'alpha': 'flat', 'beta': 'flat'})
        grad = np.empty(3)
        model.logp_and_grad([1.0, 1.0, 2.0], grad)
        r = y - 1.0 - x
        np.testing.assert_allclose(grad, [
            r.sum() / 4.0,
            (r * x).sum() / 4.0,
            np.sum(r**2 / 8.0 - 0.5),
        ])

    @pytest.mark.parametrize("sigma", [0.0, -1.0])
    def test_nonpositive_sigma_is_domain_error(self, regression_model, sigma):
        with pytest.raises(DomainError) as excinfo:
            regression_model.logp_and_grad([0.0, 0.0, sigma], np.empty(3))
        assert excinfo.value.recoverable

    def test_prior_override(self, regression_data):
        x, y = regression_data
        model = RegressionModel(x, y, priors={'sigma': ('uniform', 0.1, 10.0)})
        with pytest.raises(DomainError):
            model.logp([0.0, 0.0, 20.0])

    def test_evaluation_is_pure(self, regression_model):
        grad_a, grad_b = np.empty(3), np.empty(3)
        first = regression_model.logp_and_grad([1.0, 2.0, 1.5], grad_a)
        regression_model.logp([7.0, -2.0, 0.2])
        second = regression_model.logp_and_grad([1.0, 2.0, 1.5], grad_b)
        assert first == second
        np.testing.assert_array_equal(grad_a, grad_b)

    def test_clone_is_independent(self, regression_model):
        clone = regression_model.clone()
        assert clone is not regression_model
        assert clone._mu is not regression_model._mu
        assert clone.logp([1.0, 2.0, 1.0]) == regression_model.logp([1.0, 2.0, 1.0])

    @pytest.mark.parametrize("x, y", [
        ([1.0, 2.0], [1.0]),
        ([], []),
        ([[1.0]], [[1.0]]),
    ])
    def test_bad_observations(self, x, y):
        with pytest.raises(ObservationError):
            RegressionModel(x, y)


def test_numeric_gradient_quadratic(mvn_model):
    numeric = numeric_gradient(mvn_model, [0.0, 0.0])
    np.testing.assert_allclose(numeric, [6.0, 3.0], rtol=1e-6)


def test_mvn_gradient_vanishes_at_observation_mean():
    observed = np.random.default_rng(5).normal(size=(30, 3))
    model = MultivariateNormalModel(observed)
    grad = np.empty(3)
    model.logp_and_grad(observed.mean(axis=0), grad)
    np.testing.assert_allclose(grad, np.zeros(3), atol=1e-10)
