"""
Unit tests for the BlackJAX NUTS engine adapter.

Runs are kept short; they check the bridge (determinism, error mapping,
divergence records) rather than sampling quality.
"""

from types import SimpleNamespace

import numpy as np
import pytest

from nutsbridge.config import NutsSettings
from nutsbridge.engine import BlackJAXNutsEngine, Diagnostics
from nutsbridge.errors import DimensionMismatchError, DomainError, EngineFatalError
from nutsbridge.models import LogDensityModel, MultivariateNormalModel, RegressionModel


class AlwaysBrokenModel(LogDensityModel):
    """Raises a non-recoverable domain error everywhere."""

    def dim(self):
        return 1

    def parameters(self):
        return ['theta']

    def _logp_and_grad(self, position, grad):
        raise DomainError("model state corrupted", recoverable=False)


@pytest.fixture
def mvn_model():
    observed = np.random.default_rng(0).normal(loc=[1.0, -1.0], size=(20, 2))
    return MultivariateNormalModel(observed)


def run_engine(model, seed, start, num_tune=5, num_draws=5, settings=None):
    engine = BlackJAXNutsEngine(settings)
    engine.initialize(model, seed, num_tune=num_tune)
    engine.set_position(start)
    return [engine.draw() for _ in range(num_tune + num_draws)]


class TestDeterminism:

    def test_same_seed_same_draws(self, mvn_model):
        first = run_engine(mvn_model, 11, [0.0, 0.0])
        second = run_engine(mvn_model.clone(), 11, [0.0, 0.0])
        for (pos_a, _), (pos_b, _) in zip(first, second):
            np.testing.assert_array_equal(pos_a, pos_b)

    def test_different_seed_different_draws(self, mvn_model):
        first = run_engine(mvn_model, 11, [0.0, 0.0])
        second = run_engine(mvn_model, 12, [0.0, 0.0])
        assert any(not np.array_equal(a, b) for (a, _), (b, _) in zip(first, second))


class TestDiagnostics:

    def test_draw_output(self, mvn_model):
        draws = run_engine(mvn_model, 1, [0.0, 0.0], num_tune=3, num_draws=2)
        assert len(draws) == 5
        for i, (position, diagnostics) in enumerate(draws):
            assert position.shape == (2,)
            assert np.all(np.isfinite(position))
            assert isinstance(diagnostics, Diagnostics)
            assert diagnostics.tuning == (i < 3)
            assert diagnostics.step_size > 0
            assert 0.0 <= diagnostics.acceptance_rate <= 1.0
            assert diagnostics.num_integration_steps >= 1

    def test_step_size_frozen_after_tuning(self, mvn_model):
        draws = run_engine(mvn_model, 2, [0.0, 0.0], num_tune=10, num_draws=5)
        step_sizes = {d.step_size for _, d in draws[10:]}
        assert len(step_sizes) == 1

    def test_divergence_recorded(self):
        # posterior sd ~ 0.03 against a step size of 50
        model = MultivariateNormalModel(np.zeros((1000, 1)))
        settings = NutsSettings(initial_step_size=50.0)
        draws = run_engine(model, 0, [0.0], num_tune=0, num_draws=3, settings=settings)
        diverging = [d for _, d in draws if d.diverging]
        assert diverging
        info = diverging[0].divergence
        assert not np.isnan(info.energy_error)
        assert info.start_position.shape == (1,)
        assert info.end_position.shape == (1,)
        assert info.start_index_in_trajectory == 0
        assert abs(info.end_index_in_trajectory) >= 1

    @pytest.mark.parametrize("blown_up, sign", [("left", -1), ("right", 1)])
    def test_end_index_sign_follows_endpoint(self, blown_up, sign):
        engine = BlackJAXNutsEngine()
        engine._inverse_mass_matrix = np.ones(1)
        calm = SimpleNamespace(position=np.array([0.1]), momentum=np.array([1.0]), logdensity=-0.01)
        wild = SimpleNamespace(position=np.array([50.0]), momentum=np.array([1e4]), logdensity=-1e6)
        start = SimpleNamespace(position=np.array([0.0]), logdensity=0.0, logdensity_grad=np.array([0.0]))
        info = SimpleNamespace(
            momentum=np.array([1.0]),
            trajectory_leftmost_state=wild if blown_up == "left" else calm,
            trajectory_rightmost_state=calm if blown_up == "left" else wild,
            num_integration_steps=7,
        )
        record = engine._divergence_info(start, info)
        assert record.end_index_in_trajectory == sign * 7
        np.testing.assert_array_equal(record.end_position, [50.0])
        assert record.energy_error > 1e6


class TestErrors:

    def test_dimension_mismatch(self, mvn_model):
        engine = BlackJAXNutsEngine()
        engine.initialize(mvn_model, 0)
        with pytest.raises(DimensionMismatchError):
            engine.set_position([0.0, 0.0, 0.0])

    def test_draw_before_set_position(self, mvn_model):
        engine = BlackJAXNutsEngine()
        engine.initialize(mvn_model, 0)
        with pytest.raises(EngineFatalError):
            engine.draw()

    def test_start_outside_support(self):
        model = RegressionModel([1.0, 2.0], [1.0, 2.0])
        engine = BlackJAXNutsEngine()
        engine.initialize(model, 0)
        with pytest.raises(EngineFatalError, match="not finite"):
            engine.set_position([0.0, 1.0, -1.0])

    def test_unrecoverable_domain_error(self):
        engine = BlackJAXNutsEngine()
        engine.initialize(AlwaysBrokenModel(), 0)
        with pytest.raises(EngineFatalError, match="Unrecoverable") as excinfo:
            engine.set_position([0.5])
        assert isinstance(excinfo.value.__cause__, DomainError)

    def test_recoverable_domain_error_keeps_chain_in_support(self, regression_data):
        # start close to the sigma > 0 boundary; rejected proposals are fine
        model = RegressionModel(*regression_data)
        settings = NutsSettings(initial_step_size=1.0)
        draws = run_engine(model, 3, [2.0, 3.0, 0.05], num_tune=0, num_draws=10, settings=settings)
        assert all(position[2] > 0 for position, _ in draws)

    def test_invalid_settings(self):
        with pytest.raises(ValueError, match="target_acceptance"):
            BlackJAXNutsEngine(NutsSettings(target_acceptance=1.5))
