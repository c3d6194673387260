"""
Pytest configuration and shared fixtures for nutsbridge tests.
"""
import matplotlib
import numpy as np
import pytest

from nutsbridge.engine import Diagnostics, DivergenceInfo, SamplingEngine
from nutsbridge.errors import DimensionMismatchError, EngineFatalError

matplotlib.use("Agg")


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def regression_data():
    """
    Noisy observations of ``y = 2 + 3 x`` on ``x = 1..5``.

    The noise is drawn with a fixed seed and then projected off the design
    matrix ``[1, x]``, so the least squares fit recovers the intercept and
    slope exactly. With only five points, raw unit noise moves the least
    squares intercept by more than 0.5 for many seeds; the projection keeps
    a closeness check against the true values about the sampler and not
    about the draw of noise. ``test_posterior_mean_tracks_least_squares``
    covers raw noise.
    """
    x = np.arange(1.0, 6.0)
    noise = np.random.default_rng(1234).normal(0.0, 1.0, size=x.size)
    design = np.column_stack([np.ones_like(x), x])
    coef, *_ = np.linalg.lstsq(design, noise, rcond=None)
    noise = noise - design @ coef
    return x, 2.0 + 3.0 * x + noise


class ScriptedEngine(SamplingEngine):
    """
    Engine that draws standard normals around its start position.

    Every ``diverge_every``-th draw (counting from 1) reports a divergence.
    Seeds and models seen by ``initialize`` are appended to the shared
    ``log`` list.
    """

    def __init__(self, log=None, diverge_every=0, fail_seed=None, fail_at=0, on_draw=None):
        self.log = log if log is not None else []
        self.diverge_every = diverge_every
        self.fail_seed = fail_seed
        self.fail_at = fail_at
        self.on_draw = on_draw

    def initialize(self, model, seed, num_tune=0):
        self.model = model
        self.seed = seed
        self.num_tune = num_tune
        self.rng = np.random.default_rng(seed)
        self.count = 0
        self.log.append((seed, model))

    def set_position(self, position):
        position = np.asarray(position, dtype=np.float64)
        if position.shape != (self.model.dim(),):
            raise DimensionMismatchError(self.model.dim(), position.size)
        self.position = position

    def draw(self):
        self.count += 1
        if self.on_draw is not None:
            self.on_draw(self)
        if self.seed == self.fail_seed and self.count > self.fail_at:
            raise EngineFatalError(f"scripted failure at draw {self.count}")

        start = self.position
        self.position = start + self.rng.normal(size=start.size)
        divergence = None
        if self.diverge_every and self.count % self.diverge_every == 0:
            divergence = DivergenceInfo(
                start_position=start,
                end_position=self.position,
                start_momentum=np.zeros_like(start),
                start_gradient=np.zeros_like(start),
                energy_error=2000.0,
                start_index_in_trajectory=0,
                end_index_in_trajectory=1,
            )
        diagnostics = Diagnostics(
            tuning=self.count <= self.num_tune,
            step_size=0.1,
            acceptance_rate=1.0,
            num_integration_steps=1,
            energy=0.0,
            logp=0.0,
            divergence=divergence,
        )
        return self.position.copy(), diagnostics


@pytest.fixture
def scripted_engine():
    """Factory building ``ScriptedEngine`` factories sharing one log."""
    def make(**kwargs):
        log = kwargs.pop("log", [])

        def factory():
            return ScriptedEngine(log=log, **kwargs)

        factory.log = log
        return factory
    return make
