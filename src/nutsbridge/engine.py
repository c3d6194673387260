"""
Sampling engine interface and the BlackJAX NUTS adapter.

The chain machinery only talks to a :class:`SamplingEngine`:

- ``initialize(model, seed, num_tune)`` binds a model and a seed,
- ``set_position(position)`` seeds the chain,
- ``draw()`` returns the next position and its :class:`Diagnostics`.

:class:`BlackJAXNutsEngine` is the default engine. Trajectory integration,
tree building and the adaptation primitives are BlackJAX's; this module only
bridges a host-side :class:`~nutsbridge.models.LogDensityModel` into JAX and
schedules adaptation over the tuning draws.

Bridging a host model
---------------------
The model's closed-form gradient is exposed to JAX with ``jax.pure_callback``
wrapped in ``jax.custom_vjp``, so ``jax.value_and_grad`` inside the NUTS
integrator costs one model evaluation per leapfrog step. A recoverable
``DomainError`` is reported as a log density of ``-inf``: the trajectory
diverges and the proposal is rejected, the chain continues.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional, Tuple

import numpy as np
import jax
import jax.numpy as jnp
from blackjax.mcmc import nuts
from blackjax.adaptation.step_size import dual_averaging_adaptation
from blackjax.adaptation.mass_matrix import mass_matrix_adaptation

from . import jax_config  # noqa: F401
from .config import NutsSettings
from .errors import DimensionMismatchError, DomainError, EngineFatalError
from .models import LogDensityModel

# Welford estimates from fewer draws than this are not trusted
MIN_MASS_MATRIX_WINDOW = 20


@dataclass(frozen=True)
class DivergenceInfo:
    """
    Record of one divergent transition.

    Attributes
    ----------
    start_position : numpy.ndarray
        Position the transition started from.
    end_position : numpy.ndarray
        Trajectory endpoint with the largest energy error.
    start_momentum : numpy.ndarray
        Momentum sampled at the start of the transition.
    start_gradient : numpy.ndarray
        Log-density gradient at the start position.
    energy_error : float
        Hamiltonian at ``end_position`` minus the starting Hamiltonian.
    start_index_in_trajectory : int
        Always 0, the start of the transition.
    end_index_in_trajectory : int
        Signed number of integration steps to ``end_position``; negative when
        it is the leftmost (backward) end of the trajectory.
    """
    start_position: np.ndarray
    end_position: np.ndarray
    start_momentum: np.ndarray
    start_gradient: np.ndarray
    energy_error: float
    start_index_in_trajectory: int
    end_index_in_trajectory: int


@dataclass(frozen=True)
class Diagnostics:
    """Per-draw statistics reported by an engine."""
    tuning: bool
    step_size: float
    acceptance_rate: float
    num_integration_steps: int
    energy: float
    logp: float
    divergence: Optional[DivergenceInfo] = None

    @property
    def diverging(self) -> bool:
        return self.divergence is not None


class SamplingEngine(ABC):
    """Interface between a chain runner and an MCMC transition kernel."""

    @abstractmethod
    def initialize(self, model: LogDensityModel, seed: int, num_tune: int = 0) -> None:
        """
        Bind ``model`` and ``seed``. The first ``num_tune`` draws after
        :meth:`set_position` are adaptation draws.
        """

    @abstractmethod
    def set_position(self, position) -> None:
        """
        Set the current state of the chain.

        Raises
        ------
        DimensionMismatchError
            If ``len(position) != model.dim()``.
        """

    @abstractmethod
    def draw(self) -> Tuple[np.ndarray, Diagnostics]:
        """
        Advance the chain by one transition.

        Raises
        ------
        EngineFatalError
            If the chain cannot continue.
        """


EngineFactory = Callable[[], SamplingEngine]


class BlackJAXNutsEngine(SamplingEngine):
    """
    NUTS engine backed by ``blackjax.mcmc.nuts``.

    Parameters
    ----------
    settings : NutsSettings, optional
        Step size, tree depth and adaptation settings.

    Notes
    -----
    Adaptation schedule over ``num_tune`` draws:

    - dual averaging of the step size on every tuning draw,
    - Welford accumulation of a diagonal inverse mass matrix inside
      ``settings.mass_matrix_window``; at the end of the window the new
      matrix is installed and dual averaging restarts,
    - after the last tuning draw the averaged step size is frozen.

    Randomness comes only from ``jax.random.PRNGKey(seed)`` folded with the
    draw index, so two engines with the same seed, model and start position
    produce identical draws.
    """

    def __init__(self, settings: Optional[NutsSettings] = None):
        self.settings = (settings or NutsSettings()).validate()
        self._model = None
        self._state = None
        self._callback_error = None

    # ------------------------------------------------------------------
    # Model bridge
    # ------------------------------------------------------------------

    def _make_logdensity_fn(self, model: LogDensityModel) -> Callable:
        dim = model.dim()
        result_shape = (
            jax.ShapeDtypeStruct((), jnp.float64),
            jax.ShapeDtypeStruct((dim,), jnp.float64),
        )

        def evaluate(position):
            grad = np.zeros(dim, dtype=np.float64)
            try:
                logp = model.logp_and_grad(np.asarray(position, dtype=np.float64), grad)
            except DomainError as exc:
                if not exc.recoverable:
                    self._callback_error = exc
                    return np.asarray(np.nan, dtype=np.float64), np.zeros(dim, dtype=np.float64)
                return np.asarray(-np.inf, dtype=np.float64), np.zeros(dim, dtype=np.float64)
            return np.asarray(logp, dtype=np.float64), grad

        @jax.custom_vjp
        def logdensity_fn(position):
            logp, _ = jax.pure_callback(evaluate, result_shape, position)
            return logp

        def logdensity_fwd(position):
            logp, grad = jax.pure_callback(evaluate, result_shape, position)
            return logp, grad

        def logdensity_bwd(grad, cotangent):
            return (cotangent * grad,)

        logdensity_fn.defvjp(logdensity_fwd, logdensity_bwd)
        return logdensity_fn

    def _raise_callback_error(self):
        if self._callback_error is not None:
            exc, self._callback_error = self._callback_error, None
            raise EngineFatalError(f"Unrecoverable model error: {exc}") from exc

    # ------------------------------------------------------------------
    # SamplingEngine interface
    # ------------------------------------------------------------------

    def initialize(self, model: LogDensityModel, seed: int, num_tune: int = 0) -> None:
        settings = self.settings
        self._model = model
        self._dim = model.dim()
        self._seed = int(seed)
        self._key = jax.random.PRNGKey(self._seed)
        self._num_tune = int(num_tune)
        self._draw_index = 0
        self._state = None
        self._callback_error = None

        self._logdensity_fn = self._make_logdensity_fn(model)
        kernel = nuts.build_kernel(divergence_threshold=settings.divergence_threshold)
        self._step = jax.jit(partial(
            kernel,
            logdensity_fn=self._logdensity_fn,
            max_num_doublings=settings.max_num_doublings,
        ))

        self._step_size = settings.initial_step_size
        self._inverse_mass_matrix = jnp.ones(self._dim, dtype=jnp.float64)

        self._da_init, self._da_update, self._da_final = dual_averaging_adaptation(
            settings.target_acceptance
        )
        self._da_state = self._da_init(self._step_size)

        start, end = settings.mass_matrix_window
        self._window = (int(start * self._num_tune), int(end * self._num_tune))
        self._adapt_mass_matrix = (
            settings.adapt_mass_matrix
            and self._window[1] - self._window[0] >= MIN_MASS_MATRIX_WINDOW
        )
        self._mm_init, self._mm_update, self._mm_final = mass_matrix_adaptation(is_diagonal_matrix=True)
        self._mm_state = self._mm_init(self._dim)

    def set_position(self, position) -> None:
        if self._model is None:
            raise EngineFatalError("Engine used before initialize()")

        position = np.asarray(position, dtype=np.float64)
        if position.shape != (self._dim,):
            raise DimensionMismatchError(self._dim, position.size, "initial position")

        state = nuts.init(jnp.asarray(position), self._logdensity_fn)
        self._raise_callback_error()
        if not np.isfinite(float(state.logdensity)):
            raise EngineFatalError(f"Log density is not finite at initial position {position.tolist()}")
        self._state = state

    def draw(self) -> Tuple[np.ndarray, Diagnostics]:
        if self._state is None:
            raise EngineFatalError("draw() called before set_position()")

        tuning = self._draw_index < self._num_tune
        key = jax.random.fold_in(self._key, self._draw_index)
        start = self._state
        step_size = self._step_size

        state, info = self._step(
            key, start, step_size=step_size, inverse_mass_matrix=self._inverse_mass_matrix
        )
        self._draw_index += 1
        self._raise_callback_error()

        position = np.array(state.position, dtype=np.float64)
        logp = float(state.logdensity)
        energy = float(info.energy)
        if not (np.isfinite(logp) and np.all(np.isfinite(position))) or np.isnan(energy):
            raise EngineFatalError(
                f"Non-finite state after draw {self._draw_index} (logp={logp}, energy={energy})"
            )
        self._state = state

        acceptance_rate = float(info.acceptance_rate)
        if not np.isfinite(acceptance_rate):
            acceptance_rate = 0.0

        divergence = None
        if bool(info.is_divergent):
            divergence = self._divergence_info(start, info)

        if tuning:
            self._adapt(state, acceptance_rate)

        diagnostics = Diagnostics(
            tuning=tuning,
            step_size=float(step_size),
            acceptance_rate=acceptance_rate,
            num_integration_steps=int(info.num_integration_steps),
            energy=energy,
            logp=logp,
            divergence=divergence,
        )
        return position, diagnostics

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _adapt(self, state, acceptance_rate: float) -> None:
        self._da_state = self._da_update(self._da_state, acceptance_rate)
        self._step_size = float(jnp.exp(self._da_state.log_step_size))

        window_start, window_end = self._window
        if self._adapt_mass_matrix:
            if window_start <= self._draw_index <= window_end:
                self._mm_state = self._mm_update(self._mm_state, state.position)
            if self._draw_index == window_end:
                self._mm_state = self._mm_final(self._mm_state)
                self._inverse_mass_matrix = self._mm_state.inverse_mass_matrix
                if window_end < self._num_tune:
                    self._da_state = self._da_init(self._step_size)

        if self._draw_index == self._num_tune:
            self._step_size = float(self._da_final(self._da_state))

    def _divergence_info(self, start, info) -> DivergenceInfo:
        start_position = np.array(start.position, dtype=np.float64)
        momentum = np.array(info.momentum, dtype=np.float64)
        inverse_mass = np.asarray(self._inverse_mass_matrix)

        def hamiltonian(logdensity, p):
            return -float(logdensity) + 0.5 * float(np.sum(inverse_mass * np.asarray(p) ** 2))

        start_energy = hamiltonian(start.logdensity, momentum)

        # the endpoint with the larger energy error is where the trajectory blew up
        ends = (info.trajectory_leftmost_state, info.trajectory_rightmost_state)
        errors = [hamiltonian(end.logdensity, end.momentum) - start_energy for end in ends]
        errors = [e if np.isfinite(e) else np.inf for e in errors]
        worst = int(np.argmax(errors))
        # backward integration ends at the leftmost state
        num_steps = int(info.num_integration_steps)
        end_index = -num_steps if worst == 0 else num_steps

        return DivergenceInfo(
            start_position=start_position,
            end_position=np.array(ends[worst].position, dtype=np.float64),
            start_momentum=momentum,
            start_gradient=np.array(start.logdensity_grad, dtype=np.float64),
            energy_error=errors[worst],
            start_index_in_trajectory=0,
            end_index_in_trajectory=end_index,
        )


__all__ = [
    "DivergenceInfo",
    "Diagnostics",
    "SamplingEngine",
    "EngineFactory",
    "BlackJAXNutsEngine",
]
