"""
Chain orchestration: single chain runs and multi-chain collections.

A :class:`ChainRunner` drives one sampling engine through tuning and
recorded sampling and produces a :class:`ChainRun`. A
:class:`ChainCollection` runs ``chain_count`` independent chains, chain ``i``
seeded with ``seed + i`` and owning a private clone of the model, and
exposes per-parameter traces and extrema.

Failure policy: an ``EngineFatalError`` aborts its chain and is re-raised
tagged with the chain's seed. The first failing chain aborts the whole
collection run; no partial collection is returned.
"""
from __future__ import annotations

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import tqdm

from .config import NutsSettings, validate_run_arguments
from .engine import BlackJAXNutsEngine, DivergenceInfo, EngineFactory
from .errors import ChainCancelledError, DimensionMismatchError, EngineFatalError
from .models import LogDensityModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainRun:
    """
    Result of one chain.

    Attributes
    ----------
    seed : int
        Seed the chain was run with.
    draws : numpy.ndarray
        Recorded draws, shape ``(sample_count, dim)``, read-only.
    divergences : tuple of DivergenceInfo
        Divergences reported during recorded sampling, in draw order. The
        corresponding draws stay in ``draws``.
    num_tuning_divergences : int
        Divergences seen during tuning (not recorded).
    """
    seed: int
    draws: np.ndarray
    divergences: Tuple[DivergenceInfo, ...] = field(default_factory=tuple)
    num_tuning_divergences: int = 0

    def __post_init__(self):
        draws = np.array(self.draws, dtype=np.float64)
        if draws.ndim != 2:
            raise ValueError(f"draws must be 2D (sample_count, dim), got shape {draws.shape}")
        draws.setflags(write=False)
        object.__setattr__(self, "draws", draws)
        object.__setattr__(self, "divergences", tuple(self.divergences))

    def __len__(self) -> int:
        return self.draws.shape[0]

    @property
    def dim(self) -> int:
        return self.draws.shape[1]

    @property
    def num_divergences(self) -> int:
        return len(self.divergences)

    def trace(self, parameter_index: int) -> np.ndarray:
        """Values of one parameter in draw order, length ``sample_count``."""
        if not 0 <= parameter_index < self.dim:
            raise IndexError(f"Parameter index {parameter_index} out of range for dim {self.dim}")
        return self.draws[:, parameter_index]


class _CancelSignal:
    """Set when either the caller's event or the collection's abort event is set."""

    def __init__(self, *events):
        self._events = [e for e in events if e is not None]

    def is_set(self) -> bool:
        return any(e.is_set() for e in self._events)


class ChainRunner:
    """
    Drive one sampling engine through burn-in and recorded sampling.

    Parameters
    ----------
    engine_factory : callable, optional
        Zero-argument callable returning a fresh :class:`SamplingEngine`.
        Defaults to :class:`BlackJAXNutsEngine` built from ``settings``.
    settings : NutsSettings, optional
        Settings for the default engine. Ignored when ``engine_factory`` is
        given.
    progress : bool, default=False
        Show a tqdm progress bar per chain.
    """

    def __init__(self,
                 engine_factory: Optional[EngineFactory] = None,
                 settings: Optional[NutsSettings] = None,
                 progress: bool = False):
        if engine_factory is None:
            settings = (settings or NutsSettings()).validate()
            engine_factory = lambda: BlackJAXNutsEngine(settings)  # noqa: E731
        self.engine_factory = engine_factory
        self.progress = progress

    def run(self,
            model: LogDensityModel,
            seed: int,
            tuning_steps: int,
            sample_count: int,
            initial_position: Sequence[float],
            cancel_event=None) -> ChainRun:
        """
        Run one chain.

        Parameters
        ----------
        model : LogDensityModel
            Model owned by this chain.
        seed : int
            Engine seed.
        tuning_steps : int
            Number of discarded adaptation draws.
        sample_count : int
            Number of recorded draws.
        initial_position : sequence of float
            Starting point, length ``model.dim()``.
        cancel_event : threading.Event, optional
            Checked between draws; when set the chain stops.

        Returns
        -------
        ChainRun
            Exactly ``sample_count`` draws.

        Raises
        ------
        DimensionMismatchError
            Before any sampling, if the initial position has the wrong length.
        EngineFatalError
            If the engine fails; ``seed`` is set on the exception.
        ChainCancelledError
            If ``cancel_event`` is set during the run.
        """
        dim = model.dim()
        initial_position = np.asarray(initial_position, dtype=np.float64)
        if initial_position.shape != (dim,):
            raise DimensionMismatchError(dim, initial_position.size, "initial position")
        validate_run_arguments(1, tuning_steps, sample_count)

        logger.debug("Chain seed=%d: tuning=%d samples=%d", seed, tuning_steps, sample_count)

        trace = np.empty((sample_count, dim), dtype=np.float64)
        divergences: List[DivergenceInfo] = []
        tuning_divergences = 0
        total = tuning_steps + sample_count

        pbar = tqdm.tqdm(total=total, desc=f"Chain {seed}", unit=" draw", disable=not self.progress)
        try:
            engine = self.engine_factory()
            engine.initialize(model, seed, num_tune=tuning_steps)
            engine.set_position(initial_position)

            for i in range(total):
                if cancel_event is not None and cancel_event.is_set():
                    raise ChainCancelledError(seed, i)

                position, diagnostics = engine.draw()
                position = np.asarray(position, dtype=np.float64)
                if position.shape != (dim,):
                    raise EngineFatalError(f"Engine returned a draw of length {position.size}, expected {dim}")

                if i < tuning_steps:
                    if diagnostics.divergence is not None:
                        tuning_divergences += 1
                else:
                    trace[i - tuning_steps] = position
                    if diagnostics.divergence is not None:
                        divergences.append(diagnostics.divergence)
                pbar.update(1)
        except EngineFatalError as exc:
            if exc.seed is None:
                exc.seed = seed
            logger.error("Chain seed=%d aborted: %s", seed, exc)
            raise
        finally:
            pbar.close()

        if divergences:
            warnings.warn(
                f"Chain with seed {seed} had {len(divergences)} divergent transitions "
                f"out of {sample_count} draws",
                RuntimeWarning,
            )
        logger.debug("Chain seed=%d finished with %d divergences", seed, len(divergences))

        return ChainRun(
            seed=seed,
            draws=trace,
            divergences=tuple(divergences),
            num_tuning_divergences=tuning_divergences,
        )


class ChainCollection:
    """
    Immutable set of chains sharing dimension and parameter names.

    Build one with :meth:`run` (or :func:`run_chains`); the constructor only
    assembles already finished runs.
    """

    def __init__(self, chains: Sequence[ChainRun], dim: int, parameters: Sequence[str]):
        parameters = list(parameters)
        if len(parameters) != dim:
            raise DimensionMismatchError(dim, len(parameters), "parameter names")
        for chain in chains:
            if chain.dim != dim:
                raise DimensionMismatchError(dim, chain.dim, f"draws of chain seed {chain.seed}")
        lengths = {len(chain) for chain in chains}
        if len(lengths) > 1:
            raise ValueError(f"All chains must have the same number of draws, got {sorted(lengths)}")

        self._chains = tuple(chains)
        self._dim = dim
        self._parameters = tuple(parameters)

    @classmethod
    def run(cls,
            seed: int,
            model: LogDensityModel,
            chain_count: int,
            tuning: int,
            samples: int,
            initial_position: Sequence[float],
            *,
            engine_factory: Optional[EngineFactory] = None,
            settings: Optional[NutsSettings] = None,
            n_workers: int = 1,
            cancel_event=None,
            progress: bool = False) -> "ChainCollection":
        """
        Run ``chain_count`` independent chains.

        Chain ``i`` uses seed ``seed + i`` and its own ``model.clone()``;
        every chain starts from the same ``initial_position``.

        Parameters
        ----------
        seed : int
            Base seed.
        model : LogDensityModel
            Model to sample; never mutated, only cloned.
        chain_count, tuning, samples : int
            Number of chains, tuning draws and recorded draws per chain.
        initial_position : sequence of float
            Starting point shared by every chain.
        engine_factory : callable, optional
            See :class:`ChainRunner`.
        settings : NutsSettings, optional
            Settings for the default engine.
        n_workers : int, default=1
            Number of worker threads. ``1`` runs chains sequentially.
        cancel_event : threading.Event, optional
            Cooperative cancellation, checked between draws.
        progress : bool, default=False
            Show per-chain progress bars.

        Returns
        -------
        ChainCollection

        Raises
        ------
        DimensionMismatchError
            If ``initial_position`` does not match ``model.dim()``; raised
            before any chain starts.
        EngineFatalError
            From the first failing chain, tagged with its seed.
        ChainCancelledError
            If ``cancel_event`` was set.
        """
        validate_run_arguments(chain_count, tuning, samples, n_workers)
        dim = model.dim()
        initial_position = np.asarray(initial_position, dtype=np.float64)
        if initial_position.shape != (dim,):
            raise DimensionMismatchError(dim, initial_position.size, "initial position")

        runner = ChainRunner(engine_factory=engine_factory, settings=settings, progress=progress)
        abort = threading.Event()
        signal = _CancelSignal(abort, cancel_event)

        def run_one(index: int) -> ChainRun:
            return runner.run(model.clone(), seed + index, tuning, samples, initial_position, cancel_event=signal)

        logger.info(
            "Running %d chain(s): seed=%d tuning=%d samples=%d workers=%d",
            chain_count, seed, tuning, samples, n_workers,
        )

        if n_workers == 1 or chain_count <= 1:
            chains = [run_one(i) for i in range(chain_count)]
        else:
            chains = [None] * chain_count
            failure = None
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                futures = {executor.submit(run_one, i): i for i in range(chain_count)}
                for future in as_completed(futures):
                    if future.cancelled():
                        continue
                    try:
                        chains[futures[future]] = future.result()
                    except Exception as exc:
                        if failure is None:
                            failure = exc
                            abort.set()
                            for pending in futures:
                                pending.cancel()
            if failure is not None:
                raise failure

        collection = cls(chains, dim=dim, parameters=model.parameters())
        logger.info(
            "Finished %d chain(s) with %d divergent transitions",
            chain_count, collection.num_divergences,
        )
        return collection

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def chains(self) -> Tuple[ChainRun, ...]:
        return self._chains

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def parameters(self) -> List[str]:
        return list(self._parameters)

    @property
    def chain_count(self) -> int:
        return len(self._chains)

    @property
    def sample_count(self) -> int:
        return len(self._chains[0]) if self._chains else 0

    @property
    def seeds(self) -> List[int]:
        return [chain.seed for chain in self._chains]

    @property
    def total_draws(self) -> int:
        return self.chain_count * self.sample_count

    @property
    def num_divergences(self) -> int:
        return sum(chain.num_divergences for chain in self._chains)

    def __len__(self) -> int:
        return self.chain_count

    def parameter_index(self, name: str) -> int:
        """Position of parameter ``name`` in the draw vectors."""
        try:
            return self._parameters.index(name)
        except ValueError:
            raise KeyError(f"Unknown parameter '{name}'. Known: {list(self._parameters)}") from None

    # ------------------------------------------------------------------
    # Trace access
    # ------------------------------------------------------------------

    def _check_index(self, parameter_index: int) -> None:
        if not 0 <= parameter_index < self._dim:
            raise IndexError(f"Parameter index {parameter_index} out of range for dim {self._dim}")

    def trace(self, chain_index: int, parameter_index: int) -> np.ndarray:
        """Trace of one parameter in one chain."""
        if not 0 <= chain_index < len(self._chains):
            raise IndexError(f"Chain index {chain_index} out of range for {len(self._chains)} chains")
        self._check_index(parameter_index)
        return self._chains[chain_index].trace(parameter_index)

    def traces(self, parameter_index: int) -> List[np.ndarray]:
        """One trace per chain for a parameter, in chain order."""
        self._check_index(parameter_index)
        return [chain.trace(parameter_index) for chain in self._chains]

    def extrema(self, parameter_index: int) -> Tuple[float, float]:
        """
        ``(min, max)`` of a parameter across every chain's draws.

        An empty collection returns ``(inf, -inf)``.
        """
        self._check_index(parameter_index)
        lo, hi = np.inf, -np.inf
        for values in self.traces(parameter_index):
            if values.size:
                lo = min(lo, float(values.min()))
                hi = max(hi, float(values.max()))
        return lo, hi

    def stacked(self) -> np.ndarray:
        """All draws as an array of shape ``(chain_count, sample_count, dim)``."""
        if not self._chains:
            return np.empty((0, 0, self._dim))
        return np.stack([chain.draws for chain in self._chains])

    def combined_draws(self) -> np.ndarray:
        """Draws of all chains concatenated in chain order, shape ``(total_draws, dim)``."""
        if not self._chains:
            return np.empty((0, self._dim))
        return np.concatenate([chain.draws for chain in self._chains], axis=0)


def run_chains(seed: int,
               model: LogDensityModel,
               chain_count: int,
               tuning: int,
               samples: int,
               initial_position: Sequence[float],
               **kwargs) -> ChainCollection:
    """Run a collection of chains. See :meth:`ChainCollection.run`."""
    return ChainCollection.run(seed, model, chain_count, tuning, samples, initial_position, **kwargs)


__all__ = [
    "ChainRun",
    "ChainRunner",
    "ChainCollection",
    "run_chains",
]
