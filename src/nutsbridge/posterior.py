"""
Posterior summaries from a chain collection.

Selection policy
----------------
The recorded draws of all chains are concatenated in chain order
(``N = chain_count * sample_count`` rows). For ``n`` requested samples the
rows at indices ``floor(k * N / n)``, ``k = 0 .. n-1``, are taken. The same
rows are used for every parameter, so row ``k`` of a summary is one joint
draw. The policy involves no randomness: the same collection always gives
the same summary.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Dict, Iterator, List, Sequence

import numpy as np

from .chains import ChainCollection
from .errors import InsufficientDrawsError


class PosteriorSummary(Mapping):
    """
    Ordered mapping from parameter name to ``n`` representative values.

    Parameters
    ----------
    names : sequence of str
        Parameter names, in model order.
    samples : numpy.ndarray
        Array of shape ``(n, len(names))``.
    """

    def __init__(self, names: Sequence[str], samples: np.ndarray):
        samples = np.array(samples, dtype=np.float64)
        if samples.ndim != 2 or samples.shape[1] != len(names):
            raise ValueError(
                f"samples must have shape (n, {len(names)}), got {samples.shape}"
            )
        samples.setflags(write=False)
        self._names = list(names)
        self._samples = samples

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self._samples[:, self._names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"PosteriorSummary(names={self._names}, n={self.n})"

    @property
    def names(self) -> List[str]:
        return list(self._names)

    @property
    def n(self) -> int:
        return self._samples.shape[0]

    def as_array(self) -> np.ndarray:
        """Samples as an ``(n, dim)`` array, one joint draw per row."""
        return self._samples

    def means(self) -> Dict[str, float]:
        return {name: float(np.mean(self[name])) for name in self._names}

    def quantiles(self, q) -> Dict[str, np.ndarray]:
        """Per-parameter quantiles ``q`` (scalar or sequence in [0, 1])."""
        return {name: np.quantile(self[name], q) for name in self._names}

    def to_csv(self) -> str:
        """Header of parameter names, then one comma separated row per sample."""
        lines = [",".join(self._names)]
        for row in self._samples:
            lines.append(",".join(repr(float(v)) for v in row))
        return "\n".join(lines) + "\n"


def selection_indices(total: int, n: int) -> np.ndarray:
    """Evenly strided row indices ``floor(k * total / n)`` for ``k < n``."""
    return (np.arange(n, dtype=np.int64) * total) // n


def sample_posterior(collection: ChainCollection, n: int) -> PosteriorSummary:
    """
    Select ``n`` representative joint draws from a collection.

    Parameters
    ----------
    collection : ChainCollection
        Finished chains.
    n : int
        Number of samples per parameter.

    Returns
    -------
    PosteriorSummary

    Raises
    ------
    InsufficientDrawsError
        If ``n`` exceeds the total number of recorded draws.
    TypeError
        If ``n`` is not an integer.
    ValueError
        If ``n < 1``.
    """
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)):
        raise TypeError(f"n must be an integer, got {type(n).__name__}")
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")

    total = collection.total_draws
    if n > total:
        raise InsufficientDrawsError(n, total)

    draws = collection.combined_draws()
    return PosteriorSummary(collection.parameters, draws[selection_indices(total, n)])


def summarize(collection: ChainCollection, n: int) -> PosteriorSummary:
    """Public entry point, same as :func:`sample_posterior`."""
    return sample_posterior(collection, n)


__all__ = [
    "PosteriorSummary",
    "selection_indices",
    "sample_posterior",
    "summarize",
]
