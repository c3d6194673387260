"""
Turning already-parsed observations into a regression problem.

Raw input decoding (station CSV exports, dates) happens upstream; this
module receives numeric rows. Malformed input raises
:class:`~nutsbridge.errors.ObservationError` instead of aborting.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ObservationError
from .models import RegressionModel

# lower bound for the guessed noise scale, keeps the start inside the support
MIN_SIGMA_GUESS = 1e-3


@dataclass(frozen=True)
class RegressionProblem:
    """
    A regression model ready to sample.

    Attributes
    ----------
    model : RegressionModel
        Model built on the (possibly centered) predictor.
    initial_position : numpy.ndarray
        Starting guess ``[alpha, beta, sigma]``.
    x_offset : float
        Value subtracted from ``x``; add it back to map posterior lines onto
        the original axis.
    names : list of str
        Column names of the observations, if known.
    """
    model: RegressionModel
    initial_position: np.ndarray
    x_offset: float = 0.0
    names: Optional[List[str]] = None


def parse_observations(text: str, delimiter: str = ",") -> Tuple[np.ndarray, List[str]]:
    """
    Parse a header line and numeric rows.

    Parameters
    ----------
    text : str
        First non-empty line holds the column names, each following
        non-empty line one observation.
    delimiter : str, default=','

    Returns
    -------
    rows : numpy.ndarray
        Shape ``(n_obs, n_columns)``.
    names : list of str

    Raises
    ------
    ObservationError
        On an empty input, a row with the wrong number of columns, or a
        non-numeric value.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise ObservationError("No header line found")

    names = [name.strip() for name in lines[0].split(delimiter)]
    rows = []
    for lineno, line in enumerate(lines[1:], start=2):
        fields = [field.strip() for field in line.split(delimiter)]
        if len(fields) != len(names):
            raise ObservationError(
                f"Line {lineno}: expected {len(names)} columns, got {len(fields)}"
            )
        try:
            rows.append([float(field) for field in fields])
        except ValueError as exc:
            raise ObservationError(f"Line {lineno}: {exc}") from exc

    return np.asarray(rows, dtype=np.float64).reshape(len(rows), len(names)), names


def initial_guess(x: Sequence[float], y: Sequence[float]) -> np.ndarray:
    """
    Crude starting point for ``[alpha, beta, sigma]``.

    ``alpha`` is the mean of ``y`` and ``beta`` the ratio of sums (zero when
    ``sum(x)`` vanishes, as it does for centered data). ``sigma`` is the root
    of the summed squared residuals divided by the number of points, floored
    at ``MIN_SIGMA_GUESS``.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    alpha = float(np.mean(y))
    sum_x = float(np.sum(x))
    beta = float(np.sum(y)) / sum_x if abs(sum_x) > 1e-12 else 0.0
    sigma = float(np.sqrt(np.sum((y - alpha - beta * x) ** 2))) / y.size
    return np.array([alpha, beta, max(sigma, MIN_SIGMA_GUESS)])


def regression_from_observations(rows, center: bool = True, names: Optional[Sequence[str]] = None,
                                 priors=None) -> RegressionProblem:
    """
    Build a :class:`RegressionProblem` from two-column ``(x, y)`` rows.

    Parameters
    ----------
    rows : array_like, shape (n_obs, 2)
        Observations, predictor first.
    center : bool, default=True
        Subtract the mean of ``x`` so the intercept sits in the middle of
        the data, which decorrelates ``alpha`` and ``beta``.
    names : sequence of str, optional
        Column names, carried along for reporting.
    priors : dict, optional
        Prior overrides for :class:`RegressionModel`.

    Raises
    ------
    ObservationError
        If ``rows`` is not a non-empty two-column table.
    """
    rows = np.asarray(rows, dtype=np.float64)
    if rows.ndim != 2 or rows.shape[1] != 2:
        raise ObservationError(f"Expected two-column (x, y) rows, got shape {rows.shape}")
    if rows.shape[0] == 0:
        raise ObservationError("x and y must have at least one element")

    x, y = rows[:, 0], rows[:, 1]
    x_offset = float(np.mean(x)) if center else 0.0
    x = x - x_offset

    model = RegressionModel(x, y, priors=priors)
    return RegressionProblem(
        model=model,
        initial_position=initial_guess(x, y),
        x_offset=x_offset,
        names=list(names) if names is not None else None,
    )


__all__ = [
    "RegressionProblem",
    "parse_observations",
    "initial_guess",
    "regression_from_observations",
]
