"""
Log-density models with closed-form gradients.

A model is the sampling target: it knows its dimension, the ordered names of
its parameters, and how to evaluate the unnormalized log density together
with its gradient at a position. Models are constructed once from already
parsed observations and are treated as immutable by the chain machinery.

Evaluation may use internal scratch buffers (``RegressionModel`` keeps one
for the linear predictor), but must be externally pure: the same position
always yields the same output. Because of the scratch state, every chain
works on its own :meth:`LogDensityModel.clone`.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import List, Mapping, Optional, Sequence

import numpy as np

from .errors import DimensionMismatchError, DomainError, ObservationError
from .priors import ParsedPrior, PriorSpec, log_pdf_normal, parse_priors


class LogDensityModel(ABC):
    """
    Interface every sampling target implements.

    Subclasses implement :meth:`dim`, :meth:`parameters` and
    :meth:`_logp_and_grad`; input validation is done here.
    """

    @abstractmethod
    def dim(self) -> int:
        """Number of parameters."""

    @abstractmethod
    def parameters(self) -> List[str]:
        """Ordered parameter names, ``len(parameters()) == dim()``."""

    @abstractmethod
    def _logp_and_grad(self, position: np.ndarray, grad: np.ndarray) -> float:
        """Evaluate with already validated ``position`` and ``grad``."""

    def logp_and_grad(self, position: Sequence[float], grad: np.ndarray) -> float:
        """
        Evaluate the log density and write its gradient into ``grad``.

        Parameters
        ----------
        position : sequence of float
            Point in parameter space, length ``dim()``.
        grad : numpy.ndarray
            Caller-owned float buffer of length ``dim()``; overwritten.

        Returns
        -------
        float
            Unnormalized log density.

        Raises
        ------
        DimensionMismatchError
            If ``position`` or ``grad`` has the wrong length.
        DomainError
            If ``position`` is outside the support of the model.
        """
        position = np.asarray(position, dtype=np.float64)
        dim = self.dim()
        if position.shape != (dim,):
            raise DimensionMismatchError(dim, position.size, "position")
        if grad.shape != (dim,):
            raise DimensionMismatchError(dim, grad.size, "gradient buffer")
        return float(self._logp_and_grad(position, grad))

    def logp(self, position: Sequence[float]) -> float:
        """Log density only."""
        return self.logp_and_grad(position, np.empty(self.dim()))

    def clone(self) -> "LogDensityModel":
        """Independent deep copy, including any scratch state."""
        return copy.deepcopy(self)


class MultivariateNormalModel(LogDensityModel):
    """
    Mean of a unit-variance multivariate normal, flat prior on the mean.

    logp(mu) = -1/2 * sum_i ||obs_i - mu||^2
    grad[j]  = sum_i (obs_i[j] - mu[j])

    Parameters
    ----------
    observed : array_like, shape (n_obs, dim)
        Observation rows.
    parameters : sequence of str, optional
        Parameter names, defaults to ``mu_0 .. mu_{dim-1}``.
    """

    SIGMA = 1.0

    def __init__(self, observed, parameters: Optional[Sequence[str]] = None):
        observed = np.asarray(observed, dtype=np.float64)
        if observed.ndim != 2 or observed.shape[1] == 0:
            raise ObservationError(
                f"Observations must be a non-empty 2D array (n_obs, dim), got shape {observed.shape}"
            )
        self.observed = observed
        self._dim = observed.shape[1]

        if parameters is None:
            parameters = [f"mu_{i}" for i in range(self._dim)]
        parameters = list(parameters)
        if len(parameters) != self._dim:
            raise ObservationError(
                f"Got {len(parameters)} parameter names for {self._dim} observation columns"
            )
        self._parameters = parameters

    def dim(self) -> int:
        return self._dim

    def parameters(self) -> List[str]:
        return list(self._parameters)

    def _logp_and_grad(self, position, grad):
        diff = self.observed - position
        grad[:] = diff.sum(axis=0) / self.SIGMA**2
        return -0.5 * float(np.sum(diff**2)) / self.SIGMA**2


class RegressionModel(LogDensityModel):
    """
    Bayesian simple linear regression ``y = alpha + beta * x + noise``.

    The noise is ``Normal(0, sigma)``. Default priors are
    ``alpha, beta ~ Normal(0, 10)`` and an improper flat prior on
    ``sigma > 0``; the log density is the sum of the Gaussian log likelihood
    and the log priors. Gradients, with ``r_i = y_i - alpha - beta * x_i``:

    - d/d alpha = sum(r_i) / sigma^2 + d log prior(alpha)
    - d/d beta  = sum(r_i * x_i) / sigma^2 + d log prior(beta)
    - d/d sigma = sum(r_i^2 / sigma^3 - 1 / sigma) + d log prior(sigma)

    Parameters
    ----------
    x, y : array_like
        Predictor and response, same non-zero length.
    priors : dict, optional
        Overrides for the default priors, keyed by parameter name.
    """

    ALPHA, BETA, SIGMA = 0, 1, 2
    PARAMETERS = ("alpha", "beta", "sigma")
    DEFAULT_PRIORS = {
        "alpha": ("normal", 0.0, 10.0),
        "beta": ("normal", 0.0, 10.0),
        "sigma": ("flat_positive",),
    }

    def __init__(self, x, y, priors: Optional[Mapping[str, PriorSpec]] = None):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.ndim != 1 or y.ndim != 1:
            raise ObservationError("x and y must be one-dimensional")
        if x.shape != y.shape:
            raise ObservationError(f"x and y must have the same length, got {x.size} and {y.size}")
        if x.size == 0:
            raise ObservationError("x and y must have at least one element")

        self.x = x
        self.y = y
        self.priors: Mapping[str, ParsedPrior] = parse_priors(
            self.PARAMETERS, priors or {}, defaults=self.DEFAULT_PRIORS
        )
        # scratch space for the linear predictor
        self._mu = np.empty_like(x)

    def dim(self) -> int:
        return 3

    def parameters(self) -> List[str]:
        return list(self.PARAMETERS)

    def _logp_and_grad(self, position, grad):
        alpha, beta, sigma = position[self.ALPHA], position[self.BETA], position[self.SIGMA]

        if sigma <= 0.0:
            raise DomainError(f"sigma must be positive, got {sigma}")

        log_prior = 0.0
        for name, value in zip(self.PARAMETERS, (alpha, beta, sigma)):
            log_prior += self.priors[name].logpdf(value)

        np.multiply(self.x, beta, out=self._mu)
        self._mu += alpha
        residual = self.y - self._mu

        logp = float(np.sum(log_pdf_normal(self.y, self._mu, sigma))) + log_prior

        sigma_sq = sigma**2
        grad[self.ALPHA] = residual.sum() / sigma_sq + self.priors["alpha"].grad(alpha)
        grad[self.BETA] = (residual * self.x).sum() / sigma_sq + self.priors["beta"].grad(beta)
        grad[self.SIGMA] = (
            np.sum(residual**2 / sigma**3 - 1.0 / sigma) + self.priors["sigma"].grad(sigma)
        )
        return logp


def numeric_gradient(model: LogDensityModel, position: Sequence[float], eps: float = 1e-6) -> np.ndarray:
    """Central finite-difference gradient of ``model.logp`` at ``position``."""
    position = np.asarray(position, dtype=np.float64)
    grad = np.empty(model.dim())
    for j in range(model.dim()):
        step = np.zeros_like(position)
        step[j] = eps * max(1.0, abs(position[j]))
        grad[j] = (model.logp(position + step) - model.logp(position - step)) / (2.0 * step[j])
    return grad


def check_gradient(model: LogDensityModel, position: Sequence[float], eps: float = 1e-6) -> float:
    """
    Compare the analytic gradient against :func:`numeric_gradient`.

    Returns
    -------
    float
        Largest absolute difference between the two, relative to
        ``max(1, |analytic|)`` per component.
    """
    analytic = np.empty(model.dim())
    model.logp_and_grad(position, analytic)
    numeric = numeric_gradient(model, position, eps=eps)
    return float(np.max(np.abs(analytic - numeric) / np.maximum(1.0, np.abs(analytic))))


__all__ = [
    "LogDensityModel",
    "MultivariateNormalModel",
    "RegressionModel",
    "numeric_gradient",
    "check_gradient",
]
