"""
Prior parsing utilities for nutsbridge models.

This module turns compact prior specifications into ``ParsedPrior`` objects
that can evaluate their log density and its derivative in closed form, which
is what gradient based samplers need.

Supported specifications
------------------------
- Tuple: ``('normal', mean, sigma)``, ``('uniform', min, max)``,
  ``('flat',)``, ``('flat_positive',)``
- Dict: ``{'dist': 'normal', 'mean': ..., 'sigma': ...}``,
  ``{'dist': 'uniform', 'min': ..., 'max': ...}``, ``{'dist': 'flat'}``
- String: ``'flat'`` or ``'flat_positive'``
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import DomainError


# Type definitions
ParamName = str
PriorSpec = Union[
    Mapping[str, Any],
    Tuple[str, float, float],
    Tuple[str],
    str,
]

_ALIASES = {
    'gaussian': 'normal',
    'halfflat': 'flat_positive',
    'positive': 'flat_positive',
}


class PriorParsingError(ValueError):
    """Raised when a prior specification cannot be parsed."""
    pass


@dataclass(frozen=True)
class ParsedPrior:
    """
    Unified representation of a parsed prior distribution.

    Attributes
    ----------
    dist_type : str
        One of 'normal', 'uniform', 'flat', 'flat_positive'.
    bounds : tuple of float, optional
        (min, max) support for 'uniform'.
    mean : float, optional
        Mean for 'normal'.
    sigma : float, optional
        Standard deviation for 'normal'.
    """
    dist_type: str
    bounds: Optional[Tuple[float, float]] = None
    mean: Optional[float] = None
    sigma: Optional[float] = None

    def logpdf(self, x: float) -> float:
        """Log density at ``x`` (up to a constant for the flat priors)."""
        if self.dist_type == 'normal':
            return log_pdf_normal(x, self.mean, self.sigma)
        if self.dist_type == 'uniform':
            a, b = self.bounds
            if not a <= x <= b:
                raise DomainError(f"Value {x} outside uniform support [{a}, {b}]")
            return -float(np.log(b - a))
        if self.dist_type == 'flat_positive' and x <= 0.0:
            raise DomainError(f"Value {x} outside positive support")
        return 0.0

    def grad(self, x: float) -> float:
        """Derivative of :meth:`logpdf` with respect to ``x``."""
        if self.dist_type == 'normal':
            return -(x - self.mean) / self.sigma**2
        return 0.0


def log_pdf_normal(x, mu, sigma):
    """Normal log density, vectorized over ``x`` and ``mu``."""
    a = -0.5 * np.log(2.0 * np.pi * sigma**2)
    b = -0.5 * ((x - mu) / sigma) ** 2
    return a + b


def _normal(name: str, mean: float, sigma: float) -> ParsedPrior:
    if not sigma > 0:
        raise PriorParsingError(f"Normal prior for '{name}' requires sigma > 0, got {sigma}")
    return ParsedPrior(dist_type='normal', mean=float(mean), sigma=float(sigma))


def _uniform(name: str, a: float, b: float) -> ParsedPrior:
    if not a < b:
        raise PriorParsingError(f"Uniform prior for '{name}' requires min < max, got ({a}, {b})")
    return ParsedPrior(dist_type='uniform', bounds=(float(a), float(b)))


def parse_prior(name: str, spec: PriorSpec) -> ParsedPrior:
    """
    Parse a single prior specification into a ParsedPrior object.

    Parameters
    ----------
    name : str
        Parameter name, used in error messages.
    spec : PriorSpec
        Prior specification (tuple, dict or string form).

    Returns
    -------
    ParsedPrior

    Raises
    ------
    PriorParsingError
        If the specification cannot be parsed.
    """
    if isinstance(spec, ParsedPrior):
        return spec

    if isinstance(spec, str):
        spec = (spec,)

    if isinstance(spec, tuple):
        if len(spec) < 1 or not isinstance(spec[0], str):
            raise PriorParsingError(f"Tuple prior for '{name}' must start with a distribution name")

        dist_type = spec[0].lower()
        dist_type = _ALIASES.get(dist_type, dist_type)

        if dist_type == 'normal':
            if len(spec) != 3:
                raise PriorParsingError(f"Normal prior for '{name}' requires (dist, mean, sigma)")
            return _normal(name, spec[1], spec[2])

        elif dist_type == 'uniform':
            if len(spec) != 3:
                raise PriorParsingError(f"Uniform prior for '{name}' requires (dist, min, max)")
            return _uniform(name, spec[1], spec[2])

        elif dist_type in ('flat', 'flat_positive'):
            if len(spec) != 1:
                raise PriorParsingError(f"Flat prior for '{name}' takes no arguments")
            return ParsedPrior(dist_type=dist_type)

        else:
            raise PriorParsingError(f"Unknown prior type '{dist_type}' for parameter '{name}'")

    if isinstance(spec, Mapping):
        dist_type = str(spec.get('dist', '')).lower()
        dist_type = _ALIASES.get(dist_type, dist_type)

        try:
            if dist_type == 'normal':
                return _normal(name, spec.get('mean', 0.0), spec.get('sigma', spec.get('std', 1.0)))
            elif dist_type == 'uniform':
                return _uniform(name, spec['min'], spec['max'])
        except KeyError as exc:
            raise PriorParsingError(f"Prior for '{name}' is missing key {exc}") from exc

        if dist_type in ('flat', 'flat_positive'):
            return ParsedPrior(dist_type=dist_type)

        raise PriorParsingError(
            f"Unknown prior type '{dist_type}' for parameter '{name}'. "
            f"Supported types: normal, uniform, flat, flat_positive"
        )

    raise PriorParsingError(f"Cannot parse prior specification for '{name}': {spec}")


def parse_priors(
    names: Sequence[ParamName],
    priors: Mapping[ParamName, PriorSpec],
    defaults: Optional[Mapping[ParamName, PriorSpec]] = None,
) -> Dict[ParamName, ParsedPrior]:
    """
    Parse priors for an ordered list of parameters.

    Parameters without an entry in ``priors`` fall back to ``defaults``.
    Unknown names in ``priors`` are rejected.
    """
    unknown = set(priors) - set(names)
    if unknown:
        raise PriorParsingError(f"Priors given for unknown parameters: {sorted(unknown)}")

    defaults = defaults or {}
    parsed = {}
    for name in names:
        if name in priors:
            parsed[name] = parse_prior(name, priors[name])
        elif name in defaults:
            parsed[name] = parse_prior(name, defaults[name])
        else:
            raise PriorParsingError(f"No prior given for parameter '{name}'")
    return parsed


__all__ = [
    "ParamName",
    "PriorSpec",
    "PriorParsingError",
    "ParsedPrior",
    "log_pdf_normal",
    "parse_prior",
    "parse_priors",
]
