"""
nutsbridge: multi-chain NUTS sampling for host-side log-density models.

Models with closed-form gradients are written in numpy; sampling is done by
BlackJAX's No-U-Turn sampler through a small bridge, one independent chain
per seed. Chain traces, divergences and posterior summaries are exposed as
plain numpy arrays.
"""

__version__ = "0.1.0"

# must run before any engine code traces a log density
from . import jax_config  # noqa: F401

from .errors import (
    NutsBridgeError,
    DomainError,
    EngineFatalError,
    DimensionMismatchError,
    InsufficientDrawsError,
    ChainCancelledError,
    ObservationError,
)

from .priors import (
    ParsedPrior,
    PriorParsingError,
    ParamName,
    PriorSpec,
    parse_prior,
    parse_priors,
)

from .models import (
    LogDensityModel,
    MultivariateNormalModel,
    RegressionModel,
    check_gradient,
)

from .config import NutsSettings

from .engine import (
    SamplingEngine,
    BlackJAXNutsEngine,
    Diagnostics,
    DivergenceInfo,
)

from .chains import (
    ChainRun,
    ChainRunner,
    ChainCollection,
    run_chains,
)

from .posterior import (
    PosteriorSummary,
    sample_posterior,
    summarize,
)

from .data import (
    RegressionProblem,
    parse_observations,
    regression_from_observations,
)

from .plots import (
    plot_chains,
    plot_regression,
    plot_corner,
)

__all__ = [
    # Errors
    "NutsBridgeError",
    "DomainError",
    "EngineFatalError",
    "DimensionMismatchError",
    "InsufficientDrawsError",
    "ChainCancelledError",
    "ObservationError",
    # Priors
    "ParsedPrior",
    "PriorParsingError",
    "ParamName",
    "PriorSpec",
    "parse_prior",
    "parse_priors",
    # Models
    "LogDensityModel",
    "MultivariateNormalModel",
    "RegressionModel",
    "check_gradient",
    # Sampling
    "NutsSettings",
    "SamplingEngine",
    "BlackJAXNutsEngine",
    "Diagnostics",
    "DivergenceInfo",
    "ChainRun",
    "ChainRunner",
    "ChainCollection",
    "run_chains",
    # Posterior
    "PosteriorSummary",
    "sample_posterior",
    "summarize",
    # Data
    "RegressionProblem",
    "parse_observations",
    "regression_from_observations",
    # Plotting
    "plot_chains",
    "plot_regression",
    "plot_corner",
]
