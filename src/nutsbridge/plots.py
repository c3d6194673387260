"""
Plotting utilities for nutsbridge.

Available Plots
---------------
- **Chain plots**: per-parameter histogram and trace, one color per chain
- **Regression plots**: observations with one line per posterior sample
- **Corner plots**: marginal distributions and correlations of a summary

The functions only read through the public accessors of
:class:`~nutsbridge.chains.ChainCollection` and
:class:`~nutsbridge.posterior.PosteriorSummary`. matplotlib and corner are
imported lazily so that sampling never requires a display backend.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .chains import ChainCollection
from .posterior import PosteriorSummary

# axis limits are padded out to this resolution
AXIS_RESOLUTION = 0.1


def rounded_limits(lo: float, hi: float, resolution: float = AXIS_RESOLUTION) -> Tuple[float, float]:
    """Floor ``lo`` and ceil ``hi`` to a multiple of ``resolution``."""
    lo = math.floor(lo / resolution) * resolution
    hi = math.ceil(hi / resolution) * resolution
    if hi <= lo:
        hi = lo + resolution
    return lo, hi


def plot_chains(
    collection: ChainCollection,
    *,
    bins: int = 50,
    labels: Optional[List[str]] = None,
    figsize: Optional[Tuple[float, float]] = None,
    lw: float = 0.7,
    alpha: float = 0.6,
    title: Optional[str] = None,
):
    """
    Histogram and trace of every parameter, one row per parameter.

    Parameters
    ----------
    collection : ChainCollection
        Finished chains.
    bins : int, optional
        Number of histogram bins, by default 50.
    labels : list of str, optional
        Axis labels; defaults to the parameter names.
    figsize : tuple, optional
        Figure size (width, height). Auto-scaled if None.
    lw : float, optional
        Trace line width, by default 0.7.
    alpha : float, optional
        Transparency of histograms and traces, by default 0.6.
    title : str, optional
        Figure title.

    Returns
    -------
    matplotlib.figure.Figure

    Examples
    --------
    >>> collection = run_chains(42, model, 4, 1000, 1000, start)
    >>> fig = plot_chains(collection)
    >>> fig.savefig('chains.png')
    """
    import matplotlib.pyplot as plt

    names = collection.parameters
    if labels is None:
        labels = names
    if len(labels) != len(names):
        raise ValueError(f"Got {len(labels)} labels for {len(names)} parameters")

    n_params = len(names)
    if figsize is None:
        figsize = (12, max(2.2, 2.4 * n_params))

    fig, axes = plt.subplots(n_params, 2, figsize=figsize, squeeze=False)
    colors = [f"C{j % 10}" for j in range(collection.chain_count)]

    for i in range(n_params):
        ax_hist, ax_trace = axes[i]
        lo, hi = collection.extrema(i)
        if not np.isfinite(lo):
            ax_hist.set_xlabel(labels[i])
            ax_trace.set_ylabel(labels[i])
            continue
        lo, hi = rounded_limits(lo, hi)
        edges = np.linspace(lo, hi, bins + 1)

        for color, values in zip(colors, collection.traces(i)):
            ax_hist.hist(values, bins=edges, histtype="stepfilled", alpha=alpha, color=color)
            ax_trace.plot(values, lw=lw, alpha=alpha, color=color)

        ax_hist.set_xlim(lo, hi)
        ax_hist.set_xlabel(labels[i])
        ax_trace.set_ylim(lo, hi)
        ax_trace.set_ylabel(labels[i])

    axes[-1, 1].set_xlabel("Draw index")

    if collection.chain_count > 1:
        handles = [
            plt.Line2D([0], [0], color=colors[j], lw=2, label=f"Seed {seed}")
            for j, seed in enumerate(collection.seeds)
        ]
        fig.legend(handles=handles, loc="upper center", ncol=min(collection.chain_count, 8),
                   bbox_to_anchor=(0.5, 1.02))

    if title:
        fig.suptitle(title, y=1.04)

    fig.tight_layout()
    return fig


def plot_regression(
    x: Sequence[float],
    y: Sequence[float],
    summary: PosteriorSummary,
    x_offset: float = 0.0,
    *,
    alpha_name: str = "alpha",
    beta_name: str = "beta",
    xlabel: str = "x",
    ylabel: str = "y",
    figsize: Tuple[float, float] = (8, 5),
    line_alpha: float = 0.4,
):
    """
    Observations plus one regression line per posterior sample.

    Parameters
    ----------
    x, y : sequence of float
        Observations on the original (uncentered) axis.
    summary : PosteriorSummary
        Must contain ``alpha_name`` and ``beta_name``.
    x_offset : float, optional
        Centering offset used when the model was built; each line is
        ``alpha + beta * (x - x_offset)``.

    Returns
    -------
    matplotlib.figure.Figure
    """
    import matplotlib.pyplot as plt

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    alphas = summary[alpha_name]
    betas = summary[beta_name]

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.scatter(x, y, s=12, color="C0", label="observed")

    grid = np.linspace(x.min(), x.max(), 2) if x.size else np.array([0.0, 1.0])
    for k, (a, b) in enumerate(zip(alphas, betas)):
        ax.plot(grid, a + b * (grid - x_offset), color="C3", alpha=line_alpha, lw=1.0,
                label="posterior" if k == 0 else None)

    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.legend(loc="best", frameon=False)
    fig.tight_layout()
    return fig


def plot_corner(
    summary: PosteriorSummary,
    *,
    labels: Optional[Sequence[str]] = None,
    truths: Optional[Sequence[float]] = None,
    quantiles: Optional[Sequence[float]] = None,
    show_titles: bool = True,
    title_fmt: str = ".3f",
    **corner_kwargs,
):
    """
    Corner plot of a posterior summary.

    Parameters
    ----------
    summary : PosteriorSummary
    labels : sequence of str, optional
        Defaults to the parameter names.
    truths : sequence, optional
        True parameter values to mark on the plot.
    quantiles : sequence, optional
        Quantiles to show on 1D histograms. Default is [0.16, 0.5, 0.84].
    **corner_kwargs
        Passed to ``corner.corner()``.

    Returns
    -------
    matplotlib.figure.Figure
    """
    import corner

    if quantiles is None:
        quantiles = [0.16, 0.5, 0.84]

    return corner.corner(
        summary.as_array(),
        labels=list(labels) if labels is not None else summary.names,
        truths=truths,
        quantiles=quantiles,
        show_titles=show_titles,
        title_fmt=title_fmt,
        **corner_kwargs,
    )


__all__ = [
    "rounded_limits",
    "plot_chains",
    "plot_regression",
    "plot_corner",
]
