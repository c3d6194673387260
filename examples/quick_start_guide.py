# Quick Start Guide (script form)
#
# Fits a straight line to a small temperature series with multi-chain NUTS,
# prints a posterior summary as CSV and saves the diagnostic plots.

import logging
import os

import numpy as np

from nutsbridge import (
    NutsSettings,
    parse_observations,
    plot_chains,
    plot_corner,
    plot_regression,
    regression_from_observations,
    run_chains,
    summarize,
)

mpl_dir = os.environ.get("MPLCONFIGDIR", "/tmp/matplotlib")
os.makedirs(mpl_dir, exist_ok=True)
os.environ["MPLCONFIGDIR"] = mpl_dir

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

OUTPUT_DIR = "quick_start_outputs"
POSTERIOR_SAMPLES = 10

# Yearly mean maximum temperature at a single station
rng = np.random.default_rng(2024)
years = np.arange(1960, 2020)
tmax = 14.0 + 0.02 * (years - 1960) + rng.normal(0.0, 0.4, size=years.size)
text = "year,tmax\n" + "\n".join(f"{yr},{t:.2f}" for yr, t in zip(years, tmax))

rows, names = parse_observations(text)
problem = regression_from_observations(rows, names=names)
print(f"Centered x by {problem.x_offset:.1f}, starting at {problem.initial_position}")

collection = run_chains(
    42,
    problem.model,
    chain_count=4,
    tuning=1000,
    samples=1000,
    initial_position=problem.initial_position,
    settings=NutsSettings(target_acceptance=0.85),
    n_workers=4,
    progress=True,
)
print(f"{collection.total_draws} draws, {collection.num_divergences} divergences")
for i, name in enumerate(collection.parameters):
    lo, hi = collection.extrema(i)
    print(f"  {name}: range [{lo:.3f}, {hi:.3f}]")

summary = summarize(collection, POSTERIOR_SAMPLES)
print(summary.to_csv())
print("Posterior means:", summary.means())

os.makedirs(OUTPUT_DIR, exist_ok=True)
plot_chains(collection, title="Chains").savefig(os.path.join(OUTPUT_DIR, "chains.png"), bbox_inches="tight")
plot_regression(rows[:, 0], rows[:, 1], summary, x_offset=problem.x_offset,
                xlabel="year", ylabel="tmax").savefig(os.path.join(OUTPUT_DIR, "tmax.png"))
plot_corner(summarize(collection, collection.total_draws)).savefig(os.path.join(OUTPUT_DIR, "corner.png"))
print(f"Figures written to {OUTPUT_DIR}/")
