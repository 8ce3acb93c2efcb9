"""
Figure: black-morph frequency against urbanisation.

Observed proportion of black-legged beetles per trap record (point size
proportional to catch size) with the population-level posterior mean
curve and its HDI band. Site and campaign effects are set to zero, so
the curve is the prediction for an average site in an average campaign.
"""

import arviz as az
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from pathlib import Path
from scipy.special import expit

from . import config
from .s03_models import ModelSpec

plt.rcParams.update({
    "figure.dpi": 150,
    "savefig.dpi": 300,
    "savefig.bbox": "tight",
    "font.size": 10,
    "axes.titlesize": 12,
    "axes.labelsize": 11,
})


def population_curve(
    idata: az.InferenceData,
    spec: ModelSpec,
    table: pd.DataFrame,
    n_points: int = 200,
    hdi_prob: float = config.HDI_PROB,
) -> pd.DataFrame:
    """
    Posterior mean and HDI of P(black) over the observed predictor range.

    Returns:
        DataFrame with columns x (raw units), mean, hdi_low, hdi_high
    """
    raw = table[spec.predictor]
    grid = np.linspace(raw.min(), raw.max(), n_points)
    grid_z = (grid - raw.mean()) / raw.std(ddof=1)

    intercept = idata.posterior["Intercept"].values.reshape(-1)
    b = idata.posterior["b"].values.reshape(-1)
    p = expit(intercept[:, None] + b[:, None] * grid_z[None, :])

    hdi = np.apply_along_axis(az.hdi, 0, p, hdi_prob=hdi_prob)
    return pd.DataFrame({
        "x": grid,
        "mean": p.mean(axis=0),
        "hdi_low": hdi[0],
        "hdi_high": hdi[1],
    })


def plot_morph_frequency(
    table: pd.DataFrame,
    idata: az.InferenceData,
    spec: ModelSpec,
    path: Path,
) -> Path:
    """Scatter of observed proportions with the fitted curve; saved to ``path``."""
    observed = table.assign(prop_black=table[config.BLACK] / table[config.TOTAL])
    curve = population_curve(idata, spec, table)

    fig, ax = plt.subplots(figsize=(7, 5))
    sns.scatterplot(
        data=observed, x=spec.predictor, y="prop_black", size=config.TOTAL,
        sizes=(10, 150), alpha=0.5, color="0.3", edgecolor="white", ax=ax,
    )
    ax.fill_between(curve["x"], curve["hdi_low"], curve["hdi_high"],
                    color="firebrick", alpha=0.25, lw=0,
                    label=f"{int(config.HDI_PROB * 100)}% HDI")
    ax.plot(curve["x"], curve["mean"], color="firebrick", lw=2, label="Posterior mean")

    ax.set_xlabel(config.PREDICTOR_LABELS.get(spec.predictor, spec.predictor))
    ax.set_ylabel("Proportion black-legged morph")
    ax.set_ylim(-0.02, 1.02)
    ax.set_title(f"{spec.predictor} ({spec.family.replace('_', '-')})")
    ax.legend(loc="best", fontsize=8, frameon=False)
    sns.despine(ax=ax)

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path)
    plt.close(fig)
    return path
