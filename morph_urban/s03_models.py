"""
Morph Frequency GLMMs
=====================
One model per (urbanisation predictor, response family):

    n_black | trials(total) ~ x + (1 | site_id) + (1 + x | campaign_id)

with x the z-scaled predictor (distance to the city centre, or mean
imperviousness at one of seven buffer radii) and a logit link. The
beta-binomial family adds a precision parameter phi for overdispersion.
8 predictors x 2 families = 16 fits.

Fits are cached as ArviZ NetCDF files; an existing file is loaded
instead of refitting. There is no invalidation: delete the file when
the inputs change.

Output: data/models/fit_{predictor}_{family}.nc
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm

from . import config
from .file_utils import artefact_path, should_skip_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """One cell of the predictor x family model grid."""

    predictor: str
    family: str

    def __post_init__(self):
        if self.family not in config.FAMILIES:
            raise ValueError(f"Unknown family '{self.family}', expected one of {config.FAMILIES}")

    @property
    def name(self) -> str:
        return f"{self.predictor}_{self.family}"

    @property
    def column(self) -> str:
        """Scaled predictor column in the model table."""
        return f"{self.predictor}_z"

    @property
    def radius(self) -> int | None:
        """Buffer radius in metres, None for the distance predictor."""
        for radius, col in config.IMD_PREDICTORS.items():
            if col == self.predictor:
                return radius
        return None

    @property
    def formula(self) -> str:
        x = self.column
        return (
            f"{config.BLACK} | trials({config.TOTAL}) ~ {x}"
            f" + (1 | {config.SITE_ID}) + (1 + {x} | {config.CAMPAIGN_ID})"
            f", family = {self.family}"
        )


def model_grid(
    predictors: list[str] | None = None,
    families: list[str] | None = None,
) -> list[ModelSpec]:
    """All predictor x family combinations, predictor-major."""
    predictors = config.PREDICTORS if predictors is None else predictors
    families = config.FAMILIES if families is None else families
    return [ModelSpec(p, f) for p in predictors for f in families]


def build_model(
    spec: ModelSpec,
    table: pd.DataFrame,
    n_sites: int | None = None,
    n_campaigns: int | None = None,
) -> pm.Model:
    """
    Build the PyMC model for ``spec`` on ``table``.

    Group sizes default to the levels present in ``table``. Pass the
    full-table sizes when ``table`` is a training fold, so that every
    site and campaign keeps a parameter and index codes stay valid.
    """
    n_sites = int(table["site_idx"].max()) + 1 if n_sites is None else n_sites
    n_campaigns = int(table["campaign_idx"].max()) + 1 if n_campaigns is None else n_campaigns

    x = table[spec.column].to_numpy(dtype=float)
    site_idx = table["site_idx"].to_numpy(dtype=int)
    campaign_idx = table["campaign_idx"].to_numpy(dtype=int)
    trials = table[config.TOTAL].to_numpy(dtype=int)
    y = table[config.BLACK].to_numpy(dtype=int)

    coords = {
        "site": np.arange(n_sites),
        "campaign": np.arange(n_campaigns),
        "effect": ["Intercept", "slope"],
        "obs": np.arange(len(table)),
    }
    priors = config.PRIORS

    with pm.Model(coords=coords) as model:
        intercept = pm.Normal("Intercept", mu=0.0, sigma=priors["intercept_sigma"])
        b = pm.Normal("b", mu=0.0, sigma=priors["slope_sigma"])

        # (1 | site), non-centred
        sd_site = pm.HalfStudentT("sd_site", nu=priors["sd_nu"], sigma=priors["sd_sigma"])
        z_site = pm.Normal("z_site", 0.0, 1.0, dims="site")
        r_site = pm.Deterministic("r_site", sd_site * z_site, dims="site")

        # (1 + x | campaign), correlated intercept and slope
        chol, _, _ = pm.LKJCholeskyCov(
            "chol_campaign",
            n=2,
            eta=priors["lkj_eta"],
            sd_dist=pm.HalfStudentT.dist(nu=priors["sd_nu"], sigma=priors["sd_sigma"], shape=2),
            compute_corr=True,
        )
        z_campaign = pm.Normal("z_campaign", 0.0, 1.0, dims=("campaign", "effect"))
        r_campaign = pm.Deterministic(
            "r_campaign", pm.math.dot(z_campaign, chol.T), dims=("campaign", "effect")
        )

        eta = (
            intercept
            + b * x
            + r_site[site_idx]
            + r_campaign[campaign_idx, 0]
            + r_campaign[campaign_idx, 1] * x
        )
        p = pm.math.invlogit(eta)

        if spec.family == "binomial":
            pm.Binomial("y", n=trials, p=p, observed=y, dims="obs")
        else:
            phi = pm.Gamma("phi", alpha=priors["phi_alpha"], beta=priors["phi_beta"])
            pm.BetaBinomial(
                "y", alpha=p * phi, beta=(1.0 - p) * phi, n=trials, observed=y, dims="obs"
            )

    return model


def fit_model(
    spec: ModelSpec,
    table: pd.DataFrame,
    n_sites: int | None = None,
    n_campaigns: int | None = None,
    sampler: dict | None = None,
    seed: int = config.SEED,
) -> az.InferenceData:
    """Sample the posterior of ``spec`` with a fixed seed."""
    sampler = config.SAMPLER if sampler is None else sampler
    model = build_model(spec, table, n_sites, n_campaigns)
    with model:
        idata = pm.sample(**sampler, random_seed=seed, progressbar=False)
    return idata


def load_or_fit(
    spec: ModelSpec,
    table: pd.DataFrame,
    models_dir: Path | None = None,
) -> az.InferenceData:
    """Load the cached fit for ``spec``, fitting and caching it if absent."""
    models_dir = config.MODELS_DIR if models_dir is None else models_dir
    path = artefact_path(models_dir, "fit", spec.predictor, spec.family, ".nc")

    if should_skip_file(path):
        logger.info("Loading cached fit %s", path.name)
        return az.from_netcdf(str(path))

    print(f"  Fitting {spec.name} ...")
    idata = fit_model(spec, table)
    models_dir.mkdir(parents=True, exist_ok=True)
    idata.to_netcdf(str(path))
    print(f"  ✓ Saved: {path.name}")
    return idata


def posterior_summary(idata: az.InferenceData, hdi_prob: float = config.HDI_PROB) -> pd.DataFrame:
    """Population-level and variance parameters (no per-level effects)."""
    var_names = [v for v in ("Intercept", "b", "sd_site", "chol_campaign_stds",
                             "chol_campaign_corr", "phi") if v in idata.posterior]
    return az.summary(idata, var_names=var_names, hdi_prob=hdi_prob)


def slope_summary(
    fits: dict[ModelSpec, az.InferenceData],
    hdi_prob: float = config.HDI_PROB,
) -> pd.DataFrame:
    """
    Urbanisation slope per model.

    Returns:
        One row per model: model, predictor, radius, family, mean, sd,
        hdi_low, hdi_high, p_negative (posterior P(b < 0)), r_hat, ess_bulk
    """
    rows = []
    for spec, idata in fits.items():
        draws = idata.posterior["b"].values.reshape(-1)
        hdi = az.hdi(draws, hdi_prob=hdi_prob)
        diag = az.summary(idata, var_names=["b"], kind="diagnostics")
        rows.append({
            "model": spec.name,
            "predictor": spec.predictor,
            "radius": spec.radius,
            "family": spec.family,
            "mean": draws.mean(),
            "sd": draws.std(ddof=1),
            "hdi_low": hdi[0],
            "hdi_high": hdi[1],
            "p_negative": (draws < 0).mean(),
            "r_hat": diag.loc["b", "r_hat"],
            "ess_bulk": diag.loc["b", "ess_bulk"],
        })
    return pd.DataFrame(rows)


def fit_all(table: pd.DataFrame, specs: list[ModelSpec] | None = None) -> dict[ModelSpec, az.InferenceData]:
    """Fit (or load) every model in the grid."""
    specs = model_grid() if specs is None else specs
    fits = {}
    for i, spec in enumerate(specs, 1):
        fits[spec] = load_or_fit(spec, table)
        print(f"  [{i}/{len(specs)}] {spec.name} ✓")
    return fits


def main() -> None:
    """Main execution: fit all 16 models and print slope summaries."""
    from .s02_counts import prepare

    print("=" * 60)
    print("Morph Frequency GLMMs")
    print("=" * 60)

    print("\nPreparing model table...")
    table = prepare()

    print("\nFitting models...")
    fits = fit_all(table)

    slopes = slope_summary(fits)
    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    out_path = config.OUTPUT_DIR / "slope_summary.csv"
    slopes.to_csv(out_path, index=False)
    print(f"\n✓ Saved: {out_path.name}")
    print(slopes.round(3).to_string(index=False))


if __name__ == "__main__":
    main()
