"""
K-fold Cross-Validation and Model Comparison
=============================================
Each model is refitted K=10 times, each time leaving one fold of count
records out, and scored by the expected log predictive density (elpd)
of the held-out records:

    elpd_i = log( 1/S * sum_s p(y_i | theta_s) )

with theta_s the S posterior draws of the fit that did not see record i.
Fold labels are balanced and drawn with a fixed seed, so every model is
scored on the same partition.

Sites or campaigns absent from a training fold keep their parameter in
the model; with no data their effect is drawn from the fitted
group-level distribution, which is what the held-out record is scored
against.

Output: data/models/kfold_{predictor}_{family}.csv
"""
from __future__ import annotations

import logging
from pathlib import Path

import arviz as az
import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import expit, logsumexp

from . import config
from .file_utils import artefact_path, should_skip_file
from .s03_models import ModelSpec, fit_model

logger = logging.getLogger(__name__)


def kfold_split(n: int, k: int | None = None, seed: int | None = None) -> np.ndarray:
    """Random fold label 0..k-1 per row; fold sizes differ by at most one."""
    k = config.KFOLD_K if k is None else k
    seed = config.KFOLD_SEED if seed is None else seed
    if k > n:
        raise ValueError(f"Cannot split {n} rows into {k} folds")
    rng = np.random.default_rng(seed)
    return rng.permutation(np.arange(n) % k)


def heldout_log_lik(
    idata: az.InferenceData,
    spec: ModelSpec,
    table: pd.DataFrame,
) -> np.ndarray:
    """
    Log-likelihood of every row of ``table`` under each posterior draw.

    Returns:
        Array of shape (n_draws, n_rows)
    """
    post = az.extract(idata, group="posterior")
    intercept = post["Intercept"].values
    b = post["b"].values
    r_site = post["r_site"].transpose("sample", "site").values
    r_campaign = post["r_campaign"].transpose("sample", "campaign", "effect").values

    x = table[spec.column].to_numpy(dtype=float)
    site_idx = table["site_idx"].to_numpy(dtype=int)
    campaign_idx = table["campaign_idx"].to_numpy(dtype=int)
    trials = table[config.TOTAL].to_numpy(dtype=int)
    y = table[config.BLACK].to_numpy(dtype=int)

    eta = (
        intercept[:, None]
        + b[:, None] * x[None, :]
        + r_site[:, site_idx]
        + r_campaign[:, campaign_idx, 0]
        + r_campaign[:, campaign_idx, 1] * x[None, :]
    )
    p = expit(eta)

    if spec.family == "binomial":
        return stats.binom.logpmf(y, trials, p)

    phi = post["phi"].values[:, None]
    return stats.betabinom.logpmf(y, trials, p * phi, (1.0 - p) * phi)


def pointwise_elpd(log_lik: np.ndarray) -> np.ndarray:
    """Log of the posterior-mean likelihood for each row."""
    n_draws = log_lik.shape[0]
    return logsumexp(log_lik, axis=0) - np.log(n_draws)


def kfold(
    spec: ModelSpec,
    table: pd.DataFrame,
    k: int | None = None,
    seed: int | None = None,
    sampler: dict | None = None,
) -> pd.DataFrame:
    """
    K-fold cross-validation of one model.

    ``k`` and ``seed`` default to config.KFOLD_K and config.KFOLD_SEED.

    Returns:
        DataFrame with columns row, fold, elpd (one row per record)
    """
    k = config.KFOLD_K if k is None else k
    seed = config.KFOLD_SEED if seed is None else seed
    folds = kfold_split(len(table), k, seed)
    n_sites = int(table["site_idx"].max()) + 1
    n_campaigns = int(table["campaign_idx"].max()) + 1

    elpd = np.full(len(table), np.nan)
    for fold in range(k):
        test = folds == fold
        train_table = table.loc[~test]
        test_table = table.loc[test]

        idata = fit_model(
            spec, train_table, n_sites, n_campaigns,
            sampler=sampler, seed=config.SEED + fold,
        )
        elpd[test] = pointwise_elpd(heldout_log_lik(idata, spec, test_table))
        print(f"    fold {fold + 1}/{k}: elpd {elpd[test].sum():.1f}")

    return pd.DataFrame({"row": np.arange(len(table)), "fold": folds, "elpd": elpd})


def load_or_kfold(
    spec: ModelSpec,
    table: pd.DataFrame,
    models_dir: Path | None = None,
) -> pd.DataFrame:
    """Load the cached K-fold result for ``spec``, computing it if absent."""
    models_dir = config.MODELS_DIR if models_dir is None else models_dir
    path = artefact_path(models_dir, "kfold", spec.predictor, spec.family, ".csv")

    if should_skip_file(path):
        logger.info("Loading cached K-fold result %s", path.name)
        return pd.read_csv(path)

    print(f"  Cross-validating {spec.name} ...")
    result = kfold(spec, table)
    models_dir.mkdir(parents=True, exist_ok=True)
    result.to_csv(path, index=False)
    print(f"  ✓ Saved: {path.name}")
    return result


def elpd_summary(pointwise: pd.DataFrame) -> tuple[float, float]:
    """Total elpd and its standard error."""
    values = pointwise["elpd"].to_numpy()
    n = len(values)
    return float(values.sum()), float(np.sqrt(n * values.var(ddof=1)))


def compare_pair(a: pd.DataFrame, b: pd.DataFrame) -> tuple[float, float]:
    """
    elpd(a) - elpd(b) and the standard error of the difference.

    Both results must score the same rows.
    """
    if not np.array_equal(a["row"].to_numpy(), b["row"].to_numpy()):
        raise ValueError("K-fold results do not cover the same rows")
    diff = a["elpd"].to_numpy() - b["elpd"].to_numpy()
    n = len(diff)
    return float(diff.sum()), float(np.sqrt(n * diff.var(ddof=1)))


def compare_models(results: dict[ModelSpec, pd.DataFrame]) -> pd.DataFrame:
    """
    Rank models by cross-validated elpd.

    Returns:
        DataFrame sorted best first with columns model, predictor, radius,
        family, elpd, se, elpd_diff, se_diff (differences against the best
        model; zero for the best itself)
    """
    rows = []
    for spec, pointwise in results.items():
        elpd, se = elpd_summary(pointwise)
        rows.append({
            "model": spec.name,
            "predictor": spec.predictor,
            "radius": spec.radius,
            "family": spec.family,
            "elpd": elpd,
            "se": se,
        })
    table = pd.DataFrame(rows).sort_values("elpd", ascending=False).reset_index(drop=True)

    by_name = {spec.name: pointwise for spec, pointwise in results.items()}
    best = by_name[table.loc[0, "model"]]
    diffs = [compare_pair(by_name[name], best) for name in table["model"]]
    table["elpd_diff"] = [d for d, _ in diffs]
    table["se_diff"] = [s for _, s in diffs]
    return table


def select_family(results: dict[ModelSpec, pd.DataFrame]) -> pd.DataFrame:
    """
    Choose a response family per predictor.

    Beta-binomial is preferred whenever its cross-validated elpd is
    higher than the binomial model's for the same predictor.

    Returns:
        One row per predictor: predictor, radius, elpd_binomial,
        elpd_beta_binomial, elpd_diff, se_diff, selected
    """
    by_key = {(spec.predictor, spec.family): (spec, pw) for spec, pw in results.items()}
    predictors = list(dict.fromkeys(spec.predictor for spec in results))

    rows = []
    for predictor in predictors:
        if (predictor, "binomial") not in by_key or (predictor, "beta_binomial") not in by_key:
            raise ValueError(f"Both families are needed to select for '{predictor}'")
        spec, binom = by_key[(predictor, "binomial")]
        _, betabinom = by_key[(predictor, "beta_binomial")]
        diff, se = compare_pair(betabinom, binom)
        rows.append({
            "predictor": predictor,
            "radius": spec.radius,
            "elpd_binomial": elpd_summary(binom)[0],
            "elpd_beta_binomial": elpd_summary(betabinom)[0],
            "elpd_diff": diff,
            "se_diff": se,
            "selected": "beta_binomial" if diff > 0 else "binomial",
        })
    return pd.DataFrame(rows)


def kfold_all(table: pd.DataFrame, specs: list[ModelSpec]) -> dict[ModelSpec, pd.DataFrame]:
    """Cross-validate (or load) every model in ``specs``."""
    results = {}
    for i, spec in enumerate(specs, 1):
        results[spec] = load_or_kfold(spec, table)
        print(f"  [{i}/{len(specs)}] {spec.name} ✓")
    return results


def main() -> None:
    """Main execution: cross-validate all models and compare them."""
    from .s02_counts import prepare
    from .s03_models import model_grid

    print("=" * 60)
    print(f"{config.KFOLD_K}-fold Cross-Validation")
    print("=" * 60)

    print("\nPreparing model table...")
    table = prepare()

    print("\nCross-validating models...")
    results = kfold_all(table, model_grid())

    comparison = compare_models(results)
    selection = select_family(results)

    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    comparison.to_csv(config.OUTPUT_DIR / "model_comparison.csv", index=False)
    selection.to_csv(config.OUTPUT_DIR / "family_selection.csv", index=False)

    print("\nModel comparison:")
    print(comparison.round(2).to_string(index=False))
    print("\nFamily selection:")
    print(selection.round(2).to_string(index=False))


if __name__ == "__main__":
    main()
