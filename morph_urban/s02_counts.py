"""
Count Table Preparation
=======================
Join trap counts with campaign dates and site urbanisation metrics into
the table every model is fitted on.

Filters applied:
  - Records with zero beetles caught (total == 0) are dropped
  - Sites listed in config.EXCLUDED_SITES are dropped
  - Predictors are z-scaled after filtering, on the final table

Output: output/count_summary.csv (per-campaign summary)
"""
from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from . import config

logger = logging.getLogger(__name__)


def _read_csv(path: Path, required: list[str], **kwargs) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Input table not found: {path}")
    df = pd.read_csv(path, **kwargs)
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} is missing columns: {missing}")
    return df


def load_counts(path: Path) -> pd.DataFrame:
    """Load trap counts: one row per site x campaign."""
    df = _read_csv(
        path, config.COUNT_COLUMNS,
        dtype={config.SITE_ID: str, config.CAMPAIGN_ID: str},
    )
    for col in (config.BLACK, config.RED):
        df[col] = df[col].astype(int)
    return df


def load_campaigns(path: Path) -> pd.DataFrame:
    """
    Load sampling campaigns and derive mid_date / duration_days.
    """
    df = _read_csv(
        path, config.CAMPAIGN_COLUMNS,
        dtype={config.CAMPAIGN_ID: str},
        parse_dates=["start_date", "end_date"],
    )
    df["duration_days"] = (df["end_date"] - df["start_date"]).dt.days
    df["mid_date"] = df["start_date"] + (df["end_date"] - df["start_date"]) / 2
    return df


def load_urbanisation(path: Path) -> pd.DataFrame:
    """Load the per-site table written by s01_urbanisation."""
    return _read_csv(
        path, [config.SITE_ID] + config.PREDICTORS,
        dtype={config.SITE_ID: str},
    )


def scale(series: pd.Series) -> pd.Series:
    """
    Centre and scale to unit sample standard deviation.

    Raises:
        ValueError: if the series has no spread to scale by
    """
    sd = series.std(ddof=1)
    if not sd > 0:
        raise ValueError(f"Predictor '{series.name}' is constant across records, cannot scale it")
    return (series - series.mean()) / sd


def build_model_table(
    counts: pd.DataFrame,
    campaigns: pd.DataFrame,
    urbanisation: pd.DataFrame,
    excluded_sites: list[str] | None = None,
    predictors: list[str] | None = None,
) -> pd.DataFrame:
    """
    Join, filter and scale the count records.

    Args:
        counts: Output of load_counts()
        campaigns: Output of load_campaigns()
        urbanisation: Output of load_urbanisation()
        excluded_sites: Site ids to drop (default: config.EXCLUDED_SITES)
        predictors: Predictor columns to scale (default: config.PREDICTORS)

    Returns:
        DataFrame with count columns, campaign metadata, site metrics,
        total, {predictor}_z, site_idx and campaign_idx

    Raises:
        ValueError: if a count record refers to an unknown campaign or site
    """
    excluded_sites = config.EXCLUDED_SITES if excluded_sites is None else excluded_sites
    predictors = config.PREDICTORS if predictors is None else predictors

    df = counts.copy()
    df[config.TOTAL] = df[config.BLACK] + df[config.RED]

    n_zero = int((df[config.TOTAL] == 0).sum())
    df = df[df[config.TOTAL] > 0]
    if n_zero:
        logger.info("Dropped %d records with no beetles caught", n_zero)

    excluded = df[config.SITE_ID].isin(excluded_sites)
    if excluded.any():
        logger.info("Dropped %d records from excluded sites %s", int(excluded.sum()), excluded_sites)
    df = df[~excluded]

    unknown_campaigns = set(df[config.CAMPAIGN_ID]) - set(campaigns[config.CAMPAIGN_ID])
    if unknown_campaigns:
        raise ValueError(f"Counts reference campaigns without dates: {sorted(unknown_campaigns)}")
    unknown_sites = set(df[config.SITE_ID]) - set(urbanisation[config.SITE_ID])
    if unknown_sites:
        raise ValueError(f"Counts reference sites without urbanisation metrics: {sorted(unknown_sites)}")

    df = df.merge(campaigns, on=config.CAMPAIGN_ID, how="left", validate="many_to_one")
    site_cols = [c for c in urbanisation.columns if c not in ("lon", "lat")]
    df = df.merge(urbanisation[site_cols], on=config.SITE_ID, how="left", validate="many_to_one")

    missing = df[predictors].isna().any(axis=1)
    if missing.any():
        raise ValueError(
            f"Sites with missing predictor values: "
            f"{sorted(df.loc[missing, config.SITE_ID].unique())}"
        )

    df = df.sort_values([config.CAMPAIGN_ID, config.SITE_ID]).reset_index(drop=True)

    for col in predictors:
        df[f"{col}_z"] = scale(df[col])

    df["site_idx"] = pd.Categorical(df[config.SITE_ID]).codes.astype(int)
    df["campaign_idx"] = pd.Categorical(df[config.CAMPAIGN_ID]).codes.astype(int)

    return df


def describe_counts(table: pd.DataFrame) -> pd.DataFrame:
    """Per-campaign catch summary with an overall row."""
    grouped = table.groupby(config.CAMPAIGN_ID).agg(
        year=("year", "first"),
        sites=(config.SITE_ID, "nunique"),
        records=(config.TOTAL, "size"),
        n_black=(config.BLACK, "sum"),
        n_red=(config.RED, "sum"),
        total=(config.TOTAL, "sum"),
    ).reset_index()

    overall = pd.DataFrame([{
        config.CAMPAIGN_ID: "all",
        "year": pd.NA,
        "sites": table[config.SITE_ID].nunique(),
        "records": len(table),
        "n_black": table[config.BLACK].sum(),
        "n_red": table[config.RED].sum(),
        "total": table[config.TOTAL].sum(),
    }])
    summary = pd.concat([grouped, overall], ignore_index=True)
    summary["prop_black"] = (summary["n_black"] / summary["total"]).round(4)
    return summary


def prepare() -> pd.DataFrame:
    """Load all inputs and return the model table."""
    counts = load_counts(config.COUNTS_PATH)
    campaigns = load_campaigns(config.CAMPAIGNS_PATH)
    urbanisation = load_urbanisation(config.URBANISATION_CSV)
    print(f"  Counts: {len(counts)} records")
    print(f"  Campaigns: {len(campaigns)}")
    print(f"  Sites: {len(urbanisation)}")

    table = build_model_table(counts, campaigns, urbanisation)
    print(f"  Model table: {len(table)} records, "
          f"{table[config.SITE_ID].nunique()} sites, "
          f"{table[config.CAMPAIGN_ID].nunique()} campaigns")
    return table


def main() -> None:
    """Main execution: build the model table and save the catch summary."""
    print("=" * 60)
    print("Count Table Preparation")
    print("=" * 60)

    print("\nLoading data...")
    table = prepare()

    summary = describe_counts(table)
    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    out_path = config.OUTPUT_DIR / "count_summary.csv"
    summary.to_csv(out_path, index=False)
    print(f"\n✓ Saved: {out_path.name}")
    print(summary.to_string(index=False))


if __name__ == "__main__":
    main()
