"""
Orchestrator: run every pipeline step and write the analysis report.

Usage:
    python -m morph_urban.run_all
"""

import logging
import time

import pandas as pd

from morph_urban import config
from morph_urban import s01_urbanisation, s02_counts, s03_models, s04_kfold, s05_figures


def generate_text_report(
    count_summary: pd.DataFrame,
    slopes: pd.DataFrame,
    comparison: pd.DataFrame,
    selection: pd.DataFrame,
    best: s03_models.ModelSpec,
    best_summary: pd.DataFrame,
) -> str:
    """Human-readable summary of every result table."""
    lines = [
        "=" * 80,
        "URBANISATION AND COLOUR-MORPH FREQUENCY",
        f"{len(comparison)} GLMMs, {config.KFOLD_K}-fold cross-validation",
        "=" * 80,
        "",
    ]

    lines.append("1. CATCH SUMMARY")
    lines.append("-" * 60)
    lines.append(count_summary.to_string(index=False))
    lines.append("")

    lines.append("2. URBANISATION SLOPE (logit scale, per SD of predictor)")
    lines.append("-" * 60)
    cols = ["model", "mean", "hdi_low", "hdi_high", "p_negative", "r_hat"]
    lines.append(slopes[cols].round(3).to_string(index=False))
    lines.append("")

    lines.append("3. MODEL COMPARISON (K-fold elpd, best first)")
    lines.append("-" * 60)
    cols = ["model", "elpd", "se", "elpd_diff", "se_diff"]
    lines.append(comparison[cols].round(2).to_string(index=False))
    lines.append("")

    lines.append("4. RESPONSE FAMILY PER PREDICTOR")
    lines.append("-" * 60)
    lines.append(selection.round(2).to_string(index=False))
    n_bb = int((selection["selected"] == "beta_binomial").sum())
    lines.append(f"\n  Beta-binomial preferred for {n_bb}/{len(selection)} predictors")
    lines.append("")

    lines.append(f"5. BEST MODEL: {best.name}")
    lines.append("-" * 60)
    lines.append(best.formula)
    lines.append(best_summary.round(3).to_string())

    return "\n".join(lines)


def best_selected_model(
    comparison: pd.DataFrame,
    selection: pd.DataFrame,
) -> s03_models.ModelSpec:
    """Highest-elpd model among each predictor's selected family."""
    chosen = set(zip(selection["predictor"], selection["selected"]))
    mask = [(p, f) in chosen for p, f in zip(comparison["predictor"], comparison["family"])]
    row = comparison[mask].sort_values("elpd", ascending=False).iloc[0]
    return s03_models.ModelSpec(row["predictor"], row["family"])


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    t0 = time.time()
    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("\n--- Site urbanisation metrics ---")
    s01_urbanisation.main()

    print("\n--- Preparing count table ---")
    table = s02_counts.prepare()
    count_summary = s02_counts.describe_counts(table)

    specs = s03_models.model_grid()

    print("\n--- Fitting models ---")
    fits = s03_models.fit_all(table, specs)
    slopes = s03_models.slope_summary(fits)

    print("\n--- Cross-validating models ---")
    results = s04_kfold.kfold_all(table, specs)
    comparison = s04_kfold.compare_models(results)
    selection = s04_kfold.select_family(results)

    best = best_selected_model(comparison, selection)
    best_summary = s03_models.posterior_summary(fits[best])

    print("--- Generating figure ---")
    fig_path = s05_figures.plot_morph_frequency(
        table, fits[best], best, config.PLOTS_DIR / f"morph_frequency_{best.name}.png"
    )

    count_summary.to_csv(config.OUTPUT_DIR / "count_summary.csv", index=False)
    slopes.to_csv(config.OUTPUT_DIR / "slope_summary.csv", index=False)
    comparison.to_csv(config.OUTPUT_DIR / "model_comparison.csv", index=False)
    selection.to_csv(config.OUTPUT_DIR / "family_selection.csv", index=False)

    print("--- Generating report ---")
    report = generate_text_report(count_summary, slopes, comparison, selection, best, best_summary)
    report_path = config.OUTPUT_DIR / "report.txt"
    report_path.write_text(report, encoding="utf-8")
    print(f"\nReport saved to: {report_path}")
    print(f"Figure saved to: {fig_path}")

    elapsed = time.time() - t0
    print(f"\nAll steps completed in {elapsed:.1f}s")

    try:
        print("\n" + report)
    except UnicodeEncodeError:
        print("\n" + report.encode("ascii", errors="replace").decode("ascii"))


if __name__ == "__main__":
    main()
