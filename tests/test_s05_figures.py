"""Tests for s05_figures.py"""
import numpy as np
import pytest

from morph_urban import config, s05_figures
from morph_urban.s03_models import ModelSpec


def test_population_curve_spans_observed_range(model_table, fake_posterior):
    spec = ModelSpec("imd_500m", "binomial")
    curve = s05_figures.population_curve(fake_posterior(6, 3), spec, model_table, n_points=50)

    assert len(curve) == 50
    assert curve["x"].iloc[0] == pytest.approx(model_table["imd_500m"].min())
    assert curve["x"].iloc[-1] == pytest.approx(model_table["imd_500m"].max())
    assert (curve["hdi_low"] <= curve["mean"]).all()
    assert (curve["mean"] <= curve["hdi_high"]).all()
    assert curve[["mean", "hdi_low", "hdi_high"]].stack().between(0, 1).all()


def test_population_curve_follows_slope_sign(model_table, fake_posterior):
    spec = ModelSpec("imd_500m", "binomial")
    down = s05_figures.population_curve(fake_posterior(6, 3, b=-1.0), spec, model_table)
    up = s05_figures.population_curve(fake_posterior(6, 3, b=1.0), spec, model_table)
    assert np.all(np.diff(down["mean"]) < 0)
    assert np.all(np.diff(up["mean"]) > 0)


def test_plot_morph_frequency_writes_png(tmp_path, model_table, fake_posterior):
    spec = ModelSpec(config.DISTANCE_PREDICTOR, "beta_binomial")
    path = tmp_path / "plots" / "fig.png"
    out = s05_figures.plot_morph_frequency(
        model_table, fake_posterior(6, 3, "beta_binomial"), spec, path
    )
    assert out == path
    assert path.exists()
    assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
