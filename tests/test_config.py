"""Tests for config.py"""
from pathlib import Path

from pyproj import CRS

from morph_urban import config


def test_paths_exist():
    """Test that all path constants are defined."""
    assert config.ROOT.exists()
    assert config.DATA_DIR == config.ROOT / "data"
    assert config.URBANISATION_CSV.parent == config.DERIVED_DIR


def test_all_dirs_are_paths():
    dir_attrs = [a for a in dir(config) if a.endswith("_DIR") and not a.startswith("_")]
    for attr in dir_attrs:
        assert isinstance(getattr(config, attr), Path), attr


def test_seven_buffer_radii():
    assert len(config.BUFFER_RADII_M) == 7
    assert config.BUFFER_RADII_M == sorted(set(config.BUFFER_RADII_M))
    assert all(r > 0 for r in config.BUFFER_RADII_M)


def test_predictors():
    """Distance plus one imperviousness column per radius."""
    assert len(config.PREDICTORS) == 8
    assert config.PREDICTORS[0] == config.DISTANCE_PREDICTOR
    assert config.IMD_PREDICTORS[500] == "imd_500m"
    assert set(config.PREDICTOR_LABELS) == set(config.PREDICTORS)


def test_families():
    assert config.FAMILIES == ["binomial", "beta_binomial"]


def test_crs_configuration():
    assert config.CRS_WGS84 == "EPSG:4326"
    assert CRS.from_user_input(config.CRS_LAEA).is_projected
    assert not CRS.from_user_input(config.CRS_WGS84).is_projected


def test_imd_nodata():
    assert config.IMD_NODATA == 255


def test_sampler_settings():
    assert set(config.SAMPLER) == {"draws", "tune", "chains", "cores", "target_accept"}
    assert 0 < config.SAMPLER["target_accept"] < 1
    assert isinstance(config.SEED, int)


def test_kfold_settings():
    assert config.KFOLD_K == 10
    assert isinstance(config.KFOLD_SEED, int)


def test_priors_positive():
    for key, value in config.PRIORS.items():
        assert value > 0, key
