"""
Cross-Module Pipeline Integrity Tests
=======================================
Checks that the steps agree on column names and artefact names.
No raster, count data or sampler required.
"""
import inspect

from morph_urban import config, s01_urbanisation, s02_counts, s03_models
from morph_urban.file_utils import artefact_path, should_skip_file


def test_s01_column_names_match_predictors():
    """s01 writes imd_{r}m; config.PREDICTORS must name the same columns."""
    source = inspect.getsource(s01_urbanisation.compute_site_urbanisation)
    assert 'f"imd_{radius}m"' in source
    for radius in config.BUFFER_RADII_M:
        assert f"imd_{radius}m" == config.IMD_PREDICTORS[radius]
        assert config.IMD_PREDICTORS[radius] in config.PREDICTORS


def test_s02_requires_every_predictor():
    source = inspect.getsource(s02_counts.load_urbanisation)
    assert "config.PREDICTORS" in source


def test_artefact_names_unique_and_encode_width_and_family(tmp_path):
    names = set()
    for spec in s03_models.model_grid():
        path = artefact_path(tmp_path, "fit", spec.predictor, spec.family, ".nc")
        assert spec.family in path.name
        if spec.radius is not None:
            assert f"{spec.radius}m" in path.name
        names.add(path.name)
    assert len(names) == 16


def test_fit_and_kfold_artefacts_differ(tmp_path):
    spec = s03_models.ModelSpec("imd_500m", "binomial")
    fit = artefact_path(tmp_path, "fit", spec.predictor, spec.family, ".nc")
    cv = artefact_path(tmp_path, "kfold", spec.predictor, spec.family, ".csv")
    assert fit != cv
    assert fit.name == "fit_imd_500m_binomial.nc"
    assert cv.name == "kfold_imd_500m_binomial.csv"


def test_should_skip_file(tmp_path):
    path = tmp_path / "fit.nc"
    assert not should_skip_file(path)
    path.write_bytes(b"")
    assert not should_skip_file(path)
    path.write_bytes(b"x")
    assert should_skip_file(path)


def test_formula_references_table_columns(model_table):
    for spec in s03_models.model_grid():
        assert spec.column in model_table.columns
        for col in (config.BLACK, config.TOTAL, config.SITE_ID, config.CAMPAIGN_ID):
            assert col in spec.formula
            assert col in model_table.columns
