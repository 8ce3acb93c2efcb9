"""Pytest configuration and shared fixtures."""
import pytest
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from morph_urban import config


# Raster grid shared by the geospatial fixtures (EPSG:3035, 10 m cells)
RASTER_ORIGIN = (4_000_000.0, 3_006_000.0)
RASTER_SIZE = 600
RASTER_RES = 10.0


@pytest.fixture
def imd_raster(tmp_path):
    """
    6 x 6 km imperviousness GeoTIFF.

    Left half is 40%, right half 80%, and the upper-left quadrant is the
    255 "outside area" value. The file declares no nodata of its own.
    """
    import rasterio
    from rasterio.transform import from_origin

    arr = np.full((RASTER_SIZE, RASTER_SIZE), 80, dtype="uint8")
    half = RASTER_SIZE // 2
    arr[:, :half] = 40
    arr[:half, :half] = config.IMD_NODATA

    path = tmp_path / "imd.tif"
    with rasterio.open(
        path, "w", driver="GTiff",
        height=RASTER_SIZE, width=RASTER_SIZE, count=1, dtype="uint8",
        crs=config.CRS_LAEA,
        transform=from_origin(*RASTER_ORIGIN, RASTER_RES, RASTER_RES),
    ) as dst:
        dst.write(arr, 1)
    return path


@pytest.fixture
def sites_laea():
    """Three sites inside the raster, in EPSG:3035."""
    import geopandas as gpd
    from shapely.geometry import Point

    return gpd.GeoDataFrame(
        {config.SITE_ID: ["A01", "B02", "C03"]},
        geometry=[
            Point(4_001_500, 3_003_000),  # left half, touches nodata quadrant
            Point(4_004_500, 3_003_000),  # right half
            Point(4_003_000, 3_001_500),  # on the 40/80 edge
        ],
        crs=config.CRS_LAEA,
    )


@pytest.fixture
def sites_file(tmp_path, sites_laea):
    """Sites written to a GeoPackage in WGS84."""
    path = tmp_path / "sites.gpkg"
    sites_laea.to_crs(config.CRS_WGS84).to_file(path, driver="GPKG")
    return path


@pytest.fixture
def boundary_file(tmp_path):
    """City boundary whose centroid is (4_003_000, 3_004_000) in EPSG:3035."""
    import geopandas as gpd
    from shapely.geometry import box

    path = tmp_path / "boundary.gpkg"
    gpd.GeoDataFrame(
        {"name": ["city"]},
        geometry=[box(4_002_000, 3_003_000, 4_004_000, 3_005_000)],
        crs=config.CRS_LAEA,
    ).to_file(path, driver="GPKG")
    return path


@pytest.fixture
def urbanisation_df():
    """Per-site metrics for 6 sites, as written by s01_urbanisation."""
    rng = np.random.default_rng(7)
    n = 6
    df = pd.DataFrame({
        config.SITE_ID: [f"S{i:02d}" for i in range(1, n + 1)],
        "lon": rng.uniform(13.3, 13.5, n),
        "lat": rng.uniform(52.4, 52.6, n),
        config.DISTANCE_PREDICTOR: np.linspace(500, 8000, n),
    })
    for radius, col in config.IMD_PREDICTORS.items():
        df[col] = np.linspace(70, 5, n) + rng.normal(0, 2, n)
    return df


@pytest.fixture
def campaigns_df():
    """Three sampling campaigns."""
    return pd.DataFrame({
        config.CAMPAIGN_ID: ["2021a", "2021b", "2022a"],
        "year": [2021, 2021, 2022],
        "start_date": pd.to_datetime(["2021-05-03", "2021-06-14", "2022-05-09"]),
        "end_date": pd.to_datetime(["2021-05-17", "2021-06-28", "2022-05-23"]),
    })


@pytest.fixture
def counts_df(urbanisation_df, campaigns_df):
    """Every site x campaign with Poisson catches; a few forced to zero."""
    rng = np.random.default_rng(11)
    rows = []
    for site in urbanisation_df[config.SITE_ID]:
        for campaign in campaigns_df[config.CAMPAIGN_ID]:
            rows.append({
                config.SITE_ID: site,
                config.CAMPAIGN_ID: campaign,
                config.BLACK: int(rng.poisson(8)),
                config.RED: int(rng.poisson(5)),
            })
    df = pd.DataFrame(rows)
    df.loc[[0, 7], [config.BLACK, config.RED]] = 0
    return df


@pytest.fixture
def campaigns_file(tmp_path, campaigns_df):
    """Campaign dates written as ISO strings, the way they arrive on disk."""
    path = tmp_path / "campaign_dates.csv"
    campaigns_df.assign(
        start_date=campaigns_df["start_date"].dt.strftime("%Y-%m-%d"),
        end_date=campaigns_df["end_date"].dt.strftime("%Y-%m-%d"),
    ).to_csv(path, index=False)
    return path


@pytest.fixture
def model_table(counts_df, campaigns_file, urbanisation_df):
    """Model table built from the synthetic inputs, no site excluded."""
    from morph_urban.s02_counts import build_model_table, load_campaigns
    return build_model_table(
        counts_df, load_campaigns(campaigns_file), urbanisation_df, excluded_sites=[]
    )


@pytest.fixture
def fake_posterior():
    """
    Factory for small synthetic posteriors shaped like a fitted model.

    Usage: fake_posterior(n_sites, n_campaigns, family, intercept=..., b=...)
    """
    import arviz as az

    def _make(n_sites, n_campaigns, family="binomial", intercept=0.3, b=-0.5,
              re_scale=0.2, chains=2, draws=50, seed=0):
        rng = np.random.default_rng(seed)
        shape = (chains, draws)
        posterior = {
            "Intercept": intercept + rng.normal(0, 0.05, shape),
            "b": b + rng.normal(0, 0.05, shape),
            "sd_site": np.abs(rng.normal(re_scale, 0.02, shape)),
            "r_site": rng.normal(0, re_scale, shape + (n_sites,)),
            "r_campaign": rng.normal(0, re_scale, shape + (n_campaigns, 2)),
        }
        if family == "beta_binomial":
            posterior["phi"] = rng.gamma(50.0, 1.0, shape)
        return az.from_dict(
            posterior=posterior,
            coords={
                "site": np.arange(n_sites),
                "campaign": np.arange(n_campaigns),
                "effect": ["Intercept", "slope"],
            },
            dims={"r_site": ["site"], "r_campaign": ["campaign", "effect"]},
        )

    return _make
