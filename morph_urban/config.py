"""
Configuration for the urbanisation / colour-morph pipeline.

Note on the imperviousness raster:
    Copernicus HRL Imperviousness Density (IMD) is delivered in
    ETRS89-LAEA (EPSG:3035) as uint8 percentages 0-100. The value 255
    marks cells outside the mapped area. Some tiles declare no nodata
    at all, so the sentinel is set here and always passed explicitly;
    otherwise border buffers average in 255s and are biased upwards.

Note on projections:
    Buffers are built in the raster CRS, which must be projected.
    Buffering lon/lat points with a radius in degrees gives ellipses
    whose area shrinks with latitude.
"""
from pathlib import Path

# ─── Paths ───────────────────────────────────────────────────────
ROOT = Path(__file__).parent.parent
DATA_DIR = ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
DERIVED_DIR = DATA_DIR / "derived"
MODELS_DIR = DATA_DIR / "models"
OUTPUT_DIR = ROOT / "output"
PLOTS_DIR = OUTPUT_DIR / "plots"

# Inputs
SITES_PATH = RAW_DIR / "sites.gpkg"
BOUNDARY_PATH = RAW_DIR / "city_boundary.gpkg"
IMD_PATH = RAW_DIR / "IMD_2018_010m.tif"
COUNTS_PATH = RAW_DIR / "trap_counts.csv"
CAMPAIGNS_PATH = RAW_DIR / "campaigns.csv"

# Derived
URBANISATION_CSV = DERIVED_DIR / "site_urbanisation.csv"

# ─── Spatial ─────────────────────────────────────────────────────
CRS_WGS84 = "EPSG:4326"
CRS_LAEA = "EPSG:3035"  # native CRS of the Copernicus IMD product

IMD_NODATA = 255

# Buffer radii in metres (7 spatial scales)
BUFFER_RADII_M = [100, 250, 500, 1000, 1500, 2000, 3000]

# Segments per quarter circle; 64 keeps the polygon area within 0.01%
# of pi * r^2.
BUFFER_RESOLUTION = 64

# ─── Data columns ────────────────────────────────────────────────
SITE_ID = "site_id"
CAMPAIGN_ID = "campaign_id"
BLACK = "n_black"  # black-legged morph (response "successes")
RED = "n_red"      # red-legged morph
TOTAL = "total"

COUNT_COLUMNS = [SITE_ID, CAMPAIGN_ID, BLACK, RED]
CAMPAIGN_COLUMNS = [CAMPAIGN_ID, "year", "start_date", "end_date"]

# Sites kept in the urbanisation table but never modelled.
EXCLUDED_SITES = ["T14"]

# ─── Predictors ──────────────────────────────────────────────────
DISTANCE_PREDICTOR = "dist_centre"
IMD_PREDICTORS = {r: f"imd_{r}m" for r in BUFFER_RADII_M}
PREDICTORS = [DISTANCE_PREDICTOR] + list(IMD_PREDICTORS.values())

PREDICTOR_LABELS = {
    DISTANCE_PREDICTOR: "Distance to city centre (m)",
    **{col: f"Imperviousness within {r} m (%)" for r, col in IMD_PREDICTORS.items()},
}

FAMILIES = ["binomial", "beta_binomial"]

# ─── Sampler ─────────────────────────────────────────────────────
SEED = 2023

SAMPLER = {
    "draws": 2000,
    "tune": 2000,
    "chains": 4,
    "cores": 4,
    "target_accept": 0.95,
}

# Fixed priors (logit scale). sd terms use half Student-t(3, 0, 2.5),
# the phi prior is the weakly informative Gamma(0.01, 0.01).
PRIORS = {
    "intercept_sigma": 2.5,
    "slope_sigma": 1.0,
    "sd_nu": 3,
    "sd_sigma": 2.5,
    "lkj_eta": 2.0,
    "phi_alpha": 0.01,
    "phi_beta": 0.01,
}

# ─── Cross-validation ────────────────────────────────────────────
KFOLD_K = 10
KFOLD_SEED = 2023

# ─── Reporting ───────────────────────────────────────────────────
HDI_PROB = 0.95
