"""
Site Urbanisation Metrics
=========================
Mean imperviousness (Copernicus IMD) within seven buffer radii around
each trapping site, plus distance to the centroid of the city boundary.

Prerequisite corrections:
  - Sites are reprojected to the raster CRS before buffering; buffering
    in lon/lat degrees gives non-uniform buffer areas.
  - The IMD "outside area" value (255) is passed to zonal_stats as the
    nodata sentinel, regardless of what the GeoTIFF header declares.
  - Buffers are clipped to the raster extent before aggregation;
    rasterstats reads the area past the edge as 0, not as nodata.

Output: data/derived/site_urbanisation.csv
"""
from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from pyproj import CRS
from rasterstats import zonal_stats
from shapely.geometry import Point, Polygon, box

from . import config
from .file_utils import should_skip_file

logger = logging.getLogger(__name__)


def load_sites(path: Path) -> gpd.GeoDataFrame:
    """Load site points with their identifier."""
    if not path.exists():
        raise FileNotFoundError(f"Sites layer not found: {path}")

    sites = gpd.read_file(path)
    if sites.crs is None:
        raise ValueError(f"Sites layer has no CRS defined: {path}")
    if config.SITE_ID not in sites.columns:
        raise ValueError(f"Sites layer has no '{config.SITE_ID}' column: {path}")

    sites[config.SITE_ID] = sites[config.SITE_ID].astype(str)
    return sites


def project_sites(sites: gpd.GeoDataFrame, crs) -> gpd.GeoDataFrame:
    """
    Reproject sites to a projected CRS.

    Raises:
        ValueError: if ``crs`` is geographic (units of degrees)
    """
    target = CRS.from_user_input(crs)
    if not target.is_projected:
        raise ValueError(
            f"Buffers need a projected CRS in metres, got {target.to_string()}"
        )
    if sites.crs != target:
        logger.info("Reprojecting sites from %s to %s", sites.crs, target.to_string())
        sites = sites.to_crs(target)
    return sites


def urban_centroid(boundary_path: Path, crs) -> Point:
    """Centroid of the dissolved city boundary, in ``crs``."""
    if not boundary_path.exists():
        raise FileNotFoundError(f"Boundary layer not found: {boundary_path}")

    boundary = gpd.read_file(boundary_path)
    if boundary.crs is None:
        raise ValueError(f"Boundary layer has no CRS defined: {boundary_path}")

    boundary = boundary.to_crs(crs)
    return boundary.geometry.union_all().centroid


def site_buffers(sites: gpd.GeoDataFrame, radius: float) -> gpd.GeoSeries:
    """Circular buffers of ``radius`` (CRS units) around each site."""
    return sites.geometry.buffer(radius, resolution=config.BUFFER_RESOLUTION)


def raster_footprint(raster_path: Path) -> Polygon:
    """
    Extent of the raster, pulled in by a thousandth of a cell.

    Geometries clipped to it never reach past the last row or column, so
    zonal_stats never reads its zero-filled boundless area.
    """
    with rasterio.open(raster_path) as src:
        left, bottom, right, top = src.bounds
        eps = 1e-3 * min(src.res)
    return box(left + eps, bottom + eps, right - eps, top - eps)


def buffer_mean_imperviousness(
    buffers: gpd.GeoSeries,
    raster_path: Path,
    nodata: float = config.IMD_NODATA,
    footprint: Polygon | None = None,
) -> np.ndarray:
    """
    Mean raster value of all cells touching each buffer.

    Buffers are clipped to the raster footprint first, so cells beyond
    the raster edge never enter the mean. Cells equal to ``nodata`` are
    excluded. Buffers entirely off the raster, or covering only nodata
    cells, get NaN.
    """
    footprint = raster_footprint(raster_path) if footprint is None else footprint
    clipped = buffers.intersection(footprint)
    inside = ~(clipped.isna() | clipped.is_empty).to_numpy()

    means = np.full(len(buffers), np.nan)
    if not inside.any():
        return means

    zs = zonal_stats(
        clipped[inside],
        str(raster_path),
        stats="mean",
        nodata=nodata,
        all_touched=True,
        geojson_out=False,
    )
    means[inside] = [z["mean"] if z["mean"] is not None else np.nan for z in zs]
    return means


def compute_site_urbanisation(
    sites: gpd.GeoDataFrame,
    raster_path: Path,
    boundary_path: Path,
    radii: list[int] | None = None,
) -> pd.DataFrame:
    """
    Build the per-site urbanisation table.

    Args:
        sites: Site points (any CRS)
        raster_path: Imperviousness GeoTIFF (projected CRS)
        boundary_path: City boundary polygon layer
        radii: Buffer radii in metres (default: config.BUFFER_RADII_M)

    Returns:
        DataFrame sorted by site_id with columns:
        site_id, lon, lat, dist_centre, imd_{r}m ...
    """
    radii = radii if radii is not None else config.BUFFER_RADII_M

    with rasterio.open(raster_path) as src:
        raster_crs = src.crs
        if src.nodata is not None and src.nodata != config.IMD_NODATA:
            logger.warning(
                "Raster declares nodata=%s, using %s instead",
                src.nodata, config.IMD_NODATA,
            )
    footprint = raster_footprint(raster_path)

    sites = sites.sort_values(config.SITE_ID).reset_index(drop=True)
    projected = project_sites(sites, raster_crs)
    geographic = sites.to_crs(config.CRS_WGS84)

    centre = urban_centroid(boundary_path, projected.crs)

    result = pd.DataFrame({
        config.SITE_ID: sites[config.SITE_ID].values,
        "lon": geographic.geometry.x.values,
        "lat": geographic.geometry.y.values,
        config.DISTANCE_PREDICTOR: projected.geometry.distance(centre).values,
    })

    for radius in radii:
        buffers = site_buffers(projected, radius)
        result[f"imd_{radius}m"] = buffer_mean_imperviousness(
            buffers, raster_path, footprint=footprint
        )
        n_missing = int(result[f"imd_{radius}m"].isna().sum())
        if n_missing:
            logger.warning("%d sites have no valid IMD cells within %d m", n_missing, radius)
        print(f"  ✓ {radius:>5} m buffers: mean IMD {result[f'imd_{radius}m'].mean():.1f}%")

    return result


def write_urbanisation_table(df: pd.DataFrame, path: Path) -> None:
    """Write the site table with a fixed float format so reruns are byte-identical."""
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, float_format="%.6f", lineterminator="\n")


def main() -> None:
    """Main execution: compute urbanisation metrics for all sites."""
    print("=" * 60)
    print("Site Urbanisation Metrics")
    print("=" * 60)

    out_path = config.URBANISATION_CSV
    if should_skip_file(out_path):
        print(f"\n✓ Already exists: {out_path.name}")
        print(f"Delete {out_path.name} to recompute.")
        return

    print("\nLoading sites...")
    sites = load_sites(config.SITES_PATH)
    print(f"  Found {len(sites)} sites")

    print("\nAggregating imperviousness...")
    df = compute_site_urbanisation(sites, config.IMD_PATH, config.BOUNDARY_PATH)

    write_urbanisation_table(df, out_path)
    print(f"\n✓ Saved: {out_path.name} ({len(df)} sites)")

    print("\n" + "=" * 60)
    print("Urbanisation metrics complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
