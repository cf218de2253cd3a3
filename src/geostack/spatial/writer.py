"""GeoTIFF output of probability band stacks and presence masks."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import rasterio
from loguru import logger

from geostack.data.grid import CovariateGrid
from geostack.spatial.predictor import MASK_NODATA, SpatialMap


def _profile(grid: CovariateGrid, count: int, dtype: str, nodata: float | int) -> dict:
    height, width = grid.shape
    return {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": dtype,
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": nodata,
        "interleave": "band",
        "compress": "lzw",
    }


def write_probability_stack(spatial_map: SpatialMap, grid: CovariateGrid, path: str | Path) -> Path:
    """
    Write one float32 band per model, band descriptions set to the algorithm names.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    profile = _profile(grid, len(spatial_map.band_names), "float32", np.nan)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(spatial_map.probabilities.astype("float32"))
        for i, name in enumerate(spatial_map.band_names, start=1):
            dst.set_band_description(i, name)

    logger.info(f"Saved {spatial_map.variable} probabilities ({len(spatial_map.band_names)} bands) to {path}")
    return path


def write_mask(spatial_map: SpatialMap, grid: CovariateGrid, path: str | Path) -> Path:
    """Write the presence mask as uint8 (1 present, 0 absent, 255 nodata)."""
    if spatial_map.mask is None:
        raise ValueError(f"[{spatial_map.variable}] Map has no mask to write")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    profile = _profile(grid, 1, "uint8", MASK_NODATA)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(spatial_map.mask, 1)
        dst.update_tags(threshold=f"{spatial_map.threshold:.6f}", variable=spatial_map.variable)

    logger.info(f"Saved {spatial_map.variable} mask (threshold={spatial_map.threshold:.4f}) to {path}")
    return path
