"""
Covariate Grid
==============

Multi-band covariate raster aligned to a single coordinate reference.

The grid is a stack of GeoTIFFs sharing shape, transform and CRS. Bands are
kept in a fixed order (sorted file names, then band index within each file),
and that order is the covariate order used for both training and grid-wide
prediction.

Nodata values are converted to NaN on load, so a pixel is valid only when
every band is finite.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import rasterio
from affine import Affine
from loguru import logger
from pyproj import CRS
from rasterio.errors import RasterioIOError
from rasterio.transform import rowcol

from geostack.errors import DataError, ShapeError


def same_crs(a: str | None, b: str | None) -> bool:
    """Compare two CRS definitions (WKT, EPSG code or PROJ string)."""
    if a is None or b is None:
        return a is None and b is None
    return CRS.from_user_input(a) == CRS.from_user_input(b)


@dataclass
class CovariateGrid:
    """
    Covariate raster stack.

    Attributes:
        data: Array of shape (bands, height, width), NaN where nodata
        band_names: Covariate name per band, in band order
        crs: Coordinate reference system (WKT or any pyproj-readable string)
        transform: Affine pixel-to-map transform
    """
    data: np.ndarray
    band_names: list[str]
    crs: str | None
    transform: Affine

    def __post_init__(self) -> None:
        if self.data.ndim != 3:
            raise ShapeError(f"Grid data must be (bands, height, width), got {self.data.shape}")
        if len(self.band_names) != self.data.shape[0]:
            raise ShapeError(
                f"{len(self.band_names)} band names for {self.data.shape[0]} bands"
            )
        if len(set(self.band_names)) != len(self.band_names):
            raise ShapeError(f"Duplicate covariate names: {self.band_names}")

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width) of the grid."""
        return self.data.shape[1], self.data.shape[2]

    @property
    def n_pixels(self) -> int:
        return self.data.shape[1] * self.data.shape[2]

    @classmethod
    def from_files(cls, paths: Sequence[str | Path]) -> CovariateGrid:
        """
        Stack GeoTIFFs into one grid.

        Single-band files are named after the file stem; multi-band files use
        the band description when present, else `<stem>_b<index>`.

        Raises:
            DataError: If a file cannot be read or CRSs differ
            ShapeError: If files differ in shape or transform
        """
        if not paths:
            raise DataError("No covariate rasters given")

        arrays: list[np.ndarray] = []
        names: list[str] = []
        crs = None
        transform = None
        shape = None

        for path in paths:
            path = Path(path)
            try:
                with rasterio.open(path) as src:
                    arr = src.read().astype("float32")
                    nodata = src.nodata
                    file_crs = src.crs.to_wkt() if src.crs else None
                    file_transform = src.transform
                    descriptions = src.descriptions
            except RasterioIOError as e:
                raise DataError(f"Cannot read covariate raster {path}: {e}") from e

            if nodata is not None and not np.isnan(nodata):
                arr[arr == nodata] = np.nan

            if shape is None:
                shape, crs, transform = arr.shape[1:], file_crs, file_transform
            else:
                if arr.shape[1:] != shape or not file_transform.almost_equals(transform):
                    raise ShapeError(f"{path.name} is not aligned with the first covariate raster")
                if not same_crs(file_crs, crs):
                    raise DataError(f"{path.name} has a different CRS from the first covariate raster")

            if arr.shape[0] == 1:
                names.append(path.stem)
            else:
                names.extend(
                    desc if desc else f"{path.stem}_b{i + 1}"
                    for i, desc in enumerate(descriptions)
                )
            arrays.append(arr)

        grid = cls(
            data=np.concatenate(arrays, axis=0),
            band_names=names,
            crs=crs,
            transform=transform,
        )
        logger.info(
            f"Loaded covariate grid: {len(names)} bands, "
            f"{grid.shape[0]}x{grid.shape[1]} pixels"
        )
        return grid

    @classmethod
    def from_directory(cls, directory: str | Path, pattern: str = "*.tif") -> CovariateGrid:
        """Stack every raster matching `pattern` in `directory`, in sorted name order."""
        directory = Path(directory)
        if not directory.is_dir():
            raise DataError(f"Covariate directory not found: {directory}")
        paths = sorted(directory.glob(pattern))
        if not paths:
            raise DataError(f"No rasters matching '{pattern}' in {directory}")
        return cls.from_files(paths)

    def extract(self, x: np.ndarray, y: np.ndarray) -> pd.DataFrame:
        """
        Covariate vectors at map coordinates.

        Args:
            x: Easting in grid CRS
            y: Northing in grid CRS

        Returns:
            DataFrame (len(x) rows, one column per band). Points outside the
            grid or with non-finite coordinates get NaN.
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        values = np.full((len(x), len(self.band_names)), np.nan, dtype="float32")

        finite = np.isfinite(x) & np.isfinite(y)
        if finite.any():
            rows, cols = rowcol(self.transform, x[finite], y[finite])
            rows = np.asarray(rows, dtype=int)
            cols = np.asarray(cols, dtype=int)
            height, width = self.shape
            inside = (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)

            target = np.flatnonzero(finite)[inside]
            values[target] = self.data[:, rows[inside], cols[inside]].T

        return pd.DataFrame(values, columns=self.band_names)

    def pixel_table(self) -> tuple[pd.DataFrame, np.ndarray]:
        """
        All pixels as a covariate table.

        Returns:
            (DataFrame of shape (n_pixels, bands) in row-major pixel order,
             boolean mask of pixels with every covariate finite)
        """
        flat = self.data.reshape(self.data.shape[0], -1).T
        valid = np.all(np.isfinite(flat), axis=1)
        return pd.DataFrame(flat, columns=self.band_names), valid

    def check_compatible(self, feature_names: Sequence[str], crs: str | None) -> None:
        """
        Reject models trained on a different covariate schema or CRS.

        Raises:
            ShapeError: If covariate names or order differ
            DataError: If the CRS differs
        """
        if list(feature_names) != list(self.band_names):
            expected = set(feature_names)
            actual = set(self.band_names)
            if expected == actual:
                raise ShapeError("Covariate order differs between training table and grid")
            raise ShapeError(
                f"Covariate mismatch: missing from grid {sorted(expected - actual)}, "
                f"unknown to model {sorted(actual - expected)}"
            )
        if not same_crs(crs, self.crs):
            raise DataError("Model was trained on samples in a different CRS from the grid")
