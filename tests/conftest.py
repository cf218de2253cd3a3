from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin

from geostack.data.grid import CovariateGrid
from geostack.data.samples import SampleStore
from geostack.models.classifiers import ClassifierConfig
from geostack.models.validation import CrossValidation, OutOfBag, RepeatedCrossValidation


GRID_CRS = "EPSG:4326"
GRID_TRANSFORM = from_origin(30.0, -5.0, 0.01, 0.01)
GRID_SIZE = 20


def make_covariates(seed: int = 0) -> np.ndarray:
    """Three covariate bands: an east-west gradient, a north-south gradient, noise."""
    rng = np.random.default_rng(seed)
    cols, rows = np.meshgrid(np.arange(GRID_SIZE), np.arange(GRID_SIZE))
    data = np.stack([
        cols / (GRID_SIZE - 1),
        rows / (GRID_SIZE - 1),
        rng.uniform(size=(GRID_SIZE, GRID_SIZE)),
    ]).astype("float32")
    data[1, 0, 0] = np.nan
    return data


def write_tif(path: Path, array: np.ndarray, crs: str = GRID_CRS, transform=GRID_TRANSFORM, nodata=None) -> Path:
    if array.ndim == 2:
        array = array[np.newaxis]
    with rasterio.open(
        path, "w",
        driver="GTiff",
        height=array.shape[1],
        width=array.shape[2],
        count=array.shape[0],
        dtype=array.dtype.name,
        crs=crs,
        transform=transform,
        nodata=nodata,
    ) as dst:
        dst.write(array)
    return path


def make_samples_frame(grid: CovariateGrid, n: int = 180, seed: int = 1) -> pd.DataFrame:
    """
    Points at random pixel centres. CRP follows the east-west gradient,
    HSP follows the north-south gradient, WCP has a few missing labels.
    """
    rng = np.random.default_rng(seed)
    rows = rng.integers(0, GRID_SIZE, size=n)
    cols = rng.integers(0, GRID_SIZE, size=n)
    lon, lat = rasterio.transform.xy(grid.transform, rows, cols)
    lon = np.asarray(lon)
    lat = np.asarray(lat)

    east = cols / (GRID_SIZE - 1)
    south = rows / (GRID_SIZE - 1)
    crp = np.where(east + rng.normal(0, 0.15, n) > 0.5, "Y", "N")
    hsp = np.where(south + rng.normal(0, 0.15, n) > 0.4, "Y", "N")
    wcp = np.where(east + south + rng.normal(0, 0.2, n) > 1.0, "Y", "N").astype(object)
    wcp[:5] = None

    return pd.DataFrame({"Lon": lon, "Lat": lat, "CRP": crp, "WCP": wcp, "HSP": hsp})


@pytest.fixture
def grid() -> CovariateGrid:
    return CovariateGrid(
        data=make_covariates(),
        band_names=["east", "north", "noise"],
        crs=GRID_CRS,
        transform=GRID_TRANSFORM,
    )


@pytest.fixture
def samples_frame(grid) -> pd.DataFrame:
    return make_samples_frame(grid)


@pytest.fixture
def samples(samples_frame, grid) -> SampleStore:
    store = SampleStore(frame=samples_frame, target_variables=["CRP", "WCP", "HSP"])
    return store.project(grid.crs, src_crs=GRID_CRS)


@pytest.fixture
def grid_dir(tmp_path) -> Path:
    """Covariate GeoTIFFs on disk, one band per file."""
    directory = tmp_path / "grids"
    directory.mkdir()
    data = make_covariates()
    for name, band in zip(["a_east", "b_north", "c_noise"], data):
        band = np.where(np.isnan(band), -9999.0, band).astype("float32")
        write_tif(directory / f"{name}.tif", band, nodata=-9999.0)
    return directory


@pytest.fixture
def fast_classifiers() -> list[ClassifierConfig]:
    """Small grids and few folds so the full pipeline runs in seconds."""
    return [
        ClassifierConfig(
            algorithm="glm",
            validation=CrossValidation(folds=3),
            extra_params={"selection_folds": 3},
        ),
        ClassifierConfig(
            algorithm="rf",
            validation=OutOfBag(),
            param_grid={"max_features": ["sqrt", 1.0]},
            extra_params={"n_estimators": 25},
        ),
        ClassifierConfig(
            algorithm="gbm",
            validation=RepeatedCrossValidation(folds=3, repeats=2),
            param_grid={"n_estimators": [20], "max_depth": [2]},
        ),
        ClassifierConfig(
            algorithm="nnet",
            validation=CrossValidation(folds=3),
            param_grid={"mlp__hidden_layer_sizes": [(3,)], "mlp__alpha": [1e-4]},
            extra_params={"max_iter": 300},
        ),
    ]
