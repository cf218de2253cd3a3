"""
Sample Store
============

Point observations of presence/absence land-cover attributes.

Sample tables are CSV files with longitude/latitude columns and one
categorical column per target variable holding "Y" (present), "N" (absent)
or an empty value (missing):

    Lon,Lat,CRP,WCP,HSP
    35.12,-6.43,Y,N,N
    34.98,-6.51,N,,Y

Coordinates are projected to the covariate grid CRS with pyproj before
covariates are extracted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd
from loguru import logger
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from geostack.errors import DataError


PRESENT = "Y"
ABSENT = "N"
LABEL_VALUES = {PRESENT: 1.0, ABSENT: 0.0}


def encode_labels(values: pd.Series, variable: str) -> pd.Series:
    """
    Map "Y"/"N" labels to 1.0/0.0, keeping missing values as NaN.

    Raises:
        DataError: If any non-missing value is not "Y" or "N"
    """
    text = values.astype(object).where(values.notna(), "").astype(str).str.strip().str.upper()
    present = text == PRESENT
    absent = text == ABSENT
    malformed = text[~(present | absent | (text == ""))]
    if len(malformed) > 0:
        examples = ", ".join(sorted(set(malformed))[:5])
        raise DataError(
            f"Column '{variable}' has {len(malformed)} malformed labels "
            f"(expected Y/N): {examples}"
        )

    encoded = np.where(present, LABEL_VALUES[PRESENT], np.where(absent, LABEL_VALUES[ABSENT], np.nan))
    return pd.Series(encoded, index=values.index, name=variable)


@dataclass
class SampleStore:
    """
    Point observations with coordinates and per-variable labels.

    Attributes:
        frame: Raw sample table
        target_variables: Names of the label columns
        lon_col: Longitude column name
        lat_col: Latitude column name
        crs: CRS of the `x`/`y` columns once projected (None before projection)
    """
    frame: pd.DataFrame
    target_variables: list[str]
    lon_col: str = "Lon"
    lat_col: str = "Lat"
    crs: str | None = None
    _labels: dict[str, pd.Series] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        missing = [
            col for col in [self.lon_col, self.lat_col, *self.target_variables]
            if col not in self.frame.columns
        ]
        if missing:
            raise DataError(f"Sample table is missing columns: {', '.join(missing)}")

        for variable in self.target_variables:
            self._labels[variable] = encode_labels(self.frame[variable], variable)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def x(self) -> np.ndarray:
        if "x" not in self.frame.columns:
            raise DataError("Samples have not been projected. Call project() first.")
        return self.frame["x"].to_numpy(dtype=float)

    @property
    def y(self) -> np.ndarray:
        if "y" not in self.frame.columns:
            raise DataError("Samples have not been projected. Call project() first.")
        return self.frame["y"].to_numpy(dtype=float)

    def labels(self, variable: str) -> pd.Series:
        """Labels for one target variable: 1.0 present, 0.0 absent, NaN missing."""
        if variable not in self._labels:
            raise DataError(f"Unknown target variable '{variable}'")
        return self._labels[variable]

    def project(self, dst_crs: str, src_crs: str = "EPSG:4326") -> SampleStore:
        """
        Project longitude/latitude to the grid CRS, adding `x` and `y` columns.

        Args:
            dst_crs: Target CRS (anything pyproj understands)
            src_crs: CRS of the longitude/latitude columns

        Returns:
            self
        """
        try:
            transformer = Transformer.from_crs(CRS.from_user_input(src_crs), CRS.from_user_input(dst_crs), always_xy=True)
        except CRSError as e:
            raise DataError(f"Cannot project samples from {src_crs} to {dst_crs}: {e}") from e

        lon = pd.to_numeric(self.frame[self.lon_col], errors="coerce").to_numpy(dtype=float)
        lat = pd.to_numeric(self.frame[self.lat_col], errors="coerce").to_numpy(dtype=float)
        x, y = transformer.transform(lon, lat)

        self.frame = self.frame.assign(x=np.asarray(x, dtype=float), y=np.asarray(y, dtype=float))
        self.crs = str(dst_crs)
        logger.debug(f"Projected {len(self.frame)} samples to {dst_crs}")
        return self

    def summary(self) -> dict[str, dict[str, int]]:
        """Present/absent/missing counts per target variable."""
        counts = {}
        for variable in self.target_variables:
            labels = self._labels[variable]
            counts[variable] = {
                "present": int((labels == 1.0).sum()),
                "absent": int((labels == 0.0).sum()),
                "missing": int(labels.isna().sum()),
            }
        return counts


def read_samples(
    path: str | Path,
    target_variables: list[str],
    lon_col: str = "Lon",
    lat_col: str = "Lat",
) -> SampleStore:
    """
    Read a sample table from CSV.

    Args:
        path: CSV file with coordinate and label columns
        target_variables: Label columns to load (e.g. ["CRP", "WCP", "HSP"])
        lon_col: Longitude column name
        lat_col: Latitude column name

    Returns:
        SampleStore with encoded labels

    Raises:
        DataError: If the file cannot be read or required columns are absent
    """
    path = Path(path)
    try:
        frame = pd.read_csv(path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataError(f"Cannot read sample table {path}: {e}") from e

    store = SampleStore(
        frame=frame,
        target_variables=list(target_variables),
        lon_col=lon_col,
        lat_col=lat_col,
    )
    logger.info(f"Loaded {len(store)} samples from {path}")
    for variable, counts in store.summary().items():
        logger.info(
            f"  [{variable}] present={counts['present']} "
            f"absent={counts['absent']} missing={counts['missing']}"
        )
    return store
