"""Assemble per-variable training tables from samples and covariates."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger

from geostack.data.samples import SampleStore
from geostack.errors import DataError


@dataclass
class LabeledTable:
    """
    Complete rows for one target variable.

    Attributes:
        variable: Target variable name
        X: Covariates, one column per grid band in grid order
        y: Labels (1 present, 0 absent)
        sample_index: Row labels of the kept samples in the original table
    """
    variable: str
    X: pd.DataFrame
    y: np.ndarray
    sample_index: pd.Index

    def __len__(self) -> int:
        return len(self.y)

    @property
    def feature_names(self) -> list[str]:
        return list(self.X.columns)


def build_dataset(samples: SampleStore, covariates: pd.DataFrame, variable: str) -> LabeledTable:
    """
    Join labels with covariates and drop incomplete rows.

    Args:
        samples: Sample store
        covariates: Covariate vectors aligned row-for-row with `samples`
        variable: Target variable

    Raises:
        DataError: If lengths differ or no complete rows remain
    """
    if len(covariates) != len(samples):
        raise DataError(
            f"{len(covariates)} covariate rows for {len(samples)} samples"
        )

    labels = samples.labels(variable).to_numpy()
    complete = ~np.isnan(labels) & covariates.notna().all(axis=1).to_numpy()

    n_dropped = int((~complete).sum())
    if n_dropped:
        logger.info(f"  [{variable}] Dropped {n_dropped} rows with missing label or covariates")
    if not complete.any():
        raise DataError(f"No complete rows for '{variable}'")

    return LabeledTable(
        variable=variable,
        X=covariates.loc[complete].reset_index(drop=True),
        y=labels[complete].astype(int),
        sample_index=samples.frame.index[complete],
    )
