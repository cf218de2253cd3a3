"""
Spatial Predictor
=================

Applies fitted base classifiers and the stacked meta-model to every pixel of
the covariate grid and derives the presence mask.

Output bands follow the configured base algorithm order, followed by the
ensemble band. Pixels with any missing covariate are NaN in every band and
nodata in the mask.

Probabilities are kept in float64 so the mask is derived from the same
values the balanced threshold was chosen on; they are cast to float32 only
when written to disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
from joblib import Parallel, delayed
from loguru import logger

from geostack.data.grid import CovariateGrid
from geostack.models.classifiers import BaseClassifier
from geostack.models.stacking import ENSEMBLE, StackedModel, base_prediction_matrix


MASK_NODATA = 255
PRESENT = 1
ABSENT = 0


def mask_from_probability(probability: np.ndarray, threshold: float) -> np.ndarray:
    """
    Binary presence mask from a probability map.

    Pixels are PRESENT where probability > threshold, ABSENT where it is not,
    and MASK_NODATA where the probability is NaN.
    """
    probability = np.asarray(probability, dtype=float)
    mask = np.full(probability.shape, MASK_NODATA, dtype="uint8")
    finite = np.isfinite(probability)
    mask[finite] = np.where(probability[finite] > threshold, PRESENT, ABSENT)
    return mask


@dataclass
class SpatialMap:
    """
    Probability bands and presence mask for one target variable.

    Attributes:
        variable: Target variable
        band_names: Algorithm per band (base algorithms, then "ensemble")
        probabilities: float64 array (bands, height, width) of P(present), NaN where nodata
        mask: Presence mask (height, width) or None when no threshold is available
        threshold: Threshold the mask was derived with
    """
    variable: str
    band_names: list[str]
    probabilities: np.ndarray
    mask: np.ndarray | None = None
    threshold: float | None = None

    def band(self, name: str) -> np.ndarray:
        return self.probabilities[self.band_names.index(name)]

    @property
    def ensemble(self) -> np.ndarray | None:
        return self.band(ENSEMBLE) if ENSEMBLE in self.band_names else None

    def with_threshold(self, threshold: float) -> SpatialMap:
        """New map with the mask re-derived from the ensemble band."""
        if self.ensemble is None:
            raise ValueError(f"[{self.variable}] No ensemble band to threshold")
        return SpatialMap(
            variable=self.variable,
            band_names=list(self.band_names),
            probabilities=self.probabilities,
            mask=mask_from_probability(self.ensemble, threshold),
            threshold=threshold,
        )

    def presence_fraction(self) -> float:
        """Share of valid pixels marked present."""
        if self.mask is None:
            return float("nan")
        valid = self.mask != MASK_NODATA
        return float((self.mask[valid] == PRESENT).mean()) if valid.any() else float("nan")


class SpatialPredictor:
    """
    Grid-wide prediction for fitted models.

    Usage:
        predictor = SpatialPredictor(grid)
        spatial_map = predictor.predict_variable(
            "CRP", base_models, stacked, threshold,
            feature_names=table.feature_names, crs=samples.crs,
        )

    Attributes:
        grid: Covariate grid
        chunk_size: Pixels per prediction batch
        n_jobs: Parallel batches (joblib threads)
    """

    def __init__(self, grid: CovariateGrid, chunk_size: int = 250_000, n_jobs: int | None = None) -> None:
        self.grid = grid
        self.chunk_size = chunk_size
        self.n_jobs = n_jobs

    def predict_variable(
        self,
        variable: str,
        base_models: Mapping[str, BaseClassifier],
        stacked: StackedModel | None,
        threshold: float | None,
        feature_names: Sequence[str],
        crs: str | None,
    ) -> SpatialMap:
        """
        Probability bands for every model and the thresholded ensemble mask.

        Args:
            variable: Target variable
            base_models: Fitted base classifiers keyed by algorithm
            stacked: Fitted meta-model (None = base bands only)
            threshold: Balanced threshold (None = no mask)
            feature_names: Covariate order the models were trained with
            crs: CRS of the training sample coordinates

        Raises:
            ShapeError: If the covariate schema differs from the grid's
            DataError: If the CRS differs from the grid's
        """
        self.grid.check_compatible(feature_names, crs)
        if stacked is not None:
            missing = [name for name in stacked.algorithms if name not in base_models]
            if missing:
                raise ValueError(f"[{variable}] Meta-model inputs without base models: {missing}")

        band_names = list(base_models)
        if stacked is not None:
            band_names.append(ENSEMBLE)

        table, valid = self.grid.pixel_table()
        valid_idx = np.flatnonzero(valid)
        probabilities = np.full((len(band_names), self.grid.n_pixels), np.nan)

        logger.info(
            f"  [{variable}] Predicting {len(band_names)} bands over "
            f"{len(valid_idx)}/{self.grid.n_pixels} valid pixels"
        )

        chunks = [
            valid_idx[start:start + self.chunk_size]
            for start in range(0, len(valid_idx), self.chunk_size)
        ]
        results = Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(self._predict_chunk)(table.iloc[idx], base_models, stacked)
            for idx in chunks
        )
        for idx, chunk_probs in zip(chunks, results):
            probabilities[:, idx] = chunk_probs

        probabilities = probabilities.reshape(len(band_names), *self.grid.shape)

        mask = None
        if stacked is not None and threshold is not None:
            mask = mask_from_probability(probabilities[-1], threshold)

        spatial_map = SpatialMap(
            variable=variable,
            band_names=band_names,
            probabilities=probabilities,
            mask=mask,
            threshold=threshold if mask is not None else None,
        )
        if mask is not None:
            logger.info(f"  [{variable}] Presence fraction: {spatial_map.presence_fraction():.3f}")
        return spatial_map

    @staticmethod
    def _predict_chunk(rows, base_models, stacked) -> np.ndarray:
        base = base_prediction_matrix(base_models, rows)
        bands = [base[name].to_numpy() for name in base.columns]
        if stacked is not None:
            bands.append(stacked.predict_probability(base[stacked.algorithms]))
        return np.vstack(bands)
