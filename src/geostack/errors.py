"""
Errors
======

Exception taxonomy for the ensemble mapping pipeline.

- DataError: missing or malformed labels, unreadable inputs, CRS mismatch
- FitError: degenerate or failed model fits
- ShapeError: covariate schema mismatch between training table and grid
- ThresholdError: too few Test samples for a stable ROC
"""

from __future__ import annotations


class GeoStackError(Exception):
    """Base class for all pipeline errors."""


class DataError(GeoStackError):
    """Input data is missing, malformed or in the wrong coordinate reference."""


class FitError(GeoStackError):
    """A classifier or meta-model could not be fitted."""

    def __init__(self, message: str, variable: str | None = None, algorithm: str | None = None) -> None:
        self.message = message
        self.variable = variable
        self.algorithm = algorithm
        context = "/".join(part for part in (variable, algorithm) if part)
        super().__init__(f"[{context}] {message}" if context else message)


class ShapeError(GeoStackError):
    """Covariate names or order differ between training and prediction."""


class ThresholdError(GeoStackError):
    """Not enough presence/absence scores to compute a ROC threshold."""
