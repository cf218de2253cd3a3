"""
Spatial Prediction
==================

Grid-wide probability maps, presence masks and their GeoTIFF output.
"""

from geostack.spatial.predictor import (
    MASK_NODATA,
    SpatialMap,
    SpatialPredictor,
    mask_from_probability,
)
from geostack.spatial.writer import write_mask, write_probability_stack

__all__ = [
    "MASK_NODATA",
    "SpatialMap",
    "SpatialPredictor",
    "mask_from_probability",
    "write_mask",
    "write_probability_stack",
]
