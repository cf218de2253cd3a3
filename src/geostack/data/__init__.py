"""
Data Inputs
===========

Sample observations, the covariate grid and the train/test splits drawn
from them.
"""

from geostack.data.samples import SampleStore, read_samples, encode_labels
from geostack.data.grid import CovariateGrid
from geostack.data.splits import SplitAssignment, stratified_split, DEFAULT_SEED
from geostack.data.dataset import LabeledTable, build_dataset

__all__ = [
    "SampleStore",
    "read_samples",
    "encode_labels",
    "CovariateGrid",
    "SplitAssignment",
    "stratified_split",
    "DEFAULT_SEED",
    "LabeledTable",
    "build_dataset",
]
