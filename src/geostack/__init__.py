"""
GeoStack: Ensemble Presence/Absence Mapping
===========================================

GeoStack maps land-cover attributes (cropland, woody vegetation cover,
human settlements) from point survey observations and gridded
remote-sensing covariates. Several base classifiers are blended by an
elastic-net meta-learner, and the blended probability is thresholded at
the balanced ROC cutoff to produce presence masks.

Quick Start
-----------
>>> from geostack import EnsemblePipeline, PipelineConfig
>>>
>>> config = PipelineConfig.from_yaml("configs/ensemble.yaml")
>>> pipeline = EnsemblePipeline(config)
>>> samples, grid = pipeline.load_inputs()
>>> results = pipeline.run(samples, grid)
>>> results["CRP"].roc.threshold

Modules
-------
- geostack.data: Sample store, covariate grid, stratified splits
- geostack.models: Base classifiers and the stacking meta-learner
- geostack.evaluation: ROC evaluation and balanced thresholds
- geostack.spatial: Grid-wide prediction, masks and GeoTIFF output
- geostack.cli: Command-line interface
"""

__version__ = "0.1.0"
__author__ = "GeoStack Team"

from geostack.config import PipelineConfig
from geostack.data import CovariateGrid, SampleStore, read_samples, stratified_split
from geostack.errors import DataError, FitError, GeoStackError, ShapeError, ThresholdError
from geostack.evaluation import evaluate_scores
from geostack.models import StackingTrainer, create_classifier
from geostack.pipeline import EnsemblePipeline, VariableResult, load_bundle, map_bundle

__all__ = [
    "__version__",
    # Config
    "PipelineConfig",
    # Data
    "CovariateGrid",
    "SampleStore",
    "read_samples",
    "stratified_split",
    # Models
    "create_classifier",
    "StackingTrainer",
    # Evaluation
    "evaluate_scores",
    # Pipeline
    "EnsemblePipeline",
    "VariableResult",
    "load_bundle",
    "map_bundle",
    # Errors
    "GeoStackError",
    "DataError",
    "FitError",
    "ShapeError",
    "ThresholdError",
]
