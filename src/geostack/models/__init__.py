"""
Machine Learning Models
=======================

Base classifiers and the stacking meta-learner for presence/absence mapping.

1. Base models: one classifier per algorithm, each tuned under its own
   validation strategy on the Train split
2. Meta-learner: elastic-net logistic regression on the base models'
   Test split probabilities
"""

from geostack.models.validation import (
    CrossValidation,
    RepeatedCrossValidation,
    OutOfBag,
    ValidationStrategy,
    validation_from_dict,
)
from geostack.models.classifiers import (
    BaseClassifier,
    ClassifierConfig,
    CLASSIFIER_REGISTRY,
    create_classifier,
    StepwiseGLM,
    RandomForest,
    GradientBoosting,
    NeuralNet,
    XGBoost,
)
from geostack.models.stacking import (
    ENSEMBLE,
    StackedModel,
    StackingTrainer,
    base_prediction_matrix,
)

__all__ = [
    "CrossValidation",
    "RepeatedCrossValidation",
    "OutOfBag",
    "ValidationStrategy",
    "validation_from_dict",
    "BaseClassifier",
    "ClassifierConfig",
    "CLASSIFIER_REGISTRY",
    "create_classifier",
    "StepwiseGLM",
    "RandomForest",
    "GradientBoosting",
    "NeuralNet",
    "XGBoost",
    "ENSEMBLE",
    "StackedModel",
    "StackingTrainer",
    "base_prediction_matrix",
]
