"""
Base Classifiers
================

One wrapper class per algorithm, all exposing the same interface:

- fit(X, y): tune under the algorithm's validation strategy and refit
- predict_probability(X): probability of presence per row
- predict_label(X): 1 (present) / 0 (absent) at a 0.5 cutoff

Supported algorithms:
- Stepwise GLM (glm): backward feature selection + logistic regression, 10-fold CV
- Random Forest (rf): out-of-bag validation over max_features
- Gradient Boosting (gbm): 10-fold CV repeated 5 times
- Neural Net (nnet): single hidden layer, size/decay grid, 10-fold CV
- XGBoost (xgb): 10-fold CV
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.base import BaseEstimator
from sklearn.ensemble import GradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBClassifier

from geostack.errors import FitError, ShapeError
from geostack.models.selection import BackwardElimination
from geostack.models.tuning import TuningResult, tune
from geostack.models.validation import (
    CrossValidation,
    OutOfBag,
    RepeatedCrossValidation,
    ValidationStrategy,
    describe,
    effective_folds,
    validation_from_dict,
)


class BaseClassifier(ABC):
    """
    Presence/absence classifier over a fixed covariate vector.

    Subclasses provide the estimator, its default validation strategy and
    its default hyperparameter grid. Fitting, feature checks and probability
    extraction are shared.

    Attributes:
        validation: Resampling strategy used for tuning
        param_grid: Candidate hyperparameters
        random_state: Seed for the estimator and fold assignment
        n_jobs: Parallel jobs for estimators and grid search
        feature_names_: Covariate order seen at fit time
        tuning_: TuningResult of the last fit
    """

    algorithm: str = ""
    default_validation: ValidationStrategy = CrossValidation(folds=10)
    default_grid: dict[str, list[Any]] = {}

    def __init__(
        self,
        validation: ValidationStrategy | None = None,
        param_grid: dict[str, list[Any]] | None = None,
        random_state: int = 42,
        n_jobs: int | None = None,
        **estimator_params: Any,
    ) -> None:
        self.validation = validation or self.default_validation
        self.param_grid = dict(self.default_grid if param_grid is None else param_grid)
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.estimator_params = estimator_params

        self.feature_names_: list[str] | None = None
        self.tuning_: TuningResult | None = None

    @abstractmethod
    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        """Unfitted scikit-learn compatible estimator."""
        ...

    @property
    def is_fitted(self) -> bool:
        return self.tuning_ is not None

    @property
    def estimator_(self) -> BaseEstimator:
        if self.tuning_ is None:
            raise ValueError(f"{self.algorithm} model not fitted. Call fit() first.")
        return self.tuning_.estimator

    def fit(self, X: pd.DataFrame, y: np.ndarray) -> BaseClassifier:
        """
        Tune and fit on a Train table.

        Args:
            X: Covariate table (columns define the covariate order)
            y: Labels (1 present, 0 absent)

        Raises:
            FitError: On a single-class Train set, an all-missing covariate,
                      missing values, or a failure inside the estimator
        """
        y = np.asarray(y).astype(int)
        classes = np.unique(y)
        if len(classes) < 2:
            raise FitError(f"Train split contains a single class ({classes.tolist()})", algorithm=self.algorithm)

        empty = [col for col in X.columns if X[col].isna().all()]
        if empty:
            raise FitError(f"Covariates entirely missing in Train: {empty}", algorithm=self.algorithm)
        if X.isna().to_numpy().any():
            raise FitError("Train table has missing covariate values", algorithm=self.algorithm)

        logger.info(
            f"    [{self.algorithm}] Tuning with {describe(self.validation)} "
            f"on {len(y)} rows, {X.shape[1]} covariates"
        )
        try:
            self.tuning_ = tune(
                self.build_estimator(y),
                self.param_grid,
                self.validation,
                X.to_numpy(dtype=float),
                y,
                random_state=self.random_state,
                n_jobs=self.n_jobs,
            )
        except FitError as e:
            raise FitError(e.message, algorithm=self.algorithm) from e
        except (ValueError, TypeError, ArithmeticError) as e:
            raise FitError(str(e), algorithm=self.algorithm) from e

        self.feature_names_ = list(X.columns)
        logger.info(
            f"    [{self.algorithm}] {self.tuning_.metric}={self.tuning_.score:.4f} "
            f"params={self.tuning_.params}"
        )
        return self

    def _check_features(self, X: pd.DataFrame) -> np.ndarray:
        if self.feature_names_ is None:
            raise ValueError(f"{self.algorithm} model not fitted. Call fit() first.")
        if list(X.columns) != self.feature_names_:
            raise ShapeError(
                f"[{self.algorithm}] Covariates {list(X.columns)} do not match "
                f"training covariates {self.feature_names_}"
            )
        return X.to_numpy(dtype=float)

    def predict_probability(self, X: pd.DataFrame) -> np.ndarray:
        """Probability of presence for each row."""
        values = self._check_features(X)
        probas = self.estimator_.predict_proba(values)
        present = int(np.flatnonzero(self.estimator_.classes_ == 1)[0])
        return probas[:, present]

    def predict_label(self, X: pd.DataFrame) -> np.ndarray:
        """Predicted label (1 present, 0 absent) for each row."""
        return (self.predict_probability(X) >= 0.5).astype(int)

    def feature_importances(self) -> dict[str, float] | None:
        """Importance per covariate, or None when the estimator does not report one."""
        if not self.is_fitted or not hasattr(self.estimator_, "feature_importances_"):
            return None
        return {
            name: float(imp)
            for name, imp in zip(self.feature_names_, self.estimator_.feature_importances_)
        }

    def summary(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "validation": describe(self.validation),
            "metric": self.tuning_.metric if self.tuning_ else None,
            "score": self.tuning_.score if self.tuning_ else None,
            "params": self.tuning_.params if self.tuning_ else {},
            "feature_importances": self.feature_importances(),
        }

    def __repr__(self) -> str:
        state = "fitted" if self.is_fitted else "unfitted"
        return f"{type(self).__name__}({describe(self.validation)}, {state})"


# Registry of base classifier types by algorithm key
CLASSIFIER_REGISTRY: dict[str, type[BaseClassifier]] = {}


def register_classifier(name: str):
    """Decorator to register a base classifier class."""
    def decorator(cls: type[BaseClassifier]):
        cls.algorithm = name
        CLASSIFIER_REGISTRY[name] = cls
        return cls
    return decorator


@register_classifier("glm")
class StepwiseGLM(BaseClassifier):
    """Logistic regression on covariates kept by backward stepwise elimination."""

    default_validation = CrossValidation(folds=10)
    default_grid: dict[str, list[Any]] = {}

    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        selection_folds = effective_folds(self.estimator_params.get("selection_folds", 5), y)
        return Pipeline([
            ("scale", StandardScaler()),
            ("select", BackwardElimination(
                LogisticRegression(max_iter=1000),
                scoring="roc_auc",
                cv=selection_folds,
                tol=self.estimator_params.get("tol", 0.0),
            )),
            ("glm", LogisticRegression(max_iter=1000)),
        ])

    def selected_covariates(self) -> list[str]:
        """Covariates retained by the stepwise selection."""
        support = self.estimator_.named_steps["select"].get_support()
        return [name for name, keep in zip(self.feature_names_, support) if keep]


@register_classifier("rf")
class RandomForest(BaseClassifier):

    default_validation = OutOfBag()
    default_grid = {"max_features": ["sqrt", 0.5, 1.0]}

    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        return RandomForestClassifier(
            n_estimators=self.estimator_params.get("n_estimators", 500),
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            **{k: v for k, v in self.estimator_params.items() if k != "n_estimators"},
        )


@register_classifier("gbm")
class GradientBoosting(BaseClassifier):

    default_validation = RepeatedCrossValidation(folds=10, repeats=5)
    default_grid = {
        "n_estimators": [50, 100, 150],
        "max_depth": [1, 2, 3],
        "learning_rate": [0.1],
    }

    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        return GradientBoostingClassifier(random_state=self.random_state, **self.estimator_params)


@register_classifier("nnet")
class NeuralNet(BaseClassifier):
    """Single hidden layer perceptron; grid over layer size and weight decay."""

    default_validation = CrossValidation(folds=10)
    default_grid = {
        "mlp__hidden_layer_sizes": [(1,), (3,), (5,)],
        "mlp__alpha": [0.0, 1e-4, 0.1],
    }

    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        return Pipeline([
            ("scale", StandardScaler()),
            ("mlp", MLPClassifier(
                max_iter=self.estimator_params.get("max_iter", 500),
                random_state=self.random_state,
            )),
        ])


@register_classifier("xgb")
class XGBoost(BaseClassifier):

    default_validation = CrossValidation(folds=10)
    default_grid = {
        "n_estimators": [100, 200],
        "max_depth": [3, 6],
        "learning_rate": [0.1],
    }

    def build_estimator(self, y: np.ndarray) -> BaseEstimator:
        return XGBClassifier(
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            eval_metric="logloss",
            **self.estimator_params,
        )


@dataclass
class ClassifierConfig:
    """
    Configuration for one base algorithm.

    Attributes:
        algorithm: Registry key ("glm", "rf", "gbm", "nnet", "xgb")
        validation: Resampling strategy (None = algorithm default)
        param_grid: Hyperparameter grid (None = algorithm default)
        random_state: Random seed for reproducibility
        n_jobs: Number of parallel jobs (None = 1, -1 for all cores)
        extra_params: Fixed estimator parameters
    """
    algorithm: str = "rf"
    validation: ValidationStrategy | None = None
    param_grid: dict[str, list[Any]] | None = None
    random_state: int = 42
    n_jobs: int | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, spec: dict[str, Any], random_state: int = 42) -> ClassifierConfig:
        """
        Parse a config mapping, e.g.

            {"algorithm": "gbm", "validation": {"method": "repeatedcv", "folds": 10, "repeats": 5}}
        """
        validation = spec.get("validation")
        return cls(
            algorithm=spec["algorithm"],
            validation=validation_from_dict(validation) if validation else None,
            param_grid=spec.get("param_grid"),
            random_state=spec.get("random_state", random_state),
            n_jobs=spec.get("n_jobs"),
            extra_params=dict(spec.get("params", {})),
        )

    @classmethod
    def defaults(cls, random_state: int = 42) -> list[ClassifierConfig]:
        """The default algorithm set: stepwise GLM, random forest, boosting, neural net."""
        return [cls(algorithm=name, random_state=random_state) for name in ("glm", "rf", "gbm", "nnet")]


def create_classifier(config: ClassifierConfig) -> BaseClassifier:
    """
    Create an unfitted base classifier from configuration.

    Args:
        config: ClassifierConfig specifying the algorithm and its validation

    Returns:
        Unfitted BaseClassifier
    """
    if config.algorithm not in CLASSIFIER_REGISTRY:
        available = ", ".join(CLASSIFIER_REGISTRY.keys())
        raise ValueError(f"Unknown classifier type: {config.algorithm}. Available: {available}")

    return CLASSIFIER_REGISTRY[config.algorithm](
        validation=config.validation,
        param_grid=config.param_grid,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
        **config.extra_params,
    )
