"""
Stacking Trainer
================

Blends base classifier probabilities into one calibrated probability per
target variable.

Level 1 - Base models:
    - One classifier per algorithm, trained on the Train split
    - Each predicts P(present) for the Test split rows

Level 2 - Meta-learner:
    - Elastic-net logistic regression on the base probabilities only
    - Fitted on the Test split, which the base models never saw
    - C and l1_ratio chosen by stratified k-fold CV on the same Test rows

Architecture:
    covariates --> glm  --> P(present|glm)  --+
    covariates --> rf   --> P(present|rf)   --+
                                              +--> elastic-net logit --> P(present)
    covariates --> gbm  --> P(present|gbm)  --+
    covariates --> nnet --> P(present|nnet) --+
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegressionCV
from sklearn.model_selection import StratifiedKFold

from geostack.errors import FitError, ShapeError
from geostack.models.classifiers import BaseClassifier
from geostack.models.validation import effective_folds


ENSEMBLE = "ensemble"


def base_prediction_matrix(
    models: Mapping[str, BaseClassifier],
    X: pd.DataFrame,
) -> pd.DataFrame:
    """
    Probability of presence from every base model.

    Args:
        models: Fitted base classifiers keyed by algorithm, in column order
        X: Covariate table

    Returns:
        DataFrame with one column per algorithm, rows aligned with X
    """
    return pd.DataFrame(
        {name: model.predict_probability(X) for name, model in models.items()},
        index=X.index,
    )


class StackedModel:
    """
    Fitted meta-learner over base classifier probabilities.

    Attributes:
        variable: Target variable
        algorithms: Base algorithms, in input column order
        estimator: Fitted LogisticRegressionCV
    """

    def __init__(self, variable: str, algorithms: list[str], estimator: LogisticRegressionCV) -> None:
        self.variable = variable
        self.algorithms = list(algorithms)
        self.estimator = estimator

    @property
    def C(self) -> float:
        return float(self.estimator.C_[0])

    @property
    def l1_ratio(self) -> float:
        return float(np.ravel(self.estimator.l1_ratio_)[0])

    def _check_columns(self, base_predictions: pd.DataFrame) -> np.ndarray:
        if list(base_predictions.columns) != self.algorithms:
            raise ShapeError(
                f"[{self.variable}] Meta-model expects columns {self.algorithms}, "
                f"got {list(base_predictions.columns)}"
            )
        return base_predictions.to_numpy(dtype=float)

    def predict_probability(self, base_predictions: pd.DataFrame) -> np.ndarray:
        """Stacked probability of presence, in [0, 1]."""
        values = self._check_columns(base_predictions)
        probas = self.estimator.predict_proba(values)
        present = int(np.flatnonzero(self.estimator.classes_ == 1)[0])
        return probas[:, present]

    def predict_label(self, base_predictions: pd.DataFrame) -> np.ndarray:
        return (self.predict_probability(base_predictions) >= 0.5).astype(int)

    def weights(self) -> dict[str, float]:
        """Meta-learner coefficient per base algorithm."""
        return {
            name: float(coef)
            for name, coef in zip(self.algorithms, self.estimator.coef_.ravel())
        }

    def summary(self) -> dict[str, Any]:
        return {
            "algorithms": self.algorithms,
            "weights": self.weights(),
            "intercept": float(self.estimator.intercept_[0]),
            "C": self.C,
            "l1_ratio": self.l1_ratio,
        }


@dataclass
class StackingTrainer:
    """
    Elastic-net logistic meta-learner trainer.

    Attributes:
        cv_folds: Requested CV folds (clipped to the minority-class count)
        l1_ratios: Elastic-net mixing values searched
        n_cs: Number of regularization strengths searched (log-spaced)
        max_iter: Solver iteration cap
        random_state: Seed for fold assignment and the solver
        strict_convergence: Raise FitError instead of warning when the solver does not converge
    """
    cv_folds: int = 10
    l1_ratios: tuple[float, ...] = (0.0, 0.25, 0.5, 0.75, 1.0)
    n_cs: int = 10
    max_iter: int = 10000
    random_state: int = 42
    strict_convergence: bool = False

    def fit(self, base_predictions: pd.DataFrame, y: np.ndarray, variable: str = "") -> StackedModel:
        """
        Fit the meta-learner on Test split base probabilities.

        Args:
            base_predictions: One probability column per base algorithm
            y: Test split labels
            variable: Target variable (for logs and errors)

        Returns:
            StackedModel

        Raises:
            FitError: On a single-class or too-small Test split, or non-convergence
                      when strict_convergence is set
        """
        y = np.asarray(y).astype(int)
        if base_predictions.shape[1] == 0:
            raise FitError("No base predictions to stack", variable=variable, algorithm=ENSEMBLE)
        if len(np.unique(y)) < 2:
            raise FitError("Test split contains a single class", variable=variable, algorithm=ENSEMBLE)

        try:
            folds = effective_folds(self.cv_folds, y)
        except FitError as e:
            raise FitError(e.message, variable=variable, algorithm=ENSEMBLE) from e
        if folds < self.cv_folds:
            logger.warning(
                f"  [{variable}/{ENSEMBLE}] Reducing CV folds from {self.cv_folds} "
                f"to {folds} (minority class size)"
            )

        estimator = LogisticRegressionCV(
            Cs=self.n_cs,
            l1_ratios=list(self.l1_ratios),
            penalty="elasticnet",
            solver="saga",
            cv=StratifiedKFold(n_splits=folds, shuffle=True, random_state=self.random_state),
            scoring="roc_auc",
            max_iter=self.max_iter,
            random_state=self.random_state,
        )

        logger.info(
            f"  [{variable}/{ENSEMBLE}] Training meta-learner on {len(y)} Test rows, "
            f"{base_predictions.shape[1]} base models, {folds}-fold CV"
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                estimator.fit(base_predictions.to_numpy(dtype=float), y)
            except ValueError as e:
                raise FitError(str(e), variable=variable, algorithm=ENSEMBLE) from e

        for w in caught:
            if not issubclass(w.category, ConvergenceWarning):
                logger.warning(f"  [{variable}/{ENSEMBLE}] {w.category.__name__}: {w.message}")

        if any(issubclass(w.category, ConvergenceWarning) for w in caught):
            message = f"Meta-learner did not converge in {self.max_iter} iterations"
            if self.strict_convergence:
                raise FitError(message, variable=variable, algorithm=ENSEMBLE)
            logger.warning(f"  [{variable}/{ENSEMBLE}] {message}")

        model = StackedModel(variable, list(base_predictions.columns), estimator)
        weights = ", ".join(f"{k}={v:.3f}" for k, v in model.weights().items())
        logger.info(
            f"  [{variable}/{ENSEMBLE}] C={model.C:.4g} l1_ratio={model.l1_ratio:.2f} weights: {weights}"
        )
        return model
