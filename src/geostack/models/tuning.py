"""Hyperparameter selection for base classifiers under their validation strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger
from sklearn.base import BaseEstimator, clone
from sklearn.model_selection import GridSearchCV, ParameterGrid

from geostack.errors import FitError
from geostack.models.validation import ValidationStrategy, describe, make_splitter


@dataclass
class TuningResult:
    """
    Outcome of a hyperparameter search.

    Attributes:
        estimator: Best estimator, refitted on all rows
        params: Winning parameter combination
        score: Validation score of the winner (ROC AUC for CV, accuracy for OOB)
        metric: Name of the validation metric
        n_candidates: Number of parameter combinations tried
    """
    estimator: BaseEstimator
    params: dict[str, Any] = field(default_factory=dict)
    score: float = float("nan")
    metric: str = "roc_auc"
    n_candidates: int = 1


def tune(
    estimator: BaseEstimator,
    param_grid: dict[str, list[Any]],
    validation: ValidationStrategy,
    X: np.ndarray,
    y: np.ndarray,
    random_state: int = 42,
    n_jobs: int | None = None,
) -> TuningResult:
    """
    Select hyperparameters and refit on all rows.

    Cross-validation strategies run a GridSearchCV scored by ROC AUC.
    Out-of-bag fits one bagged model per candidate and keeps the best OOB
    accuracy.

    Args:
        estimator: Unfitted estimator
        param_grid: Candidate values per parameter (empty = defaults only)
        validation: Resampling strategy
        X: Training features
        y: Training labels
        random_state: Seed for fold assignment
        n_jobs: Parallel jobs for GridSearchCV

    Returns:
        TuningResult with the refitted winner
    """
    if validation.kind == "oob":
        return _tune_oob(estimator, param_grid, X, y)

    cv = make_splitter(validation, y, random_state=random_state)
    search = GridSearchCV(
        estimator=clone(estimator),
        param_grid=param_grid or {},
        cv=cv,
        scoring="roc_auc",
        n_jobs=n_jobs,
        refit=True,
        error_score="raise",
    )
    search.fit(X, y)

    logger.debug(
        f"    {describe(validation)}: best AUC={search.best_score_:.4f} "
        f"params={search.best_params_}"
    )
    return TuningResult(
        estimator=search.best_estimator_,
        params=dict(search.best_params_),
        score=float(search.best_score_),
        metric="roc_auc",
        n_candidates=len(search.cv_results_["params"]),
    )


def _tune_oob(
    estimator: BaseEstimator,
    param_grid: dict[str, list[Any]],
    X: np.ndarray,
    y: np.ndarray,
) -> TuningResult:
    if "oob_score" not in estimator.get_params():
        raise FitError(f"{type(estimator).__name__} does not support out-of-bag validation")

    best: TuningResult | None = None
    candidates = list(ParameterGrid(param_grid or {}))

    for params in candidates:
        model = clone(estimator).set_params(oob_score=True, **params)
        model.fit(X, y)
        score = float(model.oob_score_)
        logger.debug(f"    oob: accuracy={score:.4f} params={params}")
        if best is None or score > best.score:
            best = TuningResult(estimator=model, params=params, score=score, metric="oob_accuracy")

    best.n_candidates = len(candidates)
    return best
