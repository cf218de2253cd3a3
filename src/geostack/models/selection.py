"""
Backward Covariate Elimination
==============================

Stepwise covariate selection for the GLM base classifier.

Starts from the full model and repeatedly drops the covariate whose removal
gives the best cross-validated score. A removal is accepted only while the
reduced model scores at least as well as the current one (plus `tol`), so
the full covariate set is kept when every covariate contributes.
"""

from __future__ import annotations

import numpy as np
from loguru import logger
from sklearn.base import BaseEstimator, MetaEstimatorMixin, clone
from sklearn.feature_selection import SelectorMixin
from sklearn.model_selection import cross_val_score


class BackwardElimination(SelectorMixin, MetaEstimatorMixin, BaseEstimator):
    """
    Backward stepwise selector scored by cross-validation.

    Attributes:
        estimator: Estimator scored on each candidate covariate subset
        scoring: Scorer name passed to cross_val_score
        cv: Folds (int or splitter) passed to cross_val_score
        tol: Minimum score gain a removal must bring (0 = ties are removed)
        support_: Boolean mask of kept covariates
        score_: Cross-validated score of the kept subset
    """

    def __init__(self, estimator, scoring: str = "roc_auc", cv=5, tol: float = 0.0):
        self.estimator = estimator
        self.scoring = scoring
        self.cv = cv
        self.tol = tol

    def _score(self, X: np.ndarray, y: np.ndarray, columns: list[int]) -> float:
        scores = cross_val_score(clone(self.estimator), X[:, columns], y, scoring=self.scoring, cv=self.cv)
        return float(np.mean(scores))

    def fit(self, X, y):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y)
        self.n_features_in_ = X.shape[1]

        kept = list(range(X.shape[1]))
        current = self._score(X, y, kept)

        while len(kept) > 1:
            candidates = {
                col: self._score(X, y, [c for c in kept if c != col])
                for col in kept
            }
            col, score = max(candidates.items(), key=lambda item: item[1])
            if score < current + self.tol:
                break
            logger.debug(f"      drop covariate {col}: {self.scoring} {current:.4f} -> {score:.4f}")
            kept.remove(col)
            current = score

        self.support_ = np.zeros(X.shape[1], dtype=bool)
        self.support_[kept] = True
        self.score_ = current
        return self

    def _get_support_mask(self) -> np.ndarray:
        return self.support_
