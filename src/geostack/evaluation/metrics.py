"""
Evaluation Metrics
==================

ROC evaluation, balanced threshold selection and test-set validation
summaries for presence/absence models.

Threshold convention:
    A score is classified as present when it is strictly greater than the
    threshold. Candidate thresholds are the distinct observed scores, and the
    balanced threshold is the candidate maximizing sensitivity + specificity
    (TPR + TNR). Ties go to the lowest candidate.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Protocol

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    confusion_matrix,
    roc_auc_score,
)

from geostack.errors import ThresholdError


class ProbabilisticClassifier(Protocol):
    def predict_probability(self, X: pd.DataFrame) -> np.ndarray: ...

    def predict_label(self, X: pd.DataFrame) -> np.ndarray: ...


@dataclass(frozen=True)
class ConfusionSummary:
    """
    Counts of a binary presence/absence classification.

    Attributes:
        tp: Present classified present
        fp: Absent classified present
        tn: Absent classified absent
        fn: Present classified absent
    """
    tp: int
    fp: int
    tn: int
    fn: int

    @property
    def sensitivity(self) -> float:
        """True positive rate."""
        total = self.tp + self.fn
        return self.tp / total if total else float("nan")

    @property
    def specificity(self) -> float:
        """True negative rate."""
        total = self.tn + self.fp
        return self.tn / total if total else float("nan")

    @property
    def accuracy(self) -> float:
        total = self.tp + self.fp + self.tn + self.fn
        return (self.tp + self.tn) / total if total else float("nan")

    def to_matrix(self) -> list[list[int]]:
        """[[tn, fp], [fn, tp]], rows = actual absent/present."""
        return [[self.tn, self.fp], [self.fn, self.tp]]

    def to_dict(self) -> dict[str, Any]:
        return {
            **asdict(self),
            "sensitivity": self.sensitivity,
            "specificity": self.specificity,
            "accuracy": self.accuracy,
        }


def apply_threshold(scores: np.ndarray, threshold: float) -> np.ndarray:
    """Classify scores: 1 where score > threshold, else 0."""
    return (np.asarray(scores, dtype=float) > threshold).astype(int)


def confusion_at(presence: np.ndarray, absence: np.ndarray, threshold: float) -> ConfusionSummary:
    """Confusion counts of presence/absence scores at a threshold."""
    presence = np.asarray(presence, dtype=float)
    absence = np.asarray(absence, dtype=float)
    tp = int(apply_threshold(presence, threshold).sum())
    fp = int(apply_threshold(absence, threshold).sum())
    return ConfusionSummary(tp=tp, fp=fp, tn=len(absence) - fp, fn=len(presence) - tp)


@dataclass
class RocEvaluation:
    """
    ROC curve of presence vs absence scores and the balanced threshold.

    Attributes:
        thresholds: Distinct observed scores, ascending
        tpr: True positive rate at each threshold
        fpr: False positive rate at each threshold
        auc: Area under the ROC curve
        threshold: Balanced threshold (max TPR + TNR)
        confusion: Confusion counts at the balanced threshold
        n_presence: Number of presence scores
        n_absence: Number of absence scores
    """
    thresholds: np.ndarray
    tpr: np.ndarray
    fpr: np.ndarray
    auc: float
    threshold: float
    confusion: ConfusionSummary
    n_presence: int
    n_absence: int

    @property
    def tnr(self) -> np.ndarray:
        return 1.0 - self.fpr

    def to_dict(self) -> dict[str, Any]:
        return {
            "auc": self.auc,
            "threshold": self.threshold,
            "n_presence": self.n_presence,
            "n_absence": self.n_absence,
            "confusion": self.confusion.to_dict(),
        }

    def curve(self) -> pd.DataFrame:
        """ROC points as a table, one row per threshold."""
        return pd.DataFrame({
            "threshold": self.thresholds,
            "tpr": self.tpr,
            "fpr": self.fpr,
            "tnr": self.tnr,
        })

    def summary(self) -> str:
        cm = self.confusion
        lines = [
            f"ROC Evaluation (presence={self.n_presence}, absence={self.n_absence})",
            f"  AUC:          {self.auc:.4f}",
            f"  Threshold:    {self.threshold:.4f}",
            f"  Sensitivity:  {cm.sensitivity:.4f}",
            f"  Specificity:  {cm.specificity:.4f}",
            f"",
            f"Confusion Matrix:",
            f"                  Predicted",
            f"               Absent  Present",
            f"  Actual Absent  {cm.tn:5d}  {cm.fp:5d}",
            f"  Actual Present {cm.fn:5d}  {cm.tp:5d}",
        ]
        return "\n".join(lines)


def evaluate_scores(
    presence: np.ndarray,
    absence: np.ndarray,
    min_per_class: int = 2,
) -> RocEvaluation:
    """
    ROC curve, AUC and balanced threshold from scores split by true label.

    Args:
        presence: Scores of rows whose true label is present
        absence: Scores of rows whose true label is absent
        min_per_class: Minimum number of scores required in each group

    Returns:
        RocEvaluation

    Raises:
        ThresholdError: If a group is too small or scores are not finite
    """
    presence = np.asarray(presence, dtype=float).ravel()
    absence = np.asarray(absence, dtype=float).ravel()

    if len(presence) < min_per_class or len(absence) < min_per_class:
        raise ThresholdError(
            f"Need at least {min_per_class} presence and absence scores, "
            f"got {len(presence)} and {len(absence)}"
        )
    if not (np.all(np.isfinite(presence)) and np.all(np.isfinite(absence))):
        raise ThresholdError("Scores contain non-finite values")

    thresholds = np.unique(np.concatenate([presence, absence]))

    # rows strictly above each threshold
    tp = len(presence) - np.searchsorted(np.sort(presence), thresholds, side="right")
    fp = len(absence) - np.searchsorted(np.sort(absence), thresholds, side="right")
    tpr = tp / len(presence)
    fpr = fp / len(absence)

    best = int(np.argmax(tpr + (1.0 - fpr)))
    threshold = float(thresholds[best])

    labels = np.concatenate([np.ones(len(presence)), np.zeros(len(absence))])
    auc = roc_auc_score(labels, np.concatenate([presence, absence]))

    return RocEvaluation(
        thresholds=thresholds,
        tpr=tpr,
        fpr=fpr,
        auc=float(auc),
        threshold=threshold,
        confusion=confusion_at(presence, absence, threshold),
        n_presence=len(presence),
        n_absence=len(absence),
    )


def evaluate_predictions(
    y_true: np.ndarray,
    scores: np.ndarray,
    min_per_class: int = 2,
) -> RocEvaluation:
    """Split scores by true label (1 present, 0 absent) and evaluate them."""
    y_true = np.asarray(y_true).astype(int)
    scores = np.asarray(scores, dtype=float)
    if y_true.shape != scores.shape:
        raise ValueError(f"{len(y_true)} labels for {len(scores)} scores")
    return evaluate_scores(scores[y_true == 1], scores[y_true == 0], min_per_class=min_per_class)


@dataclass
class EvaluationResult:
    """
    Test-set validation summary of a classifier at its 0.5 cutoff.

    Attributes:
        auc: Area Under ROC Curve
        accuracy: Classification accuracy
        kappa: Cohen's kappa
        sensitivity: True positive rate
        specificity: True negative rate
        confusion_matrix: 2x2 confusion matrix, rows = actual absent/present
        n_samples: Number of samples evaluated
        n_positive: Number of present samples
        n_negative: Number of absent samples
    """
    auc: float
    accuracy: float
    kappa: float
    sensitivity: float
    specificity: float
    confusion_matrix: list[list[int]] | None = None
    n_samples: int = 0
    n_positive: int = 0
    n_negative: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def summary(self) -> str:
        """Get formatted summary string."""
        lines = [
            f"Evaluation Results (n={self.n_samples})",
            f"  Present: {self.n_positive}",
            f"  Absent:  {self.n_negative}",
            f"",
            f"Metrics:",
            f"  AUC:         {self.auc:.4f}",
            f"  Accuracy:    {self.accuracy:.4f}",
            f"  Kappa:       {self.kappa:.4f}",
            f"  Sensitivity: {self.sensitivity:.4f}",
            f"  Specificity: {self.specificity:.4f}",
        ]

        if self.confusion_matrix is not None:
            cm = self.confusion_matrix
            lines.extend([
                f"",
                f"Confusion Matrix:",
                f"                  Predicted",
                f"               Absent  Present",
                f"  Actual Absent  {cm[0][0]:5d}  {cm[0][1]:5d}",
                f"  Actual Present {cm[1][0]:5d}  {cm[1][1]:5d}",
            ])

        return "\n".join(lines)


def evaluate_classifier(
    model: ProbabilisticClassifier,
    X_test: pd.DataFrame,
    y_test: np.ndarray,
) -> EvaluationResult:
    """
    Evaluate a fitted classifier on Test rows.

    Args:
        model: Fitted model with predict_probability and predict_label
        X_test: Test features
        y_test: Test labels (1 present, 0 absent)

    Returns:
        EvaluationResult with all metrics
    """
    y_test = np.asarray(y_test).astype(int)

    y_prob = model.predict_probability(X_test)
    y_pred = model.predict_label(X_test)

    cm = confusion_matrix(y_test, y_pred, labels=[0, 1])
    summary = ConfusionSummary(tp=int(cm[1, 1]), fp=int(cm[0, 1]), tn=int(cm[0, 0]), fn=int(cm[1, 0]))

    if len(np.unique(y_test)) > 1:
        auc = float(roc_auc_score(y_test, y_prob))
    else:
        auc = float("nan")

    return EvaluationResult(
        auc=auc,
        accuracy=float(accuracy_score(y_test, y_pred)),
        kappa=float(cohen_kappa_score(y_test, y_pred, labels=[0, 1])),
        sensitivity=float(summary.sensitivity),
        specificity=float(summary.specificity),
        confusion_matrix=cm.tolist(),
        n_samples=len(y_test),
        n_positive=int(y_test.sum()),
        n_negative=int(len(y_test) - y_test.sum()),
    )
