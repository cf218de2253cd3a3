"""
Evaluation Utilities
====================

ROC evaluation, balanced thresholds and test-set summaries.
"""

from geostack.evaluation.metrics import (
    ConfusionSummary,
    RocEvaluation,
    EvaluationResult,
    apply_threshold,
    confusion_at,
    evaluate_scores,
    evaluate_predictions,
    evaluate_classifier,
)

__all__ = [
    "ConfusionSummary",
    "RocEvaluation",
    "EvaluationResult",
    "apply_threshold",
    "confusion_at",
    "evaluate_scores",
    "evaluate_predictions",
    "evaluate_classifier",
]
