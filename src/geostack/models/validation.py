"""
Validation Strategies
=====================

Resampling schemes used to tune each base classifier. Every algorithm
carries its own strategy:

- CrossValidation: stratified k-fold
- RepeatedCrossValidation: stratified k-fold repeated with reshuffling
- OutOfBag: out-of-bag score of a bagged ensemble (random forest only)

Strategies are plain records told apart by their `kind` tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

import numpy as np
from sklearn.model_selection import RepeatedStratifiedKFold, StratifiedKFold

from geostack.errors import FitError


@dataclass(frozen=True)
class CrossValidation:
    folds: int = 10
    kind: Literal["cv"] = "cv"


@dataclass(frozen=True)
class RepeatedCrossValidation:
    folds: int = 10
    repeats: int = 5
    kind: Literal["repeatedcv"] = "repeatedcv"


@dataclass(frozen=True)
class OutOfBag:
    kind: Literal["oob"] = "oob"


ValidationStrategy = Union[CrossValidation, RepeatedCrossValidation, OutOfBag]


def validation_from_dict(spec: dict[str, Any]) -> ValidationStrategy:
    """
    Build a strategy from a config mapping such as {"method": "repeatedcv", "folds": 10, "repeats": 5}.
    """
    method = spec.get("method", "cv")
    if method == "cv":
        return CrossValidation(folds=int(spec.get("folds", 10)))
    elif method == "repeatedcv":
        return RepeatedCrossValidation(
            folds=int(spec.get("folds", 10)),
            repeats=int(spec.get("repeats", 5)),
        )
    elif method == "oob":
        return OutOfBag()
    else:
        raise ValueError(f"Unknown validation method: {method}")


def effective_folds(folds: int, y: np.ndarray) -> int:
    """
    Clip a fold count to the minority-class count.

    Raises:
        FitError: If the minority class has fewer than 2 rows
    """
    _, counts = np.unique(np.asarray(y), return_counts=True)
    minority = int(counts.min()) if len(counts) > 1 else 0
    if minority < 2:
        raise FitError(f"Need at least 2 rows per class for cross-validation, minority has {minority}")
    return min(folds, minority)


def make_splitter(
    strategy: ValidationStrategy,
    y: np.ndarray,
    random_state: int = 42,
) -> StratifiedKFold | RepeatedStratifiedKFold | None:
    """
    Resampling splitter for a strategy, or None for out-of-bag.
    """
    if strategy.kind == "cv":
        return StratifiedKFold(
            n_splits=effective_folds(strategy.folds, y),
            shuffle=True,
            random_state=random_state,
        )
    elif strategy.kind == "repeatedcv":
        return RepeatedStratifiedKFold(
            n_splits=effective_folds(strategy.folds, y),
            n_repeats=strategy.repeats,
            random_state=random_state,
        )
    elif strategy.kind == "oob":
        return None
    else:
        raise ValueError(f"Unknown validation strategy: {strategy}")


def describe(strategy: ValidationStrategy) -> str:
    """Short label for logs, e.g. 'repeatedcv(10x5)'."""
    if strategy.kind == "cv":
        return f"cv({strategy.folds})"
    elif strategy.kind == "repeatedcv":
        return f"repeatedcv({strategy.folds}x{strategy.repeats})"
    return strategy.kind
