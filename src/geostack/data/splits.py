"""
Train/Test Splits
=================

Stratified, seeded partition of sample rows into Train and Test sets.

The seed is passed explicitly to every call. The pipeline passes the same
seed for every target variable, so reruns give identical splits.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from geostack.errors import FitError


DEFAULT_SEED = 1385321


@dataclass(frozen=True)
class SplitAssignment:
    """
    Positional row indices of the Train and Test sets.

    Attributes:
        train: Sorted positional indices of Train rows
        test: Sorted positional indices of Test rows
        seed: Seed the split was drawn with
    """
    train: np.ndarray
    test: np.ndarray
    seed: int

    def class_proportions(self, labels: np.ndarray) -> dict[str, float]:
        """Share of presence labels in each split."""
        labels = np.asarray(labels)
        return {
            "train": float(labels[self.train].mean()),
            "test": float(labels[self.test].mean()),
        }

    def to_dict(self) -> dict:
        return {"train": self.train.tolist(), "test": self.test.tolist(), "seed": self.seed}


def stratified_split(
    labels: np.ndarray | pd.Series,
    train_fraction: float = 2 / 3,
    seed: int = DEFAULT_SEED,
) -> SplitAssignment:
    """
    Split rows into Train/Test preserving the presence/absence ratio.

    Args:
        labels: Binary labels (0/1), one per row, no missing values
        train_fraction: Share of rows assigned to Train
        seed: Random seed

    Returns:
        SplitAssignment with sorted positional indices

    Raises:
        FitError: If there are too few rows of a class to stratify
    """
    labels = np.asarray(labels)
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    classes, counts = np.unique(labels, return_counts=True)
    if len(classes) < 2:
        raise FitError(f"Cannot stratify a split with a single class ({classes.tolist()})")
    if counts.min() < 2:
        raise FitError(f"Each class needs at least 2 rows to split, got counts {counts.tolist()}")

    indices = np.arange(len(labels))
    try:
        train, test = train_test_split(
            indices,
            train_size=train_fraction,
            stratify=labels,
            random_state=seed,
        )
    except ValueError as e:
        raise FitError(f"Stratified split failed: {e}") from e

    return SplitAssignment(train=np.sort(train), test=np.sort(test), seed=seed)
