import numpy as np
import pytest

from geostack.data.splits import DEFAULT_SEED, stratified_split
from geostack.errors import FitError


@pytest.fixture
def labels():
    rng = np.random.default_rng(7)
    return (rng.uniform(size=300) < 0.3).astype(int)


def test_split_preserves_class_proportions(labels):
    split = stratified_split(labels, train_fraction=2 / 3, seed=DEFAULT_SEED)
    proportions = split.class_proportions(labels)

    assert abs(proportions["train"] - labels.mean()) < 0.02
    assert abs(proportions["test"] - labels.mean()) < 0.02


def test_split_partitions_rows(labels):
    split = stratified_split(labels, train_fraction=0.75, seed=1)

    assert len(np.intersect1d(split.train, split.test)) == 0
    assert len(split.train) + len(split.test) == len(labels)
    assert len(split.train) == 225
    assert np.all(np.diff(split.train) > 0)


def test_split_is_deterministic(labels):
    first = stratified_split(labels, seed=DEFAULT_SEED)
    second = stratified_split(labels, seed=DEFAULT_SEED)
    other = stratified_split(labels, seed=DEFAULT_SEED + 1)

    np.testing.assert_array_equal(first.train, second.train)
    np.testing.assert_array_equal(first.test, second.test)
    assert not np.array_equal(first.test, other.test)


def test_single_class_rejected():
    with pytest.raises(FitError, match="single class"):
        stratified_split(np.ones(20, dtype=int))


def test_tiny_minority_rejected():
    with pytest.raises(FitError):
        stratified_split(np.array([1] + [0] * 19))


def test_train_fraction_bounds(labels):
    with pytest.raises(ValueError):
        stratified_split(labels, train_fraction=1.0)
