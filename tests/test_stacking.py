import warnings

import numpy as np
import pandas as pd
import pytest
from loguru import logger
from sklearn.linear_model import LogisticRegressionCV

from geostack.errors import FitError, ShapeError
from geostack.models.classifiers import RandomForest
from geostack.models.stacking import StackingTrainer, base_prediction_matrix


@pytest.fixture
def base_predictions():
    rng = np.random.default_rng(11)
    y = np.array([1] * 30 + [0] * 30)
    signal = y * 0.4 + rng.uniform(0, 0.6, size=60)
    frame = pd.DataFrame({
        "rf": np.clip(signal + rng.normal(0, 0.05, 60), 0, 1),
        "gbm": np.clip(signal + rng.normal(0, 0.1, 60), 0, 1),
        "nnet": rng.uniform(size=60),
    })
    return frame, y


def test_stacked_probabilities_in_unit_interval(base_predictions):
    frame, y = base_predictions
    model = StackingTrainer(cv_folds=5).fit(frame, y, variable="CRP")

    probs = model.predict_probability(frame)
    extreme = model.predict_probability(pd.DataFrame({"rf": [0.0, 1.0], "gbm": [0.0, 1.0], "nnet": [1.0, 0.0]}))

    assert np.all((probs >= 0) & (probs <= 1))
    assert np.all((extreme >= 0) & (extreme <= 1))
    assert probs[y == 1].mean() > probs[y == 0].mean()


def test_meta_model_summary(base_predictions):
    frame, y = base_predictions
    model = StackingTrainer(cv_folds=5).fit(frame, y)
    summary = model.summary()

    assert model.algorithms == ["rf", "gbm", "nnet"]
    assert set(model.weights()) == {"rf", "gbm", "nnet"}
    assert summary["l1_ratio"] in (0.0, 0.25, 0.5, 0.75, 1.0)
    assert summary["C"] > 0


def test_folds_clipped_to_minority(base_predictions):
    frame, _ = base_predictions
    y = np.array([1] * 3 + [0] * 57)
    trainer = StackingTrainer(cv_folds=10)

    model = trainer.fit(frame, y, variable="HSP")

    assert model.estimator.cv.n_splits == 3


def test_minority_too_small(base_predictions):
    frame, _ = base_predictions
    y = np.array([1] + [0] * 59)
    with pytest.raises(FitError, match="HSP/ensemble"):
        StackingTrainer().fit(frame, y, variable="HSP")


def test_single_class_test_split(base_predictions):
    frame, _ = base_predictions
    with pytest.raises(FitError, match="single class"):
        StackingTrainer().fit(frame, np.zeros(60, dtype=int))


def test_column_order_checked(base_predictions):
    frame, y = base_predictions
    model = StackingTrainer(cv_folds=5).fit(frame, y)
    with pytest.raises(ShapeError):
        model.predict_probability(frame[["gbm", "rf", "nnet"]])


def test_base_prediction_matrix_columns():
    rng = np.random.default_rng(0)
    X = pd.DataFrame({"a": rng.uniform(size=40), "b": rng.uniform(size=40)})
    y = (X["a"] > 0.5).astype(int).to_numpy()
    models = {
        "rf": RandomForest(param_grid={"max_features": ["sqrt"]}, n_estimators=10).fit(X, y),
        "rf2": RandomForest(param_grid={"max_features": [1.0]}, n_estimators=10, random_state=1).fit(X, y),
    }

    matrix = base_prediction_matrix(models, X.iloc[5:15])

    assert list(matrix.columns) == ["rf", "rf2"]
    assert list(matrix.index) == list(range(5, 15))


def test_other_fit_warnings_are_logged(base_predictions, monkeypatch):
    frame, y = base_predictions
    original_fit = LogisticRegressionCV.fit

    def fit_with_warning(self, X, y, **kwargs):
        warnings.warn("solver option will change", FutureWarning)
        return original_fit(self, X, y, **kwargs)

    monkeypatch.setattr(LogisticRegressionCV, "fit", fit_with_warning)
    messages = []
    handler = logger.add(messages.append, level="WARNING")
    try:
        StackingTrainer(cv_folds=5).fit(frame, y, variable="CRP")
    finally:
        logger.remove(handler)

    assert any("FutureWarning: solver option will change" in str(m) for m in messages)
