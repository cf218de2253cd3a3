import numpy as np
import pandas as pd
import pytest

from geostack.errors import FitError, ShapeError
from geostack.models.classifiers import (
    CLASSIFIER_REGISTRY,
    ClassifierConfig,
    RandomForest,
    StepwiseGLM,
    create_classifier,
)
from geostack.models.validation import (
    CrossValidation,
    OutOfBag,
    RepeatedCrossValidation,
    effective_folds,
    make_splitter,
    validation_from_dict,
)


@pytest.fixture
def train_table():
    rng = np.random.default_rng(3)
    X = pd.DataFrame({
        "east": rng.uniform(size=120),
        "north": rng.uniform(size=120),
        "noise": rng.uniform(size=120),
    })
    y = (X["east"] + rng.normal(0, 0.1, 120) > 0.5).astype(int).to_numpy()
    return X, y


def test_registry_has_every_algorithm():
    assert set(CLASSIFIER_REGISTRY) == {"glm", "rf", "gbm", "nnet", "xgb"}
    assert CLASSIFIER_REGISTRY["rf"] is RandomForest
    assert RandomForest.algorithm == "rf"


def test_default_validation_per_algorithm():
    assert create_classifier(ClassifierConfig("rf")).validation == OutOfBag()
    assert create_classifier(ClassifierConfig("gbm")).validation == RepeatedCrossValidation(10, 5)
    assert create_classifier(ClassifierConfig("glm")).validation == CrossValidation(10)
    assert create_classifier(ClassifierConfig("nnet")).validation == CrossValidation(10)


def test_unknown_algorithm():
    with pytest.raises(ValueError, match="Unknown classifier"):
        create_classifier(ClassifierConfig("svm"))


def test_config_from_dict():
    config = ClassifierConfig.from_dict({
        "algorithm": "gbm",
        "validation": {"method": "repeatedcv", "folds": 5, "repeats": 2},
        "param_grid": {"max_depth": [2]},
        "params": {"subsample": 0.8},
    })

    assert config.validation == RepeatedCrossValidation(folds=5, repeats=2)
    assert config.param_grid == {"max_depth": [2]}
    assert config.extra_params == {"subsample": 0.8}


@pytest.mark.parametrize("config", [
    ClassifierConfig("glm", validation=CrossValidation(3), extra_params={"selection_folds": 3}),
    ClassifierConfig("rf", param_grid={"max_features": ["sqrt", 1.0]}, extra_params={"n_estimators": 25}),
    ClassifierConfig("gbm", validation=RepeatedCrossValidation(3, 2), param_grid={"n_estimators": [20], "max_depth": [2]}),
    ClassifierConfig("nnet", validation=CrossValidation(3), param_grid={"mlp__hidden_layer_sizes": [(3,)]}, extra_params={"max_iter": 300}),
    ClassifierConfig("xgb", validation=CrossValidation(3), param_grid={"n_estimators": [10], "max_depth": [2]}),
], ids=lambda c: c.algorithm)
def test_fit_and_predict(config, train_table):
    X, y = train_table
    model = create_classifier(config).fit(X, y)

    probs = model.predict_probability(X)
    labels = model.predict_label(X)

    assert model.is_fitted
    assert probs.shape == (len(X),)
    assert np.all((probs >= 0) & (probs <= 1))
    assert set(np.unique(labels)) <= {0, 1}
    np.testing.assert_array_equal(labels, (probs >= 0.5).astype(int))
    # east carries the signal
    assert probs[X["east"] > 0.8].mean() > probs[X["east"] < 0.2].mean()


def test_stepwise_glm_keeps_signal_covariate(train_table):
    X, y = train_table
    model = StepwiseGLM(validation=CrossValidation(3), selection_folds=3).fit(X, y)
    assert "east" in model.selected_covariates()


def test_stepwise_glm_keeps_every_informative_covariate():
    rng = np.random.default_rng(5)
    X = pd.DataFrame({"a": rng.normal(size=400), "b": rng.normal(size=400)})
    y = (X["a"] + X["b"] + rng.normal(0, 0.5, 400) > 0).astype(int).to_numpy()

    model = StepwiseGLM(validation=CrossValidation(3), selection_folds=5).fit(X, y)

    assert model.selected_covariates() == ["a", "b"]


def test_stepwise_glm_drops_uninformative_covariates():
    rng = np.random.default_rng(6)
    X = pd.DataFrame({
        "signal": rng.normal(size=300),
        "constant": np.ones(300),
    })
    y = (X["signal"] + rng.normal(0, 0.5, 300) > 0).astype(int).to_numpy()

    model = StepwiseGLM(validation=CrossValidation(3), selection_folds=5).fit(X, y)

    assert model.selected_covariates() == ["signal"]


def test_oob_tuning_records_score(train_table):
    X, y = train_table
    model = RandomForest(param_grid={"max_features": ["sqrt", 1.0]}, n_estimators=25).fit(X, y)

    assert model.tuning_.metric == "oob_accuracy"
    assert model.tuning_.n_candidates == 2
    assert 0.5 < model.tuning_.score <= 1.0
    assert set(model.feature_importances()) == {"east", "north", "noise"}
    assert model.summary()["feature_importances"] == model.feature_importances()


def test_feature_importances_absent_for_glm(train_table):
    X, y = train_table
    model = StepwiseGLM(validation=CrossValidation(3), selection_folds=3).fit(X, y)

    assert model.feature_importances() is None
    assert model.summary()["feature_importances"] is None


def test_bad_estimator_parameter_is_fit_error(train_table):
    X, y = train_table
    model = create_classifier(ClassifierConfig("rf", extra_params={"n_estimator": 10}))
    with pytest.raises(FitError, match="rf"):
        model.fit(X, y)


def test_single_class_train_rejected(train_table):
    X, _ = train_table
    with pytest.raises(FitError, match="single class"):
        create_classifier(ClassifierConfig("rf")).fit(X, np.ones(len(X), dtype=int))


def test_all_missing_covariate_rejected(train_table):
    X, y = train_table
    X = X.assign(north=np.nan)
    with pytest.raises(FitError, match="north"):
        create_classifier(ClassifierConfig("rf")).fit(X, y)


def test_prediction_schema_mismatch(train_table):
    X, y = train_table
    model = RandomForest(param_grid={"max_features": ["sqrt"]}, n_estimators=10).fit(X, y)

    with pytest.raises(ShapeError):
        model.predict_probability(X[["north", "east", "noise"]])
    with pytest.raises(ShapeError):
        model.predict_probability(X[["east", "north"]])


def test_oob_requires_bagged_estimator(train_table):
    X, y = train_table
    model = create_classifier(ClassifierConfig("gbm", validation=OutOfBag(), param_grid={"n_estimators": [10]}))
    with pytest.raises(FitError, match="out-of-bag"):
        model.fit(X, y)


def test_predict_before_fit(train_table):
    X, _ = train_table
    with pytest.raises(ValueError, match="not fitted"):
        create_classifier(ClassifierConfig("rf")).predict_probability(X)


def test_validation_helpers():
    y = np.array([0] * 20 + [1] * 4)

    assert effective_folds(10, y) == 4
    assert make_splitter(OutOfBag(), y) is None
    assert make_splitter(CrossValidation(10), y).get_n_splits() == 4
    assert make_splitter(RepeatedCrossValidation(10, 3), y).get_n_splits() == 12
    assert validation_from_dict({"method": "oob"}) == OutOfBag()

    with pytest.raises(FitError):
        effective_folds(10, np.array([0] * 10 + [1]))
    with pytest.raises(ValueError):
        validation_from_dict({"method": "bootstrap"})
