"""
Ensemble Pipeline
=================

Runs the full presence/absence workflow for each target variable:

    samples + grid --> covariates at sample locations
                   --> complete rows --> stratified Train/Test split
                   --> base classifiers (Train) --> base probabilities (Test)
                   --> elastic-net meta-learner (Test) --> ROC + balanced threshold
                   --> probability bands + presence mask over the grid

Failures are isolated: a base classifier that cannot be fitted is dropped
from its variable's ensemble, and a variable whose stacking or threshold
stage fails keeps its base results while the remaining stages are skipped.
Only unreadable inputs stop the run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from loguru import logger

from geostack.config import PipelineConfig
from geostack.data.dataset import LabeledTable, build_dataset
from geostack.data.grid import CovariateGrid
from geostack.data.samples import SampleStore, read_samples
from geostack.data.splits import SplitAssignment, stratified_split
from geostack.errors import DataError, FitError, ShapeError, ThresholdError
from geostack.evaluation.metrics import (
    EvaluationResult,
    RocEvaluation,
    evaluate_classifier,
    evaluate_predictions,
)
from geostack.models.classifiers import BaseClassifier, ClassifierConfig, create_classifier
from geostack.models.stacking import ENSEMBLE, StackedModel, base_prediction_matrix
from geostack.spatial.predictor import SpatialMap, SpatialPredictor
from geostack.spatial.writer import write_mask, write_probability_stack


@dataclass
class StageFailure:
    """A pipeline stage that failed for one variable (and algorithm)."""
    variable: str
    stage: str
    error: str
    algorithm: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "variable": self.variable,
            "stage": self.stage,
            "algorithm": self.algorithm,
            "error": self.error,
        }


@dataclass
class VariableResult:
    """
    Everything produced for one target variable.

    Attributes:
        variable: Target variable
        table: Complete rows used for modelling
        split: Train/Test assignment, shared by base models and stacking
        base_models: Fitted base classifiers, in configured order
        base_evaluations: Test-set summary per base classifier
        test_predictions: Base probability matrix on the Test rows
        stacked: Fitted meta-learner
        roc: ROC evaluation of the stacked Test predictions
        spatial_map: Grid-wide probability bands and mask
        failures: Stages that failed for this variable
        crs: CRS of the sample coordinates the models were trained in
    """
    variable: str
    table: LabeledTable | None = None
    split: SplitAssignment | None = None
    base_models: dict[str, BaseClassifier] = field(default_factory=dict)
    base_evaluations: dict[str, EvaluationResult] = field(default_factory=dict)
    test_predictions: pd.DataFrame | None = None
    stacked: StackedModel | None = None
    roc: RocEvaluation | None = None
    spatial_map: SpatialMap | None = None
    failures: list[StageFailure] = field(default_factory=list)
    crs: str | None = None

    @property
    def threshold(self) -> float | None:
        return self.roc.threshold if self.roc is not None else None

    @property
    def feature_names(self) -> list[str]:
        return self.table.feature_names if self.table is not None else []

    def fail(self, stage: str, error: Exception, algorithm: str | None = None) -> None:
        context = "/".join(part for part in (self.variable, algorithm) if part)
        logger.warning(f"  [{context}] {stage} failed: {error}")
        self.failures.append(StageFailure(self.variable, stage, str(error), algorithm))

    def to_dict(self) -> dict[str, Any]:
        return {
            "variable": self.variable,
            "n_rows": len(self.table) if self.table is not None else 0,
            "n_train": len(self.split.train) if self.split is not None else 0,
            "n_test": len(self.split.test) if self.split is not None else 0,
            "base_models": {name: model.summary() for name, model in self.base_models.items()},
            "base_evaluations": {name: ev.to_dict() for name, ev in self.base_evaluations.items()},
            "stacked": self.stacked.summary() if self.stacked is not None else None,
            "roc": self.roc.to_dict() if self.roc is not None else None,
            "presence_fraction": (
                self.spatial_map.presence_fraction() if self.spatial_map is not None else None
            ),
            "failures": [f.to_dict() for f in self.failures],
        }

    def bundle(self) -> dict[str, Any]:
        """Fitted models and the metadata needed to re-apply them to a grid."""
        return {
            "variable": self.variable,
            "base_models": self.base_models,
            "stacked": self.stacked,
            "threshold": self.threshold,
            "feature_names": self.feature_names,
            "crs": self.crs,
        }


def _fit_base_model(
    config: ClassifierConfig,
    X_train: pd.DataFrame,
    y_train: np.ndarray,
    variable: str,
) -> tuple[str, BaseClassifier | None, FitError | None]:
    try:
        model = create_classifier(config).fit(X_train, y_train)
    except FitError as e:
        return config.algorithm, None, FitError(e.message, variable=variable, algorithm=config.algorithm)
    except Exception as e:
        message = f"{type(e).__name__}: {e}"
        return config.algorithm, None, FitError(message, variable=variable, algorithm=config.algorithm)
    return config.algorithm, model, None


class EnsemblePipeline:
    """
    Presence/absence ensemble mapping for several target variables.

    Usage:
        config = PipelineConfig.from_yaml("configs/ensemble.yaml")
        pipeline = EnsemblePipeline(config)
        results = pipeline.run(samples, grid)
        pipeline.save_results(results, grid)
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def load_inputs(self) -> tuple[SampleStore, CovariateGrid]:
        """
        Read the sample table and covariate grid named in the config.

        Raises:
            DataError: If either input cannot be read
        """
        if self.config.samples_path is None or self.config.grid_dir is None:
            raise DataError("Config must name both data.samples and data.grid_dir")

        samples = read_samples(
            self.config.samples_path,
            self.config.target_variables,
            lon_col=self.config.lon_col,
            lat_col=self.config.lat_col,
        )
        grid = CovariateGrid.from_directory(self.config.grid_dir, self.config.grid_pattern)
        return samples, grid

    def run(
        self,
        samples: SampleStore,
        grid: CovariateGrid,
        predict_grid: bool = True,
    ) -> dict[str, VariableResult]:
        """
        Run every configured target variable.

        Args:
            samples: Sample observations (projected to the grid CRS if not already)
            grid: Covariate grid
            predict_grid: Whether to produce grid-wide maps

        Returns:
            Results keyed by target variable
        """
        if samples.crs is None:
            if grid.crs is None:
                raise DataError("Covariate grid has no CRS to project samples to")
            samples.project(grid.crs, src_crs=self.config.sample_crs)

        covariates = grid.extract(samples.x, samples.y)
        n_outside = int(covariates.isna().all(axis=1).sum())
        if n_outside:
            logger.info(f"{n_outside} samples fall outside the covariate grid")

        predictor = SpatialPredictor(grid, chunk_size=self.config.chunk_size) if predict_grid else None

        results = {}
        for variable in self.config.target_variables:
            logger.info(f"[{variable}] Starting")
            results[variable] = self.run_variable(variable, samples, covariates, predictor, crs=samples.crs)

        return results

    def run_variable(
        self,
        variable: str,
        samples: SampleStore,
        covariates: pd.DataFrame,
        predictor: SpatialPredictor | None = None,
        crs: str | None = None,
    ) -> VariableResult:
        """Run all stages for one target variable."""
        result = VariableResult(variable=variable, crs=crs)

        try:
            result.table = build_dataset(samples, covariates, variable)
            result.split = stratified_split(
                result.table.y,
                train_fraction=self.config.train_fraction,
                seed=self.config.seed,
            )
        except (DataError, FitError) as e:
            result.fail("split", e)
            return result

        table, split = result.table, result.split
        X_train, y_train = table.X.iloc[split.train], table.y[split.train]
        X_test, y_test = table.X.iloc[split.test], table.y[split.test]
        logger.info(f"  [{variable}] Train={len(split.train)} Test={len(split.test)}")

        self.fit_base_models(result, X_train, y_train)
        if not result.base_models:
            logger.warning(f"  [{variable}] No base classifiers trained, skipping stacking and mapping")
            return result

        self.evaluate_base_models(result, X_test, y_test)
        if not result.base_models:
            logger.warning(f"  [{variable}] No base classifier could predict the Test split")
            return result

        result.test_predictions = base_prediction_matrix(result.base_models, X_test)

        try:
            result.stacked = self.config.stacking.fit(result.test_predictions, y_test, variable=variable)
        except FitError as e:
            result.fail("stacking", e, algorithm=ENSEMBLE)

        if result.stacked is not None:
            try:
                scores = result.stacked.predict_probability(result.test_predictions)
                result.roc = evaluate_predictions(y_test, scores, min_per_class=self.config.min_per_class)
                logger.info(
                    f"  [{variable}/{ENSEMBLE}] AUC={result.roc.auc:.4f} "
                    f"threshold={result.roc.threshold:.4f}"
                )
            except ThresholdError as e:
                result.fail("threshold", e, algorithm=ENSEMBLE)

        if predictor is not None:
            try:
                result.spatial_map = predictor.predict_variable(
                    variable,
                    result.base_models,
                    result.stacked,
                    result.threshold,
                    feature_names=table.feature_names,
                    crs=crs,
                )
            except (ShapeError, DataError) as e:
                result.fail("spatial", e)

        return result

    def fit_base_models(self, result: VariableResult, X_train: pd.DataFrame, y_train: np.ndarray) -> None:
        """
        Fit every configured base classifier, collecting failures per algorithm.

        Fits run in parallel when config.n_jobs is set; they share only the
        read-only Train table.
        """
        outcomes = Parallel(n_jobs=self.config.n_jobs)(
            delayed(_fit_base_model)(cfg, X_train, y_train, result.variable)
            for cfg in self.config.classifiers
        )
        for algorithm, model, error in outcomes:
            if error is not None:
                result.fail("fit", error, algorithm=algorithm)
            else:
                result.base_models[algorithm] = model

    def evaluate_base_models(self, result: VariableResult, X_test: pd.DataFrame, y_test: np.ndarray) -> None:
        """
        Evaluate each base classifier on the Test split.

        A classifier that cannot predict the Test rows is recorded as an
        "evaluate" failure and dropped from the ensemble.
        """
        for name, model in list(result.base_models.items()):
            try:
                evaluation = evaluate_classifier(model, X_test, y_test)
            except Exception as e:
                result.fail("evaluate", FitError(f"{type(e).__name__}: {e}", result.variable, name), algorithm=name)
                del result.base_models[name]
                continue
            result.base_evaluations[name] = evaluation
            logger.info(
                f"  [{result.variable}/{name}] Test AUC={evaluation.auc:.4f} "
                f"accuracy={evaluation.accuracy:.4f}"
            )

    def save_results(
        self,
        results: dict[str, VariableResult],
        grid: CovariateGrid,
        output_dir: str | Path | None = None,
    ) -> Path:
        """
        Write rasters, a JSON summary and model bundles.

        Layout:
            output_dir/
            ├── CRP_preds.tif      probability bands (base algorithms + ensemble)
            ├── CRP_mask.tif       presence mask
            ├── CRP_models.joblib  fitted models, threshold, covariate order, CRS
            └── results.json
        """
        output_dir = Path(output_dir or self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        for variable, result in results.items():
            if result.spatial_map is not None:
                write_probability_stack(result.spatial_map, grid, output_dir / f"{variable}_preds.tif")
                if result.spatial_map.mask is not None:
                    write_mask(result.spatial_map, grid, output_dir / f"{variable}_mask.tif")
            if result.base_models:
                joblib.dump(result.bundle(), output_dir / f"{variable}_models.joblib")

        results_path = output_dir / "results.json"
        with open(results_path, "w") as f:
            json.dump({
                "timestamp": datetime.now().isoformat(),
                "seed": self.config.seed,
                "train_fraction": self.config.train_fraction,
                "algorithms": self.config.algorithms,
                "variables": {variable: result.to_dict() for variable, result in results.items()},
            }, f, indent=2, default=str)

        logger.info(f"Results saved to {output_dir}")
        return results_path


def load_bundle(path: str | Path) -> dict[str, Any]:
    """Load a model bundle written by EnsemblePipeline.save_results()."""
    bundle = joblib.load(path)
    if not isinstance(bundle, dict) or "base_models" not in bundle:
        raise DataError(f"{path} is not a model bundle")
    return bundle


def map_bundle(
    bundle: dict[str, Any],
    grid: CovariateGrid,
    threshold: float | None = None,
    chunk_size: int = 250_000,
) -> SpatialMap:
    """
    Re-apply a saved model bundle to a covariate grid.

    Args:
        bundle: Loaded model bundle
        grid: Covariate grid with the same covariates and CRS as training
        threshold: Override for the stored balanced threshold
        chunk_size: Pixels per prediction batch

    Raises:
        ShapeError: If the grid covariates differ from training
        DataError: If the grid CRS differs from training
    """
    predictor = SpatialPredictor(grid, chunk_size=chunk_size)
    return predictor.predict_variable(
        bundle["variable"],
        bundle["base_models"],
        bundle["stacked"],
        threshold if threshold is not None else bundle["threshold"],
        feature_names=bundle["feature_names"],
        crs=bundle["crs"],
    )
