"""
Pipeline Configuration
======================

YAML configuration for the ensemble mapping pipeline:

    data:
      samples: data/TZ_geos_012015.csv
      grid_dir: data/TZ_grids/
      targets: [CRP, WCP, HSP]
    split:
      train_fraction: 0.6667
      seed: 1385321
    models:
      classifiers:
        - algorithm: rf
          validation: {method: oob}
        - algorithm: gbm
          validation: {method: repeatedcv, folds: 10, repeats: 5}
    stacking:
      cv_folds: 10
    output:
      dir: results/
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from geostack.data.splits import DEFAULT_SEED
from geostack.errors import DataError
from geostack.models.classifiers import ClassifierConfig
from geostack.models.stacking import StackingTrainer


DEFAULT_TARGETS = ["CRP", "WCP", "HSP"]


@dataclass
class PipelineConfig:
    """
    Settings for one pipeline run.

    Attributes:
        samples_path: CSV of point observations
        grid_dir: Directory of covariate GeoTIFFs
        grid_pattern: Glob selecting covariate rasters in grid_dir
        target_variables: Label columns to model
        lon_col: Longitude column
        lat_col: Latitude column
        sample_crs: CRS of the sample coordinates
        train_fraction: Share of rows in the Train split
        seed: Split seed, reused for every target variable
        classifiers: Base algorithms, in band order
        stacking: Meta-learner trainer
        min_per_class: Minimum Test presence/absence rows for a threshold
        n_jobs: Parallel (variable, algorithm) fits
        chunk_size: Pixels per grid prediction batch
        output_dir: Where rasters, results and model bundles are written
    """
    samples_path: Path | None = None
    grid_dir: Path | None = None
    grid_pattern: str = "*.tif"
    target_variables: list[str] = field(default_factory=lambda: list(DEFAULT_TARGETS))
    lon_col: str = "Lon"
    lat_col: str = "Lat"
    sample_crs: str = "EPSG:4326"
    train_fraction: float = 2 / 3
    seed: int = DEFAULT_SEED
    classifiers: list[ClassifierConfig] = field(default_factory=ClassifierConfig.defaults)
    stacking: StackingTrainer = field(default_factory=StackingTrainer)
    min_per_class: int = 2
    n_jobs: int | None = None
    chunk_size: int = 250_000
    output_dir: Path = Path("results")

    def __post_init__(self) -> None:
        duplicated = {a for a in self.algorithms if self.algorithms.count(a) > 1}
        if duplicated:
            raise ValueError(f"Algorithms configured more than once: {sorted(duplicated)}")
        if not self.target_variables:
            raise ValueError("No target variables configured")

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> PipelineConfig:
        data_cfg = cfg.get("data", {}) or {}
        split_cfg = cfg.get("split", {}) or {}
        model_cfg = cfg.get("models", {}) or {}
        stacking_cfg = cfg.get("stacking", {}) or {}
        eval_cfg = cfg.get("evaluation", {}) or {}
        output_cfg = cfg.get("output", {}) or {}

        seed = int(split_cfg.get("seed", DEFAULT_SEED))
        random_state = int(model_cfg.get("random_state", 42))

        classifier_specs = model_cfg.get("classifiers")
        if classifier_specs:
            classifiers = [
                ClassifierConfig.from_dict(spec, random_state=random_state)
                for spec in classifier_specs
            ]
        else:
            classifiers = ClassifierConfig.defaults(random_state=random_state)

        stacking = StackingTrainer(
            cv_folds=int(stacking_cfg.get("cv_folds", 10)),
            l1_ratios=tuple(stacking_cfg.get("l1_ratios", (0.0, 0.25, 0.5, 0.75, 1.0))),
            n_cs=int(stacking_cfg.get("n_cs", 10)),
            max_iter=int(stacking_cfg.get("max_iter", 10000)),
            random_state=random_state,
            strict_convergence=bool(stacking_cfg.get("strict_convergence", False)),
        )

        samples = data_cfg.get("samples")
        grid_dir = data_cfg.get("grid_dir")

        return cls(
            samples_path=Path(samples) if samples else None,
            grid_dir=Path(grid_dir) if grid_dir else None,
            grid_pattern=data_cfg.get("grid_pattern", "*.tif"),
            target_variables=list(data_cfg.get("targets", DEFAULT_TARGETS)),
            lon_col=data_cfg.get("lon_col", "Lon"),
            lat_col=data_cfg.get("lat_col", "Lat"),
            sample_crs=data_cfg.get("sample_crs", "EPSG:4326"),
            train_fraction=float(split_cfg.get("train_fraction", 2 / 3)),
            seed=seed,
            classifiers=classifiers,
            stacking=stacking,
            min_per_class=int(eval_cfg.get("min_per_class", 2)),
            n_jobs=model_cfg.get("n_jobs"),
            chunk_size=int(output_cfg.get("chunk_size", 250_000)),
            output_dir=Path(output_cfg.get("dir", "results")),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        try:
            with open(path) as f:
                cfg = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise DataError(f"Cannot read config {path}: {e}") from e
        return cls.from_dict(cfg)

    @property
    def algorithms(self) -> list[str]:
        return [c.algorithm for c in self.classifiers]
