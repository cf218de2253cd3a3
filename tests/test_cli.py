import json

import yaml
from click.testing import CliRunner

from geostack.cli.main import cli


def write_config(tmp_path, samples_frame, grid_dir):
    samples_path = tmp_path / "geos.csv"
    samples_frame.to_csv(samples_path, index=False)

    cfg = {
        "data": {"samples": str(samples_path), "grid_dir": str(grid_dir), "targets": ["CRP", "HSP"]},
        "models": {
            "classifiers": [
                {"algorithm": "rf", "validation": {"method": "oob"},
                 "param_grid": {"max_features": ["sqrt"]}, "params": {"n_estimators": 20}},
                {"algorithm": "glm", "validation": {"method": "cv", "folds": 3},
                 "params": {"selection_folds": 3}},
            ],
        },
        "stacking": {"cv_folds": 5},
        "output": {"dir": str(tmp_path / "results")},
    }
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(cfg))
    return config_path


def test_run_and_map(tmp_path, samples_frame, grid_dir):
    config_path = write_config(tmp_path, samples_frame, grid_dir)
    runner = CliRunner()

    result = runner.invoke(cli, ["run", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert "CRP: AUC=" in result.output
    results = json.loads((tmp_path / "results" / "results.json").read_text())
    assert set(results["variables"]) == {"CRP", "HSP"}

    result = runner.invoke(cli, [
        "map",
        "--bundle", str(tmp_path / "results" / "CRP_models.joblib"),
        "--grid", str(grid_dir),
        "--output", str(tmp_path / "maps"),
        "--threshold", "0.5",
    ])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "maps" / "CRP_preds.tif").exists()
    assert (tmp_path / "maps" / "CRP_mask.tif").exists()


def test_run_reports_unreadable_inputs(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "data": {"samples": str(tmp_path / "missing.csv"), "grid_dir": str(tmp_path)},
    }))

    result = CliRunner().invoke(cli, ["run", "--config", str(config_path)])

    assert result.exit_code != 0
    assert "Cannot read sample table" in result.output
