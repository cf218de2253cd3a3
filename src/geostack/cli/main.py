"""
GeoStack Command-Line Interface
===============================

CLI commands for the ensemble mapping pipeline.

Commands:
    run  - Train base classifiers and the meta-learner, write maps and masks
    map  - Apply a saved model bundle to a covariate grid
"""

from __future__ import annotations

import warnings
# Suppress warnings for cleaner CLI output
warnings.filterwarnings("ignore", category=UserWarning)  # sklearn CV warnings
warnings.filterwarnings("ignore", category=RuntimeWarning)  # numpy divide warnings

import sys
from pathlib import Path

import click
from loguru import logger

from geostack.errors import GeoStackError


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@click.group()
@click.version_option(message="%(prog)s %(version)s")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging level",
)
def cli(log_level: str):
    """GeoStack: ensemble presence/absence mapping."""
    configure_logging(log_level)


@cli.command()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    default="configs/ensemble.yaml",
    help="Path to configuration file",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Output directory (overrides output.dir in the config)",
)
@click.option(
    "--no-maps",
    is_flag=True,
    help="Skip grid-wide prediction (evaluation only)",
)
def run(config: str, output: str | None, no_maps: bool):
    """Train the ensemble for every target variable and write the maps."""
    from geostack.config import PipelineConfig
    from geostack.pipeline import EnsemblePipeline

    click.echo(f"Loading config: {config}")
    try:
        pipeline = EnsemblePipeline(PipelineConfig.from_yaml(config))
        samples, grid = pipeline.load_inputs()
    except GeoStackError as e:
        raise click.ClickException(str(e))

    click.echo(
        f"Samples: {len(samples)}, covariates: {len(grid.band_names)}, "
        f"grid: {grid.shape[0]}x{grid.shape[1]}"
    )

    results = pipeline.run(samples, grid, predict_grid=not no_maps)
    results_path = pipeline.save_results(results, grid, output_dir=output)

    click.echo("")
    click.echo("Results:")
    for variable, result in results.items():
        if result.roc is not None:
            click.echo(
                f"  {variable}: AUC={result.roc.auc:.4f}  threshold={result.roc.threshold:.4f}  "
                f"models={', '.join(result.base_models)}"
            )
        else:
            click.echo(f"  {variable}: no ensemble ({len(result.failures)} failures)")
        for failure in result.failures:
            label = f"{failure.stage}/{failure.algorithm}" if failure.algorithm else failure.stage
            click.echo(f"      ✗ {label}: {failure.error}")

    click.echo(f"\nResults saved: {results_path}")


@cli.command(name="map")
@click.option(
    "--bundle", "-b",
    type=click.Path(exists=True),
    required=True,
    help="Model bundle written by 'geostack run'",
)
@click.option(
    "--grid", "-g",
    type=click.Path(exists=True, file_okay=False),
    required=True,
    help="Directory of covariate GeoTIFFs",
)
@click.option("--pattern", default="*.tif", help="Glob selecting covariate rasters")
@click.option(
    "--output", "-o",
    type=click.Path(),
    default="maps/",
    help="Output directory",
)
@click.option("--threshold", type=float, default=None, help="Override the stored threshold")
def map_command(bundle: str, grid: str, pattern: str, output: str, threshold: float | None):
    """Apply a saved model bundle to a covariate grid."""
    from geostack.data.grid import CovariateGrid
    from geostack.pipeline import load_bundle, map_bundle
    from geostack.spatial.writer import write_mask, write_probability_stack

    try:
        models = load_bundle(bundle)
        covariate_grid = CovariateGrid.from_directory(grid, pattern)
        spatial_map = map_bundle(models, covariate_grid, threshold=threshold)
    except GeoStackError as e:
        raise click.ClickException(str(e))

    output_dir = Path(output)
    variable = spatial_map.variable
    write_probability_stack(spatial_map, covariate_grid, output_dir / f"{variable}_preds.tif")
    click.echo(f"Probabilities: {output_dir / f'{variable}_preds.tif'} ({', '.join(spatial_map.band_names)})")

    if spatial_map.mask is not None:
        write_mask(spatial_map, covariate_grid, output_dir / f"{variable}_mask.tif")
        click.echo(
            f"Mask: {output_dir / f'{variable}_mask.tif'} "
            f"(threshold={spatial_map.threshold:.4f}, presence={spatial_map.presence_fraction():.1%})"
        )


if __name__ == "__main__":
    cli()
