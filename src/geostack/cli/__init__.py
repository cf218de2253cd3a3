"""
Command-Line Interface
======================

GeoStack CLI for ensemble training and mapping.

Usage:
    geostack run --config configs/ensemble.yaml
    geostack map --bundle results/CRP_models.joblib --grid data/TZ_grids/ --output maps/
"""

from geostack.cli.main import cli

__all__ = ["cli"]
