"""Configuration loading utilities for tilekit."""

from .schema import (
    ConversionConfig,
    FeatureTableConfig,
    TilesetOptionsConfig,
    load_batch_table,
    load_config,
    load_feature_table,
    load_tileset_options,
)

__all__ = [
    "ConversionConfig",
    "FeatureTableConfig",
    "TilesetOptionsConfig",
    "load_batch_table",
    "load_config",
    "load_feature_table",
    "load_tileset_options",
]
