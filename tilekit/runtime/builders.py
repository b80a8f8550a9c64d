from __future__ import annotations

from typing import Any, Dict, Optional

from ..config import ConversionConfig, load_batch_table, load_feature_table, load_tileset_options
from ..core.builder import TilesetOptions
from ..core.container import InstanceFeatures
from ..core.model import ModelEncoder, TrimeshModelEncoder


def build_features(cfg: ConversionConfig) -> InstanceFeatures:
    if cfg.features is not None:
        return cfg.features.to_features()
    if cfg.features_path is not None:
        return load_feature_table(cfg.features_path).to_features()
    raise ValueError("Conversion requires a feature table")


def build_batch_table(cfg: ConversionConfig) -> Optional[Dict[str, Any]]:
    if cfg.batch_table is not None:
        return dict(cfg.batch_table)
    if cfg.batch_table_path is not None:
        return load_batch_table(cfg.batch_table_path)
    return None


def build_tileset_options(cfg: ConversionConfig) -> TilesetOptions:
    if cfg.tileset_path is not None:
        return load_tileset_options(cfg.tileset_path).to_options()
    return cfg.tileset.to_options()


def build_encoder(cfg: ConversionConfig) -> ModelEncoder:
    return TrimeshModelEncoder(file_type=cfg.model.file_type)
