from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.builder import DEFAULT_GEOMETRIC_ERROR, DEFAULT_LATITUDE, DEFAULT_LONGITUDE, TilesetOptions
from ..core.container import InstanceFeatures

Vec3 = tuple[float, float, float]


class TilesetOptionsConfig(BaseModel):
    """Tileset placement options; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    longitude: float = DEFAULT_LONGITUDE
    latitude: float = DEFAULT_LATITUDE
    tile_width: Optional[float] = None
    tile_height: Optional[float] = None
    trans_height: Optional[float] = None
    min_height: Optional[float] = None
    max_height: Optional[float] = None
    offset_x: Optional[float] = None
    offset_y: Optional[float] = None
    geometric_error: float = Field(DEFAULT_GEOMETRIC_ERROR, ge=0.0)
    region: bool = False
    box: bool = False
    sphere: bool = False
    bounding_volume: Optional[str] = None
    gltf_up_axis: str = "Y"
    properties: Optional[Dict[str, Any]] = None
    transform: Optional[List[float]] = None

    @field_validator("transform")
    @classmethod
    def _check_transform(cls, value: Optional[List[float]]) -> Optional[List[float]]:
        if value is not None and len(value) != 16:
            raise ValueError("transform must hold 16 numbers (column-major 4x4)")
        return value

    def resolved_kind(self) -> Optional[str]:
        for kind in ("region", "box", "sphere"):
            if getattr(self, kind):
                return kind
        return self.bounding_volume

    def to_options(self) -> TilesetOptions:
        return TilesetOptions(
            longitude=self.longitude,
            latitude=self.latitude,
            tile_width=self.tile_width,
            tile_height=self.tile_height,
            trans_height=self.trans_height,
            min_height=self.min_height,
            max_height=self.max_height,
            offset_x=self.offset_x,
            offset_y=self.offset_y,
            geometric_error=self.geometric_error,
            bounding_volume=self.resolved_kind(),
            gltf_up_axis=self.gltf_up_axis,
            properties=self.properties,
            transform=self.transform,
        )


class FeatureTableConfig(BaseModel):
    position: Optional[List[Vec3]] = None
    orientation: Optional[List[Vec3]] = None
    scale: Optional[List[Vec3]] = None

    def to_features(self) -> InstanceFeatures:
        return InstanceFeatures(position=self.position, orientation=self.orientation, scale=self.scale)


class ModelConfig(BaseModel):
    path: Path
    url: Optional[str] = None
    file_type: Optional[str] = None


class OutputConfig(BaseModel):
    path: Path
    tileset: bool = True
    batch_table: bool = False


class ConversionConfig(BaseModel):
    model: ModelConfig
    features: Optional[FeatureTableConfig] = None
    features_path: Optional[Path] = None
    batch_table: Optional[Dict[str, Any]] = None
    batch_table_path: Optional[Path] = None
    tileset: TilesetOptionsConfig = Field(default_factory=TilesetOptionsConfig)
    tileset_path: Optional[Path] = None
    output: OutputConfig

    @model_validator(mode="after")
    def _check_sources(self) -> "ConversionConfig":
        if self.features is None and self.features_path is None:
            raise ValueError("Conversion requires 'features' or 'features_path'")
        if self.features is not None and self.features_path is not None:
            raise ValueError("Give only one of 'features' and 'features_path'")
        if self.batch_table is not None and self.batch_table_path is not None:
            raise ValueError("Give only one of 'batch_table' and 'batch_table_path'")
        return self


def _load_mapping(path: str | Path) -> Dict[str, Any]:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: root must be a mapping.")
    return data


def load_feature_table(path: str | Path) -> FeatureTableConfig:
    return FeatureTableConfig.model_validate(_load_mapping(path))


def load_tileset_options(path: str | Path) -> TilesetOptionsConfig:
    return TilesetOptionsConfig.model_validate(_load_mapping(path))


def load_batch_table(path: str | Path) -> Dict[str, Any]:
    return _load_mapping(path)


def _resolve(base: Path, value: Optional[Path]) -> Optional[Path]:
    if value is None or value.is_absolute():
        return value
    return (base / value).resolve()


def load_config(path: str | Path) -> ConversionConfig:
    path = Path(path)
    cfg = ConversionConfig.model_validate(_load_mapping(path))
    base = path.parent
    cfg.model.path = _resolve(base, cfg.model.path)
    cfg.output.path = _resolve(base, cfg.output.path)
    cfg.features_path = _resolve(base, cfg.features_path)
    cfg.batch_table_path = _resolve(base, cfg.batch_table_path)
    cfg.tileset_path = _resolve(base, cfg.tileset_path)
    return cfg
