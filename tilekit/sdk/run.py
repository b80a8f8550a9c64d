from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from ..config import ConversionConfig, load_config
from ..core.builder import build_instanced_tileset
from ..core.container import encode_instanced_model
from ..core.exporter import write_batch_table, write_build_result, write_container
from ..core.model import ModelEncoder
from ..runtime.builders import build_batch_table, build_encoder, build_features, build_tileset_options


@dataclass(frozen=True)
class ConversionRunResult:
    """Summary of a conversion driven by a configuration file."""

    instances: int
    written: Dict[str, Path]
    config: ConversionConfig


def convert_from_config(
    config: Union[str, Path, ConversionConfig],
    *,
    output: Optional[Path] = None,
    encoder: Optional[ModelEncoder] = None,
    tileset: Optional[bool] = None,
) -> ConversionRunResult:
    """Run a model conversion described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML/JSON job file or a pre-loaded
        :class:`~tilekit.config.schema.ConversionConfig`.
    output:
        Optional override for the tile path. In tileset mode the tile and its
        ``tileset.json`` land in ``Instanced<model stem>/`` next to this path.
    encoder:
        Optional model encoder; defaults to the trimesh-backed encoder.
    tileset:
        Optional override for whether a tileset is produced alongside the tile.

    Returns
    -------
    ConversionRunResult
        Instance count, the files written and the resolved configuration.
    """

    cfg = load_config(config) if not isinstance(config, ConversionConfig) else config.model_copy(deep=True)
    if output is not None:
        cfg.output.path = Path(output).resolve()
    if tileset is not None:
        cfg.output.tileset = tileset

    features = build_features(cfg)
    batch_table = build_batch_table(cfg)
    model_encoder = encoder if encoder is not None else build_encoder(cfg)

    if cfg.output.tileset:
        result = build_instanced_tileset(
            cfg.model.path,
            cfg.output.path,
            features,
            model_encoder,
            options=build_tileset_options(cfg),
            batch_table=batch_table,
            model_url=cfg.model.url,
        )
        written = write_build_result(result, output_batch_table=cfg.output.batch_table)
        instances = features.instances_length
    else:
        encoded = encode_instanced_model(
            cfg.model.path, features, model_encoder, batch_table=batch_table, model_url=cfg.model.url,
        )
        written = {"tile": write_container(cfg.output.path, encoded.i3dm)}
        if cfg.output.batch_table:
            written["batch_table"] = write_batch_table(cfg.output.path, encoded.batch_table_json)
        instances = encoded.feature_table.instances_length

    return ConversionRunResult(instances=instances, written=written, config=cfg)
