from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Mapping
import json

from .builder import TilesetBuildResult
from .errors import FileSystemError
from .tileset import Tileset
from .utils import get_logger

_log = get_logger()


def _prepare(path: str | Path) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileSystemError(path.parent, exc.strerror or str(exc)) from exc
    return path


def write_container(path: str | Path, data: bytes) -> Path:
    path = _prepare(path)
    try:
        path.write_bytes(data)
    except OSError as exc:
        raise FileSystemError(path, exc.strerror or str(exc)) from exc
    _log.info("Wrote %s (%d bytes)", path.name, len(data))
    return path


def write_json(path: str | Path, document: Mapping[str, Any]) -> Path:
    path = _prepare(path)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
            f.write("\n")
    except OSError as exc:
        raise FileSystemError(path, exc.strerror or str(exc)) from exc
    _log.info("Wrote %s", path)
    return path


def write_tileset(path: str | Path, tileset: Tileset) -> Path:
    return write_json(path, tileset.to_dict())


def batch_table_path(tile_path: str | Path) -> Path:
    """``<dir>/<tile stem>_batchTable.json`` next to a tile file."""
    tile_path = Path(tile_path)
    return tile_path.with_name(f"{tile_path.stem}_batchTable.json")


def write_batch_table(tile_path: str | Path, batch_table: Dict[str, Any]) -> Path:
    return write_json(batch_table_path(tile_path), batch_table)


def write_build_result(result: TilesetBuildResult, output_batch_table: bool = False) -> Dict[str, Path]:
    """Write the tile container, its tileset and optionally the batch table sidecar."""
    written = {
        "tile": write_container(result.tile_path, result.i3dm),
        "tileset": write_tileset(result.tileset_path, result.tileset),
    }
    if output_batch_table:
        written["batch_table"] = write_batch_table(result.tile_path, result.batch_table_json)
    return written
