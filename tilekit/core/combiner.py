from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, List, Optional
import json
import os

from .errors import EmptyCombineError, FileParseError, FileSystemError, InvalidBoundingVolumeKindError
from .tileset import ASSET_VERSION, TILESET_VERSION, Region, Tile, Tileset
from .utils import get_logger, to_posix

_log = get_logger()

COMBINED_GEOMETRIC_ERROR = 500.0
TILESET_SUFFIX = ".json"


def _list_dir(directory: Path) -> List[Path]:
    try:
        return sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise FileSystemError(directory, exc.strerror or str(exc)) from exc


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError as exc:
        raise FileSystemError(path, exc.strerror or str(exc)) from exc


def _collect(directory: Path, found: List[Path]) -> None:
    for entry in _list_dir(directory):
        if _is_dir(entry):
            _collect(entry, found)
        elif entry.suffix == TILESET_SUFFIX:
            found.append(entry)


def discover_tileset_files(root: Path) -> List[Path]:
    """Tileset files at least one directory below ``root``, depth-first.

    Files directly inside ``root`` are not considered.
    """
    root = Path(root)
    found: List[Path] = []
    for entry in _list_dir(root):
        if _is_dir(entry):
            _collect(entry, found)
    return found


def read_tileset_document(path: Path) -> Any:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise FileSystemError(path, exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise FileParseError(path, str(exc)) from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise FileParseError(path, str(exc)) from exc


def child_tile(document: Any, path: Path, output_dir: Path) -> Optional[Tile]:
    """Child tile referencing ``path`` as an external tileset, or None if unusable.

    Documents that are not objects, or lack a root tile with a bounding volume
    and a geometric error, are not tilesets and yield None.
    """
    if not isinstance(document, dict):
        return None
    root = document.get("root")
    if not isinstance(root, dict):
        return None
    bounding_volume = root.get("boundingVolume")
    geometric_error = document.get("geometricError", root.get("geometricError"))
    if bounding_volume is None or geometric_error is None:
        return None
    if not isinstance(bounding_volume, dict):
        raise FileParseError(path, "boundingVolume is not an object")
    try:
        tile = Tile.from_dict(
            {"boundingVolume": bounding_volume, "geometricError": geometric_error, "refine": root.get("refine")},
            path,
        )
    except InvalidBoundingVolumeKindError:
        raise
    except (TypeError, ValueError) as exc:
        raise FileParseError(path, str(exc)) from exc
    return replace(tile, content_url=to_posix(os.path.relpath(path, output_dir)))


@dataclass
class CombineResult:
    tileset: Tileset
    output_path: Path
    sources: List[Path]


def combine_tilesets(
    input_dir: Path,
    output_path: Optional[Path] = None,
    max_workers: Optional[int] = None,
) -> CombineResult:
    """Merge every tileset found below ``input_dir`` into one parent tileset.

    Children keep their bounding volume, geometric error and refine mode and
    reference the source file relative to the output directory. Only region
    children widen the parent region.
    """
    input_dir = Path(os.path.normpath(input_dir))
    out = Path(os.path.normpath(output_path)) if output_path is not None else input_dir / "tileset.json"
    output_dir = out.parent

    paths = discover_tileset_files(input_dir)
    _log.info("Found %d tileset files under %s", len(paths), input_dir)

    # executor.map keeps discovery order; the first failure propagates
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        documents = list(executor.map(read_tileset_document, paths))

    union = Region.empty()
    children: List[Tile] = []
    sources: List[Path] = []
    for path, document in zip(paths, documents):
        child = child_tile(document, path, output_dir)
        if child is None:
            _log.debug("Skipping %s: no root tile with bounding volume and geometric error", path)
            continue
        if isinstance(child.bounding_volume, Region):
            union = union.union(child.bounding_volume)
        else:
            _log.debug("%s has a non-region bounding volume; parent region ignores it", path)
        children.append(child)
        sources.append(path)

    if union.is_empty():
        raise EmptyCombineError(input_dir)

    root = Tile(
        bounding_volume=union,
        geometric_error=COMBINED_GEOMETRIC_ERROR,
        refine="ADD",
        children=tuple(children),
    )
    tileset = Tileset(
        root=root,
        geometric_error=COMBINED_GEOMETRIC_ERROR,
        asset={"version": ASSET_VERSION, "tilesetVersion": TILESET_VERSION},
    )
    return CombineResult(tileset=tileset, output_path=out, sources=sources)
