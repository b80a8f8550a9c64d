from __future__ import annotations
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
import math
import numpy as np

from .bounds import Extent, point3_min_max
from .container import InstanceFeatures, encode_instanced_model
from .errors import InvalidBoundingVolumeKindError, InvalidTilesetOptionError
from .frames import east_north_up_to_fixed_frame, is_identity, orientation_matrix, pack_column_major
from .model import ModelEncoder
from .tileset import ASSET_VERSION, TILESET_VERSION, Box, BoundingVolume, Region, Sphere, Tile, Tileset
from .utils import get_logger

_log = get_logger()

DEFAULT_LONGITUDE = -1.31968
DEFAULT_LATITUDE = 0.698874
DEFAULT_GEOMETRIC_ERROR = 200.0
BOUNDING_VOLUME_KINDS = ("region", "box", "sphere")

# Linear metres-to-radians factors used to size regions
METERS_TO_LONGITUDE = 0.000000156785
METERS_TO_LATITUDE = 0.000000157891

_EXTENT_DERIVED = (
    "tile_width", "tile_height", "trans_height", "min_height", "max_height", "offset_x", "offset_y",
)


def meters_to_longitude(meters: float, latitude: float) -> float:
    return meters * METERS_TO_LONGITUDE / math.cos(latitude)


def meters_to_latitude(meters: float) -> float:
    return meters * METERS_TO_LATITUDE


@dataclass
class TilesetOptions:
    """Placement and bounding options for a single-tile tileset.

    Longitude and latitude are radians. Fields left as ``None`` are filled
    from the geometry extent by :func:`resolve_tileset_options`.
    """
    longitude: float = DEFAULT_LONGITUDE
    latitude: float = DEFAULT_LATITUDE
    tile_width: Optional[float] = None
    tile_height: Optional[float] = None
    trans_height: Optional[float] = None
    min_height: Optional[float] = None
    max_height: Optional[float] = None
    offset_x: Optional[float] = None
    offset_y: Optional[float] = None
    geometric_error: float = DEFAULT_GEOMETRIC_ERROR
    bounding_volume: Optional[str] = None
    gltf_up_axis: str = "Y"
    properties: Optional[Dict[str, Any]] = None
    transform: Optional[Sequence[float]] = None

    def unresolved(self) -> list[str]:
        return [name for name in _EXTENT_DERIVED if getattr(self, name) is None]


def bounding_volume_kind(options: TilesetOptions) -> str:
    kind = options.bounding_volume
    if kind is None:
        return "region"
    normalized = str(kind).strip().lower()
    if normalized not in BOUNDING_VOLUME_KINDS:
        raise InvalidBoundingVolumeKindError(kind)
    return normalized


def bounding_volume_for(options: TilesetOptions) -> BoundingVolume:
    missing = options.unresolved()
    if missing:
        raise InvalidTilesetOptionError(missing[0], None, f"not resolved (unset: {', '.join(missing)})")
    kind = bounding_volume_kind(options)
    if options.min_height > options.max_height:
        raise InvalidTilesetOptionError("min_height", options.min_height, f"exceeds max_height {options.max_height}")
    for name in ("tile_width", "tile_height"):
        if getattr(options, name) < 0:
            raise InvalidTilesetOptionError(name, getattr(options, name), "must be non-negative")

    width = options.tile_width
    depth = options.tile_height
    height = options.max_height - options.min_height

    if kind == "region":
        if abs(options.latitude) >= math.pi / 2:
            raise InvalidTilesetOptionError("latitude", options.latitude, "must lie within (-pi/2, pi/2) radians")
        lon_extent = meters_to_longitude(width, options.latitude)
        lat_extent = meters_to_latitude(depth)
        lon_shift = meters_to_longitude(options.offset_x, options.latitude)
        # north is the negative screen Y axis
        lat_shift = -meters_to_latitude(options.offset_y)
        return Region(
            west=options.longitude - lon_extent / 2 + lon_shift,
            south=options.latitude - lat_extent / 2 + lat_shift,
            east=options.longitude + lon_extent / 2 + lon_shift,
            north=options.latitude + lat_extent / 2 + lat_shift,
            min_height=options.min_height,
            max_height=options.max_height,
        )

    center = (float(options.offset_x), float(-options.offset_y), float(height / 2 + options.min_height))
    if kind == "box":
        return Box(
            center=center,
            half_axes=((width / 2, 0.0, 0.0), (0.0, depth / 2, 0.0), (0.0, 0.0, height / 2)),
        )
    return Sphere(center=center, radius=math.sqrt(width * width / 4 + depth * depth / 4 + height * height / 4))


def tile_transform(options: TilesetOptions) -> Optional[Tuple[float, ...]]:
    if options.transform is not None:
        m = np.asarray(options.transform, dtype=np.float64).reshape(4, 4).T
    else:
        trans_height = options.trans_height if options.trans_height is not None else 0.0
        m = east_north_up_to_fixed_frame(options.longitude, options.latitude, trans_height)
    if is_identity(m):
        return None
    return tuple(pack_column_major(m))


def create_single_tileset(options: TilesetOptions, tile_name: str) -> Tileset:
    """A tileset with one root tile pointing at ``tile_name``."""
    root = Tile(
        bounding_volume=bounding_volume_for(options),
        geometric_error=0.0,
        refine="ADD",
        transform=tile_transform(options),
        content_url=tile_name,
    )
    return Tileset(
        root=root,
        geometric_error=options.geometric_error,
        asset={
            "version": ASSET_VERSION,
            "tilesetVersion": TILESET_VERSION,
            "gltfUpAxis": options.gltf_up_axis,
        },
        properties=options.properties,
    )


def instanced_extent(model_extent: Extent, features: InstanceFeatures) -> Extent:
    """Extent of every instance's transformed bounding-box corners.

    Each instance's corners are scaled, rotated (X angle negated) and then
    translated by its position.
    """
    corners = model_extent.corners()
    n = features.instances_length
    pts = np.broadcast_to(corners, (n, 8, 3)).copy()
    if features.scale is not None:
        pts *= features.scale[:, None, :]
    if features.orientation is not None:
        rots = np.stack([orientation_matrix(o, negate_x=True) for o in features.orientation])
        pts = np.einsum("nij,nkj->nki", rots, pts)
    pts += features.position[:, None, :]
    return point3_min_max(pts.reshape(-1, 3))


def resolve_tileset_options(options: Optional[TilesetOptions], extent: Extent) -> TilesetOptions:
    """Fill unset numeric options from the geometry extent."""
    options = options or TilesetOptions()
    mn, mx = extent.min_xyz, extent.max_xyz
    width = float(math.ceil(mx[0] - mn[0]))
    depth = float(math.ceil(mx[1] - mn[1]))

    def pick(value: Optional[float], default: float) -> float:
        return float(default) if value is None else float(value)

    trans_height = pick(options.trans_height, -mn[2])
    return replace(
        options,
        tile_width=pick(options.tile_width, width),
        tile_height=pick(options.tile_height, depth),
        trans_height=trans_height,
        min_height=pick(options.min_height, mn[2] + trans_height),
        max_height=pick(options.max_height, mx[2] + trans_height),
        offset_x=pick(options.offset_x, width / 2 + mn[0]),
        offset_y=pick(options.offset_y, depth / 2 + mn[1]),
    )


def tileset_output_paths(model_path: Path, output_path: Path, prefix: str = "Instanced") -> Tuple[Path, Path]:
    """Tile and tileset paths inside ``<output dir>/<prefix><model stem>/``."""
    output_path = Path(output_path)
    folder = output_path.parent / f"{prefix}{Path(model_path).stem}"
    return folder / output_path.name, folder / "tileset.json"


@dataclass
class TilesetBuildResult:
    i3dm: bytes
    batch_table_json: Dict[str, Any]
    tileset: Tileset
    tile_path: Path
    tileset_path: Path
    extent: Extent


def build_instanced_tileset(
    model_path: Path,
    output_path: Path,
    features: InstanceFeatures,
    encoder: ModelEncoder,
    options: Optional[TilesetOptions] = None,
    batch_table: Optional[Mapping[str, Any]] = None,
    encoder_options: Optional[Mapping[str, Any]] = None,
    model_url: Optional[str] = None,
) -> TilesetBuildResult:
    """Encode an instanced model and describe it with a single-tile tileset.

    Nothing is written to disk; see :mod:`tilekit.core.exporter`.
    """
    if options is not None:
        bounding_volume_kind(options)
    result = encode_instanced_model(
        model_path, features, encoder, batch_table=batch_table,
        encoder_options=encoder_options, model_url=model_url,
    )
    model_extent = result.model.extent().swap_yz()
    extent = instanced_extent(model_extent, result.features)
    resolved = resolve_tileset_options(options, extent)
    _log.debug(
        "Resolved tileset options: %s",
        {f.name: getattr(resolved, f.name) for f in fields(resolved) if f.name in _EXTENT_DERIVED},
    )
    tile_path, tileset_path = tileset_output_paths(model_path, output_path)
    tileset = create_single_tileset(resolved, tile_path.name)
    return TilesetBuildResult(
        i3dm=result.i3dm,
        batch_table_json=result.batch_table_json,
        tileset=tileset,
        tile_path=tile_path,
        tileset_path=tileset_path,
        extent=extent,
    )
