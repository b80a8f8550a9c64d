from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import math

from .errors import InvalidBoundingVolumeKindError

Vec3 = Tuple[float, float, float]

TILESET_VERSION = "1.0.0-tilekit"
ASSET_VERSION = "0.0"
REFINE_MODES = ("ADD", "REPLACE")


@dataclass(frozen=True)
class Region:
    """Geographic bounding region; angles in radians, heights in metres."""
    west: float
    south: float
    east: float
    north: float
    min_height: float
    max_height: float

    @staticmethod
    def empty() -> "Region":
        inf = math.inf
        return Region(inf, inf, -inf, -inf, inf, -inf)

    def is_empty(self) -> bool:
        return self.west > self.east or self.south > self.north or self.min_height > self.max_height

    def union(self, other: "Region") -> "Region":
        return Region(
            min(self.west, other.west),
            min(self.south, other.south),
            max(self.east, other.east),
            max(self.north, other.north),
            min(self.min_height, other.min_height),
            max(self.max_height, other.max_height),
        )

    def to_list(self) -> list[float]:
        return [float(self.west), float(self.south), float(self.east),
                float(self.north), float(self.min_height), float(self.max_height)]


@dataclass(frozen=True)
class Box:
    center: Vec3
    half_axes: Tuple[Vec3, Vec3, Vec3]

    def to_list(self) -> list[float]:
        out = [float(v) for v in self.center]
        for axis in self.half_axes:
            out.extend(float(v) for v in axis)
        return out


@dataclass(frozen=True)
class Sphere:
    center: Vec3
    radius: float

    def to_list(self) -> list[float]:
        return [float(v) for v in self.center] + [float(self.radius)]


BoundingVolume = Union[Region, Box, Sphere]


def bounding_volume_to_dict(volume: BoundingVolume) -> Dict[str, list[float]]:
    if isinstance(volume, Region):
        return {"region": volume.to_list()}
    if isinstance(volume, Box):
        return {"box": volume.to_list()}
    if isinstance(volume, Sphere):
        return {"sphere": volume.to_list()}
    raise InvalidBoundingVolumeKindError(type(volume).__name__)


def _numbers(values: Any, count: int, kind: str, source: Optional[Path]) -> list[float]:
    if not isinstance(values, (list, tuple)) or len(values) != count:
        raise InvalidBoundingVolumeKindError(f"{kind} (expected {count} numbers)", source)
    return [float(v) for v in values]


def bounding_volume_from_dict(data: Dict[str, Any], source: Optional[Path] = None) -> BoundingVolume:
    if "region" in data:
        return Region(*_numbers(data["region"], 6, "region", source))
    if "box" in data:
        v = _numbers(data["box"], 12, "box", source)
        return Box(
            center=(v[0], v[1], v[2]),
            half_axes=((v[3], v[4], v[5]), (v[6], v[7], v[8]), (v[9], v[10], v[11])),
        )
    if "sphere" in data:
        v = _numbers(data["sphere"], 4, "sphere", source)
        return Sphere(center=(v[0], v[1], v[2]), radius=v[3])
    raise InvalidBoundingVolumeKindError(",".join(sorted(data)) or "<empty>", source)


@dataclass(frozen=True)
class Tile:
    bounding_volume: BoundingVolume
    geometric_error: float
    refine: Optional[str] = "ADD"
    transform: Optional[Tuple[float, ...]] = None   # 16 numbers, column-major
    content_url: Optional[str] = None
    children: Tuple["Tile", ...] = ()

    def __post_init__(self) -> None:
        if self.geometric_error < 0:
            raise ValueError(f"geometricError must be >= 0, got {self.geometric_error}")
        if self.refine is not None and self.refine not in REFINE_MODES:
            raise ValueError(f"refine must be one of {REFINE_MODES}, got {self.refine!r}")
        if self.transform is not None and len(self.transform) != 16:
            raise ValueError("transform must hold 16 numbers")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.transform is not None:
            out["transform"] = [float(v) for v in self.transform]
        out["boundingVolume"] = bounding_volume_to_dict(self.bounding_volume)
        out["geometricError"] = float(self.geometric_error)
        if self.refine is not None:
            out["refine"] = self.refine
        if self.content_url is not None:
            out["content"] = {"url": self.content_url}
        if self.children:
            out["children"] = [child.to_dict() for child in self.children]
        return out

    @staticmethod
    def from_dict(data: Dict[str, Any], source: Optional[Path] = None) -> "Tile":
        content = data.get("content") or {}
        transform = data.get("transform")
        return Tile(
            bounding_volume=bounding_volume_from_dict(data["boundingVolume"], source),
            geometric_error=float(data["geometricError"]),
            refine=data.get("refine"),
            transform=tuple(float(v) for v in transform) if transform is not None else None,
            content_url=content.get("url", content.get("uri")),
            children=tuple(Tile.from_dict(child, source) for child in data.get("children", [])),
        )


@dataclass(frozen=True)
class Tileset:
    root: Tile
    geometric_error: float
    asset: Dict[str, str] = field(default_factory=lambda: {
        "version": ASSET_VERSION, "tilesetVersion": TILESET_VERSION,
    })
    properties: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"asset": dict(self.asset)}
        if self.properties is not None:
            out["properties"] = self.properties
        out["geometricError"] = float(self.geometric_error)
        out["root"] = self.root.to_dict()
        return out
