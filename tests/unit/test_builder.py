import math
from pathlib import Path

import numpy as np
import pytest

from tilekit.core.bounds import Extent
from tilekit.core.builder import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    TilesetOptions,
    bounding_volume_for,
    build_instanced_tileset,
    create_single_tileset,
    instanced_extent,
    meters_to_latitude,
    meters_to_longitude,
    resolve_tileset_options,
    tileset_output_paths,
)
from tilekit.core.container import InstanceFeatures, decode_i3dm
from tilekit.core.errors import InvalidBoundingVolumeKindError, InvalidTilesetOptionError, TilesError
from tilekit.core.model import EncodedModel
from tilekit.core.tileset import Box, Region, Sphere


class FakeEncoder:
    """Returns a tiny payload with Y-up bounds [-1, 0, -1] .. [1, 2, 1]."""

    def __init__(self) -> None:
        self.calls = 0

    def encode(self, model_path, options=None) -> EncodedModel:
        self.calls += 1
        return EncodedModel(
            model_blob=b"glb!",
            auxiliary_table={"minPoint": [[-1.0, 0.0, -1.0]], "maxPoint": [[1.0, 2.0, 1.0]]},
        )


def _resolved(**overrides) -> TilesetOptions:
    values = dict(
        tile_width=100.0, tile_height=60.0, trans_height=0.0,
        min_height=0.0, max_height=30.0, offset_x=0.0, offset_y=0.0,
    )
    values.update(overrides)
    return TilesetOptions(**values)


def _extent(mn, mx) -> Extent:
    return Extent(np.asarray(mn, dtype=np.float64), np.asarray(mx, dtype=np.float64))


def test_region_is_centred_on_the_origin_without_offsets() -> None:
    options = _resolved()
    region = bounding_volume_for(options)
    assert isinstance(region, Region)
    assert region.west < region.east
    assert region.south < region.north
    assert math.isclose((region.west + region.east) / 2, DEFAULT_LONGITUDE)
    assert math.isclose((region.south + region.north) / 2, DEFAULT_LATITUDE)
    assert math.isclose(region.east - region.west, meters_to_longitude(100.0, DEFAULT_LATITUDE), abs_tol=1e-12)
    assert math.isclose(region.north - region.south, meters_to_latitude(60.0), abs_tol=1e-12)
    assert (region.min_height, region.max_height) == (0.0, 30.0)


def test_region_shifts_with_offsets() -> None:
    centred = bounding_volume_for(_resolved())
    shifted = bounding_volume_for(_resolved(offset_x=10.0, offset_y=20.0))
    assert math.isclose(shifted.west - centred.west, meters_to_longitude(10.0, DEFAULT_LATITUDE), abs_tol=1e-12)
    # positive offset_y moves the region south
    assert math.isclose(centred.north - shifted.north, meters_to_latitude(20.0), abs_tol=1e-12)


def test_box_volume() -> None:
    box = bounding_volume_for(_resolved(bounding_volume="box", offset_x=3.0, offset_y=4.0, min_height=2.0, max_height=12.0))
    assert isinstance(box, Box)
    assert box.center == (3.0, -4.0, 7.0)
    assert box.half_axes == ((50.0, 0.0, 0.0), (0.0, 30.0, 0.0), (0.0, 0.0, 5.0))


def test_sphere_volume() -> None:
    sphere = bounding_volume_for(_resolved(bounding_volume="sphere", tile_width=4.0, tile_height=6.0, max_height=12.0))
    assert isinstance(sphere, Sphere)
    assert sphere.center == (0.0, 0.0, 6.0)
    assert math.isclose(sphere.radius, 7.0)


def test_bounding_volume_kind_is_case_insensitive_and_defaults_to_region() -> None:
    assert isinstance(bounding_volume_for(_resolved(bounding_volume="BOX")), Box)
    assert isinstance(bounding_volume_for(_resolved(bounding_volume=None)), Region)


def test_invalid_bounding_volume_kind() -> None:
    with pytest.raises(InvalidBoundingVolumeKindError):
        bounding_volume_for(_resolved(bounding_volume="cylinder"))


@pytest.mark.parametrize(
    "overrides, option",
    [
        ({"min_height": 10.0, "max_height": 5.0}, "min_height"),
        ({"tile_width": -1.0}, "tile_width"),
        ({"tile_height": -2.0}, "tile_height"),
        ({"latitude": math.pi / 2}, "latitude"),
    ],
)
def test_invalid_options_name_the_offending_option(overrides: dict, option: str) -> None:
    with pytest.raises(InvalidTilesetOptionError) as excinfo:
        bounding_volume_for(_resolved(**overrides))
    assert excinfo.value.option == option
    assert isinstance(excinfo.value, TilesError)
    assert option in str(excinfo.value)


def test_unresolved_options_are_rejected() -> None:
    with pytest.raises(InvalidTilesetOptionError, match="tile_width") as excinfo:
        bounding_volume_for(TilesetOptions())
    assert excinfo.value.option == "tile_width"
    assert "offset_y" in str(excinfo.value)


def test_single_tileset_document() -> None:
    tileset = create_single_tileset(_resolved(properties={"Height": {"minimum": 0}}), "trees.i3dm")
    doc = tileset.to_dict()
    assert doc["asset"] == {"version": "0.0", "tilesetVersion": "1.0.0-tilekit", "gltfUpAxis": "Y"}
    assert doc["geometricError"] == 200.0
    assert doc["properties"] == {"Height": {"minimum": 0}}
    root = doc["root"]
    assert root["geometricError"] == 0.0
    assert root["refine"] == "ADD"
    assert root["content"] == {"url": "trees.i3dm"}
    assert len(root["transform"]) == 16
    assert "region" in root["boundingVolume"]


def test_identity_transform_is_omitted() -> None:
    identity = [float(v) for v in np.eye(4).reshape(16)]
    tileset = create_single_tileset(_resolved(transform=identity), "t.i3dm")
    assert tileset.root.transform is None
    assert "transform" not in tileset.to_dict()["root"]


def test_explicit_transform_is_kept() -> None:
    m = np.eye(4)
    m[:3, 3] = [1.0, 2.0, 3.0]
    packed = [float(v) for v in m.T.reshape(16)]
    tileset = create_single_tileset(_resolved(transform=packed), "t.i3dm")
    assert list(tileset.root.transform) == packed


def test_instanced_extent_translates_and_scales() -> None:
    model = _extent([-1.0, -1.0, 0.0], [1.0, 1.0, 2.0])
    moved = instanced_extent(model, InstanceFeatures(position=[[10.0, 0.0, 0.0], [-10.0, 5.0, 0.0]]))
    np.testing.assert_allclose(moved.min_xyz, [-11.0, -1.0, 0.0])
    np.testing.assert_allclose(moved.max_xyz, [11.0, 6.0, 2.0])

    scaled = instanced_extent(model, InstanceFeatures(position=[[0.0, 0.0, 0.0]], scale=[[2.0, 2.0, 2.0]]))
    np.testing.assert_allclose(scaled.min_xyz, [-2.0, -2.0, 0.0])
    np.testing.assert_allclose(scaled.max_xyz, [2.0, 2.0, 4.0])


def test_instanced_extent_rotates_corners() -> None:
    model = _extent([0.0, 0.0, 0.0], [2.0, 1.0, 1.0])
    turned = instanced_extent(model, InstanceFeatures(position=[[0, 0, 0]], orientation=[[0.0, 0.0, 90.0]]))
    np.testing.assert_allclose(turned.min_xyz, [-1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(turned.max_xyz, [0.0, 2.0, 1.0], atol=1e-12)

    cube = _extent([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])
    pitched = instanced_extent(cube, InstanceFeatures(position=[[0, 0, 0]], orientation=[[90.0, 0.0, 0.0]]))
    # X angle is applied negated
    np.testing.assert_allclose(pitched.min_xyz, [0.0, 0.0, -1.0], atol=1e-12)
    np.testing.assert_allclose(pitched.max_xyz, [1.0, 1.0, 0.0], atol=1e-12)


def test_resolve_fills_from_extent() -> None:
    resolved = resolve_tileset_options(None, _extent([-1.5, -2.0, -3.0], [1.5, 2.2, 5.0]))
    assert resolved.tile_width == 3.0
    assert resolved.tile_height == 5.0
    assert resolved.offset_x == 0.0
    assert resolved.offset_y == 0.5
    assert resolved.trans_height == 3.0
    assert resolved.min_height == 0.0
    assert resolved.max_height == 8.0
    assert resolved.unresolved() == []


def test_resolve_keeps_explicit_values() -> None:
    options = TilesetOptions(tile_width=100.0, trans_height=1.0, geometric_error=50.0)
    resolved = resolve_tileset_options(options, _extent([0.0, 0.0, 0.0], [2.0, 2.0, 2.0]))
    assert resolved.tile_width == 100.0
    assert resolved.tile_height == 2.0
    assert resolved.min_height == 1.0
    assert resolved.max_height == 3.0
    assert resolved.geometric_error == 50.0
    assert options.tile_height is None


def test_tileset_output_paths(tmp_path: Path) -> None:
    tile, tileset = tileset_output_paths(Path("models/tree.obj"), tmp_path / "out" / "trees.i3dm")
    assert tile == tmp_path / "out" / "Instancedtree" / "trees.i3dm"
    assert tileset == tmp_path / "out" / "Instancedtree" / "tileset.json"


def test_build_instanced_tileset(tmp_path: Path) -> None:
    encoder = FakeEncoder()
    result = build_instanced_tileset(
        Path("tree.obj"),
        tmp_path / "tree.i3dm",
        InstanceFeatures(position=[[0.0, 0.0, 0.0]]),
        encoder,
        batch_table={"species": ["oak"]},
    )
    assert encoder.calls == 1
    assert result.tile_path == tmp_path / "Instancedtree" / "tree.i3dm"
    assert result.tileset_path == tmp_path / "Instancedtree" / "tileset.json"
    # Y-up model bounds swapped to Z-up
    np.testing.assert_allclose(result.extent.min_xyz, [-1.0, -1.0, 0.0])
    np.testing.assert_allclose(result.extent.max_xyz, [1.0, 1.0, 2.0])

    region = result.tileset.root.bounding_volume
    assert isinstance(region, Region)
    assert (region.min_height, region.max_height) == (0.0, 2.0)
    assert math.isclose(region.east - region.west, meters_to_longitude(2.0, DEFAULT_LATITUDE), abs_tol=1e-12)
    assert result.tileset.root.content_url == "tree.i3dm"
    assert result.tileset.geometric_error == 200.0

    decoded = decode_i3dm(result.i3dm)
    assert decoded.payload == b"glb!"
    assert decoded.batch_table_json == {"species": ["oak"]}
    assert result.batch_table_json["minPoint"] == [[-1.0, 0.0, -1.0]]


def test_build_rejects_bad_kind_before_encoding(tmp_path: Path) -> None:
    encoder = FakeEncoder()
    with pytest.raises(InvalidBoundingVolumeKindError):
        build_instanced_tileset(
            Path("tree.obj"),
            tmp_path / "tree.i3dm",
            InstanceFeatures(position=[[0.0, 0.0, 0.0]]),
            encoder,
            options=TilesetOptions(bounding_volume="pyramid"),
        )
    assert encoder.calls == 0
