"""tilekit – instanced 3D Tiles encoder and tileset tooling.

This package contains the core components:
- Instanced container encoder (core.container)
- Point-set bounds & local frame transforms (core.bounds, core.frames)
- Single-tile tileset builder (core.builder)
- Tileset combiner (core.combiner)
- Tileset data model (core.tileset)
- File writers (core.exporter)

Model encoding is delegated to a ModelEncoder; the bundled one uses trimesh,
which is optional.
"""

from .core.errors import (
    TilesError, LengthMismatchError, MissingRequiredAttributeError,
    InvalidBoundingVolumeKindError, InvalidTilesetOptionError, FileParseError, FileSystemError,
    EmptyCombineError,
)
from .core.bounds import Extent, point3_min_max
from .core.frames import east_north_up_to_fixed_frame, orientation_matrix
from .core.tileset import Region, Box, Sphere, Tile, Tileset
from .core.model import EncodedModel, ModelEncoder, TrimeshModelEncoder
from .core.container import (
    InstanceFeatures, FeatureTable, build_feature_table, encode_i3dm, decode_i3dm,
    read_header, encode_instanced_model,
)
from .core.builder import (
    TilesetOptions, create_single_tileset, instanced_extent, build_instanced_tileset,
)
from .core.combiner import combine_tilesets, discover_tileset_files
