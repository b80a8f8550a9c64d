from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import json
import struct
import numpy as np

from .errors import LengthMismatchError, MissingRequiredAttributeError
from .frames import orientation_matrix
from .model import EncodedModel, ModelEncoder
from .utils import ensure_unit_vectors, get_logger, to_posix

_log = get_logger()

I3DM_MAGIC = b"i3dm"
I3DM_VERSION = 1
HEADER_BYTE_LENGTH = 32
_HEADER_STRUCT = struct.Struct("<4s7I")
BOUNDARY = 8

COMPONENT_BYTE_SIZE: Dict[str, int] = {
    "UNSIGNED_BYTE": 1,
    "UNSIGNED_SHORT": 2,
    "UNSIGNED_INT": 4,
    "FLOAT": 4,
}


def _padding(byte_length: int) -> int:
    remainder = byte_length % BOUNDARY
    return 0 if remainder == 0 else BOUNDARY - remainder


def pad_json(obj: Optional[Mapping[str, Any]], byte_offset: int = 0) -> bytes:
    """Serialise to compact UTF-8 JSON padded with spaces to an 8-byte boundary.

    ``None`` and empty mappings produce an empty section.
    """
    if not obj:
        return b""
    raw = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return raw + b" " * _padding(byte_offset + len(raw))


def pad_binary(buf: Optional[bytes]) -> bytes:
    if not buf:
        return b""
    return bytes(buf) + b"\x00" * _padding(len(buf))


@dataclass
class InstanceFeatures:
    """Per-instance placement data: positions plus optional orientation and scale."""
    position: Optional[np.ndarray]                 # (N, 3)
    orientation: Optional[np.ndarray] = None       # (N, 3) degrees about X, Y, Z
    scale: Optional[np.ndarray] = None             # (N, 3)

    def __post_init__(self) -> None:
        for name in ("position", "orientation", "scale"):
            value = getattr(self, name)
            if value is None:
                continue
            arr = np.asarray(value, dtype=np.float64)
            if arr.size == 0:
                arr = arr.reshape(0, 3)
            if arr.ndim != 2 or arr.shape[1] != 3:
                raise ValueError(f"FeatureTable '{name}' must be a list of 3-component entries")
            setattr(self, name, arr)

    @property
    def instances_length(self) -> int:
        return 0 if self.position is None else len(self.position)


def _match_length(name: str, values: Optional[np.ndarray], length: int) -> Optional[np.ndarray]:
    if values is None or len(values) == length:
        return values
    if len(values) > length:
        _log.warning(
            "FeatureTable array length inconsistent: '%s' has %d entries, 'position' has %d; truncating.",
            name, len(values), length,
        )
        return values[:length]
    raise LengthMismatchError(name, length, len(values))


def normalize_features(features: InstanceFeatures) -> InstanceFeatures:
    """Check attribute lengths against ``position``.

    Longer orientation/scale arrays are truncated with a warning; shorter ones
    raise :class:`LengthMismatchError`.
    """
    if features.position is None or len(features.position) == 0:
        raise MissingRequiredAttributeError("position")
    n = len(features.position)
    return InstanceFeatures(
        position=features.position,
        orientation=_match_length("orientation", features.orientation, n),
        scale=_match_length("scale", features.scale, n),
    )


@dataclass
class AttributeBuffer:
    name: str
    data: bytes
    byte_alignment: int
    component_type: Optional[str] = None
    byte_offset: int = 0


def _vec3_attribute(name: str, values: np.ndarray) -> AttributeBuffer:
    data = np.ascontiguousarray(values, dtype="<f4").tobytes()
    return AttributeBuffer(name=name, data=data, byte_alignment=COMPONENT_BYTE_SIZE["FLOAT"])


def batch_id_attribute(instances_length: int) -> AttributeBuffer:
    if instances_length < 256:
        component_type, dtype = "UNSIGNED_BYTE", "<u1"
    elif instances_length < 65536:
        component_type, dtype = "UNSIGNED_SHORT", "<u2"
    else:
        component_type, dtype = "UNSIGNED_INT", "<u4"
    data = np.arange(instances_length, dtype=dtype).tobytes()
    return AttributeBuffer(
        name="BATCH_ID",
        data=data,
        byte_alignment=COMPONENT_BYTE_SIZE[component_type],
        component_type=component_type,
    )


def orientation_normals(orientation: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Up and right unit vectors for each orientation triple, each (N, 3)."""
    orientation = np.asarray(orientation, dtype=np.float64).reshape(-1, 3)
    up = np.empty_like(orientation)
    right = np.empty_like(orientation)
    for i, rotate in enumerate(orientation):
        m = orientation_matrix(rotate)
        up[i] = m @ np.array([0.0, 1.0, 0.0])
        right[i] = m @ np.array([1.0, 0.0, 0.0])
    return ensure_unit_vectors(up), ensure_unit_vectors(right)


def layout_attributes(attributes: List[AttributeBuffer]) -> bytes:
    """Assign aligned byte offsets in declaration order and pack the buffers."""
    byte_offset = 0
    for attribute in attributes:
        align = attribute.byte_alignment
        byte_offset = -(-byte_offset // align) * align
        attribute.byte_offset = byte_offset
        byte_offset += len(attribute.data)

    binary = bytearray(byte_offset)
    for attribute in attributes:
        binary[attribute.byte_offset:attribute.byte_offset + len(attribute.data)] = attribute.data
    return bytes(binary)


@dataclass
class FeatureTable:
    json: Dict[str, Any]
    binary: bytes
    attributes: List[AttributeBuffer] = field(default_factory=list)

    @property
    def instances_length(self) -> int:
        return int(self.json["INSTANCES_LENGTH"])


def build_feature_table(features: InstanceFeatures) -> FeatureTable:
    features = normalize_features(features)
    n = features.instances_length

    attributes: List[AttributeBuffer] = [
        _vec3_attribute("POSITION", features.position),
        batch_id_attribute(n),
    ]
    if features.orientation is not None:
        up, right = orientation_normals(features.orientation)
        attributes.append(_vec3_attribute("NORMAL_UP", up))
        attributes.append(_vec3_attribute("NORMAL_RIGHT", right))
    if features.scale is not None:
        attributes.append(_vec3_attribute("SCALE_NON_UNIFORM", features.scale))

    binary = layout_attributes(attributes)
    table_json: Dict[str, Any] = {"INSTANCES_LENGTH": n}
    for attribute in attributes:
        entry: Dict[str, Any] = {"byteOffset": attribute.byte_offset}
        if attribute.component_type is not None:
            entry["componentType"] = attribute.component_type
        table_json[attribute.name] = entry
    return FeatureTable(json=table_json, binary=binary, attributes=attributes)


@dataclass(frozen=True)
class ContainerHeader:
    magic: bytes
    version: int
    byte_length: int
    feature_table_json_byte_length: int
    feature_table_binary_byte_length: int
    batch_table_json_byte_length: int
    batch_table_binary_byte_length: int
    gltf_format: int

    @property
    def payload_offset(self) -> int:
        return (
            HEADER_BYTE_LENGTH
            + self.feature_table_json_byte_length
            + self.feature_table_binary_byte_length
            + self.batch_table_json_byte_length
            + self.batch_table_binary_byte_length
        )

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            self.magic,
            self.version,
            self.byte_length,
            self.feature_table_json_byte_length,
            self.feature_table_binary_byte_length,
            self.batch_table_json_byte_length,
            self.batch_table_binary_byte_length,
            self.gltf_format,
        )


def read_header(data: bytes) -> ContainerHeader:
    if len(data) < HEADER_BYTE_LENGTH:
        raise ValueError(f"Container too small: {len(data)} bytes < {HEADER_BYTE_LENGTH}")
    header = ContainerHeader(*_HEADER_STRUCT.unpack_from(data, 0))
    if header.magic != I3DM_MAGIC:
        raise ValueError(f"Bad container magic {header.magic!r}, expected {I3DM_MAGIC!r}")
    return header


def encode_i3dm(
    feature_table_json: Mapping[str, Any],
    feature_table_binary: bytes,
    batch_table_json: Optional[Mapping[str, Any]] = None,
    batch_table_binary: Optional[bytes] = None,
    glb: Optional[bytes] = None,
    url: Optional[str] = None,
) -> bytes:
    """Assemble an instanced 3D model container.

    Either ``glb`` (embedded model) or ``url`` (external model reference) must be
    given; ``glb`` wins when both are present.
    """
    if glb is None and url is None:
        raise ValueError("Provide either an embedded glb or an external model url")

    ft_json = pad_json(feature_table_json)
    ft_bin = pad_binary(feature_table_binary)
    bt_json = pad_json(batch_table_json)
    bt_bin = pad_binary(batch_table_binary)
    gltf_format = 1 if glb is not None else 0
    payload = bytes(glb) if glb is not None else to_posix(url).encode("utf-8")

    header = ContainerHeader(
        magic=I3DM_MAGIC,
        version=I3DM_VERSION,
        byte_length=HEADER_BYTE_LENGTH + len(ft_json) + len(ft_bin) + len(bt_json) + len(bt_bin) + len(payload),
        feature_table_json_byte_length=len(ft_json),
        feature_table_binary_byte_length=len(ft_bin),
        batch_table_json_byte_length=len(bt_json),
        batch_table_binary_byte_length=len(bt_bin),
        gltf_format=gltf_format,
    )
    return b"".join([header.pack(), ft_json, ft_bin, bt_json, bt_bin, payload])


@dataclass(frozen=True)
class DecodedContainer:
    header: ContainerHeader
    feature_table_json: Dict[str, Any]
    feature_table_binary: bytes
    batch_table_json: Dict[str, Any]
    batch_table_binary: bytes
    payload: bytes


def decode_i3dm(data: bytes) -> DecodedContainer:
    header = read_header(data)
    if header.byte_length != len(data):
        raise ValueError(f"Container length mismatch: header says {header.byte_length}, got {len(data)}")

    def _json(raw: bytes) -> Dict[str, Any]:
        text = raw.decode("utf-8").strip()
        return json.loads(text) if text else {}

    offset = HEADER_BYTE_LENGTH
    sections: List[bytes] = []
    for length in (
        header.feature_table_json_byte_length,
        header.feature_table_binary_byte_length,
        header.batch_table_json_byte_length,
        header.batch_table_binary_byte_length,
    ):
        sections.append(data[offset:offset + length])
        offset += length
    return DecodedContainer(
        header=header,
        feature_table_json=_json(sections[0]),
        feature_table_binary=sections[1],
        batch_table_json=_json(sections[2]),
        batch_table_binary=sections[3],
        payload=data[offset:],
    )


@dataclass
class InstancedResult:
    i3dm: bytes
    feature_table: FeatureTable
    features: InstanceFeatures
    model: EncodedModel

    @property
    def batch_table_json(self) -> Dict[str, Any]:
        return self.model.auxiliary_table


def encode_instanced_model(
    model_path: Path,
    features: InstanceFeatures,
    encoder: ModelEncoder,
    batch_table: Optional[Mapping[str, Any]] = None,
    batch_table_binary: Optional[bytes] = None,
    encoder_options: Optional[Mapping[str, Any]] = None,
    model_url: Optional[str] = None,
) -> InstancedResult:
    """Encode a model and wrap it with its instance placements.

    The feature table is validated before the model is encoded. When
    ``model_url`` is given the container references it instead of embedding the
    encoded model.
    """
    features = normalize_features(features)
    feature_table = build_feature_table(features)
    model = encoder.encode(Path(model_path), encoder_options)
    i3dm = encode_i3dm(
        feature_table.json,
        feature_table.binary,
        batch_table_json=batch_table,
        batch_table_binary=batch_table_binary,
        glb=None if model_url is not None else model.model_blob,
        url=model_url,
    )
    _log.debug("Built i3dm with %d instances (%d bytes)", feature_table.instances_length, len(i3dm))
    return InstancedResult(i3dm=i3dm, feature_table=feature_table, features=features, model=model)
