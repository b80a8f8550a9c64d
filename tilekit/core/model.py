from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol
import numpy as np

from .bounds import Extent
from .errors import FileSystemError
from .utils import get_logger

_log = get_logger()

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False


@dataclass(frozen=True)
class EncodedModel:
    """Output of a model encoder: a binary glTF plus its attribute table."""
    model_blob: bytes
    auxiliary_table: Dict[str, Any] = field(default_factory=dict)

    def extent(self) -> Extent:
        """Model-space extent read from the ``minPoint``/``maxPoint`` entries.

        Both entries may hold one point or a list of per-batch points.
        """
        try:
            mins = np.asarray(self.auxiliary_table["minPoint"], dtype=np.float64).reshape(-1, 3)
            maxs = np.asarray(self.auxiliary_table["maxPoint"], dtype=np.float64).reshape(-1, 3)
        except KeyError as exc:
            raise ValueError(f"Encoded model attribute table lacks {exc.args[0]!r}") from exc
        pts = np.vstack([mins, maxs])
        return Extent(pts.min(axis=0), pts.max(axis=0))


class ModelEncoder(Protocol):
    def encode(self, model_path: Path, options: Optional[Mapping[str, Any]] = None) -> EncodedModel: ...


class TrimeshModelEncoder:
    """Encode any mesh trimesh can read (OBJ, PLY, STL, glTF, ...) as binary glTF.

    The attribute table carries the model bounds in model coordinates, which are
    assumed to be Y-up as glTF prescribes.
    """
    def __init__(self, file_type: Optional[str] = None) -> None:
        if not _HAVE_TRIMESH:
            raise RuntimeError("trimesh is required to encode models; install tilekit[mesh].")
        self.file_type = file_type

    def encode(self, model_path: Path, options: Optional[Mapping[str, Any]] = None) -> EncodedModel:
        path = Path(model_path)
        if not path.is_file():
            raise FileSystemError(path, "model file not found")
        opts = dict(options or {})
        file_type = opts.get("file_type", self.file_type)
        loaded = trimesh.load(str(path), file_type=file_type)
        bounds = np.asarray(loaded.bounds, dtype=np.float64)
        blob = loaded.export(file_type="glb")
        _log.info("Encoded %s (%d bytes)", path.name, len(blob))
        return EncodedModel(
            model_blob=bytes(blob),
            auxiliary_table={
                "minPoint": [bounds[0].tolist()],
                "maxPoint": [bounds[1].tolist()],
            },
        )
