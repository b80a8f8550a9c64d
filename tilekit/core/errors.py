from __future__ import annotations
from pathlib import Path
from typing import Optional


class TilesError(RuntimeError):
    """Base class for every failure raised by tilekit."""


class LengthMismatchError(TilesError, ValueError):
    def __init__(self, attribute: str, expected: int, actual: int) -> None:
        self.attribute = attribute
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"FeatureTable array length inconsistent: '{attribute}' has {actual} entries, "
            f"'position' has {expected}"
        )


class MissingRequiredAttributeError(TilesError, ValueError):
    def __init__(self, attribute: str = "position") -> None:
        self.attribute = attribute
        super().__init__(f"FeatureTable requires a non-empty '{attribute}' array")


class InvalidBoundingVolumeKindError(TilesError, ValueError):
    def __init__(self, kind: object, source: Optional[Path] = None) -> None:
        self.kind = kind
        self.source = source
        where = f" in {source}" if source is not None else ""
        super().__init__(f"Unsupported bounding volume kind {kind!r}{where} (expected region, box or sphere)")


class FileParseError(TilesError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Failed to parse {path}: {reason}")


class FileSystemError(TilesError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        super().__init__(f"Cannot access {path}: {reason}")


class EmptyCombineError(TilesError):
    def __init__(self, input_dir: Path) -> None:
        self.input_dir = Path(input_dir)
        super().__init__(f"No child tileset with a region bounding volume found under {input_dir}")


class InvalidTilesetOptionError(TilesError, ValueError):
    def __init__(self, option: str, value: object, reason: str) -> None:
        self.option = option
        self.value = value
        super().__init__(f"Invalid tileset option '{option}' = {value!r}: {reason}")
