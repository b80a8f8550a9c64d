from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable
import numpy as np


@dataclass(frozen=True)
class Extent:
    """Axis-aligned min/max corners of a point set."""
    min_xyz: np.ndarray   # (3,)
    max_xyz: np.ndarray   # (3,)

    @staticmethod
    def empty() -> "Extent":
        return Extent(np.full(3, np.inf), np.full(3, -np.inf))

    def is_empty(self) -> bool:
        return bool(np.any(self.min_xyz > self.max_xyz))

    @property
    def size(self) -> np.ndarray:
        return self.max_xyz - self.min_xyz

    def corners(self) -> np.ndarray:
        """The 8 corner points of the box, shape (8, 3)."""
        mn, mx = self.min_xyz, self.max_xyz
        return np.array([
            [mn[0], mn[1], mn[2]],
            [mn[0], mx[1], mn[2]],
            [mx[0], mn[1], mn[2]],
            [mx[0], mx[1], mn[2]],
            [mx[0], mx[1], mx[2]],
            [mx[0], mn[1], mx[2]],
            [mn[0], mx[1], mx[2]],
            [mn[0], mn[1], mx[2]],
        ], dtype=np.float64)

    def swap_yz(self) -> "Extent":
        # glTF models are Y-up; tiles are laid out Z-up
        return Extent(self.min_xyz[[0, 2, 1]], self.max_xyz[[0, 2, 1]])


def point3_min_max(points: Iterable[Iterable[float]] | np.ndarray) -> Extent:
    """Component-wise min/max over a set of 3D points.

    An empty input yields :meth:`Extent.empty` (``+inf``/``-inf`` seeds).
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(pts) == 0:
        return Extent.empty()
    return Extent(pts.min(axis=0), pts.max(axis=0))
