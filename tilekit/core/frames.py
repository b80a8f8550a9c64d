from __future__ import annotations
from typing import List, Sequence
import numpy as np

WGS84_A = 6378137.0
WGS84_F = 1 / 298.257223563
WGS84_E2 = WGS84_F * (2 - WGS84_F)


def rotation_x(rad: float) -> np.ndarray:
    c, s = np.cos(rad), np.sin(rad)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]], dtype=np.float64)


def rotation_y(rad: float) -> np.ndarray:
    c, s = np.cos(rad), np.sin(rad)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]], dtype=np.float64)


def rotation_z(rad: float) -> np.ndarray:
    c, s = np.cos(rad), np.sin(rad)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]], dtype=np.float64)


def orientation_matrix(orientation_deg: Sequence[float], negate_x: bool = False) -> np.ndarray:
    """Rotation for an instance orientation triple.

    Components are angles in degrees about X, Y and Z. The rotation about Z is
    applied first, then X, then Y. ``negate_x`` flips the X angle, which is how
    instance bounds are rotated.
    """
    rx, ry, rz = np.deg2rad(np.asarray(orientation_deg, dtype=np.float64))
    if negate_x:
        rx = -rx
    return rotation_y(ry) @ rotation_x(rx) @ rotation_z(rz)


def cartesian_from_radians(longitude: float, latitude: float, height: float = 0.0) -> np.ndarray:
    """Geodetic position on the WGS84 ellipsoid to earth-centred cartesian."""
    sin_lat, cos_lat = np.sin(latitude), np.cos(latitude)
    sin_lon, cos_lon = np.sin(longitude), np.cos(longitude)
    n = WGS84_A / np.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    return np.array([
        (n + height) * cos_lat * cos_lon,
        (n + height) * cos_lat * sin_lon,
        ((1.0 - WGS84_E2) * n + height) * sin_lat,
    ], dtype=np.float64)


def east_north_up_to_fixed_frame(longitude: float, latitude: float, height: float = 0.0) -> np.ndarray:
    """4x4 transform from a local east-north-up frame at the given point to the fixed frame.

    Longitude and latitude are in radians. Columns are east, north, up and the
    origin, so ``M @ [x, y, z, 1]`` maps local metres to earth-centred metres.
    """
    sin_lat, cos_lat = np.sin(latitude), np.cos(latitude)
    sin_lon, cos_lon = np.sin(longitude), np.cos(longitude)

    m = np.eye(4, dtype=np.float64)
    m[:3, 0] = (-sin_lon, cos_lon, 0.0)
    m[:3, 1] = (-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat)
    m[:3, 2] = (cos_lat * cos_lon, cos_lat * sin_lon, sin_lat)
    m[:3, 3] = cartesian_from_radians(longitude, latitude, height)
    return m


def pack_column_major(m: np.ndarray) -> List[float]:
    return [float(v) for v in np.asarray(m, dtype=np.float64).T.reshape(16)]


def is_identity(m: np.ndarray) -> bool:
    return bool(np.array_equal(np.asarray(m, dtype=np.float64), np.eye(4)))
