"""
Rigid 4x4 placements.

Placements are numpy (4, 4) arrays acting on column vectors, so composing a
parent placement with a child placement is ``parent @ child``. The JSON wire
form is the column-major flattening, matching the usual
``[m11, m12, ..., m44]`` ordering of browser matrices.
"""
import math
from typing import List, Optional, Sequence

import numpy as np

from geometry_primitives import (
    EPS,
    GeometryError,
    Point3,
    cross3,
    normalize3,
)


def identity() -> np.ndarray:
    return np.eye(4)


def a2m(
    origin: Optional[Sequence[float]] = None,
    z_axis: Optional[Sequence[float]] = None,
    x_axis: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Placement from an origin, a local z axis and a local x axis.

    The x axis is orthogonalised against z and ``y = z × x``. When no x axis is
    given, +X is used, or +Y if +X is parallel to z.
    """
    origin = (0.0, 0.0, 0.0) if origin is None else tuple(origin)
    if len(origin) == 2:
        origin = (origin[0], origin[1], 0.0)
    z = np.array(normalize3((0.0, 0.0, 1.0) if z_axis is None else z_axis))

    if x_axis is None:
        x = np.array([1.0, 0.0, 0.0])
        if np.linalg.norm(x - (x @ z) * z) < EPS:
            x = np.array([0.0, 1.0, 0.0])
    else:
        x = np.array(x_axis, dtype=float)
    x = x - (x @ z) * z
    if np.linalg.norm(x) < EPS:
        raise GeometryError("x axis is parallel to z axis")
    x = x / np.linalg.norm(x)
    y = np.array(cross3(z, x))

    m = np.eye(4)
    m[:3, 0] = x
    m[:3, 1] = y
    m[:3, 2] = z
    m[:3, 3] = origin
    return m


def translation(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = (x, y, z)
    return m


def rotation(axis: Sequence[float], angle: float) -> np.ndarray:
    """Rotation about ``axis`` through the origin (Rodrigues)."""
    k = np.array(normalize3(axis))
    kx = np.array([
        [0.0, -k[2], k[1]],
        [k[2], 0.0, -k[0]],
        [-k[1], k[0], 0.0],
    ])
    r = np.eye(3) + math.sin(angle) * kx + (1 - math.cos(angle)) * (kx @ kx)
    m = np.eye(4)
    m[:3, :3] = r
    return m


def reflection(normal: Sequence[float], point: Sequence[float] = (0.0, 0.0, 0.0)) -> np.ndarray:
    """Reflection about the plane through ``point`` with the given normal."""
    n = np.array(normalize3(normal))
    m = np.eye(4)
    m[:3, :3] = np.eye(3) - 2 * np.outer(n, n)
    m[:3, 3] = 2 * (np.asarray(point, dtype=float) @ n) * n
    return m


def invert(m: np.ndarray) -> np.ndarray:
    """Exact inverse of a rigid transform: ``[Rᵀ | -Rᵀt]``."""
    r = m[:3, :3]
    result = np.eye(4)
    result[:3, :3] = r.T
    result[:3, 3] = -r.T @ m[:3, 3]
    return result


def transform_point3(m: np.ndarray, p: Sequence[float], vector: bool = False) -> Point3:
    """Apply a placement to a 3D point (2D points get z = 0)."""
    v = np.array([p[0], p[1], p[2] if len(p) > 2 else 0.0])
    if vector:
        out = m[:3, :3] @ v
    else:
        out = m[:3, :3] @ v + m[:3, 3]
    return (float(out[0]), float(out[1]), float(out[2]))


def embed_matrix2(m3: np.ndarray) -> np.ndarray:
    """Lift a 3x3 planar affine transform into a 4x4 acting on x and y."""
    m = np.eye(4)
    m[:2, :2] = m3[:2, :2]
    m[:2, 3] = m3[:2, 2]
    return m


def to_wire(m: np.ndarray) -> List[float]:
    """Column-major 16-list."""
    return [float(v) for v in np.asarray(m).flatten(order="F")]


def from_wire(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape((4, 4), order="F")


def is_rigid(m: np.ndarray, tol: float = EPS) -> bool:
    r = m[:3, :3]
    return bool(np.allclose(r.T @ r, np.eye(3), atol=tol)) and abs(abs(np.linalg.det(r)) - 1) < tol
