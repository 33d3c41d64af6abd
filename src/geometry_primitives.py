"""
Core 2D/3D geometry helpers for flat-part design.

Points are plain (x, y) / (x, y, z) tuples; placements are 4x4 numpy
matrices in column-vector convention (a child's world matrix is
``parent @ child``). Everything here is pure: no function mutates its inputs.
"""
import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import MultiPoint, Polygon
from shapely.geometry.polygon import orient

EPS = 1e-6

Point = Tuple[float, float]
Point3 = Tuple[float, float, float]

ZERO2: Point = (0.0, 0.0)
X2: Point = (1.0, 0.0)
Y2: Point = (0.0, 1.0)

ZERO3: Point3 = (0.0, 0.0, 0.0)
X3: Point3 = (1.0, 0.0, 0.0)
Y3: Point3 = (0.0, 1.0, 0.0)
Z3: Point3 = (0.0, 0.0, 1.0)
NX3: Point3 = (-1.0, 0.0, 0.0)
NY3: Point3 = (0.0, -1.0, 0.0)
NZ3: Point3 = (0.0, 0.0, -1.0)


class GeometryError(ValueError):
    """Base class for invalid-model errors (never retried)."""
    pass


# ─── Number formatting ───────────────────────────────────────────────────────

def format_number(value: float) -> str:
    """Shortest round-trip text for a float, integers without a decimal point.

    Exponent notation is only used below 1e-6 or from 1e21 upwards, so that
    path strings are stable and comparable as plain text.
    """
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    mantissa, _, exp_text = repr(abs(value)).partition("e")
    exponent = int(exp_text) if exp_text else 0
    int_part, _, frac_part = mantissa.partition(".")

    digits = int_part + frac_part
    point = len(int_part) + exponent
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0") or "0"

    k = len(digits)
    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * (-point) + digits
    else:
        exp = point - 1
        exp_sign = "+" if exp >= 0 else "-"
        body = digits[0] + ("." + digits[1:] if k > 1 else "")
        text = f"{body}e{exp_sign}{abs(exp)}"
    return sign + text


# ─── 2D vector math ──────────────────────────────────────────────────────────

def plus(a: Sequence[float], b: Sequence[float]) -> Point:
    return (a[0] + b[0], a[1] + b[1])


def minus(a: Sequence[float], b: Sequence[float]) -> Point:
    return (a[0] - b[0], a[1] - b[1])


def mult(a: Sequence[float], k: float) -> Point:
    return (a[0] * k, a[1] * k)


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return a[0] * b[0] + a[1] * b[1]


def cross2(a: Sequence[float], b: Sequence[float]) -> float:
    """z component of the cross product of two 2D vectors."""
    return a[0] * b[1] - a[1] * b[0]


def norm(a: Sequence[float], b: Optional[Sequence[float]] = None) -> float:
    """Length of ``a``, or distance between ``a`` and ``b``."""
    if b is not None:
        return math.hypot(a[0] - b[0], a[1] - b[1])
    return math.hypot(a[0], a[1])


def normalize(a: Sequence[float]) -> Point:
    length = norm(a)
    if length < EPS:
        raise GeometryError("cannot normalize a null vector")
    return (a[0] / length, a[1] / length)


def compute_vector_angle(v: Sequence[float]) -> float:
    """Angle of ``v`` from the +x axis, in radians."""
    return math.atan2(v[1], v[0])


def normalize_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    while angle <= -math.pi:
        angle += 2 * math.pi
    while angle > math.pi:
        angle -= 2 * math.pi
    return angle


def rotate_point(center: Sequence[float], point: Sequence[float], angle: float) -> Point:
    """Rotate ``point`` about ``center`` counter-clockwise by ``angle``."""
    c, s = math.cos(angle), math.sin(angle)
    dx, dy = point[0] - center[0], point[1] - center[1]
    return (center[0] + dx * c - dy * s, center[1] + dx * s + dy * c)


def place_along(
    start: Sequence[float],
    end: Sequence[float],
    from_start: Optional[float] = None,
    from_end: Optional[float] = None,
    fraction: Optional[float] = None,
) -> Point:
    """Point on the line start→end.

    ``from_start=d`` is ``d`` past ``start`` towards ``end``; ``from_end=d`` is
    ``d`` past ``end`` (negative values step back towards ``start``);
    ``fraction=f`` interpolates linearly.
    """
    if fraction is not None:
        return (
            start[0] + (end[0] - start[0]) * fraction,
            start[1] + (end[1] - start[1]) * fraction,
        )
    u = normalize(minus(end, start))
    if from_start is not None:
        return (start[0] + u[0] * from_start, start[1] + u[1] * from_start)
    if from_end is not None:
        return (end[0] + u[0] * from_end, end[1] + u[1] * from_end)
    raise TypeError("place_along needs one of from_start, from_end or fraction")


def intersect_lines(
    a1: Sequence[float],
    a2: Sequence[float],
    b1: Sequence[float],
    b2: Sequence[float],
) -> Optional[Point]:
    """Intersection of the infinite lines a1-a2 and b1-b2, None if parallel."""
    x1, y1 = a1[0], a1[1]
    x2, y2 = a2[0], a2[1]
    x3, y3 = b1[0], b1[1]
    x4, y4 = b2[0], b2[1]
    denom = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(denom) < EPS * EPS:
        return None
    d1 = x1 * y2 - y1 * x2
    d2 = x3 * y4 - y3 * x4
    px = (d1 * (x3 - x4) - (x1 - x2) * d2) / denom
    py = (d1 * (y3 - y4) - (y1 - y2) * d2) / denom
    return (px, py)


def intersect_line_and_circle(
    p1: Sequence[float],
    p2: Sequence[float],
    center: Sequence[float],
    radius: float,
) -> List[Point]:
    """Intersections of the infinite line p1-p2 with a circle."""
    d = minus(p2, p1)
    f = minus(p1, center)
    a = dot(d, d)
    if a < EPS * EPS:
        raise GeometryError("degenerate line for circle intersection")
    b = 2 * dot(f, d)
    c = dot(f, f) - radius * radius
    disc = b * b - 4 * a * c
    if disc < -EPS:
        return []
    root = math.sqrt(max(disc, 0.0))
    ts = [(-b - root) / (2 * a), (-b + root) / (2 * a)]
    return [(p1[0] + t * d[0], p1[1] + t * d[1]) for t in ts]


def point_to_line_distance(
    p: Sequence[float], l1: Sequence[float], l2: Sequence[float]
) -> float:
    """Unsigned distance from ``p`` to the infinite line l1-l2."""
    d = minus(l2, l1)
    length = norm(d)
    if length < EPS:
        return norm(p, l1)
    return abs(cross2(d, minus(p, l1))) / length


def are_on_same_line(
    p1: Sequence[float],
    p2: Sequence[float],
    l1: Sequence[float],
    l2: Sequence[float],
) -> bool:
    return (
        point_to_line_distance(p1, l1, l2) < EPS
        and point_to_line_distance(p2, l1, l2) < EPS
    )


def offset_polyline(points: Sequence[Sequence[float]], distance: float) -> List[Point]:
    """Shift a two-point line sideways, positive to the left of its direction."""
    p1, p2 = points[0], points[-1]
    ux, uy = normalize(minus(p2, p1))
    nx, ny = -uy, ux
    return [(p[0] + nx * distance, p[1] + ny * distance) for p in points]


def slide_line(p1: Sequence[float], p2: Sequence[float], distance: float) -> List[Point]:
    """Translate a line along its own direction."""
    ux, uy = normalize(minus(p2, p1))
    return [
        (p1[0] + ux * distance, p1[1] + uy * distance),
        (p2[0] + ux * distance, p2[1] + uy * distance),
    ]


def signed_area(points: Sequence[Sequence[float]]) -> float:
    """Polygon area, positive for counter-clockwise polygons."""
    if len(points) < 3:
        return 0.0
    polygon = Polygon(points)
    return polygon.area if polygon.exterior.is_ccw else -polygon.area


def polygon_center(points: Sequence[Sequence[float]]) -> Point:
    """Area centroid of a polygon (vertex mean when degenerate)."""
    n = len(points)
    if n == 0:
        raise GeometryError("cannot compute the center of an empty polygon")
    if abs(signed_area(points)) < EPS:
        return (
            sum(p[0] for p in points) / n,
            sum(p[1] for p in points) / n,
        )
    centroid = Polygon(points).centroid
    return (centroid.x, centroid.y)


def convex_hull(*point_groups: Iterable[Sequence[float]]) -> List[Point]:
    """Clockwise convex hull starting from the lowest-x (then lowest-y) point."""
    points = sorted(
        (float(p[0]), float(p[1])) for group in point_groups for p in group
    )
    if len(points) < 3:
        return points

    hull = MultiPoint(points).convex_hull
    if not isinstance(hull, Polygon):
        # collinear points
        return sorted({(float(x), float(y)) for x, y in hull.coords})

    ring = [(float(x), float(y)) for x, y in orient(hull, sign=-1.0).exterior.coords[:-1]]
    start = ring.index(min(ring))
    return ring[start:] + ring[:start]


def linearization_matrix(p1: Sequence[float], p2: Sequence[float]) -> np.ndarray:
    """3x3 similarity mapping p1 to (0, 0) and p2 to (1, 0)."""
    dx, dy = p2[0] - p1[0], p2[1] - p1[1]
    length2 = dx * dx + dy * dy
    if length2 < EPS * EPS:
        raise GeometryError("cannot linearize a null segment")
    a, b = dx / length2, dy / length2
    return np.array([
        [a, b, -(a * p1[0] + b * p1[1])],
        [-b, a, b * p1[0] - a * p1[1]],
        [0.0, 0.0, 1.0],
    ])


def apply_matrix2(m: np.ndarray, p: Sequence[float]) -> Point:
    """Apply a 3x3 affine matrix to a 2D point."""
    return (
        float(m[0, 0] * p[0] + m[0, 1] * p[1] + m[0, 2]),
        float(m[1, 0] * p[0] + m[1, 1] * p[1] + m[1, 2]),
    )


def reflection_matrix2(l1: Sequence[float], l2: Sequence[float]) -> np.ndarray:
    """3x3 affine reflection about the line l1-l2."""
    ux, uy = normalize(minus(l2, l1))
    r = np.array([
        [ux * ux - uy * uy, 2 * ux * uy],
        [2 * ux * uy, uy * uy - ux * ux],
    ])
    t = np.array(l1[:2], dtype=float) - r @ np.array(l1[:2], dtype=float)
    m = np.eye(3)
    m[:2, :2] = r
    m[:2, 2] = t
    return m


# ─── 3D vector math ──────────────────────────────────────────────────────────

def minus3(a: Sequence[float], b: Sequence[float]) -> Point3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def plus3(a: Sequence[float], b: Sequence[float]) -> Point3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def cross3(a: Sequence[float], b: Sequence[float]) -> Point3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def norm3(a: Sequence[float]) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def normalize3(a: Sequence[float]) -> Point3:
    length = norm3(a)
    if length < EPS:
        raise GeometryError("cannot normalize a null vector")
    return (a[0] / length, a[1] / length, a[2] / length)


def proj2d(p: Sequence[float]) -> Point:
    """Drop the z coordinate."""
    return (float(p[0]), float(p[1]))


def keyed_2d(p: Sequence[float]) -> Tuple[float, float]:
    """Sort key ordering points by x, then y, tolerant to float noise."""
    return (round(p[0] / EPS) * EPS, round(p[1] / EPS) * EPS)
