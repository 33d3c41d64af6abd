"""
Design-for-manufacturing helpers for CNC-routed plywood.

A round router bit cannot cut a sharp inside corner: wherever a cut path
turns, a tangent arc of the spindle radius must be inserted so the tool can
physically reach the corner ("spindle clearance", a dogbone-style relief).
Two variants are provided:

- ``spindle_cleared_line_to`` puts the whole relief arc on one side of the
  corner (on the incoming segment, or on the outgoing one with
  ``on_next_line=True``);
- ``spindle_cleared_split_line_to`` splits the relief symmetrically between
  the two segments.

Both keep the path continuous and do not change its closure.
"""
import logging
import math
from typing import Sequence, Tuple

from geometry_primitives import (
    EPS,
    GeometryError,
    Point,
    intersect_line_and_circle,
    minus,
    norm,
    normalize_angle,
    place_along,
    rotate_point,
)
from path import Path

logger = logging.getLogger(__name__)


def _last_line(path: Path) -> Tuple[Point, Point]:
    segment = path.get_segment_at(-1)
    if segment.kind != "lineTo":
        raise GeometryError("spindle clearance needs the path to end with a line")
    return segment.start, segment.end


def _turning_angle(a: Sequence[float], b: Sequence[float]) -> float:
    return normalize_angle(math.atan2(b[1], b[0]) - math.atan2(a[1], a[0]))


def _relief_point(
    last_point: Point,
    corner: Point,
    next_point: Sequence[float],
    radius: float,
) -> Tuple[Point, int]:
    """Tangent point on corner→next_point and the sweep of the relief arc."""
    angle = _turning_angle(minus(corner, last_point), minus(next_point, corner))
    if abs(angle) < EPS:
        raise GeometryError("no corner to clear between collinear segments")

    center = rotate_point(
        corner,
        place_along(last_point, corner, from_end=radius),
        math.copysign(math.pi / 2, angle),
    )
    roots = intersect_line_and_circle(corner, next_point, center, radius)
    if not roots:
        raise GeometryError("spindle relief does not reach the next segment")
    root = max(roots, key=lambda r: norm(r, corner))
    return root, 1 if angle > 0 else 0


def spindle_cleared_line_to(
    path: Path,
    next_point: Sequence[float],
    radius: float,
    on_next_line: bool = False,
) -> Path:
    """``path.line_to(next_point)`` with a spindle relief at the current corner.

    By default the relief arc starts at the corner and ends on the new
    segment. With ``on_next_line=True`` the arc is carved into the incoming
    segment instead, ending on the corner itself.
    """
    last_point, corner = _last_line(path)
    logger.debug("clearing corner %s with radius %s", corner, radius)

    if not on_next_line:
        root, sweep = _relief_point(last_point, corner, next_point, radius)
        path.arc(root, radius, sweep)
        path.line_to(next_point)
        return path

    root, sweep = _relief_point(tuple(next_point), corner, last_point, radius)
    path.controls[-1].point = root
    path.arc(corner, radius, 0 if sweep else 1)
    path.line_to(next_point)
    return path


def spindle_cleared_split_line_to(
    path: Path,
    next_point: Sequence[float],
    radius: float,
) -> Path:
    """``path.line_to(next_point)`` with a relief shared by both segments."""
    last_point, corner = _last_line(path)
    angle = _turning_angle(minus(last_point, corner), minus(next_point, corner))
    if abs(angle) < EPS or abs(abs(angle) - math.pi) < EPS:
        raise GeometryError("no corner to clear between collinear segments")

    center = rotate_point(
        corner,
        place_along(last_point, corner, from_end=radius),
        math.pi + angle / 2,
    )

    incoming = intersect_line_and_circle(last_point, corner, center, radius)
    outgoing = intersect_line_and_circle(next_point, corner, center, radius)
    if not incoming or not outgoing:
        raise GeometryError("spindle relief does not reach both segments")

    p0 = min(incoming, key=lambda r: norm(r, last_point))
    p1 = min(outgoing, key=lambda r: norm(r, next_point))
    path.controls[-1].point = p0
    path.arc(p1, radius, 0 if angle > 0 else 1)
    path.line_to(next_point)
    return path
