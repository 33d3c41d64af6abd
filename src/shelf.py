"""
Shelf outlines derived from the flat parts surrounding a plane.

Each bounding part contributes line segments expressed in the shelf plane:
a part crossing the plane gives a *cutting* line (its mid-plane trace, with
its thickness), a part whose edge lies in the plane gives two *edge* lines
(its faces), and outline features give edge lines. ``find_convex_zones``
splits the plane along the cutting lines into convex regions; the shelf is
the convex hull of the chosen region.
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from assembly import LocatedPart
from flat_part import FlatPart, project_center_line
from geometry_primitives import (
    EPS,
    GeometryError,
    Point,
    ZERO3,
    convex_hull,
    cross2,
    intersect_lines,
    minus,
    norm,
    offset_polyline,
    place_along,
    polygon_center,
    proj2d,
)
from path import Path
from transform import invert, transform_point3

logger = logging.getLogger(__name__)

CUTTING = "cutting"
ONLY_CUTTING = "onlyCutting"
EDGE = "edge"


@dataclass
class LineInfo:
    """A directed segment bounding (or splitting) shelf zones."""
    pts: List[Point]
    kind: str
    thickness: float = 0.0
    # "left"/"right" for single-side edges, whose hull point gets paired back
    pairing: Optional[str] = None
    zee: Optional[Point] = None


def cut(cut_line: Sequence[Point], other_line: Sequence[Point], cut_width: float):
    """Split ``other_line`` by ``cut_line`` into its ``(up, down)`` parts.

    Either part is None when ``other_line`` lies fully on one side. A line
    crossing the cut is trimmed back by half the cut width on both sides.
    """
    half_thickness = cut_width / 2
    c1, c2 = cut_line
    o1, o2 = other_line

    sign1 = cross2(minus(c1, c2), minus(o1, c2))
    sign2 = cross2(minus(c1, c2), minus(o2, c2))

    if sign1 >= 0 and sign2 >= 0:
        return list(other_line), None
    if sign1 < 0 and sign2 < 0:
        return None, list(other_line)

    crossing = intersect_lines(o1, o2, c1, c2)
    if crossing is None:
        raise ValueError(f"cannot split {other_line} by {cut_line}")

    # Touching the cut at one end: the other end decides
    if norm(crossing, o1) < EPS:
        return (list(other_line), None) if sign2 >= 0 else (None, list(other_line))
    if norm(crossing, o2) < EPS:
        return (list(other_line), None) if sign1 >= 0 else (None, list(other_line))

    first = [o1, place_along(o1, crossing, from_end=-half_thickness)]
    second = [place_along(crossing, o2, from_start=half_thickness), o2]
    if sign1 >= 0:
        return first, second
    return second, first


def find_convex_zones(original_lines: List[LineInfo]) -> List[List[LineInfo]]:
    """Split the lines into zones until no cutting line divides a zone.

    A cutting line with lines on both sides replaces its zone by the two
    sides, each closed by the cutting line offset by half its thickness.
    Otherwise it becomes that offset edge on the side that has lines.
    ``onlyCutting`` lines always split and never become edges.
    """
    zones = [list(original_lines)]

    i = 0
    while i < len(zones):
        lines = zones[i]
        inc = 1
        for idx, line in enumerate(lines):
            if line.kind not in (CUTTING, ONLY_CUTTING):
                continue

            ups: List[LineInfo] = []
            downs: List[LineInfo] = []
            for other in lines:
                if other is line:
                    continue
                up, down = cut(line.pts, other.pts, line.thickness)
                if up:
                    ups.append(dataclasses.replace(other, pts=up))
                if down:
                    downs.append(dataclasses.replace(other, pts=down))

            up_line = LineInfo(offset_polyline(line.pts, -line.thickness / 2), EDGE)
            down_line = LineInfo(offset_polyline(line.pts, line.thickness / 2), EDGE)

            if line.kind == ONLY_CUTTING:
                zones[i:i + 1] = [downs, ups]
                inc = 0
                break
            if ups and downs:
                zones[i:i + 1] = [downs + [down_line], ups + [up_line]]
                inc = 0
                break

            lines[idx] = up_line if ups else down_line
        i += inc

    return zones


@dataclass
class ShelfOptions:
    wood_thickness: float
    join_offset: float = 0.0
    zone_index: Optional[int] = None
    zone_point: Optional[Point] = None


@dataclass
class _Bound:
    located: LocatedPart
    kind: str


class ShelfMaker:
    """Collects bounding parts and features, then computes a shelf outline.

    ``placement`` is the shelf plane: the outline is expressed in its xy
    plane, and the shelf itself is ``wood_thickness`` thick above it.
    """

    def __init__(self, placement: np.ndarray, options: ShelfOptions):
        self.placement = placement
        self.options = options
        self.bounds: List[_Bound] = []
        self.features: List[Tuple[Path, np.ndarray]] = []

    def add_flat_part(self, located: LocatedPart, only_cutting: bool = False) -> "ShelfMaker":
        if not isinstance(located.child, FlatPart):
            raise TypeError("cannot use non flat parts")
        self.bounds.append(_Bound(located, ONLY_CUTTING if only_cutting else "normal"))
        return self

    def add_single_side_of_part(self, located: LocatedPart, other_side: bool = False) -> "ShelfMaker":
        """Bound by one face only: the top face, or the bottom one with ``other_side``."""
        if not isinstance(located.child, FlatPart):
            raise TypeError("cannot use non flat parts")
        self.bounds.append(_Bound(located, "leftSide" if other_side else "rightSide"))
        return self

    def add_feature(self, path: Path, placement: np.ndarray) -> "ShelfMaker":
        self.features.append((path, placement))
        return self

    def _part_lines(self, bound: _Bound) -> List[LineInfo]:
        part, placement = bound.located.child, bound.located.placement
        plane_to_part = invert(placement) @ self.placement
        part_to_plane = invert(plane_to_part)

        def parttp(p):
            return proj2d(transform_point3(part_to_plane, p))

        centerline = project_center_line(plane_to_part, self.options.wood_thickness)
        crossings = part.outside.intersect_line(*centerline)

        # Only the overall extent matters
        if len(crossings) > 2:
            ordered = sorted(crossings, key=lambda c: norm(c.point, centerline[0]))
            crossings = [ordered[0], ordered[-1]]

        if len(crossings) == 2:
            points = [c.point for c in crossings]
            if bound.kind in ("normal", ONLY_CUTTING):
                return [LineInfo(
                    [parttp((p[0], p[1], part.thickness / 2)) for p in points],
                    ONLY_CUTTING if bound.kind == ONLY_CUTTING else CUTTING,
                    part.thickness,
                )]

            zee = minus(parttp((0.0, 0.0, 1.0)), parttp(ZERO3))
            if bound.kind == "leftSide":
                return [LineInfo([parttp((p[0], p[1], 0.0)) for p in points], EDGE, pairing="left", zee=zee)]
            return [LineInfo(
                [parttp((p[0], p[1], part.thickness)) for p in points], EDGE, pairing="right", zee=zee,
            )]

        l1 = proj2d(transform_point3(plane_to_part, ZERO3))
        l2 = proj2d(transform_point3(plane_to_part, (1.0, 1.0, 0.0)))
        on_line = part.outside.find_segments_on_line(l1, l2)
        if not crossings and on_line:
            segment = part.outside.get_segment_at(on_line[0])
            ends = [segment.start, segment.end]
            offset = self.options.join_offset
            return [
                LineInfo([parttp((p[0], p[1], -offset)) for p in ends], EDGE),
                LineInfo([parttp((p[0], p[1], part.thickness + offset)) for p in ends], EDGE),
            ]

        logger.debug("centerline %s, outline %s", centerline, part.outside)
        logger.error("couldn't find how to use %s to make shelf", part.name)
        return []

    def _feature_lines(self, path: Path, placement: np.ndarray) -> List[LineInfo]:
        part_to_plane = invert(invert(placement) @ self.placement)
        points = [
            proj2d(transform_point3(part_to_plane, (p[0], p[1], 0.0)))
            for p in path.get_points_with_half_arcs()
        ]
        return [LineInfo([p1, p2], EDGE) for p1, p2 in zip(points, points[1:])]

    def _select_hull(self, zones: List[List[LineInfo]]) -> List[Point]:
        # Zones left empty by an only-cutting split have no area
        hulls = [
            hull for hull in (convex_hull(*(line.pts for line in zone)) for zone in zones)
            if len(hull) > 2
        ]
        if not hulls:
            raise GeometryError("no zone to make a shelf from")

        opts = self.options
        if opts.zone_index is not None:
            return hulls[opts.zone_index]
        if opts.zone_point is not None:
            return min(hulls, key=lambda h: norm(polygon_center(h), opts.zone_point))
        if len(hulls) > 1:
            logger.warning(
                "Found %d shelf zones without a zone selector, using the first one (centers: %s)",
                len(hulls), [polygon_center(h) for h in hulls],
            )
        return hulls[0]

    def make(self) -> Path:
        geometries: List[LineInfo] = []
        for bound in self.bounds:
            geometries.extend(self._part_lines(bound))
        for path, placement in self.features:
            geometries.extend(self._feature_lines(path, placement))

        zones = find_convex_zones(geometries)
        hull = list(self._select_hull(zones))

        # Single-side edges only bound by one face: pull their other end back in
        for geom in geometries:
            if geom.pairing is None:
                continue
            on_y = abs(geom.zee[1]) > EPS
            a, b = geom.pts
            for i, p in enumerate(hull):
                if norm(b, p) >= EPS:
                    continue
                if geom.pairing == "left":
                    hull.insert(i + (0 if on_y else 1), a)
                else:
                    hull.insert(i + (1 if on_y else 0), a)
                break

        return Path.from_polyline(hull).simplify()


def make_shelf_on_plane(
    plane: np.ndarray,
    options: ShelfOptions,
    *located_flat_parts: LocatedPart,
) -> Path:
    maker = ShelfMaker(plane, options)
    for located in located_flat_parts:
        maker.add_flat_part(located)
    return maker.make()
