"""
2D profile paths made of straight lines and circular arcs.

A ``Path`` is the outline representation used for flat parts: a list of
controls (``moveTo`` / ``lineTo`` / ``arc``) and a closed flag. It renders to
SVG path data (the wire format and the equality key used in tests), supports
segment-level queries used by the joinery engine, and delegates 2D boolean
operations to Shapely on a discretised polygon.

Arc convention: ``sweep=1`` is counter-clockwise in a y-up frame. Clockwise
is the canonical orientation of a solid outline.
"""
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import MultiPolygon, Polygon

from geometry_primitives import (
    EPS,
    GeometryError,
    Point,
    apply_matrix2,
    are_on_same_line,
    cross2,
    dot,
    format_number,
    intersect_line_and_circle,
    intersect_lines,
    minus,
    norm,
    normalize,
    offset_polyline,
    reflection_matrix2,
    signed_area,
)

logger = logging.getLogger(__name__)

ARC_STEP_RAD = math.pi / 32
PARAM_TOL = 1e-9
_HALF_PLANE_SIZE = 1e7


@dataclass
class Control:
    """One drawing instruction; arcs carry radius and SVG flags."""
    kind: str                 # "moveTo", "lineTo" or "arc"
    point: Point
    radius: float = 0.0
    sweep: int = 0
    large_arc: bool = False


@dataclass(frozen=True)
class Segment:
    """A drawable piece of a path between two consecutive points."""
    index: int                # 1-based segment index
    kind: str                 # "lineTo" or "arc"
    start: Point
    end: Point
    radius: float = 0.0
    sweep: int = 0
    large_arc: bool = False

    def arc_geometry(self) -> Tuple[Point, float, float]:
        """(center, start angle, signed sweep angle) of an arc segment."""
        return _arc_geometry(self.start, self.end, self.radius, self.sweep, self.large_arc)

    def length(self) -> float:
        if self.kind != "arc":
            return norm(self.start, self.end)
        _, _, delta = self.arc_geometry()
        return abs(delta) * self.radius

    def evaluate(self, t: float) -> Point:
        if self.kind != "arc":
            return (
                self.start[0] + (self.end[0] - self.start[0]) * t,
                self.start[1] + (self.end[1] - self.start[1]) * t,
            )
        center, a0, delta = self.arc_geometry()
        if t == 0:
            return self.start
        if t == 1:
            return self.end
        angle = a0 + delta * t
        return (
            center[0] + self.radius * math.cos(angle),
            center[1] + self.radius * math.sin(angle),
        )


@dataclass(frozen=True)
class Intersection:
    point: Point
    segment_idx: int


@dataclass(frozen=True)
class BBox:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def size(self) -> float:
        """Diagonal length."""
        return math.hypot(self.width, self.height)


def _arc_geometry(start, end, radius, sweep, large_arc):
    chord = minus(end, start)
    half = norm(chord) / 2
    if half < EPS:
        raise GeometryError("arc with coincident end points")
    radius = max(radius, half)
    ux, uy = chord[0] / (2 * half), chord[1] / (2 * half)
    mid = ((start[0] + end[0]) / 2, (start[1] + end[1]) / 2)
    offset = math.sqrt(max(radius * radius - half * half, 0.0))
    side = 1.0 if bool(sweep) != bool(large_arc) else -1.0
    center = (mid[0] - uy * offset * side, mid[1] + ux * offset * side)

    a0 = math.atan2(start[1] - center[1], start[0] - center[0])
    a1 = math.atan2(end[1] - center[1], end[0] - center[0])
    if sweep:
        delta = (a1 - a0) % (2 * math.pi)
    else:
        delta = -((a0 - a1) % (2 * math.pi))
    return center, a0, delta


def _as_point(p: Sequence[float]) -> Point:
    return (float(p[0]), float(p[1]))


class Path:
    """An outline made of lines and arcs."""

    def __init__(self):
        self.controls: List[Control] = []
        self.closed = False

    # ─── Builders ────────────────────────────────────────────────────────────

    def move_to(self, point: Sequence[float]) -> "Path":
        if self.controls:
            raise GeometryError("a path can only have one moveTo")
        self.controls.append(Control("moveTo", _as_point(point)))
        return self

    def line_to(self, point: Sequence[float]) -> "Path":
        self._require_start()
        self.controls.append(Control("lineTo", _as_point(point)))
        return self

    def arc(
        self,
        point: Sequence[float],
        radius: float,
        sweep: int,
        large_arc: bool = False,
    ) -> "Path":
        self._require_start()
        self.controls.append(
            Control("arc", _as_point(point), float(radius), 1 if sweep else 0, bool(large_arc))
        )
        return self

    def close(self) -> "Path":
        self._require_start()
        self.closed = True
        return self

    def merge(self, other: "Path") -> "Path":
        """Append another path, joining with a line if needed."""
        if not other.controls:
            return self
        if not self.controls:
            self.move_to(other.start)
        elif norm(self.end, other.start) > EPS:
            self.line_to(other.start)
        for control in other.controls[1:]:
            self.controls.append(replace(control))
        return self

    def _require_start(self):
        if not self.controls:
            raise GeometryError("path needs a moveTo first")

    @classmethod
    def from_polyline(cls, points: Sequence[Sequence[float]], close: bool = True) -> "Path":
        path = cls()
        path.move_to(points[0])
        for p in points[1:]:
            path.line_to(p)
        if close:
            path.close()
        return path

    @classmethod
    def make_circle(cls, radius: float) -> "Path":
        path = cls()
        path.move_to((radius, 0))
        path.arc((-radius, 0), radius, 0)
        path.arc((radius, 0), radius, 0)
        return path.close()

    @classmethod
    def make_rect(cls, width: float, height: Optional[float] = None) -> "Path":
        """Clockwise rectangle with a corner at the origin."""
        if height is None:
            height = width
        return cls.from_polyline([(0, 0), (0, height), (width, height), (width, 0)])

    @classmethod
    def make_rounded_rect(cls, width: float, height: float, radius: float) -> "Path":
        """Clockwise rectangle with rounded corners, corner at the origin."""
        path = cls()
        path.move_to((0, radius))
        path.line_to((0, height - radius))
        path.arc((radius, height), radius, 0)
        path.line_to((width - radius, height))
        path.arc((width, height - radius), radius, 0)
        path.line_to((width, radius))
        path.arc((width - radius, 0), radius, 0)
        path.line_to((radius, 0))
        path.arc((0, radius), radius, 0)
        return path.close()

    @classmethod
    def from_svg(cls, data: str) -> "Path":
        """Parse the M/L/A/Z subset produced by ``str(path)``."""
        tokens = re.findall(r"[MLAZ]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?", data)
        path = cls()
        i = 0

        def take(n):
            nonlocal i
            values = [float(t) for t in tokens[i:i + n]]
            if len(values) != n:
                raise GeometryError(f"truncated path data: {data!r}")
            i += n
            return values

        while i < len(tokens):
            command = tokens[i]
            i += 1
            if command == "M":
                path.move_to(take(2))
            elif command == "L":
                path.line_to(take(2))
            elif command == "A":
                rx, _ry, _rot, large, sweep, x, y = take(7)
                path.arc((x, y), rx, int(sweep), bool(large))
            elif command == "Z":
                path.close()
            else:
                raise GeometryError(f"unsupported path command {command!r}")
        return path

    # ─── Accessors ───────────────────────────────────────────────────────────

    @property
    def start(self) -> Point:
        self._require_start()
        return self.controls[0].point

    @property
    def end(self) -> Point:
        self._require_start()
        return self.controls[-1].point

    @property
    def is_closed(self) -> bool:
        return self.closed

    def segments(self) -> List[Segment]:
        result = []
        for i in range(1, len(self.controls)):
            c = self.controls[i]
            result.append(Segment(
                i, c.kind, self.controls[i - 1].point, c.point,
                c.radius, c.sweep, c.large_arc,
            ))
        if self.closed and self.controls and norm(self.end, self.start) > EPS:
            result.append(Segment(len(self.controls), "lineTo", self.end, self.start))
        return result

    @property
    def segment_count(self) -> int:
        return len(self.segments())

    def iterate_over_segments(self) -> Iterator[Segment]:
        yield from self.segments()

    def _normalize_index(self, idx: int) -> int:
        if idx < 0:
            idx = len(self.controls) + idx
        return idx

    def get_segment_at(self, idx: int) -> Segment:
        """Segment ``idx`` (1-based, negative counts from the last control)."""
        idx = self._normalize_index(idx)
        for segment in self.segments():
            if segment.index == idx:
                return segment
        raise IndexError(f"no segment {idx} in path with {len(self.controls)} controls")

    def evaluate(self, idx: int, t: float) -> Point:
        return self.get_segment_at(idx).evaluate(t)

    def segment_length(self, idx: int) -> float:
        return self.get_segment_at(idx).length()

    def points(self) -> List[Point]:
        """Control points, without the duplicated start of a closed path."""
        pts = [c.point for c in self.controls]
        if self.closed and len(pts) > 1 and norm(pts[-1], pts[0]) < EPS:
            pts = pts[:-1]
        return pts

    def discretize(self, step: float = ARC_STEP_RAD) -> List[Point]:
        """Polyline approximation; arcs are sampled every ``step`` radians."""
        self._require_start()
        result = [self.start]
        for segment in self.segments():
            if segment.kind == "arc":
                _, _, delta = segment.arc_geometry()
                n = max(2, int(math.ceil(abs(delta) / step)))
                for k in range(1, n):
                    result.append(segment.evaluate(k / n))
            result.append(segment.end)
        if self.closed and len(result) > 1 and norm(result[-1], result[0]) < EPS:
            result.pop()
        return result

    def get_points_with_half_arcs(self) -> List[Point]:
        self._require_start()
        result = [self.start]
        for segment in self.segments():
            if segment.kind == "arc":
                result.append(segment.evaluate(0.5))
            result.append(segment.end)
        if self.closed and len(result) > 1 and norm(result[-1], result[0]) < EPS:
            result.pop()
        return result

    def to_polygon(self) -> Polygon:
        polygon = Polygon(self.discretize())
        if not polygon.is_valid:
            polygon = polygon.buffer(0)
        return polygon

    def bbox(self) -> BBox:
        pts = np.array(self.discretize())
        return BBox(
            float(pts[:, 0].min()), float(pts[:, 1].min()),
            float(pts[:, 0].max()), float(pts[:, 1].max()),
        )

    def signed_area(self) -> float:
        return signed_area(self.discretize())

    def is_clockwise(self) -> bool:
        points = self.discretize()
        if len(points) < 3:
            return False
        return not Polygon(points).exterior.is_ccw

    def oriented(self, clockwise: bool = True) -> "Path":
        if self.is_clockwise() == clockwise:
            return self.clone()
        return self.invert()

    # ─── Queries used by joinery ─────────────────────────────────────────────

    def intersect_line(self, l1: Sequence[float], l2: Sequence[float]) -> List[Intersection]:
        """Crossings of the finite segment l1→l2 with the path."""
        result: List[Intersection] = []
        d2 = minus(l2, l1)
        length2 = dot(d2, d2)
        if length2 < EPS * EPS:
            raise GeometryError("cannot intersect with a null line")

        def add(point, idx):
            for existing in result:
                if norm(existing.point, point) < EPS:
                    return
            result.append(Intersection(point, idx))

        for segment in self.segments():
            if segment.kind != "arc":
                d1 = minus(segment.end, segment.start)
                denom = cross2(d1, d2)
                if abs(denom) < EPS * EPS:
                    continue
                w = minus(l1, segment.start)
                t = cross2(w, d2) / denom
                u = cross2(w, d1) / denom
                if -PARAM_TOL <= t <= 1 + PARAM_TOL and -PARAM_TOL <= u <= 1 + PARAM_TOL:
                    add(segment.evaluate(min(max(t, 0.0), 1.0)), segment.index)
                continue

            center, a0, delta = segment.arc_geometry()
            for point in intersect_line_and_circle(l1, l2, center, segment.radius):
                u = dot(minus(point, l1), d2) / length2
                if not (-PARAM_TOL <= u <= 1 + PARAM_TOL):
                    continue
                angle = math.atan2(point[1] - center[1], point[0] - center[0])
                travelled = (angle - a0) % (2 * math.pi) if delta > 0 else (a0 - angle) % (2 * math.pi)
                tol = EPS / max(segment.radius, EPS)
                if travelled <= abs(delta) + tol or travelled >= 2 * math.pi - tol:
                    add(point, segment.index)
        return result

    def find_segments_on_line(
        self,
        l1: Sequence[float],
        l2: Sequence[float],
        overlapping: bool = False,
    ) -> List[int]:
        """Straight segments lying on the infinite line l1-l2."""
        result = []
        direction = normalize(minus(l2, l1))
        for segment in self.segments():
            if segment.kind == "arc":
                continue
            if not are_on_same_line(segment.start, segment.end, l1, l2):
                continue
            if overlapping:
                a = sorted(dot(minus(p, l1), direction) for p in (segment.start, segment.end))
                b = sorted(dot(minus(p, l1), direction) for p in (l1, l2))
                if min(a[1], b[1]) - max(a[0], b[0]) < EPS:
                    continue
            result.append(segment.index)
        return result

    # ─── Edits ───────────────────────────────────────────────────────────────

    def insert(self, idx: int, path: "Path") -> "Path":
        """Splice an open path into straight segment ``idx``."""
        idx = self._normalize_index(idx)
        segment = self.get_segment_at(idx)
        if segment.kind == "arc":
            raise GeometryError("can only insert into a straight segment")
        spliced = [Control("lineTo", path.start)]
        spliced.extend(replace(c) for c in path.controls[1:])
        self.controls[idx:idx] = spliced
        return self

    def move_closing_segment(self, idx: int) -> "Path":
        """Re-root a closed path so segment ``idx`` becomes the open gap."""
        if not self.closed:
            raise GeometryError("can only move the closing segment of a closed path")
        segments = self.segments()
        idx = self._normalize_index(idx)
        position = next((k for k, s in enumerate(segments) if s.index == idx), None)
        if position is None:
            raise IndexError(f"no segment {idx}")
        if segments[position].kind == "arc":
            raise GeometryError("closing segment must be straight")

        result = Path()
        result.move_to(segments[position].end)
        n = len(segments)
        for j in range(1, n):
            s = segments[(position + j) % n]
            result.controls.append(Control(s.kind, s.end, s.radius, s.sweep, s.large_arc))
        return result

    def mirror(
        self,
        p1: Optional[Sequence[float]] = None,
        p2: Optional[Sequence[float]] = None,
    ) -> Tuple[Point, Point]:
        """Append the reflected, reversed copy of this path about p1→p2.

        Defaults to the line from the first to the last point. The path is
        closed when the mirrored copy returns to the start. Returns the
        mirror line.
        """
        self._require_start()
        p1 = self.start if p1 is None else _as_point(p1)
        p2 = self.end if p2 is None else _as_point(p2)
        m = reflection_matrix2(p1, p2)
        original = list(self.controls)

        last = original[-1].point
        mirrored_last = apply_matrix2(m, last)
        if norm(mirrored_last, last) > EPS:
            self.line_to(mirrored_last)

        for i in range(len(original) - 1, 0, -1):
            c = original[i]
            target = apply_matrix2(m, original[i - 1].point)
            self.controls.append(Control(c.kind, target, c.radius, c.sweep, c.large_arc))

        if norm(self.end, self.start) < EPS and len(self.controls) > 2:
            if self.controls[-1].kind == "lineTo":
                self.controls.pop()
            else:
                self.controls[-1].point = self.start
            self.closed = True
        return (p1, p2)

    def boolean_difference(self, other: "Path") -> "Path":
        """Outline minus ``other``, as a closed polyline with this orientation."""
        mine = self.to_polygon()
        theirs = other.to_polygon()
        if not mine.intersects(theirs):
            return self.clone()
        result = mine.difference(theirs)
        if result.is_empty:
            raise GeometryError("boolean difference removed the whole outline")
        return self._from_shapely(result, "difference")

    def cut_on_line(
        self,
        l1: Sequence[float],
        l2: Sequence[float],
        other_side: bool = False,
    ) -> "Path":
        """Keep the part of the outline left of l1→l2 (right with ``other_side``)."""
        ux, uy = normalize(minus(l2, l1))
        nx, ny = (uy, -ux) if other_side else (-uy, ux)
        big = _HALF_PLANE_SIZE
        a = (l1[0] - ux * big, l1[1] - uy * big)
        b = (l1[0] + ux * big, l1[1] + uy * big)
        half_plane = Polygon([
            a, b,
            (b[0] + nx * big, b[1] + ny * big),
            (a[0] + nx * big, a[1] + ny * big),
        ])
        result = self.to_polygon().intersection(half_plane)
        if result.is_empty:
            raise GeometryError("cut line leaves nothing of the outline")
        return self._from_shapely(result, "cut")

    def _from_shapely(self, geometry, operation: str) -> "Path":
        if isinstance(geometry, MultiPolygon) or not isinstance(geometry, Polygon):
            polygons = [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon)]
            if not polygons:
                raise GeometryError(f"{operation} did not produce a polygon")
            logger.warning(
                "%s split the outline into %d pieces, keeping the largest",
                operation, len(polygons),
            )
            geometry = max(polygons, key=lambda g: g.area)
        if geometry.interiors:
            logger.warning("%s left %d interior holes, ignoring them", operation, len(geometry.interiors))
        coords = [(float(x), float(y)) for x, y in geometry.exterior.coords[:-1]]
        result = Path.from_polyline(coords)
        result.simplify()
        return result.oriented(self.is_clockwise())

    # ─── Transforms ──────────────────────────────────────────────────────────

    def transform(self, m: np.ndarray) -> "Path":
        """Apply a 3x3 affine matrix (arcs assume uniform scaling)."""
        det = float(m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0])
        scale = math.sqrt(abs(det))
        flip = det < 0
        result = Path()
        for c in self.controls:
            result.controls.append(Control(
                c.kind,
                apply_matrix2(m, c.point),
                c.radius * scale,
                (1 - c.sweep) if (flip and c.kind == "arc") else c.sweep,
                c.large_arc,
            ))
        result.closed = self.closed
        return result

    def rotate(self, angle: float) -> "Path":
        c, s = math.cos(angle), math.sin(angle)
        return self.transform(np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]]))

    def translate(self, vec: Sequence[float]) -> "Path":
        result = self.clone()
        for c in result.controls:
            c.point = (c.point[0] + vec[0], c.point[1] + vec[1])
        return result

    def scale(self, sx: float, sy: Optional[float] = None) -> "Path":
        if sy is None:
            sy = sx
        return self.transform(np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]]))

    def invert(self) -> "Path":
        """Same outline travelled in the opposite direction."""
        result = Path()
        result.move_to(self.end)
        for i in range(len(self.controls) - 1, 0, -1):
            c = self.controls[i]
            sweep = (1 - c.sweep) if c.kind == "arc" else c.sweep
            result.controls.append(Control(
                c.kind, self.controls[i - 1].point, c.radius, sweep, c.large_arc,
            ))
        result.closed = self.closed
        return result

    def clone(self) -> "Path":
        result = Path()
        result.controls = [replace(c) for c in self.controls]
        result.closed = self.closed
        return result

    def recenter(self) -> "Path":
        cx, cy = self.bbox().center
        return self.translate((-cx, -cy))

    def thicken_and_close(self, width: float) -> "Path":
        """Close an open polyline by offsetting it ``width`` to its right."""
        pts = [c.point for c in self.controls]
        if any(c.kind == "arc" for c in self.controls):
            raise GeometryError("can only thicken straight polylines")
        sides = []
        for a, b in zip(pts, pts[1:]):
            sides.append(offset_polyline([a, b], -width))
        offset_pts = [sides[0][0]]
        for (a1, a2), (b1, b2) in zip(sides, sides[1:]):
            joint = intersect_lines(a1, a2, b1, b2)
            offset_pts.append(joint if joint is not None else a2)
        offset_pts.append(sides[-1][1])
        return Path.from_polyline(pts + list(reversed(offset_pts)))

    def simplify(self) -> "Path":
        """Drop duplicate points and merge collinear straight runs, in place."""
        changed = True
        while changed and len(self.controls) > 2:
            changed = False
            for i in range(1, len(self.controls)):
                c = self.controls[i]
                prev = self.controls[i - 1].point
                if c.kind == "lineTo" and norm(c.point, prev) < EPS:
                    del self.controls[i]
                    changed = True
                    break
                if i + 1 < len(self.controls):
                    n = self.controls[i + 1]
                    if c.kind == "lineTo" and n.kind == "lineTo" and self._collinear(prev, c.point, n.point):
                        del self.controls[i]
                        changed = True
                        break
            if changed or not self.closed:
                continue
            last = self.controls[-1]
            if last.kind == "lineTo" and norm(last.point, self.start) < EPS:
                self.controls.pop()
                changed = True
                continue
            first = self.controls[1]
            if last.kind == "lineTo" and first.kind == "lineTo" and len(self.controls) > 3:
                if self._collinear(last.point, self.start, first.point):
                    self.controls[0] = Control("moveTo", last.point)
                    self.controls.pop()
                    changed = True
        return self

    @staticmethod
    def _collinear(a: Point, b: Point, c: Point) -> bool:
        ab, bc = minus(b, a), minus(c, b)
        if norm(ab) < EPS or norm(bc) < EPS:
            return False
        return abs(cross2(normalize(ab), normalize(bc))) < EPS and dot(ab, bc) > 0

    # ─── Serialisation ───────────────────────────────────────────────────────

    def __str__(self) -> str:
        parts = []
        for c in self.controls:
            x, y = format_number(c.point[0]), format_number(c.point[1])
            if c.kind == "moveTo":
                parts.append(f"M {x} {y}")
            elif c.kind == "lineTo":
                parts.append(f"L {x} {y}")
            else:
                r = format_number(c.radius)
                parts.append(f"A {r} {r} 0 {1 if c.large_arc else 0} {c.sweep} {x} {y}")
        if self.closed:
            parts.append("Z")
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"Path({str(self)!r})"
