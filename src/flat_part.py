"""
Flat parts: a 2D outline with cutouts extruded by a sheet thickness.

A ``FlatPart`` keeps its ``outside`` and ``insides`` paths live in the
extrusion node of its shape snapshot, so outline edits made by the joinery
and shelf engines are what gets sent to the backend. The registry node the
part was created from keeps its own copies and is never modified.

The module also holds the projections used to relate two flat parts:
centerlines, plane traces and face placements.
"""
import logging
import math
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from assembly import LocatedPart
from geometry_primitives import (
    EPS,
    GeometryError,
    Point,
    Point3,
    Z3,
    ZERO3,
    apply_matrix2,
    cross3,
    intersect_lines,
    linearization_matrix,
    minus,
    norm,
    normalize3,
    place_along,
    proj2d,
    reflection_matrix2,
    rotate_point,
)
from materials import ConstructionPlywood
from mesh_provider import fetch_mesh, serialize
from part import Part
from path import Path
from transform import a2m, embed_matrix2, identity, invert, transform_point3

logger = logging.getLogger(__name__)

CENTER_LINE_HALF_LENGTH = 1e6


class FlatPart(Part):
    """A sheet part: ``outside`` minus ``insides``, ``thickness`` thick along z."""

    def __init__(
        self,
        context,
        name: str,
        thickness: float,
        outside: Path,
        insides: Sequence[Path] = (),
    ):
        shape = context.shapes.extrusion(
            identity(), thickness, outside.clone(), *(p.clone() for p in insides)
        )
        super().__init__(context, name, shape)
        self.material = ConstructionPlywood(thickness)
        self.thickness = float(thickness)
        self.outside = outside
        self.insides: List[Path] = list(insides)
        self.shape[0]["outsides"] = [self.outside]
        self.shape[0]["insides"] = self.insides
        self.symmetries = [math.nan, math.nan, self.thickness / 2]

    def assign_outside_path(self, path: Path):
        self.outside = path
        self.shape[0]["outsides"] = [path]

    def add_insides(self, *insides: Path):
        self.insides.extend(insides)

    def clone(self) -> "FlatPart":
        return FlatPart(
            self.context,
            f"cloned {self.name}",
            self.thickness,
            self.outside.clone(),
            [p.clone() for p in self.insides],
        )

    def mirror_outline(
        self,
        p1: Optional[Sequence[float]] = None,
        p2: Optional[Sequence[float]] = None,
    ):
        """Make the outline symmetric about one of its straight edges.

        With ``p1``/``p2`` the edge lying on that line is opened and used as
        the mirror line; otherwise the (open) outline is mirrored about the
        line from its first to its last point. Cutouts are duplicated
        mirrored, and every paired fastener gets a mirrored copy under its
        parent.
        """
        if p1 is not None and p2 is not None:
            segments = self.outside.find_segments_on_line(p1, p2)
            if not segments:
                logger.debug("mirror line %s-%s, outline %s", p1, p2, self.outside)
                raise GeometryError(f"no edge of {self.name} lies on the mirror line")
            self.assign_outside_path(self.outside.move_closing_segment(segments[0]))
        elif self.outside.is_closed:
            raise GeometryError(f"closed outline of {self.name} needs a mirror edge")

        l1, l2 = self.outside.mirror()
        m2 = reflection_matrix2(l1, l2)

        for path in list(self.insides):
            self.insides.append(path.transform(m2).invert())

        m = embed_matrix2(m2)
        for pairing in self.get_pairings():
            self_location = pairing.parent.find_child(self).placement
            new_point = transform_point3(
                invert(pairing.placement) @ self_location @ m
                @ invert(self_location) @ pairing.placement,
                ZERO3,
            )
            located = pairing.parent.add_child(
                pairing.child, pairing.placement @ a2m(new_point)
            )
            self.add_pairing(located, pairing.parent)

    async def load_profile_mesh(self):
        """Mesh from the ``thicken`` endpoint (profile plus thickness only)."""
        body = serialize({
            "outside": self.outside.oriented(clockwise=True),
            "insides": [p.oriented(clockwise=False) for p in self.insides],
            "thickness": self.thickness,
        })
        self.mesh = await fetch_mesh(
            self.context.mesh_cache, f"{self.name} profile", body,
            self.context.backend.thicken,
        )


# ─── Projections ─────────────────────────────────────────────────────────────

def project_center_line(
    coord_transform: np.ndarray,
    thickness: float,
    half_length: float = CENTER_LINE_HALF_LENGTH,
) -> Tuple[Point, Point]:
    """Mid-thickness plane of a sheet, traced in another part's xy plane.

    ``coord_transform`` maps the sheet's frame into the other part's frame.
    The returned line is extended ``half_length`` both ways.
    """
    start = proj2d(transform_point3(coord_transform, (0.0, 0.0, thickness / 2)))
    end = proj2d(transform_point3(coord_transform, (0.0, 0.0, -1.0)))
    if norm(start, end) < EPS:
        raise GeometryError("sheet is parallel to the projection plane")

    oriented = rotate_point(start, end, math.pi / 2)
    return (
        place_along(start, oriented, from_start=-half_length),
        place_along(start, oriented, from_end=half_length),
    )


def project_plane(plane_def: np.ndarray, axes: np.ndarray) -> Tuple[Point, Point]:
    """Trace of the xy plane of ``plane_def`` in the xy plane of ``axes``."""
    m = invert(axes) @ plane_def
    start = proj2d(transform_point3(m, ZERO3))
    end = proj2d(transform_point3(m, Z3))
    if norm(start, end) < EPS:
        raise GeometryError("plane is parallel to the projection plane")
    return start, rotate_point(start, end, math.pi / 2)


def find_flat_part_intersection(
    located1: LocatedPart,
    located2: LocatedPart,
    part1_top: bool = False,
    part2_top: bool = False,
) -> Point3:
    """A point of the line where the faces of two flat parts meet.

    The bottom faces are used unless ``part1_top``/``part2_top`` select the
    top face of the corresponding part.
    """
    mat1, mat2 = located1.placement, located2.placement
    hinge_axis = cross3(
        transform_point3(mat1, Z3, vector=True),
        transform_point3(mat2, Z3, vector=True),
    )
    if math.hypot(*hinge_axis) < EPS:
        raise GeometryError(
            f"{located1.child.name} and {located2.child.name} are parallel"
        )
    cross_plane = a2m(ZERO3, normalize3(hinge_axis))

    if part1_top:
        mat1 = mat1 @ a2m((0.0, 0.0, located1.child.thickness))
    if part2_top:
        mat2 = mat2 @ a2m((0.0, 0.0, located2.child.thickness))

    hinge = intersect_lines(*project_plane(mat1, cross_plane), *project_plane(mat2, cross_plane))
    if hinge is None:
        raise GeometryError("could not intersect flat parts")
    return transform_point3(cross_plane, (hinge[0], hinge[1], 0.0))


def _outward_normal(outside: Path, start: Point, end: Point) -> Point:
    angle = math.pi / 2 if outside.is_clockwise() else -math.pi / 2
    return minus(rotate_point(start, end, angle), start)


def get_face_placement(flat_part: FlatPart, l1: Sequence[float], l2: Sequence[float]) -> np.ndarray:
    """Placement on the straight edge running along l1→l2, z pointing out."""
    m = linearization_matrix(l1, l2)
    for segment in flat_part.outside.iterate_over_segments():
        if segment.kind != "lineTo":
            continue
        start = apply_matrix2(m, segment.start)
        end = apply_matrix2(m, segment.end)
        if abs(start[1]) > EPS or abs(end[1]) > EPS or start[0] > end[0]:
            continue
        zee = _outward_normal(flat_part.outside, segment.start, segment.end)
        return a2m((segment.start[0], segment.start[1], 0.0), (zee[0], zee[1], 0.0))

    logger.debug("face line %s-%s, outline %s", l1, l2, flat_part.outside)
    raise GeometryError(f"no edge of {flat_part.name} runs along the given line")


def get_face_on_located_flat_part(
    located: LocatedPart,
    key: Callable[[Point3], float],
) -> np.ndarray:
    """World placement of the edge face minimising ``key(face center)``.

    The face frame has z pointing out of the part, y along the sheet
    normal and its origin at the start of the edge on the bottom face.
    """
    part, placement = located.child, located.placement
    best = None
    for segment in part.outside.iterate_over_segments():
        if segment.kind != "lineTo":
            continue
        n = _outward_normal(part.outside, segment.start, segment.end)
        normal = (n[0], n[1], 0.0)
        face = placement @ a2m(
            (segment.start[0], segment.start[1], 0.0), normal, cross3(Z3, normal),
        )
        mid = segment.evaluate(0.5)
        score = key(transform_point3(placement, (mid[0], mid[1], 0.0)))
        if best is None or score < best[0]:
            best = (score, face)

    if best is None:
        raise GeometryError(f"{part.name} has no straight edge")
    return best[1]
