"""
Joint synthesizer for flat parts.

Derives woodworking joints from the relative placement of two flat parts:

- ``join_parts``: a tab part standing on a slot part. The tab's mid-plane is
  projected into the slot part, crossed with its outline, and the tab edges
  resting on the slot part are located. Each edge receives a slot layout
  (tenons, barrel-nut fasteners, notches...), which edits the tab outline and
  cuts matching holes or notches in the slot part. Fasteners declared by the
  slots are added to the parent assembly and paired with the slot part.
- ``half_lap_cross_join``: two parts crossing each other, each notched
  halfway.
- ``trim_flat_part_with_another``: cut one outline on another part's plane.
- ``make_reinforcing_join``: a bridge plate tying two parallel parts together.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Sequence, Union

import numpy as np

from assembly import (
    Assembly,
    AxisPriority,
    BasePart,
    ChildNotFoundError,
    LocatedPart,
    mirror_placement,
)
from geometry_primitives import (
    EPS,
    GeometryError,
    Point,
    Y3,
    Z3,
    ZERO3,
    apply_matrix2,
    compute_vector_angle,
    dot,
    keyed_2d,
    linearization_matrix,
    minus,
    norm,
    normalize,
    offset_polyline,
    place_along,
    proj2d,
    slide_line,
)
from flat_part import FlatPart, project_center_line, project_plane
from path import Path
from slots import (
    BOLT_HOLE_RADIUS,
    NUT_RADIUS,
    BaseSlot,
    make_mortise,
    make_tenon,
)
from transform import a2m, identity, invert, transform_point3, translation

logger = logging.getLogger(__name__)

Layout = Union[Sequence[BaseSlot], Callable[[float], Sequence[BaseSlot]]]


class TopologyError(GeometryError):
    """Two parts do not intersect the way the joint requires."""
    pass


class LayoutMismatchError(GeometryError):
    """The number of slot layouts differs from the number of joined edges."""
    pass


@dataclass
class JoineryConfig:
    """Parameters for joint geometry generation."""
    spindle_diameter: float = 6.0
    center_line_half_length: float = 1e6


@dataclass
class _EdgeSpan:
    """Overlap of a tab edge with the slot part, as segment fractions."""
    idx: int
    start: float
    end: float
    start_in_space: Point
    length: float


def _planar(m: np.ndarray) -> np.ndarray:
    """xy part of a 4x4 placement as a 3x3 affine matrix."""
    return np.array([
        [m[0, 0], m[0, 1], m[0, 3]],
        [m[1, 0], m[1, 1], m[1, 3]],
        [0.0, 0.0, 1.0],
    ])


def _find_edge_spans(
    tab_part: FlatPart,
    slot_part: FlatPart,
    tab_to_slot: np.ndarray,
    config: JoineryConfig,
) -> List[_EdgeSpan]:
    c1, c2 = project_center_line(tab_to_slot, tab_part.thickness, config.center_line_half_length)
    intersections = slot_part.outside.intersect_line(c1, c2)
    if not intersections:
        raise TopologyError(f"{tab_part.name} does not cross {slot_part.name}")
    if len(intersections) % 2 != 0:
        raise TopologyError(
            f"expected an even number of intersections between {tab_part.name} "
            f"and {slot_part.name}, found {len(intersections)}"
        )

    v1 = normalize(minus(c2, c1))
    ordered = sorted(intersections, key=lambda i: dot(minus(i.point, c1), v1))
    slot_to_tab = invert(tab_to_slot)

    spans = []
    for i in range(0, len(ordered), 2):
        centerline = [
            proj2d(transform_point3(slot_to_tab, (p.point[0], p.point[1], slot_part.thickness / 2)))
            for p in ordered[i:i + 2]
        ]
        for side in (
            offset_polyline(centerline, slot_part.thickness / 2),
            offset_polyline(centerline, -slot_part.thickness / 2),
        ):
            for idx in tab_part.outside.find_segments_on_line(*side, overlapping=True):
                segment = tab_part.outside.get_segment_at(idx)
                m = linearization_matrix(segment.start, segment.end)
                start, end = sorted(apply_matrix2(m, p)[0] for p in side)
                start, end = max(start, 0.0), min(end, 1.0)
                if abs(end - start) < EPS:
                    continue
                spans.append(_EdgeSpan(idx, start, end, segment.start, segment.length()))

    spans.sort(key=lambda s: keyed_2d(s.start_in_space))
    return spans


def join_parts(
    parent: Assembly,
    tab_part: FlatPart,
    slot_part: FlatPart,
    *layouts: Layout,
    config: JoineryConfig = None,
) -> List[LocatedPart]:
    """Join the edge(s) of ``tab_part`` resting on ``slot_part``.

    Layouts are matched to the discovered edges in the order of their start
    points. An explicit layout gives each slot's ``x`` as a fraction of the
    overlap; a callable layout receives the overlap length in mm and returns
    slots whose ``x`` is in mm from the overlap start. Every instance of the
    tab part in ``parent`` gets its cut in the (first instance of the) slot
    part.

    Returns the fasteners added to ``parent``.
    """
    config = config or JoineryConfig()
    tab_instances = list(parent.find_children(tab_part))
    slot_instances = list(parent.find_children(slot_part))
    if not tab_instances or not slot_instances:
        missing = tab_part if not tab_instances else slot_part
        raise ChildNotFoundError(f"could not find {missing.name} in {parent.name}")

    slot_placement = slot_instances[0].placement
    tab_to_slot = invert(slot_placement) @ tab_instances[0].placement

    spans = _find_edge_spans(tab_part, slot_part, tab_to_slot, config)
    if not spans:
        raise TopologyError(f"couldn't find an edge of {tab_part.name} to slot into {slot_part.name}")
    if len(spans) != len(layouts):
        err = LayoutMismatchError(
            f"mismatch between nb of layouts ({len(layouts)}) and number of "
            f"segments (found {len(spans)} segments) joining {tab_part.name} to {slot_part.name}"
        )
        logger.error("%s", err)
        raise err

    logger.info("Joining %s to %s along %d edges", tab_part.name, slot_part.name, len(spans))
    fasteners: List[LocatedPart] = []

    # Later segments first, so edits keep the indices of earlier ones valid
    for i in sorted(range(len(spans)), key=lambda k: (spans[k].idx, spans[k].start), reverse=True):
        span = spans[i]
        width = span.end - span.start
        layout = layouts[i]
        generated = callable(layout)
        slots = layout(width * span.length) if generated else layout

        for slot in reversed(list(slots)):
            if generated:
                place = span.start * span.length + slot.x
            else:
                place = (span.start + slot.x * width) * span.length
            result = slot.materialize(tab_part, span.idx, place)

            for instance in tab_instances:
                m = invert(slot_placement) @ instance.placement @ result.slot_placement
                located_path = result.path.transform(_planar(m))
                if result.boolean_difference:
                    slot_part.assign_outside_path(slot_part.outside.boolean_difference(located_path))
                else:
                    slot_part.add_insides(located_path)

                if result.fastener is None:
                    continue

                center = transform_point3(m, ZERO3)
                center = (center[0], center[1], slot_part.thickness / 2)
                zee = transform_point3(m, Z3, vector=True)
                why = transform_point3(m, Y3, vector=True)
                fastener_location = (
                    slot_placement
                    @ a2m(center, zee, why)
                    @ a2m((0.0, 0.0, -slot_part.thickness / 2))
                )
                located = parent.add_child(result.fastener, fastener_location)
                slot_part.add_pairing(located, parent)
                fasteners.append(located)

    return fasteners


def cutout_from_centerline(
    l1: Sequence[float],
    l2: Sequence[float],
    thickness: float,
    spindle_diameter: float = 6,
) -> Path:
    """Slot ``thickness`` wide from ``l2`` back to ``l1``, relieved at ``l2``."""
    length = norm(l1, l2)

    result = Path()
    result.move_to((0, 0))
    result.line_to((-thickness / 2, 0))
    result.arc((-thickness / 2, spindle_diameter), spindle_diameter / 2, 0)
    result.line_to((-thickness / 2, length))
    result.line_to((0, length))
    result.mirror()

    return result.rotate(compute_vector_angle(minus(l2, l1)) + math.pi / 2).translate(l2)


def half_lap_cross_join(
    located1: LocatedPart,
    located2: LocatedPart,
    join_the_other_way: bool = False,
    config: JoineryConfig = None,
):
    """Notch two crossing flat parts halfway so they slide into each other."""
    config = config or JoineryConfig()
    part1, placement1 = located1.child, located1.placement
    part2, placement2 = located2.child, located2.placement
    if not isinstance(part1, FlatPart) or not isinstance(part2, FlatPart):
        raise TypeError("cannot join non flat parts")

    part1_to_part2 = invert(placement2) @ placement1
    part2_to_part1 = invert(part1_to_part2)

    def to_part1(p):
        return proj2d(transform_point3(part2_to_part1, (p[0], p[1], part2.thickness / 2)))

    centerline = project_center_line(part1_to_part2, part1.thickness, config.center_line_half_length)
    intersections = part2.outside.intersect_line(*centerline)
    if len(intersections) != 2:
        raise TopologyError(
            f"half lap needs {part1.name} to cross {part2.name} once, "
            f"found {len(intersections)} intersections"
        )

    line = [i.point for i in intersections]
    slide_distance = norm(*line) / 2

    if join_the_other_way:
        half_overlap_line = list(reversed(slide_line(*line, slide_distance)))
        other_overlap_line = [to_part1(p) for p in slide_line(*line, -slide_distance)]
    else:
        half_overlap_line = slide_line(*line, -slide_distance)
        other_overlap_line = list(reversed([to_part1(p) for p in slide_line(*line, slide_distance)]))

    cutout = cutout_from_centerline(*half_overlap_line, part1.thickness, config.spindle_diameter)
    part2.assign_outside_path(part2.outside.boolean_difference(cutout))

    cutout2 = cutout_from_centerline(*other_overlap_line, part2.thickness, config.spindle_diameter)
    part1.assign_outside_path(part1.outside.boolean_difference(cutout2))


def trim_flat_part_with_another(
    parent: Assembly,
    part_to_trim: FlatPart,
    other_part: FlatPart,
    other_side: bool = False,
):
    """Cut ``part_to_trim`` on the bottom plane of a part standing across it.

    Keeps the side behind ``other_part``'s bottom face, or the side in front
    of it with ``other_side``.
    """
    other_placement = parent.find_child(other_part).placement
    to_trim_placement = parent.find_child(part_to_trim).placement
    plane = invert(to_trim_placement) @ other_placement

    l1, l2 = project_plane(plane, identity())
    part_to_trim.assign_outside_path(part_to_trim.outside.cut_on_line(l1, l2, other_side))


def clone_children_with_transform(parent: Assembly, child: BasePart, transform: np.ndarray) -> List[LocatedPart]:
    return [
        parent.add_child(child, transform @ located.placement)
        for located in parent.find_direct_children(child)
    ]


def clone_and_mirror_children(
    parent: Assembly,
    child: BasePart,
    normal: Sequence[float],
    priority: AxisPriority = AxisPriority.NORMAL_FIRST,
) -> List[LocatedPart]:
    """Add a mirrored copy of every direct instance of ``child`` in ``parent``,
    together with mirrored copies of the fasteners paired under ``parent``."""
    added = []
    for located in parent.find_direct_children(child):
        mirrored = mirror_placement(child, located.placement, normal, priority)
        if mirrored is None:
            logger.warning("Cannot mirror part %s with no symmetries", child.name)
            continue
        added.append(parent.add_child(child, mirrored))

    for pairing in child.get_pairings():
        if pairing.parent is not parent:
            continue
        mirrored = mirror_placement(pairing.child, pairing.placement, normal, priority)
        if mirrored is None:
            logger.warning("Cannot mirror fastener %s with no symmetries", pairing.child.name)
            continue
        child.add_pairing(parent.add_child(pairing.child, mirrored), parent)
    return added


# ─── Reinforcing join ────────────────────────────────────────────────────────

@dataclass
class ReinforcingJoin:
    """A bridge plate and where it goes, relative to the first part's frame."""
    plate: FlatPart
    plate_placement: np.ndarray
    part2_placement: np.ndarray


FASTENER_MAX_PITCH = 250
FASTENER_END_OFFSET = 50
NUT_EDGE_OFFSET = 10


def make_reinforcing_join(
    part1: FlatPart,
    part2: FlatPart,
    l1: Sequence[float],
    l2: Sequence[float],
    width: float,
    thickness: float,
    name: str = "reinforcing join",
    config: JoineryConfig = None,
) -> ReinforcingJoin:
    """Bridge plate between two parallel parts ``width`` apart, along l1→l2.

    Both parts get bolt holes and mortises along the line; the plate gets
    tenons on both long edges and cross holes for barrel nuts facing each
    bolt. ``part2`` is expected above ``part1``, at ``part2_placement``.
    """
    config = config or JoineryConfig()
    length = norm(l1, l2)
    nb_fasteners = max(2, math.ceil(length / FASTENER_MAX_PITCH))
    pitch = (length - 2 * FASTENER_END_OFFSET) / (nb_fasteners - 1)
    rotation = compute_vector_angle(minus(l2, l1))

    bolt_hole = Path.make_circle(BOLT_HOLE_RADIUS)
    nut_hole = Path.make_circle(NUT_RADIUS).translate((0, -NUT_EDGE_OFFSET - NUT_RADIUS))
    mortise = make_mortise(30, thickness, config.spindle_diameter).rotate(rotation)
    tenon = make_tenon(30, part1.thickness, config.spindle_diameter)

    cutouts: List[Path] = []
    plate_cutouts: List[Path] = []
    plate_path = Path()
    plate_path.move_to((0, width / 2))

    last_location = None
    for i in range(nb_fasteners):
        location = FASTENER_END_OFFSET + i * pitch
        cutouts.append(bolt_hole.translate(place_along(l1, l2, from_start=location)))
        top_nut = nut_hole.translate((location, width / 2))
        plate_cutouts.append(top_nut)
        plate_cutouts.append(top_nut.scale(1, -1))

        if last_location is not None:
            middle = (last_location + location) / 2
            cutouts.append(mortise.translate(place_along(l1, l2, from_start=middle)))
            plate_path.merge(tenon.translate((middle, width / 2)))
        last_location = location

    plate_path.line_to((length, width / 2))
    plate_path.mirror((0, 0), (1, 0))
    plate_path.close()

    part1.add_insides(*cutouts)
    part2.add_insides(*(c.clone() for c in cutouts))

    plate = FlatPart(part1.context, name, thickness, plate_path, plate_cutouts)
    ux, uy = math.cos(rotation), math.sin(rotation)
    plate_placement = a2m(
        (l1[0], l1[1], part1.thickness + width / 2), (uy, -ux, 0.0), (ux, uy, 0.0),
    ) @ translation(0.0, 0.0, -thickness / 2)
    logger.info(
        "Reinforcing join %s: %.1f mm long with %d fasteners", name, length, nb_fasteners,
    )
    return ReinforcingJoin(plate, plate_placement, translation(0.0, 0.0, part1.thickness + width))
