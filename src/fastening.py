"""
Fastening of solid subparts (brackets, hinges, feet...) onto flat parts.

A subpart describes its holes through a *hole provider*: a callable that
yields ``HoleSpec(hole, depth, transform)`` for the part, ``hole`` being a
circle in the hole's own xy plane and ``transform`` placing that plane in the
subpart. Fastener hardware comes from a *kit getter* called with the hole
diameter and the clamping length, returning the parts to add.

For every instance of the subpart under ``parent``, the holes are drilled in
the flat part, the hardware is added to ``parent`` and recorded as pairings on
the subpart, so mirroring the subpart's assembly brings the hardware along.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import numpy as np

from assembly import Assembly, BasePart, LocatedPart
from flat_part import FlatPart
from geometry_primitives import (
    EPS,
    GeometryError,
    NX3,
    NZ3,
    Point,
    Y3,
    Z3,
    ZERO3,
    norm,
    place_along,
    proj2d,
)
from path import Path
from transform import a2m, invert, transform_point3

logger = logging.getLogger(__name__)

CYLINDER_NUT_OFFSET = 10
CYLINDER_NUT_DIAMETER = 10


class MisplacedHoleError(GeometryError):
    """A bolt hole does not start on either face of the flat part."""
    pass


@dataclass
class HoleSpec:
    hole: Path
    depth: float
    transform: np.ndarray


@dataclass
class FastenerKit:
    """Hardware for one hole; kits without a nut or barrel have no ``bottom``."""
    top: BasePart
    bottom: Optional[BasePart] = None


HoleProvider = Callable[[BasePart], Iterable[HoleSpec]]
FastenerKitGetter = Callable[..., FastenerKit]


def _hole_diameter(hole: Path):
    segment = hole.get_segment_at(1)
    return norm(segment.start, segment.end), place_along(segment.start, segment.end, fraction=0.5)


def _attach(parent: Assembly, subpart: BasePart, part: BasePart, placement: np.ndarray) -> LocatedPart:
    located = parent.add_child(part, placement)
    subpart.add_pairing(located, parent)
    return located


def fasten_subpart_to_flat_part(
    parent: Assembly,
    subpart: BasePart,
    part: FlatPart,
    hole_provider: HoleProvider,
    fastener_getter: FastenerKitGetter,
) -> List[LocatedPart]:
    """Through-bolt the subpart's holes: bolt head on the subpart, nut on the
    far face of the flat part."""
    part_placement = parent.find_child(part).placement
    result = []

    for located in parent.find_children(subpart):
        sub_to_part = invert(part_placement) @ located.placement
        fasten_to_the_front = transform_point3(sub_to_part, ZERO3)[2] > part.thickness / 2

        for spec in hole_provider(subpart):
            diameter, center = _hole_diameter(spec.hole)
            kit = fastener_getter(diameter, spec.depth + part.thickness)

            loc = proj2d(transform_point3(sub_to_part @ spec.transform, (center[0], center[1], 0.0)))
            part.add_insides(Path.make_circle(diameter / 2).translate(loc))

            fastener_location = part_placement @ a2m(
                (loc[0], loc[1], 0.0 if fasten_to_the_front else part.thickness),
                NZ3 if fasten_to_the_front else Z3,
            )
            top_location = fastener_location @ a2m((0.0, 0.0, -spec.depth - part.thickness))
            bottom_location = fastener_location @ a2m(ZERO3, NZ3)

            result.append(_attach(parent, subpart, kit.top, top_location))
            if kit.bottom is not None:
                result.append(_attach(parent, subpart, kit.bottom, bottom_location))

    logger.info("Fastened %s to %s with %d parts", subpart.name, part.name, len(result))
    return result


def bolt_threaded_subpart_to_flat_part(
    parent: Assembly,
    subpart: BasePart,
    part: FlatPart,
    hole_provider: HoleProvider,
    fastener_getter: FastenerKitGetter,
    ignore_misplaced_holes: bool = False,
) -> List[LocatedPart]:
    """Bolt through the flat part into threaded holes of the subpart.

    Holes further from the flat part than the clamping length are skipped,
    with an error logged unless ``ignore_misplaced_holes``. Holes within
    reach must start on one face of the flat part.
    """
    part_placement = parent.find_child(part).placement
    result = []

    for located in parent.find_children(subpart):
        sub_to_part = invert(part_placement) @ located.placement

        for spec in hole_provider(subpart):
            diameter, center = _hole_diameter(spec.hole)
            hole_in_part = transform_point3(sub_to_part @ spec.transform, (center[0], center[1], 0.0))
            hole_on_part = proj2d(hole_in_part)
            required_clamping_length = spec.depth + part.thickness
            zee = hole_in_part[2]

            if abs(zee) > required_clamping_length:
                if not ignore_misplaced_holes:
                    logger.error(
                        "cannot fasten %s to %s because they are too far apart for hole %s",
                        subpart.name, part.name, hole_in_part,
                    )
                continue

            if abs(zee) > EPS and abs(zee - part.thickness) > EPS:
                raise MisplacedHoleError(
                    f"{subpart.name!r} doesn't seem to be properly located to bolt to {part.name!r}"
                )

            kit = fastener_getter(diameter, required_clamping_length, False)
            part.add_insides(Path.make_circle(diameter / 2).translate(hole_on_part))

            on_the_other_side = abs(zee - part.thickness) < EPS
            fastener_location = part_placement @ a2m(
                (hole_on_part[0], hole_on_part[1], zee if on_the_other_side else 0.0),
                Z3 if on_the_other_side else NZ3,
            )
            top_location = fastener_location @ a2m((0.0, 0.0, -part.thickness))
            result.append(_attach(parent, subpart, kit.top, top_location))

    return result


def fasten_subpart_to_flat_part_edge(
    parent: Assembly,
    subpart: BasePart,
    part: FlatPart,
    hole_provider: HoleProvider,
    fastener_getter: FastenerKitGetter,
) -> List[LocatedPart]:
    """Bolt into the edge of the flat part, with a cross-drilled barrel nut."""
    part_placement = parent.find_child(part).placement
    result = []

    for located in parent.find_children(subpart):
        sub_to_part = invert(part_placement) @ located.placement

        for spec in hole_provider(subpart):
            diameter, center = _hole_diameter(spec.hole)
            required_clamping_length = spec.depth + CYLINDER_NUT_OFFSET + CYLINDER_NUT_DIAMETER / 2

            hole_to_part = sub_to_part @ spec.transform
            hole_start = transform_point3(hole_to_part, (center[0], center[1], spec.depth))
            hole_end = transform_point3(hole_to_part, (center[0], center[1], 0.0))
            if abs(hole_start[2] - part.thickness / 2) > EPS:
                raise GeometryError(
                    f"hole of {subpart.name} is not centered in the thickness of {part.name}"
                )

            kit = fastener_getter(diameter, required_clamping_length, False)
            barrel_center = place_along(hole_start, hole_end, from_end=CYLINDER_NUT_OFFSET)
            part.add_insides(Path.make_circle(CYLINDER_NUT_DIAMETER / 2).translate(barrel_center))

            top_location = part_placement @ a2m(hole_start, NX3)
            bottom_location = top_location @ a2m(
                (0.0, 0.0, spec.depth + CYLINDER_NUT_OFFSET), Z3, Y3,
            )
            result.append(_attach(parent, subpart, kit.top, top_location))
            if kit.bottom is not None:
                result.append(_attach(parent, subpart, kit.bottom, bottom_location))

    return result


def locate_origins_on_flat_part(parent: Assembly, flat_part: FlatPart, part: BasePart) -> List[Point]:
    """Origin of every instance of ``part``, in the 2D frame of ``flat_part``."""
    to_flat = invert(parent.find_child(flat_part).placement)
    return [
        proj2d(transform_point3(to_flat @ located.placement, ZERO3))
        for located in parent.find_children(part)
    ]


def clear_bolt_on_flat_part(
    parent: Assembly,
    flat_part: FlatPart,
    fastener: BasePart,
    radius: float = 10,
    width: float = 30,
    depth: float = 15,
    ignore: bool = False,
):
    """Notch the outline around every instance of ``fastener`` so its head
    can be reached."""
    bolt_clearance = Path.make_rounded_rect(width, 2 * depth, radius).recenter()

    for origin in locate_origins_on_flat_part(parent, flat_part, fastener):
        try:
            flat_part.assign_outside_path(
                flat_part.outside.boolean_difference(bolt_clearance.translate(origin))
            )
        except GeometryError:
            if not ignore:
                raise
            logger.debug("Could not clear bolt of %s at %s", flat_part.name, origin)
