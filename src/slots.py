"""
Slot types placed along a tab part's edge by the joinery engine.

``materialize(part, segment_idx, place)`` edits the *tab* outline in place
(adds a tenon, a nut hole, a notch...) and returns what must be cut in the
*slot* part, expressed in the slot frame:

- origin on the tab edge at ``place`` mm from the segment start, at mid
  thickness of the tab;
- x along the edge, y along the tab's sheet normal, z into the tab.

The slot frame's xy plane is the plane of the slot part, so the joinery
engine only has to map it into the slot part's outline.
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from dfm_rules import spindle_cleared_line_to
from geometry_primitives import compute_vector_angle, minus, place_along, rotate_point
from path import Path
from transform import a2m

logger = logging.getLogger(__name__)

BOLT_HOLE_RADIUS = 7 / 2
NUT_RADIUS = 10.2 / 2


@dataclass
class SlotMaterialization:
    path: Path
    slot_placement: np.ndarray
    boolean_difference: bool = False
    fastener: Optional[object] = None


class BaseSlot(ABC):
    """A joinery feature at offset ``x`` along a discovered edge."""

    def __init__(self, x: float):
        self.x = x

    def __repr__(self) -> str:
        return f"{type(self).__name__}(x={self.x})"

    @abstractmethod
    def materialize(self, part, segment_idx: int, place: Optional[float] = None) -> SlotMaterialization:
        ...

    @staticmethod
    def _edge_frame(part, segment_idx: int, place: float):
        """(start, end, location, rotation, slot placement) on the edge."""
        path = part.outside
        start = path.evaluate(segment_idx, 0)
        end = path.evaluate(segment_idx, 1)
        location = place_along(start, end, from_start=place)
        rotation = compute_vector_angle(minus(end, start))
        ux, uy = math.cos(rotation), math.sin(rotation)
        slot_placement = a2m(
            (location[0], location[1], part.thickness / 2),
            (uy, -ux, 0.0),
            (ux, uy, 0.0),
        )
        return start, end, location, rotation, slot_placement

    def _place(self, place: Optional[float]) -> float:
        return self.x if place is None else place


def make_mortise(length: float, width: float, spindle_diameter: float) -> Path:
    """Through hole for a tenon, centered, with spindle reliefs in the corners."""
    mortise = Path()
    mortise.move_to((0, -width / 2))
    mortise.line_to((spindle_diameter - length / 2, -width / 2))
    mortise.arc((-length / 2, -width / 2), spindle_diameter / 2, 0)
    mortise.line_to((-length / 2, 0))
    mortise.mirror((0, 0))
    mortise.mirror()
    return mortise


def make_tenon(length: float, height: float, spindle_diameter: float) -> Path:
    """Open tenon profile along +x, protruding towards +y."""
    tenon = Path()
    tenon.move_to((-spindle_diameter - length / 2, 0))
    tenon.arc((-length / 2, 0), spindle_diameter / 2, 1)
    tenon.line_to((-length / 2, height))
    tenon.mirror((0, 0), (0, 1))
    return tenon


class TenonMortise(BaseSlot):
    """A tenon on the tab edge going through a mortise in the slot part."""

    def __init__(self, x: float, spindle_diameter: float = 6, length: float = 30,
                 depth: Optional[float] = None):
        super().__init__(x)
        self.spindle_diameter = spindle_diameter
        self.length = length
        self.depth = depth

    def _tenon_height(self, part) -> float:
        return part.thickness if self.depth is None else self.depth

    def materialize(self, part, segment_idx, place=None):
        start, end, location, rotation, slot_placement = self._edge_frame(
            part, segment_idx, self._place(place)
        )
        tenon = make_tenon(self.length, self._tenon_height(part), self.spindle_diameter)
        part.outside.insert(segment_idx, tenon.rotate(rotation).translate(location))

        mortise = make_mortise(self.length, part.thickness, self.spindle_diameter)
        return SlotMaterialization(mortise, slot_placement)


class HornSlot(TenonMortise):
    """A tenon that sticks out of the slot part by ``protrusion``."""

    def __init__(self, x: float, protrusion: float = 10, **kwargs):
        super().__init__(x, **kwargs)
        self.protrusion = protrusion

    def _tenon_height(self, part) -> float:
        return super()._tenon_height(part) + self.protrusion


class CylinderNutFastener(BaseSlot):
    """Bolt through the slot part into a cross-drilled barrel nut in the tab."""

    def __init__(self, x: float, offset: float = 10, fastener=None):
        super().__init__(x)
        self.offset = offset
        self.fastener = fastener
        self.nut_radius = NUT_RADIUS
        self.bolt_hole = Path.make_circle(BOLT_HOLE_RADIUS)
        self.nut_hole = Path.make_circle(self.nut_radius)

    def materialize(self, part, segment_idx, place=None):
        start, end, location, rotation, slot_placement = self._edge_frame(
            part, segment_idx, self._place(place)
        )
        center = rotate_point(
            location,
            place_along(start, location, from_end=self.offset + self.nut_radius),
            -math.pi / 2,
        )
        part.add_insides(self.nut_hole.translate(center))
        return SlotMaterialization(self.bolt_hole.clone(), slot_placement, fastener=self.fastener)


class DrawerSlot(BaseSlot):
    """Notch in the slot part's edge that the tab slides into.

    The notch starts at the slot location and runs ``length`` along the
    edge; it is as wide as the tab plus ``clearance`` on each side. The tab
    outline is not changed.
    """

    def __init__(self, x: float, length: float = 100, clearance: float = 0.5):
        super().__init__(x)
        self.length = length
        self.clearance = clearance

    def _extent(self):
        return 0.0, self.length

    def materialize(self, part, segment_idx, place=None):
        *_, slot_placement = self._edge_frame(part, segment_idx, self._place(place))
        x0, x1 = self._extent()
        half = part.thickness / 2 + self.clearance
        notch = Path.from_polyline([(x0, -half), (x0, half), (x1, half), (x1, -half)])
        return SlotMaterialization(notch, slot_placement, boolean_difference=True)


class CenterDrawerSlot(DrawerSlot):
    """Drawer slot centered on the slot location."""

    def _extent(self):
        return -self.length / 2, self.length / 2


class TroughAngleSupport(BaseSlot):
    """Half-lap style interlock at a right angle.

    The tab edge gets a spindle-cleared trough ``width`` wide and ``depth``
    deep; the slot part gets a matching notch as wide as the tab. Both cuts
    must open on the parts' edges.
    """

    def __init__(self, x: float, width: float = 30, depth: float = 15,
                 spindle_diameter: float = 6, clearance: float = 0.5):
        super().__init__(x)
        self.width = width
        self.depth = depth
        self.spindle_diameter = spindle_diameter
        self.clearance = clearance

    def materialize(self, part, segment_idx, place=None):
        start, end, location, rotation, slot_placement = self._edge_frame(
            part, segment_idx, self._place(place)
        )
        radius = self.spindle_diameter / 2
        w, d = self.width / 2, self.depth

        trough = Path()
        trough.move_to((-w, 0))
        trough.line_to((-w, -d))
        spindle_cleared_line_to(trough, (w, -d), radius)
        spindle_cleared_line_to(trough, (w, 0), radius)
        part.outside.insert(segment_idx, trough.rotate(rotation).translate(location))

        half = part.thickness / 2 + self.clearance
        notch = Path.from_polyline([(-w, -half), (-w, half), (w, half), (w, -half)])
        return SlotMaterialization(notch, slot_placement, boolean_difference=True)


def default_slot_layout(length: float) -> List[BaseSlot]:
    """Barrel-nut fasteners at most 250 mm apart, 70 mm from each end,
    with a tenon between consecutive fasteners."""
    nb_fasteners = max(1, math.ceil(length / 250))
    offset = 70
    slots: List[BaseSlot] = [CylinderNutFastener(offset)]
    if nb_fasteners == 1:
        return slots

    pitch = (length - 2 * offset) / (nb_fasteners - 1)
    last_location = offset
    for i in range(1, nb_fasteners):
        location = offset + i * pitch
        slots.append(TenonMortise((last_location + location) / 2))
        slots.append(CylinderNutFastener(location))
        last_location = location
    return slots
