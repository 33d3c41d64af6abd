"""
Placement solver: put a part so that its contact frame lies on a support frame.
"""
import logging
from typing import Optional

import numpy as np

from assembly import BasePart, LocatedPart
from geometry_primitives import NZ3, ZERO3
from transform import a2m, invert

logger = logging.getLogger(__name__)


class Locator:
    """Fluent helper computing ``support @ invert(contact)``.

    Both frames face each other: the support z axis points out of the
    supporting surface, the contact z axis points into the located part.
    """

    def __init__(self):
        self.support: Optional[np.ndarray] = None
        self.contact: Optional[np.ndarray] = None

    def on_flat_part(self, located: LocatedPart, other_side: bool = False) -> "Locator":
        """Support on the bottom face of the flat part, or its top face."""
        part, placement = located.child, located.placement
        if other_side:
            self.support = placement @ a2m((0.0, 0.0, part.thickness))
        else:
            self.support = placement @ a2m(ZERO3, NZ3)
        return self

    def on_perforated_surface(self, hole_provider, part: BasePart) -> "Locator":
        """Contact on the surface carrying the first hole of ``part``."""
        spec = next(iter(hole_provider(part)), None)
        if spec is None:
            raise ValueError(f"{part.name} has no hole to locate with")
        self.contact = spec.transform @ a2m(ZERO3, NZ3)
        return self

    def locate(self) -> np.ndarray:
        if self.support is None or self.contact is None:
            raise ValueError("locator needs both a support and a contact")
        placement = self.support @ invert(self.contact)
        logger.debug("Located contact at %s", placement[:3, 3])
        return placement
