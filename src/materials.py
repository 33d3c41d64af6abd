"""
Display materials for parts.

A material is a small fixed-size color table read by the renderer: three
``(threshold, r, g, b)`` bands. For plywood the bands paint the thin plastic
faces and the wood core at the right depths of the sheet.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

Color = Tuple[float, float, float]

NB_COLORS_PER_MATERIAL = 3

# Thickness of the plastic film on construction plywood faces
FILM_THICKNESS = 1.0

PLASTIC_LAYER_COLOR: Color = (0.4, 0.4, 0.4)
WOOD_COLOR: Color = (0.640625, 0.453125, 0.28515625)
METAL_COLOR: Color = (0.6, 0.65, 0.65)


@dataclass
class Material:
    """A named color table."""

    name: str
    colors: List[float] = field(
        default_factory=lambda: [0, 0.5, 0.5, 0.5, 0, 0.5, 0.5, 0.5, 0, 0.5, 0.5, 0.5]
    )

    @property
    def bands(self) -> List[Tuple[float, Color]]:
        """(threshold, color) for each of the color bands."""
        return [
            (self.colors[4 * i], tuple(self.colors[4 * i + 1:4 * i + 4]))
            for i in range(NB_COLORS_PER_MATERIAL)
        ]


class ConstructionPlywood(Material):
    """Film-faced plywood: plastic on both faces, wood in between."""

    def __init__(self, thickness: float):
        super().__init__(
            "construction plywood",
            [
                FILM_THICKNESS, *PLASTIC_LAYER_COLOR,
                thickness - FILM_THICKNESS, *WOOD_COLOR,
                0, *PLASTIC_LAYER_COLOR,
            ],
        )
        self.thickness = thickness


class PlainColorMaterial(Material):
    def __init__(self, color: Color):
        super().__init__(
            f"plain color {','.join(str(c) for c in color)}",
            [0, *color, 0, *color, 0, *color],
        )
        self.color = tuple(color)


METAL_MATERIAL = PlainColorMaterial(METAL_COLOR)
DEFAULT_MATERIAL = PlainColorMaterial((1, 0.5, 0.31))
