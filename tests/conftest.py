"""
Shared test fixtures for the flat-part design tests.
"""
import sys
import math
from pathlib import Path as FsPath

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(FsPath(__file__).parent.parent / "src"))

from context import DesignContext
from flat_part import FlatPart
from mesh_provider import SolidBackend
from part import Part
from path import Path
from transform import a2m

CUBE_OBJ = """v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
v 0 0 1
v 1 0 1
v 1 1 1
v 0 1 1
f 1 3 2
f 1 4 3
f 5 6 7
f 5 7 8
f 1 2 6
f 1 6 5
f 2 3 7
f 2 7 6
f 3 4 8
f 3 8 7
f 4 1 5
f 4 5 8
"""


class FakeBackend(SolidBackend):
    """Records requests and answers with a unit cube."""

    def __init__(self, fail: bool = False):
        self.requests = []
        self.exports = []
        self.fail = fail

    @property
    def name(self):
        return "fake"

    def _answer(self, endpoint, body):
        self.requests.append((endpoint, body))
        if self.fail:
            raise RuntimeError("backend down")
        return CUBE_OBJ

    def thicken(self, body):
        return self._answer("thicken", body)

    def solidify(self, body):
        return self._answer("solidify", body)

    def export(self, file, body):
        self.exports.append((file, body))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def ctx(backend):
    """A fresh design context using the fake backend."""
    return DesignContext(backend=backend)


@pytest.fixture
def cylinder_part(ctx):
    """A 30mm long, 20mm wide cylinder centered on its origin along z."""
    part = Part(ctx, "cylinder", ctx.shapes.extrusion(a2m((0, 0, -15)), 30, Path.make_circle(10)))
    part.symmetries = [1.0, 1.0, 0.0]
    return part


@pytest.fixture
def plate(ctx):
    """A 100x50 rounded plate, 20mm thick."""
    return FlatPart(ctx, "plate", 20, Path.make_rounded_rect(100, 50, 4))


def assert_placement_equal(actual, expected, tol=1e-6):
    np.testing.assert_allclose(np.asarray(actual), np.asarray(expected), atol=tol)


def assert_points_close(actual, expected, tol=1e-6):
    assert len(actual) == len(expected), f"{actual} != {expected}"
    for a, e in zip(actual, expected):
        assert math.isclose(a[0], e[0], abs_tol=tol) and math.isclose(a[1], e[1], abs_tol=tol), \
            f"{actual} != {expected}"
