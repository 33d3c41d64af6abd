"""
Append-only registry of solid-modeling operations.

Solids are described as a directed acyclic graph of retained operation nodes
(extrusion, fuse, cut, revolve, sweep) living in a ``ShapeRegistry`` arena and
referenced through ``ShapeId`` handles. Nodes are never mutated after they
are appended, so a sub-shape can be shared by any number of parents.

``retrieve_operations`` flattens the sub-graph reachable from one root into
the wire payload understood by the solid-modeling backend: a list of nodes
where references are integer indices into the same list, every node appears
once, and dependencies come before the nodes that use them.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from geometry_primitives import GeometryError, NZ3
from path import Path
from transform import a2m, identity

logger = logging.getLogger(__name__)


class OpenPathError(GeometryError):
    """An open path was given where a closed solid boundary is required."""
    pass


@dataclass(frozen=True)
class ShapeId:
    """Handle on a node of a ``ShapeRegistry``."""
    id: int
    registry: "ShapeRegistry"

    def retrieve(self) -> Dict[str, Any]:
        return self.registry.nodes[self.id]

    def __repr__(self) -> str:
        return f"ShapeId({self.id})"


@dataclass(frozen=True)
class LocatedShape:
    """A shape reused at another placement inside a fuse or a cut."""
    shape: ShapeId
    placement: np.ndarray


ShapeRef = Union[ShapeId, LocatedShape]


def _require_closed(*paths: Path):
    for path in paths:
        if not path.is_closed:
            raise OpenPathError(f"open path cannot bound a solid: {path}")


class ShapeRegistry:
    """The operation arena owned by one design context."""

    def __init__(self):
        self.nodes: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def _push(self, node: Dict[str, Any]) -> ShapeId:
        self.nodes.append(node)
        return ShapeId(len(self.nodes) - 1, self)

    def _check_refs(self, *refs: ShapeRef):
        for ref in refs:
            shape = ref.shape if isinstance(ref, LocatedShape) else ref
            if not isinstance(shape, ShapeId):
                raise TypeError(f"expected a shape reference, got {type(ref).__name__}")
            if shape.registry is not self:
                raise GeometryError("shape belongs to another registry")

    # ─── Operations ──────────────────────────────────────────────────────────

    def extrusion(
        self,
        placement: Optional[np.ndarray],
        length: float,
        outside: Path,
        *insides: Path,
    ) -> ShapeId:
        """Extrude ``outside`` minus ``insides`` by ``length`` along local z."""
        _require_closed(outside, *insides)
        return self._push({
            "type": "extrusion",
            "placement": identity() if placement is None else placement,
            "length": float(length),
            "outsides": [outside],
            "insides": list(insides),
        })

    def multi_extrusion(
        self,
        placement: Optional[np.ndarray],
        length: float,
        *outsides: Path,
    ) -> ShapeId:
        """Fuse of one extrusion per outline."""
        return self.fuse(*(self.extrusion(placement, length, path) for path in outsides))

    def fuse(self, *shapes: ShapeRef) -> ShapeId:
        if not shapes:
            raise GeometryError("fuse needs at least one shape")
        self._check_refs(*shapes)
        return self._push({"type": "fuse", "shapes": list(shapes)})

    def cut(self, shape: ShapeRef, *cutouts: ShapeRef) -> ShapeId:
        self._check_refs(shape, *cutouts)
        return self._push({"type": "cut", "shape": shape, "cutouts": list(cutouts)})

    def revolve(
        self,
        placement: Optional[np.ndarray],
        profile: Path,
        angle: float = 360.0,
    ) -> ShapeId:
        """Revolve a profile drawn in the local xy plane about the local y axis."""
        _require_closed(profile)
        return self._push({
            "type": "revolve",
            "placement": identity() if placement is None else placement,
            "profile": profile,
            "angle": float(angle),
        })

    def sweep(
        self,
        placement: Optional[np.ndarray],
        profile: Path,
        spine: Path,
    ) -> ShapeId:
        """Sweep a closed profile along an open or closed spine path."""
        _require_closed(profile)
        return self._push({
            "type": "sweep",
            "placement": identity() if placement is None else placement,
            "profile": profile,
            "spine": spine,
        })

    def make_four_drills(
        self,
        transform: np.ndarray,
        hole_size: float,
        depth: float,
        offsets: Sequence[float],
    ) -> ShapeId:
        """Four drill cylinders on a rectangle pattern, drilled along -z."""
        ox, oy = offsets
        drill = Path.make_circle(hole_size / 2)
        drills = []
        for sx, sy in ((1, 1), (-1, 1), (-1, -1), (1, -1)):
            placement = transform @ a2m((sx * ox, sy * oy, 0.0), NZ3)
            drills.append(self.extrusion(placement, depth, drill))
        return self.fuse(*drills)

    # ─── Flattening ──────────────────────────────────────────────────────────

    def retrieve_operations(self, root: ShapeId) -> List[Dict[str, Any]]:
        """Flatten the graph reachable from ``root``, dependencies first.

        Nodes reachable through several references are emitted once; the
        returned nodes are copies whose references are list indices.
        """
        self._check_refs(root)
        result: List[Dict[str, Any]] = []
        emitted: Dict[int, int] = {}

        def ref(value):
            if isinstance(value, LocatedShape):
                return {"shape": inner(value.shape), "placement": value.placement}
            return inner(value)

        def inner(shape: ShapeId) -> int:
            if shape.id in emitted:
                return emitted[shape.id]
            node = dict(shape.retrieve())
            for key, value in node.items():
                if isinstance(value, (ShapeId, LocatedShape)):
                    node[key] = ref(value)
                elif isinstance(value, list):
                    node[key] = [
                        ref(v) if isinstance(v, (ShapeId, LocatedShape)) else v
                        for v in value
                    ]
            result.append(node)
            emitted[shape.id] = len(result) - 1
            return emitted[shape.id]

        inner(root)
        logger.debug("flattened shape %d into %d nodes", root.id, len(result))
        return result


def normalize_orientations(nodes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy of ``nodes`` with clockwise outsides and counter-clockwise insides."""
    result = []
    for node in nodes:
        node = dict(node)
        if "outsides" in node:
            node["outsides"] = [p.oriented(clockwise=True) for p in node["outsides"]]
        if "insides" in node:
            node["insides"] = [p.oriented(clockwise=False) for p in node["insides"]]
        if "profile" in node:
            node["profile"] = node["profile"].oriented(clockwise=True)
        result.append(node)
    return result
