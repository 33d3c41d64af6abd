"""
Solid parts built from the operation registry.
"""
import logging
from typing import Any, Dict, List

import trimesh

from assembly import BasePart, FlatInstances
from mesh_provider import fetch_mesh, parse_obj, serialize
from operations import ShapeId, normalize_orientations
from transform import identity

logger = logging.getLogger(__name__)


class Part(BasePart):
    """A leaf part whose solid is the operation graph rooted at ``shape``.

    The graph reachable from ``shape`` is flattened once at construction;
    the part keeps that snapshot, so later registry growth does not affect it.
    """

    def __init__(self, context, name: str, shape: ShapeId):
        super().__init__(context, name)
        self.shape: List[Dict[str, Any]] = context.shapes.retrieve_operations(shape)

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "shape": normalize_orientations(self.shape)}

    def flat_instances(self) -> Dict[int, FlatInstances]:
        return {self.id: FlatInstances(self, [identity()])}

    async def load_mesh(self):
        body = serialize(self.to_json())
        self.mesh = await fetch_mesh(
            self.context.mesh_cache, self.name, body, self.context.backend.solidify,
        )

    def mesh_geometry(self) -> trimesh.Trimesh:
        if self.mesh is None:
            raise RuntimeError(f"mesh of {self.name} is not loaded")
        return parse_obj(self.mesh)
