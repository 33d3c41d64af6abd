"""
Scene graph of placed parts.

An ``Assembly`` holds an ordered list of ``LocatedPart`` (child part + 4x4
placement). Instancing is expressed by adding the same child several times.
World placements are composed parent-first: a grandchild seen from the root
is at ``parent_placement @ child_placement``.

Pairings are lightweight cross-references recorded on a part (usually the
host of a fastener) that point back at where the fastener was attached. They
store ids resolved through the design context, so ownership stays a tree.
They are only used when mirroring, to re-derive a mirrored fastener's
placement without re-running the joinery.
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from geometry_primitives import Z3
from materials import DEFAULT_MATERIAL
from mesh_provider import serialize
from transform import identity, invert, reflection

logger = logging.getLogger(__name__)


class ChildNotFoundError(LookupError):
    """The part is not anywhere in the assembly."""
    pass


class DuplicatePartNameError(ValueError):
    """Two distinct parts share a name, which would corrupt the mesh cache."""
    pass


class AxisPriority(Enum):
    """Which symmetric local axis is used to mirror a part."""
    NORMAL_FIRST = "normal_first"   # axis best aligned with the mirror normal, then x, y, z
    INDEX_ORDER = "index_order"     # first symmetric axis in x, y, z order


@dataclass
class LocatedPart:
    child: "BasePart"
    placement: np.ndarray


@dataclass
class FlatInstances:
    """One geometry and every world placement it is rendered at."""
    item: "BasePart"
    instances: List[np.ndarray] = field(default_factory=list)


@dataclass(frozen=True)
class Pairing:
    """Where a subordinate part was attached, stored as context ids."""
    child_id: int
    placement: np.ndarray
    parent_id: int


@dataclass
class ResolvedPairing:
    child: "BasePart"
    placement: np.ndarray
    parent: "Assembly"


@dataclass
class PendingAttachment:
    """A part to add next to a mirrored assembly once it gets placed."""
    part: "BasePart"
    relative: np.ndarray


class BasePart(ABC):
    """Common identity and capabilities of every node of the scene graph."""

    def __init__(self, context, name: str):
        self.context = context
        self.name = name
        self.id = context.register(self)
        self.mesh: Optional[str] = None
        self.material = DEFAULT_MATERIAL
        # Offset of the mirror plane along each local axis, NaN when the
        # part is not symmetric along that axis
        self.symmetries: List[float] = [math.nan, math.nan, math.nan]
        self.on_attach: List[PendingAttachment] = []
        self.pairings: List[Pairing] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, id={self.id})"

    @abstractmethod
    def flat_instances(self) -> Dict[int, FlatInstances]:
        ...

    @abstractmethod
    async def load_mesh(self):
        ...

    def add_pairing(self, located: LocatedPart, parent: "Assembly") -> Pairing:
        pairing = Pairing(located.child.id, located.placement, parent.id)
        self.pairings.append(pairing)
        return pairing

    def get_pairings(self) -> List[ResolvedPairing]:
        """Pairings whose parts are still alive, resolved to objects."""
        result = []
        for pairing in self.pairings:
            if pairing.child_id not in self.context or pairing.parent_id not in self.context:
                logger.debug("Dropping stale pairing on %s: %s", self.name, pairing)
                continue
            result.append(ResolvedPairing(
                self.context.lookup(pairing.child_id),
                pairing.placement,
                self.context.lookup(pairing.parent_id),
            ))
        return result


def _symmetric_axis(
    part: BasePart,
    placement: np.ndarray,
    normal: Sequence[float],
    priority: AxisPriority,
) -> Optional[int]:
    if priority is AxisPriority.INDEX_ORDER:
        order = [0, 1, 2]
    else:
        up = placement[:3, :3].T @ np.asarray(normal, dtype=float)
        aligned = int(np.argmax(np.abs(up)))
        order = [aligned] + [i for i in range(3) if i != aligned]
    for axis in order:
        if not math.isnan(part.symmetries[axis]):
            return axis
    return None


def mirror_placement(
    part: BasePart,
    placement: np.ndarray,
    normal: Sequence[float] = Z3,
    priority: AxisPriority = AxisPriority.NORMAL_FIRST,
) -> Optional[np.ndarray]:
    """Placement of ``part`` reflected about the plane through the origin.

    The reflection is composed with the part's own symmetry so that the
    result stays a proper rigid placement of the unchanged geometry:
    ``reflect(normal) @ placement @ reflect(local symmetry plane)``. Returns
    None if the part has no symmetric axis.
    """
    axis = _symmetric_axis(part, placement, normal, priority)
    if axis is None:
        return None
    local_axis = [0.0, 0.0, 0.0]
    local_axis[axis] = 1.0
    offset = [0.0, 0.0, 0.0]
    offset[axis] = part.symmetries[axis]
    return reflection(normal) @ placement @ reflection(local_axis, offset)


class Assembly(BasePart):
    """An ordered container of placed children."""

    def __init__(self, context, name: str):
        super().__init__(context, name)
        self.children: List[LocatedPart] = []
        self.unmirrored: List[BasePart] = []

    def add_child(
        self,
        child: BasePart,
        placement: Optional[np.ndarray] = None,
        run_callbacks: bool = False,
    ) -> LocatedPart:
        """Place ``child`` in this assembly.

        With ``run_callbacks`` the child's pending attachments are added to
        this assembly too, each at ``placement @ relative``.
        """
        placement = identity() if placement is None else np.asarray(placement, dtype=float)
        located = LocatedPart(child, placement)
        self.children.append(located)
        if run_callbacks:
            for pending in child.on_attach:
                self.add_child(pending.part, placement @ pending.relative)
        return located

    # ─── Queries ─────────────────────────────────────────────────────────────

    def find_child(self, part: BasePart) -> LocatedPart:
        """First instance of ``part``, direct children first, then depth-first."""
        for located in self.children:
            if located.child is part:
                return LocatedPart(part, located.placement)

        for located in self.children:
            if not isinstance(located.child, Assembly):
                continue
            try:
                found = located.child.find_child(part)
            except ChildNotFoundError:
                continue
            return LocatedPart(found.child, located.placement @ found.placement)

        raise ChildNotFoundError(f"could not find {part.name} in {self.name}")

    def find_children(self, part: BasePart) -> Iterator[LocatedPart]:
        """Every instance of ``part`` in the subtree, depth-first."""
        for located in self.children:
            if located.child is part:
                yield LocatedPart(part, located.placement)
            if isinstance(located.child, Assembly):
                for found in located.child.find_children(part):
                    yield LocatedPart(found.child, located.placement @ found.placement)

    def find_direct_children(self, part: BasePart) -> List[LocatedPart]:
        return [located for located in self.children if located.child is part]

    def find_child_instances(self, part: BasePart) -> List[LocatedPart]:
        flat = self.flat_instances().get(part.id)
        if flat is None:
            raise ChildNotFoundError(f"could not find {part.name} in {self.name}")
        return [LocatedPart(part, m) for m in flat.instances]

    def flat_instances(self) -> Dict[int, FlatInstances]:
        result: Dict[int, FlatInstances] = {}
        for located in self.children:
            for key, flat in located.child.flat_instances().items():
                merged = result.setdefault(key, FlatInstances(flat.item))
                merged.instances.extend(located.placement @ m for m in flat.instances)
        return result

    # ─── Derived assemblies ──────────────────────────────────────────────────

    def clone(self) -> "Assembly":
        result = Assembly(self.context, f"cloned {self.name}")
        for located in self.children:
            result.add_child(located.child, located.placement)
        return result

    def mirror(
        self,
        normal: Sequence[float] = Z3,
        priority: AxisPriority = AxisPriority.NORMAL_FIRST,
    ) -> "Assembly":
        """New assembly with every child reflected about the plane ``normal``.

        Children keep their geometry and get a mirrored placement. Fasteners
        paired with a child under another parent are not attached right
        away: they are recorded as pending attachments on the result and
        added when the result is placed with ``run_callbacks=True``.
        """
        result = Assembly(self.context, f"mirrored {self.name}")

        for located in self.children:
            mirrored = mirror_placement(located.child, located.placement, normal, priority)
            if mirrored is None:
                logger.warning("Cannot mirror part %s with no symmetries", located.child.name)
                result.unmirrored.append(located.child)
                mirrored = located.placement
            result.add_child(located.child, mirrored)

            for pairing in located.child.get_pairings():
                if pairing.parent is self:
                    continue
                self_placement = pairing.parent.find_child(self).placement
                relative = invert(self_placement) @ pairing.placement
                mirrored_relative = mirror_placement(pairing.child, relative, normal, priority)
                if mirrored_relative is None:
                    logger.warning("Cannot mirror fastener %s with no symmetries", pairing.child.name)
                    result.unmirrored.append(pairing.child)
                    mirrored_relative = relative
                result.on_attach.append(PendingAttachment(pairing.child, mirrored_relative))

        return result

    # ─── Meshes ──────────────────────────────────────────────────────────────

    def check_unique_names(self) -> Dict[int, FlatInstances]:
        flat = self.flat_instances()
        names = set()
        for instances in flat.values():
            name = instances.item.name
            if name in names:
                raise DuplicatePartNameError(
                    f"parts with conflicting names ({name}) would mess up mesh caching"
                )
            names.add(name)
        return flat

    async def load_mesh(self):
        """Load the mesh of every unique leaf part concurrently."""
        flat = self.check_unique_names()
        logger.info("Loading %d meshes for %s", len(flat), self.name)
        await asyncio.gather(*(instances.item.load_mesh() for instances in flat.values()))


class Model(Assembly):
    """Top-level assembly that can be exported by the backend."""

    def export_payload(self) -> str:
        geometries = [
            {"part": flat.item.to_json(), "instances": flat.instances}
            for flat in self.flat_instances().values()
        ]
        return serialize({"geometries": geometries})

    def export(self, file: str):
        self.context.backend.export(file, self.export_payload())


def load_meshes(part: BasePart):
    """Blocking wrapper around ``part.load_mesh()``."""
    asyncio.run(part.load_mesh())
