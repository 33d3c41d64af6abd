"""
Design context: the state shared by every part of one model.

A context owns the operation registry, the part lookup table used to
resolve pairings, the solid-modeling backend and the mesh cache. Nothing is
module-global, so independent models (and tests) never share ids, shapes or
cached meshes.
"""
import itertools
import logging
import weakref
from typing import Optional

from mesh_provider import BackendConfig, HttpSolidBackend, MeshCache, SolidBackend
from operations import ShapeRegistry

logger = logging.getLogger(__name__)


class DesignContext:
    def __init__(
        self,
        backend: Optional[SolidBackend] = None,
        mesh_cache: Optional[MeshCache] = None,
        backend_config: Optional[BackendConfig] = None,
    ):
        self.shapes = ShapeRegistry()
        self.mesh_cache = mesh_cache if mesh_cache is not None else MeshCache()
        self._backend = backend
        self._backend_config = backend_config
        self._parts = weakref.WeakValueDictionary()
        self._ids = itertools.count(1)

    @property
    def backend(self) -> SolidBackend:
        if self._backend is None:
            self._backend = HttpSolidBackend(self._backend_config or BackendConfig.from_env())
            logger.debug("Using HTTP backend at %s", self._backend.config.base_url)
        return self._backend

    @backend.setter
    def backend(self, backend: SolidBackend):
        self._backend = backend

    def register(self, part) -> int:
        """Give ``part`` a fresh id and make it resolvable."""
        part_id = next(self._ids)
        self._parts[part_id] = part
        return part_id

    def lookup(self, part_id: int):
        try:
            return self._parts[part_id]
        except KeyError:
            raise LookupError(f"no live part with id {part_id}") from None

    def __contains__(self, part_id: int) -> bool:
        return part_id in self._parts
