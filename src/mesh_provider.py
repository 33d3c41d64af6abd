"""
Solid-modeling backend interface and mesh caching.

The heavy 3D work (extruding profiles, boolean operations on solids,
exporting files) is delegated to a backend that takes JSON requests and
returns OBJ mesh text. Three endpoints are used:

- ``POST /occ/thicken``  ``{outside, insides, thickness}`` SVG path strings and
  extrusion depth (``thickness`` defaults to 1 when absent) -> OBJ
- ``POST /occ/solidify`` ``{name, shape}`` flattened operation nodes -> OBJ
- ``POST /occ/export?file=<name>`` ``{geometries: [{part, instances}]}``

Requests are content-hashed so meshes can be cached per part name: a cache
entry is ``"# <hash>\\n" + mesh`` and is valid only if its prefix matches the
hash of the current request.
"""
import asyncio
import hashlib
import io
import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path as FsPath
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import requests
import shapely
import trimesh
from shapely.geometry import MultiPolygon, Polygon

from path import Path
from transform import from_wire, to_wire

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:8080"
DEFAULT_TIMEOUT_SECONDS = 120.0


class BackendError(Exception):
    """Base exception for backend errors."""
    pass


class BackendTimeoutError(BackendError):
    """Backend took too long to answer."""
    pass


class BackendAPIError(BackendError):
    """Backend returned an error or could not be reached."""
    pass


@dataclass
class BackendConfig:
    """Configuration for the HTTP solid-modeling backend."""
    base_url: str = DEFAULT_BACKEND_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "BackendConfig":
        """Read ``OCC_BACKEND_URL`` and ``OCC_BACKEND_TIMEOUT``."""
        return cls(
            base_url=os.environ.get("OCC_BACKEND_URL", DEFAULT_BACKEND_URL),
            timeout_seconds=float(
                os.environ.get("OCC_BACKEND_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
            ),
        )


# ─── Serialisation ───────────────────────────────────────────────────────────

def json_default(value: Any) -> Any:
    """``json.dumps`` hook for paths and placements."""
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, np.ndarray):
        if value.shape == (4, 4):
            return to_wire(value)
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize(payload: Any) -> str:
    return json.dumps(payload, default=json_default, separators=(",", ":"))


def content_hash(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def parse_obj(text: str) -> trimesh.Trimesh:
    """Load OBJ mesh text into a single trimesh."""
    return trimesh.load(io.BytesIO(text.encode("utf-8")), file_type="obj", force="mesh")


# ─── Caches ──────────────────────────────────────────────────────────────────

class MeshCache:
    """In-memory session cache of ``"# <hash>\\n" + mesh`` entries per name."""

    def __init__(self):
        self._entries: Dict[str, str] = {}

    def get(self, name: str) -> Optional[str]:
        return self._entries.get(name)

    def set(self, name: str, value: str):
        self._entries[name] = value

    def lookup(self, name: str, digest: str) -> Optional[str]:
        """Cached mesh for ``name`` if it was built from a request with ``digest``."""
        entry = self.get(name)
        prefix = f"# {digest}\n"
        if entry is None or not entry.startswith(prefix):
            return None
        return entry[len(prefix):]

    def store(self, name: str, digest: str, mesh: str):
        self.set(name, f"# {digest}\n{mesh}")


class FileMeshCache(MeshCache):
    """Persistent cache: one ``<name>.obj`` file per part in ``directory``."""

    def __init__(self, directory: str):
        super().__init__()
        self.directory = FsPath(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _file(self, name: str) -> FsPath:
        return self.directory / (re.sub(r"[^A-Za-z0-9_.-]", "_", name) + ".obj")

    def get(self, name: str) -> Optional[str]:
        file = self._file(name)
        if not file.exists():
            return None
        return file.read_text(encoding="utf-8")

    def set(self, name: str, value: str):
        self._file(name).write_text(value, encoding="utf-8")


# ─── Backends ────────────────────────────────────────────────────────────────

class SolidBackend(ABC):
    """Converts JSON requests into OBJ mesh text."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def thicken(self, body: str) -> str:
        """Extrude a 2D profile, ``{outside, insides}``."""
        ...

    @abstractmethod
    def solidify(self, body: str) -> str:
        """Evaluate a flattened operation graph, ``{name, shape}``."""
        ...

    @abstractmethod
    def export(self, file: str, body: str) -> None:
        """Write ``{geometries}`` to ``file`` on the backend side."""
        ...


class HttpSolidBackend(SolidBackend):
    """Backend reached over HTTP. Failures are raised, never retried."""

    def __init__(self, config: Optional[BackendConfig] = None):
        self.config = config or BackendConfig.from_env()

    @property
    def name(self) -> str:
        return "http"

    def thicken(self, body: str) -> str:
        return self._post("/occ/thicken", body).text

    def solidify(self, body: str) -> str:
        return self._post("/occ/solidify", body).text

    def export(self, file: str, body: str) -> None:
        self._post("/occ/export", body, params={"file": file})
        logger.info("Exported geometry to %s", file)

    def _post(self, endpoint: str, body: str, params: Optional[Dict[str, str]] = None):
        url = self.config.base_url.rstrip("/") + endpoint
        logger.debug("POST %s (%d bytes)", url, len(body))
        try:
            resp = requests.post(
                url,
                data=body.encode("utf-8"),
                params=params,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout_seconds,
            )
        except requests.Timeout as e:
            raise BackendTimeoutError(
                f"{url} did not answer within {self.config.timeout_seconds}s"
            ) from e
        except requests.RequestException as e:
            raise BackendAPIError(f"{url} request failed: {e}") from e
        self._check_response(resp)
        return resp

    def _check_response(self, resp):
        """Check HTTP response for errors."""
        if resp.status_code in (408, 504):
            raise BackendTimeoutError(f"Backend timed out ({resp.status_code})")
        if resp.status_code >= 400:
            raise BackendAPIError(
                f"Backend error {resp.status_code}: {resp.text}"
            )


class LocalSolidBackend(SolidBackend):
    """Offline backend for extrusion and fuse graphs, built on trimesh.

    Fuses are evaluated as mesh concatenation, which is enough for display
    and export of non-overlapping solids. Cuts, revolutions and sweeps need
    a real solid kernel and raise ``BackendError``.
    """

    def __init__(self):
        self.exported: Dict[str, str] = {}

    @property
    def name(self) -> str:
        return "local"

    def thicken(self, body: str) -> str:
        data = json.loads(body)
        polygon = _profile_polygon([data["outside"]], data.get("insides", []))
        mesh = _extrude(polygon, float(data.get("thickness", 1.0)))
        return mesh.export(file_type="obj")

    def solidify(self, body: str) -> str:
        data = json.loads(body)
        return self._evaluate(data["shape"]).export(file_type="obj")

    def export(self, file: str, body: str) -> None:
        data = json.loads(body)
        meshes = []
        for geometry in data["geometries"]:
            mesh = self._evaluate(geometry["part"]["shape"])
            for wire in geometry["instances"]:
                meshes.append(mesh.copy().apply_transform(from_wire(wire)))
        combined = trimesh.util.concatenate(meshes) if meshes else trimesh.Trimesh()
        self.exported[file] = combined.export(file_type="obj")
        logger.info("Exported %d instances to %s", len(meshes), file)

    def _evaluate(self, nodes: List[Dict[str, Any]]) -> trimesh.Trimesh:
        if not nodes:
            raise BackendError("empty operation list")
        built: List[trimesh.Trimesh] = []

        def resolve(ref) -> trimesh.Trimesh:
            if isinstance(ref, dict):
                return built[ref["shape"]].copy().apply_transform(from_wire(ref["placement"]))
            return built[ref]

        for node in nodes:
            kind = node["type"]
            if kind == "extrusion":
                polygon = _profile_polygon(node["outsides"], node.get("insides", []))
                mesh = _extrude(polygon, float(node["length"]))
                built.append(mesh.apply_transform(from_wire(node["placement"])))
            elif kind == "fuse":
                built.append(trimesh.util.concatenate([resolve(r) for r in node["shapes"]]))
            else:
                raise BackendError(f"local backend cannot evaluate {kind} nodes")
        return built[-1]


def _profile_polygon(outsides: List[str], insides: List[str]):
    shell = shapely.union_all([Path.from_svg(d).to_polygon() for d in outsides])
    for d in insides:
        shell = shell.difference(Path.from_svg(d).to_polygon())
    if shell.is_empty:
        raise BackendError("profile has no area")
    return shell


def _extrude(geometry, length: float) -> trimesh.Trimesh:
    polygons = list(geometry.geoms) if isinstance(geometry, MultiPolygon) else [geometry]
    meshes = [
        trimesh.creation.extrude_polygon(p, height=abs(length))
        for p in polygons if isinstance(p, Polygon) and not p.is_empty
    ]
    mesh = trimesh.util.concatenate(meshes)
    if length < 0:
        mesh.apply_translation((0, 0, length))
    return mesh


# ─── Fetching ────────────────────────────────────────────────────────────────

async def fetch_mesh(
    cache: MeshCache,
    name: str,
    body: str,
    request: Callable[[str], str],
) -> str:
    """Cached mesh for ``body`` or the result of ``request(body)``.

    The blocking request runs in a worker thread so several parts can be
    fetched concurrently from one event loop.
    """
    digest = content_hash(body)
    cached = cache.lookup(name, digest)
    if cached is not None:
        logger.debug("Mesh cache hit for %s", name)
        return cached

    logger.info("Fetching mesh for %s", name)
    mesh = await asyncio.to_thread(request, body)
    cache.store(name, digest, mesh)
    return mesh
