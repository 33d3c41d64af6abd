#!/usr/bin/env python3
"""
Build an example shelving unit and optionally mesh or export it.

The unit has two sides, a bottom and a top shelf joined to the sides with
tenons and barrel-nut bolts, and a middle shelf whose outline is derived from
the sides. A mirrored copy of the unit is placed next to it.

Usage:
    python scripts/build_example.py
    python scripts/build_example.py --load-meshes --local-backend
    python scripts/build_example.py --export shelving.step --backend-url http://localhost:8080

The backend URL defaults to the OCC_BACKEND_URL environment variable.
"""
import sys
import argparse
import logging
import math
from pathlib import Path as FsPath

sys.path.insert(0, str(FsPath(__file__).parent.parent / "src"))

from assembly import Assembly, Model, load_meshes
from context import DesignContext
from flat_part import FlatPart
from geometry_primitives import X3, Y3
from joint_synthesizer import join_parts
from materials import METAL_MATERIAL
from mesh_provider import BackendConfig, BackendError, HttpSolidBackend, LocalSolidBackend
from part import Part
from path import Path
from shelf import ShelfOptions, make_shelf_on_plane
from slots import CylinderNutFastener, TenonMortise
from transform import a2m, identity, translation

logger = logging.getLogger("build_example")

WIDTH = 600
DEPTH = 300
HEIGHT = 800
THICKNESS = 18


def make_bolt(ctx: DesignContext) -> Part:
    bolt = Part(ctx, "bolt M6x40", ctx.shapes.extrusion(identity(), 40, Path.make_circle(3)))
    bolt.symmetries = [0.0, 0.0, math.nan]
    bolt.material = METAL_MATERIAL
    return bolt


def build_unit(ctx: DesignContext) -> Assembly:
    unit = Assembly(ctx, "unit")
    bolt = make_bolt(ctx)

    left = FlatPart(ctx, "left side", THICKNESS, Path.make_rect(DEPTH, HEIGHT))
    right = FlatPart(ctx, "right side", THICKNESS, Path.make_rect(DEPTH, HEIGHT))
    unit.add_child(left, a2m((0, 0, 0), X3, Y3))
    unit.add_child(right, a2m((WIDTH - THICKNESS, 0, 0), X3, Y3))

    def layout(length):
        return [
            CylinderNutFastener(70, fastener=bolt),
            TenonMortise(length / 2),
            CylinderNutFastener(length - 70, fastener=bolt),
        ]

    shelf_outline = Path.make_rect(WIDTH - 2 * THICKNESS, DEPTH)
    bottom = FlatPart(ctx, "bottom shelf", THICKNESS, shelf_outline)
    top = FlatPart(ctx, "top shelf", THICKNESS, shelf_outline.clone())
    unit.add_child(bottom, a2m((THICKNESS, 0, 50)))
    unit.add_child(top, a2m((THICKNESS, 0, HEIGHT - THICKNESS)))

    for shelf in (bottom, top):
        for side in (left, right):
            join_parts(unit, shelf, side, layout)

    middle_plane = a2m((0, 0, HEIGHT / 2))
    middle_outline = make_shelf_on_plane(
        middle_plane,
        ShelfOptions(wood_thickness=THICKNESS),
        unit.find_child(left),
        unit.find_child(right),
    )
    middle = FlatPart(ctx, "middle shelf", THICKNESS, middle_outline)
    unit.add_child(middle, middle_plane)
    for side in (left, right):
        join_parts(unit, middle, side, layout)

    return unit


def build_model(ctx: DesignContext) -> Model:
    model = Model(ctx, "shelving")
    unit = build_unit(ctx)
    model.add_child(unit)
    model.add_child(unit.mirror(X3), translation(-10, 0, 0), run_callbacks=True)
    return model


def print_summary(model: Model):
    flat = model.check_unique_names()
    print(f"{model.name}: {len(flat)} unique parts")
    for instances in flat.values():
        part = instances.item
        print(f"  {part.name:<16} x{len(instances.instances)}")
        if isinstance(part, FlatPart):
            bbox = part.outside.bbox()
            print(
                f"    {bbox.width:.1f} x {bbox.height:.1f} x {part.thickness:g} mm, "
                f"{len(part.insides)} cutouts"
            )


def main():
    parser = argparse.ArgumentParser(description="Build an example shelving unit")
    parser.add_argument("--export", type=str, default=None, help="Export the model to FILE on the backend")
    parser.add_argument("--load-meshes", action="store_true", help="Fetch the mesh of every part")
    parser.add_argument(
        "--backend-url", type=str, default=None,
        help="Solid-modeling backend URL (default: OCC_BACKEND_URL or http://localhost:8080)",
    )
    parser.add_argument(
        "--local-backend", action="store_true",
        help="Use the offline trimesh backend instead of the HTTP one",
    )
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.local_backend:
        backend = LocalSolidBackend()
    else:
        config = BackendConfig.from_env()
        if args.backend_url:
            config.base_url = args.backend_url
        backend = HttpSolidBackend(config)

    ctx = DesignContext(backend=backend)
    model = build_model(ctx)
    print_summary(model)

    try:
        if args.load_meshes:
            load_meshes(model)
            logger.info("Loaded meshes with the %s backend", backend.name)
        if args.export:
            model.export(args.export)
    except BackendError as e:
        logger.error("Backend failure: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
