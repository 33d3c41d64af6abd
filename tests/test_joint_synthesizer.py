"""Tests for joint_synthesizer module."""
import math

import numpy as np
import pytest
from shapely.geometry import Point

from assembly import Assembly, ChildNotFoundError
from conftest import assert_placement_equal
from flat_part import FlatPart
from geometry_primitives import NY3, X3, Y3
from joint_synthesizer import (
    LayoutMismatchError,
    TopologyError,
    clone_and_mirror_children,
    clone_children_with_transform,
    cutout_from_centerline,
    half_lap_cross_join,
    join_parts,
    make_reinforcing_join,
    trim_flat_part_with_another,
)
from part import Part
from path import Path
from slots import CylinderNutFastener, DrawerSlot, TenonMortise, default_slot_layout
from transform import a2m, transform_point3, translation


def make_bolt(ctx):
    bolt = Part(ctx, "bolt", ctx.shapes.extrusion(a2m(), 30, Path.make_circle(3)))
    bolt.symmetries = [0.0, 0.0, math.nan]
    return bolt


@pytest.fixture
def shelf_on_side(ctx):
    """A 200x300 shelf resting on the face of a vertical 300x400 side."""
    asm = Assembly(ctx, "unit")
    side = FlatPart(ctx, "side", 15, Path.make_rect(300, 400))
    shelf = FlatPart(ctx, "shelf", 15, Path.make_rect(200, 300))
    asm.add_child(side, a2m((0, 0, 0), X3, Y3))
    asm.add_child(shelf, a2m((15, 0, 100)))
    return asm, shelf, side


class TestJoinParts:

    def test_tenon_and_mortise(self, shelf_on_side):
        asm, shelf, side = shelf_on_side
        fasteners = join_parts(asm, shelf, side, [TenonMortise(0.5)])
        assert fasteners == []
        assert len(side.insides) == 1
        bbox = side.insides[0].bbox()
        assert bbox.center == pytest.approx((150, 107.5), abs=1e-6)
        assert bbox.width == pytest.approx(30)
        # the tenon goes through the whole side
        assert shelf.outside.bbox().min_x == pytest.approx(-15)
        assert shelf.outside.is_closed

    def test_fastener_is_added_and_paired(self, ctx, shelf_on_side):
        asm, shelf, side = shelf_on_side
        bolt = make_bolt(ctx)
        fasteners = join_parts(asm, shelf, side, [CylinderNutFastener(0.5, fastener=bolt)])
        assert len(fasteners) == 1
        placement = fasteners[0].placement
        assert transform_point3(placement, (0, 0, 0)) == pytest.approx((0, 150, 107.5), abs=1e-6)
        np.testing.assert_allclose(placement[:3, 2], X3, atol=1e-9)
        assert [p.child for p in side.get_pairings()] == [bolt]
        assert len(shelf.insides) == 1
        assert shelf.insides[0].bbox().center == pytest.approx((15.1, 150), abs=1e-6)

    def test_generated_layout_receives_the_edge_length(self, shelf_on_side):
        asm, shelf, side = shelf_on_side
        lengths = []

        def layout(length):
            lengths.append(length)
            return default_slot_layout(length)

        join_parts(asm, shelf, side, layout)
        assert lengths == [pytest.approx(300)]
        assert len(side.insides) == 3
        assert len(shelf.insides) == 2

    def test_drawer_slot_notches_the_slot_part(self, shelf_on_side):
        asm, shelf, side = shelf_on_side
        before = side.outside.to_polygon().area
        join_parts(asm, shelf, side, [DrawerSlot(0.0, length=100)])
        assert side.insides == []
        assert side.outside.to_polygon().area < before

    def test_open_slot_outline(self, shelf_on_side):
        asm, shelf, side = shelf_on_side
        side.assign_outside_path(
            Path.from_polyline([(0, 400), (300, 400), (300, 0), (0, 0)], close=False)
        )
        with pytest.raises(TopologyError):
            join_parts(asm, shelf, side, [TenonMortise(0.5)])

    def test_parts_not_touching(self, ctx):
        asm = Assembly(ctx, "unit")
        side = FlatPart(ctx, "side", 15, Path.make_rect(300, 400))
        shelf = FlatPart(ctx, "shelf", 15, Path.make_rect(200, 300))
        asm.add_child(side, a2m((0, 0, 0), X3, Y3))
        asm.add_child(shelf, a2m((15, 0, 1000)))
        with pytest.raises(TopologyError, match="shelf.*side"):
            join_parts(asm, shelf, side, [TenonMortise(0.5)])

    def test_layout_mismatch_leaves_parts_untouched(self, shelf_on_side):
        asm, shelf, side = shelf_on_side
        outline = str(shelf.outside)
        with pytest.raises(LayoutMismatchError):
            join_parts(asm, shelf, side, [TenonMortise(0.5)], [TenonMortise(0.5)])
        assert str(shelf.outside) == outline
        assert side.insides == []

    def test_missing_part(self, ctx, shelf_on_side):
        asm, shelf, side = shelf_on_side
        stray = FlatPart(ctx, "stray", 15, Path.make_rect(10))
        with pytest.raises(ChildNotFoundError):
            join_parts(asm, stray, side, [TenonMortise(0.5)])


class TestHalfLap:

    @pytest.fixture
    def crossing(self, ctx):
        asm = Assembly(ctx, "cross")
        part1 = FlatPart(ctx, "part1", 15, Path.make_rect(200, 100))
        part2 = FlatPart(ctx, "part2", 15, Path.make_rect(200, 100))
        located1 = asm.add_child(part1, a2m((0, 7.5, 0), NY3, X3))
        located2 = asm.add_child(part2, a2m((92.5, -100, 0), X3, Y3))
        return located1, located2

    def test_each_part_is_notched_halfway(self, crossing):
        located1, located2 = crossing
        half_lap_cross_join(located1, located2)
        polygon1 = located1.child.outside.to_polygon()
        polygon2 = located2.child.outside.to_polygon()
        assert not polygon2.contains(Point(100, 75))
        assert polygon2.contains(Point(100, 25))
        assert not polygon1.contains(Point(100, 25))
        assert polygon1.contains(Point(100, 75))

    def test_other_way(self, crossing):
        located1, located2 = crossing
        half_lap_cross_join(located1, located2, join_the_other_way=True)
        polygon1 = located1.child.outside.to_polygon()
        polygon2 = located2.child.outside.to_polygon()
        assert polygon2.contains(Point(100, 75))
        assert not polygon2.contains(Point(100, 25))
        assert polygon1.contains(Point(100, 25))
        assert not polygon1.contains(Point(100, 75))

    def test_parts_must_cross(self, ctx):
        asm = Assembly(ctx, "cross")
        part1 = FlatPart(ctx, "part1", 15, Path.make_rect(200, 100))
        part2 = FlatPart(ctx, "part2", 15, Path.make_rect(200, 100))
        located1 = asm.add_child(part1, a2m((0, 7.5, 0), NY3, X3))
        located2 = asm.add_child(part2, a2m((92.5, 500, 0), X3, Y3))
        with pytest.raises(TopologyError):
            half_lap_cross_join(located1, located2)

    def test_only_flat_parts(self, ctx, cylinder_part, crossing):
        located1, _ = crossing
        asm = Assembly(ctx, "other")
        with pytest.raises(TypeError):
            half_lap_cross_join(located1, asm.add_child(cylinder_part))

    def test_cutout_runs_back_from_the_second_point(self):
        cutout = cutout_from_centerline((100, 150), (100, 50), 15)
        bbox = cutout.bbox()
        assert cutout.is_closed
        assert bbox.min_x == pytest.approx(89.5)
        assert bbox.max_x == pytest.approx(110.5)
        assert bbox.min_y == pytest.approx(50)
        assert bbox.max_y == pytest.approx(150)


class TestTrim:

    @pytest.fixture
    def crossing(self, ctx):
        asm = Assembly(ctx, "trim")
        board = FlatPart(ctx, "board", 15, Path.make_rect(200, 100))
        wall = FlatPart(ctx, "wall", 15, Path.make_rect(100))
        asm.add_child(board)
        asm.add_child(wall, a2m((150, 0, 0), X3, Y3))
        return asm, board, wall

    def test_keeps_the_side_behind_the_other_part(self, crossing):
        asm, board, wall = crossing
        trim_flat_part_with_another(asm, board, wall)
        bbox = board.outside.bbox()
        assert bbox.min_x == pytest.approx(0)
        assert bbox.max_x == pytest.approx(150)

    def test_other_side(self, crossing):
        asm, board, wall = crossing
        trim_flat_part_with_another(asm, board, wall, other_side=True)
        bbox = board.outside.bbox()
        assert bbox.min_x == pytest.approx(150)
        assert bbox.max_x == pytest.approx(200)


class TestCloning:

    def test_clone_children_with_transform(self, ctx):
        asm = Assembly(ctx, "asm")
        board = FlatPart(ctx, "board", 10, Path.make_rect(100))
        asm.add_child(board, translation(0, 0, 10))
        added = clone_children_with_transform(asm, board, translation(0, 0, 100))
        assert len(added) == 1
        assert len(asm.find_direct_children(board)) == 2
        assert_placement_equal(added[0].placement, translation(0, 0, 110))

    def test_clone_and_mirror_children_brings_paired_fasteners(self, ctx):
        asm = Assembly(ctx, "asm")
        board = FlatPart(ctx, "board", 10, Path.make_rect(100))
        bolt = make_bolt(ctx)
        asm.add_child(board, translation(100, 0, 0))
        board.add_pairing(asm.add_child(bolt, a2m((110, 10, 10))), asm)

        added = clone_and_mirror_children(asm, board, X3)
        assert len(added) == 1
        assert transform_point3(added[0].placement, (0, 0, 0)) == pytest.approx((-100, 0, 10))
        assert np.linalg.det(added[0].placement[:3, :3]) == pytest.approx(1)

        bolts = list(asm.find_children(bolt))
        assert len(bolts) == 2
        assert_placement_equal(bolts[1].placement, translation(-110, 10, 10))
        assert len(board.pairings) == 2


class TestReinforcingJoin:

    @pytest.fixture
    def join(self, ctx):
        part1 = FlatPart(ctx, "bottom", 18, Path.make_rect(600, 300))
        part2 = part1.clone()
        result = make_reinforcing_join(part1, part2, (50, 150), (550, 150), 200, 18)
        return part1, part2, result

    def test_holes_in_both_parts(self, join):
        part1, part2, _ = join
        assert len(part1.insides) == 3
        assert len(part2.insides) == 3
        centers = [p.bbox().center for p in part1.insides]
        assert centers[0] == pytest.approx((100, 150))
        assert centers[1] == pytest.approx((500, 150))
        assert centers[2] == pytest.approx((300, 150))

    def test_plate(self, join):
        _, _, result = join
        plate = result.plate
        assert plate.name == "reinforcing join"
        assert plate.thickness == 18
        assert len(plate.insides) == 4
        assert plate.outside.is_closed
        bbox = plate.outside.bbox()
        assert bbox.width == pytest.approx(500)
        assert bbox.height == pytest.approx(2 * (100 + 18))

    def test_placements(self, join):
        _, _, result = join
        assert_placement_equal(result.part2_placement, translation(0, 0, 218))
        origin = transform_point3(result.plate_placement, (0, 0, 9))
        assert origin == pytest.approx((50, 150, 118))
        np.testing.assert_allclose(result.plate_placement[:3, 0], X3, atol=1e-9)
