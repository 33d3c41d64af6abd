"""Tests for shelf outline computation."""
import logging

import pytest
from shapely.geometry import Polygon

from assembly import Assembly
from conftest import assert_points_close
from flat_part import FlatPart, get_face_on_located_flat_part
from geometry_primitives import GeometryError, X3, Y3, convex_hull
from path import Path
from shelf import (
    CUTTING,
    EDGE,
    ONLY_CUTTING,
    LineInfo,
    ShelfMaker,
    ShelfOptions,
    cut,
    find_convex_zones,
    make_shelf_on_plane,
)
from transform import a2m, translation


def _hulls(zones):
    return [convex_hull(*(line.pts for line in zone)) for zone in zones]


def _bounds(points):
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return min(xs), min(ys), max(xs), max(ys)


@pytest.fixture
def stacked(ctx):
    """Horizontal 100x100 boards, 10 thick, every 50mm from z=0 to z=100."""
    asm = Assembly(ctx, "stack")
    boards = []
    for i, z in enumerate((0, 50, 100)):
        board = FlatPart(ctx, f"board {i}", 10, Path.make_rect(100))
        asm.add_child(board, a2m((0, 0, z)))
        boards.append(board)
    return asm, boards


class TestCut:

    def test_crossing_line_is_trimmed_on_both_sides(self):
        up, down = cut([(0, 0), (10, 0)], [(5, -5), (5, 5)], 2)
        assert_points_close(up, [(5, -5), (5, -1)])
        assert_points_close(down, [(5, 1), (5, 5)])

    def test_line_on_one_side(self):
        assert cut([(0, 0), (10, 0)], [(0, 5), (10, 5)], 2) == (None, [(0, 5), (10, 5)])
        assert cut([(0, 0), (10, 0)], [(0, -5), (10, -5)], 2) == ([(0, -5), (10, -5)], None)

    def test_line_touching_the_cut_goes_to_its_other_end(self):
        assert cut([(0, 0), (10, 0)], [(5, 0), (5, 5)], 2) == (None, [(5, 0), (5, 5)])
        assert cut([(0, 0), (10, 0)], [(5, 5), (5, 0)], 2) == (None, [(5, 5), (5, 0)])


class TestFindConvexZones:

    def test_four_cutting_lines(self):
        lines = [
            LineInfo([(1103, 7.5), (-85, 7.5)], CUTTING, 15),
            LineInfo([(-7.5, 15), (-7.5, 100)], CUTTING, 15),
            LineInfo([(1128, 107.5), (-170.62276185659434, 107.5)], CUTTING, 15),
            LineInfo([(1025.5, 15), (1025.5, 100)], CUTTING, 15),
        ]
        hulls = _hulls(find_convex_zones(lines))
        assert len(hulls) == 3
        assert_points_close(hulls[0], [(-170.62276185659434, 100), (-15, 100), (-15, 15), (-85, 15)])
        assert _bounds(hulls[1]) == pytest.approx((0, 15, 1018, 100))
        assert Polygon(hulls[1]).area == pytest.approx(1018 * 85)
        assert_points_close(hulls[2], [(1033, 15), (1033, 100), (1128, 100), (1103, 15)])

    def test_closed_frame(self):
        lines = [
            LineInfo([(-67.5, -72.5), (82.50000000000003, -72.5)], CUTTING, 15),
            LineInfo([(65, 27.5), (65, -72.5)], CUTTING, 15),
            LineInfo([(82.5, 27.5), (-67.50000000000001, 27.5)], CUTTING, 15),
            LineInfo([(-50, 27.5), (-50, -72.5)], CUTTING, 15),
        ]
        zones = find_convex_zones(lines)
        assert [len(zone) for zone in zones][:2] == [3, 4]
        assert len(zones) == 3
        assert all(line.kind == EDGE for zone in zones for line in zone)

        inner = zones[1]
        assert_points_close(inner[0].pts, [(-42.5, -65), (57.5, -65)])
        assert_points_close(inner[1].pts, [(57.5, 20), (-42.5, 20)])
        assert_points_close(inner[2].pts, [(57.5, 27.5), (57.5, -72.5)])
        assert_points_close(inner[3].pts, [(-42.5, 27.5), (-42.5, -72.5)])

        assert_points_close(zones[0][0].pts, [(72.5, -65), (82.50000000000003, -65)])
        assert _bounds(_hulls(zones)[2])[0] == pytest.approx(-67.5)

    def test_only_cutting_line_splits_with_an_empty_side(self):
        frame = [
            LineInfo([(0, 10), (100, 10)], EDGE),
            LineInfo([(100, 10), (100, 100)], EDGE),
            LineInfo([(100, 100), (0, 100)], EDGE),
            LineInfo([(0, 100), (0, 10)], EDGE),
        ]
        zones = find_convex_zones(frame + [LineInfo([(100, 0), (0, 0)], ONLY_CUTTING, 15)])
        assert [len(zone) for zone in zones] == [0, 4]
        assert all(line.kind == EDGE for line in zones[1])

    def test_only_cutting_line_adds_no_edge(self):
        square = [
            LineInfo([(0, -50), (100, -50)], EDGE),
            LineInfo([(100, -50), (100, 50)], EDGE),
            LineInfo([(100, 50), (0, 50)], EDGE),
            LineInfo([(0, 50), (0, -50)], EDGE),
        ]
        zones = find_convex_zones(square + [LineInfo([(100, 0), (0, 0)], ONLY_CUTTING, 10)])
        assert [len(zone) for zone in zones] == [3, 3]
        assert all(line.kind == EDGE for zone in zones for line in zone)
        hulls = _hulls(zones)
        assert _bounds(hulls[0]) == pytest.approx((0, -50, 100, -5))
        assert _bounds(hulls[1]) == pytest.approx((0, 5, 100, 50))

    def test_edges_only(self):
        lines = [LineInfo([(0, 0), (10, 0)], EDGE), LineInfo([(0, 5), (10, 5)], EDGE)]
        zones = find_convex_zones(lines)
        assert zones == [lines]


class TestShelfMaker:

    def test_parallel_features(self):
        shelf = (
            ShelfMaker(a2m(), ShelfOptions(wood_thickness=10))
            .add_feature(
                Path.from_polyline([(53.210678118654755, 7.5), (600, 7.5)], close=False).thicken_and_close(7.5),
                a2m(),
            )
            .add_feature(
                Path.from_polyline([(53.210678118654755, -77.5), (600, -77.5)], close=False).thicken_and_close(10),
                a2m(),
            )
        )
        assert str(shelf.make()) == "M 53.210678118654755 -87.5 L 53.210678118654755 7.5 L 600 7.5 L 600 -87.5 Z"

    def test_simple_shelf_between_two_edges(self, ctx):
        part1 = FlatPart(ctx, "one", 10, Path.make_rect(100))
        part2 = FlatPart(ctx, "two", 10, Path.make_rect(100))
        asm = Assembly(ctx, "assy")
        asm.add_child(part1)
        asm.add_child(part2, a2m((0, 0, 100)))
        loc = get_face_on_located_flat_part(asm.find_child(part1), lambda p: p[0])

        shelf = make_shelf_on_plane(
            loc, ShelfOptions(wood_thickness=10), asm.find_child(part1), asm.find_child(part2),
        )
        assert _bounds(shelf.points()) == pytest.approx((-100, 0, 0, 110), abs=1e-9)
        assert len(shelf.points()) == 4

        shelf2 = make_shelf_on_plane(
            loc @ translation(0, 0, -20),
            ShelfOptions(wood_thickness=10),
            asm.find_child(part1),
            asm.find_child(part2),
        )
        assert _bounds(shelf2.points()) == pytest.approx((-100, 10, 0, 100), abs=1e-9)
        assert len(shelf2.points()) == 4

    def _maker(self, asm, boards, **options):
        loc = get_face_on_located_flat_part(asm.find_child(boards[0]), lambda p: p[0])
        maker = ShelfMaker(loc @ translation(0, 0, -20), ShelfOptions(wood_thickness=10, **options))
        for board in boards:
            maker.add_flat_part(asm.find_child(board))
        return maker

    def test_zone_point_selects_the_zone(self, stacked):
        asm, boards = stacked
        upper = self._maker(asm, boards, zone_point=(-50, 80)).make()
        assert _bounds(upper.points()) == pytest.approx((-100, 60, 0, 100), abs=1e-9)
        lower = self._maker(asm, boards, zone_point=(-50, 30)).make()
        assert _bounds(lower.points()) == pytest.approx((-100, 10, 0, 50), abs=1e-9)

    def test_zone_index(self, stacked):
        asm, boards = stacked
        bottoms = [
            _bounds(self._maker(asm, boards, zone_index=i).make().points())[1]
            for i in (0, 1)
        ]
        assert bottoms == pytest.approx([60, 10])

    def test_several_zones_without_selector(self, stacked, caplog):
        asm, boards = stacked
        with caplog.at_level(logging.WARNING, logger="shelf"):
            self._maker(asm, boards).make()
        assert "Found 2 shelf zones" in caplog.text

    def test_unusable_part_is_skipped(self, ctx, caplog):
        part1 = FlatPart(ctx, "one", 10, Path.make_rect(100))
        part2 = FlatPart(ctx, "two", 10, Path.make_rect(100))
        stray = FlatPart(ctx, "stray", 10, Path.make_rect(100))
        asm = Assembly(ctx, "assy")
        asm.add_child(part1)
        asm.add_child(part2, a2m((0, 0, 100)))
        asm.add_child(stray, a2m((500, 0, 0)))
        loc = get_face_on_located_flat_part(asm.find_child(part1), lambda p: p[0])

        with caplog.at_level(logging.ERROR, logger="shelf"):
            shelf = make_shelf_on_plane(
                loc, ShelfOptions(wood_thickness=10),
                asm.find_child(part1), asm.find_child(part2), asm.find_child(stray),
            )
        assert "stray" in caplog.text
        assert _bounds(shelf.points()) == pytest.approx((-100, 0, 0, 110), abs=1e-9)

    def test_only_cutting_part_leaves_one_usable_zone(self, ctx, caplog):
        asm = Assembly(ctx, "stack")
        boards = []
        for name, z in (("bottom", 0), ("top", 100), ("below", -50)):
            board = FlatPart(ctx, name, 10, Path.make_rect(100))
            asm.add_child(board, a2m((0, 0, z)))
            boards.append(board)

        loc = get_face_on_located_flat_part(asm.find_child(boards[0]), lambda p: p[0])
        maker = (
            ShelfMaker(loc @ translation(0, 0, -20), ShelfOptions(wood_thickness=10))
            .add_flat_part(asm.find_child(boards[0]))
            .add_flat_part(asm.find_child(boards[1]))
            .add_flat_part(asm.find_child(boards[2]), only_cutting=True)
        )
        with caplog.at_level(logging.WARNING, logger="shelf"):
            shelf = maker.make()
        assert _bounds(shelf.points()) == pytest.approx((-100, 10, 0, 100), abs=1e-9)
        assert "shelf zones" not in caplog.text

    def test_only_cutting_part_with_a_zone_point(self, ctx):
        asm = Assembly(ctx, "stack")
        bottom = FlatPart(ctx, "bottom", 10, Path.make_rect(100))
        top = FlatPart(ctx, "top", 10, Path.make_rect(100))
        below = FlatPart(ctx, "below", 10, Path.make_rect(100))
        asm.add_child(bottom)
        asm.add_child(top, a2m((0, 0, 100)))
        asm.add_child(below, a2m((0, 0, -50)))

        loc = get_face_on_located_flat_part(asm.find_child(bottom), lambda p: p[0])
        shelf = (
            ShelfMaker(loc @ translation(0, 0, -20), ShelfOptions(wood_thickness=10, zone_point=(-50, 50)))
            .add_flat_part(asm.find_child(bottom))
            .add_flat_part(asm.find_child(top))
            .add_flat_part(asm.find_child(below), only_cutting=True)
            .make()
        )
        assert _bounds(shelf.points()) == pytest.approx((-100, 10, 0, 100), abs=1e-9)

    def test_no_usable_zone(self):
        maker = ShelfMaker(a2m(), ShelfOptions(wood_thickness=10))
        maker.add_feature(Path.from_polyline([(0, 0), (100, 0)], close=False), a2m())
        with pytest.raises(GeometryError):
            maker.make()

    def test_single_side_of_part(self, ctx):
        asm = Assembly(ctx, "sides")
        left = FlatPart(ctx, "left", 15, Path.make_rect(300, 400))
        right = FlatPart(ctx, "right", 15, Path.make_rect(300, 400))
        asm.add_child(left, a2m((0, 0, -100), X3, Y3))
        asm.add_child(right, a2m((500, 0, -100), X3, Y3))

        top_face = (
            ShelfMaker(a2m(), ShelfOptions(wood_thickness=10))
            .add_single_side_of_part(asm.find_child(left))
            .add_flat_part(asm.find_child(right))
            .make()
        )
        assert _bounds(top_face.points()) == pytest.approx((15, 0, 500, 300), abs=1e-9)

        bottom_face = (
            ShelfMaker(a2m(), ShelfOptions(wood_thickness=10))
            .add_single_side_of_part(asm.find_child(left), other_side=True)
            .add_flat_part(asm.find_child(right))
            .make()
        )
        assert _bounds(bottom_face.points()) == pytest.approx((0, 0, 500, 300), abs=1e-9)

    def test_only_flat_parts(self, ctx, cylinder_part):
        asm = Assembly(ctx, "asm")
        maker = ShelfMaker(a2m(), ShelfOptions(wood_thickness=10))
        with pytest.raises(TypeError):
            maker.add_flat_part(asm.add_child(cylinder_part))
