"""
Allocation engine: overlap test, availability, first-fit search, aggregation.
"""

import pytest

from pixelwall.models.advertisement import Advertisement
from pixelwall.models.wall_models import SEARCH_STEP, TOTAL_AREA, Position, Rect
from pixelwall.services.allocation_engine import (
    LinearOccupancyIndex,
    aggregate,
    find_slot,
    in_bounds,
    is_available,
    overlaps,
)


def R(x, y, width, height) -> Rect:
    return Rect(x=x, y=y, width=width, height=height)


def naive_find_slot(width, height, occupied, step=SEARCH_STEP):
    """Plain raster scan with no skipping, used as the reference answer."""
    for y in range(0, 1000 - height + 1, step):
        for x in range(0, 1000 - width + 1, step):
            if is_available(R(x, y, width, height), occupied):
                return Position(x=x, y=y)
    return None


class TestOverlaps:
    def test_intersecting_rectangles_overlap(self):
        assert overlaps(R(0, 0, 10, 10), R(5, 5, 10, 10))

    def test_contained_rectangle_overlaps(self):
        assert overlaps(R(0, 0, 100, 100), R(40, 40, 10, 10))
        assert overlaps(R(40, 40, 10, 10), R(0, 0, 100, 100))

    @pytest.mark.parametrize(
        "b",
        [
            R(10, 0, 10, 10),  # right neighbour
            R(0, 10, 10, 10),  # below
            R(-10, 0, 10, 10),  # left neighbour
            R(10, 10, 10, 10),  # corner only
        ],
    )
    def test_touching_edges_do_not_overlap(self, b):
        assert not overlaps(R(0, 0, 10, 10), b)

    def test_disjoint_rectangles_do_not_overlap(self):
        assert not overlaps(R(0, 0, 10, 10), R(500, 500, 10, 10))

    def test_edges_are_exclusive(self):
        rect = R(30, 40, 25, 15)
        assert (rect.right, rect.bottom, rect.area) == (55, 55, 375)
        assert not overlaps(rect, R(rect.right, rect.y, 5, 5))
        assert not overlaps(rect, R(rect.x, rect.bottom, 5, 5))
        assert overlaps(rect, R(rect.right - 1, rect.bottom - 1, 5, 5))


class TestAvailability:
    def test_neighbour_sharing_an_edge_is_available(self):
        assert is_available(R(10, 0, 10, 10), [R(0, 0, 10, 10)])

    def test_overlapping_candidate_is_not_available(self):
        assert not is_available(R(5, 0, 10, 10), [R(0, 0, 10, 10)])

    def test_rectangle_reaching_the_canvas_edge_is_valid(self):
        assert is_available(R(900, 0, 100, 10), [])
        assert is_available(R(0, 990, 10, 10), [])
        assert is_available(R(0, 0, 1000, 1000), [])

    @pytest.mark.parametrize(
        "candidate",
        [
            R(901, 0, 100, 10),
            R(0, 991, 10, 10),
            R(-1, 0, 10, 10),
            R(0, -1, 10, 10),
            R(0, 0, 0, 10),
            R(0, 0, 10, 0),
        ],
    )
    def test_out_of_bounds_candidate_is_not_available(self, candidate):
        assert not in_bounds(candidate)
        assert not is_available(candidate, [])

    def test_accepts_an_occupancy_index(self):
        index = LinearOccupancyIndex([R(0, 0, 10, 10)])
        assert not is_available(R(0, 0, 5, 5), index)
        assert is_available(R(10, 10, 5, 5), index)


class TestFindSlot:
    def test_empty_wall_starts_top_left(self):
        assert find_slot(50, 50, []) == Position(x=0, y=0)

    def test_full_size_rectangle_fits_empty_wall(self):
        assert find_slot(1000, 1000, []) == Position(x=0, y=0)

    def test_row_is_filled_before_moving_down(self):
        assert find_slot(50, 50, [R(0, 0, 100, 100)]) == Position(x=100, y=0)

    def test_moves_to_next_row_when_row_is_full(self):
        occupied = [R(0, 0, 1000, 30)]
        assert find_slot(50, 50, occupied) == Position(x=0, y=30)

    def test_positions_stay_on_the_grid(self):
        # blocker ends at x=15, next grid column is 20
        assert find_slot(10, 10, [R(0, 0, 15, 10)]) == Position(x=20, y=0)

    def test_same_input_gives_same_answer(self):
        occupied = [R(0, 0, 100, 100), R(150, 0, 30, 200), R(300, 20, 400, 80)]
        first = find_slot(60, 60, occupied)
        assert first == find_slot(60, 60, occupied)
        assert first == find_slot(60, 60, list(reversed(occupied)))

    def test_full_wall_has_no_slot(self):
        assert find_slot(1, 1, [R(0, 0, 1000, 1000)]) is None

    def test_gap_off_the_grid_is_not_found(self):
        occupied = [R(0, 0, 1000, 995), R(0, 995, 995, 5)]
        assert find_slot(1, 1, occupied) is None

    @pytest.mark.parametrize("size", [(0, 10), (10, 0), (1001, 10), (10, 1001)])
    def test_invalid_size_has_no_slot(self, size):
        assert find_slot(*size, []) is None

    @pytest.mark.parametrize("size", [(10, 10), (35, 20), (120, 45), (300, 300), (990, 10)])
    def test_matches_plain_raster_scan(self, size):
        occupied = [
            R(0, 0, 95, 40),
            R(95, 0, 13, 70),
            R(130, 5, 500, 25),
            R(640, 0, 360, 60),
            R(0, 40, 60, 300),
            R(200, 100, 250, 250),
            R(700, 200, 37, 500),
            R(60, 500, 600, 41),
        ]
        assert find_slot(*size, occupied) == naive_find_slot(*size, occupied)

    def test_result_is_free_and_in_bounds(self):
        occupied = [R(0, 0, 100, 100), R(100, 0, 900, 55)]
        position = find_slot(70, 70, occupied)
        assert position is not None
        assert is_available(R(position.x, position.y, 70, 70), occupied)


class TestAggregate:
    def test_empty_wall(self):
        stats = aggregate([])
        assert stats.total_area == TOTAL_AREA
        assert stats.occupied_area == 0
        assert stats.available_area == TOTAL_AREA
        assert stats.count == 0
        assert stats.total_revenue == 0

    def test_sums_area_and_price(self):
        ads = [
            Advertisement(
                id=i,
                x=x,
                y=0,
                width=w,
                height=h,
                price=price,
                business_name="b",
                image_url="https://a.example/i.png",
                target_url="https://a.example/",
                created_at="2026-01-01T00:00:00Z",
                updated_at="2026-01-01T00:00:00Z",
            )
            for i, (x, w, h, price) in enumerate([(0, 10, 10, 100), (10, 20, 5, 100)], start=1)
        ]
        stats = aggregate(ads)
        assert stats.occupied_area == 200
        assert stats.available_area == TOTAL_AREA - 200
        assert stats.count == 2
        assert stats.total_revenue == 200

    def test_plain_rectangles_are_priced_per_unit(self):
        assert aggregate([R(0, 0, 10, 10)]).total_revenue == 100


def test_index_lists_every_blocker():
    index = LinearOccupancyIndex([R(0, 0, 10, 10), R(10, 0, 10, 10), R(50, 50, 5, 5)])
    hits = index.query_overlapping(5, 0, 10, 10)
    assert hits == [R(0, 0, 10, 10), R(10, 0, 10, 10)]
    assert len(index) == 3
