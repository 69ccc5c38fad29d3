# backend/pixelwall/services/allocation_engine.py

"""
Allocation engine of the wall.

Pure geometry over a snapshot of active rectangles:
- overlap test (half-open intervals, touching edges do not overlap)
- availability of a candidate rectangle
- first-fit placement search on a fixed grid
- occupancy aggregation

Nothing here talks to the store or keeps state between calls.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator

from pixelwall.models.wall_models import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    PRICE_PER_UNIT,
    SEARCH_STEP,
    TOTAL_AREA,
    Position,
    Rect,
    WallStats,
)


def _boxes_overlap(ax: int, ay: int, aw: int, ah: int, b: Rect) -> bool:
    return not (
        ax >= b.right
        or ax + aw <= b.x
        or ay >= b.bottom
        or ay + ah <= b.y
    )


def overlaps(a: Rect, b: Rect) -> bool:
    """True iff a and b share an intersection of positive area."""
    return _boxes_overlap(a.x, a.y, a.width, a.height, b)


def in_bounds(rect: Rect) -> bool:
    return (
        rect.width >= 1
        and rect.height >= 1
        and rect.x >= 0
        and rect.y >= 0
        and rect.right <= CANVAS_WIDTH
        and rect.bottom <= CANVAS_HEIGHT
    )


# ------------------------------------------
#  OCCUPANCY INDEX
# ------------------------------------------


class OccupancyIndex(ABC):
    """
    Lookup structure over the occupied rectangles.

    The engine only asks "which rectangle blocks this box?", so an
    interval tree or R-tree can replace the linear index without
    changing any result of the engine.
    """

    @abstractmethod
    def first_overlapping(self, x: int, y: int, width: int, height: int) -> Rect | None:
        raise NotImplementedError

    @abstractmethod
    def __iter__(self) -> Iterator[Rect]:
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError

    def query_overlapping(self, x: int, y: int, width: int, height: int) -> list[Rect]:
        return [r for r in self if _boxes_overlap(x, y, width, height, r)]


class LinearOccupancyIndex(OccupancyIndex):
    """O(k) scan per query. Enough for the occupancy a single wall reaches."""

    def __init__(self, rects: Iterable[Rect]):
        self._rects: list[Rect] = list(rects)

    def first_overlapping(self, x: int, y: int, width: int, height: int) -> Rect | None:
        for rect in self._rects:
            if _boxes_overlap(x, y, width, height, rect):
                return rect
        return None

    def __iter__(self) -> Iterator[Rect]:
        return iter(self._rects)

    def __len__(self) -> int:
        return len(self._rects)


def as_index(occupied: Iterable[Rect] | OccupancyIndex) -> OccupancyIndex:
    if isinstance(occupied, OccupancyIndex):
        return occupied
    return LinearOccupancyIndex(occupied)


# ------------------------------------------
#  QUERIES
# ------------------------------------------


def is_available(candidate: Rect, occupied: Iterable[Rect] | OccupancyIndex) -> bool:
    """
    False if the candidate leaves the canvas or overlaps any occupied rectangle.
    """
    if not in_bounds(candidate):
        return False
    index = as_index(occupied)
    blocker = index.first_overlapping(candidate.x, candidate.y, candidate.width, candidate.height)
    return blocker is None


def _next_grid_column(x: int, step: int) -> int:
    return -(-x // step) * step


def find_slot(
    width: int,
    height: int,
    occupied: Iterable[Rect] | OccupancyIndex,
    step: int = SEARCH_STEP,
) -> Position | None:
    """
    First-fit search for a free top-left corner.

    Rows (y) are scanned top to bottom, and inside a row the columns (x)
    left to right, both on a grid of `step` units. The first position
    where the whole rectangle fits is returned, so equal inputs always
    give equal answers.

    When a candidate is blocked, the column cursor jumps to the first grid
    column at or after the blocker's right edge: all columns in between
    hit the same blocker, so the answer is the same as a plain scan.
    """
    if width < 1 or height < 1 or width > CANVAS_WIDTH or height > CANVAS_HEIGHT:
        return None

    index = as_index(occupied)

    for y in range(0, CANVAS_HEIGHT - height + 1, step):
        x = 0
        while x <= CANVAS_WIDTH - width:
            blocker = index.first_overlapping(x, y, width, height)
            if blocker is None:
                return Position(x=x, y=y)
            x = _next_grid_column(blocker.right, step)

    return None


def aggregate(occupied: Iterable[Rect]) -> WallStats:
    """
    Sums area and revenue over the given (active) rectangles.
    Rectangles without a price are counted at the list price.
    """
    occupied_area = 0
    total_revenue = 0
    count = 0

    for rect in occupied:
        area = rect.area
        occupied_area += area
        total_revenue += getattr(rect, "price", area * PRICE_PER_UNIT)
        count += 1

    return WallStats(
        total_area=TOTAL_AREA,
        occupied_area=occupied_area,
        available_area=TOTAL_AREA - occupied_area,
        count=count,
        total_revenue=total_revenue,
    )
