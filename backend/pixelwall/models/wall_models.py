# backend/pixelwall/models/wall_models.py

from pydantic import BaseModel, ConfigDict

CANVAS_WIDTH = 1000
CANVAS_HEIGHT = 1000
TOTAL_AREA = CANVAS_WIDTH * CANVAS_HEIGHT

# Price of one unit of area
PRICE_PER_UNIT = 1

# Grid step of the placement search
SEARCH_STEP = 10


class Rect(BaseModel):
    """
    Axis-aligned rectangle on the wall.
    (x, y) is the top-left corner, the covered area is the half-open
    box [x, x + width) x [y, y + height).
    """

    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height


class Position(BaseModel):
    """Top-left corner returned by the placement search."""

    x: int
    y: int


class WallStats(BaseModel):
    """Occupancy figures over the active rectangles."""

    total_area: int = TOTAL_AREA
    occupied_area: int = 0
    available_area: int = TOTAL_AREA
    count: int = 0
    total_revenue: int = 0
