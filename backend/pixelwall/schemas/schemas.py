# backend/pixelwall/schemas/schemas.py
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pixelwall.models.advertisement import (
    REQUIRED_FIELDS,
    AdPayload,
    Advertisement,
    AdStatus,
    AltText,
    BusinessName,
    Description,
    WebUrl,
)
from pixelwall.models.wall_models import CANVAS_HEIGHT, CANVAS_WIDTH, Position, WallStats


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


Width = Annotated[int, Field(ge=1, le=CANVAS_WIDTH)]
Height = Annotated[int, Field(ge=1, le=CANVAS_HEIGHT)]


class AdCreateSchema(CamelModel):
    width: Width
    height: Height
    business_name: BusinessName
    description: Description | None = None
    image_url: WebUrl
    target_url: WebUrl
    alt: AltText | None = None

    # Optional explicit position; without it the ad is placed automatically
    x: int | None = Field(default=None, ge=0, le=CANVAS_WIDTH - 1)
    y: int | None = Field(default=None, ge=0, le=CANVAS_HEIGHT - 1)

    @model_validator(mode="after")
    def _position_is_complete(self) -> "AdCreateSchema":
        if (self.x is None) != (self.y is None):
            raise ValueError("x and y must be given together")
        return self

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None

    def to_payload(self) -> AdPayload:
        return AdPayload(
            business_name=self.business_name,
            description=self.description,
            image_url=self.image_url,
            target_url=self.target_url,
            alt=self.alt or None,
        )


class AdUpdateSchema(CamelModel):
    business_name: BusinessName | None = None
    description: Description | None = None
    image_url: WebUrl | None = None
    target_url: WebUrl | None = None
    alt: AltText | None = None

    @model_validator(mode="after")
    def _required_fields_not_null(self) -> "AdUpdateSchema":
        for name in REQUIRED_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def to_fields(self) -> dict[str, Any]:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class AvailabilityRequest(CamelModel):
    x: int = Field(ge=0, le=CANVAS_WIDTH - 1)
    y: int = Field(ge=0, le=CANVAS_HEIGHT - 1)
    width: Width
    height: Height


class AvailabilityResponse(CamelModel):
    available: bool
    message: str


class PositionRequest(CamelModel):
    width: Width
    height: Height


class PositionResponse(CamelModel):
    x: int
    y: int

    @classmethod
    def from_position(cls, position: Position) -> "PositionResponse":
        return cls(x=position.x, y=position.y)


class AdResponse(CamelModel):
    id: int
    x: int
    y: int
    width: int
    height: int
    status: AdStatus
    price: int
    business_name: str
    description: str | None = None
    image_url: str
    target_url: str
    alt: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_ad(cls, ad: Advertisement) -> "AdResponse":
        return cls.model_validate(ad.model_dump())


class StatsResponse(CamelModel):
    total_pixels: int
    occupied_pixels: int
    available_pixels: int
    total_ads: int
    total_revenue: int

    @classmethod
    def from_stats(cls, stats: WallStats) -> "StatsResponse":
        return cls(
            total_pixels=stats.total_area,
            occupied_pixels=stats.occupied_area,
            available_pixels=stats.available_area,
            total_ads=stats.count,
            total_revenue=stats.total_revenue,
        )


class DeleteResponse(CamelModel):
    success: bool
    message: str
