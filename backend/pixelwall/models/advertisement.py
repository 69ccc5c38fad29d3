# backend/pixelwall/models/advertisement.py

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from pixelwall.models.wall_models import PRICE_PER_UNIT, Rect


class AdStatus(str, Enum):
    """
    Only ACTIVE ads take part in collision checks and statistics.
    PENDING and EXPIRED belong to the payment flow and are never set here.
    """

    ACTIVE = "active"
    PENDING = "pending"
    EXPIRED = "expired"
    REMOVED = "removed"


# Fields a buyer may change after the ad has been placed
MUTABLE_FIELDS = ("business_name", "description", "image_url", "target_url", "alt")

# ...and the ones among them that can never be cleared
REQUIRED_FIELDS = ("business_name", "image_url", "target_url")

_HTTP_URL = TypeAdapter(HttpUrl)


def _valid_http_url(value: str) -> str:
    """Checks the URL but keeps it exactly as the buyer wrote it."""
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as exc:
        raise ValueError("must be a valid http(s) URL") from exc
    return value


WebUrl = Annotated[str, AfterValidator(_valid_http_url)]
BusinessName = Annotated[str, Field(min_length=1, max_length=255)]
Description = Annotated[str, Field(max_length=1000)]
AltText = Annotated[str, Field(max_length=255)]


class AdPayload(BaseModel):
    """Descriptive part of an ad. Has no effect on geometry."""

    business_name: str
    description: str | None = None
    image_url: str
    target_url: str
    alt: str | None = None


class NewAdvertisement(Rect):
    """
    What the store receives on insert: the chosen geometry,
    the payload and the price fixed at creation time.
    """

    business_name: str
    description: str | None = None
    image_url: str
    target_url: str
    alt: str | None = None
    price: int

    @classmethod
    def from_payload(cls, rect: Rect, payload: AdPayload) -> "NewAdvertisement":
        return cls(
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            business_name=payload.business_name,
            description=payload.description,
            image_url=payload.image_url,
            target_url=payload.target_url,
            alt=payload.alt or payload.business_name,
            price=rect.area * PRICE_PER_UNIT,
        )


class Advertisement(Rect):
    """
    Ad as stored:
    geometry (immutable), price (immutable), status, payload and timestamps.
    """

    id: int
    status: AdStatus = AdStatus.ACTIVE
    price: int

    business_name: str
    description: str | None = None
    image_url: str
    target_url: str
    alt: str | None = None

    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == AdStatus.ACTIVE


class AdChanges(BaseModel):
    """
    Partial update of the descriptive fields.
    Keys left out stay as they are; geometry, price and status are refused.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    business_name: BusinessName | None = None
    description: Description | None = None
    image_url: WebUrl | None = None
    target_url: WebUrl | None = None
    alt: AltText | None = None

    @model_validator(mode="after")
    def _required_fields_not_cleared(self) -> "AdChanges":
        for name in REQUIRED_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def as_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)
