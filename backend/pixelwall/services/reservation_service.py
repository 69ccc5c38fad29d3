# backend/pixelwall/services/reservation_service.py

import time
from typing import Any, Callable, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from pixelwall.exceptions import (
    InvalidRequestError,
    NoSpaceError,
    NotFoundError,
    OutOfBoundsError,
    SpaceTakenError,
    StoreUnavailableError,
    TransientStoreError,
)
from pixelwall.models.advertisement import (
    MUTABLE_FIELDS,
    AdChanges,
    AdPayload,
    Advertisement,
    NewAdvertisement,
)
from pixelwall.models.wall_models import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    SEARCH_STEP,
    Position,
    Rect,
    WallStats,
)
from pixelwall.services.allocation_engine import (
    aggregate,
    find_slot,
    in_bounds,
    is_available,
)
from pixelwall.services.rectangle_store import RectangleStore

T = TypeVar("T")

MSG_AVAILABLE = "Space is available"
MSG_OUT_OF_BOUNDS = "Space extends beyond canvas boundaries"
MSG_OCCUPIED = "Space is already occupied"
MSG_NO_SPACE = "No available space found for the requested dimensions"


class Availability(BaseModel):
    available: bool
    reason: str


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'fields'}: {error['msg']}"
        for error in exc.errors()
    )


class ReservationService:
    """
    Owns the lifecycle of the ads on the wall.

    Reservations run "load active rectangles -> decide -> insert" inside
    one write transaction of the store, so two buyers can never be given
    overlapping space. Transient aborts are retried a bounded number of
    times, then reported as StoreUnavailableError.
    """

    def __init__(
        self,
        store: RectangleStore,
        max_retries: int = 3,
        retry_backoff: float = 0.05,
        step: int = SEARCH_STEP,
    ):
        self.store = store
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.step = step

    # -----------------------------
    #  READS
    # -----------------------------

    def list_active(self) -> list[Advertisement]:
        with self.store.transaction() as tx:
            return tx.list_active()

    def get(self, ad_id: int) -> Advertisement:
        with self.store.transaction() as tx:
            ad = tx.get_rectangle(ad_id)
        if ad is None:
            raise NotFoundError(f"Ad {ad_id} not found")
        return ad

    def check_availability(self, x: int, y: int, width: int, height: int) -> Availability:
        candidate = Rect(x=x, y=y, width=width, height=height)
        if not in_bounds(candidate):
            return Availability(available=False, reason=MSG_OUT_OF_BOUNDS)

        with self.store.transaction() as tx:
            occupied = tx.load_active_rectangles()

        if is_available(candidate, occupied):
            return Availability(available=True, reason=MSG_AVAILABLE)
        return Availability(available=False, reason=MSG_OCCUPIED)

    def find_position(self, width: int, height: int) -> Position | None:
        """Preview of where reserve_auto would place the ad right now."""
        self._check_size(width, height)
        with self.store.transaction() as tx:
            occupied = tx.load_active_rectangles()
        return find_slot(width, height, occupied, step=self.step)

    def stats(self) -> WallStats:
        with self.store.transaction() as tx:
            return aggregate(tx.load_active_rectangles())

    # -----------------------------
    #  RESERVATIONS
    # -----------------------------

    def reserve_auto(self, width: int, height: int, payload: AdPayload) -> Advertisement:
        self._check_size(width, height)

        def attempt() -> Advertisement:
            with self.store.transaction(write=True) as tx:
                position = find_slot(width, height, tx.load_active_rectangles(), step=self.step)
                if position is None:
                    raise NoSpaceError(MSG_NO_SPACE)
                rect = Rect(x=position.x, y=position.y, width=width, height=height)
                return tx.insert_rectangle(NewAdvertisement.from_payload(rect, payload))

        try:
            ad = self._with_retries("reserve_auto", attempt)
        except NoSpaceError:
            logger.info(f"No space for {width}x{height}")
            raise

        logger.info(f"Reserved ad {ad.id} at ({ad.x},{ad.y}) {ad.width}x{ad.height}, price {ad.price}")
        return ad

    def reserve_explicit(
        self, x: int, y: int, width: int, height: int, payload: AdPayload
    ) -> Advertisement:
        rect = Rect(x=x, y=y, width=width, height=height)
        if not in_bounds(rect):
            raise OutOfBoundsError(MSG_OUT_OF_BOUNDS)

        def attempt() -> Advertisement:
            with self.store.transaction(write=True) as tx:
                if not is_available(rect, tx.load_active_rectangles()):
                    raise SpaceTakenError(MSG_OCCUPIED)
                return tx.insert_rectangle(NewAdvertisement.from_payload(rect, payload))

        try:
            ad = self._with_retries("reserve_explicit", attempt)
        except SpaceTakenError:
            logger.info(f"Space taken at ({x},{y}) {width}x{height}")
            raise

        logger.info(f"Reserved ad {ad.id} at ({ad.x},{ad.y}) {ad.width}x{ad.height}, price {ad.price}")
        return ad

    # -----------------------------
    #  MUTATIONS
    # -----------------------------

    def update(self, ad_id: int, fields: dict[str, Any]) -> Advertisement:
        """
        Changes descriptive fields only. Geometry, price and status
        are fixed once the ad is placed.
        """
        frozen = sorted(set(fields) - set(MUTABLE_FIELDS))
        if frozen:
            raise InvalidRequestError(
                f"Fields cannot be changed after placement: {', '.join(frozen)}"
            )
        try:
            changes = AdChanges.model_validate(fields).as_fields()
        except ValidationError as exc:
            raise InvalidRequestError(_describe(exc)) from exc
        if not changes:
            raise InvalidRequestError("No valid fields to update")

        def attempt() -> Advertisement | None:
            with self.store.transaction(write=True) as tx:
                return tx.update_rectangle(ad_id, changes)

        ad = self._with_retries("update", attempt)
        if ad is None:
            raise NotFoundError(f"Ad {ad_id} not found")

        logger.info(f"Updated ad {ad_id}: {', '.join(sorted(changes))}")
        return ad

    def soft_delete(self, ad_id: int) -> bool:
        """
        active -> removed. Returns False for unknown or already removed ads,
        so deleting twice never reports a second success.
        """

        def attempt() -> bool:
            with self.store.transaction(write=True) as tx:
                return tx.soft_delete_rectangle(ad_id)

        deleted = self._with_retries("soft_delete", attempt)
        if deleted:
            logger.info(f"Removed ad {ad_id}")
        return deleted

    # -----------------------------
    #  HELPERS
    # -----------------------------

    @staticmethod
    def _check_size(width: int, height: int) -> None:
        if not (1 <= width <= CANVAS_WIDTH and 1 <= height <= CANVAS_HEIGHT):
            raise OutOfBoundsError(
                f"Size must be between 1x1 and {CANVAS_WIDTH}x{CANVAS_HEIGHT}"
            )

    def _with_retries(self, operation: str, fn: Callable[[], T]) -> T:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except TransientStoreError as exc:
                if attempt == attempts:
                    logger.error(f"{operation} failed after {attempts} attempts: {exc}")
                    raise StoreUnavailableError(
                        "Rectangle store is busy, please try again"
                    ) from exc
                logger.warning(f"{operation} attempt {attempt} aborted ({exc}), retrying")
                time.sleep(self.retry_backoff * attempt)
        raise AssertionError("unreachable")
