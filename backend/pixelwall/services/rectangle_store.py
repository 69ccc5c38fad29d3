# backend/pixelwall/services/rectangle_store.py

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, ContextManager, Iterator

from loguru import logger

from pixelwall.exceptions import LockTimeoutError, StoreUnavailableError
from pixelwall.models.advertisement import (
    MUTABLE_FIELDS,
    Advertisement,
    AdStatus,
    NewAdvertisement,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def newest_first(ads: list[Advertisement]) -> list[Advertisement]:
    return sorted(ads, key=lambda ad: (ad.created_at, ad.id), reverse=True)


class StoreTransaction(ABC):
    """
    One atomic unit of work against the rectangle store.
    Obtained from RectangleStore.transaction(); commits when the
    `with` block ends normally and rolls back on any exception.
    """

    @abstractmethod
    def load_active_rectangles(self) -> list[Advertisement]:
        raise NotImplementedError

    @abstractmethod
    def list_active(self) -> list[Advertisement]:
        """Active ads, newest first."""
        raise NotImplementedError

    @abstractmethod
    def get_rectangle(self, ad_id: int) -> Advertisement | None:
        raise NotImplementedError

    @abstractmethod
    def insert_rectangle(self, data: NewAdvertisement) -> Advertisement:
        raise NotImplementedError

    @abstractmethod
    def update_rectangle(self, ad_id: int, fields: dict[str, Any]) -> Advertisement | None:
        """
        Updates descriptive fields of a non-removed ad and refreshes updated_at.
        Returns None when there is no such ad.
        """
        raise NotImplementedError

    @abstractmethod
    def soft_delete_rectangle(self, ad_id: int) -> bool:
        """active -> removed. False if the ad is missing or already removed."""
        raise NotImplementedError


class RectangleStore(ABC):
    """
    Durable set of rectangles with an explicit lifecycle (open/close).

    transaction(write=True) additionally enters the single-writer scope
    of the canvas: at most one write transaction runs at a time, and
    acquiring it waits at most `lock_timeout` seconds.
    """

    lock_timeout: float = 5.0

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "RectangleStore":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @abstractmethod
    def transaction(self, write: bool = False) -> ContextManager[StoreTransaction]:
        raise NotImplementedError


# ------------------------------------------
#  IN-MEMORY STORE
# ------------------------------------------


class MemoryTransaction(StoreTransaction):
    """
    Works on a private copy of the committed state.
    The store publishes the copy on commit in a single assignment.
    """

    def __init__(self, committed: dict[int, Advertisement], next_id: int, writable: bool):
        self._base = committed
        self._working: dict[int, Advertisement] | None = None
        self.next_id = next_id
        self.writable = writable

    @property
    def dirty(self) -> bool:
        return self._working is not None

    @property
    def state(self) -> dict[int, Advertisement]:
        return self._working if self._working is not None else self._base

    def _mutable_state(self) -> dict[int, Advertisement]:
        if not self.writable:
            raise RuntimeError("write attempted inside a read-only transaction")
        if self._working is None:
            self._working = dict(self._base)
        return self._working

    def load_active_rectangles(self) -> list[Advertisement]:
        return [ad for ad in self.state.values() if ad.is_active]

    def list_active(self) -> list[Advertisement]:
        return newest_first(self.load_active_rectangles())

    def get_rectangle(self, ad_id: int) -> Advertisement | None:
        return self.state.get(ad_id)

    def insert_rectangle(self, data: NewAdvertisement) -> Advertisement:
        state = self._mutable_state()
        now = utcnow()
        ad = Advertisement(
            id=self.next_id,
            status=AdStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        state[ad.id] = ad
        self.next_id += 1
        return ad

    def update_rectangle(self, ad_id: int, fields: dict[str, Any]) -> Advertisement | None:
        current = self.state.get(ad_id)
        if current is None or current.status == AdStatus.REMOVED:
            return None
        changes = {k: v for k, v in fields.items() if k in MUTABLE_FIELDS}
        updated = Advertisement.model_validate(
            {**current.model_dump(), **changes, "updated_at": utcnow()}
        )
        self._mutable_state()[ad_id] = updated
        return updated

    def soft_delete_rectangle(self, ad_id: int) -> bool:
        current = self.state.get(ad_id)
        if current is None or not current.is_active:
            return False
        self._mutable_state()[ad_id] = current.model_copy(
            update={"status": AdStatus.REMOVED, "updated_at": utcnow()}
        )
        return True


class InMemoryRectangleStore(RectangleStore):
    """
    Store kept in process memory.

    Readers take the committed snapshot without locking, so they never
    block writers and only ever see fully committed states.
    """

    transaction_class = MemoryTransaction

    def __init__(self, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self._committed: dict[int, Advertisement] = {}
        self._next_id = 1
        self._write_lock = threading.Lock()
        self._opened = False

    def open(self) -> None:
        self._opened = True
        logger.info("In-memory rectangle store opened")

    def close(self) -> None:
        self._opened = False
        logger.info("In-memory rectangle store closed")

    @contextmanager
    def transaction(self, write: bool = False) -> Iterator[StoreTransaction]:
        if not self._opened:
            raise StoreUnavailableError("Rectangle store is not open")

        if not write:
            yield self.transaction_class(self._committed, self._next_id, writable=False)
            return

        if not self._write_lock.acquire(timeout=self.lock_timeout):
            raise LockTimeoutError(
                f"Could not enter the writer scope within {self.lock_timeout}s"
            )
        try:
            tx = self.transaction_class(self._committed, self._next_id, writable=True)
            yield tx
            if tx.dirty:
                self._committed = tx.state
                self._next_id = tx.next_id
        finally:
            self._write_lock.release()
