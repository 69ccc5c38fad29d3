import threading

import pytest
from pydantic import ValidationError

from pixelwall.exceptions import LockTimeoutError, StoreUnavailableError
from pixelwall.models.advertisement import AdStatus, NewAdvertisement
from pixelwall.services.rectangle_store import InMemoryRectangleStore


def new_ad(x=0, y=0, width=10, height=10, name="Acme") -> NewAdvertisement:
    return NewAdvertisement(
        x=x,
        y=y,
        width=width,
        height=height,
        business_name=name,
        image_url="https://acme.example/logo.png",
        target_url="https://acme.example/",
        alt=name,
        price=width * height,
    )


def test_insert_is_visible_after_commit(store):
    with store.transaction(write=True) as tx:
        ad = tx.insert_rectangle(new_ad())

    assert ad.id == 1
    assert ad.status == AdStatus.ACTIVE
    assert ad.created_at == ad.updated_at

    with store.transaction() as tx:
        assert tx.get_rectangle(ad.id) == ad
        assert tx.load_active_rectangles() == [ad]


def test_exception_rolls_back_every_write(store):
    with pytest.raises(ZeroDivisionError):
        with store.transaction(write=True) as tx:
            tx.insert_rectangle(new_ad())
            tx.insert_rectangle(new_ad(x=20))
            1 / 0

    with store.transaction() as tx:
        assert tx.load_active_rectangles() == []


def test_read_transaction_refuses_writes(store):
    with store.transaction() as tx:
        with pytest.raises(RuntimeError):
            tx.insert_rectangle(new_ad())


def test_list_active_is_newest_first(store):
    for x in (0, 20, 40):
        with store.transaction(write=True) as tx:
            tx.insert_rectangle(new_ad(x=x))

    with store.transaction() as tx:
        assert [ad.x for ad in tx.list_active()] == [40, 20, 0]


def test_soft_delete_only_once(store):
    with store.transaction(write=True) as tx:
        ad = tx.insert_rectangle(new_ad())

    with store.transaction(write=True) as tx:
        assert tx.soft_delete_rectangle(ad.id) is True
    with store.transaction(write=True) as tx:
        assert tx.soft_delete_rectangle(ad.id) is False
        assert tx.soft_delete_rectangle(999) is False

    with store.transaction() as tx:
        assert tx.load_active_rectangles() == []
        removed = tx.get_rectangle(ad.id)
    assert removed.status == AdStatus.REMOVED
    assert (removed.x, removed.y, removed.width, removed.height) == (0, 0, 10, 10)


def test_update_touches_descriptive_fields_only(store):
    with store.transaction(write=True) as tx:
        ad = tx.insert_rectangle(new_ad())

    with store.transaction(write=True) as tx:
        updated = tx.update_rectangle(ad.id, {"description": "new", "x": 500, "price": 1})

    assert updated.description == "new"
    assert (updated.x, updated.price) == (0, 100)
    assert updated.updated_at >= ad.updated_at


def test_update_with_wrong_types_is_refused_and_rolled_back(store):
    with store.transaction(write=True) as tx:
        ad = tx.insert_rectangle(new_ad())

    with pytest.raises(ValidationError):
        with store.transaction(write=True) as tx:
            tx.update_rectangle(ad.id, {"business_name": None})

    with store.transaction() as tx:
        assert tx.get_rectangle(ad.id).business_name == "Acme"


def test_update_of_removed_ad_returns_none(store):
    with store.transaction(write=True) as tx:
        ad = tx.insert_rectangle(new_ad())
        tx.soft_delete_rectangle(ad.id)

    with store.transaction(write=True) as tx:
        assert tx.update_rectangle(ad.id, {"description": "x"}) is None
        assert tx.update_rectangle(404, {"description": "x"}) is None


def test_readers_do_not_wait_for_the_writer(store):
    inside = threading.Event()
    release = threading.Event()

    def writer():
        with store.transaction(write=True) as tx:
            tx.insert_rectangle(new_ad())
            inside.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=writer)
    thread.start()
    assert inside.wait(timeout=5)

    # writer still holds the scope: readers see the last committed state
    with store.transaction() as tx:
        assert tx.load_active_rectangles() == []

    release.set()
    thread.join(timeout=5)

    with store.transaction() as tx:
        assert len(tx.load_active_rectangles()) == 1


def test_second_writer_times_out():
    store = InMemoryRectangleStore(lock_timeout=0.05)
    store.open()
    inside = threading.Event()
    release = threading.Event()

    def writer():
        with store.transaction(write=True):
            inside.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=writer)
    thread.start()
    assert inside.wait(timeout=5)
    try:
        with pytest.raises(LockTimeoutError):
            with store.transaction(write=True):
                pass
    finally:
        release.set()
        thread.join(timeout=5)
        store.close()


def test_closed_store_is_unavailable():
    store = InMemoryRectangleStore()
    with pytest.raises(StoreUnavailableError):
        with store.transaction():
            pass
