import pytest
from fastapi.testclient import TestClient

from pixelwall.main import create_app
from pixelwall.models.advertisement import AdPayload
from pixelwall.services.rectangle_store import InMemoryRectangleStore
from pixelwall.services.reservation_service import ReservationService


@pytest.fixture
def store():
    with InMemoryRectangleStore(lock_timeout=2.0) as store:
        yield store


@pytest.fixture
def service(store):
    return ReservationService(store, retry_backoff=0)


@pytest.fixture
def payload():
    return AdPayload(
        business_name="Acme Anvils",
        description="Anvils for every occasion",
        image_url="https://acme.example/logo.png",
        target_url="https://acme.example/",
    )


@pytest.fixture
def client():
    app = create_app(store=InMemoryRectangleStore())
    with TestClient(app) as client:
        yield client


@pytest.fixture
def ad_body():
    return {
        "width": 50,
        "height": 40,
        "businessName": "Acme Anvils",
        "description": "Anvils for every occasion",
        "imageUrl": "https://acme.example/logo.png",
        "targetUrl": "https://acme.example/shop",
    }
