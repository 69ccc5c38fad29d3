# backend/pixelwall/main.py

from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from pixelwall import config
from pixelwall.exception_handlers import register_exception_handlers
from pixelwall.exceptions import NotFoundError
from pixelwall.logging_config import configure_logging
from pixelwall.schemas.schemas import (
    AdCreateSchema,
    AdResponse,
    AdUpdateSchema,
    AvailabilityRequest,
    AvailabilityResponse,
    DeleteResponse,
    PositionRequest,
    PositionResponse,
    StatsResponse,
)
from pixelwall.services.postgres_store import PostgresRectangleStore
from pixelwall.services.rectangle_store import InMemoryRectangleStore, RectangleStore
from pixelwall.services.reservation_service import MSG_NO_SPACE, ReservationService
from pixelwall.websockets.websockets import WSManager
from pixelwall.websockets.websockets import router as websocket_router


def build_store() -> RectangleStore:
    if config.STORE_BACKEND == "memory":
        return InMemoryRectangleStore(lock_timeout=config.RESERVATION_LOCK_TIMEOUT)
    return PostgresRectangleStore(
        config.get_db_dsn_kwargs(),
        minconn=config.DB_POOL_MIN,
        maxconn=config.DB_POOL_MAX,
        lock_timeout=config.RESERVATION_LOCK_TIMEOUT,
    )


def get_service(request: Request) -> ReservationService:
    return request.app.state.reservation_service


def get_ws_manager(request: Request) -> WSManager:
    return request.app.state.ws_manager


# -----------------------------
#  ADS (HTTP API)
# -----------------------------
ads_router = APIRouter(prefix="/api/ads", tags=["ads"])


@ads_router.get("", response_model=list[AdResponse])
async def list_ads(service: ReservationService = Depends(get_service)):
    ads = await run_in_threadpool(service.list_active)
    return [AdResponse.from_ad(ad) for ad in ads]


@ads_router.get("/stats", response_model=StatsResponse)
async def get_stats(service: ReservationService = Depends(get_service)):
    stats = await run_in_threadpool(service.stats)
    return StatsResponse.from_stats(stats)


@ads_router.get("/{ad_id}", response_model=AdResponse)
async def get_ad(ad_id: int, service: ReservationService = Depends(get_service)):
    ad = await run_in_threadpool(service.get, ad_id)
    return AdResponse.from_ad(ad)


@ads_router.post("/check-availability", response_model=AvailabilityResponse)
async def check_availability(
    body: AvailabilityRequest,
    service: ReservationService = Depends(get_service),
):
    result = await run_in_threadpool(
        service.check_availability, body.x, body.y, body.width, body.height
    )
    return AvailabilityResponse(available=result.available, message=result.reason)


@ads_router.post("/find-position", response_model=PositionResponse)
async def find_position(
    body: PositionRequest,
    service: ReservationService = Depends(get_service),
):
    position = await run_in_threadpool(service.find_position, body.width, body.height)
    if position is None:
        raise NotFoundError(MSG_NO_SPACE)
    return PositionResponse.from_position(position)


@ads_router.post("", response_model=AdResponse, status_code=status.HTTP_201_CREATED)
async def create_ad(
    body: AdCreateSchema,
    service: ReservationService = Depends(get_service),
    ws_manager: WSManager = Depends(get_ws_manager),
):
    payload = body.to_payload()
    if body.has_position:
        ad = await run_in_threadpool(
            service.reserve_explicit, body.x, body.y, body.width, body.height, payload
        )
    else:
        ad = await run_in_threadpool(service.reserve_auto, body.width, body.height, payload)

    response = AdResponse.from_ad(ad)
    await ws_manager.broadcast_ad_created(response)
    return response


@ads_router.patch("/{ad_id}", response_model=AdResponse)
async def update_ad(
    ad_id: int,
    body: AdUpdateSchema,
    service: ReservationService = Depends(get_service),
    ws_manager: WSManager = Depends(get_ws_manager),
):
    ad = await run_in_threadpool(service.update, ad_id, body.to_fields())
    response = AdResponse.from_ad(ad)
    await ws_manager.broadcast_ad_updated(response)
    return response


@ads_router.delete("/{ad_id}", response_model=DeleteResponse)
async def delete_ad(
    ad_id: int,
    service: ReservationService = Depends(get_service),
    ws_manager: WSManager = Depends(get_ws_manager),
):
    deleted = await run_in_threadpool(service.soft_delete, ad_id)
    if not deleted:
        raise NotFoundError(f"Ad {ad_id} not found")
    await ws_manager.broadcast_ad_removed(ad_id)
    return DeleteResponse(success=True, message="Ad deleted successfully")


# -----------------------------
#  APP
# -----------------------------
def create_app(store: RectangleStore | None = None) -> FastAPI:
    """
    Builds the application around a store.
    The store is opened on startup and closed on shutdown.
    """
    configure_logging(config.LOG_LEVEL)

    store = store if store is not None else build_store()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.open()
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="Pixel Wall Backend", lifespan=lifespan)
    app.state.store = store
    app.state.reservation_service = ReservationService(
        store,
        max_retries=config.RESERVATION_MAX_RETRIES,
    )
    app.state.ws_manager = WSManager()

    @app.api_route("/health", methods=["GET", "HEAD"])
    def health():
        return {"status": "ok"}

    # CORS (to be narrowed per deployment through CORS_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(ads_router)
    app.include_router(websocket_router)
    return app


app = create_app()
