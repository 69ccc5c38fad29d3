# backend/pixelwall/websockets/websockets.py

from typing import Any, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from loguru import logger
from starlette.concurrency import run_in_threadpool

from pixelwall.schemas.schemas import AdResponse

router = APIRouter()

PROTOCOL_VERSION = 1


class WSManager:
    """
    Keeps the connected /ws/ads clients and pushes wall changes to them.
    One manager per application (app.state.ws_manager).
    """

    def __init__(self) -> None:
        self.clients: Set[WebSocket] = set()

    async def register(self, ws: WebSocket) -> None:
        await ws.accept()
        self.clients.add(ws)
        logger.debug(f"[WS] ads client connected ({len(self.clients)})")

    async def send_snapshot(self, ws: WebSocket, snapshot: list[AdResponse]) -> None:
        # sent after register, so it replaces any event that overtook it
        await ws.send_json(
            {"v": PROTOCOL_VERSION, "type": "ads_snapshot", "data": jsonable_encoder(snapshot)}
        )

    def unregister(self, ws: WebSocket) -> None:
        self.clients.discard(ws)
        logger.debug(f"[WS] ads client disconnected ({len(self.clients)})")

    async def broadcast(self, event_type: str, data: Any) -> None:
        payload = {"v": PROTOCOL_VERSION, "type": event_type, "data": jsonable_encoder(data)}
        dead = []
        for ws in list(self.clients):
            try:
                await ws.send_json(payload)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"[WS] send failed: {e}")
                dead.append(ws)

        for ws in dead:
            self.unregister(ws)

    async def broadcast_ad_created(self, ad: AdResponse) -> None:
        await self.broadcast("ad_created", ad)

    async def broadcast_ad_updated(self, ad: AdResponse) -> None:
        await self.broadcast("ad_updated", ad)

    async def broadcast_ad_removed(self, ad_id: int) -> None:
        await self.broadcast("ad_removed", {"id": ad_id})


@router.websocket("/ws/ads")
async def websocket_ads(ws: WebSocket):
    service = ws.app.state.reservation_service
    manager: WSManager = ws.app.state.ws_manager

    # join the feed before reading the wall so no change falls in between
    await manager.register(ws)
    try:
        ads = await run_in_threadpool(service.list_active)
        await manager.send_snapshot(ws, [AdResponse.from_ad(ad) for ad in ads])

        # the feed is one-way; reading only notices the disconnect
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.unregister(ws)
