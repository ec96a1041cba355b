"""WebSocket endpoint streaming request events to connected users."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from approval_engine.schemas.auth import parse_roles
from approval_engine.services.realtime import ADMINS_CHANNEL, RealtimeEvent, get_broadcaster, user_channel
from approval_engine.services.workflow import is_admin_viewer

logger = logging.getLogger(__name__)

realtime_router = APIRouter(tags=["realtime"])


def _identity(websocket: WebSocket, header: str, query: str) -> str:
    return (websocket.headers.get(header) or websocket.query_params.get(query) or "").strip()


async def _forward(websocket: WebSocket, queue: asyncio.Queue[RealtimeEvent]) -> None:
    while True:
        event, payload = await queue.get()
        await websocket.send_json({"event": event, "data": payload})


@realtime_router.websocket("/realtime/ws")
async def realtime_ws(websocket: WebSocket) -> None:
    """Subscribe to ``user:<login>`` and, for admin viewers, the ``admins`` channel.

    Identity comes from the same headers as the HTTP API, or from the
    ``user_id`` / ``roles`` query parameters for browser clients.
    """
    login_id = _identity(websocket, "x-user-id", "user_id")
    if not login_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    roles = parse_roles(_identity(websocket, "x-roles", "roles"))
    channels = [user_channel(login_id)]
    if is_admin_viewer(roles):
        channels.append(ADMINS_CHANNEL)

    await websocket.accept()
    async with get_broadcaster().subscribe(channels) as queue:
        await websocket.send_json({"event": "ready", "data": {"channels": channels}})
        forwarder = asyncio.create_task(_forward(websocket, queue))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Realtime client %s disconnected", login_id)
        finally:
            forwarder.cancel()
            try:
                await forwarder
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("Realtime delivery to %s failed", login_id, exc_info=True)
