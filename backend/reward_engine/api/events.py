"""Push channel for check-in updates.

Forwards mirror notifications (record and balance changes) of one user to an
open WebSocket. Messages are hints to refresh; clients re-read state through
the HTTP API before acting on them.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from reward_engine.api.deps import ServicesDep
from reward_engine.ledger import paths
from reward_engine.ledger.mirror import LedgerMirror
from reward_engine.middleware.prometheus import record_ws_connection
from reward_engine.utils.json_utils import json_dumps

logger = logging.getLogger(__name__)
router = APIRouter(tags=["WebSocket"])


async def _forward(websocket: WebSocket, mirror: LedgerMirror, channels: list[str]) -> None:
    async for message in mirror.subscribe(*channels):
        await websocket.send_text(json_dumps({"type": "RECORD_UPDATED", **message}))


async def _drain(websocket: WebSocket) -> None:
    """Read until the client goes away; incoming messages are ignored."""
    while True:
        await websocket.receive_text()


@router.websocket("/ws/checkin/{game_id}/users/{user_id}")
async def checkin_events(
    websocket: WebSocket,
    game_id: str,
    user_id: str,
    services: ServicesDep,
):
    if services.mirror is None or not services.mirror.enabled:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    record_ws_connection(True)
    channels = [paths.user_channel(game_id, user_id), paths.balance(user_id)]
    tasks = [
        asyncio.create_task(_forward(websocket, services.mirror, channels)),
        asyncio.create_task(_drain(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Push channel {game_id}/{user_id} closed: {exc}")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        record_ws_connection(False)
