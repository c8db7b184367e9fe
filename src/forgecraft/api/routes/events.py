"""WebSocket stream of queue events.

Every connected UI window subscribes to the queue service's broadcaster and
receives each event as {"channel": ..., "data": ...}.
"""

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

logger = structlog.get_logger()
router = APIRouter(tags=["events"])

# Slow clients drop events instead of growing memory without bound
MAX_PENDING_EVENTS = 1000


@router.websocket("/ws/events")
async def queue_events(websocket: WebSocket):
    await websocket.accept()
    broadcaster = websocket.app.state.queue_service.broadcaster
    events: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=MAX_PENDING_EVENTS)

    def enqueue_event(channel: str, payload: Any) -> None:
        try:
            events.put_nowait({"channel": channel, "data": jsonable_encoder(payload)})
        except asyncio.QueueFull:
            logger.warning("events.dropped", channel=channel)

    async def forward_events() -> None:
        while True:
            await websocket.send_json(await events.get())

    unsubscribe = broadcaster.subscribe(enqueue_event)
    sender = asyncio.create_task(forward_events())
    logger.info("events.client_connected", listeners=broadcaster.listener_count)

    try:
        # Clients only listen; reading is how a disconnect is noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("events.client_disconnected")
    finally:
        unsubscribe()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
