import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..gateway import order_gateway
from ..tracking import TrackingSession
from ..utils.routing import compute_route

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

KEEPALIVE_SECONDS = 30


@router.websocket("/ws/orders/{order_id}")
async def track_order(websocket: WebSocket, order_id: str):
    """Run a tracking session for the order and stream its state as JSON"""
    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()
    session = TrackingSession(
        order_id,
        order_gateway.fetch_order,
        order_gateway.fetch_courier_location,
        compute_route,
        on_update=updates.put_nowait
    )
    session.start()

    async def sender():
        while True:
            state = await updates.get()
            await websocket.send_text(state.model_dump_json(by_alias=True))

    sender_task = asyncio.create_task(sender())

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
                if data == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_text("ping")
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("Tracking websocket error for %s: %s", order_id, e)
    finally:
        sender_task.cancel()
        await asyncio.gather(sender_task, return_exceptions=True)
        await session.close()
