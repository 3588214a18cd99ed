"""
WebSocket relay endpoint module
"""
import asyncio
import json
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from powerslides.config import settings
from powerslides.core.logger import setup_logger
from powerslides.services.connection import Connection
from powerslides.services.relay import RelaySession
from powerslides.services.room_registry import RoomRegistry

logger = setup_logger(__name__)

router = APIRouter(tags=["relay"])

_CLOSE = object()

# RFC 6455 "try again later"
CLOSE_TRY_AGAIN_LATER = 1013


class WebSocketConnection(Connection):
    """Connection backed by a FastAPI WebSocket and a bounded FIFO outbound queue"""

    def __init__(self, websocket: WebSocket, max_queued: Optional[int] = None):
        super().__init__()
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(
            maxsize=settings.OUTBOX_MAX_SIZE if max_queued is None else max_queued
        )

    def send(self, message: dict) -> bool:
        if not self.is_open:
            logger.debug(f"[{self.connection_id}] socket not ready, drop {message.get('type')}")
            return False
        if self.outbox.full():
            logger.warning(f"[{self.connection_id}] outbound queue full, closing slow connection")
            self.close(CLOSE_TRY_AGAIN_LATER, "Too slow")
            return False
        self.outbox.put_nowait(json.dumps(message))
        return True

    def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.is_open:
            return
        super().close(code, reason)
        # A full outbox means the reader stalled; its pending frames are abandoned
        if self.outbox.full():
            while not self.outbox.empty():
                self.outbox.get_nowait()
        self.outbox.put_nowait(_CLOSE)

    async def run_writer(self):
        """Drain the outbox in order until a close is queued"""
        while True:
            item = await self.outbox.get()
            if item is _CLOSE:
                break
            try:
                await self.websocket.send_text(item)
            except Exception as e:
                logger.debug(f"[{self.connection_id}] send failed: {e}")
                super().close(1006, "send failed")
                return

        if (self.websocket.client_state == WebSocketState.CONNECTED
                and self.websocket.application_state == WebSocketState.CONNECTED):
            try:
                await self.websocket.close(code=self.close_code, reason=self.close_reason or None)
            except Exception as e:
                logger.debug(f"[{self.connection_id}] close failed: {e}")


def _frame_text(message: dict) -> Optional[str]:
    if message.get("text") is not None:
        return message["text"]
    if message.get("bytes") is not None:
        return message["bytes"]
    return None


async def _serve(websocket: WebSocket):
    registry: RoomRegistry = websocket.app.state.registry

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    session = RelaySession(registry, connection)
    writer = asyncio.create_task(connection.run_writer())
    logger.info(f"✅ connection opened: {connection.connection_id}")

    try:
        while connection.is_open:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                connection.close(message.get("code", 1000))
                break
            frame = _frame_text(message)
            if frame is None:
                continue
            session.handle(frame)
    except WebSocketDisconnect:
        connection.close(1000)
    finally:
        session.close()
        connection.close(1000)
        await writer
        logger.info(f"❌ connection closed: {connection.connection_id} ({connection.close_code})")


@router.websocket("/")
async def relay_root(websocket: WebSocket):
    """Relay socket at the server root"""
    await _serve(websocket)


@router.websocket("/ws")
async def relay_ws(websocket: WebSocket):
    """Relay socket at /ws"""
    await _serve(websocket)
