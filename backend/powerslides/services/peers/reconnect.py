"""
Reconnecting relay socket shared by the presenter agent and the controller
"""
import asyncio
import json
from typing import Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from powerslides.config import settings
from powerslides.core.exceptions import ConfigurationError, SocketUnreadyError
from powerslides.core.logger import setup_logger

logger = setup_logger(__name__)


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 10.0) -> float:
    """Seconds to wait before reconnect number `attempt` (0-based)"""
    return min(base_delay * (2 ** attempt), max_delay)


class ReconnectController:
    """
    Owns at most one live socket to the relay

    After an unexpected close a reconnect is scheduled with exponential
    backoff; `on_open` runs on every successful open so the peer can re-send
    its `join`, and `on_close` hears about every unexpected close or failed
    connect. `disconnect` cancels everything until `connect` is called again.
    """

    def __init__(
        self,
        url: Optional[str],
        on_open: Optional[Callable[[], Awaitable[None]]] = None,
        on_message: Optional[Callable[[dict], None]] = None,
        on_close: Optional[Callable[[Optional[Exception]], None]] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        connector: Optional[Callable] = None,
        name: str = "peer",
    ):
        if not url:
            raise ConfigurationError("Missing WebSocket configuration.")
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.base_delay = settings.RECONNECT_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.RECONNECT_MAX_DELAY if max_delay is None else max_delay
        self.connector = connector or websockets.connect
        self.name = name

        self.ws = None
        self.attempt = 0
        self.active = False
        self._session_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_ready(self) -> bool:
        return self.ws is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self):
        """Open the socket (no-op while a session is already running)"""
        self.active = True
        self._cancel_reconnect()
        if self._session_task is not None and not self._session_task.done():
            return
        self._session_task = asyncio.get_running_loop().create_task(self._run_session())

    async def disconnect(self):
        """Close the socket and cancel any pending reconnect"""
        self.active = False
        self._cancel_reconnect()

        ws, self.ws = self.ws, None
        if ws is not None:
            await self._close_socket(ws)

        task, self._session_task = self._session_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"[{self.name}] disconnected")

    async def send(self, message: dict):
        """
        Send one JSON message

        Raises:
            SocketUnreadyError: socket is not open
        """
        ws = self.ws
        if ws is None:
            raise SocketUnreadyError(f"socket not ready, drop {message.get('type')}")
        try:
            await ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise SocketUnreadyError(f"socket closed, drop {message.get('type')}") from e

    async def _run_session(self):
        logger.info(f"[{self.name}] connecting websocket {self.url}")
        try:
            ws = await self.connector(self.url)
        except Exception as e:
            logger.warning(f"[{self.name}] ❌ websocket connect failed: {e}")
            self._notify_close(e)
            self._schedule_reconnect()
            return

        self.ws = ws
        self.attempt = 0
        logger.info(f"[{self.name}] ✅ websocket open")

        error: Optional[Exception] = None
        try:
            if self.on_open:
                await self.on_open()
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            error = e
        except SocketUnreadyError as e:
            logger.warning(f"[{self.name}] {e}")
            error = e
        except Exception as e:
            logger.exception(f"[{self.name}] ❌ websocket session failed: {e}")
            error = e
        finally:
            if self.ws is ws:
                self.ws = None
            await self._close_socket(ws)

        logger.info(f"[{self.name}] websocket closed")
        if self.active:
            self._notify_close(error)
            self._schedule_reconnect()

    async def _close_socket(self, ws):
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"[{self.name}] socket close failed: {e}")

    def _notify_close(self, error: Optional[Exception]):
        if self.on_close is None:
            return
        try:
            self.on_close(error)
        except Exception as e:
            logger.warning(f"[{self.name}] close handler failed: {e}")

    def _dispatch(self, raw):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"[{self.name}] invalid websocket message: {e}")
            return
        if not isinstance(data, dict):
            return
        if self.on_message:
            self.on_message(data)

    def _schedule_reconnect(self):
        if not self.active:
            return
        self._cancel_reconnect()
        delay = backoff_delay(self.attempt, self.base_delay, self.max_delay)
        self.attempt += 1
        self._reconnect_handle = asyncio.get_running_loop().call_later(delay, self._reconnect)
        logger.info(f"[{self.name}] scheduled reconnect in {delay:.1f}s (attempt {self.attempt})")

    def _reconnect(self):
        self._reconnect_handle = None
        if not self.active:
            return
        self._session_task = asyncio.get_running_loop().create_task(self._run_session())

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
