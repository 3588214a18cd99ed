"""
Remote controller client (wearable companion side)
"""
import asyncio
import time
from typing import Callable, Optional, Union

from powerslides.config import settings
from powerslides.core.exceptions import ConfigurationError, SocketUnreadyError
from powerslides.core.logger import setup_logger
from powerslides.models.messages import command_message
from powerslides.models.pairing import PairingCredential
from powerslides.models.presentation import Command, CommandType, StateSnapshot, normalize_state
from powerslides.services.pairing import create_command_id, parse_pairing_code
from powerslides.services.peers.reconnect import ReconnectController

logger = setup_logger(__name__)

CONNECTION_FAILED_MESSAGE = "Connection to the presenter failed. Check your network or pair again."


class RemoteController:
    """Subscriber side of a relay room: renders the latest state and issues commands"""

    def __init__(
        self,
        url: Optional[str] = None,
        on_state: Optional[Callable[[StateSnapshot], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        loading_timeout: Optional[float] = None,
        source_name: Optional[str] = None,
        connector: Optional[Callable] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url or settings.WEBSOCKET_URL
        self.on_state = on_state
        self.on_error = on_error
        self.loading_timeout = settings.COMMAND_LOADING_TIMEOUT if loading_timeout is None else loading_timeout
        self.source_name = source_name or settings.COMMAND_SOURCE
        self.connector = connector
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock

        self.credential: Optional[PairingCredential] = None
        self.state: Optional[StateSnapshot] = None
        # User-facing connection failure, cleared by the next state
        self.error: Optional[str] = None
        self.loading = False
        self.socket: Optional[ReconnectController] = None
        self._loading_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_ready(self) -> bool:
        return self.socket is not None and self.socket.is_ready

    async def pair(self, code: str) -> PairingCredential:
        """
        Join the room behind a typed pairing code

        Raises:
            InvalidCodeError / ExpiredCodeError: shown to the user as-is
        """
        credential = parse_pairing_code(code, now=self.clock())
        await self.connect(credential)
        return credential

    async def connect(self, credential: PairingCredential):
        """
        Join a room as a subscriber; reconnects until disconnect()

        Raises:
            ConfigurationError: no relay URL configured
        """
        await self.disconnect()
        try:
            socket = ReconnectController(
                self.url,
                on_open=self._send_join,
                on_message=self._on_message,
                on_close=self._on_close,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                connector=self.connector,
                name="controller",
            )
        except ConfigurationError as e:
            self._set_error(str(e))
            raise
        self.credential = credential
        self.socket = socket
        self._start_loading_wait("connect")
        socket.connect()

    async def disconnect(self):
        """Drop the socket, state and any loading guard"""
        self._stop_loading()
        if self.socket is not None:
            await self.socket.disconnect()
            self.socket = None
        if self.credential is not None:
            logger.info("[controller] pairing cleared")
        self.credential = None
        self.state = None
        self.error = None

    async def refresh(self):
        """Re-join to have the relay redeliver the last known state"""
        logger.info("[controller] refresh requested")
        self._start_loading_wait("refresh")
        await self._send_join()

    async def send_command(self, command_type: Union[CommandType, str]) -> Optional[Command]:
        """Issue a command; skipped while unready or while a previous command is in flight"""
        command_type = CommandType(command_type)
        if not self.is_ready:
            logger.info(f"[controller] command skipped: socket not ready ({command_type.value})")
            return None
        if self.loading:
            logger.info(f"[controller] command skipped: loading in progress ({command_type.value})")
            return None

        self._start_loading_wait(f"command:{command_type.value}")
        command = Command(
            id=create_command_id(),
            type=command_type,
            at=int(self.clock() * 1000),
            from_=self.source_name,
        )
        try:
            await self.socket.send(command_message(command))
        except SocketUnreadyError as e:
            logger.info(f"[controller] {e}")
            return None
        logger.info(f"[controller] command sent: {command_type.value}")
        return command

    async def next_slide(self) -> Optional[Command]:
        return await self.send_command(CommandType.NEXT)

    async def previous_slide(self) -> Optional[Command]:
        return await self.send_command(CommandType.PREVIOUS)

    async def open_present(self) -> Optional[Command]:
        return await self.send_command(CommandType.OPEN_PRESENT)

    async def start_presentation(self) -> Optional[Command]:
        return await self.send_command(CommandType.START_PRESENTATION)

    def presentation_duration_ms(self, now: Optional[float] = None) -> Optional[int]:
        """Milliseconds since the presenter started presenting, None before that"""
        started_at = self.state.presentation_started_at if self.state is not None else None
        if not started_at:
            return None
        now_ms = (self.clock() if now is None else now) * 1000
        return int(now_ms - started_at)

    async def _send_join(self):
        if self.credential is None or self.socket is None:
            return
        try:
            await self.socket.send(self.credential.join_message())
        except SocketUnreadyError as e:
            logger.info(f"[controller] join skipped: {e}")

    def _on_message(self, data: dict):
        if data.get("type") != "state":
            return
        snapshot = normalize_state(data.get("payload"))
        if snapshot is None:
            return
        logger.debug(f"[controller] state received: {snapshot.current}/{snapshot.total}")
        self.state = snapshot
        self.error = None
        self._stop_loading()
        if self.on_state:
            self.on_state(snapshot)

    def _on_close(self, error: Optional[Exception]):
        logger.info(f"[controller] relay connection lost: {error or 'closed by relay'}")
        self._stop_loading()
        self._set_error(CONNECTION_FAILED_MESSAGE)

    def _set_error(self, message: str):
        self.error = message
        if self.on_error:
            self.on_error(message)

    def _start_loading_wait(self, reason: str):
        logger.debug(f"[controller] waiting for state ({reason})")
        self.loading = True
        if self._loading_handle is not None:
            self._loading_handle.cancel()
        self._loading_handle = asyncio.get_running_loop().call_later(
            self.loading_timeout, self._loading_timed_out, reason
        )

    def _loading_timed_out(self, reason: str):
        self._loading_handle = None
        logger.info(f"[controller] loading timeout waiting for state ({reason})")
        self.loading = False

    def _stop_loading(self):
        self.loading = False
        if self._loading_handle is not None:
            self._loading_handle.cancel()
            self._loading_handle = None
