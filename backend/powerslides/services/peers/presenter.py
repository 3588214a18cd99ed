"""
Presenter agent

Publishes the host presentation's state into the relay room and executes
remote commands forwarded by the relay. The host page itself is reached
through a SlideSource.
"""
import asyncio
import time
from collections import deque
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from powerslides.config import settings
from powerslides.core.exceptions import SocketUnreadyError
from powerslides.core.logger import setup_logger
from powerslides.models.messages import state_message
from powerslides.models.pairing import PairingSession
from powerslides.models.presentation import Command, CommandType, StateSnapshot
from powerslides.services.pairing import create_pairing_session
from powerslides.services.peers.reconnect import ReconnectController

logger = setup_logger(__name__)


class SlideSource(Protocol):
    """Host page access (slide counts, notes, title and navigation)"""

    async def get_counts(self) -> dict:
        """{"current": int | None, "total": int | None}"""
        ...

    async def get_speaker_note(self) -> Optional[str]:
        ...

    async def get_title(self) -> Optional[str]:
        ...

    async def execute(self, command: CommandType) -> None:
        """Perform next / previous / open_present on the page"""
        ...


class CommandDeduplicator:
    """Remembers the most recent command keys, oldest evicted first"""

    def __init__(self, window: int = 256):
        self.window = window
        self._order: deque = deque()
        self._seen: set = set()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, key: str):
        if key in self._seen:
            return
        self._seen.add(key)
        self._order.append(key)
        while len(self._order) > self.window:
            self._seen.discard(self._order.popleft())

    def clear(self):
        self._order.clear()
        self._seen.clear()


class PresenterAgent:
    """Publisher side of a relay room"""

    def __init__(
        self,
        source: SlideSource,
        url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        dedup_window: Optional[int] = None,
        connector: Optional[Callable] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.url = url or settings.WEBSOCKET_URL
        self.poll_interval = settings.STATE_POLL_INTERVAL if poll_interval is None else poll_interval
        self.connector = connector
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock

        self.pairing: Optional[PairingSession] = None
        self.started_at: Optional[int] = None
        self.presentation_started_at: Optional[int] = None
        self.last_state: Optional[StateSnapshot] = None
        self.seen_commands = CommandDeduplicator(
            settings.COMMAND_DEDUP_WINDOW if dedup_window is None else dedup_window
        )
        self.socket: Optional[ReconnectController] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._command_tasks: set = set()

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    @property
    def active(self) -> bool:
        return self.pairing is not None

    async def start_session(self, pairing: Optional[PairingSession] = None) -> PairingSession:
        """Start (or restart) a remote session and return its pairing code"""
        await self.stop_session()

        socket = ReconnectController(
            self.url,
            on_open=self._on_open,
            on_message=self._on_message,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            connector=self.connector,
            name="presenter",
        )
        self.pairing = pairing or create_pairing_session(now=self.clock())
        self.started_at = self._now_ms()
        self.socket = socket
        socket.connect()
        self._poll_task = asyncio.create_task(self._poll())
        logger.info(f"[presenter] session started, pairing code {self.pairing.code}")
        return self.pairing

    async def stop_session(self):
        """Stop polling, drop the socket and forget all session state"""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        for task in list(self._command_tasks):
            task.cancel()
        self._command_tasks.clear()

        if self.socket is not None:
            await self.socket.disconnect()
            self.socket = None

        if self.pairing is not None:
            logger.info("[presenter] session stopped")
        self.pairing = None
        self.started_at = None
        self.presentation_started_at = None
        self.last_state = None
        self.seen_commands.clear()

    async def publish_state(self) -> Optional[StateSnapshot]:
        """Read the host page and publish a full snapshot"""
        if self.socket is None or not self.socket.is_ready:
            logger.info("[presenter] publish skipped: socket not ready")
            return None

        counts, speaker_note, title = await asyncio.gather(
            self.source.get_counts(),
            self.source.get_speaker_note(),
            self.source.get_title(),
            return_exceptions=True,
        )
        failed = [
            name for name, result in (("counts", counts), ("notes", speaker_note), ("title", title))
            if isinstance(result, Exception)
        ]
        if failed:
            logger.warning(f"[presenter] partial state read, failed: {', '.join(failed)}")

        previous = self.last_state
        if isinstance(counts, Exception) or not isinstance(counts, dict):
            counts = {}

        def pick(value, field: str):
            if isinstance(value, Exception) or value is None:
                return getattr(previous, field) if previous is not None else None
            return value

        try:
            snapshot = StateSnapshot(
                current=pick(counts.get("current"), "current"),
                total=pick(counts.get("total"), "total"),
                speaker_note=pick(speaker_note, "speaker_note"),
                title=pick(title, "title"),
                updated_at=self._now_ms(),
                presentation_started_at=self.presentation_started_at,
            )
            await self.socket.send(state_message(snapshot))
        except SocketUnreadyError as e:
            logger.info(f"[presenter] publish skipped: {e}")
            return None
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"[presenter] state publish failed: {e}")
            return None

        self.last_state = snapshot
        logger.debug(f"[presenter] state sent (updatedAt {snapshot.updated_at})")
        return snapshot

    async def start_presentation(self, reason: str):
        """Mark the presentation start once and republish"""
        if not self.active:
            logger.warning(f"[presenter] start presentation skipped: no session ({reason})")
            return
        if self.presentation_started_at:
            return
        self.presentation_started_at = self._now_ms()
        logger.info(f"[presenter] presentation started ({reason})")
        await self.publish_state()

    def accept_command(self, payload) -> Optional[Command]:
        """De-duplicate and age-check a forwarded command; None when it must be ignored"""
        if not self.active:
            return None
        try:
            command = Command.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"[presenter] invalid command dropped: {e.error_count()} error(s)")
            return None

        key = command.dedup_key
        if key in self.seen_commands:
            logger.debug(f"[presenter] duplicate command {key} ignored")
            return None
        if command.at < self.started_at:
            logger.debug(f"[presenter] stale command {key} ignored")
            return None
        self.seen_commands.add(key)
        return command

    async def handle_command(self, command: Command):
        """Execute an accepted command and republish the resulting state"""
        logger.info(f"[presenter] command received: {command.type.value}")
        if command.type == CommandType.START_PRESENTATION:
            await self.start_presentation("remote")
            return
        try:
            await self.source.execute(command.type)
        except Exception as e:
            logger.warning(f"[presenter] command {command.type.value} failed: {e}")
        await self.publish_state()

    async def _on_open(self):
        await self.socket.send(self.pairing.credential.join_message(create_room=True))
        await self.publish_state()

    def _on_message(self, data: dict):
        if data.get("type") != "command":
            return
        command = self.accept_command(data.get("payload"))
        if command is None:
            return
        task = asyncio.get_running_loop().create_task(self.handle_command(command))
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)

    async def _poll(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.publish_state()
            except Exception as e:
                logger.warning(f"[presenter] state poll failed: {e}")
