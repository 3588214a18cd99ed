"""
Relay protocol engine

One RelaySession per socket. The transport feeds every inbound frame to
`handle`; the session validates it and drives the RoomRegistry. Handling is
synchronous, so a frame is fully applied (registry mutation plus outbound
queueing) before the next one is looked at.
"""
from enum import Enum
from typing import Optional, Union

from powerslides.core.exceptions import MalformedMessageError, NoPublisherError, RelayError
from powerslides.core.logger import setup_logger
from powerslides.models.messages import (
    CommandMessage,
    JoinMessage,
    MESSAGE_TYPES,
    StateMessage,
    decode_frame,
    parse_message,
)
from powerslides.models.room import Room
from powerslides.services.connection import Connection
from powerslides.services.room_registry import RoomRegistry

logger = setup_logger(__name__)

# RFC 6455 policy violation
CLOSE_POLICY_VIOLATION = 1008


class SessionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class RelaySession:
    """Per-connection message state machine"""

    def __init__(self, registry: RoomRegistry, connection: Connection):
        self.registry = registry
        self.connection = connection
        self.state = SessionState.UNJOINED
        # Granted by a join with createRoom=true
        self.can_publish = False

    @property
    def room(self) -> Optional[Room]:
        return self.registry.room_for(self.connection)

    @property
    def is_publishing(self) -> bool:
        room = self.room
        return room is not None and room.is_publisher(self.connection)

    def handle(self, raw: Union[str, bytes]) -> None:
        """Apply one inbound frame"""
        if self.state == SessionState.CLOSED:
            return

        try:
            data = decode_frame(raw)
        except MalformedMessageError as e:
            logger.debug(f"[{self.connection.connection_id}] dropped frame: {e}")
            return

        message_type = data.get("type")
        if message_type not in MESSAGE_TYPES:
            logger.debug(f"[{self.connection.connection_id}] dropped unknown message type {message_type!r}")
            return

        if message_type != "join" and self.state != SessionState.JOINED:
            self._close(MalformedMessageError(f"{message_type} before join"))
            return

        try:
            message = parse_message(data)
        except MalformedMessageError as e:
            if message_type == "join":
                self._close(e)
            else:
                logger.debug(f"[{self.connection.connection_id}] dropped {message_type}: {e}")
            return

        if isinstance(message, JoinMessage):
            self._on_join(message)
        elif isinstance(message, StateMessage):
            self._on_state(data)
        elif isinstance(message, CommandMessage):
            self._on_command(data)

    def close(self) -> None:
        """Transport closed: leave the room and stop handling frames"""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.registry.leave(self.connection)

    def _on_join(self, message: JoinMessage):
        try:
            room = self.registry.get_or_create(
                message.room_name,
                message.room_password,
                create=message.create_room,
            )
        except RelayError as e:
            self._close(e)
            return

        self.can_publish = self.can_publish or message.create_room
        self.state = SessionState.JOINED
        self.registry.join(room, self.connection)

    def _on_state(self, data: dict):
        if not self.can_publish:
            logger.warning(f"[{self.connection.connection_id}] dropped state from a subscriber")
            return
        room = self.room
        if room is None:
            return
        delivered = self.registry.publish(room, self.connection, data)
        logger.debug(f"[{self.connection.connection_id}] state broadcast to {delivered} member(s)")

    def _on_command(self, data: dict):
        room = self.room
        if room is None:
            return
        try:
            self.registry.forward_command(room, data)
        except NoPublisherError:
            logger.info(f"[{self.connection.connection_id}] command dropped: no publisher")
            return
        logger.debug(f"[{self.connection.connection_id}] command {data['payload'].get('type')} forwarded")

    def _close(self, error: RelayError):
        logger.warning(f"[{self.connection.connection_id}] closing connection: {type(error).__name__} {error}")
        self.connection.close(CLOSE_POLICY_VIOLATION, error.close_reason)
        self.close()
