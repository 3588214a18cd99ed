"""
Room registry module
"""
from typing import Dict, Optional
from powerslides.models.room import Room
from powerslides.core.exceptions import NoPublisherError, PasswordMismatchError, RoomNotFoundError
from powerslides.core.logger import setup_logger
from powerslides.services.connection import Connection

logger = setup_logger(__name__)


def _label(room_key: str) -> str:
    """Short room label for logs; the key itself is the room secret"""
    return f"{room_key[:4]}…" if room_key else "-"


class RoomRegistry:
    """Creates, tracks and deletes rooms"""

    def __init__(self):
        self.rooms: Dict[str, Room] = {}

    def get_room(self, room_key: str) -> Optional[Room]:
        """Look up a room by key"""
        return self.rooms.get(room_key)

    def room_for(self, connection: Connection) -> Optional[Room]:
        """Room the connection currently belongs to"""
        if connection.room_key is None:
            return None
        return self.rooms.get(connection.room_key)

    def get_or_create(self, room_key: str, password: str, create: bool = True) -> Room:
        """
        Resolve a room for a join request

        Args:
            room_key: room name
            password: room password, fixed once the room exists
            create: whether the caller may create a missing room

        Raises:
            PasswordMismatchError: room exists with a different password
            RoomNotFoundError: room is missing and the caller may not create it
        """
        room = self.rooms.get(room_key)
        if room is not None:
            if room.password != password:
                logger.warning(f"[{_label(room_key)}] join rejected: password mismatch")
                raise PasswordMismatchError()
            return room

        if not create:
            logger.warning(f"[{_label(room_key)}] join rejected: room not found")
            raise RoomNotFoundError()

        room = Room(room_key=room_key, password=password)
        self.rooms[room_key] = room
        logger.info(f"[{_label(room_key)}] room created")
        return room

    def join(self, room: Room, connection: Connection):
        """Add a member and flush the last known state to it"""
        if connection.room_key is not None and connection.room_key != room.room_key:
            self.leave(connection)

        room.members[connection.connection_id] = connection
        connection.room_key = room.room_key
        logger.info(f"[{_label(room.room_key)}] {connection.connection_id} joined (members: {room.member_count})")

        if room.last_state is not None:
            connection.send({"type": "state", "payload": room.last_state})

    def leave(self, connection: Connection) -> bool:
        """Remove a member; the room is deleted once empty"""
        room_key = connection.room_key
        connection.room_key = None
        if room_key is None:
            return False

        room = self.rooms.get(room_key)
        if room is None:
            return False

        room.members.pop(connection.connection_id, None)
        if room.is_publisher(connection):
            room.publisher = None
            logger.info(f"[{_label(room_key)}] publisher {connection.connection_id} left")

        if not room.members:
            del self.rooms[room_key]
            logger.info(f"[{_label(room_key)}] room deleted")
        else:
            logger.info(f"[{_label(room_key)}] {connection.connection_id} left (members: {room.member_count})")
        return True

    def broadcast(self, room: Room, message: dict) -> int:
        """Send to every member; returns how many accepted it"""
        delivered = 0
        for member in list(room.members.values()):
            if member.send(message):
                delivered += 1
        return delivered

    def publish(self, room: Room, connection: Connection, message: dict) -> int:
        """Store a `state` message as the room's last state and fan it out"""
        room.last_state = message["payload"]
        room.publisher = connection
        return self.broadcast(room, message)

    def forward_command(self, room: Room, message: dict):
        """
        Deliver a `command` message to the room publisher only

        Raises:
            NoPublisherError: nobody is publishing in this room
        """
        publisher = room.publisher
        if publisher is None or not publisher.is_open:
            raise NoPublisherError()
        publisher.send(message)

    @property
    def room_count(self) -> int:
        return len(self.rooms)

    @property
    def connection_count(self) -> int:
        return sum(room.member_count for room in self.rooms.values())
