"""
Relay-side connection handle
"""
import uuid
from typing import Optional


class Connection:
    """
    Transport handle seen by the registry and the protocol engine

    Subclasses deliver frames; the registry only ever calls send/close and
    reads/writes the `room_key` back-reference.
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.connection_id = connection_id or uuid.uuid4().hex[:12]
        self.room_key: Optional[str] = None
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.close_code is None

    def send(self, message: dict) -> bool:
        """Queue a message; False when the connection is no longer open"""
        raise NotImplementedError

    def close(self, code: int = 1000, reason: str = "") -> None:
        """Begin closing; idempotent"""
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.connection_id} room={self.room_key}>"
