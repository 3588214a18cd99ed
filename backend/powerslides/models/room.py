"""
Room models
"""
from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class Room(BaseModel):
    """Relay room; owned exclusively by the RoomRegistry"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    room_key: str = Field(..., description="Room name derived from the pairing credential")
    password: str = Field(..., description="Fixed at creation")
    members: Dict[str, Any] = Field(default_factory=dict, description="connection_id -> connection")
    last_state: Optional[dict] = Field(default=None, description="Payload of the last published `state`")
    publisher: Optional[Any] = Field(default=None, exclude=True, description="Connection that last sent `state`")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation time")

    @property
    def member_count(self) -> int:
        return len(self.members)

    def is_publisher(self, connection: Any) -> bool:
        return self.publisher is not None and self.publisher is connection


class RelayStatusResponse(BaseModel):
    """Aggregate relay status; never lists room identities"""
    status: str = "running"
    service_name: str
    version: str
    rooms: int
    connections: int
