"""
Relay wire messages

Every frame is a UTF-8 JSON object tagged by ``type``:

- ``join``    peer -> relay, attach to a room by credential
- ``state``   both ways, publish or broadcast a :class:`StateSnapshot`
- ``command`` both ways, controller action forwarded to the publisher
"""
import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from powerslides.core.exceptions import MalformedMessageError
from powerslides.models.presentation import Command, StateSnapshot


class JoinMessage(BaseModel):
    """Room attach request; `createRoom` marks the publisher side"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["join"]
    room_key: Optional[str] = Field(default=None, alias="roomKey")
    slide_id: Optional[str] = Field(default=None, alias="slideId")
    password: Optional[str] = Field(default=None)
    create_room: bool = Field(default=False, alias="createRoom")

    @model_validator(mode="after")
    def _check_credential(self):
        if self.room_key:
            return self
        if not self.slide_id or not self.password:
            raise ValueError("join requires roomKey or slideId and password")
        return self

    @property
    def room_name(self) -> str:
        return self.room_key or self.slide_id

    @property
    def room_password(self) -> str:
        return self.room_key or self.password


class StateMessage(BaseModel):
    type: Literal["state"]
    payload: StateSnapshot


class CommandMessage(BaseModel):
    type: Literal["command"]
    payload: Command


RelayMessage = Annotated[
    Union[JoinMessage, StateMessage, CommandMessage],
    Field(discriminator="type"),
]

MESSAGE_TYPES = ("join", "state", "command")

_relay_message_adapter = TypeAdapter(RelayMessage)


def decode_frame(raw: Union[str, bytes]) -> dict:
    """Decode a text frame into a JSON object"""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessageError(f"frame is not UTF-8: {e}") from e
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError("frame is not a JSON object")
    return data


def parse_message(data: dict) -> Union[JoinMessage, StateMessage, CommandMessage]:
    """Validate a decoded frame into one of the three message variants"""
    try:
        return _relay_message_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessageError(f"invalid {data.get('type')!r} message: {e.error_count()} error(s)") from e


def state_message(snapshot: StateSnapshot) -> dict:
    return {"type": "state", "payload": snapshot.to_wire()}


def command_message(command: Command) -> dict:
    return {"type": "command", "payload": command.to_wire()}
