"""
Presentation state and command models
"""
import math
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Epoch milliseconds
Timestamp = Union[int, float]


class CommandType(str, Enum):
    """Remote commands a controller can issue"""
    NEXT = "next"
    PREVIOUS = "previous"
    OPEN_PRESENT = "open_present"
    START_PRESENTATION = "start_presentation"


class StateSnapshot(BaseModel):
    """Full presentation state; every publish replaces the previous snapshot"""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    current: Optional[int] = Field(default=None, description="1-based current slide")
    total: Optional[int] = Field(default=None, description="Slide count")
    speaker_note: Optional[str] = Field(default=None, alias="speakerNote")
    title: Optional[str] = Field(default=None)
    updated_at: Optional[Timestamp] = Field(default=None, alias="updatedAt", description="Epoch ms")
    presentation_started_at: Optional[Timestamp] = Field(
        default=None, alias="presentationStartedAt", description="Epoch ms"
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class Command(BaseModel):
    """Controller-issued remote action"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = Field(default=None, description="Unique per issuance")
    type: CommandType
    at: Timestamp = Field(..., description="Issue time, epoch ms")
    from_: Optional[str] = Field(default=None, alias="from")

    @property
    def dedup_key(self) -> str:
        """Identity used for de-duplication, composite when no id was sent"""
        if self.id:
            return self.id
        at = int(self.at) if float(self.at).is_integer() else self.at
        return f"{self.type.value}:{at}:{self.from_ or ''}"

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def normalize_number(value: Any) -> Optional[Timestamp]:
    """Accept finite numbers and numeric strings, everything else is None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        return int(parsed) if parsed.is_integer() else parsed
    return None


def _normalize_int(value: Any) -> Optional[int]:
    number = normalize_number(value)
    if number is None:
        return None
    return int(number)


def normalize_state(data: Any) -> Optional[StateSnapshot]:
    """Build a snapshot from a loosely typed broadcast payload"""
    if not isinstance(data, dict):
        return None
    speaker_note = data.get("speakerNote")
    title = data.get("title")
    return StateSnapshot(
        current=_normalize_int(data.get("current")),
        total=_normalize_int(data.get("total")),
        speaker_note=speaker_note if isinstance(speaker_note, str) else None,
        title=title if isinstance(title, str) else None,
        updated_at=normalize_number(data.get("updatedAt")),
        presentation_started_at=normalize_number(data.get("presentationStartedAt")),
    )
