"""
Pairing credential models
"""
from pydantic import BaseModel, ConfigDict, Field


class PairingCredential(BaseModel):
    """Shared room secret; with code-as-identity pairing both fields hold the normalized code"""
    model_config = ConfigDict(frozen=True)

    slide_id: str = Field(..., min_length=1, description="Room name")
    password: str = Field(..., min_length=1, description="Room password")

    def join_message(self, create_room: bool = False) -> dict:
        """Wire `join` message for this credential"""
        message = {"type": "join", "slideId": self.slide_id, "password": self.password}
        if create_room:
            message["createRoom"] = True
        return message


class PairingSession(BaseModel):
    """Freshly generated pairing code and the credential derived from it"""
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Display form, dashed every 4 characters")
    credential: PairingCredential
