"""
Connection session models.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    GIVEN_UP = "given_up"


class Cookie(BaseModel):
    name: str
    value: str


class Credentials(BaseModel):
    """Output of the credential-acquisition step for one username."""
    socket_url: str
    cookies: list[Cookie] = Field(default_factory=list)
    room_id: Optional[str] = None


class ConnectionSession(BaseModel):
    username: str
    state: SessionState = SessionState.IDLE
    socket_url: Optional[str] = None
    cookies: dict[str, str] = Field(default_factory=dict)
    room_id: Optional[str] = None
    reconnect_attempt: int = 0
    should_reconnect: bool = False


def normalize_username(username: str) -> str:
    return username.strip().lower().replace("@", "")
