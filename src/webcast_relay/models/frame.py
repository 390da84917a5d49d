"""
Decoded wire frame models.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class SubMessage(BaseModel):
    type: str
    binary: bytes = b""
    decoded: Optional[dict[str, Any]] = None  # None when unknown or undecodable


class WebsocketParam(BaseModel):
    name: str = ""
    value: str = ""


class ResponseContainer(BaseModel):
    messages: list[SubMessage] = Field(default_factory=list)
    cursor: str = ""
    fetch_interval_ms: int = 0
    server_timestamp: int = 0
    ws_params: Optional[WebsocketParam] = None


class DecodedFrame(BaseModel):
    ack_id: int = 0
    kind: str = ""
    container: Optional[ResponseContainer] = None
