"""
Event names and the normalized DomainEvent model.
"""

from typing import Any

from pydantic import BaseModel, Field

from webcast_relay.schema import definitions as types


class WebcastEvent:
    """Domain event names emitted for decoded sub-messages."""
    CHAT = "chat"
    GIFT = "gift"
    LIKE = "like"
    MEMBER = "member"
    SOCIAL = "social"
    ROOM_USER = "roomUser"
    SUBSCRIBE = "subscribe"
    EMOTE = "emote"
    LIVE_INTRO = "liveIntro"
    QUESTION_NEW = "questionNew"
    LINK_MIC_BATTLE = "linkMicBattle"
    LINK_MIC_ARMIES = "linkMicArmies"
    ENVELOPE = "envelope"
    STREAM_END = "streamEnd"
    CONTROL_ACTION = "controlAction"
    # Social sub-events, re-emitted by the connector
    FOLLOW = "follow"
    SHARE = "share"


class ConnectorEvent:
    """Lifecycle events surfaced to connector and relay consumers."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    ERROR = "error"
    STREAM_END = "streamEnd"
    # Reply to LiveConnector.fetch_gifts, not a lifecycle event
    GIFTS_UPDATED = "giftsUpdated"


LIFECYCLE_EVENTS = frozenset({
    ConnectorEvent.CONNECTING,
    ConnectorEvent.CONNECTED,
    ConnectorEvent.DISCONNECTED,
    ConnectorEvent.RECONNECTING,
    ConnectorEvent.ERROR,
    ConnectorEvent.STREAM_END,
})

MESSAGE_TYPE_EVENTS: dict[str, str] = {
    types.CONTROL: WebcastEvent.CONTROL_ACTION,
    types.ROOM_USER_SEQ: WebcastEvent.ROOM_USER,
    types.CHAT: WebcastEvent.CHAT,
    types.MEMBER: WebcastEvent.MEMBER,
    types.GIFT: WebcastEvent.GIFT,
    types.SOCIAL: WebcastEvent.SOCIAL,
    types.LIKE: WebcastEvent.LIKE,
    types.QUESTION_NEW: WebcastEvent.QUESTION_NEW,
    types.LINK_MIC_BATTLE: WebcastEvent.LINK_MIC_BATTLE,
    types.LINK_MIC_ARMIES: WebcastEvent.LINK_MIC_ARMIES,
    types.LIVE_INTRO: WebcastEvent.LIVE_INTRO,
    types.EMOTE_CHAT: WebcastEvent.EMOTE,
    types.ENVELOPE: WebcastEvent.ENVELOPE,
    types.SUB_NOTIFY: WebcastEvent.SUBSCRIBE,
}


class DomainEvent(BaseModel):
    event_name: str
    message_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
