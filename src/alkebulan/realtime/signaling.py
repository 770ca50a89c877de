"""WebRTC signaling over realtime broadcast channels.

Peers in a conversation exchange offer/answer/ICE messages on a broadcast
channel named ``webrtc-<conversation id>``. Peer discovery depends on that
exact name, so both sides must derive it with ``signaling_channel_name``.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()

SIGNALING_CHANNEL_PREFIX = "webrtc-"

DEFAULT_ICE_SERVERS: List[str] = [
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
]


class RealtimeClient(Protocol):
    """The subset of a realtime client used here (the Supabase async client fits)."""

    def channel(self, topic: str, params: Optional[Dict[str, Any]] = None) -> Any:
        ...

    async def remove_channel(self, channel: Any) -> None:
        ...


def signaling_channel_name(conversation_id: str) -> str:
    """Returns the broadcast channel name for a conversation"""
    if not conversation_id:
        raise ValueError("conversation_id must be a non-empty string")
    return f"{SIGNALING_CHANNEL_PREFIX}{conversation_id}"


def get_signaling_channel(client: RealtimeClient, conversation_id: str) -> Any:
    """
    Creates the signaling channel handle for a conversation.

    The channel does not echo a sender's own broadcasts back to it. Nothing is
    sent over the network here; the caller subscribes to start receiving.
    """
    name = signaling_channel_name(conversation_id)
    channel = client.channel(name, {"config": {"broadcast": {"self": False}}})
    logger.debug("signaling_channel_created", channel=name)
    return channel


async def release_signaling_channel(client: RealtimeClient, channel: Any) -> None:
    """Unsubscribes and removes a channel when a call ends or its window closes"""
    await client.remove_channel(channel)
    logger.debug("signaling_channel_released")


def rtc_configuration(ice_servers: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Peer connection configuration; supplied servers replace the defaults."""
    urls = list(ice_servers) if ice_servers is not None else list(DEFAULT_ICE_SERVERS)
    return {"iceServers": [{"urls": urls}]}


class SignalEvent(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE = "ice"
    HANGUP = "hangup"
    DECLINE = "decline"
    BUSY = "busy"


class SignalPayload(BaseModel):
    """Broadcast payload exchanged between the two call participants."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sender_id: str
    recipient_id: Optional[str] = None
    mode: Optional[str] = None  # "audio" or "video", set on offers
    offer: Optional[Dict[str, Any]] = None
    answer: Optional[Dict[str, Any]] = None
    candidate: Optional[Dict[str, Any]] = None

    def is_for(self, user_id: str) -> bool:
        return self.recipient_id == user_id

    def is_from(self, user_id: str) -> bool:
        return self.sender_id == user_id

    def to_broadcast(self, event: SignalEvent) -> Dict[str, Any]:
        """Message shape passed to a channel's ``send``"""
        return {
            "type": "broadcast",
            "event": event.value,
            "payload": self.model_dump(by_alias=True, exclude_none=True),
        }
