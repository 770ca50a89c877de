"""Domain models for messaging and checkout."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class Participant(CamelModel):
    """Conversation participant."""

    id: str
    name: str = ""
    avatar: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None


class Message(CamelModel):
    """Message model. Immutable once stored except for the read flag."""

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    sender_id: str
    sender_name: str = ""
    sender_avatar: Optional[str] = None
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_read: bool = False
    type: MessageType = MessageType.TEXT


class Conversation(CamelModel):
    """Conversation between a fixed set of participants."""

    id: UUID = Field(default_factory=uuid4)
    participants: List[Participant] = []
    last_message: Optional[Message] = None
    unread_counts: Dict[str, int] = {}  # keyed by participant id
    is_typing: bool = False
    archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def participant_ids(self) -> List[str]:
        return [p.id for p in self.participants]

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids()

    def unread_count_for(self, user_id: str) -> int:
        return self.unread_counts.get(user_id, 0)


class CartItem(CamelModel):
    """Checkout line item. Exists only for the duration of a request."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str
    price: float = Field(default=0, ge=0, allow_inf_nan=False)
    quantity: int = Field(default=0, ge=0)


class CheckoutRequest(CamelModel):
    items: List[CartItem] = []


class MentorSession(BaseModel):
    """Bookable mentor session as stored in the ``mentor_sessions`` table."""

    id: str
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    price: float = Field(default=0, ge=0, allow_inf_nan=False)


class MentorPaymentRequest(CamelModel):
    mentor_session_id: str = Field(min_length=1)


class MentorCheckoutRequest(CamelModel):
    mentor_session_id: str = Field(min_length=1)
    customer_email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ActivateMentorRequest(CamelModel):
    user_id: str = Field(min_length=1)


class OpenConversationRequest(CamelModel):
    target_user_id: str = Field(min_length=1)
    target_name: Optional[str] = None


class MessageCreate(CamelModel):
    """Defines the structure for message creation requests"""

    content: str
    type: MessageType = MessageType.TEXT

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be blank")
        return value
