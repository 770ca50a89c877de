"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from ..domain.models import Conversation, Message, Participant


class ConversationRepository(ABC):
    """Abstract base class for conversation storage."""

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def list_conversations(
        self,
        user_id: str,
        limit: int = 100,
        offset: int = 0,
        archived: bool = False,
    ) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        pass

    @abstractmethod
    async def find_or_create_direct(
        self, user: Participant, other: Participant
    ) -> Conversation:
        """Return the two-party conversation for a pair, creating it if needed."""
        pass

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Add a message to a conversation."""
        pass

    @abstractmethod
    async def get_messages(
        self, conversation_id: UUID, limit: int = 100, offset: int = 0
    ) -> List[Message]:
        """Get messages for a conversation with pagination."""
        pass

    @abstractmethod
    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Mark messages from other participants read; returns how many changed."""
        pass

    @abstractmethod
    async def set_archived(self, conversation_id: UUID, archived: bool = True) -> Conversation:
        """Set the archival status flag on a conversation."""
        pass
