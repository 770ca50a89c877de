"""In-memory repository implementation."""

import asyncio
from typing import Dict, FrozenSet, List, Optional
from uuid import UUID

import structlog

from ..domain.models import Conversation, Message, Participant
from .base import ConversationRepository

logger = structlog.get_logger()


class InMemoryRepository(ConversationRepository):
    """Async-safe in-memory conversation store."""

    def __init__(self) -> None:
        self._conversations: Dict[UUID, Conversation] = {}
        self._messages: Dict[UUID, List[Message]] = {}
        self._direct_index: Dict[FrozenSet[str], UUID] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized")

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=str(conversation_id))
            return conversation

    async def list_conversations(
        self,
        user_id: str,
        limit: int = 100,
        offset: int = 0,
        archived: bool = False,
    ) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        async with self._lock:
            conversations = sorted(
                (
                    c
                    for c in self._conversations.values()
                    if c.has_participant(user_id) and c.archived == archived
                ),
                key=lambda c: c.updated_at,
                reverse=True,
            )
            return conversations[offset : offset + limit]

    async def find_or_create_direct(
        self, user: Participant, other: Participant
    ) -> Conversation:
        """Return the two-party conversation for a pair, creating it if needed."""
        key = frozenset((user.id, other.id))
        async with self._lock:
            existing_id = self._direct_index.get(key)
            if existing_id is not None:
                return self._conversations[existing_id]

            conversation = Conversation(participants=[user, other])
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
            self._direct_index[key] = conversation.id
            logger.info(
                "conversation_created",
                conversation_id=str(conversation.id),
                participants=sorted(key),
            )
            return conversation

    async def add_message(self, message: Message) -> Message:
        """Add a message to a conversation."""
        async with self._lock:
            conversation = self._conversations.get(message.conversation_id)
            if not conversation:
                logger.error(
                    "conversation_not_found_for_message",
                    conversation_id=str(message.conversation_id),
                )
                raise ValueError(f"Conversation {message.conversation_id} not found")

            self._messages[message.conversation_id].append(message)
            conversation.last_message = message
            conversation.updated_at = message.timestamp
            for participant_id in conversation.participant_ids():
                if participant_id != message.sender_id:
                    conversation.unread_counts[participant_id] = (
                        conversation.unread_counts.get(participant_id, 0) + 1
                    )

            logger.info(
                "message_added",
                conversation_id=str(message.conversation_id),
                message_type=message.type.value,
            )
            return message

    async def get_messages(
        self, conversation_id: UUID, limit: int = 100, offset: int = 0
    ) -> List[Message]:
        """Get messages for a conversation with pagination."""
        async with self._lock:
            if conversation_id not in self._conversations:
                logger.error(
                    "conversation_not_found_for_messages",
                    conversation_id=str(conversation_id),
                )
                raise ValueError(f"Conversation {conversation_id} not found")

            messages = sorted(self._messages[conversation_id], key=lambda m: m.timestamp)
            return messages[offset : offset + limit]

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if not conversation:
                raise ValueError(f"Conversation {conversation_id} not found")

            changed = 0
            for message in self._messages[conversation_id]:
                if message.sender_id != reader_id and not message.is_read:
                    message.is_read = True
                    changed += 1
            conversation.unread_counts[reader_id] = 0
            logger.info(
                "messages_marked_read",
                conversation_id=str(conversation_id),
                count=changed,
            )
            return changed

    async def set_archived(self, conversation_id: UUID, archived: bool = True) -> Conversation:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if not conversation:
                raise ValueError(f"Conversation {conversation_id} not found")
            conversation.archived = archived
            logger.info(
                "conversation_archive_set",
                conversation_id=str(conversation_id),
                archived=archived,
            )
            return conversation
