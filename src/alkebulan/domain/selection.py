"""Messenger selection state and conversation resolution.

The messenger view holds at most one active conversation plus an independent
mobile-sidebar flag. Both live in one immutable ``MessengerState`` so that
selecting a conversation and closing the sidebar happen in a single
transition.
"""

from dataclasses import dataclass, replace
from typing import Optional, Union

import structlog

from ..repositories.base import ConversationRepository
from .errors import ValidationError
from .models import Conversation, Participant

logger = structlog.get_logger()


@dataclass(frozen=True)
class NoSelection:
    """No conversation selected; the chat pane shows a placeholder."""


@dataclass(frozen=True)
class Selected:
    conversation_id: str


Selection = Union[NoSelection, Selected]

NO_SELECTION = NoSelection()


@dataclass(frozen=True)
class MessengerState:
    selection: Selection = NO_SELECTION
    sidebar_open: bool = False

    @property
    def selected_conversation_id(self) -> Optional[str]:
        if isinstance(self.selection, Selected):
            return self.selection.conversation_id
        return None

    @property
    def shows_placeholder(self) -> bool:
        return isinstance(self.selection, NoSelection)

    def select(self, conversation_id: str) -> "MessengerState":
        """Selects a conversation and closes the sidebar overlay."""
        return replace(self, selection=Selected(conversation_id), sidebar_open=False)

    def open_sidebar(self) -> "MessengerState":
        return replace(self, sidebar_open=True)

    def close_sidebar(self) -> "MessengerState":
        return replace(self, sidebar_open=False)


class ConversationSelector:
    """Resolves page entry parameters into a selected conversation."""

    def __init__(self, repository: ConversationRepository, current_user: Participant):
        self.repository = repository
        self.current_user = current_user

    async def resolve(self, target_user_id: str, target_name: Optional[str] = None) -> Conversation:
        """Finds or creates the direct conversation with a target user"""
        if not target_user_id:
            raise ValidationError("targetUserId is required")
        if target_user_id == self.current_user.id:
            raise ValidationError("Cannot open a conversation with yourself")

        other = Participant(id=target_user_id, name=target_name or "")
        conversation = await self.repository.find_or_create_direct(self.current_user, other)
        logger.info(
            "conversation_resolved",
            conversation_id=str(conversation.id),
            user_id=self.current_user.id,
            target_user_id=target_user_id,
        )
        return conversation

    async def enter(
        self,
        state: MessengerState,
        conversation_id: Optional[str] = None,
        target_user_id: Optional[str] = None,
    ) -> MessengerState:
        """
        Applies page entry parameters to the messenger state.
        A conversation id is selected as-is; a target user id is resolved first.
        With neither, the state is returned unchanged.
        """
        if conversation_id:
            return state.select(conversation_id)
        if target_user_id:
            conversation = await self.resolve(target_user_id)
            return state.select(str(conversation.id))
        return state
