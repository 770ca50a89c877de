"""Lookup of bookable mentor sessions."""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

import structlog
from supabase import Client, create_client

from ..domain.errors import ProviderError
from ..domain.models import MentorSession

logger = structlog.get_logger()

MENTOR_SESSION_COLUMNS = "id,title,start_time,price"


class MentorSessionRepository(ABC):
    """Read-only access to mentor sessions."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[MentorSession]:
        """Return the session with this id, or None when there is none."""
        pass


class InMemoryMentorSessions(MentorSessionRepository):
    def __init__(self, sessions: Iterable[MentorSession] = ()):
        self._sessions: Dict[str, MentorSession] = {s.id: s for s in sessions}

    def add(self, session: MentorSession) -> None:
        self._sessions[session.id] = session

    async def get_session(self, session_id: str) -> Optional[MentorSession]:
        return self._sessions.get(session_id)


class SupabaseMentorSessions(MentorSessionRepository):
    """Reads the ``mentor_sessions`` table with the public (anon) key."""

    def __init__(self, url: str, key: str, client: Optional[Client] = None):
        self._client = client or create_client(url, key)

    async def get_session(self, session_id: str) -> Optional[MentorSession]:
        query = (
            self._client.table("mentor_sessions")
            .select(MENTOR_SESSION_COLUMNS)
            .eq("id", session_id)
            .limit(1)
        )
        try:
            response = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error("mentor_session_lookup_failed", mentor_session_id=session_id, error=str(e))
            raise ProviderError(str(e) or "Server error") from e

        rows = response.data or []
        if not rows:
            logger.info("mentor_session_not_found", mentor_session_id=session_id)
            return None
        return MentorSession.model_validate(rows[0])
