"""User role management through the Supabase admin API."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog
from supabase import Client, create_client

from ..domain.errors import ProviderError

logger = structlog.get_logger()

MENTOR_ROLE = "mentor"


class IdentityService(ABC):
    """Abstract identity provider."""

    @abstractmethod
    async def set_role(self, user_id: str, role: str) -> Optional[Dict[str, Any]]:
        """Store a role in the user's metadata and return the updated user."""
        pass

    async def activate_mentor(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.set_role(user_id, MENTOR_ROLE)


class SupabaseIdentityService(IdentityService):
    """Role updates via a service-role Supabase client."""

    def __init__(self, url: str, service_role_key: str, client: Optional[Client] = None):
        self._client = client or create_client(url, service_role_key)

    async def set_role(self, user_id: str, role: str) -> Optional[Dict[str, Any]]:
        try:
            response = await asyncio.to_thread(
                self._client.auth.admin.update_user_by_id,
                user_id,
                {"user_metadata": {"role": role}},
            )
        except Exception as e:
            logger.error("role_update_failed", user_id=user_id, role=role, error=str(e))
            raise ProviderError(str(e) or "Server error") from e

        logger.info("role_updated", user_id=user_id, role=role)
        user = response.user
        return user.model_dump(mode="json") if user is not None else None
