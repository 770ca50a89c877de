"""Shared fixtures and provider fakes."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from alkebulan.api.app import create_app, get_identity_service, get_optional_payment_gateway
from alkebulan.config import Settings
from alkebulan.domain.models import MentorSession
from alkebulan.repositories.mentor_sessions import InMemoryMentorSessions
from alkebulan.services.identity import IdentityService
from alkebulan.services.payments import PaymentGateway, PaymentIntentResult, SessionLineItem


class FakeGateway(PaymentGateway):
    """Records provider calls instead of reaching Stripe."""

    def __init__(self, error: Optional[Exception] = None):
        self.intents: List[Dict[str, Any]] = []
        self.sessions: List[Dict[str, Any]] = []
        self.error = error

    async def create_payment_intent(self, amount_cents, currency="usd", metadata=None):
        if self.error:
            raise self.error
        self.intents.append(
            {"amount_cents": amount_cents, "currency": currency, "metadata": metadata}
        )
        return PaymentIntentResult(
            id=f"pi_{len(self.intents)}",
            client_secret=f"pi_{len(self.intents)}_secret",
            amount_cents=amount_cents,
        )

    async def create_checkout_session(
        self,
        line_items: List[SessionLineItem],
        success_url: str,
        cancel_url: str,
        customer_email=None,
        metadata=None,
        idempotency_key=None,
    ) -> str:
        if self.error:
            raise self.error
        self.sessions.append(
            {
                "line_items": line_items,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "customer_email": customer_email,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        return f"https://checkout.stripe.test/c/{len(self.sessions)}"


class FakeIdentity(IdentityService):
    def __init__(self, error: Optional[Exception] = None):
        self.roles: Dict[str, str] = {}
        self.error = error

    async def set_role(self, user_id, role):
        if self.error:
            raise self.error
        self.roles[user_id] = role
        return {"id": user_id, "user_metadata": {"role": role}}


SERVICE_KEY = "service-role-secret"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_123",
        app_url="https://alkebulan.test",
        site_url="https://alkebulan.test",
        supabase_url="https://project.supabase.test",
        supabase_service_role_key=SERVICE_KEY,
        instagram_client_id="ig-client",
        facebook_client_id="fb-client",
        linkedin_client_id="li-client",
        tiktok_client_key=None,
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def mentor_sessions() -> InMemoryMentorSessions:
    return InMemoryMentorSessions(
        [
            MentorSession(
                id="ms-1",
                title="Career Mapping",
                start_time=datetime(2026, 11, 3, 15, 30, tzinfo=timezone.utc),
                price=45,
            ),
            MentorSession(id="ms-free", title="Intro Call", price=0),
            MentorSession(id="ms-cheap", title=None, price=0.25),
        ]
    )


@pytest.fixture
def app(settings, gateway, identity, mentor_sessions):
    application = create_app(settings, mentor_sessions=mentor_sessions)
    application.dependency_overrides[get_optional_payment_gateway] = lambda: gateway
    application.dependency_overrides[get_identity_service] = lambda: identity
    return application
