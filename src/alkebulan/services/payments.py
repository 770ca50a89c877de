"""Checkout payments backed by Stripe.

Two flows are supported:

- Embedded checkout: the server computes the cart total itself and creates a
  PaymentIntent, returning its client secret for confirmation in the browser.
- Redirect checkout: the server creates a hosted Checkout Session from the
  cart lines and returns the URL to redirect to.

Mentor bookings use the same two flows for a single stored session, priced
from the database row rather than the client.

Every provider call is attempted once; there are no retries at this layer.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import stripe
import structlog

from ..domain.errors import MinimumAmountError, ProviderError
from ..domain.models import CartItem, MentorSession

logger = structlog.get_logger()

# Stripe's minimum charge for USD
MIN_CHARGE_CENTS = 50
CURRENCY = "usd"


def to_minor_units(amount: Decimal) -> int:
    """Converts a dollar amount to cents, rounding half up"""
    return int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_amount_cents(items: Iterable[CartItem]) -> int:
    """Total charge for a cart in cents, never negative."""
    total = sum(
        (Decimal(str(item.price)) * item.quantity for item in items),
        Decimal(0),
    )
    return max(0, to_minor_units(total))


def session_amount_cents(session: MentorSession) -> int:
    return max(0, to_minor_units(Decimal(str(session.price))))


@dataclass
class PaymentIntentResult:
    id: str
    client_secret: Optional[str]
    amount_cents: int


@dataclass
class IntentOutcome:
    """Result of the embedded checkout flow."""

    free: bool = False
    client_secret: Optional[str] = None
    amount_cents: int = 0

    def to_body(self) -> Dict[str, Any]:
        if self.free:
            return {"free": True}
        return {"clientSecret": self.client_secret}


@dataclass
class SessionLineItem:
    name: str
    unit_amount_cents: int
    quantity: int
    currency: str = CURRENCY
    description: Optional[str] = None

    def to_stripe(self) -> Dict[str, Any]:
        product_data = {"name": self.name}
        if self.description:
            product_data["description"] = self.description
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": product_data,
                "unit_amount": self.unit_amount_cents,
            },
            "quantity": self.quantity,
        }


class PaymentGateway(ABC):
    """Abstract payment provider."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = CURRENCY,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentResult:
        """Create a provider-side payment intent."""
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        line_items: List[SessionLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Create a hosted checkout session and return its redirect URL."""
        pass


class StripeGateway(PaymentGateway):
    """Stripe implementation. Credentials are passed per request, not set globally."""

    def __init__(self, api_key: str, api_version: str = "2024-06-20"):
        self._api_key = api_key
        self._api_version = api_version

    def _request_options(self) -> Dict[str, str]:
        return {"api_key": self._api_key, "stripe_version": self._api_version}

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = CURRENCY,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentResult:
        start_time = time.time()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency,
                payment_method_types=["card"],
                metadata=metadata or {},
                **self._request_options(),
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_payment_intent_failed",
                amount_cents=amount_cents,
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )
            raise ProviderError(e.user_message or "Stripe error") from e

        logger.info(
            "stripe_payment_intent_created",
            payment_intent_id=intent.id,
            amount_cents=amount_cents,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return PaymentIntentResult(
            id=intent.id,
            client_secret=intent.client_secret,
            amount_cents=amount_cents,
        )

    async def create_checkout_session(
        self,
        line_items: List[SessionLineItem],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [item.to_stripe() for item in line_items],
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        if metadata:
            params["metadata"] = metadata
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        start_time = time.time()
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                **params,
                **self._request_options(),
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_checkout_session_failed",
                line_items=len(line_items),
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )
            raise ProviderError(e.user_message or "Stripe error") from e

        logger.info(
            "stripe_checkout_session_created",
            session_id=session.id,
            line_items=len(line_items),
            duration_ms=(time.time() - start_time) * 1000,
        )
        return session.url


@dataclass
class CheckoutService:
    """Cart checkout policies on top of a payment gateway."""

    gateway: PaymentGateway
    min_charge_cents: int = MIN_CHARGE_CENTS
    intent_metadata: Dict[str, str] = field(
        default_factory=lambda: {"source": "embedded_checkout"}
    )

    async def create_intent(self, items: List[CartItem]) -> IntentOutcome:
        return await self._charge(
            compute_amount_cents(items), dict(self.intent_metadata), items=len(items)
        )

    async def _charge(
        self, amount_cents: int, metadata: Dict[str, str], **log_fields: Any
    ) -> IntentOutcome:
        if amount_cents == 0:
            logger.info("checkout_free", **log_fields)
            return IntentOutcome(free=True)

        if amount_cents < self.min_charge_cents:
            logger.warning(
                "checkout_below_minimum",
                amount_cents=amount_cents,
                min_charge_cents=self.min_charge_cents,
            )
            raise MinimumAmountError(min_amount=self.min_charge_cents / 100)

        intent = await self.gateway.create_payment_intent(
            amount_cents, currency=CURRENCY, metadata=metadata
        )
        return IntentOutcome(client_secret=intent.client_secret, amount_cents=amount_cents)

    async def create_mentor_intent(self, session: MentorSession) -> IntentOutcome:
        """Embedded payment for a single mentor session, priced from the stored row."""
        return await self._charge(
            session_amount_cents(session),
            {"mentor_session_id": session.id},
            mentor_session_id=session.id,
        )

    async def create_mentor_session(
        self,
        session: MentorSession,
        user_id: str,
        base_url: str,
        customer_email: Optional[str] = None,
    ) -> str:
        """Hosted checkout for a mentor session; one Stripe session per user and booking."""
        description = None
        if session.start_time is not None:
            description = session.start_time.strftime("%d %b %Y %H:%M %Z").strip()

        base_url = base_url.rstrip("/")
        return_url = f"{base_url}/mentor/book/{quote(session.id, safe='')}"
        return await self.gateway.create_checkout_session(
            [
                SessionLineItem(
                    name=session.title or "Mentor Session",
                    unit_amount_cents=session_amount_cents(session),
                    quantity=1,
                    description=description,
                )
            ],
            success_url=f"{return_url}?payment=success&cs_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{return_url}?payment=cancelled",
            customer_email=customer_email,
            metadata={"mentor_session_id": session.id, "user_id": user_id},
            idempotency_key=f"cs:{user_id}:{session.id}",
        )

    async def create_session(self, items: List[CartItem], base_url: str) -> str:
        """Creates a hosted checkout session from per-item prices"""
        line_items = [
            SessionLineItem(
                name=item.name,
                unit_amount_cents=to_minor_units(Decimal(str(item.price))),
                quantity=item.quantity,
            )
            for item in items
        ]
        base_url = base_url.rstrip("/")
        return await self.gateway.create_checkout_session(
            line_items,
            success_url=f"{base_url}/marketplace?success=true",
            cancel_url=f"{base_url}/checkout?canceled=true",
        )
