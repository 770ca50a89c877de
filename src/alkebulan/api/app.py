"""
FastAPI Application Module

Server side of The New Alkebulan web app: the messaging core used by the
messenger page, the marketplace checkout handlers, and a handful of small
service endpoints.

Key Features:
- Conversations resolved or created per participant pair, with signaling
  channel discovery for WebRTC calls
- Embedded (PaymentIntent) and redirect (Checkout Session) Stripe checkout
- Mentor session payments (embedded and hosted) priced from the database
- Mentor role activation through the Supabase admin API
- Social platform OAuth redirects and CSP violation reporting
- Structured logging, Prometheus metrics and OpenTelemetry tracing

Provider clients are built from explicit ``Settings`` by FastAPI dependencies,
so tests swap them through ``app.dependency_overrides``.
"""

import hmac
import json
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Type, TypeVar
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from ..config import Settings, get_default_settings
from ..domain.errors import (
    AppError,
    AuthorizationError,
    NotFoundError,
    ProviderNotConfigured,
    ValidationError,
)
from ..domain.models import (
    ActivateMentorRequest,
    CheckoutRequest,
    Conversation,
    MentorCheckoutRequest,
    MentorPaymentRequest,
    MentorSession,
    Message,
    MessageCreate,
    OpenConversationRequest,
    Participant,
)
from ..domain.selection import ConversationSelector
from ..logging_config import configure_logging
from ..realtime.signaling import rtc_configuration, signaling_channel_name
from ..repositories.base import ConversationRepository
from ..repositories.memory import InMemoryRepository
from ..repositories.mentor_sessions import MentorSessionRepository, SupabaseMentorSessions
from ..services.identity import IdentityService, SupabaseIdentityService
from ..services.payments import CheckoutService, PaymentGateway, StripeGateway
from ..services.social_auth import SocialAuthService, SocialPlatform

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

# Core operational metrics for monitoring
REQUESTS = Counter(
    "requests_total", "Total requests by endpoint", ["endpoint"], registry=CUSTOM_REGISTRY
)
ERRORS = Counter(
    "errors_total", "Total errors by endpoint", ["endpoint"], registry=CUSTOM_REGISTRY
)
PROCESSING_TIME = Counter(
    "processing_time_seconds",
    "Total processing time by endpoint",
    ["endpoint"],
    registry=CUSTOM_REGISTRY,
)

DEFAULT_APP_URL = "http://localhost:3000"

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_logger()


def get_settings(request: Request) -> Settings:
    """Returns the settings the app was built with"""
    return request.app.state.settings


def get_repository(request: Request) -> ConversationRepository:
    """Returns the conversation storage instance"""
    return request.app.state.repository


def _require_gateway(gateway: Optional[PaymentGateway]) -> PaymentGateway:
    if gateway is None:
        logger.error("stripe_not_configured")
        raise ProviderNotConfigured("Stripe not configured")
    return gateway


def get_optional_payment_gateway(
    settings: Settings = Depends(get_settings),
) -> Optional[PaymentGateway]:
    """Returns the Stripe gateway, or None when no secret key is configured"""
    if not settings.stripe_secret_key:
        return None
    return StripeGateway(settings.stripe_secret_key, settings.stripe_api_version)


def get_payment_gateway(
    gateway: Optional[PaymentGateway] = Depends(get_optional_payment_gateway),
) -> PaymentGateway:
    """Returns the Stripe gateway, failing before the request body is read if unconfigured"""
    return _require_gateway(gateway)


def get_checkout_service(
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutService:
    return CheckoutService(gateway)


def get_mentor_sessions(request: Request) -> Optional[MentorSessionRepository]:
    """Returns the mentor session store, or None when Supabase is not configured"""
    store = getattr(request.app.state, "mentor_sessions", None)
    if store is not None:
        return store
    settings: Settings = request.app.state.settings
    if not settings.supabase_url or not settings.supabase_anon_key:
        return None
    store = SupabaseMentorSessions(settings.supabase_url, settings.supabase_anon_key)
    request.app.state.mentor_sessions = store
    return store


def get_identity_service(request: Request) -> Optional[IdentityService]:
    """Returns the Supabase identity service, or None when it is not configured"""
    settings: Settings = request.app.state.settings
    if not settings.supabase_url or not settings.supabase_service_role_key:
        return None
    service = getattr(request.app.state, "identity_service", None)
    if service is None:
        service = SupabaseIdentityService(settings.supabase_url, settings.supabase_service_role_key)
        request.app.state.identity_service = service
    return service


def get_social_auth(settings: Settings = Depends(get_settings)) -> SocialAuthService:
    return SocialAuthService(settings)


def get_current_user(x_user_id: Optional[str] = Header(None, alias="x-user-id")) -> Participant:
    """Identifies the acting user; session authentication happens upstream"""
    if not x_user_id:
        raise AuthorizationError("Missing user")
    return Participant(id=x_user_id)


def require_service_key(
    x_service_key: Optional[str] = Header(None, alias="x-service-key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Checks the shared server secret on privileged endpoints"""
    expected = settings.supabase_service_role_key
    if not expected or not x_service_key or not hmac.compare_digest(x_service_key, expected):
        logger.warning("service_key_rejected", provided=x_service_key is not None)
        raise AuthorizationError()


async def _conversation_for_user(
    repository: ConversationRepository, conversation_id: UUID, user: Participant
) -> Conversation:
    conversation = await repository.get_conversation(conversation_id)
    if not conversation or not conversation.has_participant(user.id):
        raise NotFoundError("Conversation not found")
    return conversation


async def _parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """Reads a JSON body once the route's dependency checks have passed"""
    try:
        data = await request.json()
    except ValueError:
        logger.warning("request_body_not_json", path=request.url.path)
        raise ValidationError("Invalid payload")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors())


async def _mentor_session_or_404(
    store: Optional[MentorSessionRepository], session_id: str
) -> MentorSession:
    if store is None:
        logger.error("supabase_not_configured")
        raise ProviderNotConfigured("Supabase not configured")
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError("Mentor session not found")
    return session


def _base_url(settings: Settings, request: Request) -> str:
    return settings.app_url or request.headers.get("origin") or DEFAULT_APP_URL


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[ConversationRepository] = None,
    mentor_sessions: Optional[MentorSessionRepository] = None,
) -> FastAPI:
    """Builds the application around explicit settings and storage"""
    settings = settings or get_default_settings()
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handles app startup/shutdown"""
        logger.info("application_startup_complete")
        yield
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="The New Alkebulan API",
        description="Messaging, checkout and account services for The New Alkebulan",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository or InMemoryRepository()
    app.state.mentor_sessions = mentor_sessions

    # Enable cross-origin requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests and records per-endpoint metrics"""
        logger.info("request_started", path=request.url.path, method=request.method)
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("request_failed", path=request.url.path, error=str(e))
            ERRORS.labels(endpoint=request.url.path).inc()
            raise

        route = request.scope.get("route")
        endpoint = getattr(route, "path", "unmatched")
        REQUESTS.labels(endpoint=endpoint).inc()
        PROCESSING_TIME.labels(endpoint=endpoint).inc(time.time() - start_time)
        if response.status_code >= 500:
            ERRORS.labels(endpoint=endpoint).inc()
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
            for error in exc.errors()
        ]
        logger.warning("request_validation_failed", path=request.url.path, errors=len(details))
        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"error": ValidationError.error, "details": details},
        )

    # Checkout

    @app.post("/api/checkout-intent")
    async def create_checkout_intent(
        request: Request,
        checkout: CheckoutService = Depends(get_checkout_service),
    ) -> Dict[str, Any]:
        """Creates a PaymentIntent for the cart total, or reports a free order"""
        payload = await _parse_body(request, CheckoutRequest)
        try:
            outcome = await checkout.create_intent(payload.items)
            return outcome.to_body()
        except AppError:
            raise
        except Exception as e:
            logger.error("checkout_intent_error", error=str(e))
            raise AppError("Stripe error")

    @app.post("/api/checkout")
    async def create_checkout_session(
        request: Request,
        settings: Settings = Depends(get_settings),
        checkout: CheckoutService = Depends(get_checkout_service),
    ) -> Dict[str, Any]:
        """Creates a hosted checkout session and returns its redirect URL"""
        payload = await _parse_body(request, CheckoutRequest)
        try:
            url = await checkout.create_session(payload.items, _base_url(settings, request))
            return {"url": url}
        except AppError:
            raise
        except Exception as e:
            logger.error("checkout_session_error", error=str(e))
            raise AppError("Stripe error")

    @app.post("/api/mentor/create-payment-intent")
    async def create_mentor_payment_intent(
        request: Request,
        store: Optional[MentorSessionRepository] = Depends(get_mentor_sessions),
        gateway: Optional[PaymentGateway] = Depends(get_optional_payment_gateway),
    ) -> Dict[str, Any]:
        """Creates a PaymentIntent priced from the stored mentor session"""
        payload = await _parse_body(request, MentorPaymentRequest)
        session = await _mentor_session_or_404(store, payload.mentor_session_id)
        checkout = CheckoutService(_require_gateway(gateway))
        try:
            outcome = await checkout.create_mentor_intent(session)
        except AppError:
            raise
        except Exception as e:
            logger.error("mentor_intent_error", mentor_session_id=session.id, error=str(e))
            raise AppError("Stripe error")
        return outcome.to_body()

    @app.post("/api/mentor/checkout")
    async def create_mentor_checkout(
        request: Request,
        user: Participant = Depends(get_current_user),
        settings: Settings = Depends(get_settings),
        store: Optional[MentorSessionRepository] = Depends(get_mentor_sessions),
        gateway: Optional[PaymentGateway] = Depends(get_optional_payment_gateway),
    ) -> Dict[str, Any]:
        """Creates a hosted checkout session for booking a mentor session"""
        payload = await _parse_body(request, MentorCheckoutRequest)
        session = await _mentor_session_or_404(store, payload.mentor_session_id)
        checkout = CheckoutService(_require_gateway(gateway))
        try:
            url = await checkout.create_mentor_session(
                session,
                user.id,
                _base_url(settings, request),
                customer_email=payload.customer_email,
            )
        except AppError:
            raise
        except Exception as e:
            logger.error("mentor_checkout_error", mentor_session_id=session.id, error=str(e))
            raise AppError("Stripe error")
        logger.info("mentor_checkout_created", mentor_session_id=session.id, user_id=user.id)
        return {"url": url}

    # Service endpoints

    @app.post("/api/csp-report", status_code=204)
    async def csp_report(request: Request) -> Response:
        """Logs a browser security-policy violation report"""
        body = await request.body()
        try:
            report: Any = json.loads(body) if body else None
        except ValueError:
            report = body.decode("utf-8", errors="replace")
        logger.warning("csp_violation", report=report)
        return Response(status_code=204)

    @app.post("/api/roles/activate-mentor", dependencies=[Depends(require_service_key)])
    async def activate_mentor(
        payload: ActivateMentorRequest,
        identity: Optional[IdentityService] = Depends(get_identity_service),
    ) -> Dict[str, Any]:
        """Grants the mentor role to a user"""
        if identity is None:
            logger.error("supabase_not_configured")
            raise ProviderNotConfigured("Supabase not configured")
        try:
            user = await identity.activate_mentor(payload.user_id)
        except AppError:
            raise
        except Exception as e:
            logger.error("activate_mentor_error", user_id=payload.user_id, error=str(e))
            raise AppError("Server error")
        logger.info("mentor_activated", user_id=payload.user_id)
        return {"ok": True, "user": user}

    @app.get("/api/auth/{platform}")
    async def social_auth_redirect(
        platform: str,
        social_auth: SocialAuthService = Depends(get_social_auth),
    ) -> Response:
        """Redirects to the platform's OAuth consent page"""
        parsed = SocialPlatform.parse(platform)
        if parsed is None:
            raise ValidationError("Unsupported platform")
        try:
            url = social_auth.get_auth_url(parsed)
        except Exception as e:
            logger.error("social_auth_error", platform=platform, error=str(e))
            raise AppError("Authentication failed")
        return RedirectResponse(url, status_code=307)

    # Messaging

    @app.get("/api/conversations", response_model=List[Conversation])
    async def list_conversations(
        limit: int = 100,
        offset: int = 0,
        archived: bool = False,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> List[Conversation]:
        """Gets the user's conversations, most recent first"""
        try:
            return await repository.list_conversations(
                user.id, limit=limit, offset=offset, archived=archived
            )
        except Exception as e:
            logger.error("list_conversations_error", error=str(e))
            raise AppError("Failed to list conversations")

    @app.post("/api/conversations/open", response_model=Conversation)
    async def open_conversation(
        payload: OpenConversationRequest,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Conversation:
        """Resolves or creates the conversation with a target user"""
        selector = ConversationSelector(repository, user)
        try:
            return await selector.resolve(payload.target_user_id, payload.target_name)
        except AppError:
            raise
        except Exception as e:
            logger.error("open_conversation_error", error=str(e))
            raise AppError("Failed to open conversation")

    @app.get("/api/conversations/{conversation_id}", response_model=Conversation)
    async def get_conversation(
        conversation_id: UUID,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Conversation:
        """Gets one conversation the user takes part in"""
        return await _conversation_for_user(repository, conversation_id, user)

    @app.get("/api/conversations/{conversation_id}/messages", response_model=List[Message])
    async def get_messages(
        conversation_id: UUID,
        limit: int = 100,
        offset: int = 0,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> List[Message]:
        """Gets paginated message history for a conversation"""
        await _conversation_for_user(repository, conversation_id, user)
        try:
            return await repository.get_messages(conversation_id, limit=limit, offset=offset)
        except ValueError:
            raise NotFoundError("Conversation not found")

    @app.post("/api/conversations/{conversation_id}/messages", response_model=Message)
    async def send_message(
        conversation_id: UUID,
        message: MessageCreate,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Message:
        """Stores a message from the acting user"""
        conversation = await _conversation_for_user(repository, conversation_id, user)
        sender = next(p for p in conversation.participants if p.id == user.id)
        try:
            stored = await repository.add_message(
                Message(
                    conversation_id=conversation_id,
                    sender_id=sender.id,
                    sender_name=sender.name,
                    sender_avatar=sender.avatar,
                    content=message.content,
                    type=message.type,
                )
            )
        except ValueError:
            raise NotFoundError("Conversation not found")
        except Exception as e:
            logger.error("send_message_error", conversation_id=str(conversation_id), error=str(e))
            raise AppError("Failed to send message")

        logger.info(
            "message_sent",
            conversation_id=str(conversation_id),
            content_length=len(message.content),
        )
        return stored

    @app.post("/api/conversations/{conversation_id}/read")
    async def mark_conversation_read(
        conversation_id: UUID,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Dict[str, Any]:
        """Marks messages from other participants as read"""
        await _conversation_for_user(repository, conversation_id, user)
        updated = await repository.mark_read(conversation_id, user.id)
        return {"ok": True, "updated": updated}

    @app.post("/api/conversations/{conversation_id}/archive", response_model=Conversation)
    async def archive_conversation(
        conversation_id: UUID,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Conversation:
        """Moves the conversation to the archived list"""
        await _conversation_for_user(repository, conversation_id, user)
        return await repository.set_archived(conversation_id, True)

    @app.get("/api/conversations/{conversation_id}/signaling")
    async def get_signaling_config(
        conversation_id: UUID,
        user: Participant = Depends(get_current_user),
        repository: ConversationRepository = Depends(get_repository),
    ) -> Dict[str, Any]:
        """Channel name and peer connection settings for a call in this conversation"""
        await _conversation_for_user(repository, conversation_id, user)
        return {
            "channel": signaling_channel_name(str(conversation_id)),
            "rtcConfiguration": rtc_configuration(),
        }

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
