"""Test suite for the messaging and service endpoints."""

import pytest
from fastapi.routing import APIRoute
from httpx import ASGITransport, AsyncClient

from alkebulan.api.app import create_app
from alkebulan.config import Settings
from alkebulan.domain.errors import ProviderError
from conftest import SERVICE_KEY, FakeIdentity


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(user_id: str) -> dict:
    return {"x-user-id": user_id}


async def _open(client, user_id: str, target_user_id: str) -> dict:
    response = await client.post(
        "/api/conversations/open",
        json={"targetUserId": target_user_id},
        headers=_as(user_id),
    )
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_open_conversation_is_stable_per_pair(app):
    """Test opening a chat with a user resolves to one conversation per pair."""
    async with _client(app) as client:
        first = await _open(client, "amara", "kofi")
        again = await _open(client, "amara", "kofi")
        reverse = await _open(client, "kofi", "amara")
        other = await _open(client, "amara", "zuri")

        assert first["id"] == again["id"] == reverse["id"]
        assert other["id"] != first["id"]
        assert {p["id"] for p in first["participants"]} == {"amara", "kofi"}
        assert first["archived"] is False


@pytest.mark.asyncio
async def test_open_conversation_validation(app):
    async with _client(app) as client:
        response = await client.post(
            "/api/conversations/open", json={"targetUserId": "amara"}, headers=_as("amara")
        )
        assert response.status_code == 400

        response = await client.post(
            "/api/conversations/open", json={"targetUserId": ""}, headers=_as("amara")
        )
        assert response.status_code == 400

        response = await client.post("/api/conversations/open", json={"targetUserId": "kofi"})
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_send_and_get_messages(app):
    """Test creating and retrieving messages."""
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        conversation_id = conversation["id"]

        for content in ["Habari!", "Are you coming to the market day?"]:
            response = await client.post(
                f"/api/conversations/{conversation_id}/messages",
                json={"content": content},
                headers=_as("amara"),
            )
            assert response.status_code == 200
            message = response.json()
            assert message["senderId"] == "amara"
            assert message["type"] == "text"
            assert message["isRead"] is False

        response = await client.get(
            f"/api/conversations/{conversation_id}/messages", headers=_as("kofi")
        )
        assert response.status_code == 200
        messages = response.json()
        assert [m["content"] for m in messages] == ["Habari!", "Are you coming to the market day?"]

        response = await client.get(
            f"/api/conversations/{conversation_id}/messages?limit=1&offset=1", headers=_as("kofi")
        )
        assert [m["content"] for m in response.json()] == ["Are you coming to the market day?"]

        response = await client.get(f"/api/conversations/{conversation_id}", headers=_as("kofi"))
        data = response.json()
        assert data["lastMessage"]["content"] == "Are you coming to the market day?"
        assert data["unreadCounts"] == {"kofi": 2}


@pytest.mark.asyncio
async def test_blank_message_rejected(app):
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        response = await client.post(
            f"/api/conversations/{conversation['id']}/messages",
            json={"content": "   "},
            headers=_as("amara"),
        )
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_mark_read_resets_unread(app):
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        conversation_id = conversation["id"]
        await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "Picture from the festival", "type": "image"},
            headers=_as("amara"),
        )

        response = await client.post(
            f"/api/conversations/{conversation_id}/read", headers=_as("kofi")
        )
        assert response.json() == {"ok": True, "updated": 1}

        conversation = (
            await client.get(f"/api/conversations/{conversation_id}", headers=_as("kofi"))
        ).json()
        assert conversation["unreadCounts"]["kofi"] == 0

        messages = (
            await client.get(f"/api/conversations/{conversation_id}/messages", headers=_as("kofi"))
        ).json()
        assert messages[0]["isRead"] is True
        assert messages[0]["type"] == "image"


@pytest.mark.asyncio
async def test_archive_keeps_conversation(app):
    """Test archiving moves a conversation to the archived list without deleting it."""
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        conversation_id = conversation["id"]

        response = await client.post(
            f"/api/conversations/{conversation_id}/archive", headers=_as("amara")
        )
        assert response.status_code == 200
        assert response.json()["archived"] is True

        active = (await client.get("/api/conversations", headers=_as("amara"))).json()
        archived = (
            await client.get("/api/conversations?archived=true", headers=_as("amara"))
        ).json()
        assert conversation_id not in [c["id"] for c in active]
        assert [c["id"] for c in archived] == [conversation_id]

        response = await client.get(f"/api/conversations/{conversation_id}", headers=_as("amara"))
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_conversation_hidden_from_non_participants(app):
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        conversation_id = conversation["id"]

        response = await client.get(f"/api/conversations/{conversation_id}", headers=_as("zuri"))
        assert response.status_code == 404
        assert response.json() == {"error": "Conversation not found"}

        response = await client.get(
            f"/api/conversations/{conversation_id}/messages", headers=_as("zuri")
        )
        assert response.status_code == 404

        response = await client.get(
            "/api/conversations/00000000-0000-0000-0000-000000000000", headers=_as("amara")
        )
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_conversations_most_recent_first(app):
    async with _client(app) as client:
        older = await _open(client, "amara", "kofi")
        newer = await _open(client, "amara", "zuri")
        await client.post(
            f"/api/conversations/{older['id']}/messages",
            json={"content": "bump"},
            headers=_as("amara"),
        )

        conversations = (await client.get("/api/conversations", headers=_as("amara"))).json()
        assert [c["id"] for c in conversations] == [older["id"], newer["id"]]

        conversations = (await client.get("/api/conversations", headers=_as("zuri"))).json()
        assert [c["id"] for c in conversations] == [newer["id"]]


@pytest.mark.asyncio
async def test_signaling_config(app):
    """Test a conversation exposes its signaling channel and ICE servers."""
    async with _client(app) as client:
        conversation = await _open(client, "amara", "kofi")
        response = await client.get(
            f"/api/conversations/{conversation['id']}/signaling", headers=_as("kofi")
        )
        assert response.status_code == 200
        data = response.json()
        assert data["channel"] == f"webrtc-{conversation['id']}"
        assert data["rtcConfiguration"]["iceServers"][0]["urls"]


@pytest.mark.asyncio
async def test_csp_report_logged(app):
    async with _client(app) as client:
        response = await client.post(
            "/api/csp-report",
            json={"csp-report": {"document-uri": "https://alkebulan.test/", "violated-directive": "img-src"}},
        )
        assert response.status_code == 204
        assert response.content == b""

        response = await client.post(
            "/api/csp-report",
            content=b"not json",
            headers={"content-type": "application/csp-report"},
        )
        assert response.status_code == 204


@pytest.mark.asyncio
async def test_activate_mentor(app, identity):
    """Test the mentor role is stored for an authorized request."""
    async with _client(app) as client:
        response = await client.post(
            "/api/roles/activate-mentor",
            json={"userId": "user-42"},
            headers={"x-service-key": SERVICE_KEY},
        )
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "user": {"id": "user-42", "user_metadata": {"role": "mentor"}},
        }
    assert identity.roles == {"user-42": "mentor"}


@pytest.mark.asyncio
async def test_activate_mentor_rejections(app, identity):
    async with _client(app) as client:
        response = await client.post("/api/roles/activate-mentor", json={"userId": "user-42"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

        response = await client.post(
            "/api/roles/activate-mentor",
            json={"userId": "user-42"},
            headers={"x-service-key": "wrong"},
        )
        assert response.status_code == 401

        for body in ({}, {"userId": ""}, {"userId": 42}):
            response = await client.post(
                "/api/roles/activate-mentor", json=body, headers={"x-service-key": SERVICE_KEY}
            )
            assert response.status_code == 400

    assert identity.roles == {}


@pytest.mark.asyncio
async def test_activate_mentor_misconfigured():
    app = create_app(Settings(supabase_url=None, supabase_service_role_key=SERVICE_KEY))
    async with _client(app) as client:
        response = await client.post(
            "/api/roles/activate-mentor",
            json={"userId": "user-42"},
            headers={"x-service-key": SERVICE_KEY},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Supabase not configured"}

    # No configured key means nobody is authorized
    app = create_app(Settings(supabase_url="https://x.supabase.test", supabase_service_role_key=None))
    async with _client(app) as client:
        response = await client.post(
            "/api/roles/activate-mentor", json={"userId": "user-42"}, headers={"x-service-key": ""}
        )
        assert response.status_code == 401


@pytest.mark.asyncio
async def test_activate_mentor_provider_error(app):
    from alkebulan.api.app import get_identity_service

    app.dependency_overrides[get_identity_service] = lambda: FakeIdentity(
        error=ProviderError("User not found")
    )
    async with _client(app) as client:
        response = await client.post(
            "/api/roles/activate-mentor",
            json={"userId": "missing"},
            headers={"x-service-key": SERVICE_KEY},
        )
        assert response.status_code == 500
        assert response.json() == {"error": "User not found"}


@pytest.mark.asyncio
async def test_social_auth_redirect(app):
    async with _client(app) as client:
        response = await client.get("/api/auth/instagram")
        assert response.status_code == 307
        assert response.headers["location"] == (
            "https://api.instagram.com/oauth/authorize?client_id=ig-client"
            "&redirect_uri=https%3A%2F%2Falkebulan.test%2Fauth%2Finstagram%2Fcallback"
            "&scope=user_profile,user_media&response_type=code"
        )

        response = await client.get("/api/auth/linkedin")
        assert response.status_code == 307
        assert "scope=r_liteprofile%20r_emailaddress%20w_member_social" in response.headers["location"]


@pytest.mark.asyncio
async def test_social_auth_errors(app):
    async with _client(app) as client:
        response = await client.get("/api/auth/myspace")
        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported platform"}

        # No TikTok client key configured
        response = await client.get("/api/auth/tiktok")
        assert response.status_code == 500
        assert response.json() == {"error": "Authentication failed"}


@pytest.mark.asyncio
async def test_metrics_endpoint(app):
    async with _client(app) as client:
        await client.post("/api/csp-report", json={})
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "requests_total" in response.text


def test_api_routes_are_described(app):
    """Test every API route carries an OpenAPI description."""
    routes = [r for r in app.routes if isinstance(r, APIRoute) and r.path.startswith("/api/")]
    assert routes
    assert [r.path for r in routes if not r.description] == []
