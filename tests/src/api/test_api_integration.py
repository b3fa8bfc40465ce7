"""
Integration tests for the AMP Tracker REST API.

Tests the full HTTP request/response cycle using httpx AsyncClient
against the actual FastAPI application. Redis and the clock are replaced
through dependency overrides; the database is an in-memory SQLite engine.
The middleware stack, auth gate, security headers, exception handlers and
response envelope are all exercised end-to-end.

Covers:
- Health endpoints (root + versioned)
- Auth gate (no token, invalid token, expired token)
- Day view (read-through cache, invalidation after writes)
- Checklist items, checklist notes, time blocks, block notes (add, delete), to-dos, wake time
- Per-user time-block overrides
- Pure time-block assignment
- Templates (read, admin-only activation)
- Admin delegation with ?user_id=
- Error envelopes (validation, not found, configuration)
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.auth import AuthService, AuthToken
from src.api.dependencies import get_cache, get_clock
from src.config.settings import reset_settings
from src.infra.database import configure_database, session_scope
from src.models.user import User
from src.services.template_store import TemplateStore


DAY = "2025-09-17"
BASE = "/api/v1"

_TEST_ENV = {
    "AMP_DEV_MODE": "1",
    "AMP_ENVIRONMENT": "development",
    "AMP_CORS_ORIGINS": "http://localhost:3000",
    "AMP_ADMIN_USER_IDS": "2",
    "AMP_DAY_CACHE_TTL": "300",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _secret() -> str:
    return os.environ["AMP_API_SECRET_KEY"]


def _make_token(user_id: int, expired: bool = False) -> str:
    """Generate a JWT token string for testing."""
    svc = AuthService(secret_key=_secret())
    if expired:
        token = AuthToken(
            user_id=user_id,
            issued_at=datetime.now(UTC) - timedelta(days=60),
            expires_at=datetime.now(UTC) - timedelta(days=1),
        )
    else:
        token = svc.generate_token(user_id=user_id)
    return svc.encode_token(token)


def _auth(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(user_id)}"}


def _item(day_view, checklist_id, item_id):
    checklist = next(c for c in day_view["checklists"] if c["checklist_id"] == checklist_id)
    return next(i for i in checklist["items"] if i["item_id"] == item_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def users(engine):
    """
    Seed templates and three users: 1 = public owner, 2 = admin, 3 = no timezone.
    """
    configure_database(engine)
    async with session_scope() as session:
        await TemplateStore(session).seed_default_templates()
        session.add_all([
            User(id=1, email="owner@example.com", timezone="America/New_York"),
            User(id=2, email="admin@example.com", timezone="Europe/Berlin"),
            User(id=3, email="notz@example.com"),
        ])
        await session.commit()
    return {"owner": 1, "admin": 2, "no_tz": 3}


@pytest.fixture()
def app(users, mock_redis, fixed_clock):
    """Create the FastAPI app with test dependencies."""
    with patch.dict(os.environ, _TEST_ENV):
        reset_settings()
        from src.api import create_app

        application = create_app()
        application.dependency_overrides[get_cache] = lambda: mock_redis
        application.dependency_overrides[get_clock] = lambda: fixed_clock
        yield application


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


# ---------------------------------------------------------------------------
# Health and auth gate
# ---------------------------------------------------------------------------


class TestHealthAndAuth:
    """Health endpoints are public; everything else requires a bearer token."""

    @pytest.mark.asyncio
    async def test_root_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_versioned_health(self, client):
        response = await client.get(f"{BASE}/health")
        assert response.status_code == 200
        assert response.json()["data"] == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get(f"{BASE}/days/{DAY}")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "AUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get(f"{BASE}/days/{DAY}", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token(self, client, users):
        token = _make_token(users["owner"], expired=True)
        response = await client.get(f"{BASE}/days/{DAY}", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.get(f"{BASE}/days/{DAY}", headers=_auth(404))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        response = await client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


# ---------------------------------------------------------------------------
# Day view and checklist items
# ---------------------------------------------------------------------------


class TestDayFlow:
    """End-to-end day operations."""

    @pytest.mark.asyncio
    async def test_empty_day(self, client, users, redis_store):
        response = await client.get(f"{BASE}/days/{DAY}", headers=_auth(users["owner"]))
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        view = body["data"]
        assert view["date"] == DAY
        assert len(view["time_blocks"]) == 18
        assert view["score"] == 0
        assert len(redis_store) == 1

    @pytest.mark.asyncio
    async def test_cached_view_is_served(self, client, users, mock_redis):
        headers = _auth(users["owner"])
        await client.get(f"{BASE}/days/{DAY}", headers=headers)
        mock_redis.set.reset_mock()
        response = await client.get(f"{BASE}/days/{DAY}", headers=headers)
        assert response.status_code == 200
        mock_redis.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_complete_and_uncomplete_item(self, client, users, fixed_clock):
        headers = _auth(users["owner"])
        await client.get(f"{BASE}/days/{DAY}", headers=headers)  # warm the cache

        url = f"{BASE}/days/{DAY}/checklists/master-checklist/items/mc-morning-001"
        response = await client.post(url, json={"text": "Morning routine"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["recorded"] is True

        again = await client.post(url, json={"text": "Morning routine"}, headers=headers)
        assert again.json()["data"]["recorded"] is False

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        item = _item(view, "master-checklist", "mc-morning-001")
        assert item["completed"] is True
        assert item["completed_at"] == fixed_clock.now().isoformat()
        assert item["block_index"] == 4

        response = await client.delete(url, headers=headers)
        assert response.json()["data"]["removed"] is True
        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        assert _item(view, "master-checklist", "mc-morning-001")["completed"] is False

    @pytest.mark.asyncio
    async def test_invalid_date(self, client, users):
        response = await client.post(
            f"{BASE}/days/2025-02-30/checklists/master-checklist/items/mc-morning-001",
            json={},
            headers=_auth(users["owner"]),
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_timezone(self, client, users):
        response = await client.post(
            f"{BASE}/days/{DAY}/checklists/master-checklist/items/mc-morning-001",
            json={},
            headers=_auth(users["no_tz"]),
        )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"

    @pytest.mark.asyncio
    async def test_checklist_notes(self, client, users):
        headers = _auth(users["owner"])
        notes_url = f"{BASE}/days/{DAY}/checklists/master-checklist/notes"

        response = await client.put(notes_url, json={"notes": "early"}, headers=headers)
        assert response.status_code == 404

        await client.post(
            f"{BASE}/days/{DAY}/checklists/master-checklist/items/mc-morning-001",
            json={},
            headers=headers,
        )
        response = await client.put(notes_url, json={"notes": "felt great"}, headers=headers)
        assert response.status_code == 200

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        master = next(c for c in view["checklists"] if c["checklist_id"] == "master-checklist")
        assert master["notes"] == "felt great"


# ---------------------------------------------------------------------------
# Time blocks, to-dos, wake time
# ---------------------------------------------------------------------------


class TestBlocksTodosWakeTime:
    """Time-block, to-do and wake-time endpoints."""

    @pytest.mark.asyncio
    async def test_toggle_block_and_note(self, client, users):
        headers = _auth(users["owner"])
        toggle = await client.post(f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/toggle", headers=headers)
        assert toggle.json()["data"]["complete"] is True

        note = await client.post(
            f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/notes",
            json={"note": "  deep work  "},
            headers=headers,
        )
        assert note.json()["data"]["stored"] is True
        assert note.json()["data"]["note"]["text"] == "deep work"

        empty = await client.post(
            f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/notes",
            json={"note": "   "},
            headers=headers,
        )
        assert empty.json()["data"]["stored"] is False

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        block = next(b for b in view["time_blocks"] if b["block_id"] == "tb-08h-001")
        assert block["complete"] is True
        assert [n["text"] for n in block["notes"]] == ["deep work"]
        assert view["score"] == 6

    @pytest.mark.asyncio
    async def test_delete_block_note(self, client, users):
        headers = _auth(users["owner"])
        notes_url = f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/notes"
        created = await client.post(notes_url, json={"note": "deep work"}, headers=headers)
        note_id = created.json()["data"]["note"]["note_id"]
        await client.get(f"{BASE}/days/{DAY}", headers=headers)  # warm the cache

        response = await client.delete(f"{notes_url}/{note_id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["deleted"] is True

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        block = next(b for b in view["time_blocks"] if b["block_id"] == "tb-08h-001")
        assert block["notes"] == []

        again = await client.delete(f"{notes_url}/{note_id}", headers=headers)
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_toggle_without_timezone(self, client, users):
        response = await client.post(
            f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/toggle", headers=_auth(users["no_tz"])
        )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"

    @pytest.mark.asyncio
    async def test_block_override(self, client, users):
        headers = _auth(users["owner"])
        await client.get(f"{BASE}/days/{DAY}", headers=headers)  # warm the cache

        response = await client.put(
            f"{BASE}/time-blocks/tb-06h-001/override", json={"label": "Gym", "time": "6:30"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"] == {
            "block_id": "tb-06h-001",
            "label": "Gym",
            "time": "06:30",
            "is_hidden": False,
        }
        await client.put(f"{BASE}/time-blocks/tb-21h-001/override", json={"hidden": True}, headers=headers)

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        block = next(b for b in view["time_blocks"] if b["block_id"] == "tb-06h-001")
        assert (block["label"], block["time"], block["is_custom"]) == ("Gym", "06:30", True)
        assert len(view["time_blocks"]) == 17

        cleared = await client.delete(f"{BASE}/time-blocks/tb-06h-001/override", headers=headers)
        assert cleared.json()["data"] == {"block_id": "tb-06h-001", "cleared": True}
        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        block = next(b for b in view["time_blocks"] if b["block_id"] == "tb-06h-001")
        assert block["label"] == "6:00 a.m."

    @pytest.mark.asyncio
    async def test_empty_override_rejected(self, client, users):
        response = await client.put(
            f"{BASE}/time-blocks/tb-06h-001/override", json={}, headers=_auth(users["owner"])
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_clear_missing_override(self, client, users):
        response = await client.delete(f"{BASE}/time-blocks/tb-06h-001/override", headers=_auth(users["owner"]))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_todos(self, client, users):
        headers = _auth(users["owner"])
        created = await client.post(f"{BASE}/days/{DAY}/todos", json={"text": "Buy milk"}, headers=headers)
        assert created.status_code == 200
        todo = created.json()["data"]
        assert todo["text"] == "Buy milk"
        assert todo["completed"] is False

        toggled = await client.post(f"{BASE}/days/{DAY}/todos/{todo['item_id']}/toggle", headers=headers)
        assert toggled.json()["data"]["completed"] is True

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        assert view["todos"][0]["completed"] is True

    @pytest.mark.asyncio
    async def test_blank_todo(self, client, users):
        response = await client.post(f"{BASE}/days/{DAY}/todos", json={"text": "   "}, headers=_auth(users["owner"]))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_todo(self, client, users):
        response = await client.post(
            f"{BASE}/days/{DAY}/todos/todo-1-1-0/toggle", headers=_auth(users["owner"])
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_wake_time(self, client, users):
        headers = _auth(users["owner"])
        response = await client.put(f"{BASE}/days/{DAY}/wake-time", json={"wake_time": "4:30"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["wake_time"] == "04:30"

        view = (await client.get(f"{BASE}/days/{DAY}", headers=headers)).json()["data"]
        assert view["wake_time"] == "04:30"

    @pytest.mark.asyncio
    async def test_invalid_wake_time(self, client, users):
        response = await client.put(
            f"{BASE}/days/{DAY}/wake-time", json={"wake_time": "25:00"}, headers=_auth(users["owner"])
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_assign_time_block(self, client, users):
        response = await client.post(
            f"{BASE}/time-blocks/assign",
            json={
                "completion_instant": "2025-09-17T08:30:00-04:00",
                "timezone": "America/New_York",
                "wake_time": "04:00",
            },
            headers=_auth(users["owner"]),
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["block_index"] == 4
        assert data["block_name"] == "8:00 a.m."
        assert data["timezone_offset_minutes"] == -240
        assert data["local_date"] == DAY

    @pytest.mark.asyncio
    async def test_assign_unknown_timezone(self, client, users):
        response = await client.post(
            f"{BASE}/time-blocks/assign",
            json={"completion_instant": "2025-09-17T12:00:00Z", "timezone": "Nowhere/City"},
            headers=_auth(users["owner"]),
        )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Admin delegation and templates
# ---------------------------------------------------------------------------


class TestAdminAndTemplates:
    """Admin-only operations."""

    @pytest.mark.asyncio
    async def test_non_admin_cannot_target_other_user(self, client, users):
        response = await client.get(
            f"{BASE}/days/{DAY}", params={"user_id": users["admin"]}, headers=_auth(users["owner"])
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_acts_on_behalf(self, client, users):
        admin_headers = _auth(users["admin"])
        params = {"user_id": users["owner"]}
        await client.post(f"{BASE}/days/{DAY}/time-blocks/tb-08h-001/toggle", params=params, headers=admin_headers)

        owner_view = (await client.get(f"{BASE}/days/{DAY}", headers=_auth(users["owner"]))).json()["data"]
        assert owner_view["role"] == "public"
        assert any(b["complete"] for b in owner_view["time_blocks"])

        admin_view = (await client.get(f"{BASE}/days/{DAY}", headers=admin_headers)).json()["data"]
        assert admin_view["role"] == "admin"
        assert not any(b["complete"] for b in admin_view["time_blocks"])

    @pytest.mark.asyncio
    async def test_get_template(self, client, users):
        response = await client.get(f"{BASE}/templates/public", headers=_auth(users["owner"]))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["role"] == "public"
        assert data["is_active"] is True

    @pytest.mark.asyncio
    async def test_unknown_role(self, client, users):
        response = await client.get(f"{BASE}/templates/guest", headers=_auth(users["owner"]))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_versions_admin_only(self, client, users):
        denied = await client.get(f"{BASE}/templates/public/versions", headers=_auth(users["owner"]))
        assert denied.status_code == 403

        allowed = await client.get(f"{BASE}/templates/public/versions", headers=_auth(users["admin"]))
        assert allowed.status_code == 200
        assert allowed.json()["data"]["total"] == 1

    @pytest.mark.asyncio
    async def test_activate_admin_only(self, client, users):
        template_id = (
            await client.get(f"{BASE}/templates/public", headers=_auth(users["owner"]))
        ).json()["data"]["template_id"]

        denied = await client.post(f"{BASE}/templates/{template_id}/activate", headers=_auth(users["owner"]))
        assert denied.status_code == 403

        allowed = await client.post(f"{BASE}/templates/{template_id}/activate", headers=_auth(users["admin"]))
        assert allowed.status_code == 200
        assert allowed.json()["data"]["is_active"] is True

    @pytest.mark.asyncio
    async def test_activate_unknown(self, client, users):
        response = await client.post(f"{BASE}/templates/9999/activate", headers=_auth(users["admin"]))
        assert response.status_code == 404
