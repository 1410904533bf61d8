"""
Route-level tests through the FastAPI test client.

The document store and Redis are replaced by in-memory fakes; the caller is
injected by overriding `current_user`.
"""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.identity_provider import AuthBridgeError, AuthErrorCode, IdentitySession
from app.services.invoice_document_service import InvoiceGenerationError

pytestmark = pytest.mark.integration


@pytest.fixture
def client(store, fake_redis):
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def as_user(apply_auth_override):
    def _as(user):
        apply_auth_override(app, user)

    return _as


@pytest.fixture
def in_progress(store):
    store.seed(
        "projects",
        {"id": "P1", "title": "研修", "category": "LECTURER", "budget": 200000, "status": "IN_PROGRESS", "assignedToUserId": "u1"},
    )


def test_routes_require_bearer_token(client):
    response = client.get("/projects")
    assert response.status_code in (401, 403)


def test_admin_creates_project_and_partner_applies(client, as_user, admin, partner, store):
    as_user(admin)
    created = client.post(
        "/projects",
        json={"title": "AI導入支援", "category": "DX_CONSULTING", "budget": 300000, "requiredSkills": ["Python"]},
    )
    assert created.status_code == 201
    project_id = created.json()["id"]
    assert created.json()["status"] == "RECRUITING"

    as_user(partner)
    applied = client.post(f"/projects/{project_id}/applications", json={"message": "ぜひ", "quoteAmount": 150000})
    assert applied.status_code == 201
    assert applied.json()["quoteAmount"] == 150000

    duplicate = client.post(f"/projects/{project_id}/applications", json={"quoteAmount": 1})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "DUPLICATE_APPLICATION"


def test_partner_cannot_create_project(client, as_user, partner):
    as_user(partner)

    response = client.post("/projects", json={"title": "x", "category": "LECTURER", "budget": 1})

    assert response.status_code == 403


def test_pending_partner_is_limited(client, as_user, user_factory):
    as_user(user_factory("u5", status="PENDING"))

    assert client.get("/projects").status_code == 403
    assert client.get("/dashboard/partner").status_code == 403


def test_pending_partner_sees_only_own_profile(client, as_user, partner, store, user_factory):
    pending = user_factory("u5", status="PENDING")
    store.seed("users", pending.to_record())
    as_user(pending)

    assert client.get("/users/u5").status_code == 200
    assert client.get("/users/u1").status_code == 403
    assert client.get("/users/partners").status_code == 403
    assert client.get("/invoices").status_code == 403
    assert client.get("/messages/direct/admin").status_code == 403
    assert client.post("/messages/direct", json={"receiverId": "admin", "content": "こんにちは"}).status_code == 403
    assert store.rows("messages") == []


def test_profile_without_portal_access_is_refused(client, apply_auth_override, store, user_factory):
    store.seed("users", user_factory("u1", jobPortalEnabled=False).to_record())
    apply_auth_override(app)

    response = client.get("/projects")

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "ACCESS_DENIED"


def test_portal_profile_is_resolved_from_token_email(client, apply_auth_override, partner):
    apply_auth_override(app)

    response = client.get("/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == "u1"


def test_outsider_cannot_mark_project_read(client, as_user, user_factory, in_progress, store):
    store.seed(
        "messages",
        {"id": "m1", "projectId": "P1", "senderId": "admin", "content": "a", "isRead": False},
    )
    as_user(user_factory("u9"))

    response = client.post("/projects/P1/read")

    assert response.status_code == 403
    assert store.rows("messages")[0]["isRead"] is False


def test_hire_via_route(client, as_user, admin, store):
    store.seed(
        "projects",
        {"id": "P1", "title": "研修", "category": "LECTURER", "budget": 200000, "status": "RECRUITING"},
    )
    store.seed(
        "applications",
        {"id": "A1", "projectId": "P1", "userId": "u1", "status": "APPLIED", "quoteAmount": 150000},
    )
    as_user(admin)

    response = client.post("/projects/P1/hire", json={"applicationId": "A1", "partnerId": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["invoice"]["amount"] == 150000
    assert body["invoice"]["status"] == "UNBILLED"

    views = client.get("/projects/P1/applications").json()
    assert views[0]["displayStatus"] == "HIRED"


def test_hire_unknown_application_is_404(client, as_user, admin, store):
    store.seed("projects", {"id": "P1", "title": "t", "category": "LECTURER", "budget": 1, "status": "RECRUITING"})
    as_user(admin)

    response = client.post("/projects/P1/hire", json={"applicationId": "missing"})

    assert response.status_code == 404


def test_issue_invoice_returns_pdf(client, as_user, admin, partner, in_progress, monkeypatch):
    monkeypatch.setattr(
        "app.services.workflow_service.generate_invoice_document", AsyncMock(return_value=b"%PDF-1.7")
    )
    monkeypatch.setattr(
        "app.services.blob_storage.store_invoice_document", AsyncMock(return_value="https://files.example/inv.pdf")
    )
    as_user(partner)

    response = client.post("/invoices", json={"projectId": "P1", "amount": 100000})

    assert response.status_code == 201
    assert response.content == b"%PDF-1.7"
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["X-Invoice-Url"] == "https://files.example/inv.pdf"
    assert response.headers["X-Invoice-Id"] in response.headers["content-disposition"]


def test_issue_invoice_webhook_failure_is_502(client, as_user, partner, in_progress, monkeypatch):
    monkeypatch.setattr(
        "app.services.workflow_service.generate_invoice_document",
        AsyncMock(side_effect=InvoiceGenerationError("n8n connection failed: 500", status_code=500)),
    )
    as_user(partner)

    response = client.post("/invoices", json={"projectId": "P1", "amount": 100000})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "GENERATION_FAILED"


def test_ephemeral_document_is_served(client, as_user, partner, store, fake_redis):
    store.seed("invoices", {"id": "inv1", "projectId": "P1", "userId": "u1", "amount": 1, "status": "BILLED"})
    fake_redis.store["invoice-doc:inv1"] = base64.b64encode(b"%PDF-cached").decode()
    as_user(partner)

    response = client.get("/invoices/inv1/document")

    assert response.status_code == 200
    assert response.content == b"%PDF-cached"


def test_partner_lists_only_own_invoices(client, as_user, partner, store):
    store.seed(
        "invoices",
        {"id": "i1", "projectId": "P1", "userId": "u1", "amount": 1},
        {"id": "i2", "projectId": "P2", "userId": "u2", "amount": 2},
    )
    as_user(partner)

    response = client.get("/invoices")

    assert [i["id"] for i in response.json()] == ["i1"]


def test_mark_invoice_paid(client, as_user, admin, store):
    store.seed("invoices", {"id": "i1", "projectId": "P1", "userId": "u1", "amount": 100000, "status": "BILLED"})
    as_user(admin)

    response = client.put("/invoices/i1/status", json={"status": "PAID"})

    assert response.status_code == 200
    assert response.json()["status"] == "PAID"
    assert len([n for n in store.rows("notifications") if n["userId"] == "u1"]) == 1


def test_project_message_with_attachment(client, as_user, admin, partner, in_progress, monkeypatch):
    monkeypatch.setattr("app.services.blob_storage.upload", AsyncMock(return_value="https://files.example/a.pdf"))
    as_user(partner)

    response = client.post(
        "/messages/projects/P1",
        json={
            "content": "",
            "attachment": {
                "filename": "spec.pdf",
                "contentType": "application/pdf",
                "data": base64.b64encode(b"%PDF").decode(),
            },
        },
    )

    assert response.status_code == 201
    assert response.json()["attachmentType"] == "file"
    assert response.json()["attachmentUrl"] == "https://files.example/a.pdf"


def test_empty_message_is_rejected(client, as_user, partner, in_progress):
    as_user(partner)

    response = client.post("/messages/projects/P1", json={"content": "   "})

    assert response.status_code == 400


def test_notifications_read_all(client, as_user, partner, store):
    store.seed(
        "notifications",
        {"id": "n1", "userId": "u1", "title": "a", "message": "a", "isRead": False, "createdAt": "2026-01-01T00:00:00+00:00"},
    )
    as_user(partner)

    listed = client.get("/notifications").json()
    assert listed["unreadCount"] == 1

    first = client.post("/notifications/read-all").json()
    second = client.post("/notifications/read-all").json()
    assert (first["count"], second["count"]) == (1, 0)


def test_partner_profile_hides_billing_from_other_partners(client, as_user, user_factory, store):
    other = user_factory("u2", invoiceNumber="T999", bankAccountInfo='{"bankName": "x"}')
    store.seed("users", other.to_record())
    as_user(user_factory("u1"))

    response = client.get("/users/u2")

    assert response.status_code == 200
    assert "invoiceNumber" not in response.json() or response.json()["invoiceNumber"] is None


def test_approve_partner(client, as_user, admin, store, user_factory):
    store.seed("users", user_factory("u7", status="PENDING").to_record())
    as_user(admin)

    response = client.post("/users/u7/approve")

    assert response.status_code == 200
    stored = next(u for u in store.rows("users") if u["id"] == "u7")
    assert stored["status"] == "ACTIVE"
    assert stored["jobPortalEnabled"] is True


def test_approve_unknown_user_is_404(client, as_user, admin):
    as_user(admin)
    assert client.post("/users/ghost/approve").status_code == 404


def test_navigation_round_trip(client, as_user, admin):
    as_user(admin)

    client.post("/navigation/view", json={"view": "PROJECT_DETAIL", "params": {"projectId": "P1"}})
    opened = client.post("/navigation/profile", json={"userId": "u1"}).json()
    back = client.post("/navigation/back").json()

    assert opened["view"] == "PROFILE"
    assert back["view"] == "PROJECT_DETAIL"
    assert back["viewParams"] == {"projectId": "P1"}


def test_register_duplicate_email_suggests_login(client, monkeypatch):
    monkeypatch.setattr(
        "app.services.auth_service.identity_provider.sign_up",
        AsyncMock(
            side_effect=AuthBridgeError.from_provider("user_already_exists", "exists", 422, "a@example.com")
        ),
    )

    response = client.post("/auth/register", json={"email": "a@example.com", "password": "secret1", "name": "A"})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "DUPLICATE_IDENTITY"
    assert detail["action"] == "SWITCH_TO_LOGIN"


def test_login_returns_session_and_profile(client, partner, monkeypatch):
    monkeypatch.setattr(
        "app.services.auth_service.identity_provider.sign_in_with_password",
        AsyncMock(return_value=IdentitySession({"access_token": "at", "user": {"id": "auth-1", "email": "u1@example.com"}})),
    )

    response = client.post("/auth/login", json={"email": "u1@example.com", "password": "pw"})

    assert response.status_code == 200
    assert response.json()["session"]["accessToken"] == "at"
    assert response.json()["user"]["id"] == "u1"


def test_login_with_wrong_password_is_401(client, monkeypatch):
    monkeypatch.setattr(
        "app.services.auth_service.identity_provider.sign_in_with_password",
        AsyncMock(side_effect=AuthBridgeError(AuthErrorCode.INVALID_CREDENTIAL)),
    )

    response = client.post("/auth/login", json={"email": "u1@example.com", "password": "bad"})

    assert response.status_code == 401


def test_session_event_without_token_shows_login(client):
    response = client.post("/auth/session-events", json={"sessionId": "browser-1"})

    assert response.status_code == 200
    assert response.json()["outcome"] == "SHOW_LOGIN"


def test_session_event_verifies_token_off_the_event_loop(client, partner, monkeypatch):
    calls = []

    def verify(token):
        try:
            asyncio.get_running_loop()
            calls.append("event-loop")
        except RuntimeError:
            calls.append("worker-thread")
        return {"sub": "auth-1", "email": "u1@example.com"}

    monkeypatch.setattr("app.routes.auth.verify_jwt", verify)

    response = client.post(
        "/auth/session-events", json={"sessionId": "browser-1"}, headers={"Authorization": "Bearer t"}
    )

    assert response.status_code == 200
    assert response.json()["outcome"] == "SIGNED_IN"
    assert calls == ["worker-thread"]
