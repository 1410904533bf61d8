"""
Tests for the change feed and per-user snapshot filtering.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import status

from app.db.subscriptions import ChangeFeed, sort_newest_first
from app.routes import realtime
from app.services.realtime_service import LiveSession, visible_records


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_subscriber_gets_initial_and_changed_snapshots(store):
    feed = ChangeFeed()
    received = []
    store.seed("projects", {"id": "P1", "title": "a"})

    unsubscribe = feed.subscribe_to_collection("projects", received.append)
    await _settle()
    store.seed("projects", {"id": "P2", "title": "b"})
    await feed.dispatch("projects")

    assert [len(snapshot) for snapshot in received] == [1, 2]

    unsubscribe()
    await feed.dispatch("projects")
    assert len(received) == 2


@pytest.mark.asyncio
async def test_unknown_collection_subscription_is_a_noop(store):
    feed = ChangeFeed()

    unsubscribe = feed.subscribe_to_collection("payments", lambda rows: None)

    assert unsubscribe() is None


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_other_subscribers(store):
    feed = ChangeFeed()
    received = []

    def broken(rows):
        raise RuntimeError("render failed")

    feed.subscribe_to_collection("projects", broken)
    feed.subscribe_to_collection("projects", received.append)
    await _settle()

    await feed.dispatch("projects")

    assert len(received) == 2


@pytest.mark.asyncio
async def test_notification_subscription_is_user_scoped_newest_first(store):
    feed = ChangeFeed()
    received = []
    store.seed(
        "notifications",
        {"id": "n1", "userId": "u1", "createdAt": "2026-01-01T00:00:00+00:00"},
        {"id": "n2", "userId": "u1", "createdAt": "2026-02-01T00:00:00+00:00"},
        {"id": "n3", "userId": "u2", "createdAt": "2026-03-01T00:00:00+00:00"},
    )

    feed.subscribe_to_user_notifications("u1", received.append)
    await _settle()

    assert [row["id"] for row in received[0]] == ["n2", "n1"]


def test_sort_newest_first_puts_undated_last():
    rows = [{"id": "a"}, {"id": "b", "createdAt": "2026-01-01"}]
    assert [r["id"] for r in sort_newest_first(rows)] == ["b", "a"]


@pytest.mark.asyncio
async def test_partner_sees_no_foreign_billing_details(store, user_factory):
    partner = user_factory("u1")
    rows = [
        {"id": "u1", "bankAccountInfo": "mine", "invoiceNumber": "T1"},
        {"id": "u2", "bankAccountInfo": "theirs", "invoiceNumber": "T2", "name": "B"},
    ]

    visible = await visible_records(partner, "users", rows)

    assert visible[0]["bankAccountInfo"] == "mine"
    assert visible[1] == {"id": "u2", "name": "B"}


@pytest.mark.asyncio
async def test_partner_sees_only_own_invoices_and_project_messages(store, user_factory):
    partner = user_factory("u1")
    store.seed(
        "projects",
        {"id": "P1", "assignedToUserId": "u1"},
        {"id": "P2", "assignedToUserId": "u2"},
    )

    invoices = await visible_records(partner, "invoices", [{"id": "i1", "userId": "u1"}, {"id": "i2", "userId": "u2"}])
    messages = await visible_records(
        partner,
        "messages",
        [
            {"id": "m1", "projectId": "P1", "senderId": "admin"},
            {"id": "m2", "projectId": "P2", "senderId": "admin"},
            {"id": "m3", "senderId": "admin", "receiverId": "u1"},
            {"id": "m4", "senderId": "admin", "receiverId": "u2"},
        ],
    )

    assert [r["id"] for r in invoices] == ["i1"]
    assert [r["id"] for r in messages] == ["m1", "m3"]


@pytest.mark.asyncio
async def test_admin_sees_everything(user_factory):
    rows = [{"id": "i1", "userId": "u2"}]
    assert await visible_records(user_factory("admin", role="ADMIN"), "invoices", rows) == rows


@pytest.mark.asyncio
async def test_live_session_queues_filtered_snapshots(store, user_factory, monkeypatch):
    feed = ChangeFeed()
    monkeypatch.setattr("app.services.realtime_service.change_feed", feed)
    store.seed("invoices", {"id": "i1", "userId": "u1"}, {"id": "i2", "userId": "u2"})

    session = LiveSession(user_factory("u1"))
    session.open()
    await _settle()

    events = {}
    while not session.queue.empty():
        event = session.queue.get_nowait()
        events[event["collection"]] = event["records"]

    assert [r["id"] for r in events["invoices"]] == ["i1"]
    assert events["notifications"] == []

    session.close()
    await feed.dispatch("invoices")
    assert session.queue.empty()


def test_subscription_outside_event_loop_is_not_kept(store):
    feed = ChangeFeed()

    unsubscribe = feed.subscribe_to_collection("projects", lambda rows: None)

    assert unsubscribe() is None
    assert feed.status()["subscribers"] == 0


@pytest.mark.asyncio
async def test_initial_delivery_task_is_held_until_done(store):
    feed = ChangeFeed()
    received = []

    feed.subscribe_to_collection("projects", received.append)
    assert len(feed._deliveries) == 1

    await _settle()

    assert received == [[]]
    assert feed._deliveries == set()


class _Socket:
    """Just enough of a WebSocket for the live endpoint."""

    def __init__(self):
        self.accepted = False
        self.closed_with = None
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        self.closed_with = code

    async def receive_text(self):
        await asyncio.Event().wait()

    async def send_json(self, data):
        self.sent.append(data)


class _Queue:
    def __init__(self):
        self.waiting = False
        self.cancelled = False

    async def get(self):
        self.waiting = True
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class _Session:
    def __init__(self, user):
        self.user = user
        self.queue = _Queue()
        self.closed = False

    def open(self):
        pass

    def close(self):
        self.closed = True


def _claims_off_loop(calls: list):
    def verify(token):
        try:
            asyncio.get_running_loop()
            calls.append("event-loop")
        except RuntimeError:
            calls.append("worker-thread")
        return {"sub": "auth-1", "email": "u1@example.com"}

    return verify


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", [{"status": "PENDING"}, {"jobPortalEnabled": False}])
async def test_live_stream_refuses_restricted_callers(monkeypatch, user_factory, fields):
    calls = []
    monkeypatch.setattr(realtime, "verify_jwt", _claims_off_loop(calls))
    monkeypatch.setattr(realtime, "resolve_user", AsyncMock(return_value=user_factory("u5", **fields)))
    socket = _Socket()

    await realtime.live_updates(socket, token="t")

    assert socket.closed_with == status.WS_1008_POLICY_VIOLATION
    assert socket.accepted is False
    assert calls == ["worker-thread"]


@pytest.mark.asyncio
async def test_live_stream_cancels_pending_read_when_torn_down(monkeypatch, user_factory):
    sessions = []

    def open_session(user):
        sessions.append(_Session(user))
        return sessions[-1]

    monkeypatch.setattr(realtime, "verify_jwt", _claims_off_loop([]))
    monkeypatch.setattr(realtime, "resolve_user", AsyncMock(return_value=user_factory("u1")))
    monkeypatch.setattr(realtime, "LiveSession", open_session)
    socket = _Socket()

    stream = asyncio.create_task(realtime.live_updates(socket, token="t"))
    for _ in range(200):
        if sessions and sessions[0].queue.waiting:
            break
        await asyncio.sleep(0.01)
    assert socket.accepted is True

    stream.cancel()
    with pytest.raises(asyncio.CancelledError):
        await stream
    await _settle()

    assert sessions[0].queue.cancelled is True
    assert sessions[0].closed is True
