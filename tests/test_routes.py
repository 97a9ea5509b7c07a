from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import SUBSCRIPTION
from recall.web import create_app


def _soon(**kwargs) -> str:
    return (datetime.now(timezone.utc) + timedelta(**kwargs)).replace(microsecond=0).isoformat()


@pytest.fixture
def client(db_path, notifier):
    app = create_app(db_path=db_path, notifier=notifier, enable_jobs=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def headers(client):
    resp = client.post("/users", json={"email": "ada@example.com", "name": "Ada"})
    assert resp.status_code == 201
    user_id = resp.json()["user"]["id"]
    client.put(
        "/users/me/push-subscription", json=SUBSCRIPTION, headers={"X-User-Id": str(user_id)}
    )
    return {"X-User-Id": str(user_id)}


def _create(client, headers, **fields):
    body = {"title": "Standup", "trigger_time": _soon(days=1), **fields}
    resp = client.post("/reminders", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["reminder"]


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_requires_user(client):
    assert client.get("/reminders").status_code == 401
    assert client.get("/reminders", headers={"X-User-Id": "999"}).status_code == 401


def test_duplicate_email(client, headers):
    resp = client.post("/users", json={"email": "ada@example.com"})
    assert resp.status_code == 409


def test_create_and_list_reminders(client, headers):
    reminder = _create(
        client, headers, priority="high", pattern={"frequency": "daily", "time": "09:00"}
    )
    assert reminder["priority"] == "high"
    assert reminder["pattern"]["frequency"] == "daily"
    assert reminder["is_active"] is True
    assert reminder["trigger_count"] == 0

    resp = client.get("/reminders", headers=headers)
    assert resp.status_code == 200
    assert [r["title"] for r in resp.json()["reminders"]] == ["Standup"]


@pytest.mark.parametrize(
    "body",
    [
        {"title": "  ", "trigger_time": "2030-01-01T09:00:00Z"},
        {"title": "Standup"},
        {"title": "Standup", "trigger_time": "next tuesday-ish"},
        {"title": "Standup", "trigger_time": "2030-01-01T09:00:00Z", "priority": "urgent"},
        {"title": "Standup", "trigger_time": "2030-01-01T09:00:00Z", "category": "hobby"},
        {
            "title": "Standup",
            "trigger_time": "2030-01-01T09:00:00Z",
            "pattern": {"frequency": "daily", "time": "25:00"},
        },
    ],
)
def test_create_rejects_invalid(client, headers, body):
    resp = client.post("/reminders", json=body, headers=headers)
    assert resp.status_code == 422


def test_get_reminder(client, headers):
    reminder = _create(client, headers)

    resp = client.get(f"/reminders/{reminder['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["reminder"]["title"] == "Standup"

    assert client.get("/reminders/999", headers=headers).status_code == 404


def test_reminders_are_private(client, headers):
    reminder = _create(client, headers)
    other = client.post("/users", json={"email": "bob@example.com"}).json()["user"]
    other_headers = {"X-User-Id": str(other["id"])}

    assert client.get(f"/reminders/{reminder['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/reminders/{reminder['id']}", headers=other_headers).status_code == 404
    assert client.get("/reminders", headers=other_headers).json()["reminders"] == []


def test_update_reminder(client, headers):
    reminder = _create(client, headers, pattern={"frequency": "weekly"})
    new_time = _soon(days=3)

    resp = client.put(
        f"/reminders/{reminder['id']}",
        json={"title": "Weekly sync", "trigger_time": new_time, "description": None},
        headers=headers,
    )
    assert resp.status_code == 200
    updated = resp.json()["reminder"]
    assert updated["title"] == "Weekly sync"
    assert updated["trigger_time"] == new_time
    assert updated["pattern"]["frequency"] == "weekly"

    resp = client.put(f"/reminders/{reminder['id']}", json={"pattern": None}, headers=headers)
    assert resp.json()["reminder"]["pattern"] is None


def test_update_missing_reminder(client, headers):
    resp = client.put("/reminders/999", json={"title": "Nope"}, headers=headers)
    assert resp.status_code == 404


def test_toggle_reminder_updates_status(client, headers):
    reminder = _create(client, headers)
    assert client.get("/reminders/status", headers=headers).json()["active_reminders"] == 1

    client.put(f"/reminders/{reminder['id']}", json={"is_active": False}, headers=headers)
    assert client.get("/reminders/status", headers=headers).json()["active_reminders"] == 0

    client.put(f"/reminders/{reminder['id']}", json={"is_active": True}, headers=headers)
    assert client.get("/reminders/status", headers=headers).json()["active_reminders"] == 1


def test_delete_reminder(client, headers):
    reminder = _create(client, headers)

    resp = client.delete(f"/reminders/{reminder['id']}", headers=headers)
    assert resp.status_code == 200

    assert client.get(f"/reminders/{reminder['id']}", headers=headers).status_code == 404
    assert client.get("/reminders/status", headers=headers).json()["active_reminders"] == 0
    assert client.delete(f"/reminders/{reminder['id']}", headers=headers).status_code == 404


def test_manual_trigger(client, headers, notifier):
    reminder = _create(client, headers, title="Call Bob")

    resp = client.post(f"/reminders/{reminder['id']}/trigger", headers=headers)
    assert resp.status_code == 200
    fired = resp.json()["reminder"]
    assert fired["is_active"] is False
    assert fired["trigger_count"] == 1
    assert fired["completed_at"] is not None
    assert [p.title for _, p in notifier.sent] == ["Call Bob"]

    resp = client.post(f"/reminders/{reminder['id']}/trigger", headers=headers)
    assert resp.status_code == 404


def test_manual_trigger_recurring(client, headers):
    trigger_time = _soon(days=1)
    reminder = _create(
        client, headers, trigger_time=trigger_time, pattern={"frequency": "daily"}
    )

    fired = client.post(f"/reminders/{reminder['id']}/trigger", headers=headers).json()["reminder"]
    assert fired["is_active"] is True
    assert fired["trigger_time"] == _shift(trigger_time, days=1)


def _shift(iso: str, **kwargs) -> str:
    return (datetime.fromisoformat(iso) + timedelta(**kwargs)).isoformat()


def test_status(client, headers):
    resp = client.get("/reminders/status", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["notifier"] == "fake"
    assert data["notifier_configured"] is True
    assert data["user_has_push_subscription"] is True


def test_test_notification(client, headers, notifier):
    resp = client.post("/reminders/test-notification", headers=headers)
    assert resp.status_code == 200
    subscription, payload = notifier.sent[-1]
    assert subscription == SUBSCRIPTION
    assert payload.tag == "test"

    notifier.result = False
    resp = client.post("/reminders/test-notification", headers=headers)
    assert resp.status_code == 502


def test_test_notification_without_subscription(client, headers):
    client.delete("/users/me/push-subscription", headers=headers)
    resp = client.post("/reminders/test-notification", headers=headers)
    assert resp.status_code == 400


def test_user_preferences(client, headers):
    resp = client.put("/users/me/preferences", json={"push_notifications": False}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["user"]["push_notifications"] is False
    assert resp.json()["user"]["weekly_summaries"] is True

    me = client.get("/users/me", headers=headers).json()["user"]
    assert me["push_notifications"] is False
    assert me["push_subscription"] == SUBSCRIPTION

    resp = client.put("/users/me/preferences", json={"weekly_summaries": False}, headers=headers)
    user = resp.json()["user"]
    assert user["weekly_summaries"] is False
    assert user["push_notifications"] is False


@patch("recall.routes.entries.analyze_entry", new_callable=AsyncMock)
def test_create_entry_creates_reminders(mock_analyze, client, headers):
    mock_analyze.return_value = {
        "events": [{"title": "Dentist", "datetime": _soon(days=2), "category": "health"}],
        "tasks": [{"title": "Buy milk"}],
        "deadlines": [],
    }

    resp = client.post(
        "/entries",
        json={"title": "Monday", "content": "Dentist on Wednesday, buy milk"},
        headers=headers,
    )
    assert resp.status_code == 201
    mock_analyze.assert_called_once_with("Monday", "Dentist on Wednesday, buy milk")

    data = resp.json()
    entry_id = data["entry"]["id"]
    assert [r["title"] for r in data["reminders"]] == ["Dentist", "Buy milk"]
    assert all(r["source_entry_id"] == entry_id for r in data["reminders"])
    assert all(r["source_type"] == "text-analysis" for r in data["reminders"])

    status = client.get("/reminders/status", headers=headers).json()
    assert status["active_reminders"] == 2


@patch("recall.routes.entries.analyze_entry", new_callable=AsyncMock)
def test_entry_survives_failed_analysis(mock_analyze, client, headers):
    mock_analyze.side_effect = RuntimeError("model down")

    resp = client.post("/entries", json={"title": "Monday", "content": "..."}, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["reminders"] == []

    resp = client.get("/entries", headers=headers)
    assert [e["title"] for e in resp.json()["entries"]] == ["Monday"]


@patch("recall.routes.entries.analyze_entry", new_callable=AsyncMock)
def test_delete_entry_keeps_reminders(mock_analyze, client, headers):
    mock_analyze.return_value = {"tasks": [{"title": "Buy milk"}]}
    data = client.post("/entries", json={"title": "Monday"}, headers=headers).json()
    entry_id = data["entry"]["id"]
    reminder_id = data["reminders"][0]["id"]

    assert client.delete(f"/entries/{entry_id}", headers=headers).status_code == 200
    assert client.get(f"/entries/{entry_id}", headers=headers).status_code == 404

    reminder = client.get(f"/reminders/{reminder_id}", headers=headers).json()["reminder"]
    assert reminder["source_entry_id"] is None


@patch("recall.routes.entries.analyze_entry", new_callable=AsyncMock)
def test_update_entry(mock_analyze, client, headers):
    mock_analyze.return_value = {}
    entry_id = client.post("/entries", json={"title": "Monday"}, headers=headers).json()["entry"]["id"]

    resp = client.put(f"/entries/{entry_id}", json={"content": "Rained all day"}, headers=headers)
    assert resp.status_code == 200
    entry = resp.json()["entry"]
    assert entry["title"] == "Monday"
    assert entry["content"] == "Rained all day"

    assert client.put(f"/entries/{entry_id}", json={"title": " "}, headers=headers).status_code == 422
    assert client.put("/entries/999", json={"title": "Tuesday"}, headers=headers).status_code == 404
    mock_analyze.assert_awaited_once()


@patch("recall.routes.ai.ai.suggest_reminders", new_callable=AsyncMock)
def test_suggest_reminders(mock_suggest, client, headers):
    mock_suggest.return_value = [{"title": "Exercise", "frequency": "daily", "time": "08:00"}]

    resp = client.post("/ai/reminders/suggest", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["suggestions"][0]["title"] == "Exercise"
    assert mock_suggest.await_args.args == ([],)

    # Suggestions are advisory; nothing is created until the user asks for it
    assert client.get("/reminders", headers=headers).json()["reminders"] == []
    assert client.post("/ai/reminders/suggest?days=0", headers=headers).status_code == 422
    assert client.post("/ai/reminders/suggest").status_code == 401


def test_lifespan_registers_periodic_jobs(db_path, notifier):
    app = create_app(db_path=db_path, notifier=notifier, enable_jobs=True)
    scheduler = app.state.reminder_service.scheduler

    with TestClient(app):
        assert scheduler.jobs.running
        ids = {job.id for job in scheduler.jobs.get_jobs()}
        assert {"reminder_sweep", "reminder_suggestions", "weekly_summary"} <= ids
        assert scheduler.pending_count == 0

    assert not scheduler.jobs.running
