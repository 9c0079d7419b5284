"""End-to-end tests for the HTTP routers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import pytest
from fastapi.testclient import TestClient

from taskboard.app import create_app
from taskboard.config import get_settings
from taskboard.repository import TaskRepository

FEED = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "PRODID:-//taskboard//tests//EN\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:lunch\r\n"
    "SUMMARY:Lunch\r\n"
    "DTSTART:20240715T120000\r\n"
    "DTEND:20240715T130000\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@dataclass
class Accounts:
    admin: str
    ada: str
    bob: str
    inactive: str


def _seed(path, *, provision: bool = True) -> Accounts:
    async def _run() -> Accounts:
        repo = TaskRepository(path, provision_calendar_sources=provision)
        await repo.initialize()
        try:
            admin = await repo.create_user("root@example.com", is_admin=True)
            ada = await repo.create_user("ada@example.com", full_name="Ada")
            bob = await repo.create_user("bob@example.com")
            inactive = await repo.create_user("gone@example.com", is_active=False)
        finally:
            await repo.close()
        return Accounts(admin.id, ada.id, bob.id, inactive.id)

    return asyncio.run(_run())


def _headers(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture
def configure(tmp_path, monkeypatch):
    def _configure(**env: str):
        monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "taskboard.db"))
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()
        return tmp_path / "taskboard.db"

    yield _configure
    get_settings.cache_clear()


@pytest.fixture
def accounts(configure) -> Accounts:
    return _seed(configure(CRON_SECRET="s3cret"))


@pytest.fixture
def client(accounts):
    app = create_app()

    def feed_handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "broken.test":
            return httpx.Response(503)
        return httpx.Response(200, text=FEED)

    app.state.feed_transport = httpx.MockTransport(feed_handler)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_need_a_known_active_user(client, accounts):
    assert client.get("/api/tasks").status_code == 401
    assert client.get("/api/tasks", headers=_headers("nobody")).status_code == 401
    assert client.get("/api/tasks", headers=_headers(accounts.inactive)).status_code == 401


def test_task_lifecycle_with_recurrence(client, accounts):
    response = client.post(
        "/api/tasks",
        headers=_headers(accounts.ada),
        json={
            "title": "Water plants",
            "due_date": "2024-03-01T09:00:00Z",
            "is_recurring": True,
            "recurrence_pattern": {"type": "weekly"},
        },
    )
    assert response.status_code == 201
    task = response.json()["task"]
    assert task["status"] == "pending"
    assert task["priority"] == "medium"
    assert task["recurrence_pattern"] == {"type": "weekly", "interval": 1}

    response = client.patch(
        f"/api/tasks/{task['id']}", headers=_headers(accounts.ada), json={"status": "completed"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["task"]["status"] == "completed"
    assert "recurrence_error" not in body

    again = client.patch(
        f"/api/tasks/{task['id']}", headers=_headers(accounts.ada), json={"status": "completed"}
    )
    assert again.status_code == 200

    tasks = client.get("/api/tasks", headers=_headers(accounts.ada)).json()["tasks"]
    assert len(tasks) == 2
    successor = next(t for t in tasks if t["id"] != task["id"])
    assert successor["status"] == "pending"
    assert successor["due_date"] == "2024-03-08T09:00:00Z"


def test_task_validation_and_null_fields(client, accounts):
    assert (
        client.post("/api/tasks", headers=_headers(accounts.ada), json={"title": ""}).status_code
        == 422
    )
    assert (
        client.post(
            "/api/tasks",
            headers=_headers(accounts.ada),
            json={"title": "x", "recurrence_pattern": {"type": "yearly"}},
        ).status_code
        == 422
    )

    task = client.post(
        "/api/tasks", headers=_headers(accounts.ada), json={"title": "Keep"}
    ).json()["task"]
    response = client.patch(
        f"/api/tasks/{task['id']}",
        headers=_headers(accounts.ada),
        json={"title": None, "description": "notes"},
    )

    assert response.status_code == 200
    assert response.json()["task"]["title"] == "Keep"
    assert response.json()["task"]["description"] == "notes"


def test_task_access_rules(client, accounts):
    task = client.post(
        "/api/tasks", headers=_headers(accounts.ada), json={"title": "Private"}
    ).json()["task"]

    assert (
        client.patch(
            f"/api/tasks/{task['id']}", headers=_headers(accounts.bob), json={"title": "x"}
        ).status_code
        == 403
    )
    assert client.delete(f"/api/tasks/{task['id']}", headers=_headers(accounts.bob)).status_code == 403
    assert client.delete("/api/tasks/missing", headers=_headers(accounts.ada)).status_code == 404
    assert (
        client.get(
            "/api/tasks", headers=_headers(accounts.bob), params={"user_id": accounts.ada}
        ).status_code
        == 403
    )

    admin_view = client.get(
        "/api/tasks", headers=_headers(accounts.admin), params={"user_id": accounts.ada}
    )
    assert [t["id"] for t in admin_view.json()["tasks"]] == [task["id"]]

    deleted = client.delete(f"/api/tasks/{task['id']}", headers=_headers(accounts.ada))
    assert deleted.json() == {"success": True}


def test_calendar_sources_and_events(client, accounts):
    created = client.post(
        "/api/calendars",
        headers=_headers(accounts.ada),
        json={"name": "Team", "url": "webcal://feeds.test/team.ics"},
    )
    assert created.status_code == 201
    source = created.json()["source"]
    assert source["color"] == "#3b82f6"
    assert source["type"] == "web_ical"

    client.post(
        "/api/calendars",
        headers=_headers(accounts.ada),
        json={"name": "Broken", "url": "https://broken.test/x.ics"},
    )
    client.post(
        "/api/tasks",
        headers=_headers(accounts.ada),
        json={"title": "Report", "due_date": "2024-07-15T15:00:00Z", "priority": "urgent"},
    )

    events = client.get("/api/calendars/events", headers=_headers(accounts.ada)).json()["events"]

    assert len(events) == 2
    task_event, feed_event = events
    assert task_event["resource"] == {"type": "task", "priority": "urgent", "status": "pending"}
    assert task_event["start"] == "2024-07-15T15:00:00Z"
    assert task_event["end"] == "2024-07-15T16:00:00Z"
    assert task_event["allDay"] is False
    assert feed_event["id"] == f"{source['id']}-lunch"
    assert feed_event["start"] == "2024-07-15T16:00:00Z"
    assert feed_event["resource"]["sourceId"] == source["id"]

    listed = client.get("/api/calendars", headers=_headers(accounts.ada)).json()["sources"]
    assert {s["name"] for s in listed} == {"Team", "Broken"}
    assert client.get("/api/calendars", headers=_headers(accounts.bob)).json() == {"sources": []}
    assert (
        client.delete(f"/api/calendars/{source['id']}", headers=_headers(accounts.bob)).status_code
        == 404
    )
    assert client.delete(
        f"/api/calendars/{source['id']}", headers=_headers(accounts.ada)
    ).json() == {"success": True}


def test_calendar_source_url_must_be_a_feed(client, accounts):
    response = client.post(
        "/api/calendars",
        headers=_headers(accounts.ada),
        json={"name": "Bad", "url": "ftp://feeds.test/x.ics"},
    )

    assert response.status_code == 422


def test_missing_calendar_table_returns_setup_required(configure):
    accounts = _seed(configure(PROVISION_CALENDAR_SOURCES="false"), provision=False)

    with TestClient(create_app()) as client:
        listed = client.get("/api/calendars", headers=_headers(accounts.ada))
        created = client.post(
            "/api/calendars",
            headers=_headers(accounts.ada),
            json={"name": "Team", "url": "https://feeds.test/team.ics"},
        )
        events = client.get("/api/calendars/events", headers=_headers(accounts.ada))

    assert listed.status_code == 503
    assert "setup is required" in listed.json()["detail"]
    assert created.status_code == 503
    assert events.status_code == 200
    assert events.json() == {"events": []}


def test_admin_user_management(client, accounts):
    assert client.get("/api/admin/users", headers=_headers(accounts.ada)).status_code == 403

    created = client.post(
        "/api/admin/users",
        headers=_headers(accounts.admin),
        json={"email": "new@example.com", "full_name": "New"},
    )
    assert created.status_code == 201
    user = created.json()["user"]
    assert user["is_admin"] is False

    duplicate = client.post(
        "/api/admin/users", headers=_headers(accounts.admin), json={"email": "new@example.com"}
    )
    assert duplicate.status_code == 409

    updated = client.patch(
        f"/api/admin/users/{user['id']}",
        headers=_headers(accounts.admin),
        json={"is_active": False},
    )
    assert updated.json()["user"]["is_active"] is False
    assert (
        client.patch(
            "/api/admin/users/missing", headers=_headers(accounts.admin), json={"full_name": "x"}
        ).status_code
        == 404
    )

    users = client.get("/api/admin/users", headers=_headers(accounts.admin)).json()["users"]
    assert len(users) == 5


def test_agents(client, accounts):
    denied = client.post(
        "/api/agents", headers=_headers(accounts.ada), json={"name": "A", "url": "https://a.test"}
    )
    assert denied.status_code == 403

    created = client.post(
        "/api/agents",
        headers=_headers(accounts.admin),
        json={"name": "Helper", "url": "https://helper.test", "open_in_new_window": True},
    )
    assert created.status_code == 201
    agent = created.json()["agent"]

    listed = client.get("/api/agents", headers=_headers(accounts.ada)).json()["agents"]
    assert [a["id"] for a in listed] == [agent["id"]]

    client.patch(
        f"/api/agents/{agent['id']}", headers=_headers(accounts.admin), json={"is_active": False}
    )
    assert client.get("/api/agents", headers=_headers(accounts.ada)).json() == {"agents": []}

    assert client.delete(
        f"/api/agents/{agent['id']}", headers=_headers(accounts.admin)
    ).json() == {"success": True}
    assert (
        client.delete(f"/api/agents/{agent['id']}", headers=_headers(accounts.admin)).status_code
        == 404
    )


def test_cron_requires_secret(client, accounts):
    client.post(
        "/api/tasks",
        headers=_headers(accounts.ada),
        json={"title": "Overdue", "due_date": "2020-01-01T09:00:00Z"},
    )

    assert client.post("/api/cron/notifications").status_code == 401
    assert (
        client.post(
            "/api/cron/notifications", headers={"Authorization": "Bearer wrong"}
        ).status_code
        == 401
    )

    response = client.post(
        "/api/cron/notifications", headers={"Authorization": "Bearer s3cret"}
    )
    assert response.json() == {"success": True, "notificationsSent": 1}
