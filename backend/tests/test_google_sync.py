from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import CalendarEventCache, GoogleConnection, TaskCache  # noqa: E402
from schemas import CreateTaskRequest  # noqa: E402
from services import google_service  # noqa: E402
from utils.encryption import decrypt_token, encrypt_token  # noqa: E402


USER_ID = "9d3e4f10-6a2b-4c5d-8e7f-0a1b2c3d4e5f"


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _connect(db, access_token: str = "ya29.stale", expiry: datetime | None = None) -> GoogleConnection:
    row = GoogleConnection(
        user_id=USER_ID,
        scopes="https://www.googleapis.com/auth/calendar.readonly https://www.googleapis.com/auth/tasks",
        access_token_enc=encrypt_token(access_token),
        refresh_token_enc=encrypt_token("1//refresh-token"),
        expiry_ts=expiry,
    )
    db.add(row)
    db.flush()
    return row


class _Call:
    def __init__(self, result: dict):
        self.result = result

    def execute(self) -> dict:
        return self.result


class _FakeCalendar:
    def __init__(self, items: list[dict]):
        self.items = items
        self.list_kwargs: dict = {}

    def events(self):
        return self

    def list(self, **kwargs):
        self.list_kwargs = kwargs
        return _Call({"items": self.items})


class _FakeTasksResource:
    def __init__(self, items: list[dict]):
        self.items = {item["id"]: dict(item) for item in items}
        self.calls: list[tuple[str, dict]] = []

    def list(self, **kwargs):
        self.calls.append(("list", kwargs))
        return _Call({"items": list(self.items.values())})

    def get(self, **kwargs):
        self.calls.append(("get", kwargs))
        return _Call(dict(self.items[kwargs["task"]]))

    def update(self, **kwargs):
        self.calls.append(("update", kwargs))
        self.items[kwargs["task"]] = dict(kwargs["body"])
        return _Call(dict(kwargs["body"]))

    def insert(self, **kwargs):
        self.calls.append(("insert", kwargs))
        created = dict(kwargs["body"], id="t-new", status="needsAction", updated="2026-03-04T10:00:00.000Z")
        self.items["t-new"] = created
        return _Call(created)


class _FakeTasksApi:
    def __init__(self, items: list[dict]):
        self.resource = _FakeTasksResource(items)

    def tasks(self):
        return self.resource


def test_calendar_sync_refreshes_credentials_and_upserts_cache(monkeypatch):
    db = _new_db()
    _connect(db, expiry=datetime(2020, 1, 1))

    def fake_refresh(self, request):
        self.token = "ya29.fresh"
        self.expiry = datetime(2099, 1, 1)

    monkeypatch.setattr(google_service.Credentials, "refresh", fake_refresh)
    calendar = _FakeCalendar([
        {
            "id": "evt-1",
            "summary": "Standup",
            "start": {"dateTime": "2026-03-04T09:00:00Z"},
            "end": {"dateTime": "2026-03-04T09:15:00Z"},
        },
        {"id": "evt-no-start", "summary": "Broken"},
    ])
    monkeypatch.setattr(google_service, "calendar_api", lambda creds: calendar)

    events = google_service.get_calendar_events_for_date(db, USER_ID, "2026-03-04")
    db.commit()

    assert [event.title for event in events] == ["Standup"]
    assert calendar.list_kwargs["timeMin"] == "2026-03-04T00:00:00.000Z"
    assert calendar.list_kwargs["timeMax"] == "2026-03-04T23:59:59.999Z"
    assert calendar.list_kwargs["singleEvents"] is True

    connection = db.query(GoogleConnection).filter(GoogleConnection.user_id == USER_ID).one()
    assert decrypt_token(connection.access_token_enc) == "ya29.fresh"
    assert connection.expiry_ts == datetime(2099, 1, 1)

    calendar.items[0]["summary"] = "Standup (moved)"
    google_service.get_calendar_events_for_date(db, USER_ID, "2026-03-04")
    db.commit()

    cached = db.query(CalendarEventCache).filter(CalendarEventCache.user_id == USER_ID).all()
    assert len(cached) == 1
    assert cached[0].source_id == "evt-1"
    assert cached[0].title == "Standup (moved)"
    assert cached[0].start_at == datetime(2026, 3, 4, 9, 0)


def test_tasks_list_complete_and_create_write_through_cache(monkeypatch):
    db = _new_db()
    _connect(db)
    creds = SimpleNamespace(token="ya29.current", refresh_token=None, expiry=None)
    monkeypatch.setattr(google_service, "get_authorized_credentials", lambda db, user_id: creds)
    api = _FakeTasksApi([
        {"id": "t-1", "title": "Pay rent", "status": "needsAction", "updated": "2026-03-03T08:00:00.000Z"},
        {"id": "t-2", "title": "", "status": "needsAction"},
    ])
    monkeypatch.setattr(google_service, "tasks_api", lambda creds: api)

    tasks = google_service.get_tasks(db, USER_ID, "list-1", False)
    db.commit()

    assert [task.id for task in tasks] == ["t-1"]
    assert api.resource.calls[0] == (
        "list",
        {"tasklist": "list-1", "showCompleted": False, "showHidden": True, "maxResults": 100},
    )
    cached = db.query(TaskCache).filter(TaskCache.user_id == USER_ID).one()
    assert (cached.google_task_id, cached.google_tasklist_id, cached.status) == ("t-1", "list-1", "needsAction")

    completed = google_service.complete_task(db, USER_ID, "t-1")
    db.commit()

    assert completed.status == "completed"
    update_kwargs = api.resource.calls[-1][1]
    assert update_kwargs["tasklist"] == "list-1"
    assert update_kwargs["body"]["status"] == "completed"
    assert update_kwargs["body"]["completed"].endswith("Z")
    db.refresh(cached)
    assert cached.status == "completed"

    created = google_service.create_task(
        db,
        USER_ID,
        CreateTaskRequest(title="Book flights", notes="Window seat", due_at=datetime(2026, 3, 6, tzinfo=timezone.utc)),
    )
    db.commit()

    insert_kwargs = api.resource.calls[-1][1]
    assert insert_kwargs["tasklist"] == "@default"
    assert insert_kwargs["body"] == {"title": "Book flights", "notes": "Window seat", "due": "2026-03-06T00:00:00.000Z"}
    assert created.id == "t-new"
    new_row = db.query(TaskCache).filter(TaskCache.google_task_id == "t-new").one()
    assert new_row.google_tasklist_id == "@default"
    assert json.loads(new_row.raw)["title"] == "Book flights"

    connection = db.query(GoogleConnection).filter(GoogleConnection.user_id == USER_ID).one()
    assert decrypt_token(connection.access_token_enc) == "ya29.current"
    assert decrypt_token(connection.refresh_token_enc) == "1//refresh-token"


def test_delete_connection_reports_removed_rows():
    db = _new_db()
    _connect(db)
    assert google_service.delete_connection(db, USER_ID) == 1
    assert google_service.delete_connection(db, USER_ID) == 0
    assert google_service.is_connected(db, USER_ID) is False
