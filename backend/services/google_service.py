"""Google Calendar / Tasks sync.

OAuth tokens are stored encrypted per user. Every read from Google is
mirrored into the local cache tables so the scoring engine can work from the
store alone.
"""

from __future__ import annotations

import base64
import html
import json
import logging
import os
import time
import uuid
from datetime import date, datetime
from urllib.parse import urlencode, urlparse, urlunparse, parse_qsl

from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from config import settings
from db.models import CalendarEventCache, GoogleConnection, TaskCache, TaskList
from schemas import CalendarEventDTO, CreateTaskRequest, TaskDTO, TaskListDTO
from utils.datetime_utils import (
    end_of_day,
    isoformat_z,
    parse_day,
    parse_iso_datetime,
    start_of_day,
    to_naive_utc,
    utcnow,
    utcnow_naive,
)
from utils.encryption import decrypt_token, encrypt_token, sign_state_payload, verify_state_signature

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_TASK_LIST = "@default"


class OAuthState(BaseModel):
    u: str
    n: str
    ts: int
    cb: str | None = None


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

def _require_google_config() -> None:
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise ValueError("Google OAuth is not configured")


def _client_config() -> dict:
    return {
        "web": {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "auth_uri": GOOGLE_AUTH_URI,
            "token_uri": GOOGLE_TOKEN_URI,
        }
    }


def _build_flow():
    from google_auth_oauthlib.flow import Flow

    # Google may grant a superset of the requested scopes (include_granted_scopes).
    os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")
    return Flow.from_client_config(
        _client_config(),
        scopes=settings.google_scopes,
        redirect_uri=settings.GOOGLE_OAUTH_REDIRECT_URL,
        autogenerate_code_verifier=False,
    )


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def build_state(user_id: str, callback_scheme: str | None = None, now_ms: int | None = None) -> str:
    payload = OAuthState(
        u=user_id,
        n=uuid.uuid4().hex,
        ts=int(now_ms if now_ms is not None else time.time() * 1000),
        cb=callback_scheme,
    )
    encoded = _b64url_encode(payload.model_dump_json(exclude_none=True).encode())
    return f"{encoded}.{sign_state_payload(encoded)}"


def verify_state(state: str, now_ms: int | None = None) -> OAuthState:
    encoded, _, signature = (state or "").partition(".")
    if not encoded or not signature:
        raise ValueError("Invalid OAuth state")
    if not verify_state_signature(encoded, signature):
        raise ValueError("Invalid OAuth state signature")
    try:
        payload = OAuthState.model_validate_json(_b64url_decode(encoded))
    except (ValueError, ValidationError):
        raise ValueError("Invalid OAuth state")

    now = int(now_ms if now_ms is not None else time.time() * 1000)
    if now - payload.ts > settings.GOOGLE_OAUTH_STATE_TTL_SECONDS * 1000:
        raise ValueError("OAuth state expired")
    return payload


def get_oauth_start_url(user_id: str, callback_scheme: str | None = None) -> str:
    _require_google_config()
    flow = _build_flow()
    url, _ = flow.authorization_url(
        access_type="offline",
        include_granted_scopes="true",
        prompt="consent",
        state=build_state(user_id, callback_scheme),
    )
    return url


def google_sub_from_id_token(id_token: str | None) -> str | None:
    if not id_token:
        return None
    parts = id_token.split(".")
    if len(parts) < 2:
        return None
    try:
        claims = json.loads(_b64url_decode(parts[1]))
    except (ValueError, json.JSONDecodeError):
        return None
    sub = claims.get("sub") if isinstance(claims, dict) else None
    return str(sub) if sub else None


def handle_oauth_callback(db: Session, code: str, state: str) -> str:
    """Exchange the code, store the encrypted connection, return the app redirect URL."""
    parsed_state = verify_state(state)
    callback_scheme = parsed_state.cb or settings.IOS_OAUTH_CALLBACK_SCHEME

    _require_google_config()
    flow = _build_flow()
    flow.fetch_token(code=code)
    creds = flow.credentials
    if not creds.token:
        raise PermissionError("Google OAuth did not return an access token")

    granted = getattr(creds, "granted_scopes", None) or creds.scopes or settings.google_scopes
    row = db.query(GoogleConnection).filter(GoogleConnection.user_id == parsed_state.u).first()
    if row is None:
        row = GoogleConnection(user_id=parsed_state.u)
        db.add(row)
    row.google_sub = google_sub_from_id_token(getattr(creds, "id_token", None))
    row.scopes = " ".join(granted)
    row.access_token_enc = encrypt_token(creds.token)
    row.refresh_token_enc = encrypt_token(creds.refresh_token) if creds.refresh_token else None
    row.expiry_ts = to_naive_utc(creds.expiry) if creds.expiry else None
    row.updated_at = utcnow_naive()
    db.flush()
    logger.info(f"Stored Google connection for user {parsed_state.u}")

    return build_callback_url(callback_scheme, True)


def build_callback_url(base: str, success: bool, message: str | None = None) -> str:
    params = {"success": "1" if success else "0"}
    if message:
        params["message"] = message

    if base.startswith("http://") or base.startswith("https://"):
        parsed = urlparse(base)
        query = dict(parse_qsl(parsed.query))
        query.update(params)
        return urlunparse(parsed._replace(query=urlencode(query)))

    return f"{base}://oauth/google?{urlencode(params)}"


def oauth_callback_html(redirect_url: str) -> str:
    return f"""<!doctype html>
<html>
  <head><meta charset="utf-8"><title>Omni Google Connect</title></head>
  <body>
    <p>Returning to Omni...</p>
    <script>window.location.href = {json.dumps(redirect_url)};</script>
    <a href="{html.escape(redirect_url, quote=True)}">Continue</a>
  </body>
</html>"""


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def _connection(db: Session, user_id: str) -> GoogleConnection | None:
    return db.query(GoogleConnection).filter(GoogleConnection.user_id == user_id).first()


def is_connected(db: Session, user_id: str) -> bool:
    return _connection(db, user_id) is not None


def get_authorized_credentials(db: Session, user_id: str) -> Credentials:
    row = _connection(db, user_id)
    if row is None or not row.access_token_enc:
        raise LookupError("Google account is not connected")

    creds = Credentials(
        token=decrypt_token(row.access_token_enc),
        refresh_token=decrypt_token(row.refresh_token_enc) if row.refresh_token_enc else None,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID or None,
        client_secret=settings.GOOGLE_CLIENT_SECRET or None,
        scopes=(row.scopes or "").split() or settings.google_scopes,
    )
    if row.expiry_ts:
        creds.expiry = to_naive_utc(row.expiry_ts)

    if not creds.valid:
        if creds.expired and creds.refresh_token:
            creds.refresh(GoogleAuthRequest())
        else:
            raise LookupError("Google credentials invalid; reconnect required")
    return creds


def persist_latest_credentials(db: Session, user_id: str, creds: Credentials) -> None:
    if not creds.token:
        return
    row = _connection(db, user_id)
    if row is None:
        return
    row.access_token_enc = encrypt_token(creds.token)
    if creds.refresh_token:
        row.refresh_token_enc = encrypt_token(creds.refresh_token)
    if creds.expiry:
        row.expiry_ts = to_naive_utc(creds.expiry)
    row.updated_at = utcnow_naive()
    db.flush()


def calendar_api(creds: Credentials):
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def tasks_api(creds: Credentials):
    return build("tasks", "v1", credentials=creds, cache_discovery=False)


def delete_connection(db: Session, user_id: str) -> int:
    deleted = db.query(GoogleConnection).filter(GoogleConnection.user_id == user_id).delete()
    db.flush()
    return int(deleted or 0)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_calendar_event(event: dict) -> CalendarEventDTO:
    start = event.get("start") or {}
    end = event.get("end") or {}
    start_raw = start.get("dateTime") or f"{start.get('date')}T00:00:00.000Z"
    end_raw = end.get("dateTime") or f"{end.get('date')}T00:00:00.000Z"
    return CalendarEventDTO(
        source_id=event.get("id") or str(uuid.uuid4()),
        start_at=parse_iso_datetime(start_raw),
        end_at=parse_iso_datetime(end_raw),
        title=event.get("summary") or "Untitled Event",
        location=event.get("location"),
    )


def normalize_task(task: dict, task_list_id: str) -> TaskDTO:
    if not task.get("id") or not task.get("title"):
        raise ValueError("Task missing id or title")
    return TaskDTO(
        id=task["id"],
        task_list_id=task_list_id,
        title=task["title"],
        notes=task.get("notes"),
        due_at=parse_iso_datetime(task.get("due")),
        status="completed" if task.get("status") == "completed" else "needsAction",
        parent_task_id=task.get("parent"),
        updated_at=parse_iso_datetime(task.get("updated")) or utcnow(),
    )


def _upsert_task_cache(db: Session, user_id: str, task: TaskDTO) -> None:
    row = (
        db.query(TaskCache)
        .filter(TaskCache.user_id == user_id, TaskCache.google_task_id == task.id)
        .first()
    )
    if row is None:
        row = TaskCache(user_id=user_id, google_task_id=task.id)
        db.add(row)
    row.google_tasklist_id = task.task_list_id
    row.title = task.title
    row.notes = task.notes
    row.due_at = to_naive_utc(task.due_at)
    row.status = task.status
    row.parent_task_id = task.parent_task_id
    row.updated_at = to_naive_utc(task.updated_at)
    row.raw = task.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def get_calendar_events_for_date(db: Session, user_id: str, day: str | date) -> list[CalendarEventDTO]:
    target = parse_day(day)
    creds = get_authorized_credentials(db, user_id)
    response = (
        calendar_api(creds)
        .events()
        .list(
            calendarId="primary",
            timeMin=isoformat_z(start_of_day(target)),
            timeMax=isoformat_z(end_of_day(target)),
            singleEvents=True,
            orderBy="startTime",
        )
        .execute()
    )

    normalized = [
        normalize_calendar_event(item)
        for item in response.get("items", [])
        if item.get("id") and ((item.get("start") or {}).get("dateTime") or (item.get("start") or {}).get("date"))
    ]

    for event in normalized:
        row = (
            db.query(CalendarEventCache)
            .filter(CalendarEventCache.user_id == user_id, CalendarEventCache.source_id == event.source_id)
            .first()
        )
        if row is None:
            row = CalendarEventCache(user_id=user_id, source_id=event.source_id)
            db.add(row)
        row.start_at = to_naive_utc(event.start_at)
        row.end_at = to_naive_utc(event.end_at)
        row.title = event.title
        row.location = event.location
        row.raw = event.model_dump_json(by_alias=True)
    db.flush()

    persist_latest_credentials(db, user_id, creds)
    return normalized


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

def get_task_lists(db: Session, user_id: str) -> list[TaskListDTO]:
    creds = get_authorized_credentials(db, user_id)
    response = tasks_api(creds).tasklists().list(maxResults=100).execute()

    normalized = [
        TaskListDTO(id=item["id"], title=item["title"], raw=item)
        for item in response.get("items", [])
        if item.get("id") and item.get("title")
    ]
    for task_list in normalized:
        row = (
            db.query(TaskList)
            .filter(TaskList.user_id == user_id, TaskList.google_tasklist_id == task_list.id)
            .first()
        )
        if row is None:
            row = TaskList(user_id=user_id, google_tasklist_id=task_list.id)
            db.add(row)
        row.title = task_list.title
        row.raw = json.dumps(task_list.raw, ensure_ascii=True)
    db.flush()

    persist_latest_credentials(db, user_id, creds)
    return normalized


def get_tasks(
    db: Session,
    user_id: str,
    task_list_id: str | None = None,
    include_completed: bool = False,
) -> list[TaskDTO]:
    resolved_list_id = task_list_id or DEFAULT_TASK_LIST
    creds = get_authorized_credentials(db, user_id)
    response = (
        tasks_api(creds)
        .tasks()
        .list(
            tasklist=resolved_list_id,
            showCompleted=include_completed,
            showHidden=True,
            maxResults=100,
        )
        .execute()
    )

    normalized = [
        normalize_task(item, resolved_list_id)
        for item in response.get("items", [])
        if item.get("id") and item.get("title")
    ]
    for task in normalized:
        _upsert_task_cache(db, user_id, task)
    db.flush()

    persist_latest_credentials(db, user_id, creds)
    return normalized


def complete_task(db: Session, user_id: str, task_id: str) -> TaskDTO:
    cached = (
        db.query(TaskCache)
        .filter(TaskCache.user_id == user_id, TaskCache.google_task_id == task_id)
        .first()
    )
    task_list_id = cached.google_tasklist_id if cached and cached.google_tasklist_id else DEFAULT_TASK_LIST

    creds = get_authorized_credentials(db, user_id)
    api = tasks_api(creds)
    existing = api.tasks().get(tasklist=task_list_id, task=task_id).execute()
    body = dict(existing)
    body["status"] = "completed"
    body["completed"] = isoformat_z(utcnow())
    updated = api.tasks().update(tasklist=task_list_id, task=task_id, body=body).execute()

    normalized = normalize_task(updated, task_list_id)
    _upsert_task_cache(db, user_id, normalized)
    db.flush()

    persist_latest_credentials(db, user_id, creds)
    return normalized


def create_task(db: Session, user_id: str, payload: CreateTaskRequest) -> TaskDTO:
    task_list_id = payload.task_list_id or DEFAULT_TASK_LIST
    body: dict = {"title": payload.title}
    if payload.notes is not None:
        body["notes"] = payload.notes
    if payload.due_at is not None:
        body["due"] = isoformat_z(payload.due_at)

    creds = get_authorized_credentials(db, user_id)
    created = tasks_api(creds).tasks().insert(tasklist=task_list_id, body=body).execute()

    normalized = normalize_task(created, task_list_id)
    _upsert_task_cache(db, user_id, normalized)
    db.flush()

    persist_latest_credentials(db, user_id, creds)
    return normalized


def cached_completed_task_ids(db: Session, user_id: str, start: datetime, end_exclusive: datetime) -> set[str]:
    rows = (
        db.query(TaskCache.google_task_id)
        .filter(
            TaskCache.user_id == user_id,
            TaskCache.status == "completed",
            TaskCache.updated_at >= start,
            TaskCache.updated_at < end_exclusive,
        )
        .all()
    )
    return {str(row[0]) for row in rows}
