import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from config import settings
from db.database import get_db
from schemas import (
    CalendarEventDTO,
    CompleteTaskResponse,
    CreateTaskRequest,
    OAuthStartRequest,
    OAuthStartResponse,
    TaskDTO,
    TaskListDTO,
)
from services import google_service

router = APIRouter(prefix="/google", tags=["google"])
logger = logging.getLogger(__name__)


def _failure_page(message: str) -> HTMLResponse:
    redirect = google_service.build_callback_url(settings.IOS_OAUTH_CALLBACK_SCHEME, False, message)
    return HTMLResponse(google_service.oauth_callback_html(redirect), status_code=400)


@router.post("/oauth/start", response_model=OAuthStartResponse)
def start_oauth(
    payload: Optional[OAuthStartRequest] = None,
    user_id: str = Depends(get_current_user_id),
):
    try:
        url = google_service.get_oauth_start_url(user_id, payload.callback_scheme if payload else None)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return OAuthStartResponse(url=url)


@router.get("/oauth/callback", response_class=HTMLResponse)
def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if error:
        return _failure_page(error)
    if not code or not state:
        return _failure_page("missing_code_or_state")

    try:
        redirect_url = google_service.handle_oauth_callback(db, code, state)
    except Exception as e:
        db.rollback()
        logger.warning(f"Google OAuth callback failed: {e}")
        return _failure_page(str(e) or "oauth_failed")
    db.commit()
    return HTMLResponse(google_service.oauth_callback_html(redirect_url))


@router.get("/calendar/events", response_model=list[CalendarEventDTO])
def calendar_events(
    date: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        events = google_service.get_calendar_events_for_date(db, user_id, date)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return events


@router.get("/tasks/lists", response_model=list[TaskListDTO])
def task_lists(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        lists = google_service.get_task_lists(db, user_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return lists


@router.get("/tasks", response_model=list[TaskDTO])
def list_tasks(
    task_list_id: Optional[str] = Query(default=None, alias="taskListId"),
    include_completed: bool = Query(default=False, alias="includeCompleted"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        tasks = google_service.get_tasks(db, user_id, task_list_id, include_completed)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return tasks


@router.post("/tasks/{task_id}/complete", response_model=CompleteTaskResponse)
def complete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        task = google_service.complete_task(db, user_id, task_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return CompleteTaskResponse(task=task)


@router.post("/tasks/create", response_model=TaskDTO)
def create_task(
    payload: CreateTaskRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        task = google_service.create_task(db, user_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return task
