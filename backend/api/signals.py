from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import (
    AcceptNudgeRequest,
    AcceptNudgeResponse,
    CheckinRequest,
    DriftRequest,
    FocusSessionStartRequest,
    SignalSubmitResponse,
)
from services import signals_service

router = APIRouter(tags=["signals"])


@router.post("/signals/checkin", response_model=SignalSubmitResponse)
async def submit_checkin(
    payload: CheckinRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = await signals_service.submit_checkin(db, user_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return result


@router.post("/signals/drift", response_model=SignalSubmitResponse)
async def submit_drift(
    payload: DriftRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = await signals_service.submit_drift(db, user_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return result


@router.post("/signals/focus-start", response_model=SignalSubmitResponse)
def submit_focus_start(
    payload: FocusSessionStartRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = signals_service.submit_focus_start(db, user_id, payload)
    db.commit()
    return result


@router.post("/nudges/{nudge_id}/accept", response_model=AcceptNudgeResponse)
def accept_nudge(
    nudge_id: str,
    payload: AcceptNudgeRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = signals_service.accept_nudge(db, user_id, nudge_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return result
