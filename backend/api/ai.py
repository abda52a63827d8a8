from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import (
    AiBreakdownRequest,
    AiBreakdownResponse,
    AiDayCloseRequest,
    AiNudgeRequest,
    AiPlanRequest,
    DayCloseDTO,
    NudgeDTO,
    PlanDTO,
)
from services import ai_service

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/plan", response_model=PlanDTO)
async def generate_plan(
    payload: AiPlanRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        plan = await ai_service.generate_plan(db, user_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return plan


@router.post("/nudge", response_model=NudgeDTO)
async def generate_nudge(
    payload: AiNudgeRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        nudge = await ai_service.generate_nudge(db, user_id, payload)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    db.commit()
    return nudge


@router.post("/breakdown", response_model=AiBreakdownResponse)
async def generate_breakdown(
    payload: AiBreakdownRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    breakdown = await ai_service.generate_breakdown(db, user_id, payload)
    db.commit()
    return breakdown


@router.post("/day-close", response_model=DayCloseDTO)
async def day_close(
    payload: AiDayCloseRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        result = await ai_service.generate_day_close(db, user_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return result
