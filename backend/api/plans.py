from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import PlanDTO
from services.plans_service import get_plan_by_date, get_today_plan

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("/today", response_model=PlanDTO | None)
def today_plan(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_today_plan(db, user_id)


@router.get("/{plan_date}", response_model=PlanDTO | None)
def plan_for_date(
    plan_date: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return get_plan_by_date(db, user_id, plan_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
