from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import OkMessageResponse, RewardsClaimRequest, RewardsWeeklyDTO
from services.rewards_service import claim_weekly, get_weekly

router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("/weekly", response_model=RewardsWeeklyDTO)
def weekly_rewards(
    date: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return get_weekly(db, user_id, date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/claim", response_model=OkMessageResponse)
def claim_rewards(
    payload: Optional[RewardsClaimRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return claim_weekly(db, user_id, payload.date if payload else None)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
