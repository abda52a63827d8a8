from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import InsightsTodayDTO
from services.insights_service import get_today

router = APIRouter(prefix="/insights", tags=["insights"])


@router.get("/today", response_model=InsightsTodayDTO)
def today_insights(
    date: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return get_today(db, user_id, date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
