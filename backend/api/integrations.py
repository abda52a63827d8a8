from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import IntegrationsStatusDTO
from services.integrations_service import get_status

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("/status", response_model=IntegrationsStatusDTO)
def integrations_status(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_status(db, user_id)
