from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import OkMessageResponse
from services.account_service import delete_account

router = APIRouter(prefix="/account", tags=["account"])


@router.delete("", response_model=OkMessageResponse)
def remove_account(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = delete_account(db, user_id)
    db.commit()
    return result
