from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth.utils import get_current_user_id
from db.database import get_db
from schemas import ProfilePatchRequest, UserProfileDTO
from services.google_service import delete_connection
from services.profile_service import get_profile, patch_profile

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=UserProfileDTO)
def read_profile(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_profile(db, user_id)


@router.patch("", response_model=UserProfileDTO)
def update_profile(
    payload: ProfilePatchRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = patch_profile(db, user_id, payload)
    db.commit()
    return profile


@router.delete("/google-connection")
def delete_google_connection(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_connection(db, user_id)
    db.commit()
    return {"ok": True}
