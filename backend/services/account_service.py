import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import (
    CalendarEventCache,
    DailyLog,
    GoogleConnection,
    ModelUsageEvent,
    Nudge,
    Plan,
    PlanBlock,
    Signal,
    TaskBreakdown,
    TaskCache,
    TaskList,
    UserProfile,
)
from schemas import OkMessageResponse
from services.google_service import delete_connection

logger = logging.getLogger(__name__)

ACCOUNT_DELETED = "Account deleted successfully."
ACCOUNT_PARTIALLY_DELETED = (
    "Account cleanup partially completed. Contact support to fully remove auth identity."
)


def delete_user_data(db: Session, user_id: str) -> dict[str, int]:
    """Delete every row owned by the user. Returns deleted row counts per table."""
    counts: dict[str, int] = {}
    # Children before parents so foreign keys stay satisfied.
    for model in (
        Nudge,
        Signal,
        PlanBlock,
        Plan,
        TaskBreakdown,
        DailyLog,
        TaskCache,
        TaskList,
        CalendarEventCache,
        ModelUsageEvent,
        GoogleConnection,
    ):
        counts[model.__tablename__] = (
            db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
        )
    counts[UserProfile.__tablename__] = (
        db.query(UserProfile).filter(UserProfile.id == user_id).delete(synchronize_session=False)
    )
    db.flush()
    return counts


def delete_account(db: Session, user_id: str) -> OkMessageResponse:
    try:
        counts = delete_user_data(db, user_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Account deletion for {user_id} failed, removing Google connection only: {e}")
        delete_connection(db, user_id)
        return OkMessageResponse(message=ACCOUNT_PARTIALLY_DELETED)

    logger.info(f"Deleted account data for {user_id}: {counts}")
    return OkMessageResponse(message=ACCOUNT_DELETED)
