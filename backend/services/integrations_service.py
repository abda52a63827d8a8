from sqlalchemy.orm import Session

from schemas import IntegrationsStatusDTO
from services.google_service import is_connected

DRIFT_EXPLANATION = "Omni adapts via check-ins and the manual 'I'm drifting' action."


def get_status(db: Session, user_id: str) -> IntegrationsStatusDTO:
    connected = is_connected(db, user_id)
    return IntegrationsStatusDTO(
        google_calendar_connected=connected,
        google_tasks_connected=connected,
        drift_tracking_mode="manual",
        explanation=DRIFT_EXPLANATION,
    )
