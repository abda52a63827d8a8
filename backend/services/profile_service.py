from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from db.models import UserProfile
from schemas import ProfilePatchRequest, UserProfileDTO


COACH_MODES = {"gentle", "balanced", "strict"}

# Maps wire fields onto row columns that hold JSON.
_JSON_FIELDS = {"energy_profile", "distraction_profile"}


def _safe_json_object(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def ensure_profile(db: Session, user_id: str) -> UserProfile:
    row = db.get(UserProfile, user_id)
    if row is None:
        row = UserProfile(id=user_id, energy_profile="{}", distraction_profile="{}")
        db.add(row)
        db.flush()
    return row


def serialize_profile(row: UserProfile) -> UserProfileDTO:
    coach_mode = row.coach_mode if row.coach_mode in COACH_MODES else "balanced"
    return UserProfileDTO(
        id=row.id,
        coach_mode=coach_mode,
        checkin_cadence_minutes=int(row.checkin_cadence_minutes or 60),
        sleep_time=row.sleep_time,
        wake_time=row.wake_time,
        sleep_suggestions_enabled=True if row.sleep_suggestions_enabled is None else bool(row.sleep_suggestions_enabled),
        pause_monitoring=bool(row.pause_monitoring),
        push_notifications_enabled=True if row.push_notifications_enabled is None else bool(row.push_notifications_enabled),
        energy_profile=_safe_json_object(row.energy_profile),
        distraction_profile=_safe_json_object(row.distraction_profile),
    )


def get_profile(db: Session, user_id: str) -> UserProfileDTO:
    return serialize_profile(ensure_profile(db, user_id))


def patch_profile(db: Session, user_id: str, payload: ProfilePatchRequest) -> UserProfileDTO:
    """Apply only the fields present in the request body."""
    row = ensure_profile(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if field in _JSON_FIELDS:
            setattr(row, field, json.dumps(value, ensure_ascii=True))
        else:
            setattr(row, field, value)
    db.flush()
    return serialize_profile(row)
