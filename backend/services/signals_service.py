from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from db.models import Nudge, Signal
from schemas import (
    AcceptNudgeRequest,
    AcceptNudgeResponse,
    AiNudgeRequest,
    CheckinRequest,
    DriftRequest,
    FocusSessionStartRequest,
    PlanBlockDTO,
    SignalSubmitResponse,
)
from services import ai_service
from services.plans_service import apply_updated_blocks
from services.profile_service import get_profile

logger = logging.getLogger(__name__)

BLOCK_EDITING_ACTIONS = {"swap", "reschedule"}


def _insert_signal(
    db: Session,
    user_id: str,
    signal_type: str,
    payload: dict[str, Any],
    related_block_id: str | None = None,
) -> Signal:
    row = Signal(
        user_id=user_id,
        type=signal_type,
        related_block_id=related_block_id,
        payload=json.dumps(payload, ensure_ascii=True),
    )
    db.add(row)
    db.flush()
    return row


async def submit_checkin(db: Session, user_id: str, payload: CheckinRequest) -> SignalSubmitResponse:
    block_id = str(payload.plan_block_id)
    signal_payload: dict[str, Any] = {
        "progress": payload.progress,
        "focus": payload.focus,
        "energy": payload.energy,
    }
    if payload.done is not None:
        signal_payload["done"] = payload.done
    if payload.drift_minutes is not None:
        signal_payload["driftMinutes"] = payload.drift_minutes
    if payload.derail_reason:
        signal_payload["derailReason"] = payload.derail_reason
    if payload.happened_tags:
        signal_payload["happenedTags"] = list(payload.happened_tags)

    row = _insert_signal(db, user_id, "checkin", signal_payload, related_block_id=block_id)

    nudge = None
    if get_profile(db, user_id).coach_mode == "strict":
        nudge = await ai_service.generate_nudge(
            db,
            user_id,
            AiNudgeRequest(
                plan_block_id=payload.plan_block_id,
                trigger_type="cadence",
                signal_payload={
                    "progress": payload.progress,
                    "focus": payload.focus,
                    "energy": payload.energy,
                },
            ),
        )

    return SignalSubmitResponse(signal_id=row.id, nudge=nudge)


async def submit_drift(db: Session, user_id: str, payload: DriftRequest) -> SignalSubmitResponse:
    block_id = str(payload.plan_block_id) if payload.plan_block_id else None
    signal_payload: dict[str, Any] = {
        "minutes": payload.minutes,
        "apps": list(payload.apps or []),
    }
    if payload.derail_reason:
        signal_payload["derailReason"] = payload.derail_reason

    row = _insert_signal(db, user_id, "drift", signal_payload, related_block_id=block_id)

    nudge = None
    if payload.plan_block_id:
        nudge = await ai_service.generate_nudge(
            db,
            user_id,
            AiNudgeRequest(
                plan_block_id=payload.plan_block_id,
                trigger_type="drift",
                signal_payload={"minutes": payload.minutes, "apps": list(payload.apps or [])},
            ),
        )

    return SignalSubmitResponse(signal_id=row.id, nudge=nudge)


def submit_focus_start(db: Session, user_id: str, payload: FocusSessionStartRequest) -> SignalSubmitResponse:
    block_id = str(payload.plan_block_id) if payload.plan_block_id else None
    row = _insert_signal(
        db,
        user_id,
        "focusSessionStart",
        {"plannedMinutes": payload.planned_minutes},
        related_block_id=block_id,
    )
    return SignalSubmitResponse(signal_id=row.id)


def accept_nudge(db: Session, user_id: str, nudge_id: str, payload: AcceptNudgeRequest) -> AcceptNudgeResponse:
    nudge = db.query(Nudge).filter(Nudge.id == nudge_id, Nudge.user_id == user_id).first()
    if nudge is None:
        raise LookupError("Nudge not found")
    nudge.accepted_action = payload.accepted_action

    updated: list[PlanBlockDTO] = []
    if payload.accepted_action in BLOCK_EDITING_ACTIONS and payload.updated_blocks:
        updated = apply_updated_blocks(db, user_id, payload.updated_blocks)

    if payload.accepted_action == "swap":
        _insert_signal(
            db,
            user_id,
            "manualSwap",
            {"nudgeId": nudge_id, "updatedBlocksCount": len(updated)},
        )

    db.flush()
    logger.info(f"Nudge {nudge_id} accepted as {payload.accepted_action} ({len(updated)} blocks updated)")
    return AcceptNudgeResponse(updated_blocks=updated)
