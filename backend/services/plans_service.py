from __future__ import annotations

import json
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from db.models import Plan, PlanBlock, Signal
from schemas import AiPlanResponse, BlockContext, PlanBlockDTO, PlanDTO, SignalDTO
from utils.datetime_utils import as_utc, parse_day, to_naive_utc, today_utc


RECENT_SIGNAL_LIMIT = 10


def _safe_json_loads(raw: str | None, fallback: Any) -> Any:
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def _json_dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True)


def serialize_block(row: PlanBlock) -> PlanBlockDTO:
    return PlanBlockDTO(
        id=row.id,
        plan_id=row.plan_id,
        user_id=row.user_id,
        start_at=as_utc(row.start_at),
        end_at=as_utc(row.end_at),
        type=row.type,
        google_task_id=row.google_task_id,
        label=row.label,
        rationale=row.rationale or "",
        priority_score=float(row.priority_score or 0),
    )


def serialize_plan(row: Plan, include_blocks: bool = True) -> PlanDTO:
    blocks = sorted(row.blocks, key=lambda b: b.start_at) if include_blocks else []
    return PlanDTO(
        id=row.id,
        user_id=row.user_id,
        plan_date=row.plan_date.isoformat(),
        top_outcomes=list(_safe_json_loads(row.top_outcomes, [])),
        shutdown_suggestion=row.shutdown_suggestion,
        risk_flags=list(_safe_json_loads(row.risk_flags, [])),
        blocks=[serialize_block(block) for block in blocks],
    )


def serialize_signal(row: Signal) -> SignalDTO:
    return SignalDTO(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        ts=as_utc(row.ts),
        related_block_id=row.related_block_id,
        payload=_safe_json_loads(row.payload, {}),
    )


def _find_plan(db: Session, user_id: str, plan_day: date) -> Plan | None:
    return (
        db.query(Plan)
        .filter(Plan.user_id == user_id, Plan.plan_date == plan_day)
        .first()
    )


def get_plan_by_date(db: Session, user_id: str, day: str | date) -> PlanDTO | None:
    row = _find_plan(db, user_id, parse_day(day))
    if row is None:
        return None
    return serialize_plan(row)


def get_today_plan(db: Session, user_id: str) -> PlanDTO | None:
    return get_plan_by_date(db, user_id, today_utc())


def _apply_block_fields(row: PlanBlock, block: PlanBlockDTO) -> None:
    row.start_at = to_naive_utc(block.start_at)
    row.end_at = to_naive_utc(block.end_at)
    row.type = block.type
    row.google_task_id = block.google_task_id
    row.label = block.label
    row.rationale = block.rationale
    row.priority_score = float(block.priority_score)


def save_generated_plan(db: Session, user_id: str, day: str | date, payload: AiPlanResponse) -> PlanDTO:
    """Upsert the plan for (user, day) and replace all of its blocks."""
    plan_day = parse_day(day)
    parsed = AiPlanResponse.model_validate(payload)

    row = _find_plan(db, user_id, plan_day)
    if row is None:
        row = Plan(user_id=user_id, plan_date=plan_day)
        db.add(row)
    row.top_outcomes = _json_dump(parsed.top_outcomes)
    row.shutdown_suggestion = parsed.shutdown_suggestion
    row.risk_flags = _json_dump(parsed.risk_flags)

    row.blocks.clear()
    db.flush()
    for block in parsed.blocks:
        block_row = PlanBlock(user_id=user_id)
        _apply_block_fields(block_row, block)
        row.blocks.append(block_row)
    db.flush()
    db.refresh(row)
    return serialize_plan(row)


def get_block_with_context(db: Session, user_id: str, block_id: str) -> BlockContext:
    block = (
        db.query(PlanBlock)
        .filter(PlanBlock.id == str(block_id), PlanBlock.user_id == user_id)
        .first()
    )
    if block is None:
        raise LookupError("Plan block not found")

    plan = db.query(Plan).filter(Plan.id == block.plan_id, Plan.user_id == user_id).first()
    if plan is None:
        raise LookupError("Parent plan not found")

    recent = (
        db.query(Signal)
        .filter(Signal.user_id == user_id)
        .order_by(Signal.ts.desc())
        .limit(RECENT_SIGNAL_LIMIT)
        .all()
    )
    return BlockContext(
        block=serialize_block(block),
        plan=serialize_plan(plan, include_blocks=False),
        recent_signals=[serialize_signal(row) for row in recent],
    )


def apply_updated_blocks(db: Session, user_id: str, updated_blocks: list[PlanBlockDTO]) -> list[PlanBlockDTO]:
    """Update blocks that carry an id; insert blocks that carry only a plan id."""
    persisted: list[PlanBlockDTO] = []
    for block in updated_blocks:
        block = PlanBlockDTO.model_validate(block)
        if block.id:
            row = (
                db.query(PlanBlock)
                .filter(PlanBlock.id == block.id, PlanBlock.user_id == user_id)
                .first()
            )
            if row is None:
                raise LookupError(f"Plan block {block.id} not found")
            _apply_block_fields(row, block)
            db.flush()
            persisted.append(serialize_block(row))
            continue

        if not block.plan_id:
            raise ValueError("updated block insert is missing planId")
        plan = db.query(Plan).filter(Plan.id == block.plan_id, Plan.user_id == user_id).first()
        if plan is None:
            raise LookupError(f"Plan {block.plan_id} not found")
        row = PlanBlock(plan_id=plan.id, user_id=user_id)
        _apply_block_fields(row, block)
        db.add(row)
        db.flush()
        persisted.append(serialize_block(row))
    return persisted
