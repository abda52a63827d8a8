"""Model-backed generation of plans, nudges, task breakdowns and day-close reviews.

Every generator asks Gemini for a JSON object and validates it against the
matching response schema. When no API key is configured, or the call, the
JSON extraction or the validation fails, a deterministic fallback is used
instead so the endpoints always answer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any, TypeVar

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ai.json_output import extract_json_object
from ai.providers import AIProvider, get_default_provider
from ai.usage_tracker import track_usage_from_result
from db.models import DailyLog, Nudge, Signal, TaskBreakdown
from schemas import (
    AiBreakdownRequest,
    AiBreakdownResponse,
    AiDayCloseRequest,
    AiNudgeRequest,
    AiNudgeResponse,
    AiPlanRequest,
    AiPlanResponse,
    CalendarEventDTO,
    DayCloseDTO,
    NudgeDTO,
    PlanBlockDTO,
    PlanDTO,
    TaskDTO,
)
from services import google_service
from services.plans_service import get_block_with_context, save_generated_plan, serialize_signal
from services.profile_service import get_profile
from utils.datetime_utils import as_utc, end_of_day, isoformat_z, parse_day, start_of_day

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

DEFAULT_TOP_OUTCOMES = [
    "Establish execution rhythm",
    "Complete one meaningful block",
    "Close day with review",
]
FALLBACK_SHUTDOWN = "Stop 30 minutes before sleep for tomorrow planning."
FALLBACK_RISK_FLAGS = ["Context switching risk", "Unplanned drift risk"]


def _dump(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    elif isinstance(value, list):
        value = [
            item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item
            for item in value
        ]
    return json.dumps(value, ensure_ascii=True, default=str)


async def generate_json(
    db: Session,
    user_id: str,
    schema: type[SchemaT],
    prompt: str,
    fallback_factory: Callable[[], Any],
    operation: str,
    provider: AIProvider | None = None,
) -> SchemaT:
    """Ask the model for a JSON object matching ``schema``; fall back on any failure."""
    provider = provider or get_default_provider()
    if provider is None:
        return schema.model_validate(fallback_factory())

    try:
        result = await provider.generate(prompt, json_mode=True)
        parsed = schema.model_validate_json(extract_json_object(result.get("content", "")))
    except Exception as e:
        logger.warning(f"AI {operation} generation failed, using deterministic fallback: {e}")
        return schema.model_validate(fallback_factory())

    track_usage_from_result(db, user_id, result, operation=operation)
    return parsed


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

def build_fallback_plan(
    plan_day: date,
    tasks: list[TaskDTO],
    events: list[CalendarEventDTO],
) -> AiPlanResponse:
    selected = list(tasks)[:4]
    top_outcomes = [task.title for task in selected[:3]]

    task_blocks: list[PlanBlockDTO] = []
    for index, task in enumerate(selected):
        start = as_utc(start_of_day(plan_day) + timedelta(hours=9 + index))
        task_blocks.append(
            PlanBlockDTO(
                start_at=start,
                end_at=start + timedelta(hours=1),
                type="task",
                google_task_id=task.id,
                label=task.title,
                rationale="High-priority actionable task",
                priority_score=max(1, 100 - index * 10),
            )
        )

    event_blocks = [
        PlanBlockDTO(
            start_at=event.start_at,
            end_at=event.end_at,
            type="sticky",
            google_task_id=None,
            label=event.title,
            rationale="Calendar hard constraint",
            priority_score=90,
        )
        for event in list(events)[:3]
    ]

    blocks = sorted(event_blocks + task_blocks, key=lambda block: block.start_at)
    return AiPlanResponse(
        top_outcomes=top_outcomes or list(DEFAULT_TOP_OUTCOMES),
        shutdown_suggestion=FALLBACK_SHUTDOWN,
        risk_flags=list(FALLBACK_RISK_FLAGS),
        blocks=blocks,
    )


async def generate_plan(db: Session, user_id: str, payload: AiPlanRequest) -> PlanDTO:
    plan_day = parse_day(payload.date)

    events: list[CalendarEventDTO] = []
    tasks: list[TaskDTO] = []
    try:
        events = await run_in_threadpool(google_service.get_calendar_events_for_date, db, user_id, plan_day)
        tasks = await run_in_threadpool(google_service.get_tasks, db, user_id, None, False)
    except Exception as e:
        # Plan without Google data when the account is not connected or the API fails.
        logger.warning(f"Google sync skipped for plan generation: {e}")
        events = []
        tasks = []

    profile = get_profile(db, user_id)
    prompt = "\n".join([
        "You are Omni, an execution coach.",
        "Return strict JSON only with fields: topOutcomes, shutdownSuggestion, riskFlags, blocks.",
        "Each block must have: startAt,endAt,type(task|sticky|break),googleTaskId,label,rationale,priorityScore.",
        f"Date: {plan_day.isoformat()}",
        f"Energy: {payload.energy}",
        f"Coach mode: {payload.coach_mode or profile.coach_mode}",
        f"Sticky blocks preference: {_dump(payload.sticky_blocks or [])}",
        f"Calendar events: {_dump(events)}",
        f"Tasks: {_dump(tasks)}",
        "Prioritize realism, include breaks, and avoid overlapping blocks.",
    ])

    generated = await generate_json(
        db,
        user_id,
        AiPlanResponse,
        prompt,
        lambda: build_fallback_plan(plan_day, tasks, events),
        operation="plan",
    )
    return save_generated_plan(db, user_id, plan_day, generated)


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------

def fallback_nudge(trigger_type: str) -> AiNudgeResponse:
    if trigger_type == "drift":
        return AiNudgeResponse(
            recommended_action="break",
            alternatives=["Take a 5-minute reset", "Shrink scope to one subtask", "Swap to easier block"],
            rationale="Attention is slipping; a short reset improves odds of re-entry.",
        )
    return AiNudgeResponse(
        recommended_action="continue",
        alternatives=["Continue current plan", "Shrink to one deliverable", "Reschedule last 15 minutes"],
        rationale="Current trajectory is acceptable with minor scope control.",
    )


async def generate_nudge(db: Session, user_id: str, payload: AiNudgeRequest) -> NudgeDTO:
    block_id = str(payload.plan_block_id)
    context = get_block_with_context(db, user_id, block_id)

    remaining = payload.remaining_time_minutes if payload.remaining_time_minutes is not None else "unknown"
    prompt = "\n".join([
        "You are Omni nudge engine.",
        "Return strict JSON only with fields: recommendedAction, alternatives, rationale, updatedBlocks(optional).",
        "recommendedAction must be one of continue|shrink|swap|break|reschedule.",
        f"Trigger: {payload.trigger_type}",
        f"Signal payload: {_dump(payload.signal_payload)}",
        f"Remaining minutes: {remaining}",
        f"Current block: {_dump(context.block)}",
        f"Plan: {_dump(context.plan)}",
        f"Recent signals: {_dump(context.recent_signals)}",
        "Keep alternatives concise.",
    ])

    generated = await generate_json(
        db,
        user_id,
        AiNudgeResponse,
        prompt,
        lambda: fallback_nudge(payload.trigger_type),
        operation="nudge",
    )

    row = Nudge(
        user_id=user_id,
        trigger_type=payload.trigger_type,
        recommended_action=generated.recommended_action,
        alternatives=json.dumps(generated.alternatives, ensure_ascii=True),
        related_block_id=block_id,
        rationale=generated.rationale,
    )
    db.add(row)
    db.flush()

    return NudgeDTO(
        id=row.id,
        user_id=user_id,
        ts=as_utc(row.ts),
        trigger_type=row.trigger_type,
        recommended_action=row.recommended_action,
        alternatives=generated.alternatives,
        accepted_action=row.accepted_action,
        related_block_id=row.related_block_id,
        rationale=row.rationale,
        updated_blocks=generated.updated_blocks,
    )


# ---------------------------------------------------------------------------
# Task breakdown
# ---------------------------------------------------------------------------

def fallback_breakdown(title: str) -> AiBreakdownResponse:
    return AiBreakdownResponse.model_validate({
        "subtasks": [
            {"title": f"Clarify scope for {title}", "estimatedMinutes": 15, "order": 0},
            {"title": f"Execute core work for {title}", "estimatedMinutes": 45, "order": 1},
            {"title": f"Review and finalize {title}", "estimatedMinutes": 20, "order": 2},
        ]
    })


async def generate_breakdown(db: Session, user_id: str, payload: AiBreakdownRequest) -> AiBreakdownResponse:
    prompt = "\n".join([
        "Break a task into practical subtasks.",
        "Return strict JSON only with field subtasks: [{title, estimatedMinutes, order}].",
        f"Task: {payload.title}",
        f"Due at: {isoformat_z(payload.due_at) if payload.due_at else 'none'}",
        f"Google task id: {payload.google_task_id or 'none'}",
    ])

    generated = await generate_json(
        db,
        user_id,
        AiBreakdownResponse,
        prompt,
        lambda: fallback_breakdown(payload.title),
        operation="breakdown",
    )

    db.add(
        TaskBreakdown(
            user_id=user_id,
            google_task_id=payload.google_task_id,
            parent_title=payload.title,
            subtasks=_dump(generated.subtasks),
        )
    )
    db.flush()
    return generated


# ---------------------------------------------------------------------------
# Day close
# ---------------------------------------------------------------------------

def fallback_day_close(completed_outcomes: int, completed_tasks: int) -> DayCloseDTO:
    return DayCloseDTO(
        summary=f"You completed {completed_outcomes} outcomes with {completed_tasks} tasks marked done.",
        tomorrow_top3=[
            "Finish highest-impact pending task",
            "Protect first deep-work block",
            "Review blockers before noon",
        ],
        tomorrow_adjustments=[
            "Schedule an early break to prevent drift",
            "Shrink tasks to 45-minute chunks",
            "Do a check-in at mid-block",
        ],
    )


async def generate_day_close(db: Session, user_id: str, payload: AiDayCloseRequest) -> DayCloseDTO:
    close_day = parse_day(payload.date)
    day_start: datetime = start_of_day(close_day)
    day_end: datetime = end_of_day(close_day)

    signals = (
        db.query(Signal)
        .filter(Signal.user_id == user_id, Signal.ts >= day_start, Signal.ts <= day_end)
        .order_by(Signal.ts.asc())
        .all()
    )
    completed_task_ids = google_service.cached_completed_task_ids(
        db, user_id, day_start, start_of_day(close_day + timedelta(days=1))
    )
    signal_summaries = [
        serialize_signal(row).model_dump(mode="json", by_alias=True, include={"type", "ts", "payload"})
        for row in signals
    ]

    prompt = "\n".join([
        "Generate concise day-close coaching output.",
        "Return strict JSON only: {summary, tomorrowTop3, tomorrowAdjustments}",
        f"Date: {close_day.isoformat()}",
        f"Completed outcomes: {_dump(payload.completed_outcomes)}",
        f"Biggest blocker: {payload.biggest_blocker or 'none'}",
        f"Energy end: {payload.energy_end or 'unknown'}",
        f"Notes: {payload.notes or 'none'}",
        f"Signals: {_dump(signal_summaries)}",
        f"Completed task count: {len(completed_task_ids)}",
    ])

    generated = await generate_json(
        db,
        user_id,
        DayCloseDTO,
        prompt,
        lambda: fallback_day_close(len(payload.completed_outcomes), len(completed_task_ids)),
        operation="day_close",
    )

    row = (
        db.query(DailyLog)
        .filter(DailyLog.user_id == user_id, DailyLog.log_date == close_day)
        .first()
    )
    if row is None:
        row = DailyLog(user_id=user_id, log_date=close_day)
        db.add(row)
    row.summary = generated.summary
    row.completed_outcomes = _dump(payload.completed_outcomes)
    row.biggest_blocker = payload.biggest_blocker
    row.energy_end = payload.energy_end
    db.flush()
    return generated
