"""Weekly Omni Score, day completion states and badges.

Everything is computed from stored rows on demand; nothing is cached. The
pure helpers take plain rows so they can be exercised without a database.
"""

from __future__ import annotations

import json
import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from sqlalchemy.orm import Session

from db.models import DailyLog, Plan, PlanBlock, Signal
from schemas import OkMessageResponse, RewardBadgeDTO, RewardsWeeklyDTO
from services.google_service import cached_completed_task_ids
from utils.datetime_utils import parse_day, week_window

DAY_COMPLETION_THRESHOLD = 0.6
DEFAULT_DRIFT_SIGNAL_MINUTES = 5
FOCUS_SIGNAL_TYPES = {"checkin", "focusSessionStart"}


def signal_payload(signal: Signal) -> dict:
    if not signal.payload:
        return {}
    try:
        value = json.loads(signal.payload)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def as_number(value) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_drift_minutes(signals: Iterable[Signal]) -> int:
    """Drift signals count their minutes (5 when absent); check-ins their driftMinutes."""
    total = 0.0
    for signal in signals:
        payload = signal_payload(signal)
        if signal.type == "drift":
            minutes = as_number(payload.get("minutes"))
            total += minutes if minutes is not None and minutes > 0 else DEFAULT_DRIFT_SIGNAL_MINUTES
        elif signal.type == "checkin":
            minutes = as_number(payload.get("driftMinutes"))
            if minutes is not None and minutes > 0:
                total += minutes
    return max(0, round_half_up(total))


def collect_completed_block_ids(
    blocks: Iterable[PlanBlock],
    signals: Iterable[Signal],
    completed_task_ids: set[str],
) -> set[str]:
    completed: set[str] = set()
    for signal in signals:
        if signal.type != "checkin" or not signal.related_block_id:
            continue
        payload = signal_payload(signal)
        progress = as_number(payload.get("progress"))
        if payload.get("done") is True or (progress is not None and progress >= 100):
            completed.add(signal.related_block_id)

    for block in blocks:
        if block.google_task_id and block.google_task_id in completed_task_ids:
            completed.add(block.id)
    return completed


def _completion_rate(blocks: list[PlanBlock], completed_ids: set[str]) -> float:
    work_blocks = [block for block in blocks if block.type != "break"]
    if not work_blocks:
        return 0.0
    done = sum(1 for block in work_blocks if block.id in completed_ids)
    return done / len(work_blocks)


def compute_omni_score(
    completion_rate: float,
    checkin_compliance: float,
    day_close_done: bool,
    drift_minutes: int,
) -> int:
    drift_score = max(0.0, 1 - drift_minutes / 60)
    raw = (
        completion_rate * 40
        + checkin_compliance * 25
        + (1 if day_close_done else 0) * 15
        + drift_score * 20
    )
    return max(0, min(100, round_half_up(raw)))


def encouragement_for(score: int) -> str:
    if score >= 85:
        return "Strong control today. Keep this execution rhythm."
    if score >= 70:
        return "Solid momentum. Tighten transitions to raise your score."
    return "You are rebuilding consistency. Start with one protected block."


def compute_badges(
    day_states: list[bool],
    signals: list[Signal],
    weekly_drift_minutes: int,
) -> list[RewardBadgeDTO]:
    focus_hours = [signal.ts.hour for signal in signals if signal.type in FOCUS_SIGNAL_TYPES]
    before_noon = sum(1 for hour in focus_hours if hour < 12)
    at_night = sum(1 for hour in focus_hours if hour >= 20)

    ratings = [
        rating
        for rating in (as_number(signal_payload(signal).get("focus")) for signal in signals if signal.type == "checkin")
        if rating is not None
    ]
    average_focus = sum(ratings) / len(ratings) if ratings else 0.0
    days_completed = sum(1 for state in day_states if state)

    return [
        RewardBadgeDTO(id="7-day-streak", title="7-Day Streak", unlocked=all(day_states)),
        RewardBadgeDTO(id="early-bird", title="Early Bird", unlocked=before_noon >= 3),
        RewardBadgeDTO(id="deep-focus", title="Deep Focus", unlocked=average_focus >= 8),
        RewardBadgeDTO(id="night-owl", title="Night Owl", unlocked=at_night >= 2),
        RewardBadgeDTO(id="consistency-king", title="Consistency King", unlocked=days_completed >= 5),
        RewardBadgeDTO(id="zero-drift", title="Zero Drift", unlocked=weekly_drift_minutes == 0),
    ]


def compute_weekly(
    target_day: date,
    blocks: list[PlanBlock],
    signals: list[Signal],
    daily_log_days: set[date],
    completed_task_ids: set[str],
) -> RewardsWeeklyDTO:
    window = week_window(target_day)
    completed_ids = collect_completed_block_ids(blocks, signals, completed_task_ids)

    blocks_by_day: dict[date, list[PlanBlock]] = defaultdict(list)
    for block in blocks:
        blocks_by_day[block.start_at.date()].append(block)

    day_states = [
        _completion_rate(blocks_by_day.get(day, []), completed_ids) >= DAY_COMPLETION_THRESHOLD
        or day in daily_log_days
        for day in window.days
    ]

    today_blocks = blocks_by_day.get(target_day, [])
    today_work_blocks = [block for block in today_blocks if block.type != "break"]
    today_signals = [signal for signal in signals if signal.ts.date() == target_day]
    checkins_today = sum(1 for signal in today_signals if signal.type == "checkin")

    score = compute_omni_score(
        completion_rate=_completion_rate(today_blocks, completed_ids),
        checkin_compliance=min(1.0, checkins_today / max(1, len(today_work_blocks))),
        day_close_done=target_day in daily_log_days,
        drift_minutes=estimate_drift_minutes(today_signals),
    )

    return RewardsWeeklyDTO(
        omni_score=score,
        encouragement=encouragement_for(score),
        days_completed_this_week=sum(1 for state in day_states if state),
        day_states=day_states,
        badges=compute_badges(day_states, signals, estimate_drift_minutes(signals)),
    )


def get_weekly(db: Session, user_id: str, day: str | date | None = None) -> RewardsWeeklyDTO:
    target_day = parse_day(day)
    window = week_window(target_day)

    plan_ids = [
        row.id
        for row in db.query(Plan.id)
        .filter(Plan.user_id == user_id, Plan.plan_date >= window.start, Plan.plan_date <= window.end)
        .all()
    ]
    blocks: list[PlanBlock] = []
    if plan_ids:
        blocks = (
            db.query(PlanBlock)
            .filter(PlanBlock.user_id == user_id, PlanBlock.plan_id.in_(plan_ids))
            .order_by(PlanBlock.start_at.asc())
            .all()
        )

    signals = (
        db.query(Signal)
        .filter(
            Signal.user_id == user_id,
            Signal.ts >= window.start_at,
            Signal.ts < window.end_exclusive,
        )
        .order_by(Signal.ts.asc())
        .all()
    )
    daily_log_days = {
        row.log_date
        for row in db.query(DailyLog.log_date)
        .filter(DailyLog.user_id == user_id, DailyLog.log_date >= window.start, DailyLog.log_date <= window.end)
        .all()
    }
    completed_task_ids = cached_completed_task_ids(db, user_id, window.start_at, window.end_exclusive)

    return compute_weekly(target_day, blocks, signals, daily_log_days, completed_task_ids)


def claim_weekly(db: Session, user_id: str, day: str | date | None = None) -> OkMessageResponse:
    weekly = get_weekly(db, user_id, day)
    if weekly.days_completed_this_week >= 3:
        message = "Weekly reward claimed. Keep stacking focused days."
    else:
        message = "Reward claimed. Build consistency to unlock higher tiers."
    return OkMessageResponse(message=message)
