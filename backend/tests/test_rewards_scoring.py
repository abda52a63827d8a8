from __future__ import annotations

import json
import sys
from datetime import date, datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import DailyLog, Plan, PlanBlock, Signal, TaskCache  # noqa: E402
from services.insights_service import get_today  # noqa: E402
from services.rewards_service import (  # noqa: E402
    claim_weekly,
    collect_completed_block_ids,
    compute_omni_score,
    compute_weekly,
    encouragement_for,
    estimate_drift_minutes,
    get_weekly,
)


USER_ID = "2b0c2d1e-8f8e-4a8e-9a57-5f1f0d3e6a11"


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _signal(signal_type: str, ts: datetime, payload: dict | None = None, block_id: str | None = None) -> Signal:
    return Signal(
        user_id=USER_ID,
        type=signal_type,
        ts=ts,
        related_block_id=block_id,
        payload=json.dumps(payload or {}),
    )


def _block(block_id: str, start: datetime, block_type: str = "task", google_task_id: str | None = None) -> PlanBlock:
    return PlanBlock(
        id=block_id,
        plan_id="plan-1",
        user_id=USER_ID,
        start_at=start,
        end_at=start.replace(hour=start.hour + 1),
        type=block_type,
        google_task_id=google_task_id,
        label=block_id,
        rationale="",
        priority_score=50.0,
    )


def test_drift_estimate_uses_default_minutes_and_checkin_drift():
    ts = datetime(2026, 3, 4, 10, 0)
    signals = [
        _signal("drift", ts, {"minutes": 12}),
        _signal("drift", ts, {"minutes": None, "apps": ["Slack"]}),
        _signal("drift", ts, {"minutes": 0}),
        _signal("checkin", ts, {"focus": 6, "driftMinutes": 7.5}),
        _signal("checkin", ts, {"focus": 6}),
        _signal("focusSessionStart", ts, {"plannedMinutes": 25}),
    ]
    # 12 + 5 + 5 + 7.5 rounds half up
    assert estimate_drift_minutes(signals) == 30


def test_completed_blocks_come_from_checkins_and_completed_tasks():
    ts = datetime(2026, 3, 4, 9, 0)
    blocks = [
        _block("b-done", ts),
        _block("b-progress", ts),
        _block("b-task", ts, google_task_id="g-1"),
        _block("b-open", ts, google_task_id="g-2"),
    ]
    signals = [
        _signal("checkin", ts, {"done": True, "progress": 10}, block_id="b-done"),
        _signal("checkin", ts, {"progress": 100}, block_id="b-progress"),
        _signal("checkin", ts, {"progress": 99}, block_id="b-open"),
        _signal("drift", ts, {"done": True}, block_id="b-open"),
    ]
    completed = collect_completed_block_ids(blocks, signals, {"g-1"})
    assert completed == {"b-done", "b-progress", "b-task"}


def test_omni_score_formula_and_clamp():
    assert compute_omni_score(1.0, 1.0, True, 0) == 100
    assert compute_omni_score(0.0, 0.0, False, 120) == 0
    # 0.5*40 + 0.5*25 + 0 + (1 - 30/60)*20 = 42.5 -> 43
    assert compute_omni_score(0.5, 0.5, False, 30) == 43


@pytest.mark.parametrize(
    "score,expected",
    [
        (85, "Strong control today. Keep this execution rhythm."),
        (84, "Solid momentum. Tighten transitions to raise your score."),
        (70, "Solid momentum. Tighten transitions to raise your score."),
        (69, "You are rebuilding consistency. Start with one protected block."),
    ],
)
def test_encouragement_thresholds(score, expected):
    assert encouragement_for(score) == expected


def test_weekly_day_states_score_and_badges():
    target = date(2026, 3, 4)  # Wednesday
    monday = datetime(2026, 3, 2, 9, 0)
    wednesday = datetime(2026, 3, 4, 9, 0)
    blocks = [
        _block("mon-1", monday),
        _block("mon-2", monday.replace(hour=10)),
        _block("mon-break", monday.replace(hour=11), block_type="break"),
        _block("wed-1", wednesday),
        _block("wed-2", wednesday.replace(hour=10)),
    ]
    signals = [
        _signal("checkin", monday.replace(hour=9, minute=50), {"done": True, "focus": 9}, block_id="mon-1"),
        _signal("checkin", monday.replace(hour=10, minute=50), {"progress": 100, "focus": 9}, block_id="mon-2"),
        _signal("checkin", wednesday.replace(minute=50), {"done": True, "focus": 8}, block_id="wed-1"),
        _signal("focusSessionStart", wednesday.replace(hour=21), {}),
        _signal("checkin", wednesday.replace(hour=22), {"progress": 40, "focus": 8}, block_id="wed-2"),
    ]

    weekly = compute_weekly(target, blocks, signals, {date(2026, 3, 6)}, set())

    assert weekly.day_states == [True, False, False, False, True, False, False]
    assert weekly.days_completed_this_week == 2
    # completion 0.5*40 + compliance 1*25 + no day close + no drift 20 = 65
    assert weekly.omni_score == 65
    assert weekly.encouragement == "You are rebuilding consistency. Start with one protected block."

    badges = {badge.id: badge.unlocked for badge in weekly.badges}
    assert list(badges) == [
        "7-day-streak",
        "early-bird",
        "deep-focus",
        "night-owl",
        "consistency-king",
        "zero-drift",
    ]
    assert badges["early-bird"] is True
    assert badges["deep-focus"] is True
    assert badges["night-owl"] is True
    assert badges["zero-drift"] is True
    assert badges["7-day-streak"] is False
    assert badges["consistency-king"] is False


def test_get_weekly_reads_store_and_claim_message_tracks_completed_days():
    db = _new_db()
    plan = Plan(user_id=USER_ID, plan_date=date(2026, 3, 3), top_outcomes="[]", risk_flags="[]")
    db.add(plan)
    db.flush()
    db.add(
        PlanBlock(
            plan_id=plan.id,
            user_id=USER_ID,
            start_at=datetime(2026, 3, 3, 9, 0),
            end_at=datetime(2026, 3, 3, 10, 0),
            type="task",
            google_task_id="g-1",
            label="Write report",
        )
    )
    db.add(
        TaskCache(
            user_id=USER_ID,
            google_task_id="g-1",
            title="Write report",
            status="completed",
            updated_at=datetime(2026, 3, 3, 11, 0),
        )
    )
    db.add(DailyLog(user_id=USER_ID, log_date=date(2026, 3, 2)))
    db.add(DailyLog(user_id=USER_ID, log_date=date(2026, 3, 4)))
    # outside the week, ignored
    db.add(_signal("drift", datetime(2026, 3, 9, 8, 0), {"minutes": 30}))
    db.commit()

    weekly = get_weekly(db, USER_ID, "2026-03-04")
    assert weekly.day_states[:3] == [True, True, True]
    assert weekly.days_completed_this_week == 3
    # no blocks today: 0 + 0 + day close 15 + drift 20
    assert weekly.omni_score == 35
    assert {b.id: b.unlocked for b in weekly.badges}["zero-drift"] is True

    claim = claim_weekly(db, USER_ID, "2026-03-04")
    assert claim.ok is True
    assert claim.message == "Weekly reward claimed. Keep stacking focused days."

    other = claim_weekly(db, "someone-else", "2026-03-04")
    assert other.message == "Reward claimed. Build consistency to unlock higher tiers."


def test_get_weekly_rejects_malformed_date():
    db = _new_db()
    with pytest.raises(ValueError, match="date must be YYYY-MM-DD"):
        get_weekly(db, USER_ID, "not-a-date")


@pytest.mark.parametrize("raw", ["2026-03-04garbage", "20260304", "2026-03-04T99:99", "2026-3-4"])
def test_weekly_and_insights_reject_non_calendar_day_strings(raw):
    db = _new_db()
    with pytest.raises(ValueError, match="date must be YYYY-MM-DD"):
        get_weekly(db, USER_ID, raw)
    with pytest.raises(ValueError, match="date must be YYYY-MM-DD"):
        get_today(db, USER_ID, raw)
