from __future__ import annotations

import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import Plan, PlanBlock, Signal  # noqa: E402
from schemas import AiPlanResponse, PlanBlockDTO  # noqa: E402
from services.plans_service import (  # noqa: E402
    apply_updated_blocks,
    get_block_with_context,
    get_plan_by_date,
    save_generated_plan,
)


USER_ID = "5d1f8c4e-2a6b-4f0e-8d55-0b7f3b9f4c31"


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _plan_payload(labels: list[str]) -> AiPlanResponse:
    return AiPlanResponse.model_validate({
        "topOutcomes": ["Ship draft"],
        "shutdownSuggestion": "Wrap up at 18:00",
        "riskFlags": ["Meetings"],
        "blocks": [
            {
                "startAt": f"2026-03-04T{10 - index:02d}:00:00Z",
                "endAt": f"2026-03-04T{10 - index:02d}:45:00Z",
                "type": "task",
                "label": label,
                "rationale": "Important",
                "priorityScore": 80 - index,
            }
            for index, label in enumerate(labels)
        ],
    })


def test_save_generated_plan_is_idempotent_per_user_and_date():
    db = _new_db()

    first = save_generated_plan(db, USER_ID, "2026-03-04", _plan_payload(["A", "B", "C"]))
    db.commit()
    second = save_generated_plan(db, USER_ID, "2026-03-04", _plan_payload(["D"]))
    db.commit()

    assert first.id == second.id
    assert db.query(Plan).filter(Plan.user_id == USER_ID).count() == 1
    assert db.query(PlanBlock).filter(PlanBlock.plan_id == first.id).count() == 1
    assert [block.label for block in second.blocks] == ["D"]


def test_plan_blocks_are_returned_in_start_order():
    db = _new_db()
    save_generated_plan(db, USER_ID, date(2026, 3, 4), _plan_payload(["late", "middle", "early"]))
    db.commit()

    plan = get_plan_by_date(db, USER_ID, "2026-03-04")
    assert plan is not None
    assert plan.plan_date == "2026-03-04"
    assert [block.label for block in plan.blocks] == ["early", "middle", "late"]
    assert plan.blocks[0].start_at == datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc)
    assert get_plan_by_date(db, USER_ID, "2026-03-05") is None
    assert get_plan_by_date(db, "other-user", "2026-03-04") is None


def test_block_context_includes_parent_plan_and_recent_signals():
    db = _new_db()
    plan = save_generated_plan(db, USER_ID, "2026-03-04", _plan_payload(["A"]))
    for minute in range(12):
        db.add(
            Signal(
                user_id=USER_ID,
                type="checkin",
                ts=datetime(2026, 3, 4, 9, minute),
                payload=json.dumps({"focus": 7}),
            )
        )
    db.commit()

    context = get_block_with_context(db, USER_ID, plan.blocks[0].id)
    assert context.block.label == "A"
    assert context.plan.id == plan.id
    assert context.plan.blocks == []
    assert len(context.recent_signals) == 10
    assert context.recent_signals[0].ts.minute == 11

    with pytest.raises(LookupError):
        get_block_with_context(db, "other-user", plan.blocks[0].id)


def test_apply_updated_blocks_updates_inserts_and_rejects_orphans():
    db = _new_db()
    plan = save_generated_plan(db, USER_ID, "2026-03-04", _plan_payload(["A"]))
    existing = plan.blocks[0]

    moved = existing.model_copy(update={
        "start_at": datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc),
        "end_at": datetime(2026, 3, 4, 15, 30, tzinfo=timezone.utc),
        "label": "A (moved)",
    })
    inserted = PlanBlockDTO(
        plan_id=plan.id,
        start_at=datetime(2026, 3, 4, 16, 0, tzinfo=timezone.utc),
        end_at=datetime(2026, 3, 4, 16, 15, tzinfo=timezone.utc),
        type="break",
        label="Reset",
        rationale="Recover",
    )

    updated = apply_updated_blocks(db, USER_ID, [moved, inserted])
    db.commit()

    assert [block.label for block in updated] == ["A (moved)", "Reset"]
    assert updated[0].id == existing.id
    assert updated[1].id and updated[1].plan_id == plan.id
    assert db.query(PlanBlock).filter(PlanBlock.plan_id == plan.id).count() == 2

    orphan = inserted.model_copy(update={"plan_id": None})
    with pytest.raises(ValueError, match="planId"):
        apply_updated_blocks(db, USER_ID, [orphan])
