import uuid

from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    Date, DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base
from utils.datetime_utils import utcnow_naive


def _uuid() -> str:
    return str(uuid.uuid4())


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Text, primary_key=True)  # identity provider user id
    coach_mode = Column(Text, nullable=False, default="balanced")  # gentle | balanced | strict
    checkin_cadence_minutes = Column(Integer, nullable=False, default=60)
    sleep_time = Column(Text)
    wake_time = Column(Text)
    sleep_suggestions_enabled = Column(Boolean, nullable=False, default=True)
    pause_monitoring = Column(Boolean, nullable=False, default=False)
    push_notifications_enabled = Column(Boolean, nullable=False, default=True)
    energy_profile = Column(Text, default="{}")  # JSON object
    distraction_profile = Column(Text, default="{}")  # JSON object
    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class GoogleConnection(Base):
    __tablename__ = "google_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, unique=True)
    google_sub = Column(Text)
    scopes = Column(Text)
    access_token_enc = Column(Text, nullable=False)
    refresh_token_enc = Column(Text)
    expiry_ts = Column(DateTime)
    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class CalendarEventCache(Base):
    __tablename__ = "calendar_events_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    source_id = Column(Text, nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    title = Column(Text, nullable=False)
    location = Column(Text)
    raw = Column(Text)  # JSON
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class TaskList(Base):
    __tablename__ = "task_lists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    google_tasklist_id = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    raw = Column(Text)  # JSON
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class TaskCache(Base):
    __tablename__ = "tasks_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    google_task_id = Column(Text, nullable=False)
    google_tasklist_id = Column(Text, nullable=False, default="@default")
    title = Column(Text, nullable=False)
    notes = Column(Text)
    due_at = Column(DateTime)
    status = Column(Text, nullable=False, default="needsAction")  # needsAction | completed
    parent_task_id = Column(Text)
    updated_at = Column(DateTime, nullable=False, default=utcnow_naive)
    raw = Column(Text)  # JSON


class Plan(Base):
    __tablename__ = "plans"

    id = Column(Text, primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False)
    plan_date = Column(Date, nullable=False)
    top_outcomes = Column(Text, default="[]")  # JSON array
    shutdown_suggestion = Column(Text)
    risk_flags = Column(Text, default="[]")  # JSON array
    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)

    blocks = relationship(
        "PlanBlock",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanBlock.start_at",
    )


class PlanBlock(Base):
    __tablename__ = "plan_blocks"

    id = Column(Text, primary_key=True, default=_uuid)
    plan_id = Column(Text, ForeignKey("plans.id"), nullable=False)
    user_id = Column(Text, nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    type = Column(Text, nullable=False)  # task | sticky | break
    google_task_id = Column(Text)
    label = Column(Text, nullable=False)
    rationale = Column(Text, nullable=False, default="")
    priority_score = Column(Float, nullable=False, default=0.0)

    plan = relationship("Plan", back_populates="blocks")


class Signal(Base):
    __tablename__ = "signals"

    id = Column(Text, primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False)
    type = Column(Text, nullable=False)  # drift | checkin | overload | deadlineRisk | manualSwap | focusSessionStart
    ts = Column(DateTime, nullable=False, default=utcnow_naive)
    related_block_id = Column(Text)
    payload = Column(Text, default="{}")  # JSON object


class Nudge(Base):
    __tablename__ = "nudges"

    id = Column(Text, primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False)
    ts = Column(DateTime, nullable=False, default=utcnow_naive)
    trigger_type = Column(Text, nullable=False)  # cadence | drift | deadline | manual
    recommended_action = Column(Text, nullable=False)  # continue | shrink | swap | break | reschedule
    alternatives = Column(Text, default="[]")  # JSON array
    accepted_action = Column(Text)
    related_block_id = Column(Text)
    rationale = Column(Text, nullable=False, default="")


class TaskBreakdown(Base):
    __tablename__ = "task_breakdowns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    google_task_id = Column(Text)
    parent_title = Column(Text, nullable=False)
    subtasks = Column(Text, default="[]")  # JSON array
    created_at = Column(DateTime, default=utcnow_naive)


class DailyLog(Base):
    __tablename__ = "daily_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    log_date = Column(Date, nullable=False)
    summary = Column(Text)
    completed_outcomes = Column(Text, default="[]")  # JSON array
    biggest_blocker = Column(Text)
    energy_end = Column(Text)  # low | med | high
    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class ModelUsageEvent(Base):
    __tablename__ = "model_usage_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    operation = Column(Text, nullable=False)  # plan | nudge | breakdown | day_close
    model_used = Column(Text, nullable=False)
    tokens_in = Column(Integer, nullable=False, default=0)
    tokens_out = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow_naive)


# Indexes
Index("uq_calendar_events_user_source", CalendarEventCache.user_id, CalendarEventCache.source_id, unique=True)
Index("uq_task_lists_user_list", TaskList.user_id, TaskList.google_tasklist_id, unique=True)
Index("uq_tasks_cache_user_task", TaskCache.user_id, TaskCache.google_task_id, unique=True)
Index("idx_tasks_cache_user_status", TaskCache.user_id, TaskCache.status, TaskCache.updated_at)
Index("uq_plans_user_date", Plan.user_id, Plan.plan_date, unique=True)
Index("idx_plan_blocks_plan", PlanBlock.plan_id, PlanBlock.start_at)
Index("idx_plan_blocks_user", PlanBlock.user_id)
Index("idx_signals_user_ts", Signal.user_id, Signal.ts)
Index("idx_nudges_user_ts", Nudge.user_id, Nudge.ts)
Index("idx_task_breakdowns_user", TaskBreakdown.user_id, TaskBreakdown.created_at)
Index("uq_daily_logs_user_date", DailyLog.user_id, DailyLog.log_date, unique=True)
Index("idx_model_usage_user_date", ModelUsageEvent.user_id, ModelUsageEvent.created_at)
