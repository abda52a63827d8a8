"""Wire-level DTOs shared by the routers and services.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CoachMode = Literal["gentle", "balanced", "strict"]
EnergyLevel = Literal["low", "med", "high"]
TriggerType = Literal["cadence", "drift", "deadline", "manual"]
RecommendedAction = Literal["continue", "shrink", "swap", "break", "reschedule"]
SignalType = Literal["drift", "checkin", "overload", "deadlineRisk", "manualSwap", "focusSessionStart"]
PlanBlockType = Literal["task", "sticky", "break"]
BurnoutRiskLevel = Literal["low", "med", "high"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class UserProfileDTO(CamelModel):
    id: str
    coach_mode: CoachMode = "balanced"
    checkin_cadence_minutes: int = Field(default=60, gt=0)
    sleep_time: str | None = None
    wake_time: str | None = None
    sleep_suggestions_enabled: bool = True
    pause_monitoring: bool = False
    push_notifications_enabled: bool = True
    energy_profile: dict[str, Any] = Field(default_factory=dict)
    distraction_profile: dict[str, Any] = Field(default_factory=dict)


class ProfilePatchRequest(CamelModel):
    # Omitted fields stay unset; only sleep_time and wake_time accept an explicit null.
    coach_mode: CoachMode = None
    checkin_cadence_minutes: int = Field(default=None, gt=0, le=240)
    sleep_time: str | None = None
    wake_time: str | None = None
    sleep_suggestions_enabled: bool = None
    pause_monitoring: bool = None
    push_notifications_enabled: bool = None
    energy_profile: dict[str, Any] = None
    distraction_profile: dict[str, Any] = None


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------

class CalendarEventDTO(CamelModel):
    source_id: str
    start_at: AwareDatetime
    end_at: AwareDatetime
    title: str
    location: str | None = None
    is_hard_constraint: Literal[True] = True


class TaskDTO(CamelModel):
    id: str
    task_list_id: str
    title: str
    notes: str | None = None
    due_at: AwareDatetime | None = None
    status: Literal["needsAction", "completed"]
    parent_task_id: str | None = None
    updated_at: AwareDatetime
    source: Literal["google"] = "google"


class TaskListDTO(CamelModel):
    id: str
    title: str
    raw: dict[str, Any] = Field(default_factory=dict)


class OAuthStartRequest(CamelModel):
    callback_scheme: str | None = None


class OAuthStartResponse(CamelModel):
    url: str


class CreateTaskRequest(CamelModel):
    task_list_id: str | None = None
    title: str = Field(min_length=1)
    notes: str | None = None
    due_at: AwareDatetime | None = None
    estimated_minutes: int | None = Field(default=None, gt=0)


class CompleteTaskResponse(CamelModel):
    ok: Literal[True] = True
    task: TaskDTO


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

class PlanBlockDTO(CamelModel):
    id: str | None = None
    plan_id: str | None = None
    user_id: str | None = None
    start_at: AwareDatetime
    end_at: AwareDatetime
    type: PlanBlockType
    google_task_id: str | None = None
    label: str
    rationale: str
    priority_score: float = 0


class PlanDTO(CamelModel):
    id: str | None = None
    user_id: str | None = None
    plan_date: str
    top_outcomes: list[str] = Field(default_factory=list)
    shutdown_suggestion: str | None = None
    risk_flags: list[str] = Field(default_factory=list)
    blocks: list[PlanBlockDTO] = Field(default_factory=list)


class SignalDTO(CamelModel):
    id: str | None = None
    user_id: str | None = None
    type: SignalType
    ts: datetime | None = None
    related_block_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class BlockContext(CamelModel):
    block: PlanBlockDTO
    plan: PlanDTO
    recent_signals: list[SignalDTO] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# AI
# ---------------------------------------------------------------------------

class AiPlanRequest(CamelModel):
    date: str
    energy: EnergyLevel
    coach_mode: CoachMode | None = None
    sticky_blocks: list[str] | None = None


class AiPlanResponse(CamelModel):
    top_outcomes: list[str]
    shutdown_suggestion: str | None = None
    risk_flags: list[str]
    blocks: list[PlanBlockDTO]


class AiNudgeRequest(CamelModel):
    plan_block_id: UUID
    trigger_type: TriggerType
    signal_payload: dict[str, Any] = Field(default_factory=dict)
    remaining_time_minutes: int | None = Field(default=None, gt=0)


class AiNudgeResponse(CamelModel):
    recommended_action: RecommendedAction
    alternatives: list[str]
    rationale: str
    updated_blocks: list[PlanBlockDTO] | None = None


class NudgeDTO(CamelModel):
    id: str | None = None
    user_id: str | None = None
    ts: datetime | None = None
    trigger_type: TriggerType
    recommended_action: RecommendedAction
    alternatives: list[str] = Field(default_factory=list)
    accepted_action: RecommendedAction | None = None
    related_block_id: str | None = None
    rationale: str
    updated_blocks: list[PlanBlockDTO] | None = None


class AiBreakdownRequest(CamelModel):
    google_task_id: str | None = None
    title: str
    due_at: AwareDatetime | None = None


class Subtask(CamelModel):
    title: str
    estimated_minutes: int = Field(gt=0)
    order: int = Field(ge=0)


class AiBreakdownResponse(CamelModel):
    subtasks: list[Subtask]


class AiDayCloseRequest(CamelModel):
    date: str
    completed_outcomes: list[str]
    biggest_blocker: str | None = None
    energy_end: EnergyLevel | None = None
    notes: str | None = None


class DayCloseDTO(CamelModel):
    summary: str
    tomorrow_top3: list[str] = Field(default_factory=list)
    tomorrow_adjustments: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

class CheckinRequest(CamelModel):
    plan_block_id: UUID
    done: bool | None = None
    progress: float = Field(ge=0, le=100)
    focus: float = Field(ge=1, le=10)
    energy: EnergyLevel | None = None
    happened_tags: list[str] | None = None
    derail_reason: str | None = None
    drift_minutes: int | None = Field(default=None, ge=0, le=60)


class DriftRequest(CamelModel):
    plan_block_id: UUID | None = None
    minutes: int | None = Field(default=None, gt=0)
    derail_reason: str | None = None
    apps: list[str] | None = None


class FocusSessionStartRequest(CamelModel):
    plan_block_id: UUID | None = None
    planned_minutes: int | None = Field(default=None, gt=0)


class AcceptNudgeRequest(CamelModel):
    accepted_action: RecommendedAction
    updated_blocks: list[PlanBlockDTO] | None = None


class SignalSubmitResponse(CamelModel):
    ok: Literal[True] = True
    signal_id: str
    nudge: NudgeDTO | None = None


class AcceptNudgeResponse(CamelModel):
    ok: Literal[True] = True
    updated_blocks: list[PlanBlockDTO] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class InsightsTodayDTO(CamelModel):
    drift_minutes_today: int = Field(ge=0)
    best_focus_window: str
    most_productive_time_label: str
    most_productive_time_range: str
    most_common_derail_label: str
    most_common_derail_avg_minutes: int = Field(ge=0)
    burnout_risk_level: BurnoutRiskLevel
    burnout_explanation: str
    learned_bullets: list[str]


class RewardBadgeDTO(CamelModel):
    id: str
    title: str
    unlocked: bool


class RewardsWeeklyDTO(CamelModel):
    omni_score: int = Field(ge=0, le=100)
    encouragement: str
    days_completed_this_week: int = Field(ge=0, le=7)
    day_states: list[bool] = Field(min_length=7, max_length=7)
    badges: list[RewardBadgeDTO]


class RewardsClaimRequest(CamelModel):
    date: str | None = None


class OkMessageResponse(CamelModel):
    ok: Literal[True] = True
    message: str


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------

class IntegrationsStatusDTO(CamelModel):
    google_calendar_connected: bool
    google_tasks_connected: bool
    drift_tracking_mode: Literal["manual"] = "manual"
    explanation: str
