from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from db.models import Signal
from schemas import InsightsTodayDTO
from services.rewards_service import (
    DEFAULT_DRIFT_SIGNAL_MINUTES,
    as_number,
    estimate_drift_minutes,
    round_half_up,
    signal_payload,
)
from utils.datetime_utils import end_of_day, parse_day, start_of_day

DEFAULT_FOCUS_BUCKET = 10
DEFAULT_FOCUS_AVERAGE = 7.0
DEFAULT_DERAIL_LABEL = "Social Media"
DEFAULT_DERAIL_MINUTES = 15

BURNOUT_EXPLANATIONS = {
    "high": "High strain detected. Add longer recovery breaks and reduce task scope.",
    "med": "Moderate strain. Keep recovery blocks and tighten context switching.",
    "low": "Your current workload is manageable. Keep maintaining healthy study breaks.",
}

TIME_BAND_RANGES = {
    "Morning": "8 AM - 12 PM",
    "Afternoon": "12 PM - 4 PM",
    "Evening": "4 PM - 8 PM",
    "Night": "8 PM - 12 AM",
}


def format_hour(hour: int) -> str:
    normalized = hour % 24
    suffix = "PM" if normalized >= 12 else "AM"
    display = 12 if normalized % 12 == 0 else normalized % 12
    return f"{display} {suffix}"


def time_band_label(hour: int) -> str:
    normalized = hour % 24
    if 5 <= normalized < 12:
        return "Morning"
    if 12 <= normalized < 17:
        return "Afternoon"
    if 17 <= normalized < 22:
        return "Evening"
    return "Night"


def best_focus_bucket(checkins: list[Signal]) -> tuple[int, float]:
    """Two-hour UTC bucket with the highest average focus; earlier bucket on ties."""
    buckets: dict[int, list[float]] = {}
    for signal in checkins:
        focus = as_number(signal_payload(signal).get("focus"))
        if focus is None:
            continue
        bucket = (signal.ts.hour // 2) * 2
        buckets.setdefault(bucket, []).append(focus)

    best: tuple[int, float] | None = None
    for bucket in sorted(buckets):
        values = buckets[bucket]
        average = sum(values) / len(values)
        if best is None or average > best[1]:
            best = (bucket, average)
    return best or (DEFAULT_FOCUS_BUCKET, DEFAULT_FOCUS_AVERAGE)


def most_common_derail(drift_signals: list[Signal]) -> tuple[str, int]:
    stats: dict[str, list[float]] = {}
    for signal in drift_signals:
        payload = signal_payload(signal)
        reason = payload.get("derailReason")
        reason = reason.strip() if isinstance(reason, str) else ""
        if not reason:
            apps = payload.get("apps")
            if isinstance(apps, list) and apps and isinstance(apps[0], str):
                reason = apps[0].strip()
        reason = reason or "Distraction"

        minutes = as_number(payload.get("minutes"))
        if minutes is None or minutes <= 0:
            minutes = DEFAULT_DRIFT_SIGNAL_MINUTES
        stats.setdefault(reason, []).append(minutes)

    if not stats:
        return DEFAULT_DERAIL_LABEL, DEFAULT_DERAIL_MINUTES

    # max() returns the first seen reason on ties
    label = max(stats, key=lambda key: len(stats[key]))
    minutes = stats[label]
    return label, round_half_up(sum(minutes) / len(minutes))


def burnout_risk(drift_minutes: int, average_focus: float) -> str:
    if drift_minutes > 45 or average_focus < 4.5:
        return "high"
    if drift_minutes > 20 or average_focus < 6.5:
        return "med"
    return "low"


def compute_insights(signals: list[Signal]) -> InsightsTodayDTO:
    checkins = [signal for signal in signals if signal.type == "checkin"]
    drift_signals = [signal for signal in signals if signal.type == "drift"]

    drift_minutes = estimate_drift_minutes(signals)
    bucket, _ = best_focus_bucket(checkins)
    band = time_band_label(bucket)
    derail_label, derail_minutes = most_common_derail(drift_signals)

    if checkins:
        average_focus = sum(as_number(signal_payload(signal).get("focus")) or 0.0 for signal in checkins) / len(checkins)
    else:
        average_focus = DEFAULT_FOCUS_AVERAGE
    risk = burnout_risk(drift_minutes, average_focus)

    if drift_minutes > 0:
        drift_bullet = f"Manual drift reports totaled {drift_minutes} minutes"
    else:
        drift_bullet = "No drift reported today; keep the same pacing"

    return InsightsTodayDTO(
        drift_minutes_today=drift_minutes,
        best_focus_window=f"{format_hour(bucket)} - {format_hour(bucket + 2)}",
        most_productive_time_label=band,
        most_productive_time_range=TIME_BAND_RANGES[band],
        most_common_derail_label=derail_label,
        most_common_derail_avg_minutes=derail_minutes,
        burnout_risk_level=risk,
        burnout_explanation=BURNOUT_EXPLANATIONS[risk],
        learned_bullets=[
            f"You focus best in {band.lower()} windows",
            f"Most common derail today: {derail_label}",
            drift_bullet,
        ],
    )


def get_today(db: Session, user_id: str, day: str | date | None = None) -> InsightsTodayDTO:
    target_day = parse_day(day)
    signals = (
        db.query(Signal)
        .filter(
            Signal.user_id == user_id,
            Signal.ts >= start_of_day(target_day),
            Signal.ts <= end_of_day(target_day),
        )
        .order_by(Signal.ts.asc())
        .all()
    )
    return compute_insights(signals)
