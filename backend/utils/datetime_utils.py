import re
from dataclasses import dataclass
from datetime import datetime, date, timedelta, timezone

_DAY_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_naive() -> datetime:
    """Current UTC time without tzinfo, the storage convention for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def parse_day(value: str | date | None) -> date:
    """Parse a YYYY-MM-DD string; None means today (UTC)."""
    if value is None or value == "":
        return today_utc()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not _DAY_PATTERN.fullmatch(raw):
        raise ValueError("date must be YYYY-MM-DD")
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValueError("date must be YYYY-MM-DD")


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def isoformat_z(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def start_of_day(d: date) -> datetime:
    """Return start of day as a naive UTC datetime."""
    return datetime(d.year, d.month, d.day)


def end_of_day(d: date) -> datetime:
    """Return the last representable millisecond of the day as a naive UTC datetime."""
    return datetime(d.year, d.month, d.day, 23, 59, 59, 999000)


def start_of_week(d: date) -> date:
    """Return Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


@dataclass(frozen=True)
class WeekWindow:
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return start_of_day(self.start)

    @property
    def end_exclusive(self) -> datetime:
        return start_of_day(self.end + timedelta(days=1))

    @property
    def days(self) -> list[date]:
        return [self.start + timedelta(days=offset) for offset in range(7)]


def week_window(d: date) -> WeekWindow:
    """Monday..Sunday window (UTC) containing d."""
    start = start_of_week(d)
    return WeekWindow(start=start, end=start + timedelta(days=6))
