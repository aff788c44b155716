"""
Due-date urgency classification.

Buckets (first match wins, on calendar days):

- days_until < 0            -> overdue
- days_until == 0           -> due_today
- days_until == 1           -> due_tomorrow
- 2 <= days_until <= window -> upcoming
- anything further out      -> no bucket

Severity collapses the buckets into three tiers. overdue and due_today share
the danger tier, so a task rolling from "due today" to "overdue" keeps the
same origin key and only gets its wording refreshed.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import NamedTuple

UPCOMING_WINDOW_DAYS = 4


class Severity(str, Enum):
    DANGER = "danger"
    WARNING = "warning"
    INFO = "info"


class Bucket(str, Enum):
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_TOMORROW = "due_tomorrow"
    UPCOMING = "upcoming"

    @property
    def severity(self) -> Severity:
        return _SEVERITY_BY_BUCKET[self]


_SEVERITY_BY_BUCKET = {
    Bucket.OVERDUE: Severity.DANGER,
    Bucket.DUE_TODAY: Severity.DANGER,
    Bucket.DUE_TOMORROW: Severity.WARNING,
    Bucket.UPCOMING: Severity.INFO,
}

_TITLES = {
    Bucket.OVERDUE: "Overdue Task",
    Bucket.DUE_TODAY: "Due Today",
    Bucket.DUE_TOMORROW: "Due Tomorrow",
    Bucket.UPCOMING: "Upcoming Deadline",
}


class OriginKey(NamedTuple):
    """Dedup key of a notification: one per (severity tier, task)."""

    severity: Severity
    task_id: int

    @property
    def origin_id(self) -> str:
        # display form only, never parsed back
        return f"{self.severity.value}-{self.task_id}"


@dataclass(frozen=True)
class Classification:
    bucket: Bucket | None
    days_until: int

    @property
    def severity(self) -> Severity | None:
        return self.bucket.severity if self.bucket else None


def to_calendar_date(value) -> date:
    """
    Strip time-of-day from a due date.

    Accepts date, datetime or an ISO-8601 string ("2025-01-10",
    "2025-01-10T15:00:00Z"). Anything else raises ValueError.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # raises ValueError on malformed input
        return datetime.fromisoformat(value.strip()).date()
    raise ValueError(f"Unsupported due date value: {value!r}")


def classify(due_date, today, upcoming_window: int = UPCOMING_WINDOW_DAYS) -> Classification:
    """Classify a due date relative to today. Pure; no side effects."""
    due = to_calendar_date(due_date)
    current = to_calendar_date(today)
    days_until = (due - current).days

    if days_until < 0:
        bucket = Bucket.OVERDUE
    elif days_until == 0:
        bucket = Bucket.DUE_TODAY
    elif days_until == 1:
        bucket = Bucket.DUE_TOMORROW
    elif days_until <= upcoming_window:
        bucket = Bucket.UPCOMING
    else:
        bucket = None

    return Classification(bucket=bucket, days_until=days_until)


def notification_title(bucket: Bucket) -> str:
    return _TITLES[bucket]


def notification_message(task_title: str, classification: Classification) -> str:
    """Human wording for a classified task. Changes as days_until changes."""
    bucket = classification.bucket
    if bucket is None:
        raise ValueError("Cannot describe a task outside every bucket")

    quoted = f'"{task_title}"'
    if bucket is Bucket.OVERDUE:
        days = abs(classification.days_until)
        return f"{quoted} is overdue by {days} day{'s' if days != 1 else ''}"
    if bucket is Bucket.DUE_TODAY:
        return f"{quoted} is due today"
    if bucket is Bucket.DUE_TOMORROW:
        return f"{quoted} is due tomorrow"
    return f"{quoted} is due in {classification.days_until} days"
