import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from tarevity.notifications.classifier import (
    UPCOMING_WINDOW_DAYS,
    Bucket,
    OriginKey,
    classify,
    notification_message,
    notification_title,
    to_calendar_date,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A notification that should be active for a task right now."""

    key: OriginKey
    task_id: int
    bucket: Bucket
    title: str
    message: str
    due_date: date


def build_candidates(
    tasks: Iterable,
    today: date,
    upcoming_window: int = UPCOMING_WINDOW_DAYS,
    muted_task_ids: Iterable[int] = (),
) -> list[Candidate]:
    """
    Classify every open task and keep the ones sitting in a bucket.

    Tasks only need `id`, `title`, `due_date` and `completed` attributes.
    Completed, undated and muted tasks are ignored; a task whose due date
    cannot be parsed is logged and skipped.
    """
    muted = set(muted_task_ids)
    candidates = []

    for task in tasks:
        if task.completed or task.due_date is None or task.id in muted:
            continue

        try:
            due = to_calendar_date(task.due_date)
        except ValueError:
            logger.warning(
                f"Skipping task {task.id}: malformed due date {task.due_date!r}"
            )
            continue

        result = classify(due, today, upcoming_window=upcoming_window)
        if result.bucket is None:
            continue

        candidates.append(
            Candidate(
                key=OriginKey(result.severity, task.id),
                task_id=task.id,
                bucket=result.bucket,
                title=notification_title(result.bucket),
                message=notification_message(task.title, result),
                due_date=due,
            )
        )

    return candidates
