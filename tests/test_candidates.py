"""Unit tests for building notification candidates from tasks"""

import logging
from datetime import date, timedelta
from types import SimpleNamespace

from tarevity.notifications.candidates import build_candidates
from tarevity.notifications.classifier import Bucket, OriginKey, Severity

TODAY = date(2025, 1, 8)


def task(id, due_date, title="Task", completed=False):
    return SimpleNamespace(id=id, title=title, due_date=due_date, completed=completed)


def test_pay_rent_two_days_ahead():
    candidates = build_candidates([task(7, date(2025, 1, 10), "Pay rent")], TODAY)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.key == OriginKey(Severity.INFO, 7)
    assert candidate.key.origin_id == "info-7"
    assert candidate.bucket is Bucket.UPCOMING
    assert candidate.title == "Upcoming Deadline"
    assert candidate.message == '"Pay rent" is due in 2 days'
    assert candidate.due_date == date(2025, 1, 10)


def test_pay_rent_on_the_due_date():
    candidates = build_candidates([task(7, date(2025, 1, 10), "Pay rent")], date(2025, 1, 10))

    assert candidates[0].key.origin_id == "danger-7"
    assert candidates[0].bucket is Bucket.DUE_TODAY


def test_ignores_completed_undated_far_and_muted_tasks():
    tasks = [
        task(1, TODAY, completed=True),
        task(2, None),
        task(3, TODAY + timedelta(days=10)),
        task(4, TODAY - timedelta(days=1)),
        task(5, TODAY + timedelta(days=1)),
    ]

    candidates = build_candidates(tasks, TODAY, muted_task_ids={5})

    assert [c.task_id for c in candidates] == [4]
    assert candidates[0].bucket is Bucket.OVERDUE


def test_malformed_due_date_is_skipped_and_logged(caplog):
    tasks = [task(1, "not-a-date"), task(2, "2025-01-09")]

    with caplog.at_level(logging.WARNING, logger="tarevity.notifications.candidates"):
        candidates = build_candidates(tasks, TODAY)

    assert [c.task_id for c in candidates] == [2]
    assert candidates[0].bucket is Bucket.DUE_TOMORROW
    assert "Skipping task 1" in caplog.text


def test_upcoming_window_is_configurable():
    tasks = [task(1, TODAY + timedelta(days=6))]

    assert build_candidates(tasks, TODAY) == []
    assert len(build_candidates(tasks, TODAY, upcoming_window=7)) == 1
