"""
Notification deduplication.

A reconciliation pass compares the candidates computed for a user (one per
task currently sitting in a bucket) with the user's active notifications:

- unknown key: insert
- known key, same wording: nothing
- known key, new wording: update in place, keep `read`
- active key with no candidate: dismiss as superseded

Keys dismissed by the user stay dismissed while the task remains in the
same tier. Keys dismissed as superseded come back when the task re-enters
the tier.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from tarevity.models import DismissalReason, Notification
from tarevity.notifications.candidates import Candidate
from tarevity.notifications.classifier import OriginKey

logger = logging.getLogger(__name__)


class ReconcileStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    DISMISSED = "dismissed"
    FAILED = "failed"


@dataclass
class ItemResult:
    key: OriginKey
    status: ReconcileStatus
    error: str | None = None


@dataclass
class ReconcileResult:
    user_id: str
    items: list[ItemResult] = field(default_factory=list)

    def add(self, key: OriginKey, status: ReconcileStatus, error: str | None = None):
        self.items.append(ItemResult(key=key, status=status, error=error))

    @property
    def counts(self) -> Counter:
        return Counter(item.status for item in self.items)

    @property
    def writes(self) -> int:
        counts = self.counts
        return (
            counts[ReconcileStatus.CREATED]
            + counts[ReconcileStatus.UPDATED]
            + counts[ReconcileStatus.DISMISSED]
        )

    @property
    def failed(self) -> int:
        return self.counts[ReconcileStatus.FAILED]


@dataclass(frozen=True)
class ActiveNotification:
    """Plain copy of an active row, safe to read after a session rollback."""

    id: int
    key: OriginKey
    title: str
    message: str
    urgency: str
    due_date: date

    @classmethod
    def from_row(cls, row: Notification) -> "ActiveNotification":
        return cls(
            id=row.id,
            key=row.origin_key,
            title=row.title,
            message=row.message,
            urgency=row.urgency,
            due_date=row.due_date,
        )


def _matches(notification: ActiveNotification, candidate: Candidate) -> bool:
    return (
        notification.message == candidate.message
        and notification.title == candidate.title
        and notification.urgency == candidate.bucket.value
        and notification.due_date == candidate.due_date
    )


class NotificationReconciler:
    """
    Apply a user's candidate set to the notification store.

    `repository` needs `list_active`, `find_by_origin`, `upsert` and
    `dismiss_many` (see NotificationRepository). Callers serialize passes
    per user; the store's unique origin key backs that up.
    """

    def __init__(self, repository):
        self.repository = repository

    async def reconcile(self, user_id: str, candidates: Iterable[Candidate]) -> ReconcileResult:
        result = ReconcileResult(user_id=user_id)

        # a failed read aborts the pass. Rows are copied up front: a failed
        # write rolls the session back and expires whatever it had loaded.
        active = [
            ActiveNotification.from_row(row)
            for row in await self.repository.list_active(user_id)
        ]
        active_by_key = {}
        for notification in active:
            active_by_key.setdefault(notification.key, notification)

        wanted = set()
        for candidate in candidates:
            if candidate.key in wanted:
                continue
            wanted.add(candidate.key)

            try:
                status = await self._apply(
                    user_id, candidate, active_by_key.get(candidate.key)
                )
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to write notification {candidate.key.origin_id} "
                    f"for user {user_id}: {e}"
                )
                result.add(candidate.key, ReconcileStatus.FAILED, error=str(e))
            else:
                result.add(candidate.key, status)

        stale = [n for n in active if n.key not in wanted]
        if stale:
            try:
                await self.repository.dismiss_many(
                    [n.id for n in stale], DismissalReason.SUPERSEDED
                )
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to dismiss {len(stale)} stale notifications "
                    f"for user {user_id}: {e}"
                )
                for notification in stale:
                    result.add(notification.key, ReconcileStatus.FAILED, error=str(e))
            else:
                for notification in stale:
                    result.add(notification.key, ReconcileStatus.DISMISSED)

        counts = result.counts
        logger.info(
            f"Reconciled notifications for user {user_id}: "
            + ", ".join(f"{status.value}={n}" for status, n in sorted(counts.items()))
        )
        return result

    async def _apply(
        self, user_id: str, candidate: Candidate, existing: ActiveNotification | None
    ) -> ReconcileStatus:
        if existing is None:
            previous = await self.repository.find_by_origin(user_id, candidate.key)
            if previous is None:
                await self.repository.upsert(user_id, candidate, reset_read=True)
                return ReconcileStatus.CREATED
            if previous.dismissed and previous.dismissal_reason == DismissalReason.USER.value:
                return ReconcileStatus.SKIPPED
            # superseded earlier, the task is back in this tier
            await self.repository.upsert(user_id, candidate, reset_read=True)
            return ReconcileStatus.CREATED

        if _matches(existing, candidate):
            return ReconcileStatus.UNCHANGED

        await self.repository.upsert(user_id, candidate, reset_read=False)
        return ReconcileStatus.UPDATED
