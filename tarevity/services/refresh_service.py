import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.cache.layer import cache_layer, get_lock_for_key
from tarevity.core.config import Settings, get_settings
from tarevity.core.exceptions import RefreshError, TaskFetchError
from tarevity.notifications.candidates import build_candidates
from tarevity.notifications.reconciler import NotificationReconciler, ReconcileResult
from tarevity.repositories.notifications import (
    NotificationPreferenceRepository,
    NotificationRepository,
)
from tarevity.repositories.tasks import TaskRepository
from tarevity.scheduling.daily import local_today
from tarevity.services.notification_service import notifications_key

logger = logging.getLogger(__name__)


def reconcile_lock_key(user_id: str) -> str:
    return f"reconcile:{user_id}"


@dataclass
class RefreshSummary:
    users: int = 0
    updates: int = 0
    failed: int = 0


class NotificationRefreshService:
    @staticmethod
    async def refresh_user(
        user_id: str,
        db: AsyncSession,
        today: date | None = None,
        settings: Settings | None = None,
    ) -> ReconcileResult:
        """
        One reconciliation pass for one user.

        Passes for the same user run one at a time inside this process; the
        unique origin key in the store covers concurrent workers.
        """
        settings = settings or get_settings()
        today = today or local_today(settings.timezone)

        async with get_lock_for_key(reconcile_lock_key(user_id)):
            try:
                tasks = await TaskRepository(db).list_open_tasks_with_due_date(user_id)
                muted = await NotificationPreferenceRepository(db).muted_task_ids(user_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to load tasks for user {user_id}: {e}")
                await db.rollback()
                raise TaskFetchError("Could not load tasks", user_id) from e

            candidates = build_candidates(
                tasks,
                today,
                upcoming_window=settings.upcoming_window_days,
                muted_task_ids=muted,
            )

            reconciler = NotificationReconciler(NotificationRepository(db))
            try:
                result = await reconciler.reconcile(user_id, candidates)
            except SQLAlchemyError as e:
                logger.error(f"Failed to load notifications for user {user_id}: {e}")
                await db.rollback()
                raise RefreshError("Could not load notifications", user_id) from e

        await cache_layer.delete(notifications_key(user_id))
        return result

    @staticmethod
    async def refresh_all(
        db: AsyncSession,
        today: date | None = None,
        settings: Settings | None = None,
    ) -> RefreshSummary:
        """
        Refresh every user with dated open tasks or active notifications.

        Users whose tasks were all completed still need their leftover
        notifications dismissed, hence the second query.
        """
        settings = settings or get_settings()
        today = today or local_today(settings.timezone)

        try:
            user_ids = set(await TaskRepository(db).list_user_ids_with_open_tasks())
            user_ids.update(await NotificationRepository(db).list_user_ids_with_active())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list users for notification refresh: {e}")
            raise TaskFetchError("Could not load tasks") from e

        summary = RefreshSummary()
        for user_id in sorted(user_ids):
            summary.users += 1
            try:
                result = await NotificationRefreshService.refresh_user(
                    user_id, db, today=today, settings=settings
                )
            except RefreshError as e:
                # one user's aborted pass does not hold up the others
                logger.error(f"Skipping notification refresh for user {user_id}: {e.message}")
                summary.failed += 1
                continue
            summary.updates += result.writes
            summary.failed += result.failed

        logger.info(
            f"Notification refresh for {today.isoformat()}: users={summary.users} "
            f"updates={summary.updates} failed={summary.failed}"
        )
        return summary
