import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.cache.decorators import async_cached, async_cached_expire
from tarevity.core.exceptions import NotificationWriteError
from tarevity.models import DismissalReason, NotificationRead
from tarevity.repositories.notifications import (
    NotificationPreferenceRepository,
    NotificationRepository,
)

logger = logging.getLogger(__name__)


def notifications_key(user_id: str, *_, **__) -> str:
    return f"notifications:{user_id}"


class NotificationService:
    """User-facing notification operations. Every write drops the cached list."""

    @staticmethod
    @async_cached(notifications_key, l2_ttl=60)
    async def list_active(user_id: str, db: AsyncSession):
        rows = await NotificationRepository(db).list_active(user_id)
        return [NotificationRead.from_row(row) for row in rows]

    @staticmethod
    @async_cached_expire(notifications_key)
    async def set_read(
        user_id: str, db: AsyncSession, read: bool, notification_id: int | None = None
    ) -> int:
        """Mark one notification (or every active one when no id) read/unread."""
        try:
            return await NotificationRepository(db).set_read(
                user_id, read, notification_id=notification_id
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to update read state for user {user_id}: {e}")
            raise NotificationWriteError("Could not update notifications", user_id) from e

    @staticmethod
    @async_cached_expire(notifications_key)
    async def dismiss(user_id: str, notification_id: int, db: AsyncSession) -> bool:
        repository = NotificationRepository(db)
        notification = await repository.get(user_id, notification_id)
        if notification is None or notification.dismissed:
            return False
        try:
            await repository.dismiss_many([notification.id], DismissalReason.USER)
        except SQLAlchemyError as e:
            logger.error(f"Failed to dismiss notification {notification_id}: {e}")
            raise NotificationWriteError("Could not dismiss notification", user_id) from e
        return True

    @staticmethod
    @async_cached_expire(notifications_key)
    async def dismiss_for_task(user_id: str, task_id: int, db: AsyncSession) -> int:
        """Mute a task and dismiss everything it has raised so far."""
        try:
            await NotificationPreferenceRepository(db).set_muted(user_id, task_id, True)
            return await NotificationRepository(db).dismiss_for_task(
                user_id, task_id, DismissalReason.USER
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to dismiss notifications of task {task_id}: {e}")
            raise NotificationWriteError("Could not dismiss notifications", user_id) from e

    @staticmethod
    async def unmute_task(user_id: str, task_id: int, db: AsyncSession):
        """Lift the mute; the next refresh raises the task's notifications again."""
        try:
            await NotificationPreferenceRepository(db).set_muted(user_id, task_id, False)
            await NotificationRepository(db).release_user_dismissals(user_id, task_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to unmute task {task_id}: {e}")
            raise NotificationWriteError("Could not unmute task", user_id) from e

    @staticmethod
    @async_cached_expire(notifications_key)
    async def supersede_for_task(user_id: str, task_id: int, db: AsyncSession) -> int:
        """Task completed or deleted: its notifications no longer apply."""
        return await NotificationRepository(db).dismiss_for_task(
            user_id, task_id, DismissalReason.SUPERSEDED
        )

    @staticmethod
    @async_cached_expire(notifications_key)
    async def reset(user_id: str, db: AsyncSession) -> int:
        """Permanently delete every notification of the user."""
        try:
            deleted = await NotificationRepository(db).delete_all_for_user(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to reset notifications for user {user_id}: {e}")
            raise NotificationWriteError("Could not reset notifications", user_id) from e
        logger.info(f"Deleted {deleted} notifications for user {user_id}")
        return deleted
