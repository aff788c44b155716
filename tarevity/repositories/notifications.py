from typing import Iterable

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.models import (
    DismissalReason,
    Notification,
    NotificationPreference,
    get_utc_now,
)
from tarevity.notifications.candidates import Candidate
from tarevity.notifications.classifier import OriginKey


def _dialect_insert(db: AsyncSession):
    """Pick the INSERT construct that supports ON CONFLICT for this backend."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert not supported for dialect {name}")


async def _write(db: AsyncSession, stmt):
    """Run a Core DML statement in the session's transaction and commit it."""
    try:
        # the session's own connection; AsyncSession.execute is deprecated by sqlmodel
        connection = await db.connection()
        result = await connection.execute(stmt)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    return result


class NotificationRepository:
    """Notification storage scoped to a session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, user_id: str) -> list[Notification]:
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.dismissed == False)  # noqa: E712
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.exec(query)
        return list(result.all())

    async def get(self, user_id: str, notification_id: int) -> Notification | None:
        query = select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        ).execution_options(populate_existing=True)
        result = await self.db.exec(query)
        return result.first()

    async def find_by_origin(self, user_id: str, key: OriginKey) -> Notification | None:
        query = select(Notification).where(
            Notification.user_id == user_id,
            Notification.task_id == key.task_id,
            Notification.severity == key.severity.value,
        ).execution_options(populate_existing=True)
        result = await self.db.exec(query)
        return result.first()

    async def upsert(self, user_id: str, candidate: Candidate, reset_read: bool):
        """
        Insert or refresh the row for a candidate's origin key in one statement.

        The row always comes out active. `read` is only cleared when
        `reset_read` is set, so in-place refreshes keep the user's read state.
        """
        now = get_utc_now()
        insert = _dialect_insert(self.db)
        stmt = insert(Notification.__table__).values(
            user_id=user_id,
            task_id=candidate.task_id,
            severity=candidate.key.severity.value,
            urgency=candidate.bucket.value,
            title=candidate.title,
            message=candidate.message,
            due_date=candidate.due_date,
            read=False,
            dismissed=False,
            dismissal_reason=None,
            created_at=now,
            updated_at=now,
        )
        changes = {
            "urgency": stmt.excluded.urgency,
            "title": stmt.excluded.title,
            "message": stmt.excluded.message,
            "due_date": stmt.excluded.due_date,
            "dismissed": False,
            "dismissal_reason": None,
            "updated_at": stmt.excluded.updated_at,
        }
        if reset_read:
            changes["read"] = False
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "task_id", "severity"], set_=changes
        )
        await _write(self.db, stmt)

    async def dismiss_many(
        self, ids: Iterable[int], reason: DismissalReason = DismissalReason.SUPERSEDED
    ) -> int:
        ids = list(ids)
        if not ids:
            return 0
        stmt = (
            update(Notification)
            .where(Notification.id.in_(ids))
            .where(Notification.dismissed == False)  # noqa: E712
            .values(dismissed=True, dismissal_reason=reason.value, updated_at=get_utc_now())
        )
        result = await _write(self.db, stmt)
        return result.rowcount

    async def dismiss_for_task(
        self, user_id: str, task_id: int, reason: DismissalReason
    ) -> int:
        query = select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.task_id == task_id,
            Notification.dismissed == False,  # noqa: E712
        )
        result = await self.db.exec(query)
        return await self.dismiss_many(result.all(), reason)

    async def release_user_dismissals(self, user_id: str, task_id: int) -> int:
        """Relabel a task's user dismissals as superseded so the next pass can revive them."""
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.task_id == task_id)
            .where(Notification.dismissal_reason == DismissalReason.USER.value)
            .values(dismissal_reason=DismissalReason.SUPERSEDED.value)
        )
        result = await _write(self.db, stmt)
        return result.rowcount

    async def set_read(
        self, user_id: str, read: bool, notification_id: int | None = None
    ) -> int:
        """Set the read flag on one notification, or on all active ones."""
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.dismissed == False)  # noqa: E712
            .values(read=read)
        )
        if notification_id is not None:
            stmt = stmt.where(Notification.id == notification_id)
        result = await _write(self.db, stmt)
        return result.rowcount

    async def delete_all_for_user(self, user_id: str) -> int:
        stmt = delete(Notification).where(Notification.user_id == user_id)
        result = await _write(self.db, stmt)
        return result.rowcount

    async def list_user_ids_with_active(self) -> list[str]:
        query = (
            select(Notification.user_id)
            .where(Notification.dismissed == False)  # noqa: E712
            .distinct()
        )
        result = await self.db.exec(query)
        return list(result.all())


class NotificationPreferenceRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def set_muted(self, user_id: str, task_id: int, muted: bool):
        insert = _dialect_insert(self.db)
        now = get_utc_now()
        stmt = insert(NotificationPreference.__table__).values(
            user_id=user_id, task_id=task_id, muted=muted, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "task_id"],
            set_={"muted": muted, "updated_at": now},
        )
        await _write(self.db, stmt)

    async def muted_task_ids(self, user_id: str) -> set[int]:
        query = select(NotificationPreference.task_id).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.muted == True,  # noqa: E712
        )
        result = await self.db.exec(query)
        return set(result.all())
