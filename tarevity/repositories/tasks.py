from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.models import Task


class TaskRepository:
    """Read-only task queries used by the notification refresh."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_open_tasks_with_due_date(self, user_id: str) -> list[Task]:
        query = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.completed == False)  # noqa: E712
            .where(Task.due_date.is_not(None))
            .order_by(Task.due_date)
        )
        result = await self.db.exec(query)
        return list(result.all())

    async def list_user_ids_with_open_tasks(self) -> list[str]:
        query = (
            select(Task.user_id)
            .where(Task.completed == False)  # noqa: E712
            .where(Task.due_date.is_not(None))
            .distinct()
        )
        result = await self.db.exec(query)
        return list(result.all())
