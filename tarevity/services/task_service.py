from datetime import date, datetime, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.cache.decorators import async_cached, async_cached_expire
from tarevity.models import Task, TaskCreate, TaskUpdate
from tarevity.services.notification_service import NotificationService


def task_key(task_id: int, user_id: str, *_, **__) -> str:
    return f"task:{user_id}:{task_id}"


async def _get_owned(task_id: int, user_id: str, db: AsyncSession):
    task = await db.get(Task, task_id)
    if not task or task.user_id != user_id:
        return None
    return task


class TaskService:
    @staticmethod
    async def create_task(user_id: str, task_data: TaskCreate, db: AsyncSession):
        task = Task.model_validate(task_data, update={"user_id": user_id})
        db.add(task)
        await db.commit()
        await db.refresh(task)
        return task

    @staticmethod
    async def get_all_tasks(
        user_id: str,
        db: AsyncSession,
        skip: int,
        limit: int,
        completed: bool | None = None,
        priority: str | None = None,
    ):
        query = select(Task).where(Task.user_id == user_id)
        if completed is not None:
            query = query.where(Task.completed == completed)
        if priority:
            query = query.where(Task.priority == priority)
        query = query.offset(skip).limit(limit).order_by(Task.created_at.desc())

        result = await db.exec(query)
        tasks = result.all()
        return tasks

    @staticmethod
    async def get_calendar_tasks(user_id: str, db: AsyncSession, start: date, end: date):
        """Tasks due between start and end, both inclusive."""
        query = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.due_date >= start)
            .where(Task.due_date <= end)
            .order_by(Task.due_date, Task.id)
        )
        result = await db.exec(query)
        return result.all()

    @staticmethod
    @async_cached(task_key, l2_ttl=120)
    async def get_task(task_id: int, user_id: str, db: AsyncSession):
        return await _get_owned(task_id, user_id, db)

    @staticmethod
    @async_cached_expire(task_key)
    async def update_task(
        task_id: int, user_id: str, task_data: TaskUpdate, db: AsyncSession
    ):
        task = await _get_owned(task_id, user_id, db)
        if not task:
            return None
        update_data = task_data.model_dump(exclude_unset=True)
        task.sqlmodel_update(update_data)
        task.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(task)
        if task.completed or task.due_date is None:
            await NotificationService.supersede_for_task(user_id, task.id, db)
        return task

    @staticmethod
    @async_cached_expire(task_key)
    async def delete_task(task_id: int, user_id: str, db: AsyncSession):
        task = await _get_owned(task_id, user_id, db)
        if not task:
            return False
        await db.delete(task)
        await db.commit()
        await NotificationService.supersede_for_task(user_id, task_id, db)
        return True

    @staticmethod
    @async_cached_expire(task_key)
    async def complete_task(task_id: int, user_id: str, db: AsyncSession):
        task = await _get_owned(task_id, user_id, db)
        if not task:
            return None

        task.completed = True
        task.updated_at = datetime.now(timezone.utc)

        await db.commit()
        await db.refresh(task)
        await NotificationService.supersede_for_task(user_id, task.id, db)
        return task
