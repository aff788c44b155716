from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.database import get_db
from tarevity.models import TaskCreate, TaskResponse, TaskUpdate
from tarevity.routers.deps import get_current_user_id
from tarevity.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _not_found(task_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Task with id {task_id} not found",
    )


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a new task"""
    return await TaskService.create_task(user_id, task_data, db)


@router.get("/", response_model=list[TaskResponse])
async def get_tasks(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    completed: bool | None = None,
    priority: str | None = Query(default=None, pattern="^(low|medium|high)$"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await TaskService.get_all_tasks(user_id, db, skip, limit, completed, priority)


@router.get("/calendar", response_model=list[TaskResponse])
async def get_calendar_tasks(
    start: date,
    end: date,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Tasks due within [start, end]"""
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start",
        )
    return await TaskService.get_calendar_tasks(user_id, db, start, end)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get a specific task by ID"""

    task = await TaskService.get_task(task_id, user_id, db)

    if not task:
        raise _not_found(task_id)
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_data: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskService.update_task(task_id, user_id, task_data, db)
    if not task:
        raise _not_found(task_id)
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a task"""
    result = await TaskService.delete_task(task_id, user_id, db)

    if not result:
        raise _not_found(task_id)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def mark_task_complete(
    task_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Mark a task as completed"""
    task = await TaskService.complete_task(task_id, user_id, db)
    if not task:
        raise _not_found(task_id)
    return task
