from datetime import datetime, timezone
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.core.config import SettingsDep, get_settings
from tarevity.core.exceptions import RefreshError
from tarevity.database import get_db
from tarevity.models import (
    CountResponse,
    DismissRequest,
    MarkReadRequest,
    NotificationRead,
    RefreshResponse,
    SessionCheckRequest,
    SessionCheckResponse,
    TaskNotificationsRequest,
)
from tarevity.routers.deps import get_current_user_id
from tarevity.scheduling.daily import is_first_session_of_day, local_now, next_midnight
from tarevity.scheduling.throttle import RefreshThrottle
from tarevity.services.notification_service import NotificationService
from tarevity.services.refresh_service import NotificationRefreshService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@lru_cache
def get_refresh_throttle() -> RefreshThrottle:
    return RefreshThrottle(get_settings().refresh_throttle_seconds)


@router.get("/", response_model=list[NotificationRead])
async def list_notifications(
    user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
):
    """Active notifications, newest first"""
    return await NotificationService.list_active(user_id, db)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_notifications(
    settings: SettingsDep,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    throttle: RefreshThrottle = Depends(get_refresh_throttle),
):
    """Recalculate the caller's notifications from their open tasks"""
    now = datetime.now(timezone.utc)
    if not throttle.try_acquire(user_id):
        return RefreshResponse(
            message="Refresh skipped, notifications were refreshed moments ago",
            updates=0,
            timestamp=now,
            throttled=True,
        )

    try:
        result = await NotificationRefreshService.refresh_user(
            user_id, db, settings=settings
        )
    except RefreshError:
        throttle.reset(user_id)
        raise

    return RefreshResponse(
        message="Notifications updated successfully",
        updates=result.writes,
        timestamp=now,
    )


@router.post("/session-check", response_model=SessionCheckResponse)
async def session_check(
    body: SessionCheckRequest,
    settings: SettingsDep,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    throttle: RefreshThrottle = Depends(get_refresh_throttle),
):
    """
    First-session-of-the-day check.

    The client sends the date of its last check and stores the returned
    watermark; `next_refresh_at` is when it should call again.
    """
    now = local_now(settings.timezone)
    today = now.date()
    first_session = is_first_session_of_day(body.last_check, today)

    updates = 0
    if first_session:
        result = await NotificationRefreshService.refresh_user(
            user_id, db, today=today, settings=settings
        )
        updates = result.writes
        throttle.try_acquire(user_id)

    return SessionCheckResponse(
        first_session=first_session,
        updates=updates,
        watermark=today,
        next_refresh_at=next_midnight(now),
    )


@router.post("/mark-read", response_model=CountResponse)
async def mark_read(
    body: MarkReadRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if body.id is None and not body.all:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing id or all parameter",
        )

    state = "unread" if body.mark_as_unread else "read"
    count = await NotificationService.set_read(
        user_id,
        db,
        read=not body.mark_as_unread,
        notification_id=None if body.all else body.id,
    )
    if not body.all and count == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )

    message = (
        f"All notifications marked as {state}"
        if body.all
        else f"Notification marked as {state}"
    )
    return CountResponse(message=message, count=count)


@router.post("/dismiss", response_model=CountResponse)
async def dismiss_notification(
    body: DismissRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not await NotificationService.dismiss(user_id, body.id, db):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        )
    return CountResponse(message="Notification dismissed", count=1)


@router.post("/dismiss-for-task", response_model=CountResponse)
async def dismiss_task_notifications(
    body: TaskNotificationsRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Dismiss a task's notifications and stop raising new ones for it"""
    count = await NotificationService.dismiss_for_task(user_id, body.task_id, db)
    return CountResponse(message="Notifications for task dismissed", count=count)


@router.delete("/mute/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unmute_task(
    task_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.unmute_task(user_id, task_id, db)


@router.post("/reset", response_model=CountResponse)
async def reset_notifications(
    user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)
):
    """Delete every notification of the caller"""
    count = await NotificationService.reset(user_id, db)
    return CountResponse(message="Notification system reset", count=count)
