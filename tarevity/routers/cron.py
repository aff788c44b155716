from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.core.config import SettingsDep
from tarevity.database import get_db
from tarevity.models import RefreshResponse
from tarevity.routers.deps import require_cron_secret
from tarevity.services.refresh_service import NotificationRefreshService

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/update-notifications")
async def notification_update_status():
    return {
        "status": "Notification update service is available. Use POST to trigger updates.",
        "time": datetime.now(timezone.utc).isoformat(),
    }


@router.post(
    "/update-notifications",
    response_model=RefreshResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def update_notifications(settings: SettingsDep, db: AsyncSession = Depends(get_db)):
    """Reconcile notifications of every user; meant for a scheduled caller"""
    summary = await NotificationRefreshService.refresh_all(db, settings=settings)
    return RefreshResponse(
        message="Notifications updated successfully",
        updates=summary.updates,
        timestamp=datetime.now(timezone.utc),
    )
