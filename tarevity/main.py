import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tarevity.cache.layer import cache_layer
from tarevity.core.config import get_settings
from tarevity.core.exceptions import TarevityError
from tarevity.database import async_session
from tarevity.routers import cron, notifications, tasks
from tarevity.scheduling.daily import MidnightRefresher
from tarevity.services.refresh_service import NotificationRefreshService

logger = logging.getLogger(__name__)


async def refresh_all_users():
    async with async_session() as db:
        return await NotificationRefreshService.refresh_all(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    await cache_layer.init_cache()

    refresher = None
    if settings.midnight_refresh_enabled:
        refresher = MidnightRefresher(refresh_all_users, tz_name=settings.timezone)
        refresher.start()

    yield

    if refresher is not None:
        await refresher.stop()
    await cache_layer.close()


app = FastAPI(
    title="Tarevity API",
    description="Task management with due-date notifications",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(tasks.router)
app.include_router(notifications.router)
app.include_router(cron.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(TarevityError)
async def tarevity_error_handler(request: Request, exc: TarevityError):
    # details stay in the logs
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Failed to process notifications"},
    )


@app.get("/")
async def root():
    return {
        "message": "Welcome to Tarevity API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "cache": cache_layer.get_stats()}
