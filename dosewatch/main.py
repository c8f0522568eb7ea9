from contextlib import asynccontextmanager
from typing import Optional
import logging
import sys

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from dosewatch.core.config import settings
from dosewatch.reminders.api import router as reminders_router
from dosewatch.reminders.config import settings as reminder_settings
from dosewatch.reminders.runtime import ReminderRuntime, build_runtime

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting up DoseWatch backend...")
    if app.state.runtime is None:
        app.state.runtime = build_runtime()

    runtime: ReminderRuntime = app.state.runtime
    if reminder_settings.EMBEDDED_SCHEDULER:
        runtime.start()
        logger.info("⏳ [Startup] Embedded job scheduler running")
    else:
        logger.info("ℹ️ [Startup] Job scheduler runs in the Celery worker")

    yield

    # Shutdown
    logger.info("Shutting down DoseWatch backend...")
    runtime.stop(timeout=reminder_settings.JOB_POLL_INTERVAL_SECONDS * 2)
    logger.info("✅ DoseWatch backend shutdown complete")


def create_application(
    runtime: Optional[ReminderRuntime] = None,
    metrics_enabled: Optional[bool] = None,
) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="DoseWatch - medication and appointment reminders",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.include_router(reminders_router, prefix=f"{settings.API_V1_STR}/reminders", tags=["reminders"])

    if metrics_enabled if metrics_enabled is not None else reminder_settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    return app


app = create_application()


if __name__ == "__main__":
    uvicorn.run(
        "dosewatch.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.ENVIRONMENT == "development",
    )
