# booking_engine/main.py
"""
FastAPI application for the booking engine.

The lifespan starts a background thread that runs the status lifecycle
job on a fixed interval, so elapsed bookings are completed even when no
Celery beat is deployed.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
import logging
import threading
from typing import Any, AsyncGenerator, Dict

from fastapi import FastAPI, Response

from .core.config import settings
from .database import SessionLocal, get_db_pool_status
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes import availability, bookings, jobs
from .services.status_lifecycle_service import StatusLifecycleService

logger = logging.getLogger(__name__)


def _status_job_worker_sync(shutdown_event: threading.Event) -> None:
    """Run the status lifecycle job every poll interval until shutdown."""
    poll_interval = settings.status_job_poll_interval_seconds
    run_now = settings.status_job_run_on_startup

    while not shutdown_event.is_set():
        if not run_now and shutdown_event.wait(poll_interval):
            break
        run_now = False

        db = SessionLocal()
        try:
            result = StatusLifecycleService(db).run()
            if result.updated_count:
                logger.info(
                    f"Status poll completed {result.updated_count} bookings",
                    extra={"run_id": result.run_id},
                )
        except Exception as e:
            # The job reports its own failures; this guards session setup
            logger.error(f"Status poll iteration failed: {str(e)}", exc_info=True)
        finally:
            db.close()


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"Booking engine API starting up (environment: {settings.environment})")

    worker_task: asyncio.Task[None] | None = None
    stop_event: threading.Event | None = None
    if not settings.is_testing and settings.status_job_poll_interval_seconds > 0:
        stop_event = threading.Event()
        worker_task = asyncio.create_task(asyncio.to_thread(_status_job_worker_sync, stop_event))

    yield

    logger.info("Booking engine API shutting down...")
    if worker_task is not None:
        if stop_event is not None:
            stop_event.set()
        with contextlib.suppress(BaseException):
            await worker_task


app = FastAPI(
    title="Booking Engine API",
    description="Tutoring schedule bookings, availability and status lifecycle",
    version="1.0.0",
    lifespan=app_lifespan,
)

register_error_handlers(app)

app.include_router(bookings.router, prefix="/bookings")
app.include_router(availability.router, prefix="/availability")
app.include_router(jobs.router, prefix="/jobs")


@app.get("/health")
def health_check() -> Dict[str, Any]:
    return {"status": "healthy", "environment": settings.environment, "database_pool": get_db_pool_status()}


@app.get("/metrics")
def metrics() -> Response:
    """Prometheus exposition endpoint."""
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
