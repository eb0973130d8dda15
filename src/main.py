import logging
import os
import time

import uvicorn
from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from src.api.error_handlers import register_exception_handlers
from src.api.routes.admin_routes import router as admin_router
from src.api.routes.routes import router
from src.application.booking_service import RELEASE_UNPAID_BOOKING
from src.application.expiry_reaper import make_release_handler
from src.application.scheduler import BackgroundWorker, NotificationDispatcher, TaskRunner
from src.infrastructure import config
from src.infrastructure.db.session import SessionLocal, engine
from src.infrastructure.db.models import Base
from src.infrastructure.notifications import LoggingNotificationSink
from src.infrastructure.payments.razorpay_provider import build_payment_provider

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Showtime Booking Engine")

app.include_router(router)
app.include_router(admin_router)
register_exception_handlers(app)
logger = logging.getLogger(__name__)

worker = BackgroundWorker(
    runner=TaskRunner(
        SessionLocal,
        handlers={RELEASE_UNPAID_BOOKING: make_release_handler(build_payment_provider)},
        max_attempts=config.TASK_MAX_ATTEMPTS,
        retry_delay_seconds=config.TASK_RETRY_DELAY_SECONDS,
    ),
    dispatcher=NotificationDispatcher(
        SessionLocal,
        LoggingNotificationSink(),
        max_attempts=config.TASK_MAX_ATTEMPTS,
    ),
    poll_interval=config.SCHEDULER_POLL_INTERVAL,
)


def _wait_for_db() -> None:
    # Handles the common case where API starts before Postgres is ready.
    max_retries = int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))
    retry_delay_seconds = float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)


@app.on_event("startup")
def on_startup() -> None:
    _wait_for_db()
    Base.metadata.create_all(bind=engine)
    if config.SCHEDULER_ENABLED:
        worker.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    if config.SCHEDULER_ENABLED:
        worker.stop()


def run() -> None:
    uvicorn.run(
        app,
        host=config.APP_HOST,
        port=config.APP_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
