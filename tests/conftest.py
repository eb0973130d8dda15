import os
from datetime import timedelta

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_payment_provider
from src.application.booking_service import RELEASE_UNPAID_BOOKING
from src.application.expiry_reaper import make_release_handler
from src.application.scheduler import TaskRunner
from src.infrastructure.db.models import Base, Show, utcnow
from src.infrastructure.db.session import SessionLocal, engine
from src.main import app
from tests.helpers import FakePaymentProvider


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def payment_provider():
    return FakePaymentProvider()


@pytest.fixture
def client(payment_provider):
    app.dependency_overrides[get_payment_provider] = lambda: payment_provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def show():
    with SessionLocal() as db:
        item = Show(
            movie_ref="tmdb:550",
            theatre_ref="pvr-select-citywalk",
            start_date_time=utcnow() + timedelta(days=1),
            price_per_seat=200,
        )
        db.add(item)
        db.commit()
        return item


@pytest.fixture
def task_runner(payment_provider):
    return TaskRunner(
        SessionLocal,
        handlers={RELEASE_UNPAID_BOOKING: make_release_handler(lambda: payment_provider)},
        max_attempts=3,
        retry_delay_seconds=30,
    )
