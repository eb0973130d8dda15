from datetime import timedelta

from src.application.scheduler import NotificationDispatcher, TaskRunner
from src.infrastructure.db.models import OutboxEvent, ScheduledTask, utcnow
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.repositories.outbox_repository import OutboxRepository
from src.infrastructure.repositories.task_repository import TaskRepository


def _schedule(db, run_at, name="echo", key="echo:1"):
    task = TaskRepository(db).schedule(name, {"value": 1}, run_at=run_at, dedupe_key=key)
    db.commit()
    return task.id


def _load_task(task_id):
    with SessionLocal() as db:
        return db.get(ScheduledTask, task_id)


def test_only_due_tasks_run(db_session):
    calls = []
    runner = TaskRunner(SessionLocal, {"echo": lambda db, payload: calls.append(payload)})
    now = utcnow()
    _schedule(db_session, now + timedelta(minutes=10))

    assert runner.run_due(now) == 0
    assert runner.run_due(now + timedelta(minutes=11)) == 1
    assert calls == [{"value": 1}]

    # DONE tasks are not delivered again.
    assert runner.run_due(now + timedelta(minutes=20)) == 0


def test_schedule_is_deduplicated(db_session):
    now = utcnow()
    first = _schedule(db_session, now)
    second = _schedule(db_session, now + timedelta(minutes=5))

    assert first == second


def test_failing_task_is_retried_then_given_up(db_session):
    attempts = []

    def flaky(db, payload):
        attempts.append(payload)
        raise RuntimeError("store unavailable")

    runner = TaskRunner(SessionLocal, {"echo": flaky}, max_attempts=2, retry_delay_seconds=60)
    now = utcnow()
    task_id = _schedule(db_session, now)

    assert runner.run_due(now) == 0
    task = _load_task(task_id)
    assert task.status == "PENDING"
    assert task.attempts == 1
    assert "store unavailable" in task.last_error

    # Backoff pushes the next attempt past "now".
    assert runner.run_due(now) == 0
    assert len(attempts) == 1

    runner.run_due(now + timedelta(minutes=2))
    assert len(attempts) == 2
    assert _load_task(task_id).status == "FAILED"


def test_task_without_handler_fails(db_session):
    runner = TaskRunner(SessionLocal, {})
    now = utcnow()
    task_id = _schedule(db_session, now, name="unknown", key="unknown:1")

    assert runner.run_due(now) == 0
    assert _load_task(task_id).status == "FAILED"


class _RecordingSink:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send(self, event_type, payload):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((event_type, payload))


def _add_event(db, key="booking:b1:confirmed"):
    OutboxRepository(db).add_event(
        aggregate_type="booking",
        aggregate_id="b1",
        event_type="BOOKING_CONFIRMED",
        payload={"booking_id": "b1", "user_id": "user1", "seats": ["A1"]},
        dedupe_key=key,
    )
    db.commit()


def test_dispatcher_publishes_pending_events(db_session):
    _add_event(db_session)
    sink = _RecordingSink()

    assert NotificationDispatcher(SessionLocal, sink).dispatch_pending() == 1
    assert NotificationDispatcher(SessionLocal, sink).dispatch_pending() == 0

    assert sink.sent == [
        ("BOOKING_CONFIRMED", {"booking_id": "b1", "user_id": "user1", "seats": ["A1"]})
    ]
    with SessionLocal() as db:
        event = db.query(OutboxEvent).one()
        assert event.status == "PUBLISHED"


def test_dispatcher_failure_is_recorded_not_raised(db_session):
    _add_event(db_session)

    sent = NotificationDispatcher(SessionLocal, _RecordingSink(fail=True), max_attempts=1).dispatch_pending()

    assert sent == 0
    with SessionLocal() as db:
        event = db.query(OutboxEvent).one()
        assert event.status == "FAILED"
        assert "smtp down" in event.last_error


def test_outbox_dedupe_key_suppresses_duplicates(db_session):
    _add_event(db_session)
    _add_event(db_session)

    with SessionLocal() as db:
        assert db.query(OutboxEvent).count() == 1
