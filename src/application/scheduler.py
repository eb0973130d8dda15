from datetime import datetime
import json
import logging
import threading
from typing import Callable

from sqlalchemy.orm import Session, sessionmaker

from src.infrastructure.db.models import utcnow
from src.infrastructure.repositories.outbox_repository import OutboxRepository
from src.infrastructure.repositories.task_repository import TaskRepository


logger = logging.getLogger(__name__)

TaskHandler = Callable[[Session, dict], None]


class TaskRunner:
    """
    Runs due rows of the scheduled_tasks table.

    Delivery is at-least-once: a task is marked DONE only after
    its handler committed, and a failing handler is retried with
    a linear backoff until max_attempts.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        handlers: dict[str, TaskHandler],
        max_attempts: int = 5,
        retry_delay_seconds: int = 30,
        batch_size: int = 50,
    ):
        self.session_factory = session_factory
        self.handlers = handlers
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.batch_size = batch_size

    def run_due(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self.session_factory() as db:
            task_ids = TaskRepository(db).due_task_ids(now, self.batch_size)

        completed = 0
        for task_id in task_ids:
            if self._run_one(task_id, now):
                completed += 1
        return completed

    def _run_one(self, task_id: str, now: datetime) -> bool:
        with self.session_factory() as db:
            repo = TaskRepository(db)
            task = repo.lock_pending(task_id)
            if task is None:
                return False

            task_name = task.task_name
            handler = self.handlers.get(task_name)
            if handler is None:
                logger.error("No handler registered for task %s (%s)", task_name, task_id)
                repo.mark_retry(task, "no handler registered", now, 0, max_attempts=1)
                db.commit()
                return False

            try:
                handler(db, json.loads(task.payload))
                repo.mark_done(task)
                db.commit()
                return True
            except Exception as exc:
                db.rollback()
                logger.warning(
                    "Task %s (%s) failed: %s",
                    task_name,
                    task_id,
                    exc,
                )
                self._record_failure(task_id, repr(exc), now)
                return False

    def _record_failure(self, task_id: str, error: str, now: datetime) -> None:
        with self.session_factory() as db:
            repo = TaskRepository(db)
            task = repo.lock_pending(task_id)
            if task is None:
                return
            repo.mark_retry(
                task,
                error,
                now,
                self.retry_delay_seconds,
                self.max_attempts,
            )
            if task.status == "FAILED":
                logger.error(
                    "Task %s (%s) gave up after %s attempts",
                    task.task_name,
                    task_id,
                    task.attempts,
                )
            db.commit()


class NotificationDispatcher:
    """Hands pending outbox events to the notification sink."""

    def __init__(
        self,
        session_factory: sessionmaker,
        sink,
        max_attempts: int = 5,
    ):
        self.session_factory = session_factory
        self.sink = sink
        self.max_attempts = max_attempts

    def dispatch_pending(self, limit: int = 100) -> int:
        sent = 0
        with self.session_factory() as db:
            repo = OutboxRepository(db)
            for event in repo.pending(limit):
                try:
                    self.sink.send(event.event_type, json.loads(event.payload))
                except Exception as exc:
                    logger.warning(
                        "Notification %s for %s failed: %s",
                        event.event_type,
                        event.aggregate_id,
                        exc,
                    )
                    repo.mark_failed_attempt(event, repr(exc), self.max_attempts)
                    continue
                repo.mark_published(event)
                sent += 1
            db.commit()
        return sent


class BackgroundWorker:
    """Daemon thread polling the task runner and the outbox."""

    def __init__(
        self,
        runner: TaskRunner,
        dispatcher: NotificationDispatcher,
        poll_interval: float,
    ):
        self.runner = runner
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="booking-background-worker",
            daemon=True,
        )
        self._thread.start()
        logger.info("Background worker started (interval=%.1fs)", self.poll_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        logger.info("Background worker stopped.")

    def run_once(self) -> None:
        self.runner.run_due()
        self.dispatcher.dispatch_pending()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Background worker iteration failed")
            self._stop.wait(self.poll_interval)
