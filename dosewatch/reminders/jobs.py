"""
Durable one-shot job queue backed by the ``scheduled_jobs`` table.

Jobs survive restarts because they live in the database. ``run_due_jobs``
claims each due job with a conditional UPDATE before running it, so a job is
executed at most once even when several pollers (the embedded thread, Celery
beat, a manual call) overlap.
"""
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dosewatch.utils.timezone import utcnow_naive
from .config import ReminderSettings, settings as reminder_settings
from .exceptions import ReminderError
from .metrics import jobs_scheduled_total, jobs_cancelled_total, jobs_executed_total, jobs_purged_total
from .models import Reminder, ScheduledJob, job_reminder_key

logger = logging.getLogger(__name__)

SEND_REMINDER_JOB = "send-reminder"

STATUS_SCHEDULED = "scheduled"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

JobHandler = Callable[[Session, ScheduledJob], None]


def _matches(data: Optional[Dict[str, Any]], key: str, expected: Any) -> bool:
    if not data or key not in data:
        return False
    if isinstance(expected, (list, tuple, set, frozenset)):
        return data[key] in expected
    return data[key] == expected


class JobScheduler:
    """Persistent scheduler with an explicit start/stop lifecycle."""

    def __init__(
        self,
        session_factory: sessionmaker,
        config: ReminderSettings = reminder_settings,
        poll_interval: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.config = config
        self.poll_interval = poll_interval if poll_interval is not None else config.JOB_POLL_INTERVAL_SECONDS
        self.batch_size = batch_size or config.JOB_BATCH_SIZE
        self._handlers: Dict[str, JobHandler] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_purge = 0.0

    # --- Definitions -----------------------------------------------------

    def define(self, name: str, handler: JobHandler) -> None:
        self._handlers[name] = handler

    def notify_at(self, tipo: Optional[str], fecha: datetime) -> datetime:
        """Wall-clock time an occurrence stored at ``fecha`` must be notified."""
        if tipo == self.config.CONTROL_TYPE:
            return fecha - timedelta(minutes=self.config.CONTROL_LEAD_TIME_MINUTES)
        return fecha

    # --- Scheduling ------------------------------------------------------

    def schedule(self, db: Session, name: str, run_at: datetime, data: Dict[str, Any]) -> ScheduledJob:
        """Persist a job; an identical pending job for the same reminder is reused."""
        key = job_reminder_key(data.get("reminder_id"))
        stmt = (
            select(ScheduledJob)
            .where(ScheduledJob.name == name)
            .where(ScheduledJob.status == STATUS_SCHEDULED)
            .where(ScheduledJob.run_at == run_at)
        )
        if key is not None:
            stmt = stmt.where(ScheduledJob.reminder_key == key)
        existing = db.execute(stmt.limit(1)).scalars().first()
        if existing is not None:
            return existing

        job = ScheduledJob(name=name, run_at=run_at, data=dict(data), reminder_key=key, status=STATUS_SCHEDULED)
        db.add(job)
        db.commit()
        db.refresh(job)
        jobs_scheduled_total.inc()
        logger.info("🗓️ [Jobs] Scheduled %s job=%s run_at=%s data=%s", name, job.id, run_at.isoformat(), data)
        return job

    def schedule_occurrence(self, db: Session, reminder_id: int, tipo: Optional[str], fecha: datetime) -> ScheduledJob:
        return self.schedule(
            db,
            SEND_REMINDER_JOB,
            self.notify_at(tipo, fecha),
            {"reminder_id": reminder_id, "occurrence": fecha.isoformat()},
        )

    def schedule_reminder(self, db: Session, reminder: Reminder) -> ScheduledJob:
        return self.schedule_occurrence(db, reminder.id, reminder.tipo, reminder.fecha)

    def reschedule_reminder(self, db: Session, reminder: Reminder) -> Optional[ScheduledJob]:
        """Replace pending jobs of ``reminder`` with one for its current occurrence."""
        self.cancel_reminder_jobs(db, reminder.id, pending_only=True)
        if reminder.completed or reminder.sent:
            return None
        return self.schedule_reminder(db, reminder)

    # --- Cancellation ----------------------------------------------------

    def cancel(
        self,
        db: Session,
        name: Optional[str] = None,
        pending_only: bool = False,
        reminder_id: Any = None,
        **match: Any,
    ) -> int:
        """Delete jobs matching ``name``, ``reminder_id`` and every ``key=value`` given.

        ``reminder_id`` is matched through the indexed ``reminder_key`` column,
        so raw and stringified ids are equivalent. Other keys are compared
        against ``data``; a list/tuple value lists alternatives.
        """
        stmt = select(ScheduledJob)
        if name:
            stmt = stmt.where(ScheduledJob.name == name)
        if pending_only:
            stmt = stmt.where(ScheduledJob.status == STATUS_SCHEDULED)
        if reminder_id is not None:
            stmt = stmt.where(ScheduledJob.reminder_key == job_reminder_key(reminder_id))
        doomed = [
            job
            for job in db.execute(stmt).scalars()
            if all(_matches(job.data, key, expected) for key, expected in match.items())
        ]
        for job in doomed:
            db.delete(job)
        db.commit()
        if doomed:
            jobs_cancelled_total.inc(len(doomed))
            logger.info(
                "🗑️ [Jobs] Cancelled %d job(s) matching name=%s reminder=%s %s",
                len(doomed), name, reminder_id, match,
            )
        return len(doomed)

    def cancel_reminder_jobs(self, db: Session, reminder_id: Any, pending_only: bool = False) -> int:
        return self.cancel(db, name=SEND_REMINDER_JOB, pending_only=pending_only, reminder_id=reminder_id)

    def jobs_for_reminder(self, db: Session, reminder_id: Any) -> List[ScheduledJob]:
        stmt = (
            select(ScheduledJob)
            .where(ScheduledJob.name == SEND_REMINDER_JOB)
            .where(ScheduledJob.reminder_key == job_reminder_key(reminder_id))
            .order_by(ScheduledJob.run_at.asc(), ScheduledJob.id.asc())
        )
        return list(db.execute(stmt).scalars())

    def purge_finished(self, now: Optional[datetime] = None) -> int:
        """Delete completed and failed jobs older than the retention window."""
        cutoff = (now or utcnow_naive()) - timedelta(hours=self.config.JOB_HISTORY_RETENTION_HOURS)
        with self._session_factory() as db:
            result = db.execute(
                delete(ScheduledJob)
                .where(ScheduledJob.status.in_((STATUS_COMPLETED, STATUS_FAILED)))
                .where(ScheduledJob.finished_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            purged = result.rowcount or 0
        if purged:
            jobs_purged_total.inc(purged)
            logger.info("🧹 [Jobs] Purged %d finished job(s) older than %s", purged, cutoff.isoformat())
        return purged

    # --- Execution -------------------------------------------------------

    def run_due_jobs(self, now: Optional[datetime] = None) -> int:
        """Run every job due at ``now``. Returns how many jobs this call executed."""
        now = now or utcnow_naive()
        with self._session_factory() as db:
            due_ids = list(
                db.execute(
                    select(ScheduledJob.id)
                    .where(ScheduledJob.status == STATUS_SCHEDULED)
                    .where(ScheduledJob.run_at <= now)
                    .order_by(ScheduledJob.run_at.asc())
                    .limit(self.batch_size)
                ).scalars()
            )

        executed = 0
        for job_id in due_ids:
            if not self._claim(job_id, now):
                continue
            self._execute(job_id)
            executed += 1
        return executed

    def _claim(self, job_id: int, now: datetime) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(ScheduledJob)
                .where(ScheduledJob.id == job_id, ScheduledJob.status == STATUS_SCHEDULED)
                .values(status=STATUS_RUNNING, locked_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def _execute(self, job_id: int) -> None:
        with self._session_factory() as db:
            job = db.get(ScheduledJob, job_id)
            if job is None:
                # Cancelled between claim and execution
                return
            handler = self._handlers.get(job.name)
            try:
                if handler is None:
                    raise LookupError(f"no handler defined for job '{job.name}'")
                handler(db, job)
            except ReminderError as e:
                db.rollback()
                logger.warning("⚠️ [Jobs] Job %s (%s) failed: %s", job_id, job.name, e)
                self._finish(db, job_id, STATUS_FAILED, e.reason)
            except SQLAlchemyError:
                db.rollback()
                raise
            except Exception as e:
                db.rollback()
                logger.exception("❌ [Jobs] Job %s (%s) crashed", job_id, job.name)
                self._finish(db, job_id, STATUS_FAILED, repr(e))
            else:
                self._finish(db, job_id, STATUS_COMPLETED)

    def _finish(self, db: Session, job_id: int, status: str, reason: Optional[str] = None) -> None:
        db.execute(
            update(ScheduledJob)
            .where(ScheduledJob.id == job_id)
            .values(status=status, finished_at=utcnow_naive(), fail_reason=reason)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        jobs_executed_total.labels(status).inc()

    # --- Lifecycle -------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="dosewatch-job-scheduler", daemon=True)
        self._thread.start()
        logger.info("⏳ [Jobs] Scheduler started (poll every %ss)", self.poll_interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the poller and wait for the pass in progress to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("🛑 [Jobs] Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_due_jobs()
                if time.monotonic() >= self._next_purge:
                    self.purge_finished()
                    self._next_purge = time.monotonic() + self.config.JOB_PURGE_INTERVAL_SECONDS
            except SQLAlchemyError:
                logger.exception("❌ [Jobs] Polling pass failed; retrying in %ss", self.poll_interval)
            self._stop_event.wait(self.poll_interval)
