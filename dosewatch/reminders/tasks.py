from typing import Optional

from celery import shared_task
from celery.signals import worker_process_init, worker_process_shutdown
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from dosewatch.db.session import SessionLocal
from .runtime import ReminderRuntime, build_runtime

logger = get_task_logger(__name__)

_runtime: Optional[ReminderRuntime] = None


@worker_process_init.connect
def _init_runtime(**_kwargs) -> None:
    global _runtime
    _runtime = build_runtime(SessionLocal)


@worker_process_shutdown.connect
def _shutdown_runtime(**_kwargs) -> None:
    global _runtime
    _runtime = None


def get_runtime() -> ReminderRuntime:
    if _runtime is None:
        _init_runtime()
    return _runtime


@shared_task(name="reminders.run_due_jobs")
def run_due_jobs_task() -> int:
    """Execute durable jobs whose time has come. Returns number executed."""
    executed = get_runtime().scheduler.run_due_jobs()
    if executed:
        logger.info("⚙️ [Jobs] Executed %d job(s)", executed)
    return executed


@shared_task(name="reminders.scan_due_window")
def scan_due_window_task() -> int:
    """Reconcile reminders due in the current window. Returns number sent."""
    db: Session = SessionLocal()
    try:
        result = get_runtime().processor.scan(db)
    finally:
        db.close()
    logger.info(
        "🔁 [Scanner] processed=%d skipped=%d failed=%d",
        result.processed, result.skipped, result.failed,
    )
    return result.processed


@shared_task(name="reminders.purge_finished_jobs")
def purge_finished_jobs_task() -> int:
    """Drop finished jobs past the retention window. Returns number deleted."""
    return get_runtime().scheduler.purge_finished()
