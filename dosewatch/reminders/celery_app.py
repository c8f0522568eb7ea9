from celery import Celery
from kombu import Exchange, Queue
from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

exchange = Exchange(settings.CELERY_QUEUE, type="direct", durable=True)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    task_default_queue=settings.CELERY_QUEUE,
    task_default_exchange=settings.CELERY_QUEUE,
    task_default_routing_key=settings.CELERY_QUEUE,
    include=["dosewatch.reminders.tasks"],
    task_queues=(
        Queue(settings.CELERY_QUEUE, exchange=exchange, routing_key=settings.CELERY_QUEUE, durable=True),
    ),
)

# Celery Beat drives the job poller, the due-window reconciler and job history cleanup
celery_app.conf.beat_schedule = {
    "run-due-jobs": {
        "task": "reminders.run_due_jobs",
        "schedule": settings.JOB_POLL_INTERVAL_SECONDS,
    },
    "scan-due-window": {
        "task": "reminders.scan_due_window",
        "schedule": settings.SCAN_INTERVAL_SECONDS,
    },
    "purge-finished-jobs": {
        "task": "reminders.purge_finished_jobs",
        "schedule": settings.JOB_PURGE_INTERVAL_SECONDS,
    },
}
