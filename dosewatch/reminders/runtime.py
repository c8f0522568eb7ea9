from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from dosewatch.services.email_service import EmailService, NotificationGateway
from .config import ReminderSettings, settings as reminder_settings
from .engine import ReminderProcessor
from .jobs import JobScheduler, SEND_REMINDER_JOB


@dataclass
class ReminderRuntime:
    """The scheduler and processor wired together for one process."""
    scheduler: JobScheduler
    processor: ReminderProcessor

    def start(self) -> None:
        self.scheduler.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.scheduler.stop(timeout)


def build_runtime(
    session_factory: Optional[sessionmaker] = None,
    gateway: Optional[NotificationGateway] = None,
    config: ReminderSettings = reminder_settings,
) -> ReminderRuntime:
    if session_factory is None:
        from dosewatch.db.session import SessionLocal
        session_factory = SessionLocal
    scheduler = JobScheduler(session_factory, config=config)
    processor = ReminderProcessor(gateway or EmailService(), scheduler=scheduler, config=config)
    scheduler.define(SEND_REMINDER_JOB, processor.process_job)
    return ReminderRuntime(scheduler=scheduler, processor=processor)
