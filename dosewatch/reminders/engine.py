"""
Due-reminder processing shared by the window scanner and the job handler.

Both entry points funnel into ``ReminderProcessor.process``:

1. resolve the owner's email (no email: skip, nothing mutated),
2. claim the occurrence with an atomic conditional update,
3. send through the notification gateway (failure: release the claim),
4. persist the post-send transition and keep the job queue in step.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dosewatch.services.email_service import NotificationGateway
from dosewatch.utils.timezone import utcnow_naive
from .config import ReminderSettings, settings as reminder_settings
from .exceptions import DeliveryFailed, RecipientNotFound
from .formatting import format_fecha_hora
from .jobs import JobScheduler
from .metrics import (
    scanner_scans_total,
    reminders_sent_total,
    reminders_delivery_failed_total,
    reminders_skipped_total,
)
from .models import Reminder, ScheduledJob
from .recipients import lookup_owner, resolve_recipient_email
from .repository import apply_transition, claim_occurrence, find_due, get_reminder, release_claim
from .transitions import post_send_transition

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    processed: int = 0
    skipped: int = 0
    failed: int = 0


def build_notification(reminder: Reminder) -> Dict[str, Any]:
    fecha, hora = format_fecha_hora(reminder.fecha)
    return {
        "id": reminder.id,
        "userId": reminder.user_id,
        "tipo": reminder.tipo,
        "titulo": reminder.titulo,
        "descripcion": reminder.descripcion,
        "fecha": reminder.fecha.isoformat(),
        "frecuencia": reminder.frecuencia,
        "intervaloPersonalizado": reminder.intervalo_personalizado,
        "dosis": reminder.dosis,
        "unidad": reminder.unidad,
        "cantidadDisponible": reminder.cantidad_disponible,
        "nombrePersona": reminder.nombre_persona,
        "horarios": [f"{fecha} {hora}"],
    }


class ReminderProcessor:
    def __init__(
        self,
        gateway: NotificationGateway,
        scheduler: Optional[JobScheduler] = None,
        config: ReminderSettings = reminder_settings,
    ):
        self.gateway = gateway
        self.scheduler = scheduler
        self.config = config

    def scan(self, db: Session, now: Optional[datetime] = None) -> ScanResult:
        """Process every reminder due in the window starting at ``now``."""
        now = now or utcnow_naive()
        due = find_due(
            db,
            now,
            window_seconds=self.config.SCAN_INTERVAL_SECONDS,
            control_type=self.config.CONTROL_TYPE,
            lead_minutes=self.config.CONTROL_LEAD_TIME_MINUTES,
            limit=self.config.SCAN_BATCH_SIZE,
        )
        scanner_scans_total.inc()
        result = ScanResult()
        if due:
            logger.info("🔍 [Scanner] %d reminder(s) due at %s", len(due), now.isoformat())

        for reminder in due:
            reminder_id = reminder.id
            try:
                if self.process(db, reminder, source="scanner"):
                    result.processed += 1
                else:
                    result.skipped += 1
            except RecipientNotFound as e:
                logger.warning("⚠️ [Scanner] Reminder %s skipped: %s", reminder_id, e.reason)
                result.skipped += 1
            except DeliveryFailed as e:
                logger.error("❌ [Scanner] Reminder %s not delivered: %s", reminder_id, e.reason)
                result.failed += 1
            except SQLAlchemyError:
                logger.exception("❌ [Scanner] Persistence failure at reminder %s; aborting scan", reminder_id)
                raise
            except Exception:
                logger.exception("❌ [Scanner] Unexpected error processing reminder %s", reminder_id)
                result.failed += 1

        return result

    def process_job(self, db: Session, job: ScheduledJob) -> None:
        """Handler for ``send-reminder`` jobs."""
        data = job.data or {}
        reminder_id = _coerce_reminder_id(data.get("reminder_id"))
        occurrence = _parse_occurrence(data.get("occurrence"))

        reminder = get_reminder(db, reminder_id) if reminder_id is not None else None
        if reminder is None:
            logger.info("⏭️ [Jobs] Job %s: reminder %s no longer exists", job.id, data.get("reminder_id"))
            reminders_skipped_total.labels("stale_job").inc()
            return
        if reminder.completed or reminder.sent or (occurrence is not None and reminder.fecha != occurrence):
            logger.info(
                "⏭️ [Jobs] Job %s is stale for reminder %s (completed=%s sent=%s fecha=%s occurrence=%s)",
                job.id, reminder.id, reminder.completed, reminder.sent, reminder.fecha, occurrence,
            )
            reminders_skipped_total.labels("stale_job").inc()
            return

        self.process(db, reminder, source="job")

    def process(self, db: Session, reminder: Reminder, source: str) -> bool:
        """Send one occurrence of ``reminder``.

        Returns False when another worker already holds the claim. Raises
        ``RecipientNotFound`` or ``DeliveryFailed`` for per-item failures;
        neither leaves the reminder mutated.
        """
        reminder_id = reminder.id
        occurrence = reminder.fecha
        tipo = reminder.tipo

        email = resolve_recipient_email(lookup_owner(db, reminder.user_id))
        if not email:
            reminders_skipped_total.labels("no_email").inc()
            raise RecipientNotFound(reminder_id, "owner has no valid email")

        notification = build_notification(reminder)
        transition = post_send_transition(reminder.cantidad_disponible, reminder.intervalo_personalizado, occurrence)

        if not claim_occurrence(db, reminder_id, occurrence):
            logger.info("⏭️ [%s] Reminder %s occurrence %s already claimed", source, reminder_id, occurrence)
            reminders_skipped_total.labels("claimed").inc()
            return False

        try:
            delivered = self.gateway.send(email, f"⏰ Recordatorio de {tipo}", notification)
        except Exception as e:
            self._release(db, reminder_id, occurrence)
            raise DeliveryFailed(reminder_id, repr(e)) from e
        if not delivered:
            self._release(db, reminder_id, occurrence)
            raise DeliveryFailed(reminder_id, "gateway reported failure")

        reminders_sent_total.labels(source).inc()
        logger.info(
            "📩 [%s] Reminder %s sent to %s (tipo=%s, remaining=%s)",
            source, reminder_id, email, tipo, transition.cantidad_disponible,
        )

        if not apply_transition(db, reminder_id, occurrence, transition):
            logger.warning("⚠️ [%s] Reminder %s changed while sending; post-send update skipped", source, reminder_id)
            return True

        if self.scheduler is not None:
            if transition.advanced:
                self.scheduler.cancel_reminder_jobs(db, reminder_id, pending_only=True)
                self.scheduler.schedule_occurrence(db, reminder_id, tipo, transition.fecha)
            elif transition.completed:
                self.scheduler.cancel_reminder_jobs(db, reminder_id, pending_only=True)
        return True

    def _release(self, db: Session, reminder_id: int, occurrence: datetime) -> None:
        reminders_delivery_failed_total.inc()
        release_claim(db, reminder_id, occurrence)


def _coerce_reminder_id(value: Any) -> Optional[int]:
    # Jobs may carry the id raw or stringified
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_occurrence(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None
