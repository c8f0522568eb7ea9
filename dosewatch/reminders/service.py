"""
Owner-scoped reminder operations used by the HTTP layer
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from dosewatch.utils.timezone import client_to_utc_naive, utcnow_naive
from .exceptions import NoDosesLeft, RecipientNotFound, ReminderAlreadySent
from .jobs import JobScheduler
from .metrics import reminders_created_total
from .models import Reminder
from .recipients import lookup_owner, resolve_recipient_email
from .repository import (
    add_reminder,
    conditional_update,
    delete_reminder,
    get_owned_reminder,
    list_owned_reminders,
)
from .schemas import ReminderCreate, ReminderUpdate

logger = logging.getLogger(__name__)

# Changing these moves the next notification time
_SCHEDULING_FIELDS = {"fecha", "tipo"}


class ReminderService:
    def __init__(self, db: Session, scheduler: Optional[JobScheduler] = None):
        self.db = db
        self.scheduler = scheduler

    def create_reminder(self, user_id: int, data: ReminderCreate) -> Reminder:
        owner = lookup_owner(self.db, user_id)
        if not resolve_recipient_email(owner):
            raise RecipientNotFound(None, "Usuario sin correo válido")

        # No stock left means nothing will ever be sent
        exhausted = data.cantidad_disponible == 0
        reminder = Reminder(
            user_id=user_id,
            tipo=data.tipo,
            titulo=data.titulo,
            descripcion=data.descripcion,
            fecha=client_to_utc_naive(data.fecha) if data.fecha else utcnow_naive(),
            frecuencia=data.frecuencia,
            intervalo_personalizado=data.intervalo_personalizado,
            horarios=[],
            dosis=data.dosis,
            unidad=data.unidad,
            cantidad_disponible=data.cantidad_disponible,
            nombre_persona=owner.display_name,
            completed=exhausted,
            sent=False,
        )
        reminder = add_reminder(self.db, reminder)
        reminders_created_total.inc()
        logger.info("➕ [Reminders] Created reminder %s for user %s at %s", reminder.id, user_id, reminder.fecha)

        if self.scheduler is not None and not reminder.completed:
            self.scheduler.schedule_reminder(self.db, reminder)
        return reminder

    def list_reminders(self, user_id: int) -> List[Reminder]:
        return list_owned_reminders(self.db, user_id)

    def get_reminder(self, user_id: int, reminder_id: int) -> Optional[Reminder]:
        return get_owned_reminder(self.db, reminder_id, user_id)

    def update_reminder(self, user_id: int, reminder_id: int, data: ReminderUpdate) -> Optional[Reminder]:
        current = get_owned_reminder(self.db, reminder_id, user_id)
        if current is None:
            return None
        if current.sent:
            raise ReminderAlreadySent(reminder_id, "Este recordatorio ya fue enviado y no se puede modificar")

        patch = data.model_dump(exclude_unset=True)
        if "fecha" in patch:
            patch["fecha"] = client_to_utc_naive(patch["fecha"]) if patch["fecha"] else utcnow_naive()
        if not patch:
            return current
        if patch.get("cantidad_disponible") == 0:
            patch["completed"] = True

        updated = conditional_update(self.db, reminder_id, user_id, patch)
        if updated is None or self.scheduler is None:
            return updated
        if updated.completed:
            self.scheduler.cancel_reminder_jobs(self.db, reminder_id, pending_only=True)
        elif _SCHEDULING_FIELDS & patch.keys():
            self.scheduler.reschedule_reminder(self.db, updated)
        return updated

    def delete_reminder(self, user_id: int, reminder_id: int) -> bool:
        if not delete_reminder(self.db, reminder_id, user_id):
            return False
        if self.scheduler is not None:
            self.scheduler.cancel_reminder_jobs(self.db, reminder_id)
        logger.info("🗑️ [Reminders] Deleted reminder %s for user %s", reminder_id, user_id)
        return True

    def set_completed(self, user_id: int, reminder_id: int, completed: bool) -> Optional[Reminder]:
        if not completed:
            current = get_owned_reminder(self.db, reminder_id, user_id)
            if current is None:
                return None
            if current.cantidad_disponible == 0:
                raise NoDosesLeft(reminder_id, "El recordatorio no tiene dosis disponibles")

        reminder = conditional_update(self.db, reminder_id, user_id, {"completed": completed})
        if reminder is None or self.scheduler is None:
            return reminder

        if completed:
            self.scheduler.cancel_reminder_jobs(self.db, reminder_id)
        elif self.scheduler.notify_at(reminder.tipo, reminder.fecha) > utcnow_naive():
            self.scheduler.reschedule_reminder(self.db, reminder)
        return reminder
