"""
Reminder persistence. Status changes are Core UPDATEs that bypass the
identity map, so every read reloads rows with ``populate_existing``.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete, and_, or_

from .models import Reminder
from .transitions import Transition


def find_due(
    db: Session,
    now: datetime,
    window_seconds: int,
    control_type: str,
    lead_minutes: int,
    limit: int = 500,
) -> List[Reminder]:
    """Pending reminders whose notification time falls in ``[now, now + window)``.

    Reminders of ``control_type`` are stored ``lead_minutes`` ahead of the
    moment they must be notified, so their window is shifted by the lead time.
    """
    window_end = now + timedelta(seconds=window_seconds)
    lead = timedelta(minutes=lead_minutes)
    stmt = (
        select(Reminder)
        .where(Reminder.completed == False)  # noqa: E712
        .where(Reminder.sent == False)  # noqa: E712
        .where(
            or_(
                and_(
                    Reminder.tipo == control_type,
                    Reminder.fecha >= now + lead,
                    Reminder.fecha < window_end + lead,
                ),
                and_(
                    or_(Reminder.tipo != control_type, Reminder.tipo.is_(None)),
                    Reminder.fecha >= now,
                    Reminder.fecha < window_end,
                ),
            )
        )
        .order_by(Reminder.fecha.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars())


def get_reminder(db: Session, reminder_id: int) -> Optional[Reminder]:
    return db.get(Reminder, reminder_id, populate_existing=True)


def get_owned_reminder(db: Session, reminder_id: int, user_id: int) -> Optional[Reminder]:
    stmt = (
        select(Reminder)
        .where(Reminder.id == reminder_id, Reminder.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalars().first()


def list_owned_reminders(db: Session, user_id: int, limit: int = 500) -> List[Reminder]:
    stmt = (
        select(Reminder)
        .where(Reminder.user_id == user_id)
        .order_by(Reminder.fecha.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars())


def add_reminder(db: Session, reminder: Reminder) -> Reminder:
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def conditional_update(
    db: Session, reminder_id: int, user_id: int, patch: Dict[str, Any]
) -> Optional[Reminder]:
    """Apply ``patch`` to the owner's reminder. Returns None if nothing matched."""
    result = db.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id, Reminder.user_id == user_id)
        .values(**patch, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        return None
    reminder = get_owned_reminder(db, reminder_id, user_id)
    if reminder is not None:
        db.refresh(reminder)
    return reminder


def delete_reminder(db: Session, reminder_id: int, user_id: int) -> bool:
    result = db.execute(
        delete(Reminder)
        .where(Reminder.id == reminder_id, Reminder.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def claim_occurrence(db: Session, reminder_id: int, fecha: datetime) -> bool:
    """Atomically reserve the occurrence at ``fecha`` for sending.

    Only one caller can flip ``sent`` from False to True for a given
    occurrence; everyone else gets False and must not send.
    """
    result = db.execute(
        update(Reminder)
        .where(
            Reminder.id == reminder_id,
            Reminder.fecha == fecha,
            Reminder.sent == False,  # noqa: E712
            Reminder.completed == False,  # noqa: E712
        )
        .values(sent=True, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release_claim(db: Session, reminder_id: int, fecha: datetime) -> bool:
    """Undo a claim after a failed delivery so the occurrence stays pending."""
    result = db.execute(
        update(Reminder)
        .where(
            Reminder.id == reminder_id,
            Reminder.fecha == fecha,
            Reminder.sent == True,  # noqa: E712
            Reminder.completed == False,  # noqa: E712
        )
        .values(sent=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def apply_transition(db: Session, reminder_id: int, fecha: datetime, transition: Transition) -> bool:
    """Persist the post-send state of a claimed occurrence.

    Gated on the claim still being held, so edits or deletes that happened
    while the notification was in flight win.
    """
    result = db.execute(
        update(Reminder)
        .where(
            Reminder.id == reminder_id,
            Reminder.fecha == fecha,
            Reminder.sent == True,  # noqa: E712
            Reminder.completed == False,  # noqa: E712
        )
        .values(
            sent=transition.sent,
            completed=transition.completed,
            cantidad_disponible=transition.cantidad_disponible,
            fecha=transition.fecha,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1
