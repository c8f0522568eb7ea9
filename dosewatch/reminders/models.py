"""
Reminder and scheduled-job models
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index, JSON, Text, ForeignKey

from dosewatch.db.base import Base


def job_reminder_key(reminder_id) -> Optional[str]:
    """Indexed form of a job's reminder id; raw and stringified ids share it."""
    if reminder_id is None:
        return None
    return str(reminder_id).strip()


def _reminder_key_default(context) -> Optional[str]:
    data = context.get_current_parameters().get("data") or {}
    return job_reminder_key(data.get("reminder_id"))


class Reminder(Base):
    """A timed reminder; ``fecha`` always holds the next pending fire time (UTC-naive)."""
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tipo = Column(String, nullable=True)
    titulo = Column(String, nullable=True)
    descripcion = Column(Text, nullable=True)

    fecha = Column(DateTime, nullable=False, index=True)
    frecuencia = Column(String, nullable=True)
    intervalo_personalizado = Column(Integer, nullable=True)  # minutes between doses
    horarios = Column(JSON, nullable=False, default=list)

    dosis = Column(String, nullable=True)
    unidad = Column(String, nullable=True)
    cantidad_disponible = Column(Integer, nullable=True)

    # Snapshot of the owner's display name at creation; never re-synced
    nombre_persona = Column(String, nullable=True)

    completed = Column(Boolean, nullable=False, default=False)
    sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_reminders_pending_fecha", "completed", "sent", "fecha"),
        Index("ix_reminders_user_fecha", "user_id", "fecha"),
    )


class ScheduledJob(Base):
    """Durable one-shot job; ``data`` carries the reminder id and targeted occurrence."""
    __tablename__ = "scheduled_jobs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    run_at = Column(DateTime, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    reminder_key = Column(String, nullable=True, index=True, default=_reminder_key_default)
    status = Column(String, nullable=False, default="scheduled")
    locked_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    fail_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_scheduled_jobs_status_run_at", "status", "run_at"),
        Index("ix_scheduled_jobs_name", "name"),
        Index("ix_scheduled_jobs_status_finished_at", "status", "finished_at"),
    )
