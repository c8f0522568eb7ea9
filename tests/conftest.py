from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dosewatch.db.base import Base
from dosewatch.models.user import User, UserProfile
from dosewatch.reminders.config import ReminderSettings
from dosewatch.reminders.models import Reminder
from dosewatch.reminders.runtime import build_runtime

NOW = datetime(2026, 10, 18, 14, 0, 0)


class RecordingGateway:
    """Notification gateway double that records every send."""

    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send(self, recipient, subject, payload):
        self.sent.append((recipient, subject, dict(payload)))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def reminder_config():
    return ReminderSettings(
        SCAN_INTERVAL_SECONDS=60,
        SCAN_BATCH_SIZE=500,
        CONTROL_TYPE="control",
        CONTROL_LEAD_TIME_MINUTES=60,
        JOB_POLL_INTERVAL_SECONDS=0.05,
        JOB_BATCH_SIZE=100,
    )


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def runtime(session_factory, gateway, reminder_config):
    runtime = build_runtime(session_factory, gateway=gateway, config=reminder_config)
    yield runtime
    runtime.stop(timeout=1)


@pytest.fixture
def owner(db):
    user = User(username="ana@example.com")
    db.add(user)
    db.flush()
    db.add(UserProfile(user_id=user.id, email="ana.perez@example.com", name="Ana", last_name="Pérez"))
    db.commit()
    return user


@pytest.fixture
def make_reminder(db, owner):
    def _make(**overrides):
        values = dict(
            user_id=owner.id,
            tipo="medicamento",
            titulo="Ibuprofeno",
            descripcion="Después del almuerzo",
            fecha=NOW,
            frecuencia="personalizada",
            intervalo_personalizado=30,
            horarios=[],
            dosis="400",
            unidad="mg",
            cantidad_disponible=3,
            nombre_persona="Ana Pérez",
            completed=False,
            sent=False,
        )
        values.update(overrides)
        reminder = Reminder(**values)
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder

    return _make
