import time
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from dosewatch.db.base import Base
from dosewatch.models.user import User, UserProfile
from dosewatch.reminders.jobs import JobScheduler, SEND_REMINDER_JOB
from dosewatch.reminders.models import Reminder, ScheduledJob
from dosewatch.reminders.runtime import build_runtime
from dosewatch.utils.timezone import utcnow_naive

from conftest import NOW, RecordingGateway


def _job(db, job_id):
    db.expire_all()
    return db.get(ScheduledJob, job_id)


def test_job_runs_at_notification_time(db, make_reminder, runtime):
    regular = make_reminder()
    control = make_reminder(tipo="control", fecha=NOW + timedelta(hours=2))

    assert runtime.scheduler.schedule_reminder(db, regular).run_at == NOW
    assert runtime.scheduler.schedule_reminder(db, control).run_at == NOW + timedelta(hours=1)


def test_scheduling_twice_reuses_the_pending_job(db, make_reminder, runtime):
    reminder = make_reminder()

    first = runtime.scheduler.schedule_reminder(db, reminder)
    second = runtime.scheduler.schedule_reminder(db, reminder)

    assert first.id == second.id
    assert len(runtime.scheduler.jobs_for_reminder(db, reminder.id)) == 1


def test_due_job_sends_and_is_executed_at_most_once(db, make_reminder, runtime, gateway):
    reminder = make_reminder(cantidad_disponible=1)
    job = runtime.scheduler.schedule_reminder(db, reminder)

    assert runtime.scheduler.run_due_jobs(now=NOW - timedelta(seconds=1)) == 0
    assert runtime.scheduler.run_due_jobs(now=NOW) == 1
    assert runtime.scheduler.run_due_jobs(now=NOW + timedelta(minutes=5)) == 0

    assert len(gateway.sent) == 1
    assert _job(db, job.id).status == "completed"
    db.refresh(reminder)
    assert reminder.completed is True


def test_job_path_advances_and_schedules_next_dose(db, make_reminder, runtime, gateway):
    reminder = make_reminder(cantidad_disponible=2, intervalo_personalizado=30)
    runtime.scheduler.schedule_reminder(db, reminder)

    runtime.scheduler.run_due_jobs(now=NOW)

    db.refresh(reminder)
    assert reminder.fecha == NOW + timedelta(minutes=30)
    assert reminder.sent is False
    pending = [j for j in runtime.scheduler.jobs_for_reminder(db, reminder.id) if j.status == "scheduled"]
    assert [j.run_at for j in pending] == [NOW + timedelta(minutes=30)]

    runtime.scheduler.run_due_jobs(now=NOW + timedelta(minutes=30))

    db.refresh(reminder)
    assert len(gateway.sent) == 2
    assert reminder.cantidad_disponible == 0
    assert reminder.completed is True


def test_job_for_edited_occurrence_is_stale(db, make_reminder, runtime, gateway):
    reminder = make_reminder()
    job = runtime.scheduler.schedule_reminder(db, reminder)
    reminder.fecha = NOW + timedelta(days=1)
    db.commit()

    runtime.scheduler.run_due_jobs(now=NOW)

    assert gateway.sent == []
    assert _job(db, job.id).status == "completed"
    db.refresh(reminder)
    assert reminder.cantidad_disponible == 3


def test_job_never_touches_completed_reminder(db, make_reminder, runtime, gateway):
    reminder = make_reminder()
    runtime.scheduler.schedule_reminder(db, reminder)
    reminder.completed = True
    db.commit()

    runtime.scheduler.run_due_jobs(now=NOW)

    assert gateway.sent == []
    db.refresh(reminder)
    assert reminder.cantidad_disponible == 3
    assert reminder.sent is False


def test_scanner_and_job_never_double_send(db, make_reminder, runtime, gateway):
    reminder = make_reminder(cantidad_disponible=1)
    runtime.scheduler.schedule_reminder(db, reminder)

    assert runtime.processor.scan(db, now=NOW).processed == 1
    runtime.scheduler.run_due_jobs(now=NOW)

    assert len(gateway.sent) == 1
    assert runtime.scheduler.jobs_for_reminder(db, reminder.id) == []


def test_failed_delivery_marks_job_failed_and_keeps_reminder_pending(
    db, make_reminder, session_factory, reminder_config
):
    runtime = build_runtime(session_factory, gateway=RecordingGateway(result=False), config=reminder_config)
    reminder = make_reminder()
    job = runtime.scheduler.schedule_reminder(db, reminder)

    runtime.scheduler.run_due_jobs(now=NOW)

    failed = _job(db, job.id)
    assert failed.status == "failed"
    assert failed.fail_reason == "gateway reported failure"
    db.refresh(reminder)
    assert reminder.sent is False
    assert reminder.cantidad_disponible == 3


def test_job_without_handler_fails(db, session_factory, reminder_config):
    scheduler = JobScheduler(session_factory, config=reminder_config)
    job = scheduler.schedule(db, "unknown-job", NOW, {"reminder_id": 1})

    assert scheduler.run_due_jobs(now=NOW) == 1
    assert "no handler" in _job(db, job.id).fail_reason


def test_cancel_matches_raw_and_stringified_ids(db, runtime):
    db.add_all([
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=NOW, data={"reminder_id": 7}),
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=NOW, data={"reminder_id": "7"}),
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=NOW, data={"reminder_id": 8}),
    ])
    db.commit()

    keys = sorted(j.reminder_key for j in db.execute(select(ScheduledJob)).scalars())
    assert keys == ["7", "7", "8"]
    assert runtime.scheduler.cancel_reminder_jobs(db, 7) == 2

    remaining = list(db.execute(select(ScheduledJob)).scalars())
    assert [j.data["reminder_id"] for j in remaining] == [8]


def test_cancel_pending_only_keeps_history(db, runtime):
    db.add_all([
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=NOW, data={"reminder_id": 3}, status="completed"),
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=NOW, data={"reminder_id": 3}),
    ])
    db.commit()

    assert runtime.scheduler.cancel_reminder_jobs(db, "3", pending_only=True) == 1
    assert [j.status for j in runtime.scheduler.jobs_for_reminder(db, 3)] == ["completed"]


def test_purge_drops_only_old_finished_jobs(db, runtime):
    old = NOW - timedelta(days=10)
    db.add_all([
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=old, data={"reminder_id": 1}, status="completed", finished_at=old),
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=old, data={"reminder_id": 2}, status="failed", finished_at=old),
        ScheduledJob(
            name=SEND_REMINDER_JOB,
            run_at=NOW,
            data={"reminder_id": 3},
            status="completed",
            finished_at=NOW - timedelta(hours=1),
        ),
        ScheduledJob(name=SEND_REMINDER_JOB, run_at=old, data={"reminder_id": 4}),
    ])
    db.commit()

    assert runtime.scheduler.purge_finished(now=NOW) == 2

    db.expire_all()
    remaining = sorted((j.reminder_key, j.status) for j in db.execute(select(ScheduledJob)).scalars())
    assert remaining == [("3", "completed"), ("4", "scheduled")]


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


def test_started_scheduler_runs_due_jobs_until_stopped(file_session_factory, reminder_config):
    gateway = RecordingGateway()
    runtime = build_runtime(file_session_factory, gateway=gateway, config=reminder_config)

    with file_session_factory() as db:
        user = User(username="ana@example.com")
        db.add(user)
        db.flush()
        db.add(UserProfile(user_id=user.id, email="ana@example.com"))
        reminder = Reminder(
            user_id=user.id,
            tipo="medicamento",
            fecha=utcnow_naive() - timedelta(minutes=1),
            cantidad_disponible=1,
            horarios=[],
        )
        db.add(reminder)
        db.commit()
        job = runtime.scheduler.schedule_reminder(db, reminder)
        job_id = job.id

    runtime.start()
    try:
        assert runtime.scheduler.running
        deadline = time.monotonic() + 5
        status = None
        while time.monotonic() < deadline:
            with file_session_factory() as db:
                status = db.get(ScheduledJob, job_id).status
            if status == "completed":
                break
            time.sleep(0.05)
    finally:
        runtime.stop(timeout=5)

    assert status == "completed"
    assert not runtime.scheduler.running
    assert len(gateway.sent) == 1
