from datetime import timedelta

from dosewatch.models.user import User
from dosewatch.reminders.engine import ReminderProcessor
from dosewatch.reminders.repository import claim_occurrence

from conftest import NOW, RecordingGateway


def _processor(gateway, reminder_config):
    return ReminderProcessor(gateway, config=reminder_config)


def test_regular_reminder_fires_at_its_time(db, make_reminder, gateway, reminder_config):
    make_reminder(fecha=NOW + timedelta(seconds=30))
    processor = _processor(gateway, reminder_config)

    assert processor.scan(db, now=NOW - timedelta(hours=1)).processed == 0
    assert processor.scan(db, now=NOW).processed == 1
    assert len(gateway.sent) == 1


def test_control_reminder_fires_one_hour_early(db, make_reminder, gateway, reminder_config):
    make_reminder(tipo="control", fecha=NOW + timedelta(hours=1), cantidad_disponible=1)
    processor = _processor(gateway, reminder_config)

    assert processor.scan(db, now=NOW + timedelta(hours=1)).processed == 0
    assert processor.scan(db, now=NOW).processed == 1
    recipient, subject, payload = gateway.sent[0]
    assert subject == "⏰ Recordatorio de control"
    assert payload["tipo"] == "control"


def test_window_is_half_open(db, make_reminder, gateway, reminder_config):
    inside = make_reminder(fecha=NOW + timedelta(seconds=59))
    edge = make_reminder(fecha=NOW + timedelta(seconds=60))
    processor = _processor(gateway, reminder_config)

    processor.scan(db, now=NOW)

    db.refresh(inside)
    db.refresh(edge)
    assert inside.cantidad_disponible == 2
    assert edge.cantidad_disponible == 3
    assert len(gateway.sent) == 1


def test_back_to_back_scans_send_once(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder(cantidad_disponible=1)
    processor = _processor(gateway, reminder_config)

    first = processor.scan(db, now=NOW)
    second = processor.scan(db, now=NOW)

    assert first.processed == 1
    assert second.processed == 0
    assert len(gateway.sent) == 1
    db.refresh(reminder)
    assert reminder.sent is True
    assert reminder.completed is True


def test_completed_reminders_are_never_touched(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder(completed=True)
    before = reminder.updated_at

    result = _processor(gateway, reminder_config).scan(db, now=NOW)

    assert result.processed == 0
    assert gateway.sent == []
    db.refresh(reminder)
    assert reminder.cantidad_disponible == 3
    assert reminder.updated_at == before


def test_three_doses_every_thirty_minutes(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder(cantidad_disponible=3, intervalo_personalizado=30)
    processor = _processor(gateway, reminder_config)

    for minutes in (0, 30, 60):
        assert processor.scan(db, now=NOW + timedelta(minutes=minutes)).processed == 1

    db.refresh(reminder)
    assert len(gateway.sent) == 3
    assert reminder.fecha == NOW + timedelta(minutes=60)
    assert reminder.cantidad_disponible == 0
    assert reminder.completed is True
    assert reminder.sent is True
    assert processor.scan(db, now=NOW + timedelta(minutes=90)).processed == 0


def test_advanced_reminder_is_sendable_again(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder()

    _processor(gateway, reminder_config).scan(db, now=NOW)

    db.refresh(reminder)
    assert reminder.sent is False
    assert reminder.completed is False
    assert reminder.cantidad_disponible == 2
    assert reminder.fecha == NOW + timedelta(minutes=30)


def test_owner_without_valid_email_is_skipped_untouched(db, make_reminder, gateway, reminder_config):
    nobody = User(username="notanemail")
    db.add(nobody)
    db.commit()
    reminder = make_reminder(user_id=nobody.id)

    result = _processor(gateway, reminder_config).scan(db, now=NOW)

    assert result.processed == 0
    assert result.skipped == 1
    assert gateway.sent == []
    db.refresh(reminder)
    assert reminder.sent is False
    assert reminder.cantidad_disponible == 3
    assert reminder.fecha == NOW


def test_one_bad_item_does_not_stop_the_batch(db, make_reminder, gateway, reminder_config):
    nobody = User(username="notanemail")
    db.add(nobody)
    db.commit()
    make_reminder(user_id=nobody.id)
    good = make_reminder(fecha=NOW + timedelta(seconds=10))

    result = _processor(gateway, reminder_config).scan(db, now=NOW)

    assert result.processed == 1
    assert result.skipped == 1
    db.refresh(good)
    assert good.cantidad_disponible == 2


def test_delivery_failure_releases_the_claim(db, make_reminder, reminder_config):
    reminder = make_reminder()
    failing = RecordingGateway(result=False)

    result = _processor(failing, reminder_config).scan(db, now=NOW)

    assert result.failed == 1
    db.refresh(reminder)
    assert reminder.sent is False
    assert reminder.cantidad_disponible == 3

    retry = _processor(RecordingGateway(), reminder_config).scan(db, now=NOW)
    assert retry.processed == 1


def test_gateway_exception_is_a_per_item_failure(db, make_reminder, reminder_config):
    reminder = make_reminder()
    exploding = RecordingGateway(result=ConnectionError("smtp down"))

    result = _processor(exploding, reminder_config).scan(db, now=NOW)

    assert result.failed == 1
    db.refresh(reminder)
    assert reminder.sent is False
    assert reminder.cantidad_disponible == 3


def test_occurrence_claimed_elsewhere_is_not_sent(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder()
    processor = _processor(gateway, reminder_config)

    # Another worker wins the claim after this one selected the reminder
    assert claim_occurrence(db, reminder.id, reminder.fecha) is True
    assert claim_occurrence(db, reminder.id, reminder.fecha) is False

    assert processor.process(db, reminder, source="scanner") is False
    assert processor.scan(db, now=NOW).processed == 0
    assert gateway.sent == []


def test_stock_without_interval_is_completed_after_send(db, make_reminder, gateway, reminder_config):
    reminder = make_reminder(cantidad_disponible=4, intervalo_personalizado=None)

    _processor(gateway, reminder_config).scan(db, now=NOW)

    db.refresh(reminder)
    assert reminder.cantidad_disponible == 3
    assert reminder.completed is True
    assert reminder.sent is True


def test_notification_payload(db, make_reminder, gateway, reminder_config):
    make_reminder()

    _processor(gateway, reminder_config).scan(db, now=NOW)

    recipient, subject, payload = gateway.sent[0]
    assert recipient == "ana.perez@example.com"
    assert subject == "⏰ Recordatorio de medicamento"
    assert payload["titulo"] == "Ibuprofeno"
    assert payload["cantidadDisponible"] == 3
    assert payload["nombrePersona"] == "Ana Pérez"
    assert len(payload["horarios"]) == 1


def test_scanner_keeps_job_queue_in_step(db, make_reminder, runtime):
    reminder = make_reminder()

    runtime.processor.scan(db, now=NOW)

    jobs = runtime.scheduler.jobs_for_reminder(db, reminder.id)
    assert len(jobs) == 1
    assert jobs[0].status == "scheduled"
    assert jobs[0].run_at == NOW + timedelta(minutes=30)
    assert jobs[0].data["occurrence"] == (NOW + timedelta(minutes=30)).isoformat()


def test_scan_sees_changes_made_by_another_session(db, session_factory, make_reminder, gateway, reminder_config):
    reminder = make_reminder(cantidad_disponible=2, intervalo_personalizado=30)
    processor = _processor(gateway, reminder_config)

    other = session_factory()
    try:
        assert processor.scan(other, now=NOW).processed == 1
    finally:
        other.close()

    # db still holds the copy loaded before the first dose went out
    assert reminder.fecha == NOW
    assert processor.scan(db, now=NOW + timedelta(minutes=30)).processed == 1
    assert len(gateway.sent) == 2
    db.refresh(reminder)
    assert reminder.completed is True
