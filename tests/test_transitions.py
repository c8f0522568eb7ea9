from datetime import datetime, timedelta

from dosewatch.reminders.transitions import post_send_transition

FECHA = datetime(2026, 10, 18, 8, 0)


def test_advances_when_stock_and_interval_remain():
    t = post_send_transition(3, 30, FECHA)
    assert t.cantidad_disponible == 2
    assert t.fecha == FECHA + timedelta(minutes=30)
    assert t.sent is False
    assert t.completed is False
    assert t.advanced


def test_last_dose_completes_in_same_transition():
    t = post_send_transition(1, 30, FECHA)
    assert t.cantidad_disponible == 0
    assert t.completed is True
    assert t.sent is True
    assert t.fecha == FECHA
    assert not t.advanced


def test_stock_without_interval_is_closed():
    t = post_send_transition(5, None, FECHA)
    assert t.cantidad_disponible == 4
    assert t.completed is True
    assert t.sent is True
    assert t.fecha == FECHA


def test_untracked_or_exhausted_stock_completes_without_decrement():
    for cantidad in (None, 0, -1):
        t = post_send_transition(cantidad, 30, FECHA)
        assert t.completed is True
        assert t.sent is True
        assert t.cantidad_disponible == cantidad
