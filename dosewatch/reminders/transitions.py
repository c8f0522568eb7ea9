"""
State transition applied to a reminder after one of its occurrences was sent.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class Transition:
    sent: bool
    completed: bool
    cantidad_disponible: Optional[int]
    fecha: datetime

    @property
    def advanced(self) -> bool:
        """True when the reminder moved on to a new pending occurrence."""
        return not self.sent and not self.completed


def post_send_transition(
    cantidad_disponible: Optional[int],
    intervalo_personalizado: Optional[int],
    fecha: datetime,
) -> Transition:
    """Compute the reminder state after a successful send.

    Each send consumes one unit of stock. With stock left and an interval
    configured the reminder advances to ``fecha + interval`` and becomes
    sendable again. Otherwise it is closed: either the stock ran out, it was
    never tracked, or there is no way to compute a next occurrence.
    """
    if cantidad_disponible is None or cantidad_disponible <= 0:
        return Transition(sent=True, completed=True, cantidad_disponible=cantidad_disponible, fecha=fecha)

    remaining = cantidad_disponible - 1
    if remaining > 0 and intervalo_personalizado:
        return Transition(
            sent=False,
            completed=False,
            cantidad_disponible=remaining,
            fecha=fecha + timedelta(minutes=int(intervalo_personalizado)),
        )
    # remaining == 0, or stock left without an interval to reach it
    return Transition(sent=True, completed=True, cantidad_disponible=remaining, fecha=fecha)
