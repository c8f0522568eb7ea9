from datetime import datetime
from typing import Tuple

from dosewatch.utils.timezone import to_display


def format_fecha_hora(dt: datetime) -> Tuple[str, str]:
    """Split a stored timestamp into display date (dd/mm/yyyy) and 12h time."""
    local = to_display(dt)
    return local.strftime("%d/%m/%Y"), local.strftime("%I:%M %p")


def format_fecha_iso(dt: datetime) -> str:
    """Value suitable for an HTML ``datetime-local`` input, in display time."""
    return to_display(dt).strftime("%Y-%m-%dT%H:%M")
