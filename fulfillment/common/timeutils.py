# fulfillment/common/timeutils.py
"""
Утилиты для работы со временем (всегда UTC).
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Текущее время с часовым поясом UTC."""
    return datetime.now(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    """Полночь (UTC) того дня, к которому относится moment."""
    return moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
