# -*- coding: utf-8 -*-
"""Time-of-day cutoff for joining new orders."""

import logging
from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Server wall-clock time, used when no cutoff timezone is configured."""
    return datetime.now().astimezone()


def parse_cutoff(value: str) -> Optional[time]:
    """Parse "HH:MM" into a time. Empty means no cutoff."""
    if not value:
        return None
    return datetime.strptime(value.strip(), "%H:%M").time()


def parse_timezone(name: str) -> Optional[ZoneInfo]:
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.error(f"Unknown timezone {name!r} - using local time for the join cutoff")
        return None


def should_handle_order(now: datetime, cutoff: Optional[time], tz: Optional[ZoneInfo] = None) -> bool:
    """False once the local hour/minute reaches the cutoff, True otherwise."""
    if cutoff is None:
        return True

    current = now.astimezone(tz) if tz is not None else now

    if (current.hour > cutoff.hour) or \
            (current.hour == cutoff.hour and current.minute >= cutoff.minute):
        return False

    return True
