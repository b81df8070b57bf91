# src/backend/utils/timezone.py
from __future__ import annotations

import logging
from datetime import datetime, date

import pytz

from src.backend.config import settings

# -----------------------------------------------------------------------------
# Configure local timezone with fallback
# -----------------------------------------------------------------------------
try:
    LOCAL_TZ = pytz.timezone(settings.TIMEZONE)
except pytz.UnknownTimeZoneError as exc:
    logging.getLogger(__name__).warning(
        "Invalid TIMEZONE '%s' in environment; falling back to Asia/Kolkata. Error: %s",
        settings.TIMEZONE,
        exc
    )
    LOCAL_TZ = pytz.timezone("Asia/Kolkata")

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
def now_local() -> datetime:
    """
    Return the current time as a timezone-aware datetime in the configured local timezone.
    """
    return datetime.now(LOCAL_TZ)


def today_local() -> date:
    """
    Return the current date in the configured local timezone.
    """
    return now_local().date()


def start_of_day(d: date) -> datetime:
    """Midnight of `d` in the local timezone."""
    return LOCAL_TZ.localize(datetime(d.year, d.month, d.day))


def to_local(dt: datetime | None) -> datetime | None:
    """
    Normalise a datetime read back from the database.
    SQLite hands back naive values, which were written as local time.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def format_en_gb(d: date) -> str:
    """Example: '02/09/2025'"""
    return d.strftime("%d/%m/%Y")
