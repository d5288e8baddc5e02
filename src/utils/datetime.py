# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the provisioning engine.

All timestamps are stored in UTC and every Python datetime handled by the
services is timezone-aware, so naive/aware mixing errors cannot occur.

Usage:
    from src.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Get the current UTC calendar date."""
    return utc_now().date()


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None. Naive values are assumed UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def hours_from_now(hours: int) -> datetime:
    """Get a datetime N hours from now.

    Args:
        hours: Number of hours to add.

    Returns:
        Timezone-aware UTC datetime.
    """
    return utc_now() + timedelta(hours=hours)


def is_expired(expiry: datetime | None) -> bool:
    """Check whether an expiry timestamp is in the past.

    Args:
        expiry: Expiry timestamp, naive values are treated as UTC.

    Returns:
        True if expiry is set and already passed.
    """
    if expiry is None:
        return False
    return ensure_utc(expiry) <= utc_now()


def epoch_millis() -> int:
    """Milliseconds since the Unix epoch, used for unique fallbacks."""
    return int(utc_now().timestamp() * 1000)
