"""
Stripe timestamp helpers.

Stripe sends times as integer epoch seconds; locally everything is an
aware UTC datetime.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone


def from_stripe_timestamp(value: int | str | None) -> datetime | None:
    """Convert epoch seconds to an aware UTC datetime; falsy input gives None."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def to_stripe_timestamp(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp())
