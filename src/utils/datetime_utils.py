"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from src.utils.datetime_utils import utc_now, receipt_timestamp

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)

    # Default receipt identifier for purchases recorded without one
    receipt_id = receipt_timestamp()
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def receipt_timestamp(moment: Optional[datetime] = None) -> str:
    """Return a millisecond epoch timestamp as a string.

    Purchases submitted without a receipt identifier are keyed by the
    moment they were recorded.

    Args:
        moment: Datetime to convert (default: now, UTC)

    Returns:
        Milliseconds since the epoch, e.g. "1760694000123"
    """
    moment = moment or utc_now()
    return str(int(moment.timestamp() * 1000))
