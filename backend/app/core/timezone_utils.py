"""
Timezone utilities for ThoughtCloud.

Slot dates and session timestamps are interpreted in UTC.
"""

from datetime import date, datetime

import pytz


def utc_now() -> datetime:
    """Current timezone-aware datetime in UTC."""
    return datetime.now(pytz.UTC)


def today_utc() -> date:
    """'Today' as the calendar date in UTC."""
    return utc_now().date()

