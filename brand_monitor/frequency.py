"""Check frequency policy."""

from datetime import datetime, timedelta
from typing import Dict

FREQUENCY_INTERVALS: Dict[str, timedelta] = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
    # Fixed 30 days, not calendar months
    "monthly": timedelta(days=30),
}


def schedule_next(frequency: str, from_: datetime) -> datetime:
    """When the next check is due; unknown frequencies are treated as daily."""
    return from_ + FREQUENCY_INTERVALS.get(frequency, FREQUENCY_INTERVALS["daily"])
