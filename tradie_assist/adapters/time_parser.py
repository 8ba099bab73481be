"""
Callback time parsing for the scheduling step.

Deliberately narrow: it understands "2", "2pm", "2:30", "14:00" style replies
and nothing else. Anything richer goes through the extraction fallback in
IntentExtractor.infer_callback_time.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

TIME_PATTERN = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?")

# Bare hours below this are read as afternoon (callbacks happen after lunch)
AFTERNOON_CUTOFF_HOUR = 8


def parse_callback_time(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Return the next future datetime matching the first time expression in ``text``."""
    if not text:
        return None
    match = TIME_PATTERN.search(text.lower())
    if not match:
        return None

    hour = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    meridiem = match.group(3)

    if meridiem == "pm" and hour < 12:
        hour += 12
    if meridiem == "am" and hour == 12:
        hour = 0
    if not meridiem and 1 <= hour <= 12 and hour < AFTERNOON_CUTOFF_HOUR:
        hour += 12

    if hour > 23 or minutes > 59:
        return None

    if now is None:
        now = datetime.now()
    proposed = now.replace(hour=hour, minute=minutes, second=0, microsecond=0)
    if proposed < now:
        proposed += timedelta(days=1)
    return proposed


def format_callback_time(dt: datetime) -> str:
    # e.g. "02:30 pm"
    return dt.strftime("%I:%M %p").lower()
