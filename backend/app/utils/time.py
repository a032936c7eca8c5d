"""
Time utilities for the analyzer backend.
"""

import re
from datetime import datetime, timezone
from typing import Any

# Before Python 3.11, fromisoformat() only takes 3 or 6 fractional digits
_FRACTION_RE = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    """Get current UTC time (timezone-aware, Python 3.12+ compatible)."""
    return datetime.now(timezone.utc)


def _microsecond_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp_ms(value: Any) -> float:
    """Parse an ISO-8601 timestamp into epoch milliseconds.

    Naive timestamps are read as UTC. Fractions finer than microseconds
    (Java ``Instant`` nanoseconds) are truncated. Missing or unparseable
    values give 0.
    """
    if not value:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(_microsecond_fraction, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000
