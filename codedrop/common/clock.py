"""Time source for expiry decisions.

Everything that compares against a TTL takes a ``Clock`` so tests can move
time forward without sleeping.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
