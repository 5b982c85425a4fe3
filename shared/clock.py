"""Clock used for timestamps and retention cutoffs.

Services take a ``Clock`` so tests can pin the current time.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
