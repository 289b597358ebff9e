"""Time utilities for consistent timestamp handling."""

import math
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_unix_seconds(value: int | float) -> datetime:
    """Convert a unix timestamp (seconds) to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two datetimes, never negative."""
    return max(0, int((end - start).total_seconds() * 1000))


def perf_elapsed_ms(start: float, end: float) -> int:
    """Milliseconds between two ``time.perf_counter()`` readings, rounded up.

    Rounding up keeps any measured call distinguishable from "not measured".
    """
    return max(0, math.ceil((end - start) * 1000))
