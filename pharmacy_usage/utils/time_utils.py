"""Clock helpers."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def elapsed_ms(start_time: float) -> float:
    """
    Milliseconds elapsed since ``start_time``.

    Args:
        start_time: Value previously returned by time.time()

    Returns:
        Elapsed time in milliseconds
    """
    return (time.time() - start_time) * 1000
