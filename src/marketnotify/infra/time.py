"""Time utilities for consistent timestamp handling."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def epoch_millis() -> int:
    """Milliseconds since the epoch, used for synthetic provider message ids."""
    return int(time.time() * 1000)
