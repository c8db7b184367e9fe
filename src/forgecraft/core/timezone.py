"""UTC timezone enforcement.

This module sets the TZ environment variable to UTC to ensure
consistent datetime behavior across all environments, and provides the
single clock used for queue and history timestamps.
"""

import os
from datetime import datetime, timezone

# Set UTC timezone for the entire application
os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    SQLite has no timezone-aware column type, so timestamps are stored
    as naive UTC values.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
