"""
Rightsizer Utilities -- Shared helpers, decorators, and polling.
"""

from .helpers import (
    retry,
    WaitResult,
    wait_until,
    utc_now,
    days_ago,
    to_epoch_ms,
    from_epoch_ms,
    safe_get,
    safe_float,
)

__all__ = [
    "retry",
    "WaitResult",
    "wait_until",
    "utc_now",
    "days_ago",
    "to_epoch_ms",
    "from_epoch_ms",
    "safe_get",
    "safe_float",
]
