"""
Rightsizer Utility Library.

Common helper functions used across all modules.
"""

import asyncio
import functools
import inspect
import time
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from datetime import datetime, timedelta, timezone


logger = logging.getLogger("rightsizer.utils")


# ─────────────────────────────────────────────────────────────
# Retry Decorator (async provider calls)
# ─────────────────────────────────────────────────────────────

def retry(
    max_attempts: int = 3,
    delay_seconds: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """
    Retry an async call with exponential backoff. Only ``exceptions`` are
    retried; the last one is re-raised once the attempts run out.

    Usage:
        @retry(max_attempts=3, delay_seconds=1.0, exceptions=(httpx.TransportError,))
        async def get_power_state(...):
            ...
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"retry expects a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        raise
                    wait = delay_seconds * (backoff_factor ** (attempt - 1))
                    logger.warning(
                        f"Retry {attempt}/{max_attempts} for {func.__name__} "
                        f"after {wait:.1f}s -- {e}"
                    )
                    await asyncio.sleep(wait)

        return wrapper

    return decorator


# ─────────────────────────────────────────────────────────────
# Bounded Polling
# ─────────────────────────────────────────────────────────────

class WaitResult(str, Enum):
    REACHED = "reached"
    TIMED_OUT = "timed_out"


async def wait_until(
    predicate: Callable[[], Awaitable[bool]],
    interval: float,
    timeout: float,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> WaitResult:
    """
    Poll ``predicate`` every ``interval`` seconds until it returns True or
    ``timeout`` seconds have elapsed.

    The predicate is always evaluated at least once, and once more after
    the last sleep, so a state reached right at the bound still counts.
    Exceptions raised by the predicate propagate.

    Usage:
        result = await wait_until(is_powered_off, interval=2, timeout=120)
        if result is WaitResult.TIMED_OUT:
            ...
    """
    deadline = clock() + timeout
    while True:
        if await predicate():
            return WaitResult.REACHED
        remaining = deadline - clock()
        if remaining <= 0:
            return WaitResult.TIMED_OUT
        await sleep(min(interval, remaining))


# ─────────────────────────────────────────────────────────────
# Date Helpers
# ─────────────────────────────────────────────────────────────

def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def days_ago(days: float, now: Optional[datetime] = None) -> datetime:
    """Return a UTC datetime N days before ``now`` (default: current time)."""
    return (now or utc_now()) - timedelta(days=days)


def to_epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def from_epoch_ms(ms: Any) -> datetime:
    return datetime.fromtimestamp(float(ms) / 1000.0, tz=timezone.utc)


# ─────────────────────────────────────────────────────────────
# Safe Data Access
# ─────────────────────────────────────────────────────────────

def safe_get(data: Dict, *keys, default: Any = None) -> Any:
    """
    Safely traverse nested dicts.

    Usage:
        val = safe_get(response, "values", 0, "stat-list", "stat", default=[])
    """
    current = data
    for key in keys:
        try:
            if isinstance(current, dict):
                current = current[key]
            elif isinstance(current, (list, tuple)) and isinstance(key, int):
                current = current[key]
            else:
                return default
        except (KeyError, IndexError, TypeError):
            return default
    return current


def safe_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Convert value to float safely, returning default on failure."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
