# httphelper/transfer/pacing.py
"""
Polite pause before a transfer.

A session with both bounds set waits a random whole number of seconds in
[min, max] before each request. This is a crawl-rate limiter, not a retry
backoff.
"""

from __future__ import annotations

import logging
import random
import time

log = logging.getLogger(__name__)


def _sleep(dt: float) -> None:
    # Calls real time.sleep, but tests can monkeypatch it.
    time.sleep(dt)


def pick_delay(min_seconds: int, max_seconds: int) -> int:
    """Uniform whole-second delay in the closed interval [min_seconds, max_seconds]."""
    return random.randint(min_seconds, max_seconds)


def pause(min_seconds: int | None, max_seconds: int | None) -> int:
    """
    Sleep before a transfer when both bounds are set.
    Returns the number of seconds slept (0 if pacing is off).
    """
    if min_seconds is None or max_seconds is None:
        return 0
    delay = pick_delay(min_seconds, max_seconds)
    if delay > 0:
        log.debug("pacing: sleeping %ss before transfer", delay)
        _sleep(delay)
    return delay


def validate_bounds(min_seconds: object, max_seconds: object) -> str | None:
    """Return a reason string when the bounds are unusable, else None."""
    for name, value in (("min", min_seconds), ("max", max_seconds)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{name} pause must be an integer number of seconds; got {value!r}"
        if value < 0:
            return f"{name} pause must not be negative; got {value!r}"
    if min_seconds is not None and max_seconds is not None and min_seconds > max_seconds:
        return f"min pause {min_seconds} is greater than max pause {max_seconds}"
    return None


__all__ = [
    "pause",
    "pick_delay",
    "validate_bounds",
]
