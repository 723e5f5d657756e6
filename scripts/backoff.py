"""Exponential backoff schedule and retry loop shared by provider calls."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from random import Random, SystemRandom
from typing import TypeVar

_T = TypeVar("_T")
RetryHook = Callable[[int, float, Exception], None]


def exponential_backoff(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    factor: float = 2.0,
    max_delay: float = 30.0,
    jitter: float = 0.25,
    rng: Random | None = None,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds); the delay is what to wait after that attempt fails."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay <= 0:
        raise ValueError("base_delay must be > 0")
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if jitter < 0:
        raise ValueError("jitter must be >= 0")

    random = rng or SystemRandom()
    delay = min(base_delay, max_delay)
    for attempt in range(1, max_attempts + 1):
        offset = random.uniform(0, delay * jitter) if jitter else 0.0
        yield attempt, min(delay + offset, max_delay)
        delay = min(delay * factor, max_delay)


def call_with_backoff(
    func: Callable[[], _T],
    *,
    retry_on: tuple[type[Exception], ...],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] | None = None,
    on_retry: RetryHook | None = None,
    rng: Random | None = None,
) -> _T:
    """Call ``func`` until it succeeds, retrying only ``retry_on`` errors.

    The last error is re-raised once ``max_attempts`` is spent; anything not in
    ``retry_on`` propagates immediately.
    """
    pause = sleep or time.sleep
    for attempt, delay in exponential_backoff(max_attempts=max_attempts, base_delay=base_delay, rng=rng):
        try:
            return func()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            pause(delay)
    raise AssertionError("unreachable: exponential_backoff yields at least one attempt")
