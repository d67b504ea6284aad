"""Bounded polling helper shared by every wait site."""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class WaitResult(Generic[T]):
    """Outcome of :func:`wait_for`."""

    ok: bool
    attempts: int
    value: T | None
    waited: float

    @property
    def timed_out(self) -> bool:
        """Return ``True`` when the predicate never succeeded."""
        return not self.ok


def wait_for(
    probe: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    interval: float,
    max_attempts: int,
    backoff: float = 1.0,
    max_interval: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, T], None] | None = None,
) -> WaitResult[T]:
    """Call *probe* until *predicate* accepts its value or attempts run out.

    The delay between attempts starts at *interval* and is multiplied by
    *backoff* after every miss (capped at *max_interval*). No sleep happens
    after the final attempt. Exceptions raised by *probe* propagate.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    delay = interval
    waited = 0.0
    value: T | None = None
    for attempt in range(1, max_attempts + 1):
        value = probe()
        if predicate(value):
            return WaitResult(ok=True, attempts=attempt, value=value, waited=waited)
        if on_attempt is not None:
            on_attempt(attempt, value)
        if attempt == max_attempts:
            break
        sleep(delay)
        waited += delay
        delay = delay * backoff
        if max_interval is not None:
            delay = min(delay, max_interval)
    return WaitResult(ok=False, attempts=max_attempts, value=value, waited=waited)


__all__ = ["WaitResult", "wait_for"]
