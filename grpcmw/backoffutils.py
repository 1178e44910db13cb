"""Helpers for computing backoff delays."""

from __future__ import annotations

import random
from datetime import timedelta
from typing import TypeVar

_D = TypeVar("_D", timedelta, float)


def jitter_up(duration: _D, jitter: float) -> _D:
    """Scale ``duration`` by a random factor in ``[1 - jitter, 1 + jitter]``.

    ``duration`` may be a timedelta or a number of seconds.
    """
    multiplier = jitter * (random.random() * 2 - 1)
    return duration * (1 + multiplier)


def exponent_base2(a: int) -> int:
    """Return 2**(a-1) for a >= 1, and 0 for a == 0."""
    if a < 0:
        raise ValueError(f"exponent must not be negative: {a}")
    return (1 << a) >> 1