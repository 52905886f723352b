"""
Simple in-memory rate limiter for socket intents.

This is not meant to be a perfect security boundary (restarts reset state),
but it keeps a spamming client from flooding a lobby with intents.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int = 0


class RateLimiter:
    """
    Sliding-window limiter: allow N events per window per (scope, player).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        # key -> list of timestamps (monotonic seconds)
        self._hits: dict[tuple[str, str], list[float]] = {}
        self._clock = clock

    def check(self, *, scope: str, player_id: str, limit: int, per_seconds: int) -> RateLimitResult:
        now = self._clock()
        key = (scope, player_id)
        window_start = now - per_seconds

        hits = self._hits.get(key, [])
        hits = [t for t in hits if t >= window_start]

        if len(hits) >= limit:
            oldest = min(hits)
            retry_after = int(max(0.0, (oldest + per_seconds) - now) + 0.999)
            self._hits[key] = hits
            return RateLimitResult(allowed=False, retry_after_seconds=retry_after)

        hits.append(now)
        self._hits[key] = hits
        return RateLimitResult(allowed=True, retry_after_seconds=0)

    def forget(self, player_id: str) -> None:
        """Drop every window held for a player."""
        for key in [k for k in self._hits if k[1] == player_id]:
            del self._hits[key]
