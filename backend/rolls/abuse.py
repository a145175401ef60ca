# rolls/abuse.py
from __future__ import annotations

import time
from dataclasses import dataclass
from django.conf import settings
from django.core.cache import cache

class AbuseError(Exception):
    pass


@dataclass
class RateLimit:
    key: str
    limit: int
    window_sec: int


def hit_rate_limit(rl: RateLimit) -> None:
    """
    Simple fixed-window counter.
    """
    now_bucket = int(time.time()) // rl.window_sec
    cache_key = f"rl:{rl.key}:{now_bucket}"
    n = cache.get(cache_key, 0)
    if n >= rl.limit:
        raise AbuseError("Rate limit exceeded")
    cache.set(cache_key, n + 1, timeout=rl.window_sec + 2)


def step_rate_limit(user_id, round_id) -> RateLimit:
    return RateLimit(
        key=f"roll:{user_id}:{round_id}",
        limit=settings.ROLLS_STEP_RATE_LIMIT,
        window_sec=settings.ROLLS_STEP_RATE_WINDOW,
    )
