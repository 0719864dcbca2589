from __future__ import annotations

import redis


def create_redis(url: str) -> redis.Redis:
    # Records are opaque bytes, so keep responses undecoded.
    return redis.Redis.from_url(url, decode_responses=False)
