from functools import lru_cache

from redis import Redis
from readiness.settings import settings


@lru_cache(maxsize=None)
def _client(url: str) -> Redis:
    # One connection pool per URL; flags and counters are touched on every gate event
    return Redis.from_url(url, decode_responses=True, socket_timeout=2.0, socket_connect_timeout=2.0)


def get_redis() -> Redis:
    return _client(settings.REDIS_URL)


def redis_ok() -> bool:
    try:
        return bool(get_redis().ping())
    except Exception:
        return False
