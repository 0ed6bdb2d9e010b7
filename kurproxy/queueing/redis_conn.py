# kurproxy/queueing/redis_conn.py
from functools import lru_cache

from redis import Redis

from kurproxy.config import load_settings


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    url = load_settings().refresh.rq_redis_url
    # IMPORTANT: RQ expects raw bytes; do NOT enable decode_responses.
    return Redis.from_url(url, decode_responses=False)
