from __future__ import annotations
from typing import Iterable, List, Optional
import redis

# seconds; a stalled redis must fail fast instead of holding a worker thread
SOCKET_TIMEOUT = 2.0


class RedisCache:
    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.client: Optional[redis.Redis] = client
        if self.client is None and url:
            self.client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=SOCKET_TIMEOUT,
                socket_timeout=SOCKET_TIMEOUT,
            )

    def is_enabled(self) -> bool:
        return self.client is not None

    def incr_with_ttl(self, key: str, ttl_sec: int) -> None:
        if not self.client:
            return
        pipe = self.client.pipeline()
        pipe.incr(key, 1)
        pipe.expire(key, ttl_sec)
        pipe.execute()

    def get_ints(self, keys: Iterable[str]) -> List[int]:
        keys = list(keys)
        if not self.client or not keys:
            return [0] * len(keys)
        return [int(v) if v else 0 for v in self.client.mget(keys)]
