import logging
import time

import redis

logger = logging.getLogger(__name__)

WEBHOOK_RATE_PREFIX = "webhook:rate:"


# In-process stand-in used when TESTING
class _FakeRedis:
    def __init__(self):
        self._store = {}
        self._exp = {}

    def _cleanup(self, key):
        exp = self._exp.get(key)
        if exp is not None and time.time() > exp:
            self._store.pop(key, None)
            self._exp.pop(key, None)

    def incr(self, key):
        self._cleanup(key)
        value = int(self._store.get(key, 0)) + 1
        self._store[key] = value
        return value

    def expire(self, key, ttl):
        if key in self._store:
            self._exp[key] = time.time() + int(ttl)
            return True
        return False

    def get(self, key):
        self._cleanup(key)
        return self._store.get(key)

    def ttl(self, key):
        self._cleanup(key)
        if key not in self._store:
            return -2  # key does not exist
        if key not in self._exp:
            return -1
        remain = int(self._exp[key] - time.time())
        return max(remain, 0)

    def delete(self, key):
        self._store.pop(key, None)
        self._exp.pop(key, None)

    def flushall(self):
        self._store.clear()
        self._exp.clear()


def create_redis_client(url: str, testing: bool = False):
    if testing:
        return _FakeRedis()
    return redis.from_url(url, decode_responses=True)


class WebhookRateLimiter:
    """Fixed-window counter of webhook deliveries per payment reference."""

    def __init__(self, client, limit: int = 10, window_seconds: int = 60):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds

    def allow(self, reference: str) -> bool:
        key = f"{WEBHOOK_RATE_PREFIX}{reference}"
        try:
            count = self.client.incr(key)
            if count == 1:
                self.client.expire(key, self.window_seconds)
        except redis.RedisError as exc:
            # fail open
            logger.warning("webhook rate limiter unavailable: %s", exc)
            return True
        if count > self.limit:
            logger.warning("rate limit hit for reference %s (%s deliveries)", reference, count)
            return False
        return True
