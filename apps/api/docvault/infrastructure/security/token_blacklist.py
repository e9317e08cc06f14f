"""
Access tokens revoked before their natural expiry.

Entries are never pruned; a blacklisted token stays listed after its ``exp``
has passed. The in-memory variant is process-local and empties on restart.
"""

import logging
import os
import threading
from typing import Optional, Protocol, Set

import redis

logger = logging.getLogger("token_blacklist")

BLACKLIST_REDIS_URL = os.environ.get("TOKEN_BLACKLIST_REDIS_URL")
BLACKLIST_REDIS_KEY = os.environ.get("TOKEN_BLACKLIST_REDIS_KEY", "auth:blacklisted_access_tokens")


class TokenBlacklist(Protocol):
    def add(self, token: str) -> None: ...

    def contains(self, token: str) -> bool: ...


class InMemoryTokenBlacklist:
    def __init__(self) -> None:
        self._tokens: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, token: str) -> None:
        with self._lock:
            self._tokens.add(token)

    def contains(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class RedisTokenBlacklist:
    """Shares the blacklist across processes through a Redis set."""

    def __init__(self, client: redis.Redis, key: str = BLACKLIST_REDIS_KEY) -> None:
        self._client = client
        self._key = key

    @classmethod
    def from_url(cls, url: str, key: str = BLACKLIST_REDIS_KEY) -> "RedisTokenBlacklist":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )
        return cls(client, key=key)

    def add(self, token: str) -> None:
        self._client.sadd(self._key, token)

    def contains(self, token: str) -> bool:
        return bool(self._client.sismember(self._key, token))


_default: Optional[TokenBlacklist] = None
_default_lock = threading.Lock()


def build_blacklist(redis_url: Optional[str] = None) -> TokenBlacklist:
    url = redis_url if redis_url is not None else BLACKLIST_REDIS_URL
    if url:
        logger.info("Using Redis token blacklist", extra={"key": BLACKLIST_REDIS_KEY})
        return RedisTokenBlacklist.from_url(url)
    return InMemoryTokenBlacklist()


def get_blacklist() -> TokenBlacklist:
    global _default
    with _default_lock:
        if _default is None:
            _default = build_blacklist()
        return _default
