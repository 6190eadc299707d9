"""
Cache abstraction for listing and single-record reads.

Supports a null client (caching disabled), an in-memory fallback for
tests/local runs and a Redis-backed implementation for production. Every
client is best-effort: failures are logged and reported as a miss, never
raised to the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

from portfolio.errors import CacheFailure

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
LIST_KEY_PREFIX = "projects:list:"
ITEM_KEY_PREFIX = "projects:item:"


def make_list_key(
    *,
    page: int,
    limit: int,
    featured: Optional[bool] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> str:
    signature = {
        "page": page,
        "limit": limit,
        "featured": featured,
        "category": category,
        "search": " ".join((search or "").lower().split()) or None,
    }
    payload = json.dumps(signature, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{LIST_KEY_PREFIX}{digest}"


def make_item_key(project_id: str) -> str:
    return f"{ITEM_KEY_PREFIX}{project_id}"


def _normalize_ttl(value: Any) -> int:
    try:
        ttl = int(value)
    except (TypeError, ValueError):
        ttl = 0
    return max(ttl, 0)


class CacheClient(Protocol):
    """Minimal best-effort key/value interface used by the services."""

    def connect(self) -> None:
        ...

    def close(self) -> None:
        ...

    def get(self, key: str) -> Optional[dict]:
        ...

    def set(self, key: str, value: dict, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        ...

    def delete(self, *keys: str) -> None:
        ...

    def delete_prefix(self, prefix: str) -> None:
        ...

    def ping(self) -> bool:
        ...


class NullCache:
    """Used when no cache is configured; every read is a miss."""

    def connect(self) -> None:
        pass

    def close(self) -> None:
        pass

    def get(self, key: str) -> Optional[dict]:
        return None

    def set(self, key: str, value: dict, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        return False

    def delete(self, *keys: str) -> None:
        pass

    def delete_prefix(self, prefix: str) -> None:
        pass

    def ping(self) -> bool:
        return False


@dataclass
class InMemoryCache:
    """Dictionary cache with TTL expiry for tests/dev."""

    entries: dict[str, tuple[float, str]] = field(default_factory=dict)

    def connect(self) -> None:
        pass

    def close(self) -> None:
        self.entries.clear()

    def get(self, key: str) -> Optional[dict]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at and time.time() >= expires_at:
            self.entries.pop(key, None)
            return None
        return json.loads(data)

    def set(self, key: str, value: dict, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        ttl = _normalize_ttl(ttl)
        expires_at = time.time() + ttl if ttl else 0.0
        # Serialize so callers never share mutable state with the cache.
        self.entries[key] = (expires_at, json.dumps(value))
        return True

    def delete(self, *keys: str) -> None:
        for key in keys:
            self.entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> None:
        for key in [k for k in self.entries if k.startswith(prefix)]:
            self.entries.pop(key, None)

    def ping(self) -> bool:
        return True


@dataclass
class RedisCache:
    """Redis-backed cache storing JSON payloads with SETEX."""

    url: str
    socket_timeout: float = 2.0
    client: Optional[redis.Redis] = field(default=None, init=False)

    def connect(self) -> None:
        self.client = redis.Redis.from_url(
            self.url,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
            decode_responses=True,
        )
        try:
            self.client.ping()
            logger.info("Redis cache connected")
        except redis_exceptions.RedisError as e:
            # Keep the client; redis-py reconnects on the next command.
            logger.warning("Redis cache unavailable at startup: %s", e)

    def close(self) -> None:
        if self.client is None:
            return
        try:
            self.client.close()
        except redis_exceptions.RedisError as e:
            logger.warning("Redis cache close failed: %s", e)
        self.client = None

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise CacheFailure("Redis cache is not connected")
        return self.client

    def get(self, key: str) -> Optional[dict]:
        try:
            raw = self._require_client().get(key)
            if not raw:
                return None
            return json.loads(raw)
        except (CacheFailure, redis_exceptions.RedisError, json.JSONDecodeError) as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None

    def set(self, key: str, value: dict, ttl: int = DEFAULT_TTL_SECONDS) -> bool:
        try:
            data = json.dumps(value, separators=(",", ":"))
            client = self._require_client()
            ttl = _normalize_ttl(ttl)
            if ttl:
                client.setex(key, ttl, data)
            else:
                client.set(key, data)
            return True
        except (CacheFailure, redis_exceptions.RedisError, TypeError, ValueError) as e:
            logger.warning("Cache set failed for %s: %s", key, e)
            return False

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._require_client().delete(*keys)
        except (CacheFailure, redis_exceptions.RedisError) as e:
            logger.warning("Cache delete failed for %s: %s", keys, e)

    def delete_prefix(self, prefix: str) -> None:
        try:
            client = self._require_client()
            batch = []
            for key in client.scan_iter(match=f"{prefix}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    client.delete(*batch)
                    batch = []
            if batch:
                client.delete(*batch)
        except (CacheFailure, redis_exceptions.RedisError) as e:
            logger.warning("Cache invalidation failed for %s*: %s", prefix, e)

    def ping(self) -> bool:
        try:
            return bool(self._require_client().ping())
        except (CacheFailure, redis_exceptions.RedisError):
            return False
