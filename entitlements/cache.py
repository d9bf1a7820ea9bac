from __future__ import annotations

import json
import logging
import os
import time
from typing import Dict, Optional

from .models import Principal

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1
DEFAULT_TTL = int(os.getenv("PRINCIPAL_CACHE_TTL", "300"))


class PrincipalCache:
    """Redis-backed cache of principal records with in-memory fallback.

    Cached badges are a read optimisation only; entries are invalidated as
    soon as a badge or role mutation is observed.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = DEFAULT_TTL) -> None:
        self._ttl_seconds = ttl_seconds
        self._redis = None
        self._mem: Dict[str, tuple[int, dict]] = {}
        redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL")

        if redis_url:
            try:
                import redis

                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except Exception as e:
                logger.warning("Redis unavailable, using in-memory principal cache: %s", e)
                self._redis = None

    @staticmethod
    def _require_email(email: str) -> str:
        normalized = str(email or "").strip().lower()
        if not normalized:
            raise ValueError("email is required")
        return normalized

    @staticmethod
    def _key(email: str) -> str:
        return f"principals:v{CACHE_SCHEMA_VERSION}:{email}"

    def get(self, email: str) -> Optional[Principal]:
        key = self._key(self._require_email(email))

        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except Exception as e:
                logger.warning("Principal cache get failed: %s", e)
                return None
            if not raw:
                return None
            return _decode_principal(json.loads(raw))

        data = self._mem.get(key)
        if not data:
            return None

        cached_at, payload = data
        if int(time.time()) - cached_at > self._ttl_seconds:
            self._mem.pop(key, None)
            return None
        return _decode_principal(payload)

    def set(self, principal: Principal, *, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds or self._ttl_seconds
        key = self._key(self._require_email(principal.email))
        payload = _encode_principal(principal)

        if self._redis is not None:
            try:
                self._redis.setex(key, ttl, json.dumps(payload))
            except Exception as e:
                logger.warning("Principal cache set failed: %s", e)
            return

        self._mem[key] = (int(time.time()), payload)

    def invalidate(self, email: str) -> None:
        key = self._key(self._require_email(email))
        if self._redis is not None:
            try:
                self._redis.delete(key)
            except Exception as e:
                logger.warning("Principal cache delete failed: %s", e)
        self._mem.pop(key, None)


def _encode_principal(principal: Principal) -> dict:
    return {
        "schema_version": CACHE_SCHEMA_VERSION,
        "record": principal.to_record(),
    }


def _decode_principal(raw: dict) -> Principal:
    if int(raw.get("schema_version", CACHE_SCHEMA_VERSION)) != CACHE_SCHEMA_VERSION:
        raise ValueError("Unsupported principal cache schema version")
    return Principal.from_record(raw["record"])
