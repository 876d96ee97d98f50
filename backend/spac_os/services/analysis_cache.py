from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

import redis

from spac_os.config import get_settings
from spac_os.log import get_logger

logger = get_logger(__name__)


class AnalysisCache:
    """Redis JSON cache for AI analyses. Redis errors count as misses."""

    def __init__(self, client: Optional[Any] = None) -> None:
        if client is None:
            settings = get_settings()
            client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self._client = client

    @staticmethod
    def _key(namespace: str, payload: str) -> str:
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"analysis:{namespace}:{digest}"

    def get_json(self, namespace: str, payload: str) -> Optional[Any]:
        key = self._key(namespace, payload)
        try:
            raw = self._client.get(key)
            if not raw:
                return None
            return json.loads(raw)
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Analysis cache read failed for %s: %s", key, exc)
            return None

    def set_json(self, namespace: str, payload: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        key = self._key(namespace, payload)
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().analysis_cache_ttl_seconds
        try:
            self._client.setex(key, max(1, int(ttl)), json.dumps(value))
        except (redis.RedisError, TypeError) as exc:
            logger.warning("Analysis cache write failed for %s: %s", key, exc)
