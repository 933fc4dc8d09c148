"""Redis-based per-pipeline lock so scheduled cycles do not overlap."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

import redis.asyncio as redis

from cardscout.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "cardscout:cycle:lock"

# Returns 0 = not found, 1 = deleted, 2 = held by someone else
RELEASE_SCRIPT = """
local lock_value = redis.call('GET', KEYS[1])
if not lock_value then
    return 0
end

local cjson = require('cjson')
local success, data = pcall(cjson.decode, lock_value)
if not success then
    return 2
end

if data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('DEL', KEYS[1])
    return 1
else
    return 2
end
"""

# Returns 0 = not found, 1 = refreshed, 2 = held by someone else
REFRESH_SCRIPT = """
local lock_value = redis.call('GET', KEYS[1])
if not lock_value then
    return 0
end

local cjson = require('cjson')
local success, data = pcall(cjson.decode, lock_value)
if not success then
    return 0
end

if data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('EXPIRE', KEYS[1], ARGV[3])
    return 1
else
    return 2
end
"""


def lock_key(pipeline: str) -> str:
    return f"{LOCK_KEY_PREFIX}:{pipeline}"


class CycleLockManager:
    """
    Token-owned lock per pipeline.

    A lock is released or refreshed only by the run that holds it; the TTL
    frees it if a worker dies mid-cycle.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.redis_url = redis_url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.cycle_lock_ttl_seconds
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire(self, pipeline: str, run_id: Optional[str] = None) -> Optional[str]:
        """
        Acquire the lock for a pipeline.

        Returns:
            Token string if acquired, None if another run holds it
        """
        redis_client = await self._get_redis()
        run_id = run_id or uuid4().hex
        token = uuid4().hex
        lock_value = json.dumps({
            "run_id": run_id,
            "token": token,
            "started_at": datetime.now(timezone.utc).isoformat(),
        })

        acquired = await redis_client.set(lock_key(pipeline), lock_value, nx=True, ex=self.ttl_seconds)
        if acquired:
            logger.info(f"Acquired {pipeline} lock for run_id: {run_id[:16]}")
            return token

        logger.debug(f"{pipeline} lock already held")
        return None

    async def release(self, pipeline: str, run_id: str, token: str) -> bool:
        """Release the lock only if this run still owns it."""
        redis_client = await self._get_redis()
        result = await redis_client.eval(RELEASE_SCRIPT, 1, lock_key(pipeline), run_id, token)
        if result == 2:
            logger.warning(f"Refusing to release {pipeline} lock held by another run")
            return False
        if result == 1:
            logger.info(f"Released {pipeline} lock for run_id: {run_id[:16]}")
        return True

    async def refresh(self, pipeline: str, run_id: str, token: str) -> bool:
        """Extend the lock TTL if this run still owns it."""
        redis_client = await self._get_redis()
        result = await redis_client.eval(
            REFRESH_SCRIPT, 1, lock_key(pipeline), run_id, token, str(self.ttl_seconds)
        )
        return result == 1

    async def get_lock_info(self, pipeline: str) -> Optional[Dict[str, Any]]:
        """Return run_id, started_at and remaining ttl for a held lock."""
        redis_client = await self._get_redis()
        value = await redis_client.get(lock_key(pipeline))
        if not value:
            return None
        ttl = await redis_client.ttl(lock_key(pipeline))
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.error(f"Invalid {pipeline} lock value: {value}")
            return {"raw_value": value, "ttl_seconds": ttl if ttl > 0 else None}
        return {
            "run_id": data.get("run_id"),
            "started_at": data.get("started_at"),
            "ttl_seconds": ttl if ttl > 0 else None,
            "checked_at": time.time(),
        }

    async def force_unlock(self, pipeline: str) -> bool:
        """Clear a lock without ownership checks (admin recovery)."""
        redis_client = await self._get_redis()
        await redis_client.delete(lock_key(pipeline))
        logger.warning(f"Force-cleared {pipeline} lock")
        return True


# Global lock manager instance
cycle_lock_manager = CycleLockManager()
