"""
Redis client helpers.

Each plugin opens its own client at startup and closes it on shutdown, so
nothing here is cached at module level.

Key families written through these helpers:
  • JSON records   — STRING keyed by feed:{id} / item:{id}
  • Score sets     — ZSET keyed by trending:{window}, score = last view (Unix)
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


async def connect_redis(url: str) -> aioredis.Redis:
    client = aioredis.Redis.from_url(url, decode_responses=True)
    await client.ping()
    logger.info("Redis connected at %s", url)
    return client


async def close_redis(client: Optional[aioredis.Redis]) -> None:
    if client is not None:
        await client.aclose()


async def get_json(r: aioredis.Redis, key: str) -> Optional[dict[str, Any]]:
    raw = await r.get(key)
    if raw:
        return json.loads(raw)
    return None


async def get_json_many(r: aioredis.Redis, keys: list[str]) -> list[Optional[dict[str, Any]]]:
    """Batch-fetch JSON records; missing keys come back as None."""
    if not keys:
        return []
    raws = await r.mget(keys)
    return [json.loads(raw) if raw else None for raw in raws]


def dumps(value: dict[str, Any]) -> str:
    return json.dumps(value, default=str)
