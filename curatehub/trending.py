"""
Trending tracker — time-windowed popularity backed by Redis sorted sets.

Layout (per tracker namespace, e.g. "trending" or "marketplace:trending"):
  • {ns}:{window}                     ZSET member = entity_id
  • {ns}:{scope}:{parent_id}:{window} ZSET member = entity_id
score = Unix timestamp of the entity's most recent view.

A view overwrites the previous score, so ranking is "most recently viewed
first", not "most viewed". Windows are answered with a score range
[now - window, +inf); stale members are never removed, they simply fall out
of range.
"""
import logging
import time
from typing import Any, Awaitable, Callable, Literal, Optional, get_args

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from curatehub.errors import StoreError, TrackerError

logger = logging.getLogger(__name__)

TimeWindow = Literal["1h", "24h", "7d", "30d"]

TIME_WINDOWS: tuple[str, ...] = get_args(TimeWindow)

WINDOW_SECONDS: dict[str, int] = {
    "1h": 3600,
    "24h": 86400,
    "7d": 604800,
    "30d": 2592000,
}

# Candidates pulled per requested result when a post-hoc filter is applied
FILTER_OVERFETCH = 2


def window_seconds(window: str) -> int:
    try:
        return WINDOW_SECONDS[window]
    except KeyError:
        raise ValueError(f"Unknown time window {window!r}") from None


class TrendingTracker:
    def __init__(
        self,
        redis: Optional[aioredis.Redis],
        namespace: str = "trending",
        scope: str = "feed",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.redis = redis
        self.namespace = namespace
        self.scope = scope
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    def key(self, window: str, parent_id: Optional[str] = None) -> str:
        if parent_id:
            return f"{self.namespace}:{self.scope}:{parent_id}:{window}"
        return f"{self.namespace}:{window}"

    async def record_view(self, entity_id: str, parent_id: Optional[str] = None) -> bool:
        """Upsert entity_id → now in every window set (and the parent's sets)."""
        if self.redis is None:
            return True

        now = self.clock()
        pipe = self.redis.pipeline(transaction=False)
        for window in TIME_WINDOWS:
            pipe.zadd(self.key(window), {entity_id: now})
            if parent_id:
                pipe.zadd(self.key(window, parent_id), {entity_id: now})
        try:
            await pipe.execute()
        except RedisError as exc:
            raise TrackerError(f"Failed to track view for {entity_id}", exc) from exc
        logger.debug("View recorded for %s (parent=%s)", entity_id, parent_id)
        return True

    async def top_ids(
        self,
        window: str,
        limit: int,
        parent_id: Optional[str] = None,
    ) -> list[str]:
        """Ids viewed within the window, most recent first, at most `limit`."""
        if self.redis is None or limit <= 0:
            return []

        cutoff = self.clock() - window_seconds(window)
        try:
            return await self.redis.zrevrangebyscore(
                self.key(window, parent_id), "+inf", cutoff, start=0, num=limit
            )
        except RedisError as exc:
            raise TrackerError(f"Failed to read trending set for {window}", exc) from exc

    async def top_k(
        self,
        window: str,
        limit: int,
        resolve: Callable[[str], Awaitable[Optional[Any]]],
        parent_id: Optional[str] = None,
        predicate: Optional[Callable[[Any], bool]] = None,
    ) -> list[Any]:
        """
        Resolve the top `limit` ids to records.

        Ids whose record no longer exists are skipped. With a predicate the
        candidate window grows to FILTER_OVERFETCH × limit and records failing
        it are skipped too, so fewer than `limit` results may come back.
        A store failure while resolving surfaces as TrackerError.
        """
        candidates = limit * FILTER_OVERFETCH if predicate is not None else limit
        ids = await self.top_ids(window, candidates, parent_id)

        results: list[Any] = []
        for entity_id in ids:
            try:
                record = await resolve(entity_id)
            except TrackerError:
                raise
            except StoreError as exc:
                raise TrackerError(f"Failed to resolve trending entry {entity_id}", exc) from exc
            if record is None:
                continue
            if predicate is not None and not predicate(record):
                continue
            results.append(record)
            if len(results) >= limit:
                break
        return results
