"""
RSS service — feeds and feed items kept in Redis.

Key layout:
  • feeds:directory   SET    feed ids
  • feed:{id}         STRING feed JSON (options + categories, no items)
  • feed:{id}:items   LIST   item ids in insertion order
  • item:{id}         STRING item JSON
  • items:owner       HASH   item id → feed id

Aggregations (all items, categories, items by category) walk every feed's
membership list; there is no secondary index.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from curatehub.clients.redis_client import dumps, get_json, get_json_many
from curatehub.errors import NotFoundError, ValidationError
from curatehub.plugins.rss.feed_generator import (
    generate_atom_xml,
    generate_rss_xml,
    parse_date,
)
from curatehub.plugins.rss.schemas import (
    Feed,
    FeedItem,
    FeedItemUpdate,
    RssStats,
)
from curatehub.store import store_operation, validate
from curatehub.telemetry import FEED_RENDER_SECONDS, VIEW_EVENTS_TOTAL
from curatehub.trending import TrendingTracker

logger = logging.getLogger(__name__)

PLUGIN = "rss"
DIRECTORY_KEY = "feeds:directory"
OWNER_KEY = "items:owner"

# Items without a readable date sort after everything else
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def feed_key(feed_id: str) -> str:
    return f"feed:{feed_id}"


def feed_items_key(feed_id: str) -> str:
    return f"feed:{feed_id}:items"


def item_key(item_id: str) -> str:
    return f"item:{item_id}"


def item_sort_key(item: FeedItem) -> datetime:
    return parse_date(item.published or item.date) or _EPOCH


def _paginate(items: list, limit: int, offset: int) -> list:
    return items[offset:offset + limit]


class RssService:
    def __init__(
        self,
        redis: aioredis.Redis,
        base_url: str = "http://localhost:1337",
        tracker: Optional[TrendingTracker] = None,
    ) -> None:
        self.redis = redis
        self.base_url = base_url
        self.tracker = tracker or TrendingTracker(redis, namespace="trending", scope="feed")

    def _op(self, op: str, message: str):
        return store_operation(PLUGIN, op, message, (RedisError,))

    # ───────────────────────────── Health ─────────────────────────────────

    async def health_check(self) -> str:
        with self._op("health", "Redis health check failed"):
            await self.redis.ping()
        return "OK"

    # ───────────────────────────── Reads ──────────────────────────────────

    async def _load_feed(self, feed_id: str) -> Optional[Feed]:
        data = await get_json(self.redis, feed_key(feed_id))
        return Feed.model_validate(data) if data else None

    async def _load_items(self, feed_id: str) -> list[FeedItem]:
        item_ids = await self.redis.lrange(feed_items_key(feed_id), 0, -1)
        records = await get_json_many(self.redis, [item_key(i) for i in item_ids])
        return [FeedItem.model_validate(r) for r in records if r]

    async def _feed_ids(self) -> list[str]:
        return sorted(await self.redis.smembers(DIRECTORY_KEY))

    async def _other_owners(self, feed_id: str, item_ids: list[str]) -> dict[str, str]:
        """Map each of item_ids currently listed under another feed to that feed."""
        if not item_ids:
            return {}
        owners = await self.redis.hmget(OWNER_KEY, item_ids)
        return {i: o for i, o in zip(item_ids, owners) if o is not None and o != feed_id}

    async def get_feeds(self, limit: Optional[int] = None, offset: int = 0) -> list[Feed]:
        """Feeds ordered by id; items are not attached."""
        with self._op("get_feeds", "Failed to get feeds"):
            feed_ids = await self._feed_ids()
            if limit is not None:
                feed_ids = _paginate(feed_ids, limit, offset)
            records = await get_json_many(self.redis, [feed_key(f) for f in feed_ids])
        return [Feed.model_validate(r) for r in records if r]

    async def get_feed(self, feed_id: str, include_items: bool = True) -> Optional[Feed]:
        with self._op("get_feed", f"Failed to get feed {feed_id}"):
            feed = await self._load_feed(feed_id)
            if feed and include_items:
                feed.items = await self._load_items(feed_id)
        return feed

    async def get_feed_items(self, feed_id: str) -> list[FeedItem]:
        with self._op("get_feed_items", f"Failed to get items for feed {feed_id}"):
            return await self._load_items(feed_id)

    async def get_feed_item(self, item_id: str) -> Optional[FeedItem]:
        with self._op("get_feed_item", f"Failed to get item {item_id}"):
            data = await get_json(self.redis, item_key(item_id))
        return FeedItem.model_validate(data) if data else None

    # ───────────────────────────── Writes ─────────────────────────────────

    async def add_feed(self, feed: Union[Feed, dict[str, Any]]) -> str:
        """
        Store a feed with its items, replacing any feed with the same id.

        The old items of a replaced feed are deleted. An item id already listed
        under another feed moves to this one. All keys are written in one
        MULTI/EXEC block.
        """
        feed = validate(Feed, feed)
        feed_id = feed.options.id
        items = [item.model_copy(update={"id": item.id or str(uuid.uuid4())}) for item in feed.items]

        with self._op("add_feed", f"Failed to add feed {feed_id}"):
            old_item_ids = await self.redis.lrange(feed_items_key(feed_id), 0, -1)
            moved = await self._other_owners(feed_id, [item.id for item in items])

            pipe = self.redis.pipeline(transaction=True)
            for old_id in old_item_ids:
                pipe.delete(item_key(old_id))
            if old_item_ids:
                pipe.hdel(OWNER_KEY, *old_item_ids)
            pipe.delete(feed_items_key(feed_id))

            pipe.set(feed_key(feed_id), dumps(feed.model_dump(exclude={"items"})))
            pipe.sadd(DIRECTORY_KEY, feed_id)
            for item_id, previous in moved.items():
                pipe.lrem(feed_items_key(previous), 0, item_id)
            for item in items:
                pipe.set(item_key(item.id), dumps(item.model_dump()))
                pipe.rpush(feed_items_key(feed_id), item.id)
                pipe.hset(OWNER_KEY, item.id, feed_id)
            await pipe.execute()

        logger.info(
            "Feed %s stored with %d items (replaced %d)",
            feed_id, len(feed.items), len(old_item_ids),
        )
        return feed_id

    async def add_feed_item(self, feed_id: str, item: Union[FeedItem, dict[str, Any]]) -> str:
        item = validate(FeedItem, item)
        item_id = item.id or str(uuid.uuid4())
        stored = item.model_copy(update={"id": item_id})

        with self._op("add_feed_item", f"Failed to add item to feed {feed_id}"):
            if not await self.redis.exists(feed_key(feed_id)):
                raise NotFoundError(f"Feed {feed_id} not found")
            moved = await self._other_owners(feed_id, [item_id])
            pipe = self.redis.pipeline(transaction=True)
            for moved_id, previous in moved.items():
                pipe.lrem(feed_items_key(previous), 0, moved_id)
            pipe.set(item_key(item_id), dumps(stored.model_dump()))
            pipe.rpush(feed_items_key(feed_id), item_id)
            pipe.hset(OWNER_KEY, item_id, feed_id)
            await pipe.execute()

        logger.info("Item %s added to feed %s", item_id, feed_id)
        return item_id

    async def update_feed_item(
        self,
        item_id: str,
        updates: Union[FeedItemUpdate, dict[str, Any]],
    ) -> bool:
        """Apply only the provided fields. Returns False when the item is unknown."""
        updates = validate(FeedItemUpdate, updates)
        changes = updates.model_dump(exclude_unset=True)

        with self._op("update_feed_item", f"Failed to update item {item_id}"):
            data = await get_json(self.redis, item_key(item_id))
            if data is None:
                return False
            if not changes:
                return True
            merged = validate(FeedItem, {**data, **changes, "id": item_id})
            await self.redis.set(item_key(item_id), dumps(merged.model_dump()))
        return True

    async def delete_feed_item(self, feed_id: str, item_id: str) -> bool:
        """Remove an item from its feed and delete the record; idempotent."""
        with self._op("delete_feed_item", f"Failed to delete item {item_id} from feed {feed_id}"):
            pipe = self.redis.pipeline(transaction=True)
            pipe.lrem(feed_items_key(feed_id), 0, item_id)
            pipe.delete(item_key(item_id))
            pipe.hdel(OWNER_KEY, item_id)
            await pipe.execute()
        return True

    async def delete_feed(self, feed_id: str) -> bool:
        """Delete a feed, its items and its membership list; idempotent."""
        with self._op("delete_feed", f"Failed to delete feed {feed_id}"):
            item_ids = await self.redis.lrange(feed_items_key(feed_id), 0, -1)
            pipe = self.redis.pipeline(transaction=True)
            for item_id in item_ids:
                pipe.delete(item_key(item_id))
            if item_ids:
                pipe.hdel(OWNER_KEY, *item_ids)
            pipe.delete(feed_items_key(feed_id))
            pipe.delete(feed_key(feed_id))
            pipe.srem(DIRECTORY_KEY, feed_id)
            await pipe.execute()
        logger.info("Feed %s deleted (%d items)", feed_id, len(item_ids))
        return True

    # ─────────────────────────── Aggregation ──────────────────────────────

    async def _scan(self) -> list[tuple[Feed, list[FeedItem]]]:
        """Every feed with its items, in feed-id order."""
        result = []
        for feed_id in await self._feed_ids():
            feed = await self._load_feed(feed_id)
            if feed is None:
                continue
            result.append((feed, await self._load_items(feed_id)))
        return result

    async def get_all_feed_items(
        self,
        limit: int = 50,
        offset: int = 0,
        since: Optional[str] = None,
    ) -> list[FeedItem]:
        """All items across feeds, newest first, paginated over the combined list."""
        cutoff = None
        if since:
            cutoff = parse_date(since)
            if cutoff is None:
                raise ValidationError(f"Invalid 'since' timestamp: {since!r}")

        with self._op("get_all_feed_items", "Failed to get all feed items"):
            scanned = await self._scan()

        all_items: list[FeedItem] = []
        for _, items in scanned:
            for item in items:
                if cutoff is not None:
                    item_date = parse_date(item.published or item.date)
                    if item_date is not None and item_date < cutoff:
                        continue
                all_items.append(item)

        all_items.sort(key=item_sort_key, reverse=True)
        return _paginate(all_items, limit, offset)

    async def get_all_categories(self) -> list[str]:
        """Feed-level and item-level labels, de-duplicated, sorted ascending."""
        with self._op("get_all_categories", "Failed to get all categories"):
            scanned = await self._scan()

        categories: set[str] = set()
        for feed, items in scanned:
            categories.update(c for c in feed.categories if c)
            for item in items:
                categories.update(item.category_labels())
        return sorted(categories)

    async def get_items_by_category(
        self,
        category: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[FeedItem]:
        with self._op("get_items_by_category", f"Failed to get items by category {category}"):
            scanned = await self._scan()

        matching: list[FeedItem] = []
        for feed, items in scanned:
            feed_match = category in feed.categories
            for item in items:
                if feed_match or category in item.category_labels():
                    matching.append(item)

        matching.sort(key=item_sort_key, reverse=True)
        return _paginate(matching, limit, offset)

    async def get_feeds_by_category(self, category: str) -> list[Feed]:
        with self._op("get_feeds_by_category", f"Failed to get feeds by category {category}"):
            scanned = await self._scan()

        return [
            feed
            for feed, items in scanned
            if category in feed.categories
            or any(category in item.category_labels() for item in items)
        ]

    # ───────────────────────────── Trending ───────────────────────────────

    async def get_trending_items(self, time_window: str, limit: int = 10) -> list[FeedItem]:
        return await self.tracker.top_k(time_window, limit, self.get_feed_item)

    async def get_feed_trending(
        self,
        feed_id: str,
        time_window: str,
        limit: int = 10,
    ) -> list[FeedItem]:
        return await self.tracker.top_k(
            time_window, limit, self.get_feed_item, parent_id=feed_id
        )

    async def track_item_view(self, item_id: str, feed_id: Optional[str] = None) -> bool:
        """Record a view; the owning feed is looked up when not given."""
        if feed_id is None:
            with self._op("track_item_view", f"Failed to resolve feed for item {item_id}"):
                feed_id = await self.redis.hget(OWNER_KEY, item_id)
        await self.tracker.record_view(item_id, feed_id)
        VIEW_EVENTS_TOTAL.labels(plugin=PLUGIN).inc()
        return True

    # ───────────────────────────── Utility ────────────────────────────────

    async def get_stats(self) -> RssStats:
        with self._op("get_stats", "Failed to get stats"):
            scanned = await self._scan()

        categories: set[str] = set()
        total_items = 0
        for feed, items in scanned:
            total_items += len(items)
            categories.update(c for c in feed.categories if c)
            for item in items:
                categories.update(item.category_labels())

        return RssStats(
            total_feeds=len(scanned),
            total_items=total_items,
            total_categories=len(categories),
        )

    async def render_feed(self, feed_id: str, fmt: str = "rss") -> str:
        if fmt not in ("rss", "atom"):
            raise ValidationError(f"Unknown feed format {fmt!r}")

        feed = await self.get_feed(feed_id)
        if feed is None:
            raise NotFoundError(f"Feed {feed_id} not found")

        t0 = time.perf_counter()
        if fmt == "atom":
            xml = generate_atom_xml(feed, self.base_url)
        else:
            xml = generate_rss_xml(feed, self.base_url)
        FEED_RENDER_SECONDS.labels(format=fmt).observe(time.perf_counter() - t0)
        return xml

    async def get_feed_rss(self, feed_id: str) -> str:
        return await self.render_feed(feed_id, "rss")

    async def get_feed_atom(self, feed_id: str) -> str:
        return await self.render_feed(feed_id, "atom")
