"""
RSS endpoints (mounted under /rss):

  GET    /health
  GET    /feeds                          — list feeds
  POST   /feeds                          — add or replace a feed
  GET    /feeds/{feed_id}                — feed with items
  DELETE /feeds/{feed_id}                — delete a feed and its items
  GET    /feeds/{feed_id}/items          — items of one feed
  POST   /feeds/{feed_id}/items          — add an item
  GET    /feeds/{feed_id}/items/{id}     — single item + feed title
  DELETE /feeds/{feed_id}/items/{id}     — remove an item
  PATCH  /items/{item_id}                — partial item update
  GET    /items                          — all items, newest first
  POST   /items/{item_id}/track-view     — record a view
  GET    /categories                     — every category label
  GET    /categories/{category}/items    — items in a category
  GET    /categories/{category}/feeds    — feeds in a category
  GET    /trending                       — recently viewed items
  GET    /feeds/{feed_id}/trending       — recently viewed items of one feed
  GET    /feeds/{feed_id}/rss            — RSS 2.0 XML
  GET    /feeds/{feed_id}/atom           — Atom 1.0 XML
  GET    /stats
"""
import logging
from typing import TYPE_CHECKING, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from opentelemetry import trace

from curatehub.plugins.rss.schemas import (
    Feed,
    FeedItem,
    FeedItemUpdate,
    FeedItemWithTitle,
    RssStats,
)
from curatehub.schemas import IdResponse, SuccessResponse
from curatehub.trending import TimeWindow

if TYPE_CHECKING:
    from curatehub.plugins.rss import RssPlugin

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def create_router(plugin: "RssPlugin") -> APIRouter:
    router = APIRouter()
    settings = plugin.settings
    page_size = settings.default_page_size
    max_page_size = settings.max_page_size
    trending_limit = settings.trending_default_limit
    max_trending_limit = settings.trending_max_limit

    @router.get("/health")
    async def health_check() -> str:
        return await plugin.service.health_check()

    # ── Feeds ─────────────────────────────────────────────────────────────

    @router.get("/feeds", response_model=list[Feed])
    async def get_feeds(
        limit: Optional[int] = Query(None, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_feeds(limit=limit, offset=offset)

    @router.post("/feeds", response_model=IdResponse, status_code=status.HTTP_201_CREATED)
    async def add_feed(body: Feed):
        with tracer.start_as_current_span("add_feed") as span:
            span.set_attribute("feed.id", body.options.id)
            feed_id = await plugin.service.add_feed(body)
            return IdResponse(id=feed_id)

    @router.get("/feeds/{feed_id}", response_model=Optional[Feed])
    async def get_feed(feed_id: str):
        return await plugin.service.get_feed(feed_id)

    @router.delete("/feeds/{feed_id}", response_model=SuccessResponse)
    async def delete_feed(feed_id: str):
        with tracer.start_as_current_span("delete_feed"):
            await plugin.service.delete_feed(feed_id)
            return SuccessResponse(success=True, message=f"Feed {feed_id} successfully deleted")

    @router.get("/feeds/{feed_id}/items", response_model=list[FeedItem])
    async def get_feed_items(feed_id: str):
        return await plugin.service.get_feed_items(feed_id)

    @router.post(
        "/feeds/{feed_id}/items",
        response_model=IdResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def add_feed_item(feed_id: str, body: FeedItem):
        with tracer.start_as_current_span("add_feed_item") as span:
            span.set_attribute("feed.id", feed_id)
            # Ids are always server-assigned for single-item adds
            item = body.model_copy(update={"id": None})
            item_id = await plugin.service.add_feed_item(feed_id, item)
            return IdResponse(id=item_id)

    @router.get("/feeds/{feed_id}/items/{item_id}", response_model=FeedItemWithTitle)
    async def get_feed_item(feed_id: str, item_id: str):
        feed = await plugin.service.get_feed(feed_id, include_items=False)
        if not feed:
            raise HTTPException(status_code=404, detail=f"Feed {feed_id} not found")
        item = await plugin.service.get_feed_item(item_id)
        return FeedItemWithTitle(item=item, feed_title=feed.options.title)

    @router.delete("/feeds/{feed_id}/items/{item_id}", response_model=SuccessResponse)
    async def delete_feed_item(feed_id: str, item_id: str):
        success = await plugin.service.delete_feed_item(feed_id, item_id)
        return SuccessResponse(success=success)

    # ── Items ─────────────────────────────────────────────────────────────

    @router.patch("/items/{item_id}", response_model=SuccessResponse)
    async def update_feed_item(item_id: str, body: FeedItemUpdate):
        success = await plugin.service.update_feed_item(item_id, body)
        return SuccessResponse(success=success)

    @router.get("/items", response_model=list[FeedItem])
    async def get_all_feed_items(
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
        since: Optional[str] = None,
    ):
        return await plugin.service.get_all_feed_items(limit=limit, offset=offset, since=since)

    @router.post("/items/{item_id}/track-view", response_model=SuccessResponse)
    async def track_item_view(item_id: str, feed_id: Optional[str] = None):
        success = await plugin.service.track_item_view(item_id, feed_id)
        return SuccessResponse(success=success)

    # ── Categories ────────────────────────────────────────────────────────

    @router.get("/categories", response_model=list[str])
    async def get_all_categories():
        return await plugin.service.get_all_categories()

    @router.get("/categories/{category}/items", response_model=list[FeedItem])
    async def get_items_by_category(
        category: str,
        limit: int = Query(page_size, ge=1, le=max_page_size),
        offset: int = Query(0, ge=0),
    ):
        return await plugin.service.get_items_by_category(category, limit=limit, offset=offset)

    @router.get("/categories/{category}/feeds", response_model=list[Feed])
    async def get_feeds_by_category(category: str):
        return await plugin.service.get_feeds_by_category(category)

    # ── Trending ──────────────────────────────────────────────────────────

    @router.get("/trending", response_model=list[FeedItem])
    async def get_trending_items(
        time_window: TimeWindow = "24h",
        limit: int = Query(trending_limit, ge=1, le=max_trending_limit),
    ):
        return await plugin.service.get_trending_items(time_window, limit)

    @router.get("/feeds/{feed_id}/trending", response_model=list[FeedItem])
    async def get_feed_trending(
        feed_id: str,
        time_window: TimeWindow = "24h",
        limit: int = Query(trending_limit, ge=1, le=max_trending_limit),
    ):
        return await plugin.service.get_feed_trending(feed_id, time_window, limit)

    # ── Formats ───────────────────────────────────────────────────────────

    @router.get("/feeds/{feed_id}/rss", response_class=Response)
    async def get_feed_rss(feed_id: str):
        xml = await plugin.service.get_feed_rss(feed_id)
        return Response(xml, media_type="application/rss+xml")

    @router.get("/feeds/{feed_id}/atom", response_class=Response)
    async def get_feed_atom(feed_id: str):
        xml = await plugin.service.get_feed_atom(feed_id)
        return Response(xml, media_type="application/atom+xml")

    @router.get("/stats", response_model=RssStats)
    async def get_stats():
        return await plugin.service.get_stats()

    return router
