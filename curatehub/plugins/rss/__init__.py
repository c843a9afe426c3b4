"""
RSS plugin — feeds, items, categories, trending and RSS/Atom output over Redis.
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter

from curatehub.clients.redis_client import close_redis, connect_redis
from curatehub.config import Settings
from curatehub.plugins import Plugin
from curatehub.plugins.rss.router import create_router
from curatehub.plugins.rss.service import RssService
from curatehub.trending import TrendingTracker

logger = logging.getLogger(__name__)


class RssPlugin(Plugin):
    id = "rss-plugin"
    prefix = "rss"

    def __init__(self, settings: Settings, redis: Optional[aioredis.Redis] = None) -> None:
        super().__init__()
        self.settings = settings
        self._redis = redis
        # Only clients opened here are closed on shutdown
        self._owns_redis = redis is None
        self._service: Optional[RssService] = None

    @property
    def service(self) -> RssService:
        if self._service is None:
            raise RuntimeError("RSS plugin not initialised — call initialize() at startup")
        return self._service

    async def initialize(self) -> None:
        if self._redis is None:
            self._redis = await connect_redis(self.settings.redis_url)
        self._service = RssService(
            self._redis,
            base_url=self.settings.base_url,
            tracker=TrendingTracker(self._redis, namespace="trending", scope="feed"),
        )
        await self._service.health_check()
        logger.info("RSS plugin initialised")

    async def shutdown(self) -> None:
        if self._owns_redis:
            await close_redis(self._redis)
            self._redis = None
        self._service = None

    def create_router(self) -> APIRouter:
        return create_router(self)
