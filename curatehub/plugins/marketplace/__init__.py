"""
Marketplace plugin — sellers, categories, products and collections in a
relational database, with optional Redis-backed trending products.
"""
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter

from curatehub.clients.redis_client import close_redis, connect_redis
from curatehub.config import Settings
from curatehub.database import Database
from curatehub.plugins import Plugin
from curatehub.plugins.marketplace.router import create_router
from curatehub.plugins.marketplace.service import MarketplaceService
from curatehub.trending import TrendingTracker

logger = logging.getLogger(__name__)


class MarketplacePlugin(Plugin):
    id = "marketplace-plugin"
    prefix = "marketplace"

    def __init__(
        self,
        settings: Settings,
        database: Optional[Database] = None,
        redis: Optional[aioredis.Redis] = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self._database = database
        self._owns_database = database is None
        self._redis = redis
        self._owns_redis = redis is None
        self._service: Optional[MarketplaceService] = None

    @property
    def service(self) -> MarketplaceService:
        if self._service is None:
            raise RuntimeError("Marketplace plugin not initialised — call initialize() at startup")
        return self._service

    async def initialize(self) -> None:
        if self._database is None:
            self._database = Database(self.settings.database_url, echo=self.settings.database_echo)
        await self._database.create_all()

        if self._redis is None and self.settings.marketplace_redis_url:
            self._redis = await connect_redis(self.settings.marketplace_redis_url)
        if self._redis is None:
            logger.info("No marketplace Redis configured — trending disabled")

        tracker = TrendingTracker(
            self._redis, namespace="marketplace:trending", scope="collection"
        )
        self._service = MarketplaceService(self._database, tracker=tracker)
        await self._service.health_check()
        logger.info("Marketplace plugin initialised")

    async def shutdown(self) -> None:
        if self._owns_redis:
            await close_redis(self._redis)
            self._redis = None
        if self._owns_database and self._database is not None:
            await self._database.close()
            self._database = None
        self._service = None

    def create_router(self) -> APIRouter:
        return create_router(self)
