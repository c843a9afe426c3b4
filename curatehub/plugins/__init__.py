"""
Plugin lifecycle.

A plugin owns its store connections, builds its service in ``initialize()``
and releases what it created in ``shutdown()``. The server mounts each
plugin's router under ``/{plugin.prefix}``.
"""
import logging

from fastapi import APIRouter

logger = logging.getLogger(__name__)


class Plugin:
    id: str = ""
    prefix: str = ""

    def __init__(self) -> None:
        self._router: APIRouter | None = None

    async def initialize(self) -> None:
        raise NotImplementedError

    async def shutdown(self) -> None:
        raise NotImplementedError

    def create_router(self) -> APIRouter:
        raise NotImplementedError

    @property
    def router(self) -> APIRouter:
        if self._router is None:
            self._router = self.create_router()
        return self._router
