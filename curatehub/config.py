"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Marketplace database (SQLAlchemy async URL) ────────────────────────
    database_url: str = "sqlite+aiosqlite:///./marketplace.db"
    database_echo: bool = False

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_url: str = "redis://localhost:6379"
    # Marketplace trending is optional — no URL means trending is disabled
    marketplace_redis_url: Optional[str] = None

    # ── Feed rendering ─────────────────────────────────────────────────────
    base_url: str = "http://localhost:1337"

    # ── Pagination / trending limits ───────────────────────────────────────
    default_page_size: int = 50
    max_page_size: int = 100
    trending_default_limit: int = 10
    trending_max_limit: int = 50

    # ── HTTP ───────────────────────────────────────────────────────────────
    cors_origins: str = "*"

    # ── Observability ──────────────────────────────────────────────────────
    otel_exporter_otlp_endpoint: Optional[str] = None
    service_name: str = "curatehub"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
