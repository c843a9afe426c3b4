import fakeredis
import pytest
from fastapi.testclient import TestClient

from curatehub.config import Settings
from curatehub.database import Database
from curatehub.main import create_app
from curatehub.plugins.marketplace import MarketplacePlugin
from curatehub.plugins.marketplace.service import MarketplaceService
from curatehub.plugins.rss import RssPlugin
from curatehub.plugins.rss.service import RssService
from curatehub.trending import TrendingTracker

NOW = 1_700_000_000.0


class FakeClock:
    """Settable stand-in for time.time."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def redis():
    # A private server per test so keys never leak between tests
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}")
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture()
def rss_service(redis, clock):
    tracker = TrendingTracker(redis, namespace="trending", scope="feed", clock=clock)
    return RssService(redis, base_url="http://test.local", tracker=tracker)


@pytest.fixture()
def marketplace(database, redis, clock):
    tracker = TrendingTracker(
        redis, namespace="marketplace:trending", scope="collection", clock=clock
    )
    return MarketplaceService(database, tracker=tracker)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        base_url="http://test.local",
    )


@pytest.fixture()
def client(settings, redis):
    app = create_app(
        settings,
        plugins=[
            RssPlugin(settings, redis=redis),
            MarketplacePlugin(settings, redis=redis),
        ],
    )
    with TestClient(app) as test_client:
        yield test_client


def make_feed(feed_id: str, categories=None, items=None, title=None) -> dict:
    return {
        "options": {
            "id": feed_id,
            "title": title or f"Feed {feed_id}",
            "link": f"https://example.com/{feed_id}",
            "description": f"All about {feed_id}",
        },
        "categories": categories or [],
        "items": items or [],
    }


def make_item(item_id=None, date="2024-01-01T00:00:00Z", categories=None, **extra) -> dict:
    item = {
        "title": extra.pop("title", f"Item {item_id or 'new'}"),
        "link": extra.pop("link", f"https://example.com/items/{item_id}"),
        "date": date,
        "category": [{"name": c} for c in (categories or [])],
        **extra,
    }
    if item_id is not None:
        item["id"] = item_id
    return item
