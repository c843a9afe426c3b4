import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from curatehub.errors import StoreError, TrackerError
from curatehub.trending import TIME_WINDOWS, TrendingTracker, window_seconds


async def _resolve(entity_id):
    return entity_id


@pytest.fixture()
def tracker(redis, clock):
    return TrendingTracker(redis, namespace="trending", scope="feed", clock=clock)


def test_window_seconds():
    assert window_seconds("1h") == 3600
    assert window_seconds("30d") == 30 * 86400
    with pytest.raises(ValueError):
        window_seconds("2h")


def test_keys():
    tracker = TrendingTracker(None, namespace="marketplace:trending", scope="collection")
    assert tracker.key("24h") == "marketplace:trending:24h"
    assert tracker.key("7d", "c1") == "marketplace:trending:collection:c1:7d"


@pytest.mark.asyncio
async def test_record_view_writes_every_window(tracker, redis, clock):
    await tracker.record_view("x", parent_id="feed-1")

    for window in TIME_WINDOWS:
        assert await redis.zscore(f"trending:{window}", "x") == clock.now
        assert await redis.zscore(f"trending:feed:feed-1:{window}", "x") == clock.now


@pytest.mark.asyncio
async def test_view_falls_out_of_short_window(tracker, clock):
    await tracker.record_view("X")
    assert "X" in await tracker.top_k("1h", 10, _resolve)

    clock.advance(2 * 3600)

    assert "X" not in await tracker.top_k("1h", 10, _resolve)
    assert "X" in await tracker.top_k("24h", 10, _resolve)


@pytest.mark.asyncio
async def test_ordered_by_most_recent_view(tracker, clock):
    for entity_id in ("a", "b", "c"):
        await tracker.record_view(entity_id)
        clock.advance(60)
    # A repeat view moves "a" back to the front
    await tracker.record_view("a")

    assert await tracker.top_ids("24h", 10) == ["a", "c", "b"]
    assert await tracker.top_ids("24h", 2) == ["a", "c"]


@pytest.mark.asyncio
async def test_parent_scope_is_separate(tracker):
    await tracker.record_view("a", parent_id="p1")
    await tracker.record_view("b", parent_id="p2")

    assert await tracker.top_ids("1h", 10, parent_id="p1") == ["a"]
    assert set(await tracker.top_ids("1h", 10)) == {"a", "b"}


@pytest.mark.asyncio
async def test_top_k_skips_missing_records(tracker, clock):
    for entity_id in ("gone", "kept"):
        await tracker.record_view(entity_id)
        clock.advance(1)

    async def resolve(entity_id):
        return None if entity_id == "gone" else entity_id

    assert await tracker.top_k("1h", 10, resolve) == ["kept"]


@pytest.mark.asyncio
async def test_predicate_overfetches_twice_the_limit(tracker, clock):
    # Recorded oldest first: miss0, hit1, miss2, ... hit9
    for i in range(10):
        await tracker.record_view(f"{'hit' if i % 2 else 'miss'}{i}")
        clock.advance(1)

    result = await tracker.top_k("1h", 2, _resolve, predicate=lambda r: r.startswith("hit"))
    assert result == ["hit9", "hit7"]

    # Only 2 × limit candidates are inspected, so the result may come back short
    result = await tracker.top_k("1h", 1, _resolve, predicate=lambda r: r == "hit5")
    assert result == []


@pytest.mark.asyncio
async def test_disabled_tracker():
    tracker = TrendingTracker(None)
    assert not tracker.enabled
    assert await tracker.record_view("x") is True
    assert await tracker.top_k("24h", 10, _resolve) == []


@pytest.mark.asyncio
async def test_store_failure_raises_tracker_error(clock):
    class BrokenRedis:
        async def zrevrangebyscore(self, *args, **kwargs):
            raise RedisConnectionError("down")

    tracker = TrendingTracker(BrokenRedis(), clock=clock)
    with pytest.raises(TrackerError) as excinfo:
        await tracker.top_ids("1h", 5)
    assert excinfo.value.to_dict()["kind"] == "tracker_error"


@pytest.mark.asyncio
async def test_resolve_failure_raises_tracker_error(tracker):
    await tracker.record_view("x")

    async def broken_resolve(entity_id):
        raise StoreError(f"Failed to load {entity_id}")

    with pytest.raises(TrackerError) as excinfo:
        await tracker.top_k("1h", 5, broken_resolve)
    assert isinstance(excinfo.value.cause, StoreError)
    assert excinfo.value.to_dict()["kind"] == "tracker_error"
