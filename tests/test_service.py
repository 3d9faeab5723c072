import asyncio
import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from analysis_engine import build_service
from analysis_engine.cache.store import MemoryAnalysisStore
from analysis_engine.errors import BackendError, Exhausted, InvalidResponse
from analysis_engine.models.stock_analysis import AnalysisRequest
from tests.conftest import FakeBackend, as_text, demo_settings, live_settings, matching


def _live(payload, store=None, backend=None, **overrides):
    backend = backend or FakeBackend([matching(payload)])
    store = store if store is not None else MemoryAnalysisStore()
    return build_service(live_settings(**overrides), store=store, backend=backend), backend


@pytest.mark.asyncio
async def test_miss_generates_then_hit_after_write_lands(payload):
    service, backend = _live(payload)

    first = await service.get_or_create("US", "AAPL", "3M")
    assert first.cached is False
    assert first.demo_mode is False

    await service.drain()
    second = await service.get_or_create("US", "AAPL", "3M")
    assert second.cached is True
    assert second.analysis.to_dict() == first.analysis.to_dict()
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_raw_response_is_stored_with_history(payload):
    store = MemoryAnalysisStore()
    service, _ = _live(payload, store=store)
    await service.get_or_create("US", "AAPL", "3M")
    await service.drain()
    rows = await store.recent_analyses("US")
    assert rows[0]["raw_response"] == as_text(payload)


@pytest.mark.asyncio
async def test_demo_mode_flag_is_reported():
    service = build_service(demo_settings(), store=MemoryAnalysisStore())
    result = await service.get_or_create("US", "TSLA", "6M")
    assert result.demo_mode is True
    assert result.to_dict()["demoMode"] is True


@pytest.mark.asyncio
async def test_generation_failure_propagates_and_nothing_is_cached():
    store = MemoryAnalysisStore()
    backend = FakeBackend([BackendError("down", transient=True, reason="network")])
    service, _ = _live(None, store=store, backend=backend, max_attempts=2)
    with pytest.raises(Exhausted):
        await service.get_or_create("US", "AAPL", "3M")
    await service.drain()
    assert await store.count_analyses() == 0
    assert await store.count_cache() == 0


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_generation(payload):
    backend = FakeBackend([as_text(payload)], delay_s=0.05)
    service, _ = _live(payload, backend=backend)
    results = await asyncio.gather(*[service.get_or_create("US", "AAPL", "3M") for _ in range(5)])
    assert len(backend.calls) == 1
    assert all(r.cached is False for r in results)
    assert service._in_flight == {}


@pytest.mark.asyncio
async def test_single_flight_failure_reaches_every_waiter(payload):
    payload["confidence"] = "sure"
    backend = FakeBackend([as_text(payload)], delay_s=0.02)
    service, _ = _live(payload, backend=backend)
    results = await asyncio.gather(
        *[service.get_or_create("US", "AAPL", "3M") for _ in range(3)],
        return_exceptions=True,
    )
    assert all(isinstance(r, InvalidResponse) for r in results)
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_background_write_failure_does_not_reach_caller(payload, caplog):
    class FailingStore(MemoryAnalysisStore):
        async def insert_analysis(self, row):
            raise RedisConnectionError("write refused")

    service, _ = _live(payload, store=FailingStore())
    with caplog.at_level(logging.WARNING, logger="fintrack.cache"):
        result = await service.get_or_create("US", "AAPL", "3M")
        await service.drain()
    assert result.cached is False
    assert "failed to store analysis" in caplog.text
    again = await service.get_or_create("US", "AAPL", "3M")
    assert again.cached is False


@pytest.mark.asyncio
async def test_no_store_means_every_call_generates(payload):
    backend = FakeBackend([as_text(payload)])
    service = build_service(live_settings(cache_backend="none"), backend=backend)
    assert not service.cache.enabled
    await service.get_or_create("US", "AAPL", "3M")
    await service.drain()
    await service.get_or_create("US", "AAPL", "3M")
    assert len(backend.calls) == 2
    assert (await service.stats()).to_dict()["cacheBackend"] == "none"


@pytest.mark.asyncio
async def test_bulk_runs_one_item_at_a_time(payload):
    backend = FakeBackend([matching(payload)], delay_s=0.01)
    service, _ = _live(payload, backend=backend)
    requests = [AnalysisRequest("US", t, "3M") for t in ("AAPL", "MSFT", "NVDA", "GOOGL")]
    results = await service.bulk(requests)
    assert [r.success for r in results] == [True] * 4
    assert backend.max_active == 1
    assert len(backend.calls) == 4


@pytest.mark.asyncio
async def test_bulk_waits_between_items(payload, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        if delay:
            delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    service, _ = _live(payload, bulk_item_delay_ms=500)
    await service.bulk([AnalysisRequest("US", t, "1M") for t in ("AAPL", "MSFT", "NVDA")])
    assert delays == [0.5, 0.5]


@pytest.mark.asyncio
async def test_bulk_item_failures_are_isolated(payload):
    backend = FakeBackend([
        matching(payload),
        BackendError("401", transient=False, reason="rejected"),
        matching(payload),
    ])
    service, _ = _live(payload, backend=backend)
    results = await service.bulk([
        AnalysisRequest("US", "AAPL", "3M"),
        AnalysisRequest("US", "NOPE", "3M"),
        AnalysisRequest("US", "MSFT", "3M"),
        AnalysisRequest("US", "NVDA", "3M"),
    ])
    assert [r.success for r in results] == [True, False, False, True]
    assert results[1].reason == "invalid_ticker"
    assert results[2].reason == "upstream_rejected"
    assert "data" in results[0].to_dict()
    assert results[2].to_dict()["error"]


@pytest.mark.asyncio
async def test_bulk_invalid_reply_fails_only_its_item(payload):
    bad = dict(payload, risk_level="extreme")
    backend = FakeBackend([matching(payload), matching(bad), matching(payload)], delay_s=0.01)
    service, _ = _live(payload, backend=backend, bulk_item_delay_ms=10)
    results = await service.bulk([AnalysisRequest("US", t, "3M") for t in ("AAPL", "MSFT", "NVDA")])
    assert len(results) == 3
    assert [r.success for r in results] == [True, False, True]
    assert results[1].reason == "invalid_response"
    assert backend.max_active == 1
    assert len(backend.calls) == 3


@pytest.mark.asyncio
async def test_non_finite_reply_is_invalid_and_not_cached(payload):
    store = MemoryAnalysisStore()
    payload["prediction"]["current_price"] = float("nan")
    service, backend = _live(payload, store=store)
    with pytest.raises(InvalidResponse):
        await service.get_or_create("US", "AAPL", "3M")
    await service.drain()
    assert len(backend.calls) == 1
    assert await store.count_cache() == 0


@pytest.mark.asyncio
async def test_bulk_reports_cached_items(payload):
    service, backend = _live(payload)
    await service.get_or_create("US", "AAPL", "3M")
    await service.drain()
    results = await service.bulk([AnalysisRequest("US", "AAPL", "3M")])
    assert results[0].cached is True
    assert results[0].to_dict()["data"]["cached"] is True
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_bulk_rejects_oversized_batch(payload):
    service, backend = _live(payload)
    with pytest.raises(ValueError):
        await service.bulk([AnalysisRequest("US", "AAPL", "3M")] * 11)
    assert backend.calls == []


@pytest.mark.asyncio
async def test_trending_marks_todays_analyses(today_payload):
    service, _ = _live(today_payload)
    await service.get_or_create("US", "AAPL", "3M")
    await service.drain()

    trending = await service.trending("US", "3M")
    by_ticker = {s["ticker"]: s for s in trending}
    assert len(trending) == 15
    assert by_ticker["AAPL"]["hasAnalysisToday"] is True
    assert by_ticker["AAPL"]["analysis"]["ticker"] == "AAPL"
    assert by_ticker["MSFT"]["hasAnalysisToday"] is False
    assert by_ticker["MSFT"]["analysis"] is None

    other_tf = await service.trending("US", "1M")
    assert not any(s["hasAnalysisToday"] for s in other_tf)


@pytest.mark.asyncio
async def test_stats_and_invalidate(payload):
    service, _ = _live(payload)
    for tf in ("1M", "3M"):
        await service.get_or_create("US", "AAPL", tf)
    await service.drain()
    stats = await service.stats()
    assert (stats.total_analyses, stats.cache_entries, stats.expired_entries) == (2, 2, 0)
    assert stats.cache_backend == "memory"

    assert await service.invalidate("US", "AAPL") == 2
    assert (await service.stats()).cache_entries == 0


@pytest.mark.asyncio
async def test_self_test_reports_success_and_failure(payload):
    service, _ = _live(payload)
    ok = await service.self_test()
    assert ok["success"] is True
    assert ok["analysis"]["ticker"] == "AAPL"
    assert ok["responseTime"] >= 0

    failing = FakeBackend([BackendError("401", transient=False, reason="rejected")])
    service, _ = _live(payload, backend=failing)
    bad = await service.self_test()
    assert bad["success"] is False
    assert bad["reason"] == "upstream_rejected"
