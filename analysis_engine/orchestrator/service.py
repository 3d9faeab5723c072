"""
Stock Analysis — Orchestrator
───────────────────────────────
The single entry point the HTTP layer calls.

get_or_create(market, ticker, timeframe)
  1. cache.read(key)           hit  -> cached=True
  2. generator.generate(...)   fail -> GenerationError propagates
  3. cache.write(...)          detached background task, never awaited by the caller
  4. return cached=False

Concurrent misses for one key share a single in-flight generation.
Bulk runs strictly one item at a time with a fixed gap between items so the
AI backend never sees a burst.
"""

import asyncio
import logging
import time
from datetime import date
from typing import Dict, List, Optional, Set

from analysis_engine.cache.analysis_cache import AnalysisCache
from analysis_engine.config import Settings
from analysis_engine.errors import GenerationError
from analysis_engine.generator.analyzer import AnalysisGenerator
from analysis_engine.models.stock_analysis import (
    AnalysisRequest,
    AnalysisStats,
    BulkItemResult,
    GeneratedAnalysis,
    OrchestratorResult,
    StockAnalysis,
    cache_key,
)
from analysis_engine.stocks import get_stocks_by_market, is_valid_ticker

log = logging.getLogger("fintrack.service")

RECENT_SCAN_LIMIT = 100   # history rows scanned when building the trending list


class AnalysisService:
    def __init__(self, settings: Settings, generator: AnalysisGenerator, cache: AnalysisCache):
        self.settings  = settings
        self.generator = generator
        self.cache     = cache
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def demo_mode(self) -> bool:
        return self.settings.demo_mode

    # ── get-or-create ─────────────────────────────────────────
    async def get_or_create(self, market: str, ticker: str, timeframe: str) -> OrchestratorResult:
        key = cache_key(market, ticker, timeframe)

        cached = await self.cache.read(key)
        if cached:
            log.info(f"{key}: served from cache")
            return OrchestratorResult(analysis=cached, cached=True, demo_mode=self.demo_mode)

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._generate_and_store(key, market, ticker, timeframe))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._on_generation_done(k, t))
        else:
            log.info(f"{key}: joining in-flight generation")

        # shield: one caller going away must not cancel the others' generation
        analysis = await asyncio.shield(task)
        return OrchestratorResult(analysis=analysis, cached=False, demo_mode=self.demo_mode)

    async def _generate_and_store(self, key: str, market: str, ticker: str, timeframe: str) -> StockAnalysis:
        log.info(f"{key}: cache miss - generating")
        generated = await self.generator.generate(ticker, market, timeframe)
        self._persist_in_background(key, generated)
        return generated.analysis

    def _on_generation_done(self, key: str, task: asyncio.Task) -> None:
        self._in_flight.pop(key, None)
        # mark the exception retrieved; the awaiting callers report it
        if not task.cancelled():
            task.exception()

    # ── background persistence ───────────────────────────────
    def _persist_in_background(self, key: str, generated: GeneratedAnalysis) -> None:
        """Best-effort, non-blocking. Failure is logged here and goes no further."""
        if not self.cache.enabled:
            return
        task = asyncio.create_task(self.cache.write(
            key, generated.analysis,
            ttl_hours=self.settings.cache_ttl_hours,
            raw_response=generated.raw_response,
        ))
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            log.warning("Background cache write cancelled")
            return
        exc = task.exception()
        if exc is not None:
            log.error(f"Background cache write failed: {exc!r}")

    async def drain(self) -> None:
        """Wait for every pending background write."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ── bulk ──────────────────────────────────────────────────
    async def bulk(self, requests: List[AnalysisRequest]) -> List[BulkItemResult]:
        if len(requests) > self.settings.bulk_max_items:
            raise ValueError(f"at most {self.settings.bulk_max_items} tickers per bulk request")

        results: List[BulkItemResult] = []
        delay_s = self.settings.bulk_item_delay_ms / 1000

        for i, req in enumerate(requests):
            if i and delay_s:
                await asyncio.sleep(delay_s)

            item = BulkItemResult(ticker=req.ticker, market=req.market, timeframe=req.timeframe, success=False)
            if not is_valid_ticker(req.market, req.ticker):
                item.error  = f"Invalid ticker '{req.ticker}' for market '{req.market}'"
                item.reason = "invalid_ticker"
                results.append(item)
                continue

            try:
                outcome = await self.get_or_create(req.market, req.ticker, req.timeframe)
            except GenerationError as e:
                log.warning(f"{req.cache_key}: bulk item failed: {e}")
                item.error  = str(e)
                item.reason = e.reason
            else:
                item.success  = True
                item.analysis = outcome.analysis
                item.cached   = outcome.cached
            results.append(item)

        ok = sum(1 for r in results if r.success)
        log.info(f"Bulk analysis: {ok}/{len(results)} succeeded")
        return results

    # ── read-only helpers ────────────────────────────────────
    async def stats(self) -> AnalysisStats:
        counts = await self.cache.stats()
        return AnalysisStats(
            total_analyses=counts["total_analyses"],
            cache_entries=counts["cache_entries"],
            expired_entries=counts["expired_entries"],
            demo_mode=self.demo_mode,
            cache_backend=self.cache.backend_name,
        )

    async def today_analyses(self, market: str, timeframe: str) -> Dict[str, StockAnalysis]:
        """Latest analysis generated today per ticker, for one market/timeframe."""
        today  = date.today()
        latest: Dict[str, StockAnalysis] = {}
        for analysis in await self.cache.recent(market, RECENT_SCAN_LIMIT):
            if analysis.timeframe != timeframe or analysis.analysis_date != today:
                continue
            latest.setdefault(analysis.ticker, analysis)   # rows come newest first
        return latest

    async def trending(self, market: str, timeframe: str) -> List[dict]:
        todays = await self.today_analyses(market, timeframe)
        out = []
        for stock in get_stocks_by_market(market):
            analysis = todays.get(stock["ticker"])
            out.append({
                **stock,
                "hasAnalysisToday": analysis is not None,
                "analysis":         analysis.to_dict() if analysis else None,
            })
        return out

    async def invalidate(self, market: str, ticker: str, timeframe: Optional[str] = None) -> int:
        return await self.cache.invalidate(market, ticker, timeframe)

    async def self_test(self) -> dict:
        """Generate one analysis (US:AAPL:3M) end to end, bypassing the cache."""
        t_start = time.monotonic()
        try:
            generated = await self.generator.generate("AAPL", "US", "3M")
        except GenerationError as e:
            return {
                "success":      False,
                "responseTime": int((time.monotonic() - t_start) * 1000),
                "demoMode":     self.demo_mode,
                "error":        str(e),
                "reason":       e.reason,
            }
        return {
            "success":      True,
            "responseTime": int((time.monotonic() - t_start) * 1000),
            "demoMode":     self.demo_mode,
            "analysis":     generated.analysis.to_dict(),
        }
