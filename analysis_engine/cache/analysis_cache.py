"""
Stock Analysis — Cache Store
──────────────────────────────
Behavioural wrapper over the two store tables.

  read(key)                  -> StockAnalysis | None   (expired = absent, deleted on sight)
  write(key, analysis, ttl)  -> row id | None          (history insert + index upsert)
  invalidate(m, t, tf=None)  -> entries removed        (tf=None: every timeframe)
  sweep_expired()            -> entries removed

Persistence is an optimisation. Nothing here raises: store failures are
logged and treated as a miss / no-op. With no store configured every call
behaves like a working cache that happens to be empty.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from redis.exceptions import RedisError

from analysis_engine.cache.store import AnalysisStore
from analysis_engine.models.stock_analysis import StockAnalysis, cache_key

log = logging.getLogger("fintrack.cache")

# Anything a backend can throw for an unreachable server or a corrupt row
PERSISTENCE_ERRORS = (RedisError, OSError, ValueError, KeyError, TypeError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisCache:
    def __init__(self, store: Optional[AnalysisStore], ttl_hours: int = 24,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store     = store
        self.ttl_hours = ttl_hours
        self._clock    = clock or _utcnow

    @property
    def enabled(self) -> bool:
        return self.store is not None

    @property
    def backend_name(self) -> str:
        return self.store.name if self.store else "none"

    def now(self) -> datetime:
        return self._clock()

    async def read(self, key: str) -> Optional[StockAnalysis]:
        if not self.store:
            return None
        try:
            entry = await self.store.get_cache(key)
            if not entry:
                log.debug(f"{key}: cache miss")
                return None

            if entry["expires_at"] <= self.now():
                log.info(f"{key}: cache entry expired - evicting")
                await self.store.delete_cache(key)
                return None

            row = await self.store.get_analysis(entry["last_analysis_id"])
            if not row:
                log.warning(f"{key}: cache points at missing analysis {entry['last_analysis_id']}")
                return None

            log.debug(f"{key}: cache hit (expires {entry['expires_at'].isoformat()})")
            return StockAnalysis.from_dict(row)

        except PERSISTENCE_ERRORS as e:
            log.warning(f"{key}: cache read failed, treating as miss: {e}")
            return None

    async def write(self, key: str, analysis: StockAnalysis, ttl_hours: Optional[int] = None,
                    raw_response: Optional[str] = None) -> Optional[str]:
        if not self.store:
            return None
        now        = self.now()
        expires_at = now + timedelta(hours=self.ttl_hours if ttl_hours is None else ttl_hours)
        row = {
            **analysis.to_dict(),
            "created_at":   now.isoformat(),
            "raw_response": raw_response,
        }
        try:
            analysis_id = await self.store.insert_analysis(row)
        except PERSISTENCE_ERRORS as e:
            log.warning(f"{key}: failed to store analysis: {e}")
            return None
        try:
            await self.store.upsert_cache(key, analysis_id, expires_at)
        except PERSISTENCE_ERRORS as e:
            log.warning(f"{key}: stored analysis {analysis_id} but cache update failed: {e}")
            return analysis_id
        log.info(f"{key}: cached until {expires_at.isoformat()}")
        return analysis_id

    async def invalidate(self, market: str, ticker: str, timeframe: Optional[str] = None) -> int:
        if not self.store:
            return 0
        try:
            if timeframe:
                removed = await self.store.delete_cache(cache_key(market, ticker, timeframe))
            else:
                removed = await self.store.delete_cache_prefix(f"{market}:{ticker}:")
        except PERSISTENCE_ERRORS as e:
            log.warning(f"{market}:{ticker}: cache invalidation failed: {e}")
            return 0
        log.info(f"{market}:{ticker}:{timeframe or '*'}: invalidated {removed} cache entries")
        return removed

    async def sweep_expired(self) -> int:
        if not self.store:
            return 0
        try:
            return await self.store.delete_expired(self.now())
        except PERSISTENCE_ERRORS as e:
            log.warning(f"Expired-entry sweep failed: {e}")
            return 0

    async def stats(self) -> dict:
        empty = {"total_analyses": 0, "cache_entries": 0, "expired_entries": 0}
        if not self.store:
            return empty
        try:
            return {
                "total_analyses":  await self.store.count_analyses(),
                "cache_entries":   await self.store.count_cache(),
                "expired_entries": await self.store.count_expired(self.now()),
            }
        except PERSISTENCE_ERRORS as e:
            log.warning(f"Cache stats unavailable: {e}")
            return empty

    async def recent(self, market: str, limit: int = 10) -> List[StockAnalysis]:
        if not self.store:
            return []
        try:
            rows = await self.store.recent_analyses(market, limit)
            return [StockAnalysis.from_dict(r) for r in rows]
        except PERSISTENCE_ERRORS as e:
            log.warning(f"{market}: recent analyses unavailable: {e}")
            return []
