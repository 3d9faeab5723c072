"""
Stock Analysis — Persistent Store
───────────────────────────────────
Two logical tables:

  stock_analyses   append-only history, one row per generation
  analysis_cache   live index: cache_key (unique) -> last_analysis_id, expires_at

Redis layout:
  stock_analyses:{id}               JSON row
  stock_analyses:all                zset  id -> created_at (epoch)
  stock_analyses:market:{market}    zset  id -> created_at (epoch)
  analysis_cache                    hash  cache_key -> JSON {last_analysis_id, expires_at, created_at}
  analysis_cache:expiry             zset  cache_key -> expires_at (epoch)

Backends raise on failure. AnalysisCache decides what a failure means.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis.asyncio as aioredis

log = logging.getLogger("fintrack.cache.store")

K_ANALYSIS      = "stock_analyses:{id}"
K_ANALYSIS_ALL  = "stock_analyses:all"
K_ANALYSIS_MKT  = "stock_analyses:market:{market}"
K_CACHE         = "analysis_cache"
K_CACHE_EXPIRY  = "analysis_cache:expiry"


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class AnalysisStore(ABC):
    """Keyed upsert/read/delete over the history table and the cache index."""

    name = "abstract"

    @abstractmethod
    async def insert_analysis(self, row: dict) -> str: ...

    @abstractmethod
    async def get_analysis(self, analysis_id: str) -> Optional[dict]: ...

    @abstractmethod
    async def upsert_cache(self, cache_key: str, analysis_id: str, expires_at: datetime) -> None: ...

    @abstractmethod
    async def get_cache(self, cache_key: str) -> Optional[dict]:
        """Returns {last_analysis_id, expires_at (datetime), created_at} or None."""

    @abstractmethod
    async def delete_cache(self, cache_key: str) -> int: ...

    @abstractmethod
    async def delete_cache_prefix(self, prefix: str) -> int: ...

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def count_analyses(self) -> int: ...

    @abstractmethod
    async def count_cache(self) -> int: ...

    @abstractmethod
    async def count_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def recent_analyses(self, market: str, limit: int = 10) -> List[dict]:
        """Newest first."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# ══════════════════════════════════════════════════════════════
# IN-MEMORY
# ══════════════════════════════════════════════════════════════
class MemoryAnalysisStore(AnalysisStore):
    """Process-local store. State is lost on restart."""

    name = "memory"

    def __init__(self):
        self._analyses: Dict[str, dict] = {}
        self._order:    List[str] = []      # insertion order == creation order
        self._cache:    Dict[str, dict] = {}

    async def insert_analysis(self, row: dict) -> str:
        analysis_id = row.get("id") or _new_id()
        self._analyses[analysis_id] = {**row, "id": analysis_id}
        self._order.append(analysis_id)
        return analysis_id

    async def get_analysis(self, analysis_id: str) -> Optional[dict]:
        row = self._analyses.get(analysis_id)
        return dict(row) if row else None

    async def upsert_cache(self, cache_key: str, analysis_id: str, expires_at: datetime) -> None:
        self._cache[cache_key] = {
            "last_analysis_id": analysis_id,
            "expires_at":       expires_at,
            "created_at":       datetime.now(timezone.utc).isoformat(),
        }

    async def get_cache(self, cache_key: str) -> Optional[dict]:
        entry = self._cache.get(cache_key)
        return dict(entry) if entry else None

    async def delete_cache(self, cache_key: str) -> int:
        return 1 if self._cache.pop(cache_key, None) is not None else 0

    async def delete_cache_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._cache if k.startswith(prefix)]
        for k in doomed:
            del self._cache[k]
        return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        doomed = [k for k, e in self._cache.items() if e["expires_at"] <= now]
        for k in doomed:
            del self._cache[k]
        return len(doomed)

    async def count_analyses(self) -> int:
        return len(self._analyses)

    async def count_cache(self) -> int:
        return len(self._cache)

    async def count_expired(self, now: datetime) -> int:
        return sum(1 for e in self._cache.values() if e["expires_at"] <= now)

    async def recent_analyses(self, market: str, limit: int = 10) -> List[dict]:
        rows = []
        for analysis_id in reversed(self._order):
            row = self._analyses[analysis_id]
            if row.get("market") == market:
                rows.append(dict(row))
                if len(rows) >= limit:
                    break
        return rows


# ══════════════════════════════════════════════════════════════
# REDIS
# ══════════════════════════════════════════════════════════════
class RedisAnalysisStore(AnalysisStore):
    name = "redis"

    def __init__(self, url: str = "", client: Optional[aioredis.Redis] = None):
        self._client = client or aioredis.from_url(url, decode_responses=True, socket_timeout=2)

    async def insert_analysis(self, row: dict) -> str:
        analysis_id = row.get("id") or _new_id()
        row = {**row, "id": analysis_id}
        score = _parse_ts(row["created_at"]).timestamp()
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(K_ANALYSIS.format(id=analysis_id), json.dumps(row))
            pipe.zadd(K_ANALYSIS_ALL, {analysis_id: score})
            pipe.zadd(K_ANALYSIS_MKT.format(market=row["market"]), {analysis_id: score})
            await pipe.execute()
        return analysis_id

    async def get_analysis(self, analysis_id: str) -> Optional[dict]:
        raw = await self._client.get(K_ANALYSIS.format(id=analysis_id))
        return json.loads(raw) if raw else None

    async def upsert_cache(self, cache_key: str, analysis_id: str, expires_at: datetime) -> None:
        entry = {
            "last_analysis_id": analysis_id,
            "expires_at":       expires_at.isoformat(),
            "created_at":       datetime.now(timezone.utc).isoformat(),
        }
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(K_CACHE, cache_key, json.dumps(entry))
            pipe.zadd(K_CACHE_EXPIRY, {cache_key: expires_at.timestamp()})
            await pipe.execute()

    async def get_cache(self, cache_key: str) -> Optional[dict]:
        raw = await self._client.hget(K_CACHE, cache_key)
        if not raw:
            return None
        entry = json.loads(raw)
        entry["expires_at"] = _parse_ts(entry["expires_at"])
        return entry

    async def _delete_keys(self, keys: List[str]) -> int:
        if not keys:
            return 0
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hdel(K_CACHE, *keys)
            pipe.zrem(K_CACHE_EXPIRY, *keys)
            removed, _ = await pipe.execute()
        return int(removed)

    async def delete_cache(self, cache_key: str) -> int:
        return await self._delete_keys([cache_key])

    async def delete_cache_prefix(self, prefix: str) -> int:
        keys = [k async for k, _ in self._client.hscan_iter(K_CACHE, match=f"{prefix}*")]
        # hscan MATCH is a glob; re-check so tickers containing glob chars stay exact
        return await self._delete_keys([k for k in keys if k.startswith(prefix)])

    async def delete_expired(self, now: datetime) -> int:
        keys = await self._client.zrangebyscore(K_CACHE_EXPIRY, "-inf", now.timestamp())
        return await self._delete_keys(list(keys))

    async def count_analyses(self) -> int:
        return int(await self._client.zcard(K_ANALYSIS_ALL))

    async def count_cache(self) -> int:
        return int(await self._client.hlen(K_CACHE))

    async def count_expired(self, now: datetime) -> int:
        return int(await self._client.zcount(K_CACHE_EXPIRY, "-inf", now.timestamp()))

    async def recent_analyses(self, market: str, limit: int = 10) -> List[dict]:
        ids = await self._client.zrevrange(K_ANALYSIS_MKT.format(market=market), 0, limit - 1)
        if not ids:
            return []
        raws = await self._client.mget([K_ANALYSIS.format(id=i) for i in ids])
        return [json.loads(r) for r in raws if r]

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def create_store(backend: str, redis_url: str = "") -> Optional[AnalysisStore]:
    """None means 'no database configured' - the cache runs as a no-op."""
    if backend == "redis" and redis_url:
        log.info("Analysis store: redis")
        return RedisAnalysisStore(redis_url)
    if backend == "memory":
        log.info("Analysis store: in-memory")
        return MemoryAnalysisStore()
    log.info("Analysis store: none (caching disabled)")
    return None
