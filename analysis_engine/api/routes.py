"""
Stock Analysis — HTTP Routes
──────────────────────────────
GET    /api/health/analysis                          no limit
GET    /api/analysis/test                            strict
GET    /api/analysis/trending/{market}?timeframe=    standard
POST   /api/analysis/bulk                            strict
DELETE /api/analysis/cache/{market}/{ticker}         strict
GET    /api/analysis/{market}/{ticker}/{timeframe}   strict

Handlers only validate and translate. GenerationError and RateLimitExceeded
are rendered by the handlers registered in app.py.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from analysis_engine.config import BULK_MAX_ITEMS
from analysis_engine.models.stock_analysis import MARKETS, TIMEFRAMES, AnalysisRequest
from analysis_engine.orchestrator.service import AnalysisService
from analysis_engine.stocks import is_valid_ticker

log = logging.getLogger("fintrack.api")

router = APIRouter(prefix="/api")


def get_service(request: Request) -> AnalysisService:
    return request.app.state.service


async def standard_limit(request: Request) -> None:
    await request.app.state.standard_limiter(request)


async def strict_limit(request: Request) -> None:
    await request.app.state.strict_limiter(request)


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error})


def _check_market(market: str) -> Optional[JSONResponse]:
    if market not in MARKETS:
        return _bad_request(f"Invalid market '{market}'. Must be 'BIST' or 'US'")
    return None


def _check_timeframe(timeframe: str) -> Optional[JSONResponse]:
    if timeframe not in TIMEFRAMES:
        return _bad_request(f"Invalid timeframe '{timeframe}'. Must be '1M', '3M', or '6M'")
    return None


# ── Request bodies ────────────────────────────────────────────
class BulkItem(BaseModel):
    market:    str
    ticker:    str = Field(min_length=1, max_length=20)
    timeframe: str

    @field_validator("market", "ticker", "timeframe")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("market")
    @classmethod
    def _market(cls, v: str) -> str:
        if v not in MARKETS:
            raise ValueError(f"market must be one of {', '.join(MARKETS)}")
        return v

    @field_validator("timeframe")
    @classmethod
    def _timeframe(cls, v: str) -> str:
        if v not in TIMEFRAMES:
            raise ValueError(f"timeframe must be one of {', '.join(TIMEFRAMES)}")
        return v


class BulkRequest(BaseModel):
    tickers: List[BulkItem] = Field(min_length=1, max_length=BULK_MAX_ITEMS)


# ── Routes ────────────────────────────────────────────────────
@router.get("/health/analysis", tags=["Health"])
async def analysis_health(service: AnalysisService = Depends(get_service)):
    stats = await service.stats()
    return {
        "success":   True,
        "status":    "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stats":     stats.to_dict(),
    }


@router.get("/analysis/test", tags=["Analysis"], dependencies=[Depends(strict_limit)])
async def test_analysis(service: AnalysisService = Depends(get_service)):
    result = await service.self_test()
    return {**result, "cached": False}


@router.get("/analysis/trending/{market}", tags=["Analysis"], dependencies=[Depends(standard_limit)])
async def trending(
    market: str,
    timeframe: str = Query("3M", description="1M, 3M or 6M"),
    service: AnalysisService = Depends(get_service),
):
    market, timeframe = market.upper(), timeframe.upper()
    bad = _check_market(market) or _check_timeframe(timeframe)
    if bad:
        return bad
    stocks = await service.trending(market, timeframe)
    return {
        "success":       True,
        "data":          stocks,
        "market":        market,
        "timeframe":     timeframe,
        "analysisCount": sum(1 for s in stocks if s["hasAnalysisToday"]),
    }


@router.post("/analysis/bulk", tags=["Analysis"], dependencies=[Depends(strict_limit)])
async def bulk_analysis(body: BulkRequest, service: AnalysisService = Depends(get_service)):
    requests = [AnalysisRequest(i.market, i.ticker, i.timeframe) for i in body.tickers]
    log.info(f"Bulk analysis requested for {len(requests)} tickers")
    results  = await service.bulk(requests)
    ok = sum(1 for r in results if r.success)
    return {
        "success":    ok > 0,
        "total":      len(results),
        "successful": ok,
        "failed":     len(results) - ok,
        "results":    [r.to_dict() for r in results],
    }


@router.delete("/analysis/cache/{market}/{ticker}", tags=["Analysis"], dependencies=[Depends(strict_limit)])
async def invalidate_cache(
    market: str,
    ticker: str,
    timeframe: Optional[str] = Query(None, description="omit to clear every timeframe"),
    service: AnalysisService = Depends(get_service),
):
    market, ticker = market.upper(), ticker.upper()
    timeframe = timeframe.upper() if timeframe else None
    bad = _check_market(market) or (_check_timeframe(timeframe) if timeframe else None)
    if bad:
        return bad
    removed = await service.invalidate(market, ticker, timeframe)
    return {"success": True, "removed": removed}


@router.get("/analysis/{market}/{ticker}/{timeframe}", tags=["Analysis"], dependencies=[Depends(strict_limit)])
async def get_analysis(
    market: str,
    ticker: str,
    timeframe: str,
    service: AnalysisService = Depends(get_service),
):
    market, ticker, timeframe = market.upper(), ticker.upper(), timeframe.upper()
    bad = _check_market(market) or _check_timeframe(timeframe)
    if bad:
        return bad
    if not 1 <= len(ticker) <= 20 or not is_valid_ticker(market, ticker):
        return _bad_request(f"Invalid ticker '{ticker}' for market '{market}'")

    result = await service.get_or_create(market, ticker, timeframe)
    return result.to_dict()
