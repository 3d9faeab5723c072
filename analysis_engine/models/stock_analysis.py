"""
Stock Analysis — Canonical Records
────────────────────────────────────
StockAnalysis is what the API returns and what the store keeps.
Field names on the wire match the JSON shape the model is asked to emit.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

# ── Closed value sets ─────────────────────────────────────────
MARKETS           = ("BIST", "US")
TIMEFRAMES        = ("1M", "3M", "6M")
DIRECTIONS        = ("bullish", "bearish", "neutral")
MACD_SIGNALS      = ("positive", "negative", "neutral")
VOLUME_TRENDS     = ("increasing", "decreasing", "stable")
RISK_LEVELS       = ("low", "medium", "high")
CONFIDENCE_LEVELS = ("low", "medium", "high")


def cache_key(market: str, ticker: str, timeframe: str) -> str:
    return f"{market}:{ticker}:{timeframe}"


@dataclass(frozen=True)
class AnalysisRequest:
    market:    str   # "BIST" | "US"
    ticker:    str
    timeframe: str   # "1M" | "3M" | "6M"

    @property
    def cache_key(self) -> str:
        return cache_key(self.market, self.ticker, self.timeframe)


@dataclass
class Prediction:
    direction:         str     # "bullish" | "bearish" | "neutral"
    probability:       int     # 0-100
    price_target_low:  float
    price_target_high: float
    current_price:     float


@dataclass
class Metrics:
    rsi:          int     # 0-100
    macd:         str     # "positive" | "negative" | "neutral"
    pe_ratio:     float
    volume_trend: str     # "increasing" | "decreasing" | "stable"


@dataclass
class StockAnalysis:
    ticker:        str
    market:        str
    timeframe:     str
    analysis_date: date
    prediction:    Prediction
    metrics:       Metrics
    risk_level:    str
    summary:       str
    key_factors:   List[str]
    confidence:    str

    @property
    def cache_key(self) -> str:
        return cache_key(self.market, self.ticker, self.timeframe)

    def to_dict(self) -> dict:
        return {
            "ticker":        self.ticker,
            "market":        self.market,
            "timeframe":     self.timeframe,
            "analysis_date": self.analysis_date.isoformat(),
            "prediction": {
                "direction":         self.prediction.direction,
                "probability":       self.prediction.probability,
                "price_target_low":  self.prediction.price_target_low,
                "price_target_high": self.prediction.price_target_high,
                "current_price":     self.prediction.current_price,
            },
            "metrics": {
                "rsi":          self.metrics.rsi,
                "macd":         self.metrics.macd,
                "pe_ratio":     self.metrics.pe_ratio,
                "volume_trend": self.metrics.volume_trend,
            },
            "risk_level":  self.risk_level,
            "summary":     self.summary,
            "key_factors": list(self.key_factors),
            "confidence":  self.confidence,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "StockAnalysis":
        """Rebuild from a stored row. Rows were validated before they were written."""
        p = d["prediction"]
        m = d["metrics"]
        return cls(
            ticker=d["ticker"],
            market=d["market"],
            timeframe=d["timeframe"],
            analysis_date=date.fromisoformat(d["analysis_date"]),
            prediction=Prediction(
                direction=p["direction"],
                probability=int(p["probability"]),
                price_target_low=float(p["price_target_low"]),
                price_target_high=float(p["price_target_high"]),
                current_price=float(p["current_price"]),
            ),
            metrics=Metrics(
                rsi=int(m["rsi"]),
                macd=m["macd"],
                pe_ratio=float(m["pe_ratio"]),
                volume_trend=m["volume_trend"],
            ),
            risk_level=d["risk_level"],
            summary=d["summary"],
            key_factors=list(d["key_factors"]),
            confidence=d["confidence"],
        )


@dataclass
class GeneratedAnalysis:
    """A fresh analysis plus the backend text it came from (None in demo mode)."""
    analysis:     StockAnalysis
    raw_response: Optional[str] = None


@dataclass
class OrchestratorResult:
    analysis:  StockAnalysis
    cached:    bool
    demo_mode: bool

    def to_dict(self) -> dict:
        return {
            "success":  True,
            "data":     self.analysis.to_dict(),
            "cached":   self.cached,
            "demoMode": self.demo_mode,
        }


@dataclass
class BulkItemResult:
    ticker:    str
    market:    str
    timeframe: str
    success:   bool
    analysis:  Optional[StockAnalysis] = None
    cached:    bool = False
    error:     Optional[str] = None
    reason:    Optional[str] = None

    def to_dict(self) -> dict:
        d: Dict[str, Any] = {
            "ticker":    self.ticker,
            "market":    self.market,
            "timeframe": self.timeframe,
            "success":   self.success,
        }
        if self.success and self.analysis is not None:
            d["data"] = {**self.analysis.to_dict(), "cached": self.cached}
        else:
            d["error"] = self.error
            d["reason"] = self.reason
        return d


@dataclass
class AnalysisStats:
    total_analyses:  int
    cache_entries:   int
    expired_entries: int
    demo_mode:       bool
    cache_backend:   str   # "redis" | "memory" | "none"
    timestamp:       float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "totalAnalyses":  self.total_analyses,
            "cachedEntries":  self.cache_entries,
            "expiredEntries": self.expired_entries,
            "demoMode":       self.demo_mode,
            "cacheBackend":   self.cache_backend,
            "timestamp":      int(self.timestamp),
        }
