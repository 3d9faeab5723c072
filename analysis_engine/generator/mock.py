"""
Stock Analysis — Demo Generator
─────────────────────────────────
Produces a valid StockAnalysis without any upstream call.
Used whenever no Anthropic key is configured (or DEMO_MODE=true).

Known tickers use hand-written baselines. Anything else gets random
figures inside valid ranges, labelled confidence=low.
"""

import random
from datetime import date
from typing import Optional

from analysis_engine.models.stock_analysis import Metrics, Prediction, StockAnalysis
from analysis_engine.stocks import get_stock_info

# ── Baseline figures ──────────────────────────────────────────
MOCK_DATA = {
    # US
    "AAPL": {
        "prediction": {"direction": "bullish", "probability": 72, "price_target_low": 185, "price_target_high": 210, "current_price": 178},
        "metrics":    {"rsi": 58, "macd": "positive", "pe_ratio": 28.5, "volume_trend": "increasing"},
        "risk_level": "medium", "confidence": "high",
        "summary": "Apple continues to show strong momentum driven by iPhone sales and services growth. AI integration in upcoming products could be a major catalyst.",
        "key_factors": ["Strong iPhone sales", "Services revenue growth", "AI features in iOS", "Stock buyback program"],
    },
    "MSFT": {
        "prediction": {"direction": "bullish", "probability": 78, "price_target_low": 420, "price_target_high": 480, "current_price": 415},
        "metrics":    {"rsi": 62, "macd": "positive", "pe_ratio": 35.2, "volume_trend": "stable"},
        "risk_level": "low", "confidence": "high",
        "summary": "Microsoft benefits from Azure cloud growth and Copilot AI integration across products. Enterprise demand remains strong.",
        "key_factors": ["Azure cloud growth", "Copilot AI adoption", "Office 365 expansion", "Gaming division growth"],
    },
    "NVDA": {
        "prediction": {"direction": "bullish", "probability": 68, "price_target_low": 800, "price_target_high": 950, "current_price": 875},
        "metrics":    {"rsi": 71, "macd": "positive", "pe_ratio": 65.3, "volume_trend": "increasing"},
        "risk_level": "high", "confidence": "medium",
        "summary": "NVIDIA dominates the AI chip market but a high valuation brings volatility risk. Data center demand continues to exceed supply.",
        "key_factors": ["AI chip demand surge", "Data center revenue growth", "High valuation concerns", "Competition from AMD"],
    },
    "GOOGL": {
        "prediction": {"direction": "bullish", "probability": 65, "price_target_low": 155, "price_target_high": 180, "current_price": 152},
        "metrics":    {"rsi": 52, "macd": "neutral", "pe_ratio": 24.8, "volume_trend": "stable"},
        "risk_level": "medium", "confidence": "medium",
        "summary": "Google faces AI competition but keeps strong search dominance. Cloud growth and YouTube ads provide diversification.",
        "key_factors": ["Search market dominance", "Gemini AI development", "YouTube ad recovery", "Antitrust concerns"],
    },
    "TSLA": {
        "prediction": {"direction": "neutral", "probability": 50, "price_target_low": 180, "price_target_high": 250, "current_price": 215},
        "metrics":    {"rsi": 45, "macd": "negative", "pe_ratio": 58.7, "volume_trend": "decreasing"},
        "risk_level": "high", "confidence": "low",
        "summary": "Tesla faces margin pressure from price cuts and increased competition. FSD and energy storage offer long-term potential.",
        "key_factors": ["EV price competition", "Margin compression", "FSD progress", "Energy storage growth"],
    },
    # BIST
    "ASELS.IS": {
        "prediction": {"direction": "bullish", "probability": 70, "price_target_low": 85, "price_target_high": 105, "current_price": 82},
        "metrics":    {"rsi": 55, "macd": "positive", "pe_ratio": 18.5, "volume_trend": "increasing"},
        "risk_level": "medium", "confidence": "high",
        "summary": "ASELSAN benefits from increased defense spending and new export contracts. A strong order backlog supports the growth outlook.",
        "key_factors": ["New defense contracts", "Export market expansion", "R&D investments", "Government support"],
    },
    "THYAO.IS": {
        "prediction": {"direction": "bullish", "probability": 68, "price_target_low": 280, "price_target_high": 340, "current_price": 275},
        "metrics":    {"rsi": 58, "macd": "positive", "pe_ratio": 5.2, "volume_trend": "stable"},
        "risk_level": "medium", "confidence": "medium",
        "summary": "Turkish Airlines shows strong passenger growth and cargo demand. New fleet deliveries and hub expansion drive capacity.",
        "key_factors": ["Passenger traffic growth", "Cargo revenue increase", "Fleet expansion", "Istanbul hub advantage"],
    },
    "GARAN.IS": {
        "prediction": {"direction": "neutral", "probability": 55, "price_target_low": 95, "price_target_high": 120, "current_price": 105},
        "metrics":    {"rsi": 48, "macd": "neutral", "pe_ratio": 3.8, "volume_trend": "stable"},
        "risk_level": "medium", "confidence": "medium",
        "summary": "Garanti BBVA keeps solid fundamentals but faces macro uncertainty. The interest rate environment weighs on net interest margin.",
        "key_factors": ["Interest rate sensitivity", "Asset quality stable", "Digital banking growth", "Currency volatility"],
    },
}

# Shorter horizon -> slightly more certain
TIMEFRAME_ADJUSTMENT = {"1M": 5, "3M": 0, "6M": -5}
PROBABILITY_FLOOR = 30
PROBABILITY_CEIL  = 95

_MACD_FOR_DIRECTION = {"bullish": "positive", "bearish": "negative", "neutral": "neutral"}


def _random_baseline(ticker: str, sector: Optional[str], rng: random.Random) -> dict:
    direction  = rng.choice(("bullish", "bearish", "neutral"))
    base_price = 50 + rng.random() * 200
    return {
        "prediction": {
            "direction":         direction,
            "probability":       45 + rng.randrange(30),
            "price_target_low":  round(base_price * 0.9, 2),
            "price_target_high": round(base_price * 1.15, 2),
            "current_price":     round(base_price, 2),
        },
        "metrics": {
            "rsi":          30 + rng.randrange(40),
            "macd":         _MACD_FOR_DIRECTION[direction],
            "pe_ratio":     round(10 + rng.random() * 30, 1),
            "volume_trend": rng.choice(("increasing", "decreasing", "stable")),
        },
        "risk_level": rng.choice(("low", "medium", "high")),
        "confidence": "low",
        "summary": (
            f"{ticker} in {sector or 'unknown'} sector. This is demo data - "
            f"connect the Anthropic API for real AI analysis."
        ),
        "key_factors": ["Demo mode", "Simulated metrics", "API not connected"],
    }


def generate_mock(ticker: str, market: str, timeframe: str,
                  rng: Optional[random.Random] = None) -> StockAnalysis:
    info = get_stock_info(market, ticker)
    base = MOCK_DATA.get(ticker) or _random_baseline(
        ticker, info["sector"] if info else None, rng or random.Random()
    )
    pred = base["prediction"]
    mets = base["metrics"]

    probability = pred["probability"] + TIMEFRAME_ADJUSTMENT.get(timeframe, 0)
    probability = min(PROBABILITY_CEIL, max(PROBABILITY_FLOOR, probability))

    return StockAnalysis(
        ticker=ticker,
        market=market,
        timeframe=timeframe,
        analysis_date=date.today(),
        prediction=Prediction(
            direction=pred["direction"],
            probability=probability,
            price_target_low=float(pred["price_target_low"]),
            price_target_high=float(pred["price_target_high"]),
            current_price=float(pred["current_price"]),
        ),
        metrics=Metrics(
            rsi=mets["rsi"],
            macd=mets["macd"],
            pe_ratio=float(mets["pe_ratio"]),
            volume_trend=mets["volume_trend"],
        ),
        risk_level=base["risk_level"],
        summary=base["summary"],
        key_factors=list(base["key_factors"]),
        confidence=base["confidence"],
    )
