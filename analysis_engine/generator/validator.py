"""
Stock Analysis — Response Validator
─────────────────────────────────────
The only door from model free-text into the typed domain.

validate(raw_text) -> StockAnalysis   or raises a ValidationError subclass:
  MalformedPayload   not JSON / not an object          (retryable)
  MissingField       required field absent or null/blank
  InvalidEnum        value outside its closed set
  OutOfRange         probability / rsi outside 0-100
  InvalidType        wrong JSON type or non-finite number, never coerced

Pure function. No I/O.
"""

import json
import math
import re
from datetime import date, datetime
from typing import Any

from analysis_engine.errors import InvalidEnum, InvalidType, MalformedPayload, MissingField, OutOfRange
from analysis_engine.models.stock_analysis import (
    CONFIDENCE_LEVELS,
    DIRECTIONS,
    MACD_SIGNALS,
    MARKETS,
    RISK_LEVELS,
    TIMEFRAMES,
    VOLUME_TRENDS,
    Metrics,
    Prediction,
    StockAnalysis,
)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

TOP_LEVEL_FIELDS = (
    "ticker", "market", "timeframe", "analysis_date", "prediction",
    "metrics", "risk_level", "summary", "key_factors", "confidence",
)
PREDICTION_FIELDS = ("direction", "probability", "price_target_low", "price_target_high", "current_price")
METRICS_FIELDS    = ("rsi", "macd", "pe_ratio", "volume_trend")


def strip_code_fence(raw_text: str) -> str:
    text = raw_text.strip()
    # only a reply that is one fenced block as a whole gets unwrapped
    match = _FENCE_RE.fullmatch(text)
    return match.group(1).strip() if match else text


def _require(obj: dict, name: str, path: str = "") -> Any:
    value = obj.get(name)
    if value is None:
        raise MissingField(f"{path}{name}")
    return value


def _str(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise InvalidType(field, value)
    return value


def _enum(value: Any, field: str, allowed: tuple) -> str:
    if not isinstance(value, str):
        raise InvalidType(field, value)
    if value not in allowed:
        raise InvalidEnum(field, value)
    return value


def _number(value: Any, field: str) -> float:
    # bool is an int subclass; true/false is never a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidType(field, value)
    # json.loads accepts NaN/Infinity; neither can be served back as JSON
    try:
        number = float(value)
    except OverflowError:
        raise InvalidType(field, value)
    if not math.isfinite(number):
        raise InvalidType(field, value)
    return number


def _percent(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidType(field, value)
    if not 0 <= value <= 100:
        raise OutOfRange(field, value)
    if isinstance(value, float) and not value.is_integer():
        raise InvalidType(field, value)
    return int(value)


def _date(value: Any, field: str) -> date:
    if not isinstance(value, str):
        raise InvalidType(field, value)
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        # full ISO timestamp; anything else trailing the date is rejected
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise InvalidType(field, value)


def validate(raw_text: str) -> StockAnalysis:
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise MalformedPayload("empty response")

    try:
        data = json.loads(strip_code_fence(raw_text))
    except json.JSONDecodeError as e:
        raise MalformedPayload(str(e))
    if not isinstance(data, dict):
        raise MalformedPayload(f"expected a JSON object, got {type(data).__name__}")

    # Presence first so a missing field is always reported as such
    for name in TOP_LEVEL_FIELDS:
        _require(data, name)

    pred = data["prediction"]
    if not isinstance(pred, dict):
        raise InvalidType("prediction", pred)
    mets = data["metrics"]
    if not isinstance(mets, dict):
        raise InvalidType("metrics", mets)
    for name in PREDICTION_FIELDS:
        _require(pred, name, "prediction.")
    for name in METRICS_FIELDS:
        _require(mets, name, "metrics.")

    summary = _str(data["summary"], "summary").strip()
    if not summary:
        raise MissingField("summary")

    factors = data["key_factors"]
    if not isinstance(factors, list):
        raise InvalidType("key_factors", factors)
    if not factors:
        raise MissingField("key_factors")
    for factor in factors:
        _str(factor, "key_factors")

    ticker = _str(data["ticker"], "ticker").strip()
    if not ticker:
        raise MissingField("ticker")

    return StockAnalysis(
        ticker=ticker,
        market=_enum(data["market"], "market", MARKETS),
        timeframe=_enum(data["timeframe"], "timeframe", TIMEFRAMES),
        analysis_date=_date(data["analysis_date"], "analysis_date"),
        prediction=Prediction(
            direction=_enum(pred["direction"], "prediction.direction", DIRECTIONS),
            probability=_percent(pred["probability"], "prediction.probability"),
            price_target_low=_number(pred["price_target_low"], "prediction.price_target_low"),
            price_target_high=_number(pred["price_target_high"], "prediction.price_target_high"),
            current_price=_number(pred["current_price"], "prediction.current_price"),
        ),
        metrics=Metrics(
            rsi=_percent(mets["rsi"], "metrics.rsi"),
            macd=_enum(mets["macd"], "metrics.macd", MACD_SIGNALS),
            pe_ratio=_number(mets["pe_ratio"], "metrics.pe_ratio"),
            volume_trend=_enum(mets["volume_trend"], "metrics.volume_trend", VOLUME_TRENDS),
        ),
        risk_level=_enum(data["risk_level"], "risk_level", RISK_LEVELS),
        summary=summary,
        key_factors=list(factors),
        confidence=_enum(data["confidence"], "confidence", CONFIDENCE_LEVELS),
    )
