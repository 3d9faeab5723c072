"""Shared fixtures: settings, a scripted fake AI backend and sample payloads."""

import asyncio
import copy
import json
import re
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from analysis_engine.config import Settings  # noqa: E402

SAMPLE_PAYLOAD: Dict[str, Any] = {
    "ticker": "AAPL",
    "market": "US",
    "timeframe": "3M",
    "analysis_date": "2026-10-18",
    "prediction": {
        "direction": "bullish",
        "probability": 72,
        "price_target_low": 185,
        "price_target_high": 210.5,
        "current_price": 178.25,
    },
    "metrics": {
        "rsi": 58,
        "macd": "positive",
        "pe_ratio": 28.5,
        "volume_trend": "increasing",
    },
    "risk_level": "medium",
    "summary": "Apple keeps strong momentum on services growth.",
    "key_factors": ["Services growth", "Buybacks"],
    "confidence": "high",
}


@pytest.fixture
def payload() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_PAYLOAD)


def as_text(data: Dict[str, Any], fenced: bool = False) -> str:
    text = json.dumps(data)
    return f"```json\n{text}\n```" if fenced else text


_PROMPT_FIELD_RE = re.compile(r"\*\*(Market|Ticker|Timeframe):\*\* (\S+)")


def matching(data: Dict[str, Any]):
    """Script entry replying with `data` relabelled for whatever the prompt asked about."""
    def reply(prompt: str) -> str:
        asked = dict(_PROMPT_FIELD_RE.findall(prompt))
        return as_text({**data, "ticker": asked["Ticker"], "market": asked["Market"], "timeframe": asked["Timeframe"]})
    return reply


def live_settings(**overrides) -> Settings:
    """Live mode (a key is set) with every delay zeroed."""
    base = dict(
        anthropic_api_key="test-key",
        retry_base_delay_ms=0,
        demo_delay_ms=(0, 0),
        bulk_item_delay_ms=0,
        cache_backend="memory",
        request_timeout_s=5.0,
    )
    base.update(overrides)
    return Settings(**base)


def demo_settings(**overrides) -> Settings:
    base = dict(
        anthropic_api_key="",
        demo_delay_ms=(0, 0),
        bulk_item_delay_ms=0,
        cache_backend="memory",
    )
    base.update(overrides)
    return Settings(**base)


class FakeBackend:
    """
    Scripted stand-in for the generative backend.
    Each script entry is reply text, an exception to raise, or a callable
    that builds the reply from the prompt.
    When the script runs out the last entry repeats.
    """

    def __init__(self, script: List[Any], delay_s: float = 0.0):
        self.script   = list(script)
        self.delay_s  = delay_s
        self.calls: List[str] = []
        self.active     = 0
        self.max_active = 0

    async def complete(self, prompt: str, max_tokens: int) -> str:
        self.calls.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay_s)
            item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
            if isinstance(item, BaseException):
                raise item
            if callable(item):
                return item(prompt)
            return item
        finally:
            self.active -= 1


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def today_payload(payload) -> Dict[str, Any]:
    payload["analysis_date"] = date.today().isoformat()
    return payload
