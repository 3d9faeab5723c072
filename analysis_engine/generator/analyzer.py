"""
Stock Analysis — Analysis Generator
─────────────────────────────────────
generate(ticker, market, timeframe) -> GeneratedAnalysis

Demo mode   mock analysis after a short random delay (never fails)
Live mode   prompt -> backend.complete() -> validate(), up to MAX_ATTEMPTS

Retry policy (linear backoff, attempt n failed -> sleep n * base delay):
  retried       network / timeout / 429 / 5xx, empty reply, MalformedPayload
  not retried   semantic ValidationError -> InvalidResponse
                reply for another ticker/market/timeframe -> InvalidResponse
                4xx rejection           -> UpstreamRejected
  budget spent  -> Exhausted(last_error, attempts, reason)
"""

import asyncio
import logging
import random
from datetime import date
from typing import Optional

from analysis_engine.config import Settings
from analysis_engine.errors import (
    BackendError,
    Exhausted,
    GenerationError,
    InvalidResponse,
    MalformedPayload,
    MismatchedField,
    UpstreamRejected,
    ValidationError,
)
from analysis_engine.generator.mock import generate_mock
from analysis_engine.generator.validator import validate
from analysis_engine.models.stock_analysis import GeneratedAnalysis, StockAnalysis
from analysis_engine.stocks import get_stock_info

log = logging.getLogger("fintrack.generator")

PROMPT_TEMPLATE = """You are a financial analyst. Analyze the following stock for a {timeframe} outlook.

### Stock Details:
- **Market:** {market}
- **Ticker:** {ticker}{company_line}
- **Timeframe:** {timeframe}
- **Analysis Date:** {today}

### Response Format (JSON ONLY):
```json
{{
  "ticker": "{ticker}",
  "market": "{market}",
  "timeframe": "{timeframe}",
  "analysis_date": "{today}",
  "prediction": {{ "direction": "bullish|bearish|neutral", "probability": 0-100, "price_target_low": 0, "price_target_high": 0, "current_price": 0 }},
  "metrics": {{ "rsi": 0-100, "macd": "positive|negative|neutral", "pe_ratio": 0, "volume_trend": "increasing|decreasing|stable" }},
  "risk_level": "low|medium|high",
  "summary": "2-3 sentence summary",
  "key_factors": ["factor1", "factor2", "factor3"],
  "confidence": "low|medium|high"
}}
```

Return ONLY valid JSON."""


def build_prompt(ticker: str, market: str, timeframe: str, today: Optional[date] = None) -> str:
    info = get_stock_info(market, ticker)
    company_line = f"\n- **Company:** {info['name']} ({info['sector']})" if info else ""
    return PROMPT_TEMPLATE.format(
        ticker=ticker,
        market=market,
        timeframe=timeframe,
        today=(today or date.today()).isoformat(),
        company_line=company_line,
    )


def _match_request(analysis: StockAnalysis, ticker: str, market: str, timeframe: str) -> StockAnalysis:
    """The reply must describe the requested key, or it would be cached under the wrong one."""
    if analysis.ticker.upper() != ticker:
        raise MismatchedField("ticker", analysis.ticker, ticker)
    if analysis.market != market:
        raise MismatchedField("market", analysis.market, market)
    if analysis.timeframe != timeframe:
        raise MismatchedField("timeframe", analysis.timeframe, timeframe)
    analysis.ticker = ticker
    return analysis


def _failure_reason(e: Exception) -> str:
    if isinstance(e, asyncio.TimeoutError):
        return "timeout"
    if isinstance(e, BackendError):
        return "malformed" if e.reason == "empty" else e.reason
    if isinstance(e, MalformedPayload):
        return "malformed"
    return "upstream"


class AnalysisGenerator:
    def __init__(self, settings: Settings, backend=None, rng: Optional[random.Random] = None):
        self.settings = settings
        self.backend  = backend
        self._rng     = rng or random.Random()
        if not settings.demo_mode and backend is None:
            from analysis_engine.generator.backend import AnthropicBackend
            self.backend = AnthropicBackend(
                api_key=settings.anthropic_api_key,
                model=settings.anthropic_model,
                timeout_s=settings.request_timeout_s,
            )

    @property
    def demo_mode(self) -> bool:
        return self.settings.demo_mode

    async def generate(self, ticker: str, market: str, timeframe: str) -> GeneratedAnalysis:
        if self.demo_mode:
            return await self._generate_demo(ticker, market, timeframe)
        return await self._generate_live(ticker, market, timeframe)

    async def _generate_demo(self, ticker: str, market: str, timeframe: str) -> GeneratedAnalysis:
        lo, hi = self.settings.demo_delay_ms
        if hi > 0:
            await asyncio.sleep(self._rng.uniform(lo, hi) / 1000)
        analysis = generate_mock(ticker, market, timeframe, rng=self._rng)
        log.info(f"{market}:{ticker}:{timeframe}: demo analysis generated")
        return GeneratedAnalysis(analysis=analysis, raw_response=None)

    async def _generate_live(self, ticker: str, market: str, timeframe: str) -> GeneratedAnalysis:
        key      = f"{market}:{ticker}:{timeframe}"
        prompt   = build_prompt(ticker, market, timeframe)
        attempts = self.settings.max_attempts
        last_error: Exception = GenerationError("no attempt made")

        for attempt in range(1, attempts + 1):
            try:
                text = await asyncio.wait_for(
                    self.backend.complete(prompt, self.settings.anthropic_max_tokens),
                    timeout=self.settings.request_timeout_s,
                )
                analysis = _match_request(validate(text), ticker, market, timeframe)
                log.info(f"{key}: AI analysis generated (attempt {attempt}/{attempts})")
                return GeneratedAnalysis(analysis=analysis, raw_response=text)

            except ValidationError as e:
                if not e.retryable:
                    log.warning(f"{key}: AI response rejected, not retrying: {e}")
                    raise InvalidResponse(e) from e
                last_error = e
            except BackendError as e:
                if not e.transient:
                    log.warning(f"{key}: AI backend rejected request: {e}")
                    raise UpstreamRejected(str(e)) from e
                last_error = e
            except asyncio.TimeoutError as e:
                last_error = e

            log.warning(
                f"{key}: attempt {attempt}/{attempts} failed "
                f"({_failure_reason(last_error)}): {str(last_error) or 'timed out'}"
            )
            if attempt < attempts:
                await asyncio.sleep(attempt * self.settings.retry_base_delay_ms / 1000)

        raise Exhausted(last_error, attempts, _failure_reason(last_error))
