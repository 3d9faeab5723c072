"""
Stock Analysis — Configuration
────────────────────────────────
Read once at startup, then passed into every component.

Environment variables (.env or host):
    DEMO_MODE               = false          # force mock analyses
    ANTHROPIC_API_KEY       = sk-ant-...     # absent -> demo mode
    ANTHROPIC_MODEL         = claude-sonnet-4-20250514
    ANTHROPIC_MAX_TOKENS    = 1024
    REQUEST_TIMEOUT_SECONDS = 30             # per generation attempt
    MAX_ATTEMPTS            = 3
    RETRY_BASE_DELAY_MS     = 1000           # linear backoff base
    DEMO_DELAY_MIN_MS       = 500
    DEMO_DELAY_MAX_MS       = 1500
    REDIS_URL               = redis://localhost:6379/0
    CACHE_BACKEND           = redis | memory | none
    CACHE_TTL_HOURS         = 24
    CACHE_SWEEP_MINUTES     = 60             # 0 disables the sweeper
    MAX_REQUESTS_PER_MINUTE = 10             # standard endpoints
    BULK_ITEM_DELAY_MS      = 500
    ALLOWED_ORIGINS         = http://localhost:5173
    PORT                    = 3001
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

log = logging.getLogger("fintrack.config")

# AI-triggering endpoints get this budget regardless of MAX_REQUESTS_PER_MINUTE
STRICT_REQUESTS_PER_MINUTE = 5
BULK_MAX_ITEMS             = 10
CACHE_BACKENDS             = ("redis", "memory", "none")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default


def _parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ("http://localhost:5173",)
    return tuple(o.strip() for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    anthropic_api_key:       str = ""
    anthropic_model:         str = "claude-sonnet-4-20250514"
    anthropic_max_tokens:    int = 1024
    force_demo:              bool = False
    request_timeout_s:       float = 30.0
    max_attempts:            int = 3
    retry_base_delay_ms:     int = 1000
    demo_delay_ms:           Tuple[int, int] = (500, 1500)
    redis_url:               str = ""
    cache_backend:           str = "none"
    cache_ttl_hours:         int = 24
    cache_sweep_minutes:     int = 60
    max_requests_per_minute: int = 10
    strict_requests_per_minute: int = STRICT_REQUESTS_PER_MINUTE
    bulk_item_delay_ms:      int = 500
    bulk_max_items:          int = BULK_MAX_ITEMS
    allowed_origins:         Tuple[str, ...] = field(default_factory=lambda: ("http://localhost:5173",))
    port:                    int = 3001

    @property
    def has_ai_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def demo_mode(self) -> bool:
        return self.force_demo or not self.has_ai_key


def load_settings() -> Settings:
    load_dotenv()

    redis_url = os.getenv("REDIS_URL", "").strip()
    backend   = os.getenv("CACHE_BACKEND", "").strip().lower() or ("redis" if redis_url else "none")
    if backend not in CACHE_BACKENDS:
        log.warning(f"Unknown CACHE_BACKEND={backend!r} - caching disabled")
        backend = "none"
    if backend == "redis" and not redis_url:
        log.warning("CACHE_BACKEND=redis but REDIS_URL is not set - caching disabled")
        backend = "none"

    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        anthropic_max_tokens=_env_int("ANTHROPIC_MAX_TOKENS", 1024),
        force_demo=_env_bool("DEMO_MODE"),
        request_timeout_s=float(_env_int("REQUEST_TIMEOUT_SECONDS", 30)),
        max_attempts=max(1, _env_int("MAX_ATTEMPTS", 3)),
        retry_base_delay_ms=_env_int("RETRY_BASE_DELAY_MS", 1000),
        demo_delay_ms=(_env_int("DEMO_DELAY_MIN_MS", 500), _env_int("DEMO_DELAY_MAX_MS", 1500)),
        redis_url=redis_url,
        cache_backend=backend,
        cache_ttl_hours=_env_int("CACHE_TTL_HOURS", 24),
        cache_sweep_minutes=_env_int("CACHE_SWEEP_MINUTES", 60),
        max_requests_per_minute=_env_int("MAX_REQUESTS_PER_MINUTE", 10),
        bulk_item_delay_ms=_env_int("BULK_ITEM_DELAY_MS", 500),
        allowed_origins=_parse_origins(os.getenv("ALLOWED_ORIGINS")),
        port=_env_int("PORT", 3001),
    )


def log_startup_banner(settings: Settings) -> None:
    log.info("=" * 60)
    log.info("Financial Tracker - Stock Analysis API")
    log.info("=" * 60)
    if settings.demo_mode:
        log.info("AI MODE: demo (mock responses)")
    else:
        log.info(f"AI MODE: Anthropic ({settings.anthropic_model})")
    if settings.cache_backend == "none":
        log.info("DATABASE: not configured (no caching)")
    else:
        log.info(f"DATABASE: {settings.cache_backend} (ttl={settings.cache_ttl_hours}h)")
    if not settings.has_ai_key and not settings.force_demo:
        log.info("To enable real AI analysis set ANTHROPIC_API_KEY")
    log.info("=" * 60)
