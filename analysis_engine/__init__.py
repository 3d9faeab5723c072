"""
Stock analysis cache & generation service.

    from analysis_engine import build_service, load_settings
    service = build_service(load_settings())
    result  = await service.get_or_create("US", "AAPL", "3M")
"""

from typing import Optional

from .cache.analysis_cache import AnalysisCache
from .cache.store import AnalysisStore, create_store
from .config import Settings, load_settings
from .generator.analyzer import AnalysisGenerator
from .orchestrator.service import AnalysisService

__version__ = "1.0.0"


def build_service(settings: Settings, store: Optional[AnalysisStore] = None,
                  backend=None) -> AnalysisService:
    """Wire generator, cache and orchestrator from one Settings value."""
    if store is None:
        store = create_store(settings.cache_backend, settings.redis_url)
    cache     = AnalysisCache(store, ttl_hours=settings.cache_ttl_hours)
    generator = AnalysisGenerator(settings, backend=backend)
    return AnalysisService(settings, generator, cache)


__all__ = ["AnalysisService", "Settings", "build_service", "load_settings"]
