from .analysis_cache import AnalysisCache
from .store import AnalysisStore, MemoryAnalysisStore, RedisAnalysisStore, create_store

__all__ = ["AnalysisCache", "AnalysisStore", "MemoryAnalysisStore", "RedisAnalysisStore", "create_store"]
