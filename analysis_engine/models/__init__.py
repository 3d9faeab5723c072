from .stock_analysis import (
    AnalysisRequest,
    AnalysisStats,
    BulkItemResult,
    GeneratedAnalysis,
    Metrics,
    OrchestratorResult,
    Prediction,
    StockAnalysis,
    cache_key,
)

__all__ = [
    "AnalysisRequest",
    "AnalysisStats",
    "BulkItemResult",
    "GeneratedAnalysis",
    "Metrics",
    "OrchestratorResult",
    "Prediction",
    "StockAnalysis",
    "cache_key",
]
