from .rate_limiter import FixedWindow, RateLimiter, RateLimitExceeded, build_limiters
from .service import AnalysisService

__all__ = ["AnalysisService", "FixedWindow", "RateLimiter", "RateLimitExceeded", "build_limiters"]
