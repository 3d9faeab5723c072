import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analysis_engine import AnalysisService, Settings, build_service, load_settings
from analysis_engine.api.routes import router
from analysis_engine.cache.analysis_cache import PERSISTENCE_ERRORS
from analysis_engine.config import log_startup_banner
from analysis_engine.errors import GenerationError
from analysis_engine.orchestrator.rate_limiter import RateLimitExceeded, build_limiters
from analysis_engine.orchestrator.sweeper import start_sweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger("fintrack.app")

# reason -> HTTP status for generation failures
GENERATION_STATUS = {
    "invalid_response":  502,
    "upstream_rejected": 502,
    "malformed":         502,
    "network":           503,
    "upstream":          503,
    "timeout":           504,
}


def create_app(settings: Optional[Settings] = None, service: Optional[AnalysisService] = None,
               start_background: bool = True) -> FastAPI:
    settings = settings or load_settings()
    service  = service or build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_startup_banner(settings)
        store = service.cache.store
        if store is not None:
            try:
                await store.ping()
                log.info(f"Analysis store ({store.name}) reachable")
            except PERSISTENCE_ERRORS as e:
                log.warning(f"Analysis store unavailable ({e}) - reads will miss until it recovers")
        scheduler = start_sweeper(service.cache, settings.cache_sweep_minutes) if start_background else None
        yield
        if scheduler:
            scheduler.shutdown(wait=False)
        await service.drain()
        if store is not None:
            await store.close()

    app = FastAPI(
        title="Stock Analysis API",
        description="AI stock outlooks for BIST and US tickers, cached with a TTL. Runs in demo mode without keys.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.service  = service
    app.state.standard_limiter, app.state.strict_limiter = build_limiters(
        settings.max_requests_per_minute, settings.strict_requests_per_minute,
    )

    @app.exception_handler(GenerationError)
    async def generation_error(request: Request, exc: GenerationError):
        log.error(f"{request.url.path}: {exc}")
        return JSONResponse(
            status_code=GENERATION_STATUS.get(exc.reason, 500),
            content={
                "success": False,
                "error":   "Failed to get stock analysis",
                "reason":  exc.reason,
                "message": str(exc),
            },
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": exc.message, "retryAfter": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.get("/")
    async def root():
        return {"status": "ok", "docs": "/docs", "api": "/api/analysis/US/AAPL/3M"}

    @app.get("/api/health")
    async def health():
        return {
            "status":    "healthy",
            "message":   "API is running",
            "demoMode":  settings.demo_mode,
            "cache":     service.cache.backend_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    _settings = load_settings()
    uvicorn.run(create_app(_settings), host="0.0.0.0", port=_settings.port, reload=False, log_level="info")
