import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from autoposter_ai.api.v1.router import api_v1_router
from autoposter_ai.core.config import settings, validate_settings_for_production
from autoposter_ai.core.logging import setup_logging
from autoposter_ai.core.metrics import PrometheusMiddleware, metrics_response
from autoposter_ai.core.sentry import init_sentry

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.app_env != "test":
        validate_settings_for_production()
    init_sentry()
    logger.info("Starting Autoposter AI (provider=%s)...", settings.ai_provider)

    yield

    logger.info("Autoposter AI shut down")


app = FastAPI(
    title="Autoposter AI",
    description="AI provider adapter layer: text, image and video generation",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


# Log unhandled exceptions; the client only gets a generic message
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(PrometheusMiddleware)

# API routes
app.include_router(api_v1_router)


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()


@app.get("/api/v1/health")
async def health():
    return {"status": "ok", "ai_provider": settings.ai_provider}
