"""
Store Provisioning Orchestrator — API entrypoint.

Sets up FastAPI with:
  - CORS for dashboard access
  - Rate limiting (slowapi)
  - Prometheus metrics (/metrics)
  - Health check (/health) with queue and Redis status
  - Store routes (/api/stores, /api/logs)

The admission queue workers live on the server's event loop and are
started/stopped by the app lifespan.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from store_orchestrator import __version__
from store_orchestrator.config import settings
from store_orchestrator.routers.stores import limiter, router as stores_router
from store_orchestrator.runtime import Runtime, build_runtime

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("store-orchestrator")


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:

    # --- Lifespan ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Store Orchestrator starting...")
        rt = runtime or build_runtime(settings)
        logger.info(f"Resolved chart path: {rt.settings.CHART_PATH}")
        app.state.runtime = rt
        rt.queue.start()
        yield
        await rt.queue.stop()
        await asyncio.to_thread(rt.events.close)
        logger.info("Store Orchestrator shutting down...")

    app = FastAPI(
        title="Store Provisioning Orchestrator",
        description="Admission-controlled provisioning of WooCommerce stores on Kubernetes",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.CORS_ORIGINS),
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # --- Rate Limiting ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(stores_router, prefix="/api")

    # --- Health check ---
    @app.get("/health")
    async def health(request: Request):
        """Health check with queue and Redis status."""
        rt: Runtime = request.app.state.runtime
        redis_status = "disabled"
        if rt.settings.REDIS_URL:
            redis_status = "connected" if rt.events.redis_connected else "disconnected"

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "queue": {
                "pending": len(rt.queue.pending),
                "active": rt.queue.active,
                "maxConcurrent": rt.queue.max_concurrent,
                "maxStores": rt.queue.max_stores,
            },
            "redis": redis_status,
            "version": __version__,
        }

    # --- Prometheus metrics endpoint ---
    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        """Expose Prometheus metrics."""
        return PlainTextResponse(
            content=generate_latest().decode("utf-8"),
            media_type=CONTENT_TYPE_LATEST,
        )

    # --- Global exception handler ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


# --- Entry point ---
def run():
    uvicorn.run(
        "store_orchestrator.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info",
        reload=False,
    )


if __name__ == "__main__":
    run()
