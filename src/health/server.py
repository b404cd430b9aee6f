"""FastAPI health server for a running discovery engine.

Provides HTTP endpoints for:
- /health - Full health check (providers, cache)
- /ready - Readiness probe: ready unless every provider circuit is open
- /live - Liveness probe
- /metrics - Prometheus metrics in text format
- /stats - Engine statistics snapshot

Usage:
    from src.health.server import create_health_app
    app = create_health_app(engine)

    # Or run with uvicorn, owning the engine lifecycle
    run_health_server(settings)
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from src.health.checks import HealthChecker, HealthStatus
from src.models.config import EngineSettings
from src.observability.metrics import DiscoveryMetrics, get_metrics_content_type
from src.scheduling.scheduler import MaintenanceScheduler
from src.services.discovery_service import DiscoveryEngine, build_engine

logger = structlog.get_logger()


def create_health_app(
    engine: DiscoveryEngine,
    metrics: Optional[DiscoveryMetrics] = None,
    scheduler: Optional[MaintenanceScheduler] = None,
    cache_dir: Optional[Path] = None,
    title: str = "Related Paper Discovery Health API",
    version: str = "0.4.0",
) -> FastAPI:
    """Create FastAPI application with health endpoints.

    Args:
        engine: Engine to report on
        metrics: Metrics exported at /metrics (defaults to engine.metrics)
        scheduler: Maintenance scheduler started/stopped with the app
        cache_dir: Durable cache directory checked by /health
        title: API title
        version: API version

    Returns:
        Configured FastAPI application
    """
    metrics = metrics or engine.metrics or DiscoveryMetrics()
    checker = HealthChecker(engine, cache_dir=cache_dir)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("health_server_starting")
        if scheduler is not None:
            scheduler.start()
        yield
        if scheduler is not None:
            scheduler.stop()
        logger.info("health_server_stopping")

    app = FastAPI(
        title=title,
        version=version,
        description="Health, readiness and metrics for the discovery engine",
        lifespan=lifespan,
    )

    @app.get("/health", response_model=None, summary="Full health check")
    async def health_check() -> Response:
        """Returns 200 if healthy/degraded, 503 if unhealthy."""
        report = await checker.check_all()
        status_code = (
            status.HTTP_200_OK
            if report.status != HealthStatus.UNHEALTHY
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(content=report.to_dict(), status_code=status_code)

    @app.get("/ready", response_model=None, summary="Readiness probe")
    async def readiness_probe() -> Response:
        if checker.is_ready():
            return JSONResponse(
                content={"ready": True, "message": "Service is ready"},
                status_code=status.HTTP_200_OK,
            )
        return JSONResponse(
            content={"ready": False, "message": "All provider circuits are open"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.get("/live", response_model=None, summary="Liveness probe")
    async def liveness_probe() -> Response:
        return JSONResponse(
            content={"alive": checker.is_alive(), "message": "Service is alive"},
            status_code=status.HTTP_200_OK,
        )

    @app.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
    async def prometheus_metrics() -> Response:
        metrics.set_cache_entries(engine.cache.entry_count)
        return Response(content=metrics.render(), media_type=get_metrics_content_type())

    @app.get("/stats", response_model=None, summary="Engine statistics")
    async def engine_stats() -> Dict[str, Any]:
        stats = engine.stats()
        if scheduler is not None:
            stats["maintenance"] = {
                "running": scheduler.is_running,
                "jobs": scheduler.get_jobs(),
            }
        return stats

    @app.get("/", response_model=None, summary="Root endpoint")
    async def root() -> Dict[str, Any]:
        return {
            "name": title,
            "version": version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "live": "/live",
                "metrics": "/metrics",
                "stats": "/stats",
            },
        }

    return app


async def run_health_server_async(  # pragma: no cover
    settings: EngineSettings,
    engine: Optional[DiscoveryEngine] = None,
    log_level: str = "info",
) -> None:
    """Serve the health app, owning engine and maintenance lifecycle."""
    import uvicorn

    engine = engine or build_engine(settings)
    scheduler = MaintenanceScheduler(engine.cache, settings.maintenance)
    cache_dir = Path(settings.cache.cache_dir) if settings.cache.enabled else None
    app = create_health_app(engine, scheduler=scheduler, cache_dir=cache_dir)

    config = uvicorn.Config(
        app,
        host=settings.health_server.host,
        port=settings.health_server.port,
        log_level=log_level,
        access_log=True,
    )
    server = uvicorn.Server(config)

    logger.info(
        "health_server_starting",
        host=settings.health_server.host,
        port=settings.health_server.port,
    )
    try:
        await server.serve()
    finally:
        await engine.close()


def run_health_server(  # pragma: no cover
    settings: EngineSettings,
    log_level: str = "info",
) -> None:
    """Run health server (blocking)."""
    asyncio.run(run_health_server_async(settings, log_level=log_level))
