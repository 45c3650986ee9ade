"""FastAPI health server for the running daemon.

Provides HTTP endpoints for:
- /health - Full health check
- /ready - Readiness probe
- /live - Liveness probe
- /status - Scheduler status, job counters and ledger stats
- /metrics - Prometheus metrics in text format

Usage:
    app = create_health_app(application)
    server = build_health_server(application, port=8000)
    await server.serve()
"""

from typing import TYPE_CHECKING, Any, Dict

import structlog
from fastapi import FastAPI, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from infobot import __version__
from infobot.health.checks import HealthChecker, HealthStatus
from infobot.observability.metrics import get_metrics_content_type, get_metrics_text
from infobot.utils.exceptions import PersistenceError

if TYPE_CHECKING:
    from infobot.app import Application

logger = structlog.get_logger()


def create_health_app(
    application: "Application",
    title: str = "Infobot Health API",
) -> FastAPI:
    """Create FastAPI application with health endpoints bound to one Application."""
    app = FastAPI(
        title=title,
        version=__version__,
        description="Health, status and metrics endpoints for infobot",
    )
    checker = HealthChecker(application)

    @app.get(
        "/health",
        response_model=None,
        summary="Full health check",
        responses={
            200: {"description": "Healthy or degraded"},
            503: {"description": "One or more checks failed"},
        },
    )
    async def health_check() -> Response:
        report = await checker.check_all()
        status_code = (
            status.HTTP_200_OK
            if report.status != HealthStatus.UNHEALTHY
            else status.HTTP_503_SERVICE_UNAVAILABLE
        )
        return JSONResponse(content=report.to_dict(), status_code=status_code)

    @app.get("/ready", response_model=None, summary="Readiness probe")
    async def readiness_probe() -> Response:
        if await checker.is_ready():
            return JSONResponse(
                content={"ready": True, "message": "Service is ready"},
                status_code=status.HTTP_200_OK,
            )
        return JSONResponse(
            content={"ready": False, "message": "Service is not ready"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.get("/live", response_model=None, summary="Liveness probe")
    async def liveness_probe() -> Response:
        return JSONResponse(
            content={"alive": await checker.is_alive(), "message": "Service is alive"},
            status_code=status.HTTP_200_OK,
        )

    @app.get("/status", response_model=None, summary="Scheduler and ledger status")
    async def scheduler_status() -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "scheduler": application.scheduler.status().to_dict(),
            "jobs": [
                application.check_job.get_status(),
                application.cleanup_job.get_status(),
            ],
        }
        last = application.scheduler.last_summary
        payload["last_cycle"] = last.to_dict() if last else None
        try:
            stats = await application.store.get_stats()
            payload["stats"] = stats.model_dump(mode="json")
        except PersistenceError as e:
            payload["stats"] = {"error": str(e)}
        return payload

    @app.get(
        "/metrics",
        response_class=PlainTextResponse,
        summary="Prometheus metrics",
    )
    async def prometheus_metrics() -> Response:
        return Response(
            content=get_metrics_text(),
            media_type=get_metrics_content_type(),
        )

    @app.get("/", response_model=None, summary="Root endpoint")
    async def root() -> Dict[str, Any]:
        return {
            "name": title,
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "live": "/live",
                "status": "/status",
                "metrics": "/metrics",
            },
        }

    return app


def build_health_server(  # pragma: no cover
    application: "Application",
    host: str = "0.0.0.0",
    port: int = 8000,
    log_level: str = "warning",
) -> Any:
    """Create a uvicorn server for the health app (served by the caller)."""
    import uvicorn

    config = uvicorn.Config(
        create_health_app(application),
        host=host,
        port=port,
        log_level=log_level,
        access_log=False,
    )
    logger.info("health_server_configured", host=host, port=port)
    return uvicorn.Server(config)
