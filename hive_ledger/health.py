"""Health check API for monitoring service status."""

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config import settings
from .logging_setup import get_logger

logger = get_logger(__name__)


def create_health_api(service) -> FastAPI:
    """Build the FastAPI app served next to the monitor.

    ``service`` provides ``get_health_status()`` and ``is_ready()``.
    """
    app = FastAPI(
        title="Hive Ledger Monitor Health",
        description="Health check and metrics for the Hive ledger monitor",
        version=settings.app_version,
    )

    @app.get("/health")
    async def health_check():
        """Liveness plus a per-component summary."""
        try:
            health_status = service.get_health_status()
            status_code = 200 if health_status["status"] == "healthy" else 503
            return JSONResponse(content=health_status, status_code=status_code)
        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            return JSONResponse(
                content={
                    "status": "unhealthy",
                    "error": str(e),
                    "service": settings.service_name,
                },
                status_code=503,
            )

    @app.get("/ready")
    async def readiness_check():
        """Kubernetes readiness probe endpoint."""
        try:
            is_ready = service.is_ready()
        except Exception as e:
            logger.error("readiness_check_failed", error=str(e))
            is_ready = False

        return JSONResponse(
            content={
                "status": "ready" if is_ready else "not_ready",
                "service": settings.service_name,
            },
            status_code=200 if is_ready else 503,
        )

    @app.get("/metrics")
    async def metrics():
        if not settings.metrics_enabled:
            return Response(status_code=404)
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
