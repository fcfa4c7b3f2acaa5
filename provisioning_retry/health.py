"""
Retry Scheduler Health
======================
FastAPI router exposing worker health, queue depth and Prometheus metrics.
"""

import time
from enum import Enum
from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel

from .metrics import CONTENT_TYPE_LATEST, export_metrics
from .service import RetryService

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    worker_running: bool
    pending_jobs: Optional[int] = None
    in_flight_jobs: Optional[int] = None
    components: Dict[str, ComponentHealth]
    timestamp: float


async def check_store(service: RetryService) -> ComponentHealth:
    """Check job store connectivity and latency."""
    start = time.time()
    try:
        reachable = await service.store.ping()
    except Exception as e:
        logger.error("Job store health check failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))

    if not reachable:
        return ComponentHealth(status="error", error="ping failed")
    latency = (time.time() - start) * 1000
    return ComponentHealth(status="connected", latency_ms=round(latency, 2))


def create_health_router(service: RetryService) -> APIRouter:
    """
    Create a health router for a retry service.

    Args:
        service: The running retry service

    Returns:
        FastAPI router with /health, /health/live, /health/ready and /metrics
    """
    router = APIRouter(tags=["Health"])

    @router.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Worker state plus job store status."""
        store_health = await check_store(service)
        components = {"job_store": store_health}

        pending = in_flight = None
        if store_health.status == "error":
            overall = HealthStatus.UNHEALTHY
        else:
            overall = HealthStatus.HEALTHY if service.running else HealthStatus.DEGRADED
            try:
                pending = await service.store.size()
                in_flight = await service.store.in_flight()
            except Exception as e:
                components["job_store"] = ComponentHealth(status="error", error=str(e))
                overall = HealthStatus.UNHEALTHY

        return HealthResponse(
            status=overall,
            service=service.config.service_name,
            worker_running=service.running,
            pending_jobs=pending,
            in_flight_jobs=in_flight,
            components=components,
            timestamp=time.time(),
        )

    @router.get("/health/live")
    async def liveness_probe():
        """Liveness probe - always returns 200 if the process is up."""
        return {"status": "alive"}

    @router.get("/health/ready")
    async def readiness_probe():
        """Readiness probe - the worker must be running and the store reachable."""
        if not service.running:
            return Response(
                content='{"status": "not_ready", "reason": "worker_stopped"}',
                status_code=503,
                media_type="application/json",
            )
        store_health = await check_store(service)
        if store_health.status == "error":
            return Response(
                content='{"status": "not_ready", "reason": "job_store_unavailable"}',
                status_code=503,
                media_type="application/json",
            )
        return {"status": "ready"}

    @router.get("/metrics")
    async def metrics_endpoint() -> Response:
        return Response(content=export_metrics(), media_type=CONTENT_TYPE_LATEST)

    return router
