############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# health.py: Liveness, status and Prometheus metrics endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Health check and metrics endpoints.

``/health-check-primary`` and ``/ping-fallback`` follow the same contract
the prober expects from backends, so a LinguaLink instance can itself be
placed behind another balancer.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from lingualink.app.core import metrics as app_metrics
from lingualink.app.settings import get_settings

router = APIRouter(tags=["health"])


def _uptime(request: Request) -> float:
    started = getattr(request.app.state, "started_at", None)
    if started is None:
        return 0.0
    return round(time.monotonic() - started, 1)


@router.get("/health-check-primary")
async def health_check_primary(request: Request) -> Dict[str, Any]:
    """
    Primary liveness endpoint.

    Reports "degraded" when no backend is currently eligible for selection.
    """
    manager = getattr(request.app.state, "manager", None)
    status = "healthy"
    healthy = total = 0
    if manager is not None:
        total = len(manager.registry)
        healthy = len(
            manager.registry.eligible_backends(manager.balancer.max_consecutive_failures)
        )
        if healthy == 0:
            status = "degraded"

    return {
        "status": status,
        "uptime": _uptime(request),
        "backends": {"total": total, "healthy": healthy},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ping-fallback")
async def ping_fallback(request: Request) -> Dict[str, Any]:
    """Minimal liveness endpoint with no dependency on backend state."""
    return {"status": "alive", "uptime": _uptime(request)}


@router.get("/metrics")
async def prometheus_metrics(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format, or 404 when disabled.
    """
    settings = getattr(request.app.state, "settings", None) or get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics are disabled")

    manager = getattr(request.app.state, "manager", None)
    if manager is not None:
        app_metrics.HEALTHY_BACKENDS.set(
            len(manager.registry.eligible_backends(manager.balancer.max_consecutive_failures))
        )

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/status")
async def service_status(request: Request) -> Dict[str, Any]:
    """High-level status of the balancer, keep-alive and translation layers."""
    settings = getattr(request.app.state, "settings", None) or get_settings()
    manager = getattr(request.app.state, "manager", None)
    translator = getattr(request.app.state, "translator", None)

    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "uptime": _uptime(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "balancer": manager.get_status() if manager is not None else None,
        "translation": {
            "enabled": translator is not None,
            "accounts": len(translator.pool) if translator is not None else 0,
        },
    }
