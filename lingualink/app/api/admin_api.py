############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# admin_api.py: Administrative endpoints for the backend fleet
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Admin API endpoints for backend fleet management."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from lingualink.app.api.deps import get_manager
from lingualink.app.core.balancer.manager import BackendManager
from lingualink.app.core.balancer.models import (
    LoadBalancingStrategy,
    ProbeResult,
    ResourceLevel,
)
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


# Request/Response models
class BackendAddRequest(BaseModel):
    """Request to register a new backend."""
    base_url: str = Field(..., min_length=1)
    identity_label: Optional[str] = Field(None, max_length=100)

    @field_validator("base_url")
    @classmethod
    def require_http(cls, v: str) -> str:
        if not v.strip().startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.strip()


class HealthResponse(BaseModel):
    is_healthy: bool
    last_checked_at: Optional[datetime]
    last_response_time_ms: Optional[float]
    consecutive_failures: int
    last_error: Optional[str]
    reported_uptime_sec: Optional[float]


class BackendResponse(BaseModel):
    """Backend information response."""
    id: int
    base_url: str
    identity_label: str
    eligible: bool
    connections: int
    health: Optional[HealthResponse]


class StrategyRequest(BaseModel):
    strategy: str = Field(..., min_length=1)


class ResourceLevelRequest(BaseModel):
    level: ResourceLevel


class ProbeResponse(BaseModel):
    backend_id: int
    is_healthy: bool
    endpoint: Optional[str]
    latency_ms: Optional[float]
    uptime_sec: Optional[float]
    reported_status: Optional[str]
    error_message: Optional[str]


def _backend_response(manager: BackendManager, backend_id: int) -> BackendResponse:
    backend = manager.registry.get(backend_id)
    record = manager.registry.health(backend_id)
    return BackendResponse(
        id=backend.id,
        base_url=backend.base_url,
        identity_label=backend.identity_label,
        eligible=manager.registry.is_eligible(
            backend_id, manager.balancer.max_consecutive_failures
        ),
        connections=manager.balancer.connection_count(backend_id),
        health=HealthResponse(**record.__dict__) if record else None,
    )


def _probe_response(result: ProbeResult) -> ProbeResponse:
    return ProbeResponse(
        backend_id=result.backend_id,
        is_healthy=result.is_healthy,
        endpoint=result.endpoint,
        latency_ms=result.latency_ms,
        uptime_sec=result.uptime_sec,
        reported_status=result.reported_status,
        error_message=result.error_message,
    )


# Backend Management

@router.get("/backends", response_model=List[BackendResponse])
async def list_backends(manager: BackendManager = Depends(get_manager)):
    """List all registered backends in registry order."""
    return [_backend_response(manager, b.id) for b in manager.registry.backends]


@router.post(
    "/backends",
    response_model=BackendResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_backend(
    request: BackendAddRequest,
    manager: BackendManager = Depends(get_manager),
):
    """Register a new backend under the next unused id."""
    backend = manager.add_backend(request.base_url, request.identity_label)
    return _backend_response(manager, backend.id)


@router.delete("/backends/{backend_id}")
async def remove_backend(
    backend_id: int,
    manager: BackendManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Unregister a backend."""
    backend = manager.remove_backend(backend_id)
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Backend {backend_id} not found",
        )
    return {"status": "removed", "backend_id": backend.id}


@router.post("/backends/probe", response_model=List[ProbeResponse])
async def probe_all_backends(manager: BackendManager = Depends(get_manager)):
    """Run a health probe against every backend now."""
    results = await manager.probe_all()
    return [_probe_response(r) for r in results]


@router.post("/backends/{backend_id}/probe", response_model=ProbeResponse)
async def probe_backend(
    backend_id: int,
    manager: BackendManager = Depends(get_manager),
):
    result = await manager.probe_backend(backend_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Backend {backend_id} not found",
        )
    return _probe_response(result)


@router.post("/backends/{backend_id}/wake")
async def wake_backend(
    backend_id: int,
    manager: BackendManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Force-wake a backend and add it to the keep-alive set on success."""
    if manager.registry.get(backend_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Backend {backend_id} not found",
        )
    woken = await manager.wake_up_backend(backend_id)
    return {
        "backend_id": backend_id,
        "woken": woken,
        "active_backends": manager.keepalive.active_ids,
    }


# Load Balancer

@router.get("/strategy")
async def get_strategy(manager: BackendManager = Depends(get_manager)) -> Dict[str, Any]:
    return {
        "strategy": manager.balancer.strategy.value,
        "available": [s.value for s in LoadBalancingStrategy],
    }


@router.put("/strategy")
async def set_strategy(
    request: StrategyRequest,
    manager: BackendManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Switch the load balancing strategy at runtime."""
    if not manager.set_strategy(request.strategy):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown strategy: {request.strategy}",
        )
    logger.info("admin_strategy_changed", strategy=manager.balancer.strategy.value)
    return {"strategy": manager.balancer.strategy.value}


@router.get("/stats")
async def get_stats(manager: BackendManager = Depends(get_manager)) -> Dict[str, Any]:
    return manager.balancer.get_stats()


@router.post("/stats/reset")
async def reset_stats(manager: BackendManager = Depends(get_manager)) -> Dict[str, Any]:
    manager.reset_stats()
    return {"status": "reset", "stats": manager.balancer.stats.as_dict()}


# Keep-Alive

@router.get("/keepalive")
async def keepalive_status(manager: BackendManager = Depends(get_manager)) -> Dict[str, Any]:
    return manager.keepalive.get_status()


@router.put("/keepalive/level")
async def set_resource_level(
    request: ResourceLevelRequest,
    manager: BackendManager = Depends(get_manager),
) -> Dict[str, Any]:
    """Trade keep-alive responsiveness against resource usage."""
    profile = manager.adjust_resource_usage(request.level)
    return {
        "level": request.level.value,
        "max_active": profile.max_active,
        "interval_seconds": profile.interval,
    }
