############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# models.py: In-memory data models for backends and their health
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Balancer data models.

Nothing here is persisted; all state is rebuilt from configuration on
process restart.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LoadBalancingStrategy(str, Enum):
    """Named backend selection strategies."""

    ROUND_ROBIN = "round_robin"
    LEAST_RESPONSE_TIME = "least_response_time"
    LEAST_CONNECTIONS = "least_connections"
    WEIGHTED_ROUND_ROBIN = "weighted_round_robin"
    HEALTH_BASED = "health_based"


class ResourceLevel(str, Enum):
    """Keep-alive resource budget levels."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True)
class Backend:
    """A registered backend deployment."""

    id: int
    base_url: str
    identity_label: str
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def url_for(self, path: str) -> str:
        """Join a request path onto this backend's base URL."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"


@dataclass
class HealthRecord:
    """Live health state for one backend."""

    is_healthy: bool = True
    last_checked_at: Optional[datetime] = None
    last_response_time_ms: Optional[float] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    reported_uptime_sec: Optional[float] = None

    def is_eligible(self, max_consecutive_failures: int) -> bool:
        """Selectable only while healthy and under the failure threshold."""
        return self.is_healthy and self.consecutive_failures < max_consecutive_failures

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.last_checked_at is not None:
            data["last_checked_at"] = self.last_checked_at.isoformat()
        return data


@dataclass
class ProbeResult:
    """Outcome of one liveness probe (primary with optional fallback)."""

    backend_id: int
    is_healthy: bool
    endpoint: Optional[str] = None  # "primary" or "fallback"
    status_code: Optional[int] = None
    latency_ms: Optional[float] = None
    uptime_sec: Optional[float] = None
    reported_status: Optional[str] = None
    error_message: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def reached(self) -> bool:
        """True when some liveness endpoint answered with a usable body."""
        return self.endpoint is not None


@dataclass
class RequestStats:
    """Process-wide outbound request counters."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    backend_switches: int = 0

    def reset(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.backend_switches = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class KeepAliveStats:
    """Keep-alive scheduler counters and resource-savings estimates."""

    ticks: int = 0
    total_pings: int = 0
    rotations: int = 0
    bandwidth_saved_kb: float = 0.0
    instance_hours_saved: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ticks": self.ticks,
            "total_pings": self.total_pings,
            "rotations": self.rotations,
            "bandwidth_saved_mb": round(self.bandwidth_saved_kb / 1024, 2),
            "instance_hours_saved": round(self.instance_hours_saved, 2),
        }
