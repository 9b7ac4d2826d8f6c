############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# registry.py: Backend registry and per-backend health records
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Backend registry - the list of candidate backends and their health."""

import os
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from lingualink.app.core.balancer.models import Backend, HealthRecord
from lingualink.app.core.exceptions import ConfigurationError
from lingualink.app.logging_config import get_logger
from lingualink.app.settings import BackendConfig, Settings, get_settings

logger = get_logger(__name__)

_TRAILING_API = re.compile(r"/api$")


def normalize_url(url: str) -> str:
    """Strip trailing slashes and a trailing ``/api`` segment."""
    if not url:
        return ""
    return _TRAILING_API.sub("", url.strip().rstrip("/"))


def discover_backends_from_env(
    environ: Mapping[str, str],
    limit: int = 50,
) -> List[BackendConfig]:
    """Legacy discovery: BACKEND_URL_1, BACKEND_URL_2, ... until the first gap."""
    found: List[BackendConfig] = []
    for index in range(1, limit + 1):
        url = environ.get(f"BACKEND_URL_{index}")
        if not url:
            break
        found.append(
            BackendConfig(
                base_url=url,
                identity_label=environ.get(f"BACKEND_IDENTITY_{index}"),
            )
        )
    return found


class BackendRegistry:
    """
    Registry of backend deployments.

    Responsibilities:
    - Hold backends in registry order (selection tie-breaks follow it)
    - Own one HealthRecord per backend, keyed by backend id
    - Apply health updates from the prober and the request executor

    Size changes are visible to the balancer and prober on their next use;
    neither caches the backend list.
    """

    def __init__(self, backends: Optional[Iterable[Backend]] = None):
        self._backends: List[Backend] = []
        self._health: Dict[int, HealthRecord] = {}
        for backend in backends or ():
            self._insert(backend)

    def _insert(self, backend: Backend) -> None:
        self._backends.append(backend)
        self._health[backend.id] = HealthRecord()

    # ------------------------------------------------------------------
    # Loading and administration
    # ------------------------------------------------------------------

    def load_from_config(
        self,
        settings: Optional[Settings] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> List[Backend]:
        """
        Replace registry contents from configuration.

        Uses ``settings.backends`` when set, otherwise numbered environment
        variables.

        Raises:
            ConfigurationError: no backends configured, or a URL is not http(s)
        """
        settings = settings or get_settings()
        configs = list(settings.backends)
        if not configs:
            configs = discover_backends_from_env(
                environ if environ is not None else os.environ,
                limit=settings.backend_discovery_limit,
            )

        if not configs:
            raise ConfigurationError(
                "No backend instances configured. Set BACKENDS or BACKEND_URL_1."
            )

        loaded: List[Backend] = []
        for index, config in enumerate(configs, start=1):
            url = normalize_url(config.base_url)
            if not url.startswith(("http://", "https://")):
                raise ConfigurationError(
                    f"Invalid backend URL for backend {index}: {config.base_url!r}"
                )
            loaded.append(
                Backend(
                    id=index,
                    base_url=url,
                    identity_label=config.identity_label or f"backend-{index}",
                )
            )

        self._backends = []
        self._health = {}
        for backend in loaded:
            self._insert(backend)

        logger.info("loaded_backends", count=len(loaded))
        return list(loaded)

    def add(self, base_url: str, identity_label: Optional[str] = None) -> Backend:
        """Register a backend under the next unused integer id."""
        new_id = max((b.id for b in self._backends), default=0) + 1
        backend = Backend(
            id=new_id,
            base_url=normalize_url(base_url),
            identity_label=identity_label or f"backend-{new_id}",
        )
        self._insert(backend)
        logger.info("backend_added", backend_id=new_id, url=backend.base_url)
        return backend

    def remove(self, backend_id: int) -> Optional[Backend]:
        """Unregister a backend; unknown ids are a no-op returning None."""
        for index, backend in enumerate(self._backends):
            if backend.id == backend_id:
                del self._backends[index]
                self._health.pop(backend_id, None)
                logger.info("backend_removed", backend_id=backend_id)
                return backend
        return None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def backends(self) -> List[Backend]:
        """Backends in registry order (a copy)."""
        return list(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def get(self, backend_id: int) -> Optional[Backend]:
        for backend in self._backends:
            if backend.id == backend_id:
                return backend
        return None

    def health(self, backend_id: int) -> Optional[HealthRecord]:
        return self._health.get(backend_id)

    def health_snapshot(self) -> Dict[int, HealthRecord]:
        """Live health records keyed by backend id (not copies)."""
        return dict(self._health)

    def is_eligible(self, backend_id: int, max_consecutive_failures: int) -> bool:
        record = self._health.get(backend_id)
        return record is not None and record.is_eligible(max_consecutive_failures)

    def eligible_backends(self, max_consecutive_failures: int) -> List[Backend]:
        """Backends passing the eligibility check, in registry order."""
        return [
            b for b in self._backends
            if self.is_eligible(b.id, max_consecutive_failures)
        ]

    def summary(self) -> Dict:
        return {
            "total_backends": len(self._backends),
            "backends": [
                {
                    "id": b.id,
                    "url": b.base_url,
                    "identity_label": b.identity_label,
                }
                for b in self._backends
            ],
        }

    # ------------------------------------------------------------------
    # Health updates
    # ------------------------------------------------------------------

    def record_probe_success(
        self,
        backend_id: int,
        latency_ms: Optional[float],
        uptime_sec: Optional[float] = None,
    ) -> None:
        record = self._health.get(backend_id)
        if record is None:
            return
        record.is_healthy = True
        record.consecutive_failures = 0
        record.last_error = None
        record.last_checked_at = datetime.now(timezone.utc)
        record.last_response_time_ms = latency_ms
        record.reported_uptime_sec = uptime_sec

    def record_probe_failure(
        self,
        backend_id: int,
        error: str,
        latency_ms: Optional[float] = None,
        uptime_sec: Optional[float] = None,
    ) -> None:
        record = self._health.get(backend_id)
        if record is None:
            return
        record.is_healthy = False
        record.consecutive_failures += 1
        record.last_error = error
        record.last_checked_at = datetime.now(timezone.utc)
        record.last_response_time_ms = latency_ms
        if uptime_sec is not None:
            record.reported_uptime_sec = uptime_sec

    def record_request_success(self, backend_id: int) -> None:
        record = self._health.get(backend_id)
        if record is None:
            return
        record.is_healthy = True
        record.consecutive_failures = 0
        record.last_error = None

    def record_request_failure(
        self,
        backend_id: int,
        error: str,
        mark_unhealthy: bool,
    ) -> None:
        """Record a failed request; only hard failures count against eligibility."""
        record = self._health.get(backend_id)
        if record is None:
            return
        record.last_error = error
        if mark_unhealthy:
            record.is_healthy = False
            record.consecutive_failures += 1
