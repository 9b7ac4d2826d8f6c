############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# prober.py: Liveness probing with primary/fallback endpoints
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Health prober - periodic liveness checks against every backend."""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from lingualink.app.core import metrics
from lingualink.app.core.balancer.models import Backend, ProbeResult
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)

PRIMARY_LIVE_STATUSES = frozenset({"healthy", "degraded"})
FALLBACK_LIVE_STATUSES = frozenset({"alive"})


class ProbeError(Exception):
    """A liveness endpoint did not return a usable 2xx JSON body."""


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class HealthProber:
    """
    Issues liveness requests and records the outcome in the registry.

    Each probe tries the primary endpoint first and falls back to the
    simpler ping endpoint when the primary errors, times out, returns a
    non-2xx status or an unparseable body. Fleets with partially deployed
    health endpoints therefore still probe correctly.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        timeout: float = 5.0,
        interval: float = 300.0,
        primary_path: str = "/health-check-primary",
        fallback_path: str = "/ping-fallback",
    ):
        self.registry = registry
        self.timeout = timeout
        self.interval = interval
        self.primary_path = primary_path
        self.fallback_path = fallback_path
        self._client: Optional[httpx.AsyncClient] = None
        self._poll_task: Optional[asyncio.Task] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Probe once, then keep probing every ``interval`` seconds."""
        if self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("health_prober_started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the background loop and close the client."""
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await self.close()
        logger.info("health_prober_stopped")

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.probe_all()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("poll_loop_error", error=str(e))
                await asyncio.sleep(self.interval)

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def probe_all(self) -> List[ProbeResult]:
        """Probe every registered backend concurrently; never raises."""
        backends = self.registry.backends
        outcomes = await asyncio.gather(
            *(self.probe_backend(b) for b in backends),
            return_exceptions=True,
        )

        results: List[ProbeResult] = []
        for backend, outcome in zip(backends, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("probe_error", backend_id=backend.id, error=str(outcome))
                continue
            results.append(outcome)

        healthy = sum(1 for r in results if r.is_healthy)
        metrics.HEALTHY_BACKENDS.set(healthy)
        logger.info("health_check_complete", healthy=healthy, total=len(backends))
        return results

    async def probe_backend(self, backend: Backend) -> ProbeResult:
        """Probe one backend and record the outcome in its HealthRecord."""
        start_time = time.monotonic()

        try:
            data = await self._fetch(backend, self.primary_path)
            endpoint = "primary"
            live_statuses = PRIMARY_LIVE_STATUSES
        except Exception as primary_error:
            logger.debug(
                "primary_probe_unavailable",
                backend_id=backend.id,
                error=str(primary_error),
            )
            metrics.PROBES.labels(endpoint="primary", outcome="error").inc()
            try:
                data = await self._fetch(backend, self.fallback_path)
                endpoint = "fallback"
                live_statuses = FALLBACK_LIVE_STATUSES
            except Exception as e:
                metrics.PROBES.labels(endpoint="fallback", outcome="error").inc()
                error = str(e) or type(e).__name__
                self.registry.record_probe_failure(backend.id, error)
                logger.warning("probe_failed", backend_id=backend.id, error=error)
                return ProbeResult(
                    backend_id=backend.id,
                    is_healthy=False,
                    error_message=error,
                )

        latency_ms = (time.monotonic() - start_time) * 1000
        status = str(data.get("status", "")).lower()
        uptime = _as_float(data.get("uptime"))
        is_healthy = status in live_statuses

        if is_healthy:
            self.registry.record_probe_success(backend.id, latency_ms, uptime)
            metrics.PROBES.labels(endpoint=endpoint, outcome="healthy").inc()
            error = None
        else:
            error = f"Backend reported status '{status or 'missing'}'"
            self.registry.record_probe_failure(backend.id, error, latency_ms, uptime)
            metrics.PROBES.labels(endpoint=endpoint, outcome="unhealthy").inc()

        logger.debug(
            "probe_complete",
            backend_id=backend.id,
            endpoint=endpoint,
            healthy=is_healthy,
            latency_ms=round(latency_ms, 1),
        )

        return ProbeResult(
            backend_id=backend.id,
            is_healthy=is_healthy,
            endpoint=endpoint,
            latency_ms=latency_ms,
            uptime_sec=uptime,
            reported_status=status or None,
            error_message=error,
        )

    async def _fetch(self, backend: Backend, path: str) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.get(backend.url_for(path))
        if not 200 <= response.status_code < 300:
            raise ProbeError(f"{path} returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise ProbeError(f"{path} returned a malformed body") from e
        if not isinstance(data, dict):
            raise ProbeError(f"{path} returned a malformed body")
        return data
