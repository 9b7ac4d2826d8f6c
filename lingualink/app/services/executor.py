############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# executor.py: Resilient outbound requests with retry and failover
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Resilient request executor.

Application code calls ``RequestExecutor.execute()`` instead of talking to
a fixed backend. Each attempt goes to a backend chosen by the load
balancer, preferring one not yet tried in the same call.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Set

import httpx

from lingualink.app.core import metrics
from lingualink.app.core.balancer.keepalive import KeepAliveScheduler
from lingualink.app.core.balancer.load_balancer import LoadBalancer
from lingualink.app.core.balancer.models import Backend
from lingualink.app.core.exceptions import (
    BackendsExhaustedError,
    BackendStatusError,
    PreconditionError,
)
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)


class RequestExecutor:
    """
    Wraps outbound calls with backend selection, timeout and retry.

    Failure classification:
    - timeouts, transport and protocol errors mark the backend unhealthy
    - non-2xx responses are recorded but leave eligibility alone
    """

    def __init__(
        self,
        balancer: LoadBalancer,
        keepalive: Optional[KeepAliveScheduler] = None,
        timeout: float = 8.0,
        max_retries: int = 3,
        backoff_base_ms: int = 1000,
        backoff_max_ms: int = 5000,
    ):
        self.balancer = balancer
        self.keepalive = keepalive
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def registry(self):
        return self.balancer.registry

    @property
    def stats(self):
        return self.balancer.stats

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after zero-based ``attempt``: min(base * 2^attempt, cap)."""
        delay_ms = min(self.backoff_base_ms * (2 ** attempt), self.backoff_max_ms)
        return delay_ms / 1000.0

    async def execute(
        self,
        path: str,
        method: str = "GET",
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Issue a request against the backend fleet.

        Raises:
            PreconditionError: ``path`` is empty or not a string
            BackendsExhaustedError: every attempt failed
        """
        if not isinstance(path, str) or not path.strip():
            raise PreconditionError("Request path must be a non-empty string")
        path = path.strip()
        if not path.startswith("/"):
            path = "/" + path

        client = await self._get_client()
        attempted: Set[int] = set()
        attempts = 0
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            backend = await self._choose_backend(attempted)
            if backend is None:
                last_error = last_error or RuntimeError("No backends registered")
                break
            attempted.add(backend.id)
            attempts += 1
            self.stats.total_requests += 1
            start_time = time.monotonic()

            try:
                response = await asyncio.wait_for(
                    client.request(
                        method,
                        backend.url_for(path),
                        json=json,
                        params=params,
                        headers=headers,
                    ),
                    timeout=self.timeout,
                )
                if not 200 <= response.status_code < 300:
                    raise BackendStatusError(
                        backend.id, response.status_code, response.reason_phrase
                    )

                self.stats.successful_requests += 1
                self.registry.record_request_success(backend.id)
                metrics.OUTBOUND_REQUESTS.labels(outcome="success").inc()
                logger.debug(
                    "request_succeeded",
                    backend_id=backend.id,
                    path=path,
                    attempt=attempt + 1,
                    elapsed_ms=round((time.monotonic() - start_time) * 1000, 1),
                )
                return response

            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                last_error = e
                self._record_failure(backend, "timeout", f"Timeout after {self.timeout}s", True)
                logger.warning(
                    "backend_timeout",
                    backend_id=backend.id,
                    attempt=attempt + 1,
                    max_attempts=self.max_retries,
                    elapsed_ms=round((time.monotonic() - start_time) * 1000, 1),
                )

            except BackendStatusError as e:
                last_error = e
                self._record_failure(backend, "status", str(e), False)
                logger.warning(
                    "backend_error_status",
                    backend_id=backend.id,
                    status=e.status_code,
                    attempt=attempt + 1,
                )

            except (httpx.TransportError, ConnectionError) as e:
                last_error = e
                self._record_failure(backend, "network", str(e) or type(e).__name__, True)
                logger.warning(
                    "backend_connection_error",
                    backend_id=backend.id,
                    attempt=attempt + 1,
                    error=str(e),
                )

            except (httpx.HTTPError, httpx.InvalidURL) as e:
                # Bad encodings, redirect loops, unusable URLs: per-backend faults
                last_error = e
                self._record_failure(backend, "protocol", str(e) or type(e).__name__, True)
                logger.warning(
                    "backend_protocol_error",
                    backend_id=backend.id,
                    attempt=attempt + 1,
                    error_type=type(e).__name__,
                    error=str(e),
                )

            finally:
                self.balancer.release(backend.id)

            if attempt < self.max_retries - 1:
                await asyncio.sleep(self.backoff_seconds(attempt))

        logger.error(
            "request_exhausted",
            path=path,
            attempts=attempts,
            error=str(last_error),
        )
        raise BackendsExhaustedError(attempts, last_error) from last_error

    def _record_failure(
        self,
        backend: Backend,
        outcome: str,
        error: str,
        mark_unhealthy: bool,
    ) -> None:
        self.stats.failed_requests += 1
        self.registry.record_request_failure(backend.id, error, mark_unhealthy)
        metrics.OUTBOUND_REQUESTS.labels(outcome=outcome).inc()

    async def _choose_backend(self, attempted: Set[int]) -> Optional[Backend]:
        """
        Pick a backend for the next attempt.

        Prefers an eligible backend not yet attempted. When none is left,
        tries to wake a sleeping or unhealthy one before degrading to the
        balancer's last-resort choice.
        """
        backend = self.balancer.select_backend(exclude=attempted, allow_degraded=False)
        if backend is not None:
            return backend

        if self.keepalive is not None:
            limit = self.balancer.max_consecutive_failures
            for candidate in self.registry.backends:
                if candidate.id in attempted or self.registry.is_eligible(candidate.id, limit):
                    continue
                if await self.keepalive.wake_up_backend(candidate.id):
                    backend = self.balancer.select_backend(
                        exclude=attempted, allow_degraded=False
                    )
                    if backend is not None:
                        return backend
                break

        return self.balancer.select_backend(exclude=attempted)
