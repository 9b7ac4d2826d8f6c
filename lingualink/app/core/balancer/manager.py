############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# manager.py: Composition root for the backend resilience layer
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Backend manager - owns and wires the resilience components."""

from typing import Any, Dict, Mapping, Optional

from lingualink.app.core.balancer.keepalive import KeepAliveScheduler
from lingualink.app.core.balancer.load_balancer import LoadBalancer
from lingualink.app.core.balancer.models import Backend, ProbeResult
from lingualink.app.core.balancer.prober import HealthProber
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.logging_config import get_logger
from lingualink.app.services.executor import RequestExecutor
from lingualink.app.settings import Settings, get_settings

logger = get_logger(__name__)


class BackendManager:
    """
    Holds one instance of every resilience component.

    Built once by the application lifespan and handed to request handlers
    through ``app.state``; tests construct their own.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        prober: HealthProber,
        balancer: LoadBalancer,
        keepalive: KeepAliveScheduler,
        executor: RequestExecutor,
        keepalive_enabled: bool = True,
    ):
        self.registry = registry
        self.prober = prober
        self.balancer = balancer
        self.keepalive = keepalive
        self.executor = executor
        self.keepalive_enabled = keepalive_enabled
        self._started = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BackendManager":
        """
        Build every component from configuration.

        Raises:
            ConfigurationError: no usable backends configured
        """
        settings = settings or get_settings()

        registry = BackendRegistry()
        registry.load_from_config(settings, environ)

        prober = HealthProber(
            registry,
            timeout=settings.health_check_timeout,
            interval=settings.health_check_interval,
            primary_path=settings.health_primary_path,
            fallback_path=settings.health_fallback_path,
        )
        balancer = LoadBalancer(
            registry,
            strategy=settings.load_balancing_strategy,
            max_consecutive_failures=settings.max_consecutive_failures,
        )
        keepalive = KeepAliveScheduler(
            registry,
            prober,
            interval=settings.keepalive_interval,
            max_active=settings.keepalive_max_active,
            rotation_every=settings.keepalive_rotation_every,
        )
        executor = RequestExecutor(
            balancer,
            keepalive,
            timeout=settings.request_timeout,
            max_retries=settings.request_max_retries,
            backoff_base_ms=settings.request_backoff_base_ms,
            backoff_max_ms=settings.request_backoff_max_ms,
        )
        return cls(
            registry,
            prober,
            balancer,
            keepalive,
            executor,
            keepalive_enabled=settings.keepalive_enabled,
        )

    async def start(self) -> None:
        """Start the health prober and, when enabled, the keep-alive scheduler."""
        if self._started:
            return
        await self.prober.start()
        if self.keepalive_enabled:
            await self.keepalive.start()
        self._started = True
        logger.info(
            "backend_manager_started",
            backends=len(self.registry),
            strategy=self.balancer.strategy.value,
        )

    async def stop(self) -> None:
        await self.keepalive.stop()
        await self.prober.stop()
        await self.executor.close()
        self._started = False
        logger.info("backend_manager_stopped")

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------

    def add_backend(self, base_url: str, identity_label: Optional[str] = None) -> Backend:
        return self.registry.add(base_url, identity_label)

    def remove_backend(self, backend_id: int) -> Optional[Backend]:
        backend = self.registry.remove(backend_id)
        if backend is not None:
            self.balancer.forget(backend_id)
        return backend

    def set_strategy(self, name: Any) -> bool:
        return self.balancer.set_strategy(name)

    def adjust_resource_usage(self, level: Any):
        return self.keepalive.adjust_resource_usage(level)

    async def wake_up_backend(self, backend_id: int) -> bool:
        return await self.keepalive.wake_up_backend(backend_id)

    async def probe_all(self):
        return await self.prober.probe_all()

    async def probe_backend(self, backend_id: int) -> Optional[ProbeResult]:
        backend = self.registry.get(backend_id)
        if backend is None:
            return None
        return await self.prober.probe_backend(backend)

    def reset_stats(self) -> None:
        self.balancer.reset()

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "load_balancer": self.balancer.get_stats(),
            "scores": self.balancer.get_scores(),
            "keepalive": self.keepalive.get_status(),
            "prober": {
                "running": self.prober.is_running,
                "interval_seconds": self.prober.interval,
                "timeout_seconds": self.prober.timeout,
            },
        }
