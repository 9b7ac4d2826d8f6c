############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# keepalive.py: Smart keep-alive scheduler with a rotating active set
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Smart keep-alive scheduler.

Only a small rotating subset of backends (the active set) is probed on
each tick. Backends outside the set are allowed to idle, saving outbound
bandwidth and compute hours on scale-to-zero hosting tiers.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from lingualink.app.core import metrics
from lingualink.app.core.balancer.models import (
    Backend,
    KeepAliveStats,
    ResourceLevel,
)
from lingualink.app.core.balancer.prober import HealthProber
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)

# Estimated size of one liveness round trip
PING_SIZE_KB = 1.0


@dataclass(frozen=True)
class LevelProfile:
    max_active: int
    interval: float  # seconds


RESOURCE_LEVELS: Dict[ResourceLevel, LevelProfile] = {
    ResourceLevel.LOW: LevelProfile(max_active=1, interval=12 * 60),
    ResourceLevel.NORMAL: LevelProfile(max_active=2, interval=8 * 60),
    ResourceLevel.HIGH: LevelProfile(max_active=4, interval=6 * 60),
}


class KeepAliveScheduler:
    """
    Keeps a bounded, rotating active set of backends warm.

    Each tick probes every active member in parallel. Every
    ``rotation_every`` ticks the oldest member is swapped for the next
    non-active backend in registry order. Members added by
    ``wake_up_backend()`` may push the set over its nominal size until
    the next rotation tick trims it.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        prober: HealthProber,
        interval: float = 480.0,
        max_active: int = 2,
        rotation_every: int = 3,
    ):
        self.registry = registry
        self.prober = prober
        self.interval = interval
        self.max_active = max(1, max_active)
        self.rotation_every = max(1, rotation_every)
        self.level: Optional[ResourceLevel] = None
        self.stats = KeepAliveStats()

        # Oldest member first
        self._active: List[int] = []
        self._last_ping: Dict[int, datetime] = {}
        self._resize_pending = False
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Active set helpers
    # ------------------------------------------------------------------

    @property
    def active_ids(self) -> List[int]:
        return list(self._active)

    @property
    def effective_max_active(self) -> int:
        return min(self.max_active, len(self.registry))

    def _initial_active_set(self) -> List[int]:
        backends = self.registry.backends
        if not backends:
            return []
        primary = min(b.id for b in backends)
        active = [primary]
        for backend in backends:
            if len(active) >= self.effective_max_active:
                break
            if backend.id != primary:
                active.append(backend.id)
        return active

    def _reconcile(self) -> None:
        """Drop ids that are no longer registered."""
        registered = {b.id for b in self.registry.backends}
        self._active = [i for i in self._active if i in registered]
        if not self._active:
            self._active = self._initial_active_set()

    def _trim_and_fill(self) -> None:
        limit = self.effective_max_active
        while len(self._active) > limit:
            self._active.pop(0)
        for backend in self.registry.backends:
            if len(self._active) >= limit:
                break
            if backend.id not in self._active:
                self._active.append(backend.id)

    def _next_candidate(self, after_id: int) -> Optional[Backend]:
        """Next non-active backend in registry order after ``after_id``, wrapping."""
        backends = self.registry.backends
        ids = [b.id for b in backends]
        start = ids.index(after_id) + 1 if after_id in ids else 0
        for offset in range(len(backends)):
            backend = backends[(start + offset) % len(backends)]
            if backend.id != after_id and backend.id not in self._active:
                return backend
        return None

    def _rotate(self) -> bool:
        if not self._active:
            return False
        evicted = self._active[0]
        replacement = self._next_candidate(evicted)
        if replacement is None:
            logger.debug("keepalive_rotation_skipped", active=self.active_ids)
            return False
        self._active.pop(0)
        self._active.append(replacement.id)
        self.stats.rotations += 1
        logger.info(
            "keepalive_rotated",
            evicted=evicted,
            added=replacement.id,
            active=self.active_ids,
        )
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Probe the initial active set immediately, then tick on a timer."""
        if self._task is not None:
            return
        self._active = self._initial_active_set()
        await self.tick()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "keepalive_started",
            active=self.active_ids,
            interval=self.interval,
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._active = []
        metrics.KEEPALIVE_ACTIVE.set(0)
        logger.info("keepalive_stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None

    async def _run_loop(self) -> None:
        while True:
            try:
                # Re-read each cycle so level changes take effect next tick
                await asyncio.sleep(self.interval)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("keepalive_loop_error", error=str(e))

    async def tick(self) -> None:
        """Run one keep-alive cycle."""
        self._reconcile()
        if self._resize_pending:
            self._trim_and_fill()
            self._resize_pending = False

        active = [b for b in self.registry.backends if b.id in self._active]
        if active:
            outcomes = await asyncio.gather(
                *(self.prober.probe_backend(b) for b in active),
                return_exceptions=True,
            )
            now = datetime.now(timezone.utc)
            for backend, outcome in zip(active, outcomes):
                self._last_ping[backend.id] = now
                if isinstance(outcome, BaseException):
                    logger.warning(
                        "keepalive_ping_error",
                        backend_id=backend.id,
                        error=str(outcome),
                    )
            self.stats.total_pings += len(active)

        self.stats.ticks += 1
        if self.stats.ticks % self.rotation_every == 0:
            self._trim_and_fill()
            self._rotate()

        self._record_savings(len(active))
        metrics.KEEPALIVE_ACTIVE.set(len(self._active))
        logger.debug(
            "keepalive_tick",
            tick=self.stats.ticks,
            active=self.active_ids,
            pings=self.stats.total_pings,
        )

    def _record_savings(self, pinged: int) -> None:
        skipped = max(0, len(self.registry) - pinged)
        self.stats.bandwidth_saved_kb += skipped * PING_SIZE_KB
        self.stats.instance_hours_saved += skipped * self.interval / 3600

    # ------------------------------------------------------------------
    # Out-of-band operations
    # ------------------------------------------------------------------

    async def wake_up_backend(self, backend_id: int) -> bool:
        """
        Probe one backend immediately; on success add it to the active set.

        Nothing is evicted, so the set may exceed its nominal size until the
        next rotation tick. Returns False for unknown ids or failed probes.
        """
        backend = self.registry.get(backend_id)
        if backend is None:
            logger.warning("wake_unknown_backend", backend_id=backend_id)
            return False

        logger.info("waking_backend", backend_id=backend_id)
        result = await self.prober.probe_backend(backend)
        self._last_ping[backend_id] = datetime.now(timezone.utc)
        self.stats.total_pings += 1

        if not result.is_healthy:
            logger.warning(
                "wake_failed",
                backend_id=backend_id,
                error=result.error_message,
            )
            return False

        if backend_id not in self._active:
            self._active.append(backend_id)
            metrics.KEEPALIVE_ACTIVE.set(len(self._active))
        logger.info("backend_woken", backend_id=backend_id, active=self.active_ids)
        return True

    def adjust_resource_usage(self, level: Any) -> LevelProfile:
        """
        Reconfigure active set size and tick interval.

        Raises:
            ValueError: unknown level name
        """
        resolved = ResourceLevel(str(getattr(level, "value", level)).strip().lower())
        profile = RESOURCE_LEVELS[resolved]
        max_active = profile.max_active
        if resolved == ResourceLevel.HIGH:
            max_active = min(max_active, max(1, len(self.registry)))

        self.level = resolved
        self.max_active = max_active
        self.interval = profile.interval
        self._resize_pending = True
        logger.info(
            "keepalive_resources_adjusted",
            level=resolved.value,
            max_active=self.max_active,
            interval=self.interval,
        )
        return LevelProfile(max_active=max_active, interval=profile.interval)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def estimate_monthly_savings(self) -> Dict[str, Any]:
        """Projected savings over 30 days at the current configuration."""
        idle = max(0, len(self.registry) - self.effective_max_active)
        pings_per_month = (30 * 24 * 3600) / self.interval if self.interval else 0
        return {
            "bandwidth_saved_mb": round(idle * pings_per_month * PING_SIZE_KB / 1024),
            "instance_hours_saved": round(idle * 30 * 24 * 0.1),
            "idle_backends": idle,
        }

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "level": self.level.value if self.level else None,
            "active_backends": self.active_ids,
            "max_active": self.max_active,
            "effective_max_active": self.effective_max_active,
            "interval_seconds": self.interval,
            "rotation_every": self.rotation_every,
            "total_backends": len(self.registry),
            "last_ping": {
                backend_id: ts.isoformat()
                for backend_id, ts in self._last_ping.items()
            },
            "stats": self.stats.as_dict(),
            "monthly_estimate": self.estimate_monthly_savings(),
        }
