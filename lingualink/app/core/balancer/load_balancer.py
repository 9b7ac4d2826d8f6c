############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# load_balancer.py: Backend selection with pluggable strategies
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Load balancer - picks one backend per outgoing request."""

import random
from typing import Any, Dict, Iterable, List, Optional

from lingualink.app.core import metrics
from lingualink.app.core.balancer.models import (
    Backend,
    LoadBalancingStrategy,
    RequestStats,
)
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.core.balancer.strategies import (
    HealthBasedStrategy,
    SelectionContext,
    SelectionStrategy,
    build_strategies,
)
from lingualink.app.logging_config import get_logger

logger = get_logger(__name__)


def parse_strategy(name: Any) -> Optional[LoadBalancingStrategy]:
    """Resolve a strategy name, or None if it is not recognized."""
    if isinstance(name, LoadBalancingStrategy):
        return name
    if not isinstance(name, str):
        return None
    try:
        return LoadBalancingStrategy(name.strip().lower())
    except ValueError:
        return None


class LoadBalancer:
    """
    Selects backends from the registry.

    Selection order:
    1. Filter to eligible backends (healthy and under the failure threshold)
    2. A single candidate is returned without consulting the strategy
    3. Otherwise the configured strategy picks among the candidates

    Every selection counts as one in-flight connection on the chosen
    backend until ``release()`` is called for it.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        strategy: Any = LoadBalancingStrategy.HEALTH_BASED,
        max_consecutive_failures: int = 3,
        stats: Optional[RequestStats] = None,
        rng: Optional[random.Random] = None,
    ):
        resolved = parse_strategy(strategy)
        if resolved is None:
            raise ValueError(f"Unknown load balancing strategy: {strategy!r}")

        self.registry = registry
        self.max_consecutive_failures = max_consecutive_failures
        self.stats = stats or RequestStats()
        self._strategies = build_strategies(rng=rng)
        self._strategy = resolved
        self._connections: Dict[int, int] = {}
        self._last_selected_id: Optional[int] = None

    @property
    def strategy(self) -> LoadBalancingStrategy:
        return self._strategy

    @property
    def strategy_impl(self) -> SelectionStrategy:
        return self._strategies[self._strategy]

    def set_strategy(self, name: Any) -> bool:
        """Switch strategy at runtime; unknown names are rejected unchanged."""
        resolved = parse_strategy(name)
        if resolved is None:
            logger.warning("invalid_strategy_rejected", strategy=str(name))
            return False
        if resolved != self._strategy:
            logger.info(
                "strategy_changed",
                old=self._strategy.value,
                new=resolved.value,
            )
        self._strategy = resolved
        return True

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _context(self) -> SelectionContext:
        return SelectionContext(
            health=self.registry.health_snapshot(),
            connections=self._connections,
        )

    def select_backend(
        self,
        exclude: Optional[Iterable[int]] = None,
        allow_degraded: bool = True,
    ) -> Optional[Backend]:
        """
        Choose a backend for one outgoing request.

        Args:
            exclude: backend ids to avoid where an alternative exists
            allow_degraded: when nothing is eligible, fall back to the first
                registered backend instead of returning None

        Returns:
            The chosen backend, or None when the registry is empty or when
            ``allow_degraded`` is False and no candidate remains.
        """
        backends = self.registry.backends
        if not backends:
            logger.error("no_backends_registered")
            return None

        excluded = set(exclude or ())
        candidates = self.registry.eligible_backends(self.max_consecutive_failures)
        if excluded:
            remaining = [b for b in candidates if b.id not in excluded]
            if remaining or not allow_degraded:
                candidates = remaining

        if not candidates:
            if not allow_degraded:
                return None
            backend = backends[0]
            logger.warning(
                "no_eligible_backends_degrading",
                backend_id=backend.id,
                total=len(backends),
            )
        elif len(candidates) == 1:
            backend = candidates[0]
        else:
            backend = self.strategy_impl.select(candidates, self._context())

        self._record_selection(backend)
        return backend

    def _record_selection(self, backend: Backend) -> None:
        self._connections[backend.id] = self._connections.get(backend.id, 0) + 1
        if self._last_selected_id is not None and self._last_selected_id != backend.id:
            self.stats.backend_switches += 1
            metrics.BACKEND_SWITCHES.inc()
            logger.info(
                "backend_switched",
                previous=self._last_selected_id,
                backend_id=backend.id,
            )
        self._last_selected_id = backend.id
        logger.debug(
            "backend_selected",
            backend_id=backend.id,
            strategy=self._strategy.value,
        )

    def release(self, backend_id: int) -> None:
        """Mark one in-flight request on ``backend_id`` as finished."""
        current = self._connections.get(backend_id, 0)
        self._connections[backend_id] = max(0, current - 1)

    def forget(self, backend_id: int) -> None:
        """Drop bookkeeping for a backend that left the registry."""
        self._connections.pop(backend_id, None)
        if self._last_selected_id == backend_id:
            self._last_selected_id = None

    def connection_count(self, backend_id: int) -> int:
        return self._connections.get(backend_id, 0)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_scores(self) -> List[Dict[str, Any]]:
        """Health-based score breakdown for every eligible backend."""
        scorer = self._strategies[LoadBalancingStrategy.HEALTH_BASED]
        assert isinstance(scorer, HealthBasedStrategy)
        candidates = self.registry.eligible_backends(self.max_consecutive_failures)
        return [
            {
                "backend_id": s.backend_id,
                "total_score": round(s.total_score, 2),
                "response_time_penalty": round(s.response_time_penalty, 2),
                "failure_penalty": s.failure_penalty,
                "connection_penalty": s.connection_penalty,
                "uptime_bonus": round(s.uptime_bonus, 2),
            }
            for s in scorer.rank(candidates, self._context())
        ]

    def get_stats(self) -> Dict[str, Any]:
        backends = self.registry.backends
        eligible = self.registry.eligible_backends(self.max_consecutive_failures)
        total = self.stats.total_requests
        success_rate = (
            round(self.stats.successful_requests / total * 100, 2) if total else 0.0
        )
        return {
            **self.stats.as_dict(),
            "success_rate": success_rate,
            "strategy": self._strategy.value,
            "total_backends": len(backends),
            "healthy_backends": len(eligible),
            "last_selected_backend": self._last_selected_id,
            "backends": [
                {
                    "id": b.id,
                    "url": b.base_url,
                    "identity_label": b.identity_label,
                    "eligible": b in eligible,
                    "connections": self.connection_count(b.id),
                    "health": self.registry.health(b.id).to_dict()
                    if self.registry.health(b.id)
                    else None,
                }
                for b in backends
            ],
        }

    def reset(self) -> None:
        """Reset request statistics and strategy cursors."""
        self.stats.reset()
        for strategy in self._strategies.values():
            strategy.reset()
        self._last_selected_id = None
        logger.info("load_balancer_stats_reset")
