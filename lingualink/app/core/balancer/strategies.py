############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# strategies.py: Pluggable backend selection strategies
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Backend selection strategies.

Every strategy receives a non-empty list of eligible candidates in
registry order plus a read-only view of health and connection state, and
returns one of the candidates. Selection is synchronous so a strategy's
read-then-pick never straddles a suspension point.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type

from lingualink.app.core.balancer.models import (
    Backend,
    HealthRecord,
    LoadBalancingStrategy,
)

# Response time assumed for unmeasured backends by the weighted strategy
DEFAULT_RESPONSE_TIME_MS = 1000.0


@dataclass
class SelectionContext:
    """State a strategy may read while choosing a backend."""

    health: Dict[int, HealthRecord]
    connections: Dict[int, int] = field(default_factory=dict)

    def response_time(self, backend_id: int) -> Optional[float]:
        record = self.health.get(backend_id)
        return record.last_response_time_ms if record else None

    def connection_count(self, backend_id: int) -> int:
        return self.connections.get(backend_id, 0)


class SelectionStrategy:
    """Base class for selection strategies."""

    name: LoadBalancingStrategy

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        raise NotImplementedError

    def reset(self) -> None:
        """Clear any internal cursor state."""


class RoundRobinStrategy(SelectionStrategy):
    """Cyclic index into the candidate list, advancing on every call."""

    name = LoadBalancingStrategy.ROUND_ROBIN

    def __init__(self):
        self.index = 0

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        backend = candidates[self.index % len(candidates)]
        self.index += 1
        return backend

    def reset(self) -> None:
        self.index = 0


class LeastResponseTimeStrategy(SelectionStrategy):
    """
    Fastest recorded response time wins.

    Backends with a measurement are preferred over unmeasured ones; when
    nobody has been measured the first candidate is returned.
    """

    name = LoadBalancingStrategy.LEAST_RESPONSE_TIME

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        measured = [
            b for b in candidates
            if context.response_time(b.id) is not None
        ]
        if not measured:
            return candidates[0]
        return min(measured, key=lambda b: context.response_time(b.id))


class LeastConnectionsStrategy(SelectionStrategy):
    """Fewest in-flight requests wins; ties go to registry order."""

    name = LoadBalancingStrategy.LEAST_CONNECTIONS

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        return min(candidates, key=lambda b: context.connection_count(b.id))


class WeightedRoundRobinStrategy(SelectionStrategy):
    """
    Weighted random draw, weight = max(1, round(1000 / response_time_ms)).

    Unmeasured backends are weighted as if they answered in 1000ms.
    """

    name = LoadBalancingStrategy.WEIGHTED_ROUND_ROBIN

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    @staticmethod
    def weight_for(response_time_ms: Optional[float]) -> int:
        rt = response_time_ms or DEFAULT_RESPONSE_TIME_MS
        rt = max(rt, 1.0)
        # Half-up rounding, not banker's rounding
        return max(1, int(1000.0 / rt + 0.5))

    def weights(self, candidates: List[Backend], context: SelectionContext) -> List[int]:
        return [self.weight_for(context.response_time(b.id)) for b in candidates]

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        weights = self.weights(candidates, context)
        remaining = self._rng.random() * sum(weights)
        for backend, weight in zip(candidates, weights):
            remaining -= weight
            if remaining <= 0:
                return backend
        return candidates[0]


@dataclass
class BackendScore:
    """Score breakdown for the health-based strategy."""

    backend_id: int
    total_score: float
    response_time_penalty: float = 0.0
    failure_penalty: float = 0.0
    connection_penalty: float = 0.0
    uptime_bonus: float = 0.0


class HealthBasedStrategy(SelectionStrategy):
    """
    Composite health score, highest wins.

    score = 100
            - min(50, response_time_ms / 100)
            - 20 * consecutive_failures
            - 5 * in-flight connections
            + min(20, uptime_sec / 3600)
    floored at 0. Ties go to registry order.
    """

    name = LoadBalancingStrategy.HEALTH_BASED

    BASE_SCORE = 100.0
    MAX_RESPONSE_TIME_PENALTY = 50.0
    FAILURE_PENALTY = 20.0
    CONNECTION_PENALTY = 5.0
    MAX_UPTIME_BONUS = 20.0

    def score(self, backend: Backend, context: SelectionContext) -> BackendScore:
        record = context.health.get(backend.id) or HealthRecord()
        result = BackendScore(backend_id=backend.id, total_score=0.0)

        if record.last_response_time_ms:
            result.response_time_penalty = min(
                self.MAX_RESPONSE_TIME_PENALTY, record.last_response_time_ms / 100
            )
        result.failure_penalty = record.consecutive_failures * self.FAILURE_PENALTY
        result.connection_penalty = (
            context.connection_count(backend.id) * self.CONNECTION_PENALTY
        )
        if record.reported_uptime_sec:
            result.uptime_bonus = min(
                self.MAX_UPTIME_BONUS, record.reported_uptime_sec / 3600
            )

        result.total_score = max(
            0.0,
            self.BASE_SCORE
            - result.response_time_penalty
            - result.failure_penalty
            - result.connection_penalty
            + result.uptime_bonus,
        )
        return result

    def rank(self, candidates: List[Backend], context: SelectionContext) -> List[BackendScore]:
        """Scores sorted best first; the stable sort keeps registry order on ties."""
        scores = [self.score(b, context) for b in candidates]
        return sorted(scores, key=lambda s: s.total_score, reverse=True)

    def select(self, candidates: List[Backend], context: SelectionContext) -> Backend:
        best = self.rank(candidates, context)[0]
        for backend in candidates:
            if backend.id == best.backend_id:
                return backend
        return candidates[0]


STRATEGY_CLASSES: Dict[LoadBalancingStrategy, Type[SelectionStrategy]] = {
    LoadBalancingStrategy.ROUND_ROBIN: RoundRobinStrategy,
    LoadBalancingStrategy.LEAST_RESPONSE_TIME: LeastResponseTimeStrategy,
    LoadBalancingStrategy.LEAST_CONNECTIONS: LeastConnectionsStrategy,
    LoadBalancingStrategy.WEIGHTED_ROUND_ROBIN: WeightedRoundRobinStrategy,
    LoadBalancingStrategy.HEALTH_BASED: HealthBasedStrategy,
}


def build_strategies(rng: Optional[random.Random] = None) -> Dict[LoadBalancingStrategy, SelectionStrategy]:
    """One instance of every strategy, so cursors survive strategy switches."""
    strategies: Dict[LoadBalancingStrategy, SelectionStrategy] = {}
    for name, cls in STRATEGY_CLASSES.items():
        if cls is WeightedRoundRobinStrategy:
            strategies[name] = cls(rng=rng)
        else:
            strategies[name] = cls()
    return strategies
