############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# test_load_balancer.py: Unit tests for backend selection
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Unit tests for the load balancer and its selection strategies."""

import pytest

from lingualink.app.core.balancer.load_balancer import LoadBalancer, parse_strategy
from lingualink.app.core.balancer.models import HealthRecord, LoadBalancingStrategy
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.core.balancer.strategies import (
    HealthBasedStrategy,
    SelectionContext,
    WeightedRoundRobinStrategy,
)


class FixedRandom:
    """rng stand-in returning a fixed draw."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def _select_and_release(balancer: LoadBalancer):
    backend = balancer.select_backend()
    balancer.release(backend.id)
    return backend


class TestEligibility:
    """Test the eligibility filter and degrade policy."""

    @pytest.mark.parametrize("strategy", [s.value for s in LoadBalancingStrategy])
    def test_ineligible_backend_never_selected(self, registry, strategy):
        for _ in range(3):
            registry.record_probe_failure(2, "down")
        balancer = LoadBalancer(registry, strategy=strategy)

        picks = {_select_and_release(balancer).id for _ in range(100)}

        assert 2 not in picks

    def test_repeated_timeouts_make_backend_ineligible(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")
        for _ in range(5):
            registry.record_request_failure(2, "timeout", mark_unhealthy=True)

        assert registry.health(2).consecutive_failures == 5
        picks = [_select_and_release(balancer).id for _ in range(10)]
        assert set(picks) == {1, 3}

    def test_single_unhealthy_backend_still_returned(self, make_registry):
        registry = make_registry(1)
        registry.record_probe_failure(1, "down")
        balancer = LoadBalancer(registry)

        backend = balancer.select_backend()

        assert backend is not None
        assert backend.id == 1

    def test_all_ineligible_degrades_to_first(self, registry):
        for backend_id in (1, 2, 3):
            registry.record_probe_failure(backend_id, "down")
        balancer = LoadBalancer(registry)

        assert balancer.select_backend().id == 1

    def test_no_degrade_returns_none(self, registry):
        for backend_id in (1, 2, 3):
            registry.record_probe_failure(backend_id, "down")
        balancer = LoadBalancer(registry)

        assert balancer.select_backend(allow_degraded=False) is None

    def test_empty_registry_returns_none(self):
        balancer = LoadBalancer(BackendRegistry())
        assert balancer.select_backend() is None

    def test_unhealthy_under_threshold_not_eligible(self, registry):
        # One failed probe marks unhealthy even below the failure threshold
        registry.record_probe_failure(1, "down")
        balancer = LoadBalancer(registry, strategy="round_robin")
        picks = {_select_and_release(balancer).id for _ in range(6)}
        assert picks == {2, 3}

    def test_registry_growth_visible_immediately(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")
        registry.add("http://backend-4.test")
        picks = [_select_and_release(balancer).id for _ in range(4)]
        assert picks == [1, 2, 3, 4]


class TestExclusion:
    """Test exclude handling used by the executor."""

    def test_excluded_backend_avoided(self, registry):
        balancer = LoadBalancer(registry)
        for _ in range(10):
            backend = balancer.select_backend(exclude={1})
            balancer.release(backend.id)
            assert backend.id != 1

    def test_excluding_everything_falls_back_to_eligible(self, registry):
        balancer = LoadBalancer(registry)
        backend = balancer.select_backend(exclude={1, 2, 3})
        assert backend.id == 1

    def test_excluding_everything_without_degrade(self, registry):
        balancer = LoadBalancer(registry)
        assert balancer.select_backend(exclude={1, 2, 3}, allow_degraded=False) is None


class TestRoundRobin:
    """Test round robin fairness."""

    def test_each_backend_once_per_cycle(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")

        first = [balancer.select_backend().id for _ in range(3)]
        second = [balancer.select_backend().id for _ in range(3)]

        assert first == [1, 2, 3]
        assert second == [1, 2, 3]

    def test_reset_rewinds_cursor(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")
        balancer.select_backend()
        balancer.reset()
        assert balancer.select_backend().id == 1


class TestHealthBased:
    """Test the composite health score strategy."""

    def test_deterministic_without_state_change(self, registry):
        registry.record_probe_success(1, 900.0, 0.0)
        registry.record_probe_success(2, 150.0, 7200.0)
        registry.record_probe_success(3, 400.0, 100.0)
        balancer = LoadBalancer(registry)

        picks = {_select_and_release(balancer).id for _ in range(20)}

        assert picks == {2}

    def test_ties_broken_by_registry_order(self, registry):
        balancer = LoadBalancer(registry)
        assert balancer.select_backend().id == 1

    def test_connections_spread_load(self, registry):
        balancer = LoadBalancer(registry)
        picks = [balancer.select_backend().id for _ in range(3)]
        assert picks == [1, 2, 3]

    def test_score_formula(self, registry):
        strategy = HealthBasedStrategy()
        backend = registry.get(1)
        context = SelectionContext(
            health={
                1: HealthRecord(
                    last_response_time_ms=2000.0,
                    consecutive_failures=1,
                    reported_uptime_sec=7200.0,
                )
            },
            connections={1: 2},
        )

        score = strategy.score(backend, context)

        assert score.response_time_penalty == 20.0
        assert score.failure_penalty == 20.0
        assert score.connection_penalty == 10.0
        assert score.uptime_bonus == 2.0
        assert score.total_score == 52.0

    def test_penalty_and_bonus_caps(self, registry):
        strategy = HealthBasedStrategy()
        context = SelectionContext(
            health={
                1: HealthRecord(
                    last_response_time_ms=60000.0,
                    reported_uptime_sec=3600.0 * 500,
                )
            },
        )
        score = strategy.score(registry.get(1), context)
        assert score.response_time_penalty == 50.0
        assert score.uptime_bonus == 20.0
        assert score.total_score == 70.0

    def test_score_floor_is_zero(self, registry):
        strategy = HealthBasedStrategy()
        context = SelectionContext(
            health={1: HealthRecord(consecutive_failures=10)},
        )
        assert strategy.score(registry.get(1), context).total_score == 0.0


class TestLeastResponseTime:
    """Test least response time selection."""

    def test_picks_fastest(self, registry):
        registry.record_probe_success(1, 300.0)
        registry.record_probe_success(2, 100.0)
        registry.record_probe_success(3, 200.0)
        balancer = LoadBalancer(registry, strategy="least_response_time")

        assert balancer.select_backend().id == 2

    def test_prefers_measured_backends(self, registry):
        registry.record_probe_success(3, 5000.0)
        balancer = LoadBalancer(registry, strategy="least_response_time")

        assert balancer.select_backend().id == 3

    def test_no_measurements_returns_first(self, registry):
        balancer = LoadBalancer(registry, strategy="least_response_time")
        assert balancer.select_backend().id == 1


class TestLeastConnections:
    """Test least connections selection."""

    def test_picks_fewest_in_flight(self, registry):
        balancer = LoadBalancer(registry, strategy="least_connections")

        picks = [balancer.select_backend().id for _ in range(4)]

        assert picks == [1, 2, 3, 1]
        assert balancer.connection_count(1) == 2

    def test_release_frees_capacity(self, registry):
        balancer = LoadBalancer(registry, strategy="least_connections")
        balancer.select_backend()
        balancer.select_backend()
        balancer.release(1)

        assert balancer.select_backend().id == 1

    def test_release_floors_at_zero(self, registry):
        balancer = LoadBalancer(registry)
        balancer.release(1)
        balancer.release(1)
        assert balancer.connection_count(1) == 0


class TestWeightedRoundRobin:
    """Test weighted random selection."""

    def test_weight_derivation(self):
        assert WeightedRoundRobinStrategy.weight_for(None) == 1
        assert WeightedRoundRobinStrategy.weight_for(100.0) == 10
        assert WeightedRoundRobinStrategy.weight_for(400.0) == 3
        assert WeightedRoundRobinStrategy.weight_for(3000.0) == 1
        assert WeightedRoundRobinStrategy.weight_for(0.5) == 1000

    def test_low_draw_picks_heavy_backend(self, make_registry):
        registry = make_registry(2)
        registry.record_probe_success(1, 100.0)  # weight 10
        registry.record_probe_success(2, 1000.0)  # weight 1
        balancer = LoadBalancer(
            registry, strategy="weighted_round_robin", rng=FixedRandom(0.5)
        )
        assert balancer.select_backend().id == 1

    def test_high_draw_reaches_light_backend(self, make_registry):
        registry = make_registry(2)
        registry.record_probe_success(1, 100.0)
        registry.record_probe_success(2, 1000.0)
        balancer = LoadBalancer(
            registry, strategy="weighted_round_robin", rng=FixedRandom(0.99)
        )
        assert balancer.select_backend().id == 2


class TestBookkeeping:
    """Test statistics and runtime configuration."""

    def test_backend_switches_counted(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")
        for _ in range(3):
            _select_and_release(balancer)
        assert balancer.stats.backend_switches == 2

    def test_same_backend_is_not_a_switch(self, make_registry):
        balancer = LoadBalancer(make_registry(1))
        for _ in range(5):
            _select_and_release(balancer)
        assert balancer.stats.backend_switches == 0

    def test_set_strategy(self, registry):
        balancer = LoadBalancer(registry)
        assert balancer.set_strategy("ROUND_ROBIN") is True
        assert balancer.strategy == LoadBalancingStrategy.ROUND_ROBIN

    def test_invalid_strategy_rejected(self, registry):
        balancer = LoadBalancer(registry)
        assert balancer.set_strategy("fastest") is False
        assert balancer.set_strategy(None) is False
        assert balancer.strategy == LoadBalancingStrategy.HEALTH_BASED

    def test_invalid_initial_strategy(self, registry):
        with pytest.raises(ValueError):
            LoadBalancer(registry, strategy="random")

    def test_parse_strategy(self):
        assert parse_strategy(" least_connections ") == LoadBalancingStrategy.LEAST_CONNECTIONS
        assert parse_strategy("nope") is None

    def test_reset_clears_stats(self, registry):
        balancer = LoadBalancer(registry, strategy="round_robin")
        _select_and_release(balancer)
        _select_and_release(balancer)
        balancer.stats.total_requests = 5
        balancer.reset()

        assert balancer.stats.as_dict() == {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "backend_switches": 0,
        }

    def test_get_stats_shape(self, registry):
        registry.record_probe_failure(3, "down")
        balancer = LoadBalancer(registry)
        stats = balancer.get_stats()

        assert stats["strategy"] == "health_based"
        assert stats["total_backends"] == 3
        assert stats["healthy_backends"] == 2
        assert [b["eligible"] for b in stats["backends"]] == [True, True, False]

    def test_get_scores_ranked(self, registry):
        registry.record_probe_success(1, 3000.0)
        balancer = LoadBalancer(registry)
        scores = balancer.get_scores()
        assert [s["backend_id"] for s in scores] == [2, 3, 1]
