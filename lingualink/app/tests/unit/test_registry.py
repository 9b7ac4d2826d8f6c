############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# test_registry.py: Unit tests for the backend registry
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Unit tests for backend loading, administration and health bookkeeping."""

import pytest

from lingualink.app.core.balancer.registry import (
    BackendRegistry,
    discover_backends_from_env,
    normalize_url,
)
from lingualink.app.core.exceptions import ConfigurationError
from lingualink.app.settings import Settings


class TestNormalizeUrl:
    """Test URL normalization."""

    def test_strips_trailing_slash(self):
        assert normalize_url("http://a.test/") == "http://a.test"

    def test_strips_trailing_api(self):
        assert normalize_url("https://a.test/api") == "https://a.test"
        assert normalize_url("https://a.test/api/") == "https://a.test"

    def test_keeps_inner_api_segment(self):
        assert normalize_url("https://a.test/api/v2") == "https://a.test/api/v2"

    def test_empty(self):
        assert normalize_url("") == ""


class TestLoadFromConfig:
    """Test loadFromConfig behaviour."""

    def test_loads_structured_list(self, test_settings):
        registry = BackendRegistry()
        loaded = registry.load_from_config(test_settings, environ={})

        assert [b.id for b in loaded] == [1, 2, 3]
        assert loaded[0].base_url == "http://backend-1.test"
        assert loaded[0].identity_label == "b1"
        assert len(registry) == 3
        assert registry.health(1).is_healthy is True
        assert registry.health(1).consecutive_failures == 0

    def test_default_identity_label(self):
        settings = Settings(_env_file=None, backends=[{"base_url": "http://x.test/api"}])
        registry = BackendRegistry()
        loaded = registry.load_from_config(settings, environ={})

        assert loaded[0].identity_label == "backend-1"
        assert loaded[0].base_url == "http://x.test"

    def test_zero_backends_is_fatal(self):
        settings = Settings(_env_file=None)
        with pytest.raises(ConfigurationError):
            BackendRegistry().load_from_config(settings, environ={})

    def test_rejects_non_http_url(self):
        settings = Settings(_env_file=None, backends=[{"base_url": "ftp://x.test"}])
        with pytest.raises(ConfigurationError):
            BackendRegistry().load_from_config(settings, environ={})

    def test_falls_back_to_numbered_env(self):
        environ = {
            "BACKEND_URL_1": "http://one.test",
            "BACKEND_IDENTITY_1": "one",
            "BACKEND_URL_2": "http://two.test/",
        }
        registry = BackendRegistry()
        loaded = registry.load_from_config(Settings(_env_file=None), environ=environ)

        assert [b.base_url for b in loaded] == ["http://one.test", "http://two.test"]
        assert loaded[0].identity_label == "one"
        assert loaded[1].identity_label == "backend-2"

    def test_reload_replaces_contents(self, test_settings):
        registry = BackendRegistry()
        registry.load_from_config(test_settings, environ={})
        registry.add("http://extra.test")
        registry.load_from_config(test_settings, environ={})

        assert len(registry) == 3


class TestDiscoverFromEnv:
    """Test legacy numbered discovery."""

    def test_stops_at_first_gap(self):
        environ = {
            "BACKEND_URL_1": "http://one.test",
            "BACKEND_URL_3": "http://three.test",
        }
        found = discover_backends_from_env(environ)
        assert [c.base_url for c in found] == ["http://one.test"]

    def test_respects_limit(self):
        environ = {f"BACKEND_URL_{i}": f"http://b{i}.test" for i in range(1, 10)}
        assert len(discover_backends_from_env(environ, limit=4)) == 4


class TestAdministration:
    """Test add/remove."""

    def test_add_assigns_next_unused_id(self, registry):
        backend = registry.add("http://new.test/", "new")
        assert backend.id == 4
        assert backend.base_url == "http://new.test"
        assert registry.health(4) is not None

    def test_add_after_remove_uses_max_plus_one(self, registry):
        registry.remove(2)
        assert registry.add("http://new.test").id == 4

    def test_add_to_empty_registry(self):
        registry = BackendRegistry()
        backend = registry.add("http://first.test")
        assert backend.id == 1
        assert backend.identity_label == "backend-1"

    def test_remove_returns_backend(self, registry):
        removed = registry.remove(2)
        assert removed.id == 2
        assert registry.get(2) is None
        assert registry.health(2) is None
        assert [b.id for b in registry.backends] == [1, 3]

    def test_remove_unknown_is_noop(self, registry):
        assert registry.remove(99) is None
        assert len(registry) == 3

    def test_backends_returns_copy(self, registry):
        registry.backends.clear()
        assert len(registry.backends) == 3


class TestHealthUpdates:
    """Test HealthRecord mutation rules."""

    def test_probe_failure_increments(self, registry):
        registry.record_probe_failure(1, "boom")
        record = registry.health(1)
        assert record.is_healthy is False
        assert record.consecutive_failures == 1
        assert record.last_error == "boom"
        assert record.last_checked_at is not None

    def test_probe_success_resets(self, registry):
        registry.record_probe_failure(1, "boom")
        registry.record_probe_failure(1, "boom")
        registry.record_probe_success(1, 42.0, 3600.0)

        record = registry.health(1)
        assert record.is_healthy is True
        assert record.consecutive_failures == 0
        assert record.last_error is None
        assert record.last_response_time_ms == 42.0
        assert record.reported_uptime_sec == 3600.0

    def test_request_success_resets_failures(self, registry):
        registry.record_request_failure(1, "timeout", mark_unhealthy=True)
        registry.record_request_success(1)
        assert registry.health(1).consecutive_failures == 0
        assert registry.is_eligible(1, 3)

    def test_soft_request_failure_keeps_eligibility(self, registry):
        registry.record_request_failure(1, "HTTP 500", mark_unhealthy=False)
        record = registry.health(1)
        assert record.last_error == "HTTP 500"
        assert record.consecutive_failures == 0
        assert registry.is_eligible(1, 3)

    def test_eligibility_threshold(self, registry):
        for _ in range(3):
            registry.record_request_failure(2, "timeout", mark_unhealthy=True)
        assert not registry.is_eligible(2, 3)
        assert [b.id for b in registry.eligible_backends(3)] == [1, 3]

    def test_updates_for_unknown_id_are_ignored(self, registry):
        registry.record_probe_success(99, 1.0)
        registry.record_probe_failure(99, "x")
        registry.record_request_failure(99, "x", True)
        assert registry.health(99) is None
