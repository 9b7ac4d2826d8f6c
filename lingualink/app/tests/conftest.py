############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# conftest.py: Pytest configuration and shared test fixtures
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Pytest configuration and shared fixtures for LinguaLink tests."""

from typing import Any, Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from lingualink.app.core.balancer.models import Backend
from lingualink.app.core.balancer.registry import BackendRegistry
from lingualink.app.settings import Settings

# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]


def build_registry(count: int) -> BackendRegistry:
    """Registry with backends 1..count at http://backend-<id>.test."""
    return BackendRegistry(
        Backend(id=i, base_url=f"http://backend-{i}.test", identity_label=f"b{i}")
        for i in range(1, count + 1)
    )


def build_response(
    status_code: int = 200,
    json_data: Any = None,
    json_error: Optional[Exception] = None,
    content: bytes = b"",
) -> MagicMock:
    """Stand-in for an httpx.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.reason_phrase = "OK" if status_code < 400 else "Error"
    response.content = content
    response.headers = {"content-type": "application/json"}
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def make_registry() -> Callable[[int], BackendRegistry]:
    return build_registry


@pytest.fixture
def registry() -> BackendRegistry:
    """Three healthy backends."""
    return build_registry(3)


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    return build_response


@pytest.fixture
def mock_http_client() -> AsyncMock:
    """Open AsyncMock HTTP client; tests set get/post/request behaviour."""
    client = AsyncMock()
    client.is_closed = False
    return client


@pytest.fixture
def backend_urls() -> List[str]:
    return ["http://backend-1.test", "http://backend-2.test", "http://backend-3.test"]


@pytest.fixture
def test_settings(backend_urls) -> Settings:
    """Settings isolated from .env files, with three backends and two accounts."""
    return Settings(
        _env_file=None,
        backends=[
            {"base_url": url, "identity_label": f"b{i}"}
            for i, url in enumerate(backend_urls, start=1)
        ],
        translation_credentials=[
            {"account_id": "acct-a", "api_key": "key-a", "label": "a"},
            {"account_id": "acct-b", "api_key": "key-b", "label": "b"},
        ],
        translation_retry_delay=0.0,
        request_backoff_base_ms=0,
        request_backoff_max_ms=0,
        log_format="console",
        keepalive_enabled=False,
    )
