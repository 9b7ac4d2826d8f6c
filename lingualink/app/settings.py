############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# settings.py: Application configuration and environment settings
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Application settings using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_version() -> str:
    """Read version from pyproject.toml (single source of truth)."""
    try:
        from importlib.metadata import version
        return version("lingualink")
    except Exception:
        pass
    # Fallback: read pyproject.toml directly (works in dev without pip install)
    try:
        import tomllib
        toml_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    except Exception:
        return "0.0.0"


STRATEGY_NAMES = (
    "round_robin",
    "least_response_time",
    "least_connections",
    "weighted_round_robin",
    "health_based",
)


class BackendConfig(BaseModel):
    """One configured backend deployment."""

    base_url: str = Field(..., min_length=1)
    identity_label: Optional[str] = None


class CredentialConfig(BaseModel):
    """One translation provider account."""

    account_id: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)
    label: Optional[str] = None


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "LinguaLink"
    app_version: str = Field(default_factory=_get_version)
    debug: bool = False
    reload: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Backend Registry
    # JSON array of {"base_url": ..., "identity_label": ...}. When empty the
    # registry falls back to BACKEND_URL_1, BACKEND_URL_2, ... discovery.
    backends: List[BackendConfig] = Field(default_factory=list)
    backend_discovery_limit: int = 50

    # Health Prober
    health_check_interval: int = 300  # seconds
    health_check_timeout: float = 5.0
    health_primary_path: str = "/health-check-primary"
    health_fallback_path: str = "/ping-fallback"
    max_consecutive_failures: int = 3

    # Load Balancer
    load_balancing_strategy: str = "health_based"

    # Smart Keep-Alive
    keepalive_enabled: bool = True
    keepalive_interval: int = 480  # seconds
    keepalive_max_active: int = 2
    keepalive_rotation_every: int = 3  # ticks

    # Request Executor
    request_timeout: float = 8.0
    request_max_retries: int = 3
    request_backoff_base_ms: int = 1000
    request_backoff_max_ms: int = 5000

    # Translation Provider
    # JSON array of {"account_id": ..., "api_key": ..., "label": ...}. When
    # empty, CLOUDFLARE_ACCOUNT_ID / CLOUDFLARE_API_TOKEN (and _1, _2, ...)
    # are used instead.
    translation_credentials: List[CredentialConfig] = Field(default_factory=list)
    translation_enabled: bool = True
    translation_api_base: str = "https://api.cloudflare.com/client/v4"
    translation_model: str = "@cf/meta/m2m100-1.2b"
    translation_timeout: float = 15.0
    translation_max_retries: int = 3
    translation_retry_delay: float = 1.0
    translation_max_text_length: int = 8000
    translation_history_size: int = 200

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    # Observability
    metrics_enabled: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:8000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            import json
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("load_balancing_strategy")
    @classmethod
    def normalize_strategy(cls, v: str) -> str:
        """Strategy names are matched case-insensitively."""
        name = v.strip().lower()
        if name not in STRATEGY_NAMES:
            raise ValueError(
                f"load_balancing_strategy must be one of: {', '.join(STRATEGY_NAMES)}"
            )
        return name


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
