"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_SQUARE_PRODUCTION = "production"
_SQUARE_BASE_URLS = {
    _SQUARE_PRODUCTION: "https://connect.squareup.com",
    "sandbox": "https://connect.squareupsandbox.com",
}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for provider and credential-store calls.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class SquareSettings:
    """
    Square point-of-sale API settings.
    """

    environment: str = "sandbox"
    base_url: str = _SQUARE_BASE_URLS["sandbox"]
    api_version: str = "2024-10-17"
    catalog_page_limit: int = 20

    @property
    def is_production(self) -> bool:
        return self.environment == _SQUARE_PRODUCTION

    @property
    def provider_config_key(self) -> str:
        """
        Credential-store integration key for the active Square environment.
        """

        return "squareup" if self.is_production else "squareup-sandbox"


@dataclass(frozen=True)
class NangoSettings:
    """
    Nango credential store settings used to resolve provider access tokens.
    """

    secret_key: str | None = None
    base_url: str = "https://api.nango.dev"


@dataclass(frozen=True)
class ImportProcessorSettings:
    """
    Import task state machine and scheduling settings.
    """

    max_retries: int = 3
    retry_backoff_initial_seconds: float = 30.0
    retry_backoff_multiplier: float = 2.0
    retry_backoff_max_seconds: float = 900.0
    stale_processing_minutes: int = 15
    owner_concurrency: int = 1
    scheduler_enabled: bool = True
    poll_interval_seconds: int = 60
    stale_sweep_interval_seconds: int = 300


@dataclass(frozen=True)
class StatusNotifierSettings:
    """
    Outbound task status event delivery settings.
    """

    webhook_url: str | None = None
    webhook_secret: str | None = None
    timeout_seconds: float = 5.0
    log_events: bool = True


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_square_settings() -> SquareSettings:
    """
    Return Square API settings; SQUARE_ENVIRONMENT selects sandbox or production.
    """

    environment = _get_str_env("SQUARE_ENVIRONMENT", "sandbox").lower()
    if environment not in _SQUARE_BASE_URLS:
        raise RuntimeError(
            f"SQUARE_ENVIRONMENT '{environment}' is not valid. "
            f"Allowed values: {sorted(_SQUARE_BASE_URLS)}."
        )

    return SquareSettings(
        environment=environment,
        base_url=_get_str_env("SQUARE_BASE_URL", _SQUARE_BASE_URLS[environment]).rstrip("/"),
        api_version=_get_str_env("SQUARE_API_VERSION", "2024-10-17"),
        catalog_page_limit=max(1, _get_int_env("SQUARE_CATALOG_PAGE_LIMIT", 20)),
    )


@lru_cache(maxsize=1)
def get_nango_settings() -> NangoSettings:
    """
    Return Nango credential store settings from environment variables.
    """

    return NangoSettings(
        secret_key=_get_optional_str_env("NANGO_SECRET_KEY"),
        base_url=_get_str_env("NANGO_BASE_URL", "https://api.nango.dev").rstrip("/"),
    )


@lru_cache(maxsize=1)
def get_import_processor_settings() -> ImportProcessorSettings:
    """
    Return import processor settings from environment variables.
    """

    return ImportProcessorSettings(
        max_retries=max(1, _get_int_env("IMPORT_MAX_RETRIES", 3)),
        retry_backoff_initial_seconds=max(0.0, _get_float_env("IMPORT_RETRY_BACKOFF_INITIAL_SECONDS", 30.0)),
        retry_backoff_multiplier=max(1.0, _get_float_env("IMPORT_RETRY_BACKOFF_MULTIPLIER", 2.0)),
        retry_backoff_max_seconds=max(0.0, _get_float_env("IMPORT_RETRY_BACKOFF_MAX_SECONDS", 900.0)),
        stale_processing_minutes=max(1, _get_int_env("IMPORT_STALE_PROCESSING_MINUTES", 15)),
        owner_concurrency=max(1, _get_int_env("IMPORT_OWNER_CONCURRENCY", 1)),
        scheduler_enabled=_get_bool_env("IMPORT_SCHEDULER_ENABLED", True),
        poll_interval_seconds=max(5, _get_int_env("IMPORT_POLL_INTERVAL_SECONDS", 60)),
        stale_sweep_interval_seconds=max(30, _get_int_env("IMPORT_STALE_SWEEP_INTERVAL_SECONDS", 300)),
    )


@lru_cache(maxsize=1)
def get_status_notifier_settings() -> StatusNotifierSettings:
    """
    Return status notifier settings from environment variables.
    """

    return StatusNotifierSettings(
        webhook_url=_get_optional_str_env("IMPORT_STATUS_WEBHOOK_URL"),
        webhook_secret=_get_optional_str_env("IMPORT_STATUS_WEBHOOK_SECRET"),
        timeout_seconds=max(0.5, _get_float_env("IMPORT_STATUS_WEBHOOK_TIMEOUT_SECONDS", 5.0)),
        log_events=_get_bool_env("IMPORT_STATUS_LOG_EVENTS", True),
    )
