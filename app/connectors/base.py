"""
app/connectors/base.py

Provider adapter contracts and shared HTTP mechanics.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import requests

from app.config import ExternalHTTPSettings
from app.domain.business_import import CatalogInfo, LocationInfo, MerchantInfo, ProviderCredential

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class ProviderError(RuntimeError):
    """
    Raised for transport, auth, or rate-limit failures talking to an external system.

    The import orchestrator treats it as a retryable task failure.
    """

    def __init__(self, message: str, *, source: str, status_code: int | None = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class ProviderDataMissingError(ProviderError):
    """
    Raised when the provider returned no data for a kind the import requires.
    """


class BusinessDataProvider(Protocol):
    """
    Read-only accessors for one provider's business data.

    Each call returns None when the provider has nothing of that kind and
    raises ProviderError only for transport/auth failures.
    """

    source: str

    def fetch_merchant(self, credential: ProviderCredential) -> MerchantInfo | None:
        ...

    def fetch_locations(self, credential: ProviderCredential) -> list[LocationInfo] | None:
        ...

    def fetch_catalog(self, credential: ProviderCredential) -> CatalogInfo | None:
        ...


class CredentialResolver(Protocol):
    def resolve(self, connection_id: str) -> ProviderCredential:
        ...


class BaseConnector:
    """
    HTTP mechanics shared by provider and credential-store clients: timeouts,
    rate limiting, and exponential backoff on transient failures.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON with retry support.
        """

        response = self._request(method=method, url=url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.source}: response was not valid JSON.",
                source=self.source,
                status_code=response.status_code,
            ) from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Execute an HTTP request with rate limiting and exponential backoff.

        401/403 and other non-retryable statuses fail immediately.
        """

        last_error: Exception | None = None
        last_status: int | None = None
        for attempt in range(self._max_retries + 1):
            self._apply_rate_limit()
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                last_status = exc.response.status_code if exc.response is not None else None
                if last_status not in RETRYABLE_STATUS_CODES:
                    logger.error(
                        "Provider request failed source=%s status=%s url=%s error=%s",
                        self.source,
                        last_status,
                        url,
                        exc,
                    )
                    raise ProviderError(
                        f"{self.source}: request rejected with status {last_status}.",
                        source=self.source,
                        status_code=last_status,
                    ) from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc
                last_status = None

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Provider request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                self.source,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            time.sleep(backoff_seconds)

        logger.error(
            "Provider request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        raise ProviderError(
            f"{self.source}: request failed after retries.",
            source=self.source,
            status_code=last_status,
        ) from last_error

    def _apply_rate_limit(self) -> None:
        """
        Enforce minimum interval between outbound requests.
        """

        if self._min_request_interval_seconds <= 0:
            return

        now = time.monotonic()
        elapsed = now - self._last_request_monotonic
        remaining = self._min_request_interval_seconds - elapsed
        if remaining > 0:
            time.sleep(remaining)
        self._last_request_monotonic = time.monotonic()
