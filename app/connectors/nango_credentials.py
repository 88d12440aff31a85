"""
app/connectors/nango_credentials.py

Resolves provider access tokens from the Nango connection store.
"""

from __future__ import annotations

import logging

import requests

from app.config import ExternalHTTPSettings, NangoSettings
from app.connectors.base import BaseConnector, ProviderError
from app.domain.business_import import ProviderCredential

logger = logging.getLogger(__name__)


class NangoCredentialResolver(BaseConnector):
    """
    Looks up the OAuth access token stored for a provider connection.
    """

    def __init__(
        self,
        *,
        settings: NangoSettings,
        provider_config_key: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="nango", http_settings=http_settings, session=session)
        self._settings = settings
        self._provider_config_key = provider_config_key

    def resolve(self, connection_id: str) -> ProviderCredential:
        if not self._settings.secret_key:
            raise ProviderError(
                "NANGO_SECRET_KEY is missing; cannot resolve provider credentials.",
                source=self.source,
            )

        payload = self._request_json(
            method="GET",
            url=f"{self._settings.base_url}/connection/{connection_id}",
            params={"provider_config_key": self._provider_config_key},
            headers={"Authorization": f"Bearer {self._settings.secret_key}"},
        )
        credentials = payload.get("credentials") if isinstance(payload, dict) else None
        access_token = credentials.get("access_token") if isinstance(credentials, dict) else None
        if not access_token:
            logger.error(
                "Credential store returned no access token connection_id=%s provider_config_key=%s",
                connection_id,
                self._provider_config_key,
            )
            raise ProviderError(
                f"No access token found for provider connection {connection_id}.",
                source=self.source,
            )

        return ProviderCredential(connection_id=connection_id, access_token=str(access_token))
