"""
app/connectors package marker.
"""

from app.connectors.base import (
    BaseConnector,
    BusinessDataProvider,
    CredentialResolver,
    ProviderDataMissingError,
    ProviderError,
)
from app.connectors.nango_credentials import NangoCredentialResolver
from app.connectors.square_connector import SquareConnector

__all__ = [
    "BaseConnector",
    "BusinessDataProvider",
    "CredentialResolver",
    "NangoCredentialResolver",
    "ProviderDataMissingError",
    "ProviderError",
    "SquareConnector",
]
