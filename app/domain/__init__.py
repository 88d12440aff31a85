"""
app/domain package marker.
"""

from app.domain.business_import import (
    CatalogInfo,
    CatalogPayload,
    ImportPayload,
    LocationInfo,
    LocationsPayload,
    MerchantInfo,
    MerchantPayload,
    ProviderCredential,
    payload_from_dict,
)

__all__ = [
    "CatalogInfo",
    "CatalogPayload",
    "ImportPayload",
    "LocationInfo",
    "LocationsPayload",
    "MerchantInfo",
    "MerchantPayload",
    "ProviderCredential",
    "payload_from_dict",
]
