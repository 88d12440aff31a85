"""
app/connectors/square_connector.py

Square point-of-sale connector for merchant, location, and catalog import.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from app.config import ExternalHTTPSettings, SquareSettings
from app.connectors.base import BaseConnector
from app.domain.business_import import (
    BusinessHoursPeriod,
    CatalogCategory,
    CatalogInfo,
    CatalogItem,
    CatalogVariation,
    Coordinates,
    LocationInfo,
    MerchantInfo,
    PostalAddress,
    ProviderCredential,
)

logger = logging.getLogger(__name__)

_CATALOG_TYPES = "ITEM,ITEM_VARIATION,CATEGORY"
_APPOINTMENTS_PRODUCT_TYPE = "APPOINTMENTS_SERVICE"


class SquareConnector(BaseConnector):
    """
    Read-only Square API client returning provider-shaped business data.
    """

    def __init__(
        self,
        *,
        settings: SquareSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="square", http_settings=http_settings, session=session)
        self._settings = settings

    def fetch_merchant(self, credential: ProviderCredential) -> MerchantInfo | None:
        payload = self._get(credential, "/v2/merchants")
        merchants = (payload.get("merchant") or []) if isinstance(payload, dict) else []
        if not merchants or not isinstance(merchants[0], dict):
            logger.info("Square returned no merchant connection_id=%s", credential.connection_id)
            return None

        merchant = merchants[0]
        return MerchantInfo(
            id=str(merchant.get("id") or ""),
            business_name=merchant.get("business_name") or None,
            country=merchant.get("country") or None,
            language_code=merchant.get("language_code") or None,
            currency=merchant.get("currency") or None,
        )

    def fetch_locations(self, credential: ProviderCredential) -> list[LocationInfo] | None:
        payload = self._get(credential, "/v2/locations")
        raw_locations = (payload.get("locations") or []) if isinstance(payload, dict) else []

        locations: list[LocationInfo] = []
        for index, raw in enumerate(raw_locations):
            try:
                locations.append(self._normalize_location(raw))
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Failed to normalize Square location index=%s error=%s", index, exc)

        if not locations:
            logger.info("Square returned no locations connection_id=%s", credential.connection_id)
            return None
        return locations

    def fetch_catalog(self, credential: ProviderCredential) -> CatalogInfo | None:
        objects = self._list_catalog_objects(credential)
        if not objects:
            logger.info("Square returned no catalog objects connection_id=%s", credential.connection_id)
            return None

        categories: list[CatalogCategory] = []
        category_map: dict[str, CatalogCategory] = {}
        variation_map: dict[str, CatalogVariation] = {}

        # Categories and variations first so items can be linked in one pass.
        for obj in objects:
            object_id = obj.get("id")
            if not object_id:
                continue
            if obj.get("type") == "CATEGORY":
                category = CatalogCategory(
                    id=object_id,
                    name=(obj.get("category_data") or {}).get("name"),
                )
                categories.append(category)
                category_map[object_id] = category
            elif obj.get("type") == "ITEM_VARIATION":
                variation_map[object_id] = self._normalize_variation(obj)

        services: list[CatalogItem] = []
        items: list[CatalogItem] = []
        for obj in objects:
            if obj.get("type") != "ITEM" or not obj.get("id"):
                continue
            item_data = obj.get("item_data")
            if not isinstance(item_data, dict):
                continue

            item = self._normalize_item(obj["id"], item_data, category_map, variation_map)
            if item.is_service:
                services.append(item)
            else:
                items.append(item)

        return CatalogInfo(categories=categories, services=services, items=items)

    def _list_catalog_objects(self, credential: ProviderCredential) -> list[dict[str, Any]]:
        objects: list[dict[str, Any]] = []
        cursor: str | None = None
        for _ in range(self._settings.catalog_page_limit):
            params: dict[str, Any] = {"types": _CATALOG_TYPES}
            if cursor:
                params["cursor"] = cursor
            payload = self._get(credential, "/v2/catalog/list", params=params)
            if not isinstance(payload, dict):
                break

            objects.extend(obj for obj in payload.get("objects") or [] if isinstance(obj, dict))
            cursor = payload.get("cursor")
            if not cursor:
                break
        else:
            logger.warning(
                "Square catalog pagination stopped at page limit connection_id=%s pages=%s",
                credential.connection_id,
                self._settings.catalog_page_limit,
            )
        return objects

    def _normalize_location(self, raw: dict[str, Any]) -> LocationInfo:
        address = raw.get("address")
        hours = (raw.get("business_hours") or {}).get("periods") or []
        coordinates = raw.get("coordinates")
        return LocationInfo(
            id=str(raw["id"]),
            name=raw.get("name") or None,
            address=(
                PostalAddress(
                    address_line_1=address.get("address_line_1") or None,
                    address_line_2=address.get("address_line_2") or None,
                    locality=address.get("locality") or None,
                    administrative_district_level_1=address.get("administrative_district_level_1") or None,
                    postal_code=address.get("postal_code") or None,
                    country=address.get("country") or None,
                )
                if isinstance(address, dict)
                else None
            ),
            phone_number=raw.get("phone_number") or None,
            business_hours=[
                BusinessHoursPeriod(
                    day_of_week=period.get("day_of_week") or "",
                    start_local_time=_trim_seconds(period.get("start_local_time")),
                    end_local_time=_trim_seconds(period.get("end_local_time")),
                )
                for period in hours
                if isinstance(period, dict)
            ],
            timezone=raw.get("timezone") or None,
            coordinates=(
                Coordinates(
                    latitude=coordinates.get("latitude"),
                    longitude=coordinates.get("longitude"),
                )
                if isinstance(coordinates, dict)
                else None
            ),
        )

    def _normalize_variation(self, obj: dict[str, Any]) -> CatalogVariation:
        data = obj.get("item_variation_data") or {}
        price = data.get("price_money") or {}
        duration = data.get("service_duration")
        amount = price.get("amount")
        return CatalogVariation(
            id=obj["id"],
            name=data.get("name") or None,
            available_for_booking=data.get("available_for_booking"),
            service_duration_ms=int(duration) if duration is not None else None,
            pricing_type=data.get("pricing_type") or None,
            price_amount=int(amount) if amount is not None else None,
            price_currency=price.get("currency") or None,
        )

    def _normalize_item(
        self,
        item_id: str,
        item_data: dict[str, Any],
        category_map: dict[str, CatalogCategory],
        variation_map: dict[str, CatalogVariation],
    ) -> CatalogItem:
        category_ids: list[str] = [
            ref["id"] for ref in item_data.get("categories") or [] if isinstance(ref, dict) and ref.get("id")
        ]
        legacy_category_id = item_data.get("category_id")
        if legacy_category_id and legacy_category_id not in category_ids:
            category_ids.append(legacy_category_id)
        categories = [category_map[cid] for cid in category_ids if cid in category_map]

        variations: list[CatalogVariation] = []
        for embedded in item_data.get("variations") or []:
            if not isinstance(embedded, dict) or not embedded.get("id"):
                continue
            variation = variation_map.get(embedded["id"])
            if variation is None and embedded.get("item_variation_data"):
                variation = self._normalize_variation(embedded)
            if variation is not None:
                variations.append(variation)

        is_service = item_data.get("product_type") == _APPOINTMENTS_PRODUCT_TYPE or any(
            variation.service_duration_ms is not None for variation in variations
        )
        return CatalogItem(
            id=item_id,
            name=item_data.get("name") or None,
            description=item_data.get("description_plaintext") or item_data.get("description") or None,
            categories=categories,
            variations=variations,
            is_service=is_service,
        )

    def _get(
        self,
        credential: ProviderCredential,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return self._request_json(
            method="GET",
            url=f"{self._settings.base_url}{path}",
            params=params,
            headers={
                "Authorization": f"Bearer {credential.access_token}",
                "Square-Version": self._settings.api_version,
                "Accept": "application/json",
            },
        )


def _trim_seconds(value: Any) -> str | None:
    """
    Square reports local times as HH:MM:SS; display uses HH:MM.
    """

    if not value:
        return None
    text = str(value)
    return text[:5] if len(text) >= 8 and text[2] == ":" and text[5] == ":" else text
