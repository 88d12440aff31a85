from __future__ import annotations

import pytest

from app.domain.business_import import (
    HOURS_NOT_SPECIFIED,
    BusinessHoursPeriod,
    CatalogInfo,
    CatalogItem,
    CatalogPayload,
    LocationInfo,
    LocationsPayload,
    MerchantInfo,
    MerchantPayload,
    PostalAddress,
    extract_service_names,
    format_business_hours,
    payload_from_dict,
)


class TestFormatBusinessHours:
    def test_no_periods(self) -> None:
        assert format_business_hours([]) == HOURS_NOT_SPECIFIED
        assert format_business_hours(None) == HOURS_NOT_SPECIFIED

    def test_orders_days_from_monday(self) -> None:
        periods = [
            BusinessHoursPeriod(day_of_week="SUN", start_local_time="11:00", end_local_time="15:00"),
            BusinessHoursPeriod(day_of_week="WED", start_local_time="09:00", end_local_time="18:00"),
        ]

        assert format_business_hours(periods) == "Wednesday: 09:00 - 18:00\nSunday: 11:00 - 15:00"

    def test_skips_days_without_both_times(self) -> None:
        periods = [
            BusinessHoursPeriod(day_of_week="MON", start_local_time="09:00"),
            BusinessHoursPeriod(day_of_week="TUE", start_local_time="09:00", end_local_time="12:00"),
        ]

        assert format_business_hours(periods) == "Tuesday: 09:00 - 12:00"


def test_extract_service_names_lists_services_then_flagged_items() -> None:
    catalog = CatalogInfo(
        services=[CatalogItem(id="S1", name="Haircut", is_service=True), CatalogItem(id="S2", name=None)],
        items=[
            CatalogItem(id="I1", name="Consultation", is_service=True),
            CatalogItem(id="I2", name="Shampoo"),
        ],
    )

    assert extract_service_names(catalog) == ["Haircut", "Consultation"]
    assert extract_service_names(None) == []


def test_locations_payload_uses_primary_location() -> None:
    payload = LocationsPayload.from_locations(
        [
            LocationInfo(
                id="L1",
                name="Main",
                address=PostalAddress(address_line_1="1 Main St", locality="Austin", postal_code="73301"),
            ),
            LocationInfo(id="L2", name="Annex"),
        ]
    )

    assert payload.location_id == "L1"
    assert payload.city == "Austin"
    assert payload.full_address == "1 Main St, Austin, 73301"
    assert payload.formatted_hours == HOURS_NOT_SPECIFIED
    assert payload.location_count == 2


def test_catalog_payload_from_missing_catalog_is_empty() -> None:
    payload = CatalogPayload.from_catalog(None)

    assert payload.has_catalog is False
    assert payload.catalog_found is False
    assert payload.to_dict()["catalog_items_count"] == 0
    assert payload_from_dict(payload.to_dict()).catalog_found is False


def test_payload_from_dict_dispatches_on_task_type() -> None:
    merchant = MerchantPayload.from_merchant(MerchantInfo(id="M1", business_name="Cafe Uno"))
    catalog = CatalogPayload.from_catalog(
        CatalogInfo(services=[CatalogItem(id="S1", name="Tasting", is_service=True)])
    )

    restored_merchant = payload_from_dict(merchant.to_dict())
    restored_catalog = payload_from_dict(catalog.to_dict())

    assert restored_merchant == merchant
    assert isinstance(restored_catalog, CatalogPayload)
    assert restored_catalog.service_names == ["Tasting"]
    assert restored_catalog.catalog.services[0].is_service is True


def test_payload_from_dict_rejects_unknown_type() -> None:
    with pytest.raises(ValueError):
        payload_from_dict({"task_type": "inventory"})
