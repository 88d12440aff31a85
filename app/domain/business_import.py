"""
app/domain/business_import.py

Provider-shaped business data and the typed payloads stored on completed
import tasks.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Union

from db.models.import_task import ImportTaskType

_DAY_ORDER: tuple[tuple[str, str], ...] = (
    ("MON", "Monday"),
    ("TUE", "Tuesday"),
    ("WED", "Wednesday"),
    ("THU", "Thursday"),
    ("FRI", "Friday"),
    ("SAT", "Saturday"),
    ("SUN", "Sunday"),
)

HOURS_NOT_SPECIFIED = "Hours not specified"


@dataclass(frozen=True)
class ProviderCredential:
    """
    Resolved access credential for one provider connection.
    """

    connection_id: str
    access_token: str

    def __repr__(self) -> str:
        return f"ProviderCredential(connection_id={self.connection_id!r}, access_token='***')"


# ---------------------------------------------------------------------------
# Provider DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MerchantInfo:
    id: str
    business_name: str | None = None
    country: str | None = None
    language_code: str | None = None
    currency: str | None = None


@dataclass(frozen=True)
class PostalAddress:
    address_line_1: str | None = None
    address_line_2: str | None = None
    locality: str | None = None
    administrative_district_level_1: str | None = None
    postal_code: str | None = None
    country: str | None = None

    def formatted(self) -> str:
        """
        Single-line address from the populated parts, comma separated.
        """

        parts = (
            self.address_line_1,
            self.address_line_2,
            self.locality,
            self.administrative_district_level_1,
            self.postal_code,
        )
        return ", ".join(part for part in parts if part)


@dataclass(frozen=True)
class BusinessHoursPeriod:
    day_of_week: str
    start_local_time: str | None = None
    end_local_time: str | None = None


@dataclass(frozen=True)
class Coordinates:
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class LocationInfo:
    id: str
    name: str | None = None
    address: PostalAddress | None = None
    phone_number: str | None = None
    business_hours: list[BusinessHoursPeriod] = field(default_factory=list)
    timezone: str | None = None
    coordinates: Coordinates | None = None


@dataclass(frozen=True)
class CatalogCategory:
    id: str
    name: str | None = None


@dataclass(frozen=True)
class CatalogVariation:
    id: str
    name: str | None = None
    available_for_booking: bool | None = None
    service_duration_ms: int | None = None
    pricing_type: str | None = None
    price_amount: int | None = None
    price_currency: str | None = None


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str | None = None
    description: str | None = None
    categories: list[CatalogCategory] = field(default_factory=list)
    variations: list[CatalogVariation] = field(default_factory=list)
    is_service: bool = False


@dataclass(frozen=True)
class CatalogInfo:
    categories: list[CatalogCategory] = field(default_factory=list)
    services: list[CatalogItem] = field(default_factory=list)
    items: list[CatalogItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CatalogInfo:
        return cls(
            categories=[CatalogCategory(**category) for category in data.get("categories") or []],
            services=[_catalog_item_from_dict(item) for item in data.get("services") or []],
            items=[_catalog_item_from_dict(item) for item in data.get("items") or []],
        )


def _catalog_item_from_dict(data: dict[str, Any]) -> CatalogItem:
    return CatalogItem(
        id=data["id"],
        name=data.get("name"),
        description=data.get("description"),
        categories=[CatalogCategory(**category) for category in data.get("categories") or []],
        variations=[CatalogVariation(**variation) for variation in data.get("variations") or []],
        is_service=bool(data.get("is_service", False)),
    )


def format_business_hours(periods: list[BusinessHoursPeriod] | None) -> str:
    """
    Render opening hours Monday..Sunday, one "Day: start - end" line per open day.
    """

    if not periods:
        return HOURS_NOT_SPECIFIED

    lines: list[str] = []
    for code, day_name in _DAY_ORDER:
        period = next((p for p in periods if p.day_of_week == code), None)
        if period and period.start_local_time and period.end_local_time:
            lines.append(f"{day_name}: {period.start_local_time} - {period.end_local_time}")
    return "\n".join(lines)


def extract_service_names(catalog: CatalogInfo | None) -> list[str]:
    """
    Names of bookable services, followed by named plain items flagged as services.
    """

    if catalog is None:
        return []

    names = [service.name for service in catalog.services if service.name]
    names.extend(item.name for item in catalog.items if item.name and item.is_service)
    return names


# ---------------------------------------------------------------------------
# Task payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MerchantPayload:
    task_type: ClassVar[str] = ImportTaskType.MERCHANT

    merchant_id: str
    business_name: str | None = None
    country: str | None = None
    currency: str | None = None
    language_code: str | None = None

    @classmethod
    def from_merchant(cls, merchant: MerchantInfo) -> MerchantPayload:
        return cls(
            merchant_id=merchant.id,
            business_name=merchant.business_name,
            country=merchant.country,
            currency=merchant.currency,
            language_code=merchant.language_code,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"task_type": self.task_type, **asdict(self)}


@dataclass(frozen=True)
class LocationsPayload:
    task_type: ClassVar[str] = ImportTaskType.LOCATIONS

    location_id: str
    location_name: str | None = None
    phone_number: str | None = None
    city: str | None = None
    full_address: str | None = None
    formatted_hours: str | None = None
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    location_count: int = 1

    @classmethod
    def from_locations(cls, locations: list[LocationInfo]) -> LocationsPayload:
        """
        Build the payload from the first (primary) location.
        """

        primary = locations[0]
        address = primary.address
        coordinates = primary.coordinates
        return cls(
            location_id=primary.id,
            location_name=primary.name,
            phone_number=primary.phone_number,
            city=address.locality if address else None,
            full_address=(address.formatted() or None) if address else None,
            formatted_hours=format_business_hours(primary.business_hours),
            timezone=primary.timezone,
            latitude=coordinates.latitude if coordinates else None,
            longitude=coordinates.longitude if coordinates else None,
            location_count=len(locations),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"task_type": self.task_type, **asdict(self)}


@dataclass(frozen=True)
class CatalogPayload:
    task_type: ClassVar[str] = ImportTaskType.CATALOG

    catalog: CatalogInfo
    service_names: list[str] = field(default_factory=list)
    # False when the provider returned no catalog objects at all.
    catalog_found: bool = True

    @classmethod
    def from_catalog(cls, catalog: CatalogInfo | None) -> CatalogPayload:
        if catalog is None:
            return cls(catalog=CatalogInfo(), catalog_found=False)
        return cls(catalog=catalog, service_names=extract_service_names(catalog))

    @property
    def has_catalog(self) -> bool:
        return bool(self.service_names)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_type": self.task_type,
            "catalog": self.catalog.to_dict(),
            "service_names": list(self.service_names),
            "catalog_found": self.catalog_found,
            "has_catalog": self.has_catalog,
            "catalog_items_count": len(self.catalog.items),
            "catalog_services_count": len(self.catalog.services),
            "catalog_categories_count": len(self.catalog.categories),
        }


ImportPayload = Union[MerchantPayload, LocationsPayload, CatalogPayload]

_PAYLOAD_FIELDS: dict[str, tuple[str, ...]] = {
    ImportTaskType.MERCHANT: ("merchant_id", "business_name", "country", "currency", "language_code"),
    ImportTaskType.LOCATIONS: (
        "location_id",
        "location_name",
        "phone_number",
        "city",
        "full_address",
        "formatted_hours",
        "timezone",
        "latitude",
        "longitude",
        "location_count",
    ),
}


def payload_from_dict(data: dict[str, Any]) -> ImportPayload:
    """
    Rebuild a typed payload from its stored JSON form, dispatching on ``task_type``.
    """

    task_type = data.get("task_type")
    if task_type == ImportTaskType.MERCHANT:
        return MerchantPayload(**{key: data.get(key) for key in _PAYLOAD_FIELDS[task_type]})
    if task_type == ImportTaskType.LOCATIONS:
        values = {key: data.get(key) for key in _PAYLOAD_FIELDS[task_type]}
        values["location_count"] = int(values.get("location_count") or 1)
        return LocationsPayload(**values)
    if task_type == ImportTaskType.CATALOG:
        return CatalogPayload(
            catalog=CatalogInfo.from_dict(data.get("catalog") or {}),
            service_names=list(data.get("service_names") or []),
            catalog_found=bool(data.get("catalog_found", True)),
        )
    raise ValueError(f"Unknown import payload task_type '{task_type}'.")
