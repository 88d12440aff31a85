"""
db/models/business_record.py

BusinessRecord model: the owner's normalized business profile assembled from
imported provider data. One row per owner.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class BusinessRecord(Base, TimestampMixin):
    """
    Normalized merchant identity, primary location and catalog for one owner.

    Each field group is written by exactly one import task type:
    merchant fields, location fields, catalog fields.
    """

    __tablename__ = "business_records"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        unique=True,
    )

    # ── Merchant ───────────────────────────────────────────────────────────────

    merchant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(8), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    language_code: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # ── Primary location ───────────────────────────────────────────────────────

    primary_location_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    business_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    opening_hours: Mapped[str | None] = mapped_column(Text, nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ── Catalog ────────────────────────────────────────────────────────────────

    catalog_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Categories, services with bookable variations, plain items",
    )
    service_names: Mapped[list[str] | None] = mapped_column(
        JSONType,
        nullable=True,
    )

    last_imported_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BusinessRecord owner_id={self.owner_id} business_name={self.business_name!r}>"
