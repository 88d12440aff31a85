"""
app/services/result_sink.py

Merges completed import payloads into the owner's business record.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.business_import import (
    CatalogPayload,
    ImportPayload,
    LocationsPayload,
    MerchantPayload,
)
from db.models.import_task import ImportTaskType
from db.repositories.business_record_repository import BusinessRecordRepository

logger = logging.getLogger(__name__)


class SinkError(RuntimeError):
    """
    Raised when a payload cannot be written into the business record.
    """


def _merchant_fields(payload: MerchantPayload) -> dict[str, Any]:
    return {
        "merchant_id": payload.merchant_id,
        "business_name": payload.business_name,
        "country": payload.country,
        "currency": payload.currency,
        "language_code": payload.language_code,
    }


def _location_fields(payload: LocationsPayload) -> dict[str, Any]:
    return {
        "primary_location_id": payload.location_id,
        "location_name": payload.location_name,
        "phone_number": payload.phone_number,
        "business_city": payload.city,
        "full_address": payload.full_address,
        "opening_hours": payload.formatted_hours,
        "timezone": payload.timezone,
    }


def _catalog_fields(payload: CatalogPayload) -> dict[str, Any]:
    # Replaced wholesale, but only when the provider actually returned a catalog.
    if not payload.catalog_found:
        return {}
    return {
        "catalog_data": payload.catalog.to_dict(),
        "service_names": list(payload.service_names),
    }


_FIELD_BUILDERS: dict[str, Callable[[Any], dict[str, Any]]] = {
    ImportTaskType.MERCHANT: _merchant_fields,
    ImportTaskType.LOCATIONS: _location_fields,
    ImportTaskType.CATALOG: _catalog_fields,
}

# Groups where a missing value must not erase a previously imported one.
_SKIP_EMPTY_VALUES = {ImportTaskType.MERCHANT, ImportTaskType.LOCATIONS}


class BusinessRecordSink:
    """
    Partial, idempotent merge of one task type's field group.

    Only the columns owned by the payload's task type are written; applying
    the same payload twice leaves the record unchanged.
    """

    def apply(self, *, db: Session, owner_id: uuid.UUID, payload: ImportPayload) -> None:
        builder = _FIELD_BUILDERS.get(payload.task_type)
        if builder is None:
            raise SinkError(f"No business record mapping for task type '{payload.task_type}'.")

        fields = builder(payload)
        if payload.task_type in _SKIP_EMPTY_VALUES:
            fields = {column: value for column, value in fields.items() if value not in (None, "")}
        if not fields:
            logger.info(
                "Import payload carried no values to merge owner_id=%s task_type=%s",
                owner_id,
                payload.task_type,
            )
            return

        try:
            BusinessRecordRepository(db).update_fields(owner_id=owner_id, fields=fields)
        except SQLAlchemyError as exc:
            raise SinkError(
                f"Failed to store {payload.task_type} data for owner {owner_id}: {exc}"
            ) from exc

        logger.info(
            "Business record updated owner_id=%s task_type=%s fields=%s",
            owner_id,
            payload.task_type,
            ",".join(sorted(fields)),
        )
