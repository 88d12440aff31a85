from __future__ import annotations

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.domain.business_import import (
    HOURS_NOT_SPECIFIED,
    CatalogInfo,
    CatalogItem,
    CatalogPayload,
    LocationsPayload,
    MerchantPayload,
)
from app.services.result_sink import BusinessRecordSink, SinkError
from db.repositories.business_record_repository import BusinessRecordRepository


@pytest.fixture()
def sink() -> BusinessRecordSink:
    return BusinessRecordSink()


@pytest.fixture()
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


def _merchant_payload(**overrides) -> MerchantPayload:
    values = {
        "merchant_id": "MLR7Q1",
        "business_name": "Harbor Cuts",
        "country": "US",
        "currency": "USD",
        "language_code": "en-US",
    }
    values.update(overrides)
    return MerchantPayload(**values)


def test_apply_creates_record_with_merchant_fields(sink, db_session, owner_id) -> None:
    sink.apply(db=db_session, owner_id=owner_id, payload=_merchant_payload())

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.merchant_id == "MLR7Q1"
    assert record.business_name == "Harbor Cuts"
    assert record.last_imported_at is not None
    assert record.primary_location_id is None


def test_apply_is_idempotent(sink, db_session, owner_id) -> None:
    payload = _merchant_payload()
    sink.apply(db=db_session, owner_id=owner_id, payload=payload)
    first_import = BusinessRecordRepository(db_session).get_by_owner(owner_id).last_imported_at

    sink.apply(db=db_session, owner_id=owner_id, payload=payload)

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.last_imported_at == first_import
    assert record.business_name == "Harbor Cuts"


def test_missing_values_do_not_erase_existing_fields(sink, db_session, owner_id) -> None:
    sink.apply(db=db_session, owner_id=owner_id, payload=_merchant_payload())

    sink.apply(db=db_session, owner_id=owner_id, payload=_merchant_payload(business_name=None, currency="CAD"))

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.business_name == "Harbor Cuts"
    assert record.currency == "CAD"


def test_location_group_only_touches_location_columns(sink, db_session, owner_id) -> None:
    sink.apply(db=db_session, owner_id=owner_id, payload=_merchant_payload())

    sink.apply(
        db=db_session,
        owner_id=owner_id,
        payload=LocationsPayload(
            location_id="L1",
            location_name="Downtown",
            city="Portland",
            formatted_hours=HOURS_NOT_SPECIFIED,
        ),
    )

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.primary_location_id == "L1"
    assert record.business_city == "Portland"
    assert record.opening_hours == HOURS_NOT_SPECIFIED
    assert record.business_name == "Harbor Cuts"


def test_location_without_hours_replaces_previous_hours(sink, db_session, owner_id) -> None:
    sink.apply(
        db=db_session,
        owner_id=owner_id,
        payload=LocationsPayload(location_id="L1", formatted_hours="Monday: 09:00 - 17:00"),
    )

    sink.apply(
        db=db_session,
        owner_id=owner_id,
        payload=LocationsPayload(location_id="L2", formatted_hours=HOURS_NOT_SPECIFIED),
    )

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.primary_location_id == "L2"
    assert record.opening_hours == HOURS_NOT_SPECIFIED


def test_catalog_group_is_replaced_wholesale(sink, db_session, owner_id) -> None:
    full = CatalogPayload.from_catalog(
        CatalogInfo(services=[CatalogItem(id="S1", name="Beard Trim", is_service=True)])
    )
    sink.apply(db=db_session, owner_id=owner_id, payload=full)

    sink.apply(
        db=db_session,
        owner_id=owner_id,
        payload=CatalogPayload.from_catalog(CatalogInfo(items=[CatalogItem(id="I1", name="Pomade")])),
    )

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.service_names == []
    assert record.catalog_data["items"][0]["name"] == "Pomade"
    assert record.catalog_data["services"] == []


def test_absent_catalog_keeps_stored_catalog(sink, db_session, owner_id) -> None:
    full = CatalogPayload.from_catalog(
        CatalogInfo(services=[CatalogItem(id="S1", name="Beard Trim", is_service=True)])
    )
    sink.apply(db=db_session, owner_id=owner_id, payload=full)

    sink.apply(db=db_session, owner_id=owner_id, payload=CatalogPayload.from_catalog(None))

    record = BusinessRecordRepository(db_session).get_by_owner(owner_id)
    assert record.service_names == ["Beard Trim"]
    assert record.catalog_data["services"][0]["id"] == "S1"


def test_persistence_failure_raises_sink_error(sink, db_session, owner_id, monkeypatch) -> None:
    def _fail(self, *, owner_id, fields):
        raise OperationalError("UPDATE business_records", {}, Exception("database is locked"))

    monkeypatch.setattr(BusinessRecordRepository, "update_fields", _fail)

    with pytest.raises(SinkError):
        sink.apply(db=db_session, owner_id=owner_id, payload=_merchant_payload())
