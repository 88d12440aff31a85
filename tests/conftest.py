"""
tests/conftest.py

Shared fixtures: an in-memory SQLite database with the full ORM schema, and
fake provider, credential resolver and notifier collaborators for the import
orchestrator.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from app.config import ImportProcessorSettings
from app.connectors.base import ProviderError
from app.domain.business_import import (
    BusinessHoursPeriod,
    CatalogCategory,
    CatalogInfo,
    CatalogItem,
    CatalogVariation,
    LocationInfo,
    MerchantInfo,
    PostalAddress,
    ProviderCredential,
)
from app.notifications.status_notifier import TaskStatusEvent
from app.services.import_orchestrator_service import ImportOrchestratorService
from app.services.result_sink import BusinessRecordSink
from app.services.task_queue import OwnerLockRegistry
from db.base import Base
from db.session import build_session_factory


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def sample_merchant() -> MerchantInfo:
    return MerchantInfo(
        id="MLR7Q1",
        business_name="Harbor Cuts",
        country="US",
        language_code="en-US",
        currency="USD",
    )


def sample_locations() -> list[LocationInfo]:
    return [
        LocationInfo(
            id="L8801",
            name="Harbor Cuts Downtown",
            address=PostalAddress(
                address_line_1="12 Pier St",
                locality="Portland",
                administrative_district_level_1="OR",
                postal_code="97201",
                country="US",
            ),
            phone_number="+1 503-555-0100",
            business_hours=[
                BusinessHoursPeriod(day_of_week="MON", start_local_time="09:00", end_local_time="17:00"),
                BusinessHoursPeriod(day_of_week="SAT", start_local_time="10:00", end_local_time="14:00"),
            ],
            timezone="America/Los_Angeles",
        ),
        LocationInfo(id="L8802", name="Harbor Cuts Eastside"),
    ]


def sample_catalog() -> CatalogInfo:
    hair = CatalogCategory(id="CAT1", name="Hair")
    return CatalogInfo(
        categories=[hair],
        services=[
            CatalogItem(
                id="ITEM1",
                name="Classic Haircut",
                categories=[hair],
                variations=[
                    CatalogVariation(
                        id="VAR1",
                        name="Regular",
                        available_for_booking=True,
                        service_duration_ms=1_800_000,
                        pricing_type="FIXED_PRICING",
                        price_amount=3500,
                        price_currency="USD",
                    )
                ],
                is_service=True,
            )
        ],
        items=[CatalogItem(id="ITEM2", name="Pomade")],
    )


class FakeProvider:
    """
    In-memory provider; ``failures`` maps a task type to how many calls fail
    before the data is returned.
    """

    source = "fake"

    def __init__(self) -> None:
        self.merchant: MerchantInfo | None = sample_merchant()
        self.locations: list[LocationInfo] | None = sample_locations()
        self.catalog: CatalogInfo | None = sample_catalog()
        self.failures: dict[str, int] = {}
        self.calls: list[str] = []
        self.calls_by_connection: dict[str, list[str]] = {}

    def _call(self, kind: str, credential: ProviderCredential) -> None:
        self.calls.append(kind)
        self.calls_by_connection.setdefault(credential.connection_id, []).append(kind)
        remaining = self.failures.get(kind, 0)
        if remaining > 0:
            self.failures[kind] = remaining - 1
            raise ProviderError(f"{kind} endpoint unavailable", source=self.source, status_code=503)

    def fetch_merchant(self, credential: ProviderCredential) -> MerchantInfo | None:
        self._call("merchant", credential)
        return self.merchant

    def fetch_locations(self, credential: ProviderCredential) -> list[LocationInfo] | None:
        self._call("locations", credential)
        return self.locations

    def fetch_catalog(self, credential: ProviderCredential) -> CatalogInfo | None:
        self._call("catalog", credential)
        return self.catalog


class FakeCredentialResolver:
    def __init__(self) -> None:
        self.resolved: list[str] = []

    def resolve(self, connection_id: str) -> ProviderCredential:
        self.resolved.append(connection_id)
        return ProviderCredential(connection_id=connection_id, access_token="test-token")


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[TaskStatusEvent] = []

    def publish(self, event: TaskStatusEvent) -> None:
        self.events.append(event)

    def statuses_for(self, task_type: str) -> list[str]:
        return [event.status for event in self.events if event.task_type == task_type]


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def credential_resolver() -> FakeCredentialResolver:
    return FakeCredentialResolver()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def processor_settings() -> ImportProcessorSettings:
    return ImportProcessorSettings(
        max_retries=3,
        retry_backoff_initial_seconds=0.0,
        stale_processing_minutes=15,
        owner_concurrency=1,
        scheduler_enabled=False,
    )


@pytest.fixture()
def owner_locks() -> OwnerLockRegistry:
    return OwnerLockRegistry()


@pytest.fixture()
def orchestrator(
    session_factory: sessionmaker[Session],
    provider: FakeProvider,
    credential_resolver: FakeCredentialResolver,
    notifier: RecordingNotifier,
    processor_settings: ImportProcessorSettings,
    owner_locks: OwnerLockRegistry,
) -> ImportOrchestratorService:
    return ImportOrchestratorService(
        session_factory=session_factory,
        provider=provider,
        credential_resolver=credential_resolver,
        sink=BusinessRecordSink(),
        notifier=notifier,
        settings=processor_settings,
        owner_locks=owner_locks,
    )
