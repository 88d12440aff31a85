"""
tests/test_import_router.py

HTTP contract tests for the /imports router using FastAPI's TestClient and
an orchestrator wired to the in-memory store.
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.api.routers.import_tasks import router
from app.services.import_orchestrator_service import get_import_orchestrator_service
from db.models.import_task import ImportTaskStatus
from db.repositories.import_task_repository import ImportTaskRepository

CONNECTION_ID = "conn-http"


@pytest.fixture()
def client(orchestrator) -> TestClient:
    application = FastAPI()
    application.include_router(router)
    application.dependency_overrides[get_import_orchestrator_service] = lambda: orchestrator
    return TestClient(application)


def test_start_import_runs_tasks_in_background(client, provider) -> None:
    owner_id = uuid.uuid4()

    response = client.post(f"/imports/owners/{owner_id}/connections/{CONNECTION_ID}")

    assert response.status_code == 202
    body = response.json()
    assert [task["task_type"] for task in body["tasks"]] == ["merchant", "locations", "catalog"]
    # TestClient runs background tasks before returning.
    assert provider.calls == ["merchant", "locations", "catalog"]

    listing = client.get("/imports/tasks", params={"owner_id": str(owner_id)})
    assert listing.status_code == 200
    assert {task["status"] for task in listing.json()["tasks"]} == {ImportTaskStatus.COMPLETED}


def test_reimport_without_history_returns_404(client) -> None:
    response = client.post(f"/imports/owners/{uuid.uuid4()}/connections/{CONNECTION_ID}/reimport")

    assert response.status_code == 404
    assert "reconnect" in response.json()["detail"]


def test_reimport_resets_and_reruns(client, provider) -> None:
    owner_id = uuid.uuid4()
    client.post(f"/imports/owners/{owner_id}/connections/{CONNECTION_ID}")
    provider.calls.clear()

    response = client.post(f"/imports/owners/{owner_id}/connections/{CONNECTION_ID}/reimport")

    assert response.status_code == 202
    assert provider.calls == ["merchant", "locations", "catalog"]


def test_run_task_maps_errors(client, orchestrator) -> None:
    missing = client.post(f"/imports/tasks/{uuid.uuid4()}/run")
    assert missing.status_code == 404

    owner_id = uuid.uuid4()
    tasks = orchestrator.start_import(owner_id=owner_id, connection_id=CONNECTION_ID)

    ran = client.post(f"/imports/tasks/{tasks[0].id}/run")
    assert ran.status_code == 200
    assert ran.json()["succeeded"] is True

    again = client.post(f"/imports/tasks/{tasks[0].id}/run")
    assert again.status_code == 409


def test_retry_requires_failed_task(client, orchestrator, provider) -> None:
    owner_id = uuid.uuid4()
    tasks = orchestrator.start_import(owner_id=owner_id, connection_id=CONNECTION_ID)

    conflict = client.post(f"/imports/tasks/{tasks[0].id}/retry")
    assert conflict.status_code == 409

    provider.failures["merchant"] = 3
    for _ in range(3):
        orchestrator.run_all_pending(owner_id)

    accepted = client.post(f"/imports/tasks/{tasks[0].id}/retry")
    assert accepted.status_code == 202
    assert accepted.json()["retry_count"] == 0


def test_run_pending_returns_summary(client, orchestrator, provider) -> None:
    owner_id = uuid.uuid4()
    orchestrator.start_import(owner_id=owner_id, connection_id=CONNECTION_ID)
    provider.failures["catalog"] = 1

    response = client.post("/imports/run-pending", params={"owner_id": str(owner_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["completed_count"] == 2
    assert body["retry_scheduled_count"] == 1
    assert body["failed_count"] == 0
    assert len(body["outcomes"]) == 3


def test_run_pending_store_failure_returns_503(client, monkeypatch) -> None:
    def _fail(self, **kwargs):
        raise OperationalError("SELECT import_tasks", {}, Exception("connection refused"))

    monkeypatch.setattr(ImportTaskRepository, "list_runnable", _fail)

    response = client.post("/imports/run-pending")

    assert response.status_code == 503
    assert "Failed to list runnable import tasks" in response.json()["detail"]


def test_list_tasks_requires_owner(client) -> None:
    response = client.get("/imports/tasks")

    assert response.status_code == 422
