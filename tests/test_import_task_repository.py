from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from db.base import utc_now
from db.models.import_task import ImportTaskStatus, ImportTaskType
from db.repositories.errors import NoTasksFoundError, TaskNotFoundError
from db.repositories.import_task_repository import ImportTaskRepository

CONNECTION_ID = "conn-repo"


@pytest.fixture()
def repository(db_session) -> ImportTaskRepository:
    return ImportTaskRepository(db_session)


@pytest.fixture()
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


def test_ensure_tasks_creates_one_task_per_type(repository, owner_id) -> None:
    tasks = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID, max_retries=5)

    assert [task.task_type for task in tasks] == list(ImportTaskType.ALL)
    assert {task.max_retries for task in tasks} == {5}
    assert tasks[0].progress_message == "Preparing to import merchant data..."


def test_ensure_tasks_is_idempotent(repository, owner_id) -> None:
    first = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)
    second = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)

    assert [task.id for task in first] == [task.id for task in second]
    assert len(repository.list_tasks(owner_id=owner_id)) == 3


def test_list_tasks_filters_by_connection(repository, owner_id) -> None:
    repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)
    repository.ensure_tasks(owner_id=owner_id, connection_id="conn-second")

    assert len(repository.list_tasks(owner_id=owner_id)) == 6
    assert len(repository.list_tasks(owner_id=owner_id, connection_id="conn-second")) == 3


def test_list_runnable_respects_status_owner_and_backoff(repository, owner_id) -> None:
    merchant, locations, catalog = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)
    other = repository.ensure_tasks(owner_id=uuid.uuid4(), connection_id="conn-other")
    repository.transition(task_id=merchant.id, status=ImportTaskStatus.PROCESSING)
    repository.transition(task_id=locations.id, status=ImportTaskStatus.RETRYING)
    repository.transition(
        task_id=catalog.id,
        status=ImportTaskStatus.PENDING,
        next_attempt_at=utc_now() + timedelta(minutes=10),
    )

    scoped = repository.list_runnable(owner_id=owner_id)
    due = repository.list_runnable(owner_id=owner_id, due_before=utc_now())

    assert {task.id for task in scoped} == {locations.id, catalog.id}
    assert [task.id for task in due] == [locations.id]
    assert len(repository.list_runnable()) == 2 + len(other)


def test_transition_sets_started_at_once(repository, owner_id) -> None:
    task = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)[0]

    first = repository.transition(task_id=task.id, status=ImportTaskStatus.PROCESSING)
    started_at = first.started_at
    repository.transition(task_id=task.id, status=ImportTaskStatus.PENDING)
    again = repository.transition(task_id=task.id, status=ImportTaskStatus.PROCESSING)

    assert started_at is not None
    assert again.started_at == started_at


def test_completed_requires_payload(repository, owner_id) -> None:
    task = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)[0]

    with pytest.raises(ValueError):
        repository.transition(task_id=task.id, status=ImportTaskStatus.COMPLETED)


def test_completed_clears_error_and_stamps_completion(repository, owner_id) -> None:
    task = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)[0]
    repository.transition(task_id=task.id, status=ImportTaskStatus.PENDING, error_message="boom")

    done = repository.transition(
        task_id=task.id,
        status=ImportTaskStatus.COMPLETED,
        payload={"task_type": "merchant", "merchant_id": "M1"},
    )

    assert done.error_message is None
    assert done.completed_at is not None
    assert done.payload["merchant_id"] == "M1"


def test_transition_rejects_unknown_status(repository, owner_id) -> None:
    task = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)[0]

    with pytest.raises(ValueError):
        repository.transition(task_id=task.id, status="paused")


def test_transition_unknown_task_raises(repository) -> None:
    with pytest.raises(TaskNotFoundError):
        repository.transition(task_id=uuid.uuid4(), status=ImportTaskStatus.PROCESSING)


def test_increment_retry_counts_up(repository, owner_id) -> None:
    task = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)[0]

    assert repository.increment_retry(task_id=task.id) == 1
    assert repository.increment_retry(task_id=task.id) == 2
    assert repository.get_task(task.id).retry_count == 2


def test_increment_retry_unknown_task_raises(repository) -> None:
    with pytest.raises(TaskNotFoundError):
        repository.increment_retry(task_id=uuid.uuid4())


def test_reset_for_reimport_clears_state(repository, owner_id) -> None:
    tasks = repository.ensure_tasks(owner_id=owner_id, connection_id=CONNECTION_ID)
    repository.transition(
        task_id=tasks[0].id,
        status=ImportTaskStatus.COMPLETED,
        payload={"task_type": "merchant", "merchant_id": "M1"},
    )
    repository.increment_retry(task_id=tasks[1].id)
    repository.transition(task_id=tasks[1].id, status=ImportTaskStatus.FAILED, error_message="gone")

    count = repository.reset_for_reimport(owner_id=owner_id, connection_id=CONNECTION_ID)

    assert count == 3
    for task in repository.list_tasks(owner_id=owner_id):
        assert task.status == ImportTaskStatus.PENDING
        assert task.retry_count == 0
        assert task.payload is None
        assert task.error_message is None
        assert task.completed_at is None


def test_reset_for_reimport_without_tasks_raises(repository, owner_id) -> None:
    with pytest.raises(NoTasksFoundError):
        repository.reset_for_reimport(owner_id=owner_id, connection_id=CONNECTION_ID)
