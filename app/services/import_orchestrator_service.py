"""
Orchestrator service for business data import tasks.

Drives each task through ``pending -> processing -> completed | pending | failed``,
one worker per owner at a time, merchant before locations before catalog.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import (
    ImportProcessorSettings,
    get_external_http_settings,
    get_import_processor_settings,
    get_nango_settings,
    get_square_settings,
)
from app.connectors.base import BusinessDataProvider, CredentialResolver, ProviderDataMissingError
from app.connectors.nango_credentials import NangoCredentialResolver
from app.connectors.square_connector import SquareConnector
from app.domain.business_import import (
    CatalogPayload,
    ImportPayload,
    LocationsPayload,
    MerchantPayload,
)
from app.notifications.status_notifier import StatusNotifier, TaskStatusEvent, build_status_notifier
from app.services.result_sink import BusinessRecordSink
from app.services.task_queue import OwnerLockRegistry, OwnerTaskQueue
from db.base import utc_now
from db.models.import_task import ImportTask, ImportTaskStatus, ImportTaskType
from db.repositories.errors import ImportRepositoryError, TaskNotFoundError
from db.repositories.import_task_repository import ImportTaskRepository

logger = logging.getLogger(__name__)


class ImportOrchestrationError(RuntimeError):
    """Base exception for orchestrator-level import failures."""


class InvalidStateError(ImportOrchestrationError):
    """Raised when a task is asked to do something its status does not allow."""

    def __init__(self, task_id: uuid.UUID | None, status: str | None, message: str) -> None:
        self.task_id = task_id
        self.status = status
        super().__init__(message)


class ImportInterruptedError(ImportOrchestrationError):
    """Recorded on tasks whose worker disappeared while they were processing."""


class ImportTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


@dataclass(frozen=True)
class TaskRunOutcome:
    task_id: uuid.UUID
    owner_id: uuid.UUID
    task_type: str
    status: str
    retry_count: int
    max_retries: int
    progress_message: str | None = None
    error_message: str | None = None

    @classmethod
    def from_task(cls, task: ImportTask) -> TaskRunOutcome:
        return cls(
            task_id=task.id,
            owner_id=task.owner_id,
            task_type=task.task_type,
            status=task.status,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
            progress_message=task.progress_message,
            error_message=task.error_message,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == ImportTaskStatus.COMPLETED

    @property
    def retry_scheduled(self) -> bool:
        return self.status == ImportTaskStatus.PENDING


@dataclass
class ImportRunSummary:
    """
    Aggregate result of one ``run_all_pending`` pass.
    """

    outcomes: list[TaskRunOutcome] = field(default_factory=list)
    skipped_task_ids: list[uuid.UUID] = field(default_factory=list)
    busy_owner_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == ImportTaskStatus.FAILED)

    @property
    def retry_scheduled_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.retry_scheduled)

    def merge(self, other: ImportRunSummary) -> None:
        self.outcomes.extend(other.outcomes)
        self.skipped_task_ids.extend(other.skipped_task_ids)
        self.busy_owner_ids.extend(other.busy_owner_ids)


class ImportOrchestratorService:
    """
    Coordinates task creation, execution, retries and status events.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        provider: BusinessDataProvider | None = None,
        credential_resolver: CredentialResolver | None = None,
        sink: BusinessRecordSink | None = None,
        notifier: StatusNotifier | None = None,
        settings: ImportProcessorSettings | None = None,
        owner_locks: OwnerLockRegistry | None = None,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        if provider is None or credential_resolver is None:
            square_settings = get_square_settings()
            http_settings = get_external_http_settings()
            if provider is None:
                provider = SquareConnector(settings=square_settings, http_settings=http_settings)
            if credential_resolver is None:
                credential_resolver = NangoCredentialResolver(
                    settings=get_nango_settings(),
                    provider_config_key=square_settings.provider_config_key,
                    http_settings=http_settings,
                )

        self._provider = provider
        self._credential_resolver = credential_resolver
        self._sink = sink or BusinessRecordSink()
        self._notifier = notifier or build_status_notifier()
        self._settings = settings or get_import_processor_settings()
        self._owner_locks = owner_locks or OwnerLockRegistry()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def start_import(
        self,
        *,
        owner_id: uuid.UUID,
        connection_id: str,
        executor: ImportTaskExecutor | None = None,
    ) -> list[ImportTask]:
        """
        Create (or reuse) the owner's three import tasks and optionally
        schedule a run for them.
        """

        with self._session_factory() as db:
            repository = ImportTaskRepository(db)
            tasks = repository.ensure_tasks(
                owner_id=owner_id,
                connection_id=connection_id,
                max_retries=self._settings.max_retries,
            )
            db.commit()

        logger.info(
            "Import tasks initialized owner_id=%s connection_id=%s task_count=%s",
            owner_id,
            connection_id,
            len(tasks),
        )
        for task in tasks:
            self._notify(task)
        self._schedule_owner_run(executor, owner_id)
        return tasks

    def reset_for_reimport(
        self,
        *,
        owner_id: uuid.UUID,
        connection_id: str,
        executor: ImportTaskExecutor | None = None,
    ) -> list[ImportTask]:
        """
        Send all of a connection's tasks back to pending, keeping their ids.

        Raises NoTasksFoundError when the connection was never imported.
        """

        with self._owner_locks.hold(owner_id, blocking=False) as acquired:
            if not acquired:
                raise InvalidStateError(
                    None,
                    ImportTaskStatus.PROCESSING,
                    f"An import is already running for owner {owner_id}.",
                )
            with self._session_factory() as db:
                repository = ImportTaskRepository(db)
                reset_count = repository.reset_for_reimport(owner_id=owner_id, connection_id=connection_id)
                db.commit()
                tasks = repository.list_tasks(owner_id=owner_id, connection_id=connection_id)

        logger.info(
            "Import tasks reset for reimport owner_id=%s connection_id=%s reset_count=%s",
            owner_id,
            connection_id,
            reset_count,
        )
        for task in tasks:
            self._notify(task)
        self._schedule_owner_run(executor, owner_id)
        return tasks

    def retry_task(
        self,
        *,
        task_id: uuid.UUID,
        executor: ImportTaskExecutor | None = None,
    ) -> ImportTask:
        """
        Manually retry one failed task with a fresh retry budget.
        """

        with self._session_factory() as db:
            repository = ImportTaskRepository(db)
            task = repository.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.status != ImportTaskStatus.FAILED:
                raise InvalidStateError(
                    task_id,
                    task.status,
                    f"Only failed import tasks can be retried; task {task_id} is {task.status}.",
                )
            task = repository.reset_task(task_id=task_id)
            db.commit()

        logger.info("Import task reset for manual retry id=%s task_type=%s", task.id, task.task_type)
        self._notify(task)
        self._schedule_owner_run(executor, task.owner_id)
        return task

    def run_task(self, task_id: uuid.UUID) -> TaskRunOutcome:
        """
        Execute one runnable task now, waiting for the owner's worker slot.

        Provider and sink failures are recorded on the task and returned in
        the outcome. TaskNotFoundError and InvalidStateError propagate, and an
        unreachable store surfaces as ImportRepositoryError.
        """

        try:
            with self._session_factory() as db:
                task = ImportTaskRepository(db).get_task(task_id)
                if task is None:
                    raise TaskNotFoundError(task_id)
                owner_id = task.owner_id
                self._ensure_runnable(task)
        except SQLAlchemyError as exc:
            raise ImportRepositoryError(f"Failed to load import task {task_id}: {exc}") from exc

        with self._owner_locks.hold(owner_id):
            try:
                return self._execute(task_id)
            except SQLAlchemyError as exc:
                raise ImportRepositoryError(f"Failed to persist import task {task_id}: {exc}") from exc

    def run_all_pending(self, owner_id: uuid.UUID | None = None) -> ImportRunSummary:
        """
        Run every due pending/retrying task, grouped by owner in priority order.

        A failing task never stops its siblings. Owners that already have an
        active worker are skipped and picked up by a later pass.
        """

        try:
            with self._session_factory() as db:
                tasks = ImportTaskRepository(db).list_runnable(owner_id=owner_id, due_before=utc_now())
                queue = OwnerTaskQueue.from_tasks(tasks)
        except SQLAlchemyError as exc:
            raise ImportRepositoryError(f"Failed to list runnable import tasks: {exc}") from exc

        summary = ImportRunSummary()
        owners = queue.owners()
        if not owners:
            logger.debug("No runnable import tasks owner_id=%s", owner_id)
            return summary

        logger.info("Import run starting owners=%s tasks=%s", len(owners), len(queue))
        worker_count = min(self._settings.owner_concurrency, len(owners))
        if worker_count <= 1:
            for queued_owner in owners:
                summary.merge(self._drain_owner(queue, queued_owner))
        else:
            with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="import-owner") as pool:
                for partial in pool.map(lambda key: self._drain_owner(queue, key), owners):
                    summary.merge(partial)

        logger.info(
            "Import run finished completed=%s retry_scheduled=%s failed=%s skipped=%s busy_owners=%s",
            summary.completed_count,
            summary.retry_scheduled_count,
            summary.failed_count,
            len(summary.skipped_task_ids),
            len(summary.busy_owner_ids),
        )
        return summary

    def recover_stale_tasks(self) -> list[TaskRunOutcome]:
        """
        Apply the retry policy to tasks stuck in processing past the stale window.
        """

        cutoff = utc_now() - timedelta(minutes=self._settings.stale_processing_minutes)
        with self._session_factory() as db:
            stale_tasks = ImportTaskRepository(db).list_stale_processing(updated_before=cutoff)
            candidates = [(task.id, task.owner_id, task.updated_at) for task in stale_tasks]

        outcomes: list[TaskRunOutcome] = []
        for task_id, owner_id, updated_at in candidates:
            with self._owner_locks.hold(owner_id, blocking=False) as acquired:
                if not acquired:
                    logger.info("Stale sweep skipped busy owner owner_id=%s task_id=%s", owner_id, task_id)
                    continue
                error = ImportInterruptedError(
                    f"Task stopped reporting progress at {updated_at.isoformat() if updated_at else 'unknown time'}."
                )
                with self._session_factory() as db:
                    task = db.get(ImportTask, task_id)
                    if task is None or task.status != ImportTaskStatus.PROCESSING:
                        continue
                    logger.warning("Recovering stale import task id=%s task_type=%s", task_id, task.task_type)
                    task = self._record_failure(db=db, task_id=task_id, exc=error)
                self._notify(task)
                outcomes.append(TaskRunOutcome.from_task(task))
        return outcomes

    def list_tasks(self, *, owner_id: uuid.UUID, connection_id: str | None = None) -> list[ImportTask]:
        with self._session_factory() as db:
            return ImportTaskRepository(db).list_tasks(owner_id=owner_id, connection_id=connection_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _drain_owner(self, queue: OwnerTaskQueue, owner_id: uuid.UUID) -> ImportRunSummary:
        summary = ImportRunSummary()
        with self._owner_locks.hold(owner_id, blocking=False) as acquired:
            if not acquired:
                logger.info("Import worker already active, skipping owner owner_id=%s", owner_id)
                summary.busy_owner_ids.append(owner_id)
                return summary

            for entry in queue.drain(owner_id):
                try:
                    summary.outcomes.append(self._execute(entry.task_id))
                except (TaskNotFoundError, InvalidStateError) as exc:
                    logger.info(
                        "Skipping import task id=%s task_type=%s reason=%s",
                        entry.task_id,
                        entry.task_type,
                        exc,
                    )
                    summary.skipped_task_ids.append(entry.task_id)
                except SQLAlchemyError:
                    logger.exception("Import task state could not be persisted id=%s", entry.task_id)
                    summary.skipped_task_ids.append(entry.task_id)
        return summary

    def _execute(self, task_id: uuid.UUID) -> TaskRunOutcome:
        with self._session_factory() as db:
            repository = ImportTaskRepository(db)
            task = repository.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            self._ensure_runnable(task)

            task_type = task.task_type
            owner_id = task.owner_id
            connection_id = task.connection_id
            task = repository.transition(
                task_id=task_id,
                status=ImportTaskStatus.PROCESSING,
                progress_message=f"Importing {task_type} data...",
                next_attempt_at=None,
            )
            db.commit()
            self._notify(task)

            try:
                payload = self._fetch_payload(task_type=task_type, connection_id=connection_id)
                self._sink.apply(db=db, owner_id=owner_id, payload=payload)
                task = repository.transition(
                    task_id=task_id,
                    status=ImportTaskStatus.COMPLETED,
                    progress_message=f"{task_type.capitalize()} imported successfully",
                    payload=payload.to_dict(),
                )
                db.commit()
                logger.info("Import task completed id=%s task_type=%s owner_id=%s", task_id, task_type, owner_id)
            except TaskNotFoundError:
                db.rollback()
                raise
            except Exception as exc:
                logger.exception("Import task attempt failed id=%s task_type=%s", task_id, task_type)
                db.rollback()
                task = self._record_failure(db=db, task_id=task_id, exc=exc)

            self._notify(task)
            return TaskRunOutcome.from_task(task)

    def _fetch_payload(self, *, task_type: str, connection_id: str) -> ImportPayload:
        credential = self._credential_resolver.resolve(connection_id)

        if task_type == ImportTaskType.MERCHANT:
            merchant = self._provider.fetch_merchant(credential)
            if merchant is None:
                raise ProviderDataMissingError(
                    "No merchant data found for this account.",
                    source=self._provider.source,
                )
            return MerchantPayload.from_merchant(merchant)

        if task_type == ImportTaskType.LOCATIONS:
            locations = self._provider.fetch_locations(credential)
            if not locations:
                raise ProviderDataMissingError(
                    "No location data found for this account.",
                    source=self._provider.source,
                )
            return LocationsPayload.from_locations(locations)

        if task_type == ImportTaskType.CATALOG:
            return CatalogPayload.from_catalog(self._provider.fetch_catalog(credential))

        raise ImportOrchestrationError(f"Unknown import task type '{task_type}'.")

    def _record_failure(self, *, db: Session, task_id: uuid.UUID, exc: Exception) -> ImportTask:
        """
        Count a failed attempt, then park the task as failed or pending-for-retry.
        """

        repository = ImportTaskRepository(db)
        error_message = f"{type(exc).__name__}: {exc}"[:2000]
        try:
            retry_count = repository.increment_retry(task_id=task_id)
            task = repository.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)

            if retry_count >= task.max_retries:
                task = repository.transition(
                    task_id=task_id,
                    status=ImportTaskStatus.FAILED,
                    progress_message=f"Import failed after {retry_count} attempts",
                    error_message=error_message,
                    next_attempt_at=None,
                )
                logger.error(
                    "Import task failed permanently id=%s task_type=%s attempts=%s error=%s",
                    task_id,
                    task.task_type,
                    retry_count,
                    error_message,
                )
            else:
                delay_seconds = self._retry_delay_seconds(retry_count)
                task = repository.transition(
                    task_id=task_id,
                    status=ImportTaskStatus.PENDING,
                    progress_message=f"Retrying import (attempt {retry_count + 1}/{task.max_retries})...",
                    error_message=error_message,
                    next_attempt_at=utc_now() + timedelta(seconds=delay_seconds) if delay_seconds > 0 else None,
                )
                logger.warning(
                    "Import task scheduled for retry id=%s task_type=%s retry_count=%s delay_seconds=%s",
                    task_id,
                    task.task_type,
                    retry_count,
                    delay_seconds,
                )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to persist failed import task state id=%s", task_id)
            raise
        return task

    def _retry_delay_seconds(self, retry_count: int) -> float:
        settings = self._settings
        delay = settings.retry_backoff_initial_seconds * (settings.retry_backoff_multiplier ** max(0, retry_count - 1))
        return min(delay, settings.retry_backoff_max_seconds)

    def _ensure_runnable(self, task: ImportTask) -> None:
        if not task.is_runnable:
            raise InvalidStateError(
                task.id,
                task.status,
                f"Import task {task.id} is {task.status}; only pending or retrying tasks can run.",
            )

    def _schedule_owner_run(self, executor: ImportTaskExecutor | None, owner_id: uuid.UUID) -> None:
        if executor is not None:
            executor.submit(self.run_all_pending, owner_id)

    def _notify(self, task: ImportTask) -> None:
        try:
            self._notifier.publish(TaskStatusEvent.from_task(task))
        except Exception:
            logger.exception("Status notification failed task_id=%s status=%s", task.id, task.status)


@lru_cache(maxsize=1)
def get_import_orchestrator_service() -> ImportOrchestratorService:
    return ImportOrchestratorService()
