"""
Repository for import task lifecycle persistence and runnable-task lookup.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, or_, select, update
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.import_task import (
    DEFAULT_MAX_RETRIES,
    TASK_TYPE_PRIORITY,
    ImportTask,
    ImportTaskStatus,
    ImportTaskType,
)
from db.repositories.errors import NoTasksFoundError, TaskNotFoundError

# Distinguishes "leave the column alone" from "set it to NULL".
_UNSET: Any = object()


class ImportTaskRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def ensure_tasks(
        self,
        *,
        owner_id: uuid.UUID,
        connection_id: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> list[ImportTask]:
        """
        Create the merchant/locations/catalog tasks for a connection, reusing
        any rows that already exist for the same owner and connection.
        """

        existing = {task.task_type: task for task in self.list_tasks(owner_id=owner_id, connection_id=connection_id)}
        for task_type in ImportTaskType.ALL:
            if task_type in existing:
                continue
            task = ImportTask(
                owner_id=owner_id,
                connection_id=connection_id,
                task_type=task_type,
                status=ImportTaskStatus.PENDING,
                progress_message=f"Preparing to import {task_type} data...",
                retry_count=0,
                max_retries=max(1, max_retries),
            )
            self._session.add(task)
            existing[task_type] = task

        self._session.flush()
        return sorted(existing.values(), key=lambda task: TASK_TYPE_PRIORITY[task.task_type])

    def get_task(self, task_id: uuid.UUID) -> ImportTask | None:
        return self._session.get(ImportTask, task_id)

    def list_tasks(
        self,
        *,
        owner_id: uuid.UUID,
        connection_id: str | None = None,
    ) -> list[ImportTask]:
        stmt: Select[tuple[ImportTask]] = select(ImportTask).where(ImportTask.owner_id == owner_id)
        if connection_id is not None:
            stmt = stmt.where(ImportTask.connection_id == connection_id)
        stmt = stmt.order_by(ImportTask.created_at, ImportTask.id)
        return list(self._session.scalars(stmt).all())

    def list_runnable(
        self,
        *,
        owner_id: uuid.UUID | None = None,
        due_before: datetime | None = None,
    ) -> list[ImportTask]:
        """
        Return pending/retrying tasks, optionally scoped to one owner and to
        tasks whose retry backoff has elapsed by ``due_before``.
        """

        stmt: Select[tuple[ImportTask]] = select(ImportTask).where(
            ImportTask.status.in_(ImportTaskStatus.RUNNABLE)
        )
        if owner_id is not None:
            stmt = stmt.where(ImportTask.owner_id == owner_id)
        if due_before is not None:
            stmt = stmt.where(
                or_(
                    ImportTask.next_attempt_at.is_(None),
                    ImportTask.next_attempt_at <= due_before,
                )
            )
        stmt = stmt.order_by(ImportTask.created_at, ImportTask.id)
        return list(self._session.scalars(stmt).all())

    def list_stale_processing(self, *, updated_before: datetime) -> list[ImportTask]:
        stmt = (
            select(ImportTask)
            .where(
                ImportTask.status == ImportTaskStatus.PROCESSING,
                ImportTask.updated_at < updated_before,
            )
            .order_by(ImportTask.updated_at)
        )
        return list(self._session.scalars(stmt).all())

    def transition(
        self,
        *,
        task_id: uuid.UUID,
        status: str,
        progress_message: str | None = _UNSET,
        error_message: str | None = _UNSET,
        payload: dict[str, Any] | None = _UNSET,
        next_attempt_at: datetime | None = _UNSET,
    ) -> ImportTask:
        """
        Move a task to ``status`` and update the given columns in one write.

        Omitted keyword arguments leave their column untouched; passing None
        clears it.
        """

        if status not in ImportTaskStatus.ALL:
            raise ValueError(f"Unknown import task status '{status}'.")

        task = self._get_for_update(task_id)
        if status == ImportTaskStatus.COMPLETED:
            resulting_payload = task.payload if payload is _UNSET else payload
            if resulting_payload is None:
                raise ValueError(f"Import task {task_id} cannot complete without a payload.")

        now = utc_now()
        task.status = status
        if progress_message is not _UNSET:
            task.progress_message = progress_message
        if error_message is not _UNSET:
            task.error_message = error_message
        if payload is not _UNSET:
            task.payload = payload
        if next_attempt_at is not _UNSET:
            task.next_attempt_at = next_attempt_at

        if status == ImportTaskStatus.PROCESSING and task.started_at is None:
            task.started_at = now
        elif status == ImportTaskStatus.COMPLETED:
            task.completed_at = now
            task.error_message = None
            task.next_attempt_at = None

        self._session.flush()
        return task

    def increment_retry(self, *, task_id: uuid.UUID) -> int:
        """
        Atomically bump ``retry_count`` and return the new value.
        """

        result = self._session.execute(
            update(ImportTask)
            .where(ImportTask.id == task_id)
            .values(retry_count=ImportTask.retry_count + 1)
        )
        if result.rowcount == 0:
            raise TaskNotFoundError(task_id)

        count = self._session.scalar(select(ImportTask.retry_count).where(ImportTask.id == task_id))
        if count is None:
            raise TaskNotFoundError(task_id)
        return int(count)

    def reset_task(self, *, task_id: uuid.UUID, progress_message: str = "Retrying import...") -> ImportTask:
        """
        Return one task to ``pending`` with a fresh retry budget.
        """

        task = self._get_for_update(task_id)
        self._reset(task, progress_message=progress_message)
        self._session.flush()
        return task

    def reset_for_reimport(self, *, owner_id: uuid.UUID, connection_id: str) -> int:
        """
        Send every task of an owner/connection back to ``pending``.

        Identity is preserved: rows are cleared, never deleted.
        """

        tasks = self.list_tasks(owner_id=owner_id, connection_id=connection_id)
        if not tasks:
            raise NoTasksFoundError(owner_id, connection_id)

        for task in tasks:
            self._reset(task, progress_message=f"Preparing to reimport {task.task_type} data...")
            task.payload = None
            task.started_at = None
            task.completed_at = None

        self._session.flush()
        return len(tasks)

    def _reset(self, task: ImportTask, *, progress_message: str) -> None:
        task.status = ImportTaskStatus.PENDING
        task.progress_message = progress_message
        task.error_message = None
        task.retry_count = 0
        task.next_attempt_at = None

    def _get_for_update(self, task_id: uuid.UUID) -> ImportTask:
        stmt = select(ImportTask).where(ImportTask.id == task_id).with_for_update()
        task = self._session.scalars(stmt).one_or_none()
        if task is None:
            raise TaskNotFoundError(task_id)
        return task
