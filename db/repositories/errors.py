"""
Repository-layer exceptions for import task and business record flows.
"""

from __future__ import annotations

import uuid


class ImportRepositoryError(Exception):
    """Base exception for import persistence failures."""


class NotFoundError(ImportRepositoryError):
    """Raised when a referenced row vanished or never existed."""


class TaskNotFoundError(NotFoundError):
    """Raised when an import task does not exist."""

    def __init__(self, task_id: uuid.UUID) -> None:
        self.task_id = task_id
        super().__init__(f"Import task not found: {task_id}")


class NoTasksFoundError(ImportRepositoryError):
    """Raised when a reimport is requested without any prior import history."""

    def __init__(self, owner_id: uuid.UUID, connection_id: str) -> None:
        self.owner_id = owner_id
        self.connection_id = connection_id
        super().__init__(
            f"No import tasks found for owner {owner_id} and connection {connection_id}. "
            "Please reconnect the provider account to start a new import."
        )
