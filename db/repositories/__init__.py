"""
Repository layer exports.
"""

from db.repositories.business_record_repository import BusinessRecordRepository
from db.repositories.errors import (
    ImportRepositoryError,
    NoTasksFoundError,
    NotFoundError,
    TaskNotFoundError,
)
from db.repositories.import_task_repository import ImportTaskRepository

__all__ = [
    "BusinessRecordRepository",
    "ImportTaskRepository",
    "ImportRepositoryError",
    "NotFoundError",
    "NoTasksFoundError",
    "TaskNotFoundError",
]
