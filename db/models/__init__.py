"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.business_record import BusinessRecord
from db.models.import_task import (
    TASK_TYPE_PRIORITY,
    ImportTask,
    ImportTaskStatus,
    ImportTaskType,
)

__all__ = [
    "BusinessRecord",
    "ImportTask",
    "ImportTaskStatus",
    "ImportTaskType",
    "TASK_TYPE_PRIORITY",
]
