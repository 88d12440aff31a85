"""
db/models/import_task.py

Import task model: one durable unit of provider import work per
(owner, connection, data kind).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONType, TimestampMixin


class ImportTaskType:
    MERCHANT = "merchant"
    LOCATIONS = "locations"
    CATALOG = "catalog"

    ALL = (MERCHANT, LOCATIONS, CATALOG)


# Lower runs first within one owner.
TASK_TYPE_PRIORITY: dict[str, int] = {
    ImportTaskType.MERCHANT: 0,
    ImportTaskType.LOCATIONS: 1,
    ImportTaskType.CATALOG: 2,
}


class ImportTaskStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED, RETRYING)
    RUNNABLE = (PENDING, RETRYING)


DEFAULT_MAX_RETRIES = 3


class ImportTask(Base, TimestampMixin):
    __tablename__ = "import_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        comment="Account on whose behalf data is imported",
    )
    connection_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Credential store connection identifier for the provider",
    )
    task_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="merchant, locations, catalog",
    )
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImportTaskStatus.PENDING,
    )
    progress_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Human-readable status message for UI display",
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Imported data, set when the task completes",
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
    )
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Earliest time a scheduled retry may run; null means due now",
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "connection_id",
            "task_type",
            name="uq_import_tasks_owner_connection_type",
        ),
        Index("ix_import_tasks_owner_id", "owner_id"),
        Index("ix_import_tasks_connection_id", "connection_id"),
        Index("ix_import_tasks_status", "status"),
        Index("ix_import_tasks_owner_id_status", "owner_id", "status"),
        Index("ix_import_tasks_created_at", "created_at"),
    )

    @property
    def is_runnable(self) -> bool:
        return self.status in ImportTaskStatus.RUNNABLE

    def __repr__(self) -> str:
        return (
            f"<ImportTask id={self.id} owner_id={self.owner_id} "
            f"task_type={self.task_type!r} status={self.status!r}>"
        )
