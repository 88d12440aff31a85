"""
Schemas for import task trigger and status endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ImportTaskStatusResponse(BaseModel):
    task_id: UUID
    owner_id: UUID
    connection_id: str
    task_type: str
    status: str
    progress_message: str | None = None
    error_message: str | None = None
    retry_count: int
    max_retries: int
    payload: dict[str, Any] | None = None
    next_attempt_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ImportTaskListResponse(BaseModel):
    tasks: list[ImportTaskStatusResponse] = Field(default_factory=list)


class ImportAcceptedResponse(BaseModel):
    owner_id: UUID
    connection_id: str
    tasks: list[ImportTaskStatusResponse] = Field(default_factory=list)


class TaskRunOutcomeResponse(BaseModel):
    task_id: UUID
    owner_id: UUID
    task_type: str
    status: str
    retry_count: int
    max_retries: int
    progress_message: str | None = None
    error_message: str | None = None
    succeeded: bool


class ImportRunSummaryResponse(BaseModel):
    completed_count: int
    retry_scheduled_count: int
    failed_count: int
    outcomes: list[TaskRunOutcomeResponse] = Field(default_factory=list)
    skipped_task_ids: list[UUID] = Field(default_factory=list)
    busy_owner_ids: list[UUID] = Field(default_factory=list)
