"""
Import task trigger and status endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from app.schemas.import_tasks import (
    ImportAcceptedResponse,
    ImportRunSummaryResponse,
    ImportTaskListResponse,
    ImportTaskStatusResponse,
    TaskRunOutcomeResponse,
)
from app.services.import_orchestrator_service import (
    FastAPIBackgroundTaskExecutor,
    ImportOrchestratorService,
    ImportRunSummary,
    InvalidStateError,
    TaskRunOutcome,
    get_import_orchestrator_service,
)
from db.models.import_task import ImportTask
from db.repositories.errors import ImportRepositoryError, NoTasksFoundError, TaskNotFoundError

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post(
    "/owners/{owner_id}/connections/{connection_id}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportAcceptedResponse,
)
def start_import(
    owner_id: UUID,
    connection_id: str,
    background_tasks: BackgroundTasks,
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> ImportAcceptedResponse:
    tasks = orchestrator.start_import(
        owner_id=owner_id,
        connection_id=connection_id,
        executor=FastAPIBackgroundTaskExecutor(background_tasks),
    )
    return ImportAcceptedResponse(
        owner_id=owner_id,
        connection_id=connection_id,
        tasks=[_to_status_response(task) for task in tasks],
    )


@router.post(
    "/owners/{owner_id}/connections/{connection_id}/reimport",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportAcceptedResponse,
)
def reimport(
    owner_id: UUID,
    connection_id: str,
    background_tasks: BackgroundTasks,
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> ImportAcceptedResponse:
    try:
        tasks = orchestrator.reset_for_reimport(
            owner_id=owner_id,
            connection_id=connection_id,
            executor=FastAPIBackgroundTaskExecutor(background_tasks),
        )
    except NoTasksFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return ImportAcceptedResponse(
        owner_id=owner_id,
        connection_id=connection_id,
        tasks=[_to_status_response(task) for task in tasks],
    )


@router.post("/tasks/{task_id}/run", response_model=TaskRunOutcomeResponse)
def run_task(
    task_id: UUID,
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> TaskRunOutcomeResponse:
    try:
        outcome = orchestrator.run_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ImportRepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _to_outcome_response(outcome)


@router.post(
    "/tasks/{task_id}/retry",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportTaskStatusResponse,
)
def retry_task(
    task_id: UUID,
    background_tasks: BackgroundTasks,
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> ImportTaskStatusResponse:
    try:
        task = orchestrator.retry_task(
            task_id=task_id,
            executor=FastAPIBackgroundTaskExecutor(background_tasks),
        )
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _to_status_response(task)


@router.post("/run-pending", response_model=ImportRunSummaryResponse)
def run_pending(
    owner_id: UUID | None = Query(default=None, description="Optional owner scope"),
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> ImportRunSummaryResponse:
    try:
        summary = orchestrator.run_all_pending(owner_id)
    except ImportRepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return _to_summary_response(summary)


@router.get("/tasks", response_model=ImportTaskListResponse)
def list_tasks(
    owner_id: UUID = Query(..., description="Owner whose import tasks are listed"),
    connection_id: str | None = Query(default=None, description="Optional provider connection filter"),
    orchestrator: ImportOrchestratorService = Depends(get_import_orchestrator_service),
) -> ImportTaskListResponse:
    tasks = orchestrator.list_tasks(owner_id=owner_id, connection_id=connection_id)
    return ImportTaskListResponse(tasks=[_to_status_response(task) for task in tasks])


def _to_status_response(task: ImportTask) -> ImportTaskStatusResponse:
    return ImportTaskStatusResponse(
        task_id=task.id,
        owner_id=task.owner_id,
        connection_id=task.connection_id,
        task_type=task.task_type,
        status=task.status,
        progress_message=task.progress_message,
        error_message=task.error_message,
        retry_count=task.retry_count,
        max_retries=task.max_retries,
        payload=task.payload,
        next_attempt_at=task.next_attempt_at,
        created_at=task.created_at,
        updated_at=task.updated_at,
        started_at=task.started_at,
        completed_at=task.completed_at,
    )


def _to_outcome_response(outcome: TaskRunOutcome) -> TaskRunOutcomeResponse:
    return TaskRunOutcomeResponse(
        task_id=outcome.task_id,
        owner_id=outcome.owner_id,
        task_type=outcome.task_type,
        status=outcome.status,
        retry_count=outcome.retry_count,
        max_retries=outcome.max_retries,
        progress_message=outcome.progress_message,
        error_message=outcome.error_message,
        succeeded=outcome.succeeded,
    )


def _to_summary_response(summary: ImportRunSummary) -> ImportRunSummaryResponse:
    return ImportRunSummaryResponse(
        completed_count=summary.completed_count,
        retry_scheduled_count=summary.retry_scheduled_count,
        failed_count=summary.failed_count,
        outcomes=[_to_outcome_response(outcome) for outcome in summary.outcomes],
        skipped_task_ids=summary.skipped_task_ids,
        busy_owner_ids=summary.busy_owner_ids,
    )
