"""
app/services package marker.
"""

from app.services.import_orchestrator_service import (
    FastAPIBackgroundTaskExecutor,
    ImportInterruptedError,
    ImportOrchestrationError,
    ImportOrchestratorService,
    ImportRunSummary,
    InvalidStateError,
    TaskRunOutcome,
    get_import_orchestrator_service,
)
from app.services.result_sink import BusinessRecordSink, SinkError
from app.services.task_queue import OwnerLockRegistry, OwnerTaskQueue, QueuedTask

__all__ = [
    "BusinessRecordSink",
    "FastAPIBackgroundTaskExecutor",
    "ImportInterruptedError",
    "ImportOrchestrationError",
    "ImportOrchestratorService",
    "ImportRunSummary",
    "InvalidStateError",
    "OwnerLockRegistry",
    "OwnerTaskQueue",
    "QueuedTask",
    "SinkError",
    "TaskRunOutcome",
    "get_import_orchestrator_service",
]
