"""
app/schemas package marker.
"""

from app.schemas.import_tasks import (
    ImportAcceptedResponse,
    ImportRunSummaryResponse,
    ImportTaskListResponse,
    ImportTaskStatusResponse,
    TaskRunOutcomeResponse,
)

__all__ = [
    "ImportAcceptedResponse",
    "ImportRunSummaryResponse",
    "ImportTaskListResponse",
    "ImportTaskStatusResponse",
    "TaskRunOutcomeResponse",
]
