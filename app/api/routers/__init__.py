"""
app/api/routers package marker.
"""

from app.api.routers.import_tasks import router as import_tasks_router

__all__ = [
    "import_tasks_router",
]
