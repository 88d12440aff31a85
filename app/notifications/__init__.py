"""
app/notifications package marker.
"""

from app.notifications.status_notifier import (
    CompositeStatusNotifier,
    InProcessStatusNotifier,
    LoggingStatusNotifier,
    StatusNotifier,
    TaskStatusEvent,
    WebhookStatusNotifier,
    build_status_notifier,
    get_in_process_status_notifier,
)

__all__ = [
    "CompositeStatusNotifier",
    "InProcessStatusNotifier",
    "LoggingStatusNotifier",
    "StatusNotifier",
    "TaskStatusEvent",
    "WebhookStatusNotifier",
    "build_status_notifier",
    "get_in_process_status_notifier",
]
