"""
app/notifications/status_notifier.py

Outbound, fire-and-forget delivery of import task status changes.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

import requests

from app.config import StatusNotifierSettings, get_status_notifier_settings
from app.logging_utils import log_event
from db.base import utc_now
from db.models.import_task import ImportTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskStatusEvent:
    """
    One import task transition as seen by realtime subscribers.
    """

    task_id: uuid.UUID
    owner_id: uuid.UUID
    connection_id: str
    task_type: str
    status: str
    progress_message: str | None
    error_message: str | None = None
    retry_count: int = 0
    max_retries: int = 0
    occurred_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_task(cls, task: ImportTask) -> TaskStatusEvent:
        return cls(
            task_id=task.id,
            owner_id=task.owner_id,
            connection_id=task.connection_id,
            task_type=task.task_type,
            status=task.status,
            progress_message=task.progress_message,
            error_message=task.error_message,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "owner_id": str(self.owner_id),
            "connection_id": self.connection_id,
            "task_type": self.task_type,
            "status": self.status,
            "progress_message": self.progress_message,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "occurred_at": self.occurred_at.isoformat(),
        }


class StatusNotifier(Protocol):
    def publish(self, event: TaskStatusEvent) -> None:
        ...


class LoggingStatusNotifier:
    """Writes every event as a structured log line."""

    def publish(self, event: TaskStatusEvent) -> None:
        log_event(logger, logging.INFO, "import_task_status", **event.to_dict())


class WebhookStatusNotifier:
    """
    POSTs each event as JSON to a subscriber URL.

    Delivery failures are logged and dropped; the task state in the store
    stays the source of truth.
    """

    def __init__(
        self,
        *,
        url: str,
        timeout_seconds: float = 5.0,
        secret: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._secret = secret
        self._session = session or requests.Session()

    def publish(self, event: TaskStatusEvent) -> None:
        headers = {"Content-Type": "application/json"}
        if self._secret:
            headers["Authorization"] = f"Bearer {self._secret}"
        try:
            response = self._session.post(
                self._url,
                json=event.to_dict(),
                headers=headers,
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "Status webhook delivery failed task_id=%s status=%s error=%s",
                event.task_id,
                event.status,
                exc,
            )


class InProcessStatusNotifier:
    """
    Fans events out to in-process subscriber callbacks, optionally filtered by owner.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, tuple[uuid.UUID | None, Callable[[TaskStatusEvent], None]]] = {}
        self._next_token = 0

    def subscribe(
        self,
        callback: Callable[[TaskStatusEvent], None],
        *,
        owner_id: uuid.UUID | None = None,
    ) -> Callable[[], None]:
        """
        Register ``callback``; returns a function that unsubscribes it.
        """

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = (owner_id, callback)

        def _unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return _unsubscribe

    def publish(self, event: TaskStatusEvent) -> None:
        with self._lock:
            targets = [
                callback
                for owner_filter, callback in self._subscribers.values()
                if owner_filter is None or owner_filter == event.owner_id
            ]
        for callback in targets:
            try:
                callback(event)
            except Exception:
                logger.exception("Status subscriber failed task_id=%s", event.task_id)


class CompositeStatusNotifier:
    def __init__(self, notifiers: Sequence[StatusNotifier]) -> None:
        self._notifiers = list(notifiers)

    def publish(self, event: TaskStatusEvent) -> None:
        for notifier in self._notifiers:
            try:
                notifier.publish(event)
            except Exception:
                logger.exception(
                    "Status notifier %s failed task_id=%s",
                    type(notifier).__name__,
                    event.task_id,
                )


@lru_cache(maxsize=1)
def get_in_process_status_notifier() -> InProcessStatusNotifier:
    return InProcessStatusNotifier()


def build_status_notifier(settings: StatusNotifierSettings | None = None) -> CompositeStatusNotifier:
    """
    Assemble the configured notifiers: structured logs, the optional webhook
    and the shared in-process feed.
    """

    resolved = settings or get_status_notifier_settings()
    notifiers: list[StatusNotifier] = []
    if resolved.log_events:
        notifiers.append(LoggingStatusNotifier())
    if resolved.webhook_url:
        notifiers.append(
            WebhookStatusNotifier(
                url=resolved.webhook_url,
                timeout_seconds=resolved.timeout_seconds,
                secret=resolved.webhook_secret,
            )
        )
    notifiers.append(get_in_process_status_notifier())
    return CompositeStatusNotifier(notifiers)
