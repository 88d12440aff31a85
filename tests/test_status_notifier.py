from __future__ import annotations

import json
import logging
import uuid

import requests

from app.config import StatusNotifierSettings
from app.notifications.status_notifier import (
    CompositeStatusNotifier,
    InProcessStatusNotifier,
    LoggingStatusNotifier,
    TaskStatusEvent,
    WebhookStatusNotifier,
    build_status_notifier,
)


def _event(owner_id: uuid.UUID | None = None, status: str = "processing") -> TaskStatusEvent:
    return TaskStatusEvent(
        task_id=uuid.uuid4(),
        owner_id=owner_id or uuid.uuid4(),
        connection_id="conn-1",
        task_type="merchant",
        status=status,
        progress_message="Importing merchant data...",
        retry_count=0,
        max_retries=3,
    )


class _RecordingSession:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[dict] = []
        self._error = error

    def post(self, url, *, json, headers, timeout):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self._error is not None:
            raise self._error
        return _OkResponse()


class _OkResponse:
    def raise_for_status(self) -> None:
        return None


def test_event_to_dict_is_json_serializable() -> None:
    payload = _event().to_dict()

    encoded = json.dumps(payload)
    assert '"status": "processing"' in encoded
    assert payload["error_message"] is None


def test_in_process_notifier_filters_by_owner() -> None:
    notifier = InProcessStatusNotifier()
    owner_id = uuid.uuid4()
    mine: list[TaskStatusEvent] = []
    everything: list[TaskStatusEvent] = []
    notifier.subscribe(mine.append, owner_id=owner_id)
    unsubscribe = notifier.subscribe(everything.append)

    notifier.publish(_event(owner_id))
    notifier.publish(_event())
    unsubscribe()
    notifier.publish(_event(owner_id))

    assert len(mine) == 2
    assert len(everything) == 2


def test_in_process_subscriber_errors_are_contained() -> None:
    notifier = InProcessStatusNotifier()
    received: list[TaskStatusEvent] = []

    def _broken(event: TaskStatusEvent) -> None:
        raise RuntimeError("socket closed")

    notifier.subscribe(_broken)
    notifier.subscribe(received.append)

    notifier.publish(_event())

    assert len(received) == 1


def test_webhook_posts_event_with_secret() -> None:
    session = _RecordingSession()
    notifier = WebhookStatusNotifier(
        url="https://hooks.test/imports",
        secret="shh",
        timeout_seconds=2.0,
        session=session,
    )
    event = _event()

    notifier.publish(event)

    assert session.calls[0]["url"] == "https://hooks.test/imports"
    assert session.calls[0]["json"]["task_id"] == str(event.task_id)
    assert session.calls[0]["headers"]["Authorization"] == "Bearer shh"
    assert session.calls[0]["timeout"] == 2.0


def test_webhook_delivery_failure_is_logged(caplog) -> None:
    session = _RecordingSession(error=requests.ConnectionError("refused"))
    notifier = WebhookStatusNotifier(url="https://hooks.test/imports", session=session)

    with caplog.at_level(logging.WARNING):
        notifier.publish(_event())

    assert "Status webhook delivery failed" in caplog.text


def test_logging_notifier_writes_structured_line(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="app.notifications.status_notifier"):
        LoggingStatusNotifier().publish(_event(status="completed"))

    line = json.loads(caplog.records[-1].getMessage())
    assert line["event"] == "import_task_status"
    assert line["status"] == "completed"


def test_composite_continues_after_failing_notifier() -> None:
    class _Broken:
        def publish(self, event) -> None:
            raise RuntimeError("down")

    received: list[TaskStatusEvent] = []

    class _Recorder:
        def publish(self, event) -> None:
            received.append(event)

    CompositeStatusNotifier([_Broken(), _Recorder()]).publish(_event())

    assert len(received) == 1


def test_build_status_notifier_honours_settings() -> None:
    notifier = build_status_notifier(
        StatusNotifierSettings(webhook_url="https://hooks.test/imports", log_events=False)
    )

    kinds = [type(item).__name__ for item in notifier._notifiers]
    assert kinds == ["WebhookStatusNotifier", "InProcessStatusNotifier"]
