"""
app/scheduler/jobs.py

APScheduler-based re-invocation of the import orchestrator.

Schedule
--------
  run_pending_imports   : every IMPORT_POLL_INTERVAL_SECONDS (default 60s);
                          picks up new tasks and retries whose backoff elapsed.
  recover_stale_imports : every IMPORT_STALE_SWEEP_INTERVAL_SECONDS (default 300s);
                          applies the retry policy to tasks orphaned in
                          ``processing`` for longer than
                          IMPORT_STALE_PROCESSING_MINUTES.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import ImportProcessorSettings, get_import_processor_settings
from app.services.import_orchestrator_service import get_import_orchestrator_service

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: pending import runner
# ---------------------------------------------------------------------------


def run_pending_imports() -> None:
    """
    Execute every due pending task across all owners.
    """
    try:
        summary = get_import_orchestrator_service().run_all_pending()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: run_pending_imports failed: %s", exc)
        return

    if summary.outcomes or summary.busy_owner_ids:
        logger.info(
            "Scheduler: run_pending_imports completed=%s retry_scheduled=%s failed=%s busy_owners=%s",
            summary.completed_count,
            summary.retry_scheduled_count,
            summary.failed_count,
            len(summary.busy_owner_ids),
        )


# ---------------------------------------------------------------------------
# Job: stale processing sweep
# ---------------------------------------------------------------------------


def recover_stale_imports() -> None:
    """
    Return tasks whose worker vanished mid-run to the retry policy.
    """
    try:
        outcomes = get_import_orchestrator_service().recover_stale_tasks()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: recover_stale_imports failed: %s", exc)
        return

    if outcomes:
        logger.info("Scheduler: recover_stale_imports recovered=%s", len(outcomes))


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(settings: ImportProcessorSettings | None = None) -> BackgroundScheduler:
    """
    Build and register the import jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    resolved = settings or get_import_processor_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_pending_imports,
        trigger="interval",
        seconds=resolved.poll_interval_seconds,
        id="run_pending_imports",
        name="Run pending import tasks",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=resolved.poll_interval_seconds,
    )
    scheduler.add_job(
        recover_stale_imports,
        trigger="interval",
        seconds=resolved.stale_sweep_interval_seconds,
        id="recover_stale_imports",
        name="Recover stale import tasks",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=resolved.stale_sweep_interval_seconds,
    )

    return scheduler
