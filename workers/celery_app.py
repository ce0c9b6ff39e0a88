# =============================================================================
# workers/celery_app.py - Settlement Worker Application
# =============================================================================
# The Celery app that runs settlement batches. Beat enqueues
# run_settlement_batch once a day (schedule in workers/config.py) and the
# API enqueues the same tasks on demand.
#
# Usage:
#   celery -A workers.celery_app worker --loglevel=info -Q default,settlement
#   celery -A workers.celery_app beat --loglevel=info
# =============================================================================

import logging
from urllib.parse import urlsplit

from celery import Celery
from celery.signals import beat_init, task_failure, task_postrun, task_prerun

from app.config import settings
from app.exceptions import SettlementException

logger = logging.getLogger(__name__)


def broker_label(url: str) -> str:
    """Host, port and db of a Redis URL, without credentials."""
    parts = urlsplit(url)
    host = parts.hostname or "localhost"
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


def create_celery_app() -> Celery:
    """
    Build the settlement Celery app.

    Broker and result backend both point at REDIS_URL; queues, routing
    and the beat schedule come from CeleryConfig.
    """
    app = Celery(
        "settlement_worker",
        broker=settings.REDIS_URL,
        backend=settings.REDIS_URL,
        include=["workers.tasks"],
    )
    app.config_from_object("workers.config:CeleryConfig")

    logger.info(f"Settlement worker app using broker {broker_label(settings.REDIS_URL)}")
    return app


celery_app = create_celery_app()


# =============================================================================
# Signals
# =============================================================================

@beat_init.connect
def log_settlement_schedule(sender=None, **extra):
    """Log when beat will next enqueue the daily batch."""
    logger.info(
        f"Daily settlement batch scheduled at "
        f"{settings.SETTLEMENT_SCHEDULE_HOUR:02d}:{settings.SETTLEMENT_SCHEDULE_MINUTE:02d} UTC"
    )


@task_prerun.connect
def log_task_start(sender=None, task_id=None, task=None, **extra):
    logger.info(f"{task.name} started [{task_id}]")


@task_postrun.connect
def log_task_result(sender=None, task_id=None, task=None, retval=None, state=None, **extra):
    """Log the end of a task, with batch counts when the task returned a report."""
    if isinstance(retval, dict) and "processed" in retval:
        logger.info(
            f"{task.name} finished [{task_id}] {state}: "
            f"{retval.get('processed', 0)} processed, {retval.get('failed', 0)} failed"
        )
    else:
        logger.info(f"{task.name} finished [{task_id}] {state}")


@task_failure.connect
def log_task_failure(sender=None, task_id=None, exception=None, **extra):
    """Log a failed task, keeping the settlement error code when there is one."""
    if isinstance(exception, SettlementException):
        logger.error(f"{sender.name} failed [{task_id}] {exception.code}: {exception.message}")
    else:
        logger.error(f"{sender.name} failed [{task_id}]: {exception!r}")
