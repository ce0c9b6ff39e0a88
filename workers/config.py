# =============================================================================
# workers/config.py - Celery Worker Configuration
# =============================================================================
# Settings specific to Celery workers, including the beat schedule that
# triggers the daily settlement batch.
# =============================================================================

from celery.schedules import crontab

from app.config import settings


class CeleryConfig:
    """
    Celery configuration settings.

    These are applied to the Celery app via app.config_from_object().
    """

    # -------------------------------------------------------------------------
    # Broker Settings (Redis)
    # -------------------------------------------------------------------------

    broker_url = settings.REDIS_URL
    result_backend = settings.REDIS_URL

    # -------------------------------------------------------------------------
    # Task Settings
    # -------------------------------------------------------------------------

    # Acknowledge tasks after they complete (not before)
    # A redelivered batch is safe: every step is idempotent
    task_acks_late = True

    # Only prefetch one task at a time
    worker_prefetch_multiplier = 1

    # Batch reports are kept for a day so the API can show yesterday's run
    result_expires = 86400

    # A batch touches many campaigns sequentially
    task_time_limit = 1800
    task_soft_time_limit = 1500

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    # Use JSON for task serialization (safer than pickle)
    task_serializer = "json"
    result_serializer = "json"
    accept_content = ["json"]

    # -------------------------------------------------------------------------
    # Task Routing
    # -------------------------------------------------------------------------

    task_queues = {
        "default": {
            "exchange": "default",
            "routing_key": "default",
        },
        "settlement": {
            "exchange": "settlement",
            "routing_key": "settlement",
        },
    }

    # Settlement runs on its own queue so a slow batch never blocks the default queue
    task_routes = {
        "workers.tasks.run_settlement_batch": {"queue": "settlement"},
        "workers.tasks.settle_campaign": {"queue": "settlement"},
    }

    task_default_queue = "default"

    # -------------------------------------------------------------------------
    # Beat Schedule
    # -------------------------------------------------------------------------

    beat_schedule = {
        "daily-settlement-batch": {
            "task": "workers.tasks.run_settlement_batch",
            "schedule": crontab(
                hour=settings.SETTLEMENT_SCHEDULE_HOUR,
                minute=settings.SETTLEMENT_SCHEDULE_MINUTE,
            ),
        },
    }

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    # Send task events for monitoring (Flower, etc.)
    worker_send_task_events = True
    task_send_sent_event = True

    # -------------------------------------------------------------------------
    # Timezone
    # -------------------------------------------------------------------------

    timezone = "UTC"
    enable_utc = True
