# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# the settlement batch.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions (settlement batch, single campaign)
# - config.py: Worker settings and the beat schedule
#
# Usage:
#   # Start worker + scheduler
#   celery -A workers.celery_app worker --loglevel=info -Q default,settlement
#   celery -A workers.celery_app beat --loglevel=info
#
#   # Submit task (from API)
#   from workers.tasks import run_settlement_batch
#   result = run_settlement_batch.delay()
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
