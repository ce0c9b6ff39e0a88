# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Defines the settlement background tasks.
#
# Tasks:
# - run_settlement_batch: Daily batch (scheduled by beat, or triggered via API)
# - settle_campaign: Settle or follow up a single campaign on demand
# =============================================================================

import logging
from typing import Any

from celery import current_task, shared_task

from app.exceptions import SettlementException

logger = logging.getLogger(__name__)


# =============================================================================
# Task State Updates
# =============================================================================

def update_progress(current: int, total: int, message: str = "Processing..."):
    """
    Update task progress for polling.

    Args:
        current: Current step number
        total: Total steps
        message: Status message
    """
    if current_task:
        current_task.update_state(
            state="PROGRESS",
            meta={
                "current": current,
                "total": total,
                "percent": int((current / total) * 100) if total else 100,
                "message": message,
            }
        )


def _build_orchestrator():
    from core.services.settlement_service import CampaignOrchestrator

    return CampaignOrchestrator.from_settings()


# =============================================================================
# Settlement Batch Task
# =============================================================================

@shared_task(bind=True, name="workers.tasks.run_settlement_batch")
def run_settlement_batch(self) -> dict[str, Any]:
    """
    Run one settlement batch over every eligible campaign.

    Triggered daily by Celery beat, or on demand from
    POST /api/v1/settlement/runs.

    Returns:
        BatchReport summary dict:
        - processed / succeeded / failed: counts
        - campaigns: per-campaign outcomes
        - errors: [{campaign_id, error}] for failed campaigns

    Raises:
        TransientStoreError: If the eligible campaign list can't be fetched
            (the task is marked FAILURE and the next scheduled run retries)
    """
    logger.info("Starting settlement batch")

    try:
        orchestrator = _build_orchestrator()
        report = orchestrator.run_batch(progress_callback=update_progress)
    except Exception as e:
        logger.exception(f"Settlement batch failed: {e}")
        raise

    summary = report.to_summary()
    logger.info(
        f"Settlement batch done: {summary['processed']} processed, "
        f"{summary['succeeded']} succeeded, {summary['failed']} failed"
    )
    return summary


# =============================================================================
# Single Campaign Task
# =============================================================================

@shared_task(bind=True, name="workers.tasks.settle_campaign")
def settle_campaign(
    self,
    campaign_id: str,
    force: bool = False,
) -> dict[str, Any]:
    """
    Settle (or follow up) one campaign.

    Args:
        campaign_id: The design/campaign id
        force: Settle even if the settlement window hasn't elapsed

    Returns:
        Dict with:
        - success: bool
        - outcome: CampaignOutcome dict (if the campaign was found)
        - error / code: when the campaign couldn't be loaded
    """
    logger.info(f"Settling campaign {campaign_id} (force={force})")
    update_progress(1, 2, f"Settling campaign {campaign_id}...")

    try:
        orchestrator = _build_orchestrator()
        outcome = orchestrator.settle_campaign(campaign_id, force=force)
    except SettlementException as e:
        logger.error(f"Could not settle campaign {campaign_id}: {e}")
        return {
            "success": False,
            "error": e.message,
            "code": e.code,
        }

    update_progress(2, 2, "Complete")
    return {
        "success": outcome.outcome.value == "success",
        "outcome": outcome.model_dump(mode="json"),
    }
