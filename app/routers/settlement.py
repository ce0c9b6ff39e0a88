# =============================================================================
# app/routers/settlement.py - Settlement Trigger Endpoints
# =============================================================================
# HTTP surface for the external scheduler and for operators:
# - POST /runs                       enqueue (or, with ?sync=true, run) a batch
# - GET  /runs/{task_id}             status / report of an enqueued batch
# - POST /campaigns/{id}/settle      settle one campaign now
#
# All endpoints require the X-Settlement-Secret header.
# =============================================================================

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel

from app.dependencies import OrchestratorDep, verify_settlement_secret

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_settlement_secret)])


# =============================================================================
# Response Models
# =============================================================================

class RunSubmitResponse(BaseModel):
    """Response model for an enqueued batch."""
    task_id: str
    status: str
    message: str


class RunStatusResponse(BaseModel):
    """Response model for batch task status."""
    task_id: str
    status: str
    progress: int | None = None
    message: str | None = None
    report: dict[str, Any] | None = None
    error: str | None = None


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/runs")
def trigger_run(
    orchestrator: OrchestratorDep,
    sync: Annotated[bool, Query(description="Run inline and return the batch report")] = False,
):
    """
    Start a settlement batch.

    By default the batch is queued on the settlement worker and a task id is
    returned. With ?sync=true the batch runs in this request and the batch
    report is returned directly.
    """
    if sync:
        logger.info("Running settlement batch inline")
        report = orchestrator.run_batch()
        return report.to_summary()

    from workers.tasks import run_settlement_batch

    task = run_settlement_batch.delay()
    logger.info(f"Queued settlement batch: {task.id}")
    return RunSubmitResponse(
        task_id=task.id,
        status="PENDING",
        message="Settlement batch queued",
    )


@router.get("/runs/{task_id}", response_model=RunStatusResponse)
def get_run_status(
    task_id: Annotated[str, Path(description="Celery task ID")]
):
    """
    Get the status of a queued settlement batch.

    - PENDING / STARTED: waiting or starting
    - PROGRESS: includes progress percentage and current campaign
    - SUCCESS: includes the batch report
    - FAILURE: includes the error (e.g. the campaign list couldn't be fetched)
    """
    try:
        from workers.celery_app import celery_app

        result = celery_app.AsyncResult(task_id)
        response = RunStatusResponse(task_id=task_id, status=result.status)

        if result.status == "PROGRESS":
            info = result.info or {}
            response.progress = info.get("percent", 0)
            response.message = info.get("message", "Processing...")

        elif result.status == "SUCCESS":
            response.report = result.result
            response.progress = 100
            response.message = "Complete"

        elif result.status == "FAILURE":
            response.error = str(result.result) if result.result else "Unknown error"
            response.message = "Failed"

        elif result.status in ("PENDING", "STARTED"):
            response.progress = 0
            response.message = "Waiting in queue..." if result.status == "PENDING" else "Starting..."

        return response

    except Exception as e:
        logger.error(f"Error getting settlement run status: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get run status: {e}")


@router.post("/campaigns/{campaign_id}/settle")
def settle_campaign(
    orchestrator: OrchestratorDep,
    campaign_id: Annotated[str, Path(description="Design/campaign ID")],
    force: Annotated[bool, Query(description="Ignore the settlement window")] = False,
):
    """
    Settle one campaign now.

    Campaigns already in production get their leftover refunds and payout
    retried instead. Returns the campaign's outcome.
    """
    outcome = orchestrator.settle_campaign(campaign_id, force=force)
    return outcome.model_dump(mode="json")
