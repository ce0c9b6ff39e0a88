# =============================================================================
# core/models/settlement.py - Settlement Result Schemas
# =============================================================================
# These models carry the results of one settlement run:
# - BuyerCredit / BuyerCreditFailure: per-buyer refund reconciliation outcome
# - RefundResult: what the refund reconciler did for one campaign
# - PayoutResult: what the payout calculator decided (and transferred)
# - CampaignOutcome: one line of the batch report
# - BatchReport: the transient, per-run summary (never persisted)
#
# Example:
#   report = orchestrator.run_batch()
#   print(report.processed, report.error_count)
#   for outcome in report.outcomes:
#       print(outcome.campaign_id, outcome.outcome)
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationTemplate(str, Enum):
    """Email templates the pipeline queues."""
    REFUND_ISSUED = "REFUND_ISSUED"
    PAYOUT_SENT = "PAYOUT_SENT"


class PayoutStatus(str, Enum):
    """
    Payout calculation result.

    - ready: full computed amount is payable
    - capped: amount truncated to the designer's remaining quarterly allowance
    - ineligible: nothing to pay (no orders, no margin, no payout destination,
                  or already paid out)
    """
    READY = "ready"
    CAPPED = "capped"
    INELIGIBLE = "ineligible"


class Outcome(str, Enum):
    """Per-campaign result in the batch report."""
    SUCCESS = "success"
    ERROR = "error"


class SettlementPhase(str, Enum):
    """
    Which pass of the batch touched the campaign.

    - settlement: tier settled, refunds reconciled, moved to production
    - follow_up: campaign was already settled; leftover refunds and the
                 payout were retried
    """
    SETTLEMENT = "settlement"
    FOLLOW_UP = "follow_up"


# =============================================================================
# Refund Reconciliation
# =============================================================================

class BuyerCredit(BaseModel):
    """Credit successfully applied to one buyer."""

    buyer_id: str
    amount: Decimal
    order_ids: list[str] = Field(default_factory=list)
    new_balance: Decimal | None = None
    flagged: bool = Field(
        default=True,
        description="False if the credit landed but the refund-issued flag could not be set"
    )


class BuyerCreditFailure(BaseModel):
    """A buyer whose credit could not be applied this run."""

    buyer_id: str
    amount: Decimal
    order_ids: list[str] = Field(default_factory=list)
    error: str


class RefundResult(BaseModel):
    """
    Result of reconciling refunds for one campaign.

    affected_orders lists orders whose credit was applied this run; orders
    of failed buyers stay unflagged and are picked up again next run.
    """

    campaign_id: str
    settled_tier: int
    refund_per_unit: Decimal = Decimal("0")
    affected_orders: list[str] = Field(default_factory=list)
    credits: list[BuyerCredit] = Field(default_factory=list)
    failures: list[BuyerCreditFailure] = Field(default_factory=list)
    unattributed_orders: list[str] = Field(
        default_factory=list,
        description="Charged orders with no buyer on record; left unflagged"
    )

    @property
    def total_credited(self) -> Decimal:
        """Sum of all credits applied this run."""
        return sum((c.amount for c in self.credits), Decimal("0"))

    @property
    def component_errors(self) -> list[str]:
        """Human-readable per-buyer problems for the batch report."""
        errors = [f"credit for buyer {f.buyer_id} failed: {f.error}" for f in self.failures]
        errors.extend(
            f"credit for buyer {c.buyer_id} applied but orders {c.order_ids} not flagged"
            for c in self.credits if not c.flagged
        )
        if self.unattributed_orders:
            errors.append(f"orders {self.unattributed_orders} have no buyer; no credit issued")
        return errors


# =============================================================================
# Payout
# =============================================================================

class PayoutResult(BaseModel):
    """
    Result of calculating (and possibly disbursing) a designer payout.

    transfer_id is set only when a transfer was confirmed by the provider
    (or found on an earlier completed payout record).
    """

    campaign_id: str
    status: PayoutStatus
    payout_amount: Decimal = Decimal("0")
    designer_id: str | None = None
    units: int = 0
    royalty_rate: Decimal | None = None
    uncapped_amount: Decimal | None = None
    reason: str | None = Field(
        default=None,
        description="Why the payout is ineligible or capped"
    )
    transfer_id: str | None = None
    completed: bool = Field(
        default=False,
        description="True once the campaign has been moved to completed"
    )


# =============================================================================
# Batch Report
# =============================================================================

class CampaignOutcome(BaseModel):
    """One campaign's line in the batch report."""

    campaign_id: str
    outcome: Outcome
    phase: SettlementPhase = SettlementPhase.SETTLEMENT
    error_detail: str | None = None
    error_code: str | None = None
    final_status: str | None = None
    settled_tier: int | None = None
    refund_per_unit: Decimal | None = None
    buyers_credited: int = 0
    amount_credited: Decimal = Decimal("0")
    payout_status: PayoutStatus | None = None
    payout_amount: Decimal | None = None
    transfer_id: str | None = None
    note: str | None = Field(
        default=None,
        description="Why nothing was done (window still open, already settled, claimed elsewhere)"
    )
    component_errors: list[str] = Field(default_factory=list)


class BatchReport(BaseModel):
    """
    Summary of one settlement batch run.

    Lists every campaign attempted with its outcome. Produced fresh each run
    and returned to the caller (Celery result, HTTP response, CLI output).
    """

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    outcomes: list[CampaignOutcome] = Field(default_factory=list)
    pass_errors: list[str] = Field(
        default_factory=list,
        description="Follow-up passes whose campaign list could not be fetched"
    )

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome == Outcome.SUCCESS)

    @property
    def error_count(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome == Outcome.ERROR)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0 or bool(self.pass_errors)

    def record(self, outcome: CampaignOutcome) -> None:
        """Append a campaign outcome."""
        self.outcomes.append(outcome)

    def finish(self) -> BatchReport:
        """Stamp the finish time and return self."""
        self.finished_at = datetime.now(timezone.utc)
        return self

    def to_summary(self) -> dict[str, Any]:
        """
        JSON-safe summary for task results and API responses.

        Example:
            {"processed": 2, "succeeded": 1, "failed": 1,
             "campaigns": [...], "errors": [{"campaign_id": ..., "error": ...}]}
        """
        return {
            "processed": self.processed,
            "succeeded": self.success_count,
            "failed": self.error_count,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "campaigns": [o.model_dump(mode="json") for o in self.outcomes],
            "errors": [
                {"campaign_id": o.campaign_id, "error": o.error_detail}
                for o in self.outcomes if o.outcome == Outcome.ERROR
            ],
            "pass_errors": list(self.pass_errors),
        }
