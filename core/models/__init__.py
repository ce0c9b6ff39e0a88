# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for the settlement pipeline:
# - campaign.py: Campaign, TierRow, PreOrder, DesignerAccount
# - settlement.py: refund/payout results and the batch report
# =============================================================================

# -----------------------------------------------------------------------------
# Campaign Models - what the store hands to the pipeline
# -----------------------------------------------------------------------------
from .campaign import (
    Campaign,
    CampaignStatus,
    DesignerAccount,
    OrderStatus,
    PreOrder,
    TierRow,
    parse_royalty_rate,
)

# -----------------------------------------------------------------------------
# Settlement Models - what the pipeline produces
# -----------------------------------------------------------------------------
from .settlement import (
    BatchReport,
    BuyerCredit,
    BuyerCreditFailure,
    CampaignOutcome,
    NotificationTemplate,
    Outcome,
    PayoutResult,
    PayoutStatus,
    RefundResult,
    SettlementPhase,
)

__all__ = [
    # Campaign
    "Campaign",
    "CampaignStatus",
    "DesignerAccount",
    "OrderStatus",
    "PreOrder",
    "TierRow",
    "parse_royalty_rate",
    # Settlement
    "BatchReport",
    "BuyerCredit",
    "BuyerCreditFailure",
    "CampaignOutcome",
    "NotificationTemplate",
    "Outcome",
    "PayoutResult",
    "PayoutStatus",
    "RefundResult",
    "SettlementPhase",
]
