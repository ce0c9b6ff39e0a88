# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .interfaces import EmailQueue, FundsTransferProvider, SettlementStore
from .notification_service import NotificationDispatcher
from .payout_calculator import PayoutCalculator, quote_payout
from .refund_reconciler import RefundReconciler, group_refunds_by_buyer
from .settlement_service import CampaignOrchestrator
from .tier_calculator import refund_per_unit, settle_tier, validate_tiers

__all__ = [
    "EmailQueue",
    "FundsTransferProvider",
    "SettlementStore",
    "NotificationDispatcher",
    "PayoutCalculator",
    "quote_payout",
    "RefundReconciler",
    "group_refunds_by_buyer",
    "CampaignOrchestrator",
    "refund_per_unit",
    "settle_tier",
    "validate_tiers",
]
