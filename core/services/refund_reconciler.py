# =============================================================================
# core/services/refund_reconciler.py - Refund Credit Reconciliation
# =============================================================================
# After a campaign settles in tier 2 or 3, buyers who paid the tier-1 price
# get the difference back as account credit:
#
#   refund_per_unit = tier1.retail_price - settled.retail_price
#   buyer credit    = refund_per_unit x sum(quantity of their unflagged orders)
#
# Per buyer, in this order:
# 1. Atomically increment the buyer's credit balance
# 2. Only then flag their orders refund_credit_issued=true
# 3. Queue a REFUND_ISSUED email
#
# A buyer whose increment fails keeps unflagged orders and is retried by the
# next run. Flagged orders are never selected again, so reruns add no credit.
# =============================================================================

import logging
from decimal import Decimal

from core.models.campaign import Campaign, OrderStatus, PreOrder
from core.models.settlement import BuyerCredit, BuyerCreditFailure, RefundResult
from core.services.interfaces import SettlementStore
from core.services.notification_service import NotificationDispatcher
from core.services.tier_calculator import refund_per_unit as compute_refund_per_unit
from lib.utils import round_money

logger = logging.getLogger(__name__)


class RefundReconciler:
    """
    Issues per-unit refund credits to buyers who paid above the settled price.

    Example:
        reconciler = RefundReconciler(store, dispatcher)
        result = reconciler.reconcile(campaign, settled_tier=2)
        print(result.refund_per_unit, len(result.affected_orders))
    """

    def __init__(self, store: SettlementStore, notifier: NotificationDispatcher):
        self.store = store
        self.notifier = notifier

    def reconcile(self, campaign: Campaign, settled_tier: int) -> RefundResult:
        """
        Credit every buyer with unrefunded charged orders on the campaign.

        Args:
            campaign: The campaign being settled (tiers already validated)
            settled_tier: Tier returned by settle_tier()

        Returns:
            RefundResult with credited buyers, failed buyers and the orders
            that were flagged

        Raises:
            TransientStoreError: If the order list itself can't be read
        """
        per_unit = round_money(compute_refund_per_unit(campaign.tiers, settled_tier))
        result = RefundResult(
            campaign_id=campaign.id,
            settled_tier=settled_tier,
            refund_per_unit=per_unit,
        )

        if per_unit <= 0:
            logger.info(f"Campaign {campaign.id} settled in tier {settled_tier}: no refunds due")
            return result

        orders = self.store.fetch_unrefunded_orders(campaign.id)
        if not orders:
            logger.info(f"Campaign {campaign.id}: no unrefunded orders")
            return result

        result.unattributed_orders = [
            o.id for o in orders
            if not o.buyer_id and o.status == OrderStatus.CHARGED and not o.refund_credit_issued
        ]
        if result.unattributed_orders:
            logger.warning(
                f"Campaign {campaign.id}: orders {result.unattributed_orders} have no buyer; skipping"
            )

        grouped = group_refunds_by_buyer(orders, per_unit)
        logger.info(
            f"Campaign {campaign.id}: crediting {len(grouped)} buyers "
            f"{per_unit}/unit across {len(orders)} orders"
        )

        for buyer_id, (amount, order_ids) in grouped.items():
            credit = self._credit_buyer(campaign, settled_tier, buyer_id, amount, order_ids)
            if isinstance(credit, BuyerCreditFailure):
                result.failures.append(credit)
                continue

            result.credits.append(credit)
            if credit.flagged:
                result.affected_orders.extend(order_ids)

        return result

    def _credit_buyer(
        self,
        campaign: Campaign,
        settled_tier: int,
        buyer_id: str,
        amount: Decimal,
        order_ids: list[str],
    ) -> BuyerCredit | BuyerCreditFailure:
        """Apply one buyer's credit, then flag their orders."""
        try:
            new_balance = self.store.increment_credit_balance(buyer_id, amount)
        except Exception as e:
            logger.error(f"Campaign {campaign.id}: credit of {amount} for buyer {buyer_id} failed: {e}")
            return BuyerCreditFailure(
                buyer_id=buyer_id,
                amount=amount,
                order_ids=order_ids,
                error=str(e),
            )

        logger.info(f"Credited buyer {buyer_id} +{amount} (balance {new_balance})")

        flagged = True
        try:
            self.store.mark_orders_refund_issued(order_ids)
        except Exception as e:
            # Credit already landed; the next run will credit these orders again
            flagged = False
            logger.error(
                f"Campaign {campaign.id}: buyer {buyer_id} credited but orders "
                f"{order_ids} could not be flagged: {e}"
            )

        self.notifier.refund_issued(
            buyer_id,
            design_name=campaign.title,
            tier=settled_tier,
            refund_amount=amount,
            credit_balance=new_balance,
        )

        return BuyerCredit(
            buyer_id=buyer_id,
            amount=amount,
            order_ids=order_ids,
            new_balance=new_balance,
            flagged=flagged,
        )


def group_refunds_by_buyer(
    orders: list[PreOrder],
    per_unit: Decimal,
) -> dict[str, tuple[Decimal, list[str]]]:
    """
    Sum refund amounts per buyer.

    Orders already flagged, not in charged state or without a buyer are skipped.

    Returns:
        Mapping buyer_id -> (total credit, order ids)

    Example:
        group_refunds_by_buyer([o1(qty=3, buyer=a), o2(qty=1, buyer=a)], Decimal("5"))
        # {"a": (Decimal("20.00"), ["o1", "o2"])}
    """
    grouped: dict[str, tuple[Decimal, list[str]]] = {}
    for order in orders:
        if order.refund_credit_issued or order.status != OrderStatus.CHARGED or order.quantity <= 0:
            continue
        if not order.buyer_id:
            continue
        amount, ids = grouped.get(order.buyer_id, (Decimal("0"), []))
        grouped[order.buyer_id] = (round_money(amount + per_unit * order.quantity), ids + [order.id])
    return grouped
