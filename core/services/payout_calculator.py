# =============================================================================
# core/services/payout_calculator.py - Designer Payout
# =============================================================================
# Computes and disburses a designer's royalty once a campaign is in production:
#
#   payout = (settled retail - settled supplier cost) x units x royalty rate
#
# truncated to the designer's remaining quarterly allowance
# (quarterly_bonus_cap - current_quarter_bonus_earned).
#
# Disbursement order:
# 1. Reserve a pending payouts row with the quoted amount
# 2. Transfer funds under the key "payout-<campaign_id>", unless the provider
#    already has a transfer under that key
# 3. Record the payout and bump total + quarterly earnings atomically
# 4. Move the campaign to completed
# 5. Queue a PAYOUT_SENT email
#
# A failed transfer marks the pending row failed and leaves the campaign in
# production with ledgers untouched. A pending row left by a crash or a failed
# ledger write is resumed with its reserved amount, and the provider lookup
# keeps it from being transferred twice.
# =============================================================================

import logging
from decimal import Decimal

from app.exceptions import CampaignNotFoundError, TransferError
from core.models.campaign import Campaign, CampaignStatus, DesignerAccount
from core.models.settlement import PayoutResult, PayoutStatus
from core.services.interfaces import FundsTransferProvider, SettlementStore
from core.services.notification_service import NotificationDispatcher
from lib.utils import round_money, to_decimal

logger = logging.getLogger(__name__)


def payout_transfer_key(campaign_id: str) -> str:
    """Idempotency key and transfer group shared by every payout attempt for a campaign."""
    return f"payout-{campaign_id}"


def quote_payout(
    campaign: Campaign,
    units: int,
    designer: DesignerAccount | None,
) -> PayoutResult:
    """
    Work out what the designer is owed without side effects.

    Args:
        campaign: A settled campaign (settled_tier set)
        units: Charged units on the campaign
        designer: The designer's account, or None if the profile is missing

    Returns:
        PayoutResult with status ready, capped or ineligible

    Example:
        # tier margin 20.00, 5 units, 12% royalty -> 12.00 ready
        quote = quote_payout(campaign, 5, designer)
    """
    result = PayoutResult(
        campaign_id=campaign.id,
        status=PayoutStatus.INELIGIBLE,
        designer_id=campaign.designer_id,
        units=units,
        royalty_rate=campaign.royalty_rate,
    )

    tier = campaign.tier(campaign.settled_tier) if campaign.settled_tier else None
    if tier is None:
        result.reason = "campaign has no settled tier"
        return result

    if units <= 0:
        result.reason = "no qualifying orders"
        return result

    if designer is None or not designer.stripe_connect_account_id:
        result.reason = "designer has no payout destination on file"
        return result

    if tier.margin <= 0:
        result.reason = f"no margin at tier {tier.tier}"
        return result

    uncapped = round_money(tier.margin * units * campaign.royalty_rate)
    allowance = round_money(designer.remaining_quarter_allowance)
    result.uncapped_amount = uncapped

    if uncapped > allowance:
        result.status = PayoutStatus.CAPPED
        result.payout_amount = allowance
        result.reason = f"quarterly cap reached ({allowance} of {uncapped} payable)"
    else:
        result.status = PayoutStatus.READY
        result.payout_amount = uncapped

    return result


class PayoutCalculator:
    """
    Calculates and disburses designer payouts for settled campaigns.

    Example:
        calculator = PayoutCalculator(store, stripe_client, dispatcher, currency="sgd")
        result = calculator.calculate_payout("design-123")
        if result.completed:
            print(f"Paid {result.payout_amount} via {result.transfer_id}")
    """

    def __init__(
        self,
        store: SettlementStore,
        transfers: FundsTransferProvider,
        notifier: NotificationDispatcher,
        currency: str = "sgd",
    ):
        self.store = store
        self.transfers = transfers
        self.notifier = notifier
        self.currency = currency

    def calculate_payout(self, campaign_id: str) -> PayoutResult:
        """
        Compute the payout and, when payable, transfer it and complete the campaign.

        Args:
            campaign_id: The design/campaign id

        Returns:
            PayoutResult; completed=True only after a confirmed transfer

        Raises:
            CampaignNotFoundError: If the campaign doesn't exist
            TransferError: If the provider rejects or times out
            TransientStoreError: If a store read/write fails
        """
        campaign = self.store.fetch_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        if campaign.status == CampaignStatus.COMPLETED:
            return PayoutResult(
                campaign_id=campaign_id,
                status=PayoutStatus.INELIGIBLE,
                designer_id=campaign.designer_id,
                reason="campaign already paid out",
                completed=True,
            )

        if campaign.status != CampaignStatus.IN_PRODUCTION:
            return PayoutResult(
                campaign_id=campaign_id,
                status=PayoutStatus.INELIGIBLE,
                designer_id=campaign.designer_id,
                reason=f"campaign is {campaign.status.value}, not in production",
            )

        existing = self.store.fetch_completed_payout(campaign_id)
        if existing:
            return self._finish_recorded_payout(campaign, existing)

        transfer_key = payout_transfer_key(campaign_id)
        designer = self.store.fetch_designer(campaign.designer_id) if campaign.designer_id else None

        pending = self.store.fetch_pending_payout(campaign_id)
        if pending:
            result = self._resume_pending_payout(campaign, pending)
        else:
            units = self.store.count_charged_units(campaign_id)
            result = quote_payout(campaign, units, designer)

            if result.status == PayoutStatus.INELIGIBLE or result.payout_amount <= 0:
                logger.warning(f"Payout for campaign {campaign_id} not sent: {result.reason}")
                return result

            self.store.reserve_payout(campaign_id, designer.id, result.payout_amount, transfer_key)

        result.transfer_id = self.transfers.find_transfer(transfer_key)
        if result.transfer_id:
            logger.warning(
                f"Transfer {result.transfer_id} for campaign {campaign_id} was sent by an "
                f"earlier run but never recorded; recording it now"
            )
        elif designer is None or not designer.stripe_connect_account_id:
            result.status = PayoutStatus.INELIGIBLE
            result.reason = "designer has no payout destination on file"
            logger.warning(f"Reserved payout for campaign {campaign_id} not sent: {result.reason}")
            return result
        else:
            result.transfer_id = self._transfer(campaign, designer, result.payout_amount, transfer_key)

        total_earnings = self.store.record_payout(
            campaign_id, result.designer_id, result.payout_amount, result.transfer_id
        )
        logger.info(
            f"Designer {result.designer_id} earnings +{result.payout_amount} "
            f"(total {total_earnings}) for campaign {campaign_id}"
        )

        result.completed = self.store.mark_completed(campaign_id)

        self.notifier.payout_sent(
            result.designer_id,
            design_name=campaign.title,
            amount=result.payout_amount,
            total_earnings=total_earnings,
        )
        return result

    def _transfer(
        self,
        campaign: Campaign,
        designer: DesignerAccount,
        amount: Decimal,
        transfer_key: str,
    ) -> str:
        """Send the transfer; mark the reserved payout failed if it's rejected."""
        try:
            transfer_id = self.transfers.transfer(
                designer.stripe_connect_account_id,
                amount,
                self.currency,
                metadata={"design_id": campaign.id, "designer_id": designer.id},
                idempotency_key=transfer_key,
            )
        except TransferError as e:
            logger.error(f"Transfer of {amount} to designer {designer.id} failed: {e.reason}")
            try:
                self.store.record_failed_payout(campaign.id, designer.id, amount, e.reason)
            except Exception as record_error:
                logger.error(f"Could not record failed payout for campaign {campaign.id}: {record_error}")
            raise

        logger.info(f"Transferred {amount} {self.currency} to designer {designer.id}: {transfer_id}")
        return transfer_id

    def _resume_pending_payout(self, campaign: Campaign, record: dict) -> PayoutResult:
        """
        Pick up a payout reserved by an earlier run.

        The reserved amount is kept rather than re-quoted, so the transfer
        matches what the earlier run may already have sent.
        """
        logger.info(f"Campaign {campaign.id} has a pending payout from an earlier run; resuming")
        return PayoutResult(
            campaign_id=campaign.id,
            status=PayoutStatus.READY,
            payout_amount=to_decimal(record.get("amount"), Decimal("0")),
            designer_id=record.get("user_id") or campaign.designer_id,
            reason="resumed payout reserved by an earlier run",
        )

    def _finish_recorded_payout(self, campaign: Campaign, record: dict) -> PayoutResult:
        """A transfer was already recorded; only the status move is outstanding."""
        logger.info(f"Campaign {campaign.id} already has payout {record.get('stripe_transfer_id')}; completing")
        completed = self.store.mark_completed(campaign.id)
        return PayoutResult(
            campaign_id=campaign.id,
            status=PayoutStatus.READY,
            payout_amount=to_decimal(record.get("amount"), Decimal("0")),
            designer_id=campaign.designer_id,
            transfer_id=record.get("stripe_transfer_id"),
            completed=completed,
        )
