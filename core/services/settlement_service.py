# =============================================================================
# core/services/settlement_service.py - Campaign Orchestrator
# =============================================================================
# Closes out pre-order campaigns whose settlement window has elapsed.
#
# Per campaign (settlement pass):
# 1. Count charged units and settle the tier (ConfigurationError -> untouched)
# 2. Claim the campaign: accepting_orders -> in_settlement
# 3. Reconcile refund credits (failures never block step 4)
# 4. Persist in_production + settled tier + refund per unit
# 5. Calculate and disburse the designer payout (-> completed)
#
# Follow-up pass (same run, after the settlement pass):
# - settled campaigns with unflagged orders get their refunds retried
# - in_production campaigns get their payout retried
#
# Every campaign is isolated: errors are recorded in the BatchReport and the
# run continues. Only a failure to fetch the eligible list fails the run.
#
# Usage:
#   orchestrator = CampaignOrchestrator.from_settings()
#   report = orchestrator.run_batch()
#   print(report.to_summary())
# =============================================================================

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.exceptions import CampaignNotFoundError, SettlementException, TransferError
from core.models.campaign import Campaign, CampaignStatus
from core.models.settlement import (
    BatchReport,
    CampaignOutcome,
    Outcome,
    RefundResult,
    SettlementPhase,
)
from core.services.interfaces import SettlementStore
from core.services.payout_calculator import PayoutCalculator
from core.services.refund_reconciler import RefundReconciler
from core.services.tier_calculator import refund_per_unit, settle_tier
from lib.utils import round_money

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignOrchestrator:
    """
    Sequences tier settlement, refunds and payout for each eligible campaign.

    Collaborators are injected so tests can run the whole pipeline against
    in-memory fakes.

    Example:
        orchestrator = CampaignOrchestrator(store, reconciler, payouts, window_days=30)
        report = orchestrator.run_batch()
        for outcome in report.outcomes:
            print(outcome.campaign_id, outcome.outcome.value)
    """

    def __init__(
        self,
        store: SettlementStore,
        reconciler: RefundReconciler,
        payouts: PayoutCalculator,
        window_days: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.reconciler = reconciler
        self.payouts = payouts
        self.window = timedelta(days=window_days)
        self.clock = clock

    @classmethod
    def from_settings(cls) -> "CampaignOrchestrator":
        """Wire the production Supabase store and Stripe client from app settings."""
        from app.config import settings
        from core.services.notification_service import NotificationDispatcher
        from lib.stripe_client import StripeTransferClient
        from lib.supabase_client import SupabaseSettlementStore

        store = SupabaseSettlementStore()
        notifier = NotificationDispatcher(store)
        return cls(
            store=store,
            reconciler=RefundReconciler(store, notifier),
            payouts=PayoutCalculator(
                store,
                StripeTransferClient(),
                notifier,
                currency=settings.PAYOUT_CURRENCY,
            ),
            window_days=settings.SETTLEMENT_WINDOW_DAYS,
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def run_batch(
        self,
        now: datetime | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchReport:
        """
        Run one settlement batch.

        Args:
            now: Reference time for the settlement window (defaults to clock())
            progress_callback: Called as (current, total, message) per campaign

        Returns:
            BatchReport listing every campaign attempted

        Raises:
            TransientStoreError: If the eligible campaign list can't be fetched
        """
        now = now or self.clock()
        report = BatchReport(started_at=now)
        cutoff = now - self.window

        eligible = self.store.fetch_eligible_campaigns(cutoff)
        logger.info(f"Settlement batch: {len(eligible)} campaigns started before {cutoff.isoformat()}")

        total = len(eligible)
        for index, campaign in enumerate(eligible, start=1):
            if progress_callback:
                progress_callback(index, total, f"Settling campaign {campaign.id}")
            report.record(self._settle(campaign))

        processed_ids = {o.campaign_id for o in report.outcomes}
        follow_ups = self._collect_follow_ups(report, exclude=processed_ids)
        for index, campaign in enumerate(follow_ups, start=1):
            if progress_callback:
                progress_callback(index, len(follow_ups), f"Following up campaign {campaign.id}")
            report.record(self._follow_up(campaign))

        report.finish()
        logger.info(
            f"Settlement batch finished: {report.processed} campaigns, "
            f"{report.success_count} succeeded, {report.error_count} failed"
        )
        return report

    def _collect_follow_ups(self, report: BatchReport, exclude: set[str]) -> list[Campaign]:
        """Settled campaigns owing refunds or a payout, minus those handled this run."""
        found: dict[str, Campaign] = {}
        passes = (
            ("pending refunds", self.store.fetch_campaigns_with_pending_refunds),
            ("awaiting payout", self.store.fetch_campaigns_awaiting_payout),
        )
        for label, fetch in passes:
            try:
                campaigns = fetch()
            except Exception as e:
                logger.error(f"Could not fetch campaigns {label}: {e}")
                report.pass_errors.append(f"{label}: {e}")
                continue
            for campaign in campaigns:
                if campaign.id not in exclude:
                    found.setdefault(campaign.id, campaign)
        return list(found.values())

    # -------------------------------------------------------------------------
    # Single campaign
    # -------------------------------------------------------------------------

    def settle_campaign(self, campaign_id: str, force: bool = False) -> CampaignOutcome:
        """
        Settle (or follow up) one campaign right now.

        Args:
            campaign_id: The design/campaign id
            force: Settle even if the settlement window hasn't elapsed

        Returns:
            CampaignOutcome for the campaign

        Raises:
            CampaignNotFoundError: If the campaign doesn't exist
            TransientStoreError: If the campaign can't be read
        """
        campaign = self.store.fetch_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        if campaign.is_settled:
            return self._follow_up(campaign)

        if not force and not self._window_elapsed(campaign):
            return CampaignOutcome(
                campaign_id=campaign_id,
                outcome=Outcome.SUCCESS,
                final_status=campaign.status.value,
                note="settlement window has not elapsed",
            )

        return self._settle(campaign)

    def _window_elapsed(self, campaign: Campaign) -> bool:
        if campaign.preorder_start_date is None:
            return False
        started = campaign.preorder_start_date
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        return self.clock() - started >= self.window

    # -------------------------------------------------------------------------
    # Settlement pass
    # -------------------------------------------------------------------------

    def _settle(self, campaign: Campaign) -> CampaignOutcome:
        """Settle one campaign; never raises."""
        outcome = CampaignOutcome(
            campaign_id=campaign.id,
            outcome=Outcome.SUCCESS,
            phase=SettlementPhase.SETTLEMENT,
            final_status=campaign.status.value,
        )

        if campaign.is_settled:
            outcome.note = f"already {campaign.status.value}"
            return outcome

        try:
            units = self.store.count_charged_units(campaign.id)
            tier = settle_tier(
                units, campaign.tiers, campaign_id=campaign.id, load_errors=campaign.tier_errors
            )
            per_unit = round_money(refund_per_unit(campaign.tiers, tier))
            logger.info(f"Campaign {campaign.id}: {units} units -> tier {tier} (refund {per_unit}/unit)")

            if campaign.status == CampaignStatus.ACCEPTING_ORDERS:
                if not self.store.mark_in_settlement(campaign.id):
                    logger.warning(f"Campaign {campaign.id} was claimed by another run; skipping")
                    outcome.note = "claimed by another settlement run"
                    return outcome
                outcome.final_status = CampaignStatus.IN_SETTLEMENT.value

            outcome.settled_tier = tier
            outcome.refund_per_unit = per_unit
            self._apply_refunds(campaign, tier, outcome)

            if not self.store.mark_in_production(campaign.id, tier, per_unit):
                logger.warning(f"Campaign {campaign.id} already moved to production by another run")
                outcome.note = "moved to production by another settlement run"
                return outcome
            outcome.final_status = CampaignStatus.IN_PRODUCTION.value
            logger.info(f"Campaign {campaign.id} is in production at tier {tier}")

            self._apply_payout(campaign.id, outcome)

        except SettlementException as e:
            logger.error(f"Campaign {campaign.id} failed: {e}")
            outcome.outcome = Outcome.ERROR
            outcome.error_code = e.code
            outcome.error_detail = e.message
        except Exception as e:
            logger.exception(f"Unexpected error settling campaign {campaign.id}")
            outcome.outcome = Outcome.ERROR
            outcome.error_code = "UNEXPECTED_ERROR"
            outcome.error_detail = str(e)

        return outcome

    # -------------------------------------------------------------------------
    # Follow-up pass
    # -------------------------------------------------------------------------

    def _follow_up(self, campaign: Campaign) -> CampaignOutcome:
        """Retry leftover refunds and an outstanding payout; never raises."""
        outcome = CampaignOutcome(
            campaign_id=campaign.id,
            outcome=Outcome.SUCCESS,
            phase=SettlementPhase.FOLLOW_UP,
            final_status=campaign.status.value,
            settled_tier=campaign.settled_tier,
            refund_per_unit=campaign.refund_per_unit,
        )

        if campaign.settled_tier is None:
            outcome.outcome = Outcome.ERROR
            outcome.error_code = "MISSING_SETTLED_TIER"
            outcome.error_detail = f"campaign is {campaign.status.value} but has no settled tier"
            return outcome

        try:
            if campaign.refund_per_unit and campaign.refund_per_unit > 0:
                self._apply_refunds(campaign, campaign.settled_tier, outcome)

            if campaign.status == CampaignStatus.IN_PRODUCTION:
                self._apply_payout(campaign.id, outcome)

        except SettlementException as e:
            logger.error(f"Follow-up for campaign {campaign.id} failed: {e}")
            outcome.outcome = Outcome.ERROR
            outcome.error_code = e.code
            outcome.error_detail = e.message
        except Exception as e:
            logger.exception(f"Unexpected error following up campaign {campaign.id}")
            outcome.outcome = Outcome.ERROR
            outcome.error_code = "UNEXPECTED_ERROR"
            outcome.error_detail = str(e)

        return outcome

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _apply_refunds(self, campaign: Campaign, tier: int, outcome: CampaignOutcome) -> RefundResult | None:
        """Reconcile refunds; a failed pass is recorded but never raised."""
        try:
            result = self.reconciler.reconcile(campaign, tier)
        except Exception as e:
            logger.error(f"Refund pass for campaign {campaign.id} failed: {e}")
            outcome.component_errors.append(f"refund pass failed: {e}")
            return None

        outcome.buyers_credited += len(result.credits)
        outcome.amount_credited += result.total_credited
        outcome.component_errors.extend(result.component_errors)
        return result

    def _apply_payout(self, campaign_id: str, outcome: CampaignOutcome) -> None:
        """Calculate and disburse the payout; transfer failures mark the outcome as error."""
        try:
            payout = self.payouts.calculate_payout(campaign_id)
        except TransferError as e:
            outcome.outcome = Outcome.ERROR
            outcome.error_code = e.code
            outcome.error_detail = e.message
            outcome.component_errors.append(f"payout transfer failed: {e.reason}")
            return

        outcome.payout_status = payout.status
        outcome.payout_amount = payout.payout_amount
        outcome.transfer_id = payout.transfer_id
        if payout.completed:
            outcome.final_status = CampaignStatus.COMPLETED.value
        elif payout.reason:
            logger.info(f"Campaign {campaign_id} payout {payout.status.value}: {payout.reason}")
