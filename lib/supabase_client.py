# =============================================================================
# lib/supabase_client.py - Supabase Client & Settlement Store
# =============================================================================
# This module provides:
# - SupabaseClient: singleton wrapper around the supabase-py client
# - SupabaseSettlementStore: the SettlementStore / EmailQueue implementation
#   over design_submissions, pre_orders, user_profiles and payouts
#
# Every call is bounded by EXTERNAL_CALL_TIMEOUT_SECONDS. Any failure
# (HTTP error, timeout, PostgREST error) surfaces as TransientStoreError so
# the orchestrator can record it and let the next run retry.
#
# Ledger increments go through RPCs (see supabase/migrations/) so balances
# are updated atomically in the database, never read-modify-write here.
#
# Usage:
#   from lib.supabase_client import SupabaseSettlementStore
#   store = SupabaseSettlementStore()
#   campaigns = store.fetch_eligible_campaigns(cutoff)
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from supabase import Client, create_client
from supabase.client import ClientOptions

from app.config import settings
from app.exceptions import TransientStoreError
from core.models.campaign import (
    Campaign,
    CampaignStatus,
    DesignerAccount,
    OrderStatus,
    PreOrder,
)
from core.services.interfaces import EmailQueue, SettlementStore
from lib.utils import to_decimal

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000

# Keep IN (...) filters well below URL length limits
IN_FILTER_CHUNK = 100

CAMPAIGN_COLUMNS = (
    "id, title, designer_id, tiered_pricing_data, preorder_start_date, "
    "submission_status, current_active_tier, potential_refund_per_unit, copyright_model"
)

ORDER_COLUMNS = "id, design_id, user_id, quantity, amount_paid, status, refund_credit_issued"

DESIGNER_COLUMNS = (
    "id, stripe_connect_account_id, total_earnings, "
    "current_quarter_bonus_earned, quarterly_bonus_cap"
)


class SupabaseClient:
    """
    Singleton holder for the supabase-py client.

    Uses the service_role key, which bypasses Row Level Security (RLS).
    This is appropriate for the server-side settlement job.

    Example:
        client = SupabaseClient.get_client()
        client.table("design_submissions").select("id").limit(1).execute()
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Returns:
            Client: Supabase client instance

        Raises:
            TransientStoreError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY,
                    options=ClientOptions(
                        postgrest_client_timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
                    ),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise TransientStoreError(
                    "create_client",
                    str(e),
                    code="CLIENT_INIT_FAILED",
                    details={"hint": "Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"},
                )
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (used by tests)."""
        cls._instance = None


def _chunks(items: list[str], size: int = IN_FILTER_CHUNK):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SupabaseSettlementStore(SettlementStore, EmailQueue):
    """
    Settlement persistence backed by Supabase.

    Status transitions are conditional updates (guarded on the expected
    current status) and report whether a row actually changed, so two
    overlapping runs can't both move the same campaign.

    Example:
        store = SupabaseSettlementStore()
        if store.mark_in_settlement(campaign.id):
            ...
    """

    def __init__(
        self,
        client: Client | None = None,
        default_royalty_rate: Decimal | None = None,
        default_quarterly_cap: Decimal | None = None,
    ):
        self._client = client
        self.default_royalty_rate = default_royalty_rate or settings.DEFAULT_ROYALTY_RATE
        self.default_quarterly_cap = default_quarterly_cap or settings.DEFAULT_QUARTERLY_CAP

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = SupabaseClient.get_client()
        return self._client

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _execute(self, operation: str, build: Callable[[], Any], **details: Any) -> Any:
        """
        Build and execute one query, wrapping any failure.

        Returns:
            response.data
        """
        try:
            return build().execute().data
        except TransientStoreError:
            raise
        except Exception as e:
            logger.error(f"Supabase {operation} failed: {e}")
            raise TransientStoreError(operation, str(e), details=details or None)

    def _fetch_all(self, operation: str, build: Callable[[], Any], **details: Any) -> list[dict[str, Any]]:
        """Page through a select query PAGE_SIZE rows at a time."""
        rows: list[dict[str, Any]] = []
        start = 0
        while True:
            end = start + PAGE_SIZE - 1
            page = self._execute(operation, lambda: build().range(start, end), **details) or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    def _to_campaigns(self, rows: list[dict[str, Any]]) -> list[Campaign]:
        return [Campaign.from_db_row(row, self.default_royalty_rate) for row in rows]

    # -------------------------------------------------------------------------
    # Campaign reads
    # -------------------------------------------------------------------------

    def fetch_eligible_campaigns(self, started_before: datetime) -> list[Campaign]:
        rows = self._fetch_all(
            "fetch_eligible_campaigns",
            lambda: (
                self.client.table("design_submissions")
                .select(CAMPAIGN_COLUMNS)
                .in_("submission_status", [
                    CampaignStatus.ACCEPTING_ORDERS.value,
                    CampaignStatus.IN_SETTLEMENT.value,
                ])
                .lte("preorder_start_date", started_before.isoformat())
                .order("preorder_start_date")
            ),
            started_before=started_before.isoformat(),
        )
        logger.debug(f"Found {len(rows)} campaigns started before {started_before.isoformat()}")
        return self._to_campaigns(rows)

    def fetch_campaigns_awaiting_payout(self) -> list[Campaign]:
        rows = self._fetch_all(
            "fetch_campaigns_awaiting_payout",
            lambda: (
                self.client.table("design_submissions")
                .select(CAMPAIGN_COLUMNS)
                .eq("submission_status", CampaignStatus.IN_PRODUCTION.value)
                .order("id")
            ),
        )
        return self._to_campaigns(rows)

    def fetch_campaigns_with_pending_refunds(self) -> list[Campaign]:
        """
        Settled campaigns that still owe refunds.

        Looks up design ids from unflagged charged orders first, then keeps
        only the settled ones with a positive refund per unit.
        """
        order_rows = self._fetch_all(
            "fetch_pending_refund_orders",
            lambda: (
                self.client.table("pre_orders")
                .select("design_id")
                .eq("status", OrderStatus.CHARGED.value)
                .eq("refund_credit_issued", False)
                .order("id")
            ),
        )
        design_ids = sorted({str(row["design_id"]) for row in order_rows if row.get("design_id")})

        campaigns: list[Campaign] = []
        for chunk in _chunks(design_ids):
            rows = self._execute(
                "fetch_campaigns_with_pending_refunds",
                lambda: (
                    self.client.table("design_submissions")
                    .select(CAMPAIGN_COLUMNS)
                    .in_("id", chunk)
                    .in_("submission_status", [
                        CampaignStatus.IN_PRODUCTION.value,
                        CampaignStatus.COMPLETED.value,
                    ])
                    .gt("potential_refund_per_unit", 0)
                ),
            ) or []
            campaigns.extend(self._to_campaigns(rows))
        return campaigns

    def fetch_campaign(self, campaign_id: str) -> Campaign | None:
        rows = self._execute(
            "fetch_campaign",
            lambda: (
                self.client.table("design_submissions")
                .select(CAMPAIGN_COLUMNS)
                .eq("id", campaign_id)
                .limit(1)
            ),
            campaign_id=campaign_id,
        )
        if not rows:
            return None
        return Campaign.from_db_row(rows[0], self.default_royalty_rate)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def count_charged_units(self, campaign_id: str) -> int:
        rows = self._fetch_all(
            "count_charged_units",
            lambda: (
                self.client.table("pre_orders")
                .select("id, quantity")
                .eq("design_id", campaign_id)
                .eq("status", OrderStatus.CHARGED.value)
                .order("id")
            ),
            campaign_id=campaign_id,
        )
        return sum(int(row.get("quantity") or 0) for row in rows)

    def fetch_unrefunded_orders(self, campaign_id: str) -> list[PreOrder]:
        rows = self._fetch_all(
            "fetch_unrefunded_orders",
            lambda: (
                self.client.table("pre_orders")
                .select(ORDER_COLUMNS)
                .eq("design_id", campaign_id)
                .eq("status", OrderStatus.CHARGED.value)
                .eq("refund_credit_issued", False)
                .order("id")
            ),
            campaign_id=campaign_id,
        )
        return [PreOrder.from_db_row(row) for row in rows]

    def mark_orders_refund_issued(self, order_ids: list[str]) -> None:
        for chunk in _chunks(order_ids):
            self._execute(
                "mark_orders_refund_issued",
                lambda: (
                    self.client.table("pre_orders")
                    .update({"refund_credit_issued": True})
                    .in_("id", chunk)
                ),
                order_ids=chunk,
            )
        logger.debug(f"Flagged {len(order_ids)} orders refund_credit_issued")

    # -------------------------------------------------------------------------
    # Ledgers
    # -------------------------------------------------------------------------

    def increment_credit_balance(self, user_id: str, amount: Decimal) -> Decimal:
        new_balance = self._execute(
            "increment_credit_balance",
            lambda: self.client.rpc(
                "increment_reward_credit",
                {"p_user_id": user_id, "p_amount": float(amount)},
            ),
            user_id=user_id,
        )
        return to_decimal(new_balance, Decimal("0"))

    def fetch_designer(self, designer_id: str) -> DesignerAccount | None:
        rows = self._execute(
            "fetch_designer",
            lambda: (
                self.client.table("user_profiles")
                .select(DESIGNER_COLUMNS)
                .eq("id", designer_id)
                .limit(1)
            ),
            designer_id=designer_id,
        )
        if not rows:
            return None
        return DesignerAccount.from_db_row(rows[0], self.default_quarterly_cap)

    # -------------------------------------------------------------------------
    # Campaign transitions
    # -------------------------------------------------------------------------

    def _transition(
        self,
        operation: str,
        campaign_id: str,
        values: dict[str, Any],
        from_statuses: list[CampaignStatus],
    ) -> bool:
        rows = self._execute(
            operation,
            lambda: (
                self.client.table("design_submissions")
                .update(values)
                .eq("id", campaign_id)
                .in_("submission_status", [s.value for s in from_statuses])
            ),
            campaign_id=campaign_id,
        )
        changed = bool(rows)
        if changed:
            logger.info(f"Campaign {campaign_id} -> {values['submission_status']}")
        return changed

    def mark_in_settlement(self, campaign_id: str) -> bool:
        return self._transition(
            "mark_in_settlement",
            campaign_id,
            {"submission_status": CampaignStatus.IN_SETTLEMENT.value},
            [CampaignStatus.ACCEPTING_ORDERS],
        )

    def mark_in_production(
        self,
        campaign_id: str,
        settled_tier: int,
        refund_per_unit: Decimal,
    ) -> bool:
        return self._transition(
            "mark_in_production",
            campaign_id,
            {
                "submission_status": CampaignStatus.IN_PRODUCTION.value,
                "current_active_tier": settled_tier,
                "potential_refund_per_unit": float(refund_per_unit),
            },
            [CampaignStatus.ACCEPTING_ORDERS, CampaignStatus.IN_SETTLEMENT],
        )

    def mark_completed(self, campaign_id: str) -> bool:
        return self._transition(
            "mark_completed",
            campaign_id,
            {"submission_status": CampaignStatus.COMPLETED.value},
            [CampaignStatus.IN_PRODUCTION],
        )

    # -------------------------------------------------------------------------
    # Payout records
    # -------------------------------------------------------------------------

    def fetch_completed_payout(self, campaign_id: str) -> dict[str, Any] | None:
        rows = self._execute(
            "fetch_completed_payout",
            lambda: (
                self.client.table("payouts")
                .select("id, design_id, user_id, amount, stripe_transfer_id, status")
                .eq("design_id", campaign_id)
                .eq("status", "completed")
                .limit(1)
            ),
            campaign_id=campaign_id,
        )
        return rows[0] if rows else None

    def fetch_pending_payout(self, campaign_id: str) -> dict[str, Any] | None:
        rows = self._execute(
            "fetch_pending_payout",
            lambda: (
                self.client.table("payouts")
                .select("id, design_id, user_id, amount, stripe_transfer_id, status, metadata")
                .eq("design_id", campaign_id)
                .eq("status", "pending")
                .limit(1)
            ),
            campaign_id=campaign_id,
        )
        return rows[0] if rows else None

    def reserve_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        transfer_key: str,
    ) -> dict[str, Any]:
        rows = self._execute(
            "reserve_payout",
            lambda: (
                self.client.table("payouts")
                .insert({
                    "design_id": campaign_id,
                    "user_id": designer_id,
                    "amount": float(amount),
                    "status": "pending",
                    "metadata": {"source": "settlement", "transfer_key": transfer_key},
                })
            ),
            campaign_id=campaign_id,
        )
        return rows[0] if rows else {}

    def record_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        transfer_id: str,
    ) -> Decimal:
        total = self._execute(
            "record_payout",
            lambda: self.client.rpc(
                "record_designer_payout",
                {
                    "p_design_id": campaign_id,
                    "p_designer_id": designer_id,
                    "p_amount": float(amount),
                    "p_transfer_id": transfer_id,
                },
            ),
            campaign_id=campaign_id,
            transfer_id=transfer_id,
        )
        return to_decimal(total, Decimal("0"))

    def record_failed_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        error: str,
    ) -> None:
        updated = self._execute(
            "record_failed_payout",
            lambda: (
                self.client.table("payouts")
                .update({"status": "failed", "error_message": error[:1000]})
                .eq("design_id", campaign_id)
                .eq("status", "pending")
            ),
            campaign_id=campaign_id,
        )
        if updated:
            return

        self._execute(
            "record_failed_payout",
            lambda: (
                self.client.table("payouts")
                .insert({
                    "design_id": campaign_id,
                    "user_id": designer_id,
                    "amount": float(amount),
                    "status": "failed",
                    "error_message": error[:1000],
                    "metadata": {"source": "settlement"},
                })
            ),
            campaign_id=campaign_id,
        )

    # -------------------------------------------------------------------------
    # Email queue
    # -------------------------------------------------------------------------

    def enqueue_email(
        self,
        user_id: str,
        template_type: str,
        template_data: dict[str, Any],
    ) -> str:
        queue_id = self._execute(
            "enqueue_email",
            lambda: self.client.rpc(
                "queue_email",
                {
                    "p_user_id": user_id,
                    "p_template_type": template_type,
                    "p_template_data": template_data,
                },
            ),
            user_id=user_id,
            template_type=template_type,
        )
        return str(queue_id)

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    def ping(self) -> None:
        self._execute(
            "ping",
            lambda: self.client.table("design_submissions").select("id").limit(1),
        )
