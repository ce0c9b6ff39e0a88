# =============================================================================
# core/services/interfaces.py - Collaborator Interfaces
# =============================================================================
# Abstract interfaces the settlement services depend on. Production
# implementations live in lib/ (Supabase store, Stripe transfers); tests
# inject in-memory fakes.
#
# - SettlementStore: campaigns, orders, ledgers, payout records
# - FundsTransferProvider: moves money to a designer's payout account
# - EmailQueue: queues templated emails for later delivery
#
# Ledger mutations are atomic increments on the store side; callers never
# read-modify-write a balance.
# =============================================================================

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any

from core.models.campaign import Campaign, DesignerAccount, PreOrder


class SettlementStore(ABC):
    """Persistence operations required by the settlement pipeline."""

    # -------------------------------------------------------------------------
    # Campaign reads
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_eligible_campaigns(self, started_before: datetime) -> list[Campaign]:
        """
        Campaigns accepting orders (or claimed but unfinished) whose start is
        <= started_before. Failure here fails the whole batch.
        """

    @abstractmethod
    def fetch_campaigns_awaiting_payout(self) -> list[Campaign]:
        """Campaigns in production whose payout has not completed."""

    @abstractmethod
    def fetch_campaigns_with_pending_refunds(self) -> list[Campaign]:
        """Settled campaigns (refund per unit > 0) that still have unflagged charged orders."""

    @abstractmethod
    def fetch_campaign(self, campaign_id: str) -> Campaign | None:
        """A single campaign, or None if it doesn't exist."""

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @abstractmethod
    def count_charged_units(self, campaign_id: str) -> int:
        """Total quantity over the campaign's charged orders."""

    @abstractmethod
    def fetch_unrefunded_orders(self, campaign_id: str) -> list[PreOrder]:
        """Charged orders whose refund credit has not been issued."""

    @abstractmethod
    def mark_orders_refund_issued(self, order_ids: list[str]) -> None:
        """Set refund_credit_issued=true on the given orders."""

    # -------------------------------------------------------------------------
    # Ledgers
    # -------------------------------------------------------------------------

    @abstractmethod
    def increment_credit_balance(self, user_id: str, amount: Decimal) -> Decimal:
        """Atomically add amount to the buyer's credit balance; returns the new balance."""

    @abstractmethod
    def fetch_designer(self, designer_id: str) -> DesignerAccount | None:
        """The designer's payout destination and earnings ledgers."""

    # -------------------------------------------------------------------------
    # Campaign transitions (conditional on the current status)
    # -------------------------------------------------------------------------

    @abstractmethod
    def mark_in_settlement(self, campaign_id: str) -> bool:
        """accepting_orders -> in_settlement. False if the campaign was not accepting orders."""

    @abstractmethod
    def mark_in_production(
        self,
        campaign_id: str,
        settled_tier: int,
        refund_per_unit: Decimal,
    ) -> bool:
        """Persist status, settled tier and refund per unit in one write. False if already settled."""

    @abstractmethod
    def mark_completed(self, campaign_id: str) -> bool:
        """in_production -> completed. False if the campaign was not in production."""

    # -------------------------------------------------------------------------
    # Payout records
    # -------------------------------------------------------------------------

    @abstractmethod
    def fetch_completed_payout(self, campaign_id: str) -> dict[str, Any] | None:
        """The completed payout record for the campaign, if any."""

    @abstractmethod
    def fetch_pending_payout(self, campaign_id: str) -> dict[str, Any] | None:
        """A payout reserved by an earlier run that was never recorded as completed or failed."""

    @abstractmethod
    def reserve_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        transfer_key: str,
    ) -> dict[str, Any]:
        """Write a pending payout record before any money moves. Returns the record."""

    @abstractmethod
    def record_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        transfer_id: str,
    ) -> Decimal:
        """
        Record a confirmed transfer (completing the pending record) and add
        amount to the designer's total and current-quarter earnings in one
        atomic step. Returns new total earnings.
        """

    @abstractmethod
    def record_failed_payout(
        self,
        campaign_id: str,
        designer_id: str,
        amount: Decimal,
        error: str,
    ) -> None:
        """Mark the pending payout as failed with the provider's error."""

    def ping(self) -> None:
        """Cheap connectivity check. Raises on failure."""


class FundsTransferProvider(ABC):
    """Moves money to a connected payout account."""

    @abstractmethod
    def transfer(
        self,
        destination_account_id: str,
        amount: Decimal,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> str:
        """
        Create a transfer and return the provider's transfer id.

        Raises:
            TransferError: If the provider rejects the transfer or times out
        """

    @abstractmethod
    def find_transfer(self, transfer_key: str) -> str | None:
        """
        Look up a transfer created earlier under transfer_key.

        Returns:
            The transfer id, or None if no transfer was made

        Raises:
            TransferError: If the provider can't be queried
        """


class EmailQueue(ABC):
    """Queues templated emails."""

    @abstractmethod
    def enqueue_email(
        self,
        user_id: str,
        template_type: str,
        template_data: dict[str, Any],
    ) -> str:
        """Queue an email and return the queue entry id."""
