# =============================================================================
# tests/test_supabase_store.py - Supabase Store Tests
# =============================================================================
# Tests for SupabaseSettlementStore with a mocked supabase-py client:
# - Row mapping and paging
# - Conditional status transitions
# - RPC parameters for atomic increments
# - Error wrapping into TransientStoreError
#
# Run with: pytest tests/test_supabase_store.py -v
# =============================================================================

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from app.exceptions import TransientStoreError
from core.models import CampaignStatus
from lib.supabase_client import PAGE_SIZE, SupabaseClient, SupabaseSettlementStore

BUILDER_METHODS = ("select", "eq", "in_", "lte", "gt", "order", "range", "limit", "update", "insert")


def _query(*pages):
    """A query builder mock whose execute() returns the given pages in turn."""
    query = MagicMock()
    for name in BUILDER_METHODS:
        getattr(query, name).return_value = query
    query.execute.side_effect = [MagicMock(data=page) for page in pages]
    return query


def _campaign_row(**overrides):
    row = {
        "id": "design-1",
        "title": "Neon Jacket",
        "designer_id": "designer-1",
        "tiered_pricing_data": [
            {"tier": 1, "rangeLow": 1, "rangeHigh": 100, "retailPrice": 30},
            {"tier": 2, "rangeLow": 101, "rangeHigh": 200, "retailPrice": 25},
            {"tier": 3, "rangeLow": 201, "rangeHigh": 500, "retailPrice": 20},
        ],
        "preorder_start_date": "2025-04-01T00:00:00+00:00",
        "submission_status": "accepting_orders",
        "current_active_tier": 1,
        "potential_refund_per_unit": None,
        "copyright_model": "Retained-12%",
    }
    row.update(overrides)
    return row


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def supabase_store(client):
    return SupabaseSettlementStore(
        client=client,
        default_royalty_rate=Decimal("0.12"),
        default_quarterly_cap=Decimal("5000"),
    )


class TestCampaignReads:
    """Tests for campaign queries."""

    def test_fetch_eligible_campaigns(self, client, supabase_store):
        query = _query([_campaign_row()])
        client.table.return_value = query
        cutoff = datetime(2025, 5, 2, tzinfo=timezone.utc)

        campaigns = supabase_store.fetch_eligible_campaigns(cutoff)

        client.table.assert_called_with("design_submissions")
        query.in_.assert_called_with("submission_status", ["accepting_orders", "in_settlement"])
        query.lte.assert_called_with("preorder_start_date", cutoff.isoformat())
        assert campaigns[0].id == "design-1"
        assert campaigns[0].royalty_rate == Decimal("0.12")

    def test_malformed_tier_table_does_not_break_the_list(self, client, supabase_store):
        bad_table = [{"tier": 4, "rangeLow": 1, "rangeHigh": 2, "retailPrice": 1}, {"tier": 2}]
        client.table.return_value = _query([
            _campaign_row(),
            _campaign_row(id="design-2", tiered_pricing_data=bad_table),
        ])

        campaigns = supabase_store.fetch_eligible_campaigns(datetime(2025, 5, 2, tzinfo=timezone.utc))

        assert [c.id for c in campaigns] == ["design-1", "design-2"]
        assert campaigns[0].tier_errors == []
        assert campaigns[1].tiers[0].tier == 4
        assert campaigns[1].tier_errors[0].startswith("row 2:")

    def test_fetch_campaign_missing(self, client, supabase_store):
        client.table.return_value = _query([])

        assert supabase_store.fetch_campaign("missing") is None

    def test_pending_refunds_filters_settled(self, client, supabase_store):
        orders = _query([{"design_id": "design-1"}, {"design_id": "design-1"}])
        campaigns = _query([_campaign_row(submission_status="completed", current_active_tier=2,
                                          potential_refund_per_unit=5)])
        client.table.side_effect = lambda name: orders if name == "pre_orders" else campaigns

        result = supabase_store.fetch_campaigns_with_pending_refunds()

        campaigns.in_.assert_any_call("id", ["design-1"])
        campaigns.gt.assert_called_with("potential_refund_per_unit", 0)
        assert result[0].settled_tier == 2


class TestOrders:
    """Tests for order queries and paging."""

    def test_count_charged_units_pages(self, client, supabase_store):
        """Reads continue until a short page comes back."""
        full_page = [{"id": f"o{i}", "quantity": 1} for i in range(PAGE_SIZE)]
        query = _query(full_page, [{"id": "last", "quantity": 4}])
        client.table.return_value = query

        total = supabase_store.count_charged_units("design-1")

        assert total == PAGE_SIZE + 4
        query.range.assert_any_call(0, PAGE_SIZE - 1)
        query.range.assert_any_call(PAGE_SIZE, 2 * PAGE_SIZE - 1)
        query.eq.assert_any_call("status", "charged")

    def test_fetch_unrefunded_orders(self, client, supabase_store):
        query = _query([{
            "id": "order-1", "design_id": "design-1", "user_id": "buyer-1",
            "quantity": 3, "amount_paid": 90, "status": "charged", "refund_credit_issued": False,
        }])
        client.table.return_value = query

        orders = supabase_store.fetch_unrefunded_orders("design-1")

        query.eq.assert_any_call("refund_credit_issued", False)
        assert orders[0].buyer_id == "buyer-1"
        assert orders[0].quantity == 3

    def test_mark_orders_refund_issued(self, client, supabase_store):
        query = _query([{"id": "order-1"}])
        client.table.return_value = query

        supabase_store.mark_orders_refund_issued(["order-1"])

        query.update.assert_called_with({"refund_credit_issued": True})
        query.in_.assert_called_with("id", ["order-1"])


class TestLedgers:
    """Tests for the atomic increment RPCs."""

    def test_increment_credit_balance(self, client, supabase_store):
        client.rpc.return_value = _query(42.5)

        balance = supabase_store.increment_credit_balance("buyer-1", Decimal("15.00"))

        client.rpc.assert_called_with("increment_reward_credit", {"p_user_id": "buyer-1", "p_amount": 15.0})
        assert balance == Decimal("42.5")

    def test_record_payout(self, client, supabase_store):
        client.rpc.return_value = _query("316.00")

        total = supabase_store.record_payout("design-1", "designer-1", Decimal("216.00"), "tr_1")

        name, params = client.rpc.call_args.args
        assert name == "record_designer_payout"
        assert params["p_transfer_id"] == "tr_1"
        assert total == Decimal("316.00")

    def test_reserve_payout_inserts_pending_row(self, client, supabase_store):
        query = _query([{"id": "payout-row-1", "status": "pending"}])
        client.table.return_value = query

        record = supabase_store.reserve_payout("design-1", "designer-1", Decimal("216.00"), "payout-design-1")

        client.table.assert_called_with("payouts")
        inserted = query.insert.call_args.args[0]
        assert inserted["status"] == "pending"
        assert inserted["amount"] == 216.0
        assert inserted["metadata"]["transfer_key"] == "payout-design-1"
        assert record["id"] == "payout-row-1"

    def test_fetch_pending_payout(self, client, supabase_store):
        query = _query([{"id": "payout-row-1", "amount": 216, "status": "pending"}])
        client.table.return_value = query

        record = supabase_store.fetch_pending_payout("design-1")

        query.eq.assert_any_call("status", "pending")
        assert record["id"] == "payout-row-1"

    def test_failed_payout_marks_pending_row(self, client, supabase_store):
        query = _query([{"id": "payout-row-1"}])
        client.table.return_value = query

        supabase_store.record_failed_payout("design-1", "designer-1", Decimal("216.00"), "card declined")

        query.update.assert_called_with({"status": "failed", "error_message": "card declined"})
        query.insert.assert_not_called()

    def test_failed_payout_without_reservation_inserts(self, client, supabase_store):
        query = _query([], [{"id": "payout-row-2"}])
        client.table.return_value = query

        supabase_store.record_failed_payout("design-1", "designer-1", Decimal("216.00"), "card declined")

        assert query.insert.call_args.args[0]["status"] == "failed"

    def test_fetch_designer(self, client, supabase_store):
        client.table.return_value = _query([{
            "id": "designer-1",
            "stripe_connect_account_id": "acct_1",
            "total_earnings": 100,
            "current_quarter_bonus_earned": 100,
            "quarterly_bonus_cap": None,
        }])

        designer = supabase_store.fetch_designer("designer-1")

        assert designer.quarterly_cap == Decimal("5000")
        assert designer.remaining_quarter_allowance == Decimal("4900")


class TestTransitions:
    """Tests for conditional status updates."""

    def test_mark_in_settlement_guarded(self, client, supabase_store):
        query = _query([{"id": "design-1"}])
        client.table.return_value = query

        assert supabase_store.mark_in_settlement("design-1") is True
        query.update.assert_called_with({"submission_status": "in_settlement"})
        query.in_.assert_called_with("submission_status", [CampaignStatus.ACCEPTING_ORDERS.value])

    def test_mark_in_production_writes_tier_and_refund(self, client, supabase_store):
        query = _query([{"id": "design-1"}])
        client.table.return_value = query

        supabase_store.mark_in_production("design-1", 2, Decimal("5.00"))

        query.update.assert_called_with({
            "submission_status": "in_production",
            "current_active_tier": 2,
            "potential_refund_per_unit": 5.0,
        })

    def test_no_row_changed_returns_false(self, client, supabase_store):
        client.table.return_value = _query([])

        assert supabase_store.mark_completed("design-1") is False


class TestErrors:
    """Tests for error wrapping."""

    def test_query_failure_becomes_transient(self, client, supabase_store):
        query = _query()
        query.execute.side_effect = Exception("timed out")
        client.table.return_value = query

        with pytest.raises(TransientStoreError) as exc_info:
            supabase_store.fetch_campaign("design-1")

        assert exc_info.value.operation == "fetch_campaign"
        assert "timed out" in exc_info.value.message

    def test_client_init_failure(self):
        SupabaseClient.reset()
        with patch("lib.supabase_client.create_client", side_effect=Exception("bad url")):
            with pytest.raises(TransientStoreError) as exc_info:
                SupabaseClient.get_client()

        assert exc_info.value.code == "CLIENT_INIT_FAILED"
        SupabaseClient.reset()

    def test_enqueue_email(self, client, supabase_store):
        client.rpc.return_value = _query("queue-1")

        queue_id = supabase_store.enqueue_email("user-1", "PAYOUT_SENT", {"amount": "1.00"})

        assert queue_id == "queue-1"
        client.rpc.assert_called_with("queue_email", {
            "p_user_id": "user-1",
            "p_template_type": "PAYOUT_SENT",
            "p_template_data": {"amount": "1.00"},
        })
