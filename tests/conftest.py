# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Provides the standard three-tier table and campaign/order builders
# - Wires the pipeline against the in-memory fakes in tests/fakes.py
# =============================================================================

import os
import sys

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_settlement")
os.environ.setdefault("SETTLEMENT_SECRET", "test-settlement-secret")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.models import Campaign, CampaignStatus, DesignerAccount, PreOrder, TierRow
from core.services import CampaignOrchestrator, NotificationDispatcher, PayoutCalculator, RefundReconciler
from tests.fakes import FakeSettlementStore, FakeTransferProvider

NOW = datetime(2025, 6, 1, 2, 0, tzinfo=timezone.utc)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def now():
    """Fixed reference time for settlement windows."""
    return NOW


@pytest.fixture
def tiers():
    """Standard table: [1,100]@30, [101,200]@25, [201,500]@20."""
    return [
        TierRow(tier=1, range_low=1, range_high=100, supplier_cost=Decimal("15"), retail_price=Decimal("30")),
        TierRow(tier=2, range_low=101, range_high=200, supplier_cost=Decimal("13"), retail_price=Decimal("25")),
        TierRow(tier=3, range_low=201, range_high=500, supplier_cost=Decimal("11"), retail_price=Decimal("20")),
    ]


@pytest.fixture
def make_campaign(tiers):
    """Factory for campaigns whose window elapsed by default."""
    def _make(
        campaign_id: str = "design-1",
        status: CampaignStatus = CampaignStatus.ACCEPTING_ORDERS,
        started_days_ago: int = 31,
        **overrides,
    ) -> Campaign:
        data = {
            "id": campaign_id,
            "title": f"Design {campaign_id}",
            "designer_id": "designer-1",
            "tiers": tiers,
            "preorder_start_date": NOW - timedelta(days=started_days_ago),
            "status": status,
            "royalty_rate": Decimal("0.12"),
        }
        data.update(overrides)
        return Campaign(**data)
    return _make


@pytest.fixture
def make_order():
    """Factory for charged, unflagged pre-orders."""
    counter = {"n": 0}

    def _make(campaign_id: str, buyer_id: str, quantity: int, **overrides) -> PreOrder:
        counter["n"] += 1
        data = {
            "id": f"order-{counter['n']}",
            "campaign_id": campaign_id,
            "buyer_id": buyer_id,
            "quantity": quantity,
            "amount_paid": Decimal("30") * quantity,
        }
        data.update(overrides)
        return PreOrder(**data)
    return _make


@pytest.fixture
def designer():
    """Designer with a Connect account and untouched quarterly allowance."""
    return DesignerAccount(
        id="designer-1",
        stripe_connect_account_id="acct_designer1",
        quarterly_cap=Decimal("5000"),
    )


@pytest.fixture
def store(designer):
    """In-memory store seeded with the designer."""
    fake = FakeSettlementStore()
    fake.add_designer(designer)
    return fake


@pytest.fixture
def transfers():
    """In-memory transfer provider."""
    return FakeTransferProvider()


@pytest.fixture
def dispatcher(store):
    """Notification dispatcher writing to the fake store's email queue."""
    return NotificationDispatcher(store)


@pytest.fixture
def reconciler(store, dispatcher):
    return RefundReconciler(store, dispatcher)


@pytest.fixture
def payouts(store, transfers, dispatcher):
    return PayoutCalculator(store, transfers, dispatcher, currency="sgd")


@pytest.fixture
def orchestrator(store, reconciler, payouts):
    """Orchestrator over the fakes with a fixed clock."""
    return CampaignOrchestrator(
        store,
        reconciler,
        payouts,
        window_days=30,
        clock=lambda: NOW,
    )
